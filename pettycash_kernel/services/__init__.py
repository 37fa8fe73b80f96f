"""Services for the petty-cash kernel (write side)."""

from pettycash_kernel.services.account_service import AccountStore
from pettycash_kernel.services.approval_service import ApprovalGate
from pettycash_kernel.services.expense_store import ExpenseStore
from pettycash_kernel.services.ledger_service import TransactionLedger
from pettycash_kernel.services.reconciliation_service import ReconciliationEngine
from pettycash_kernel.services.replenishment_service import ReplenishmentWorkflow
from pettycash_kernel.services.facade import PettyCashService

__all__ = [
    "AccountStore",
    "ApprovalGate",
    "ExpenseStore",
    "PettyCashService",
    "ReconciliationEngine",
    "ReplenishmentWorkflow",
    "TransactionLedger",
]
