"""
ApprovalGate -- sign-off for parked petty-cash transactions.

Responsibility:
    Lists pending transactions for a visibility scope and finalizes them:
    approval applies the transaction's balance effect, rejection never
    does.  Resolving a reconciliation adjustment also completes its
    reconciliation.

Invariants enforced:
    - Exactly-once application: the transaction row is re-read
      ``FOR UPDATE`` (``populate_existing``) inside the unit of work and
      its status checked before the balance moves.  Both the transaction
      and the account rows are versioned, so two racing approvals cannot
      both commit.
    - Approving an approved transaction and rejecting a rejected one are
      no-ops; the opposite decision on a resolved row is an error.
    - Only roles listed in ``PettyCashConfig.approver_roles`` may decide.

Failure modes:
    - TransactionNotFoundError, AccountClosedError.
    - UnauthorizedApproverError.
    - TransactionAlreadyResolvedError.
    - InsufficientBalanceError: a parked expense or shortage adjustment
      would take the balance below zero at approval time.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pettycash_kernel.config import PettyCashConfig
from pettycash_kernel.db.types import ZERO
from pettycash_kernel.domain.clock import Clock
from pettycash_kernel.domain.dtos import (
    ApprovalStatus,
    ReconciliationStatus,
    Transaction,
    TransactionType,
)
from pettycash_kernel.domain.principal import Principal
from pettycash_kernel.exceptions import (
    InsufficientBalanceError,
    TransactionAlreadyResolvedError,
    TransactionNotFoundError,
    UnauthorizedApproverError,
)
from pettycash_kernel.logging_config import get_logger
from pettycash_kernel.models.account import AccountModel
from pettycash_kernel.models.reconciliation import ReconciliationModel
from pettycash_kernel.models.transaction import TransactionModel
from pettycash_kernel.services.base import BaseService
from pettycash_kernel.services.ledger_service import TransactionLedger

logger = get_logger("services.approval")


class ApprovalGate(BaseService[TransactionModel]):
    """
    Approves or rejects pending transactions.

    Contract:
        ``approve_transaction`` and ``reject_transaction`` return the
        transaction as it stands after the call.  Repeating the same
        decision returns the row unchanged.

    Non-goals:
        - Does NOT decide whether a movement needs approval; the ledger
          stamps ``requires_approval`` at creation.
    """

    def __init__(
        self,
        session: Session,
        ledger: TransactionLedger,
        clock: Clock | None = None,
        config: PettyCashConfig | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger
        self._config = config or PettyCashConfig.with_defaults()

    def get_pending_approvals(
        self,
        principal: Principal,
        owner_ids: Iterable[UUID] | None = None,
    ) -> list[Transaction]:
        """
        Pending transactions on accounts in the caller's visibility set.

        ``owner_ids`` defaults to the principal's own id.
        """
        scope = list(owner_ids) if owner_ids is not None else [principal.id]
        query = (
            select(TransactionModel)
            .join(AccountModel, AccountModel.id == TransactionModel.account_id)
            .where(
                AccountModel.owner_id.in_(scope),
                TransactionModel.requires_approval.is_(True),
                TransactionModel.approval_status == ApprovalStatus.PENDING.value,
            )
            .order_by(
                TransactionModel.transaction_date.desc(),
                TransactionModel.transaction_time.desc(),
                TransactionModel.sequence.desc(),
            )
        )
        return [t.to_dto() for t in self.session.scalars(query)]

    def approve_transaction(
        self,
        transaction_id: UUID,
        approver: Principal,
        notes: str | None = None,
    ) -> Transaction:
        """
        Approve a pending transaction and apply its balance effect.

        Postconditions:
            - ``approval_status == approved`` and the account balance has
              moved by the transaction's delta exactly once.
        """
        self._require_approver(approver)
        txn = self._lock_transaction(transaction_id)

        status = ApprovalStatus(txn.approval_status)
        if status is ApprovalStatus.APPROVED:
            logger.info(
                "transaction_already_approved",
                extra={"transaction_id": str(txn.id)},
            )
            return txn.to_dto()
        if status is ApprovalStatus.REJECTED:
            raise TransactionAlreadyResolvedError(str(txn.id), status.value, "approve")

        account = self._ledger.lock_account(txn.account_id)
        delta = txn.balance_after - txn.balance_before
        if delta < ZERO and account.current_balance + delta < ZERO:
            raise InsufficientBalanceError(
                str(account.id), account.current_balance, -delta,
            )

        now = self.clock.now()
        txn.approval_status = ApprovalStatus.APPROVED.value
        txn.approved_by_id = approver.id
        txn.approved_at = now
        txn.updated_by_id = approver.id
        if notes:
            txn.notes = f"{txn.notes}\n{notes}" if txn.notes else notes
        self._ledger.apply_balance_effect(account, txn, approver)
        self._resolve_reconciliation(txn, approver)
        self._flush("Transaction", txn.id)

        logger.info(
            "transaction_approved",
            extra={
                "transaction_id": str(txn.id),
                "account_id": str(account.id),
                "amount": str(txn.amount),
                "current_balance": str(account.current_balance),
            },
        )
        return txn.to_dto()

    def reject_transaction(
        self,
        transaction_id: UUID,
        approver: Principal,
        reason: str | None = None,
    ) -> Transaction:
        """Reject a pending transaction.  The balance is never touched."""
        self._require_approver(approver)
        txn = self._lock_transaction(transaction_id)

        status = ApprovalStatus(txn.approval_status)
        if status is ApprovalStatus.REJECTED:
            return txn.to_dto()
        if status is ApprovalStatus.APPROVED:
            raise TransactionAlreadyResolvedError(str(txn.id), status.value, "reject")

        # Closed accounts stay frozen.
        self._ledger.lock_account(txn.account_id)

        txn.approval_status = ApprovalStatus.REJECTED.value
        txn.rejection_reason = reason
        txn.approved_by_id = approver.id
        txn.approved_at = self.clock.now()
        txn.updated_by_id = approver.id
        self._resolve_reconciliation(txn, approver)
        self._flush("Transaction", txn.id)

        logger.info(
            "transaction_rejected",
            extra={"transaction_id": str(txn.id), "reason": reason},
        )
        return txn.to_dto()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_approver(self, principal: Principal) -> None:
        if not self._config.can_approve(principal.role):
            raise UnauthorizedApproverError(str(principal.id), principal.role)

    def _lock_transaction(self, transaction_id: UUID) -> TransactionModel:
        txn = self._load_for_update(TransactionModel, transaction_id)
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id))
        return txn

    def _resolve_reconciliation(self, txn: TransactionModel, approver: Principal) -> None:
        """A decided adjustment completes the reconciliation that raised it."""
        if txn.reconciliation_id is None or txn.transaction_type != TransactionType.ADJUSTMENT.value:
            return
        reconciliation = self.session.get(ReconciliationModel, txn.reconciliation_id)
        if reconciliation is None or reconciliation.adjustment_transaction_id != txn.id:
            return
        reconciliation.status = ReconciliationStatus.COMPLETED.value
        reconciliation.approved_by_id = approver.id
        reconciliation.approved_at = self.clock.now()
        reconciliation.updated_by_id = approver.id
        logger.info(
            "reconciliation_completed",
            extra={
                "reconciliation_id": str(reconciliation.id),
                "adjustment_status": txn.approval_status,
            },
        )
