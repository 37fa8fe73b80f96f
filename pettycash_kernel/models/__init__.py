"""SQLAlchemy ORM models.  Importing this package registers every table."""

from pettycash_kernel.models.account import AccountModel
from pettycash_kernel.models.expense import (
    ExpenseCategoryModel,
    ExpenseModel,
    ExpenseSubcategoryModel,
)
from pettycash_kernel.models.reconciliation import ReconciliationModel
from pettycash_kernel.models.replenishment import ReplenishmentModel
from pettycash_kernel.models.transaction import TransactionModel

__all__ = [
    "AccountModel",
    "ExpenseCategoryModel",
    "ExpenseModel",
    "ExpenseSubcategoryModel",
    "ReconciliationModel",
    "ReplenishmentModel",
    "TransactionModel",
]
