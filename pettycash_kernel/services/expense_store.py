"""
ExpenseStore -- collaborator store for expense rows and their categories.

Responsibility:
    Owns the ``expenses``, ``expense_categories`` and
    ``expense_subcategories`` collections.  ``TransactionLedger`` calls
    ``create_expense`` while recording a petty-cash expense; categories
    are also used by the reporting breakdown.

Failure modes:
    - ExpenseCategoryNotFoundError: category or subcategory id does not
      resolve, or the subcategory belongs to another category.
    - ValidationError: blank category/subcategory name, duplicate name.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pettycash_kernel.config import PettyCashConfig
from pettycash_kernel.db.types import ZERO, round_money, to_money
from pettycash_kernel.domain.clock import Clock
from pettycash_kernel.domain.dtos import (
    Expense,
    ExpenseCategory,
    ExpenseDetails,
    ExpenseSubcategory,
)
from pettycash_kernel.domain.principal import Principal
from pettycash_kernel.exceptions import (
    ExpenseCategoryNotFoundError,
    InvalidAmountError,
    ValidationError,
)
from pettycash_kernel.logging_config import get_logger
from pettycash_kernel.models.expense import (
    ExpenseCategoryModel,
    ExpenseModel,
    ExpenseSubcategoryModel,
)
from pettycash_kernel.services.base import BaseService

logger = get_logger("services.expense_store")


class ExpenseStore(BaseService[ExpenseModel]):
    """
    Expense rows, categories and subcategories.

    Non-goals:
        - Does NOT touch account balances; the ledger transaction that
          references an expense row is what moves money.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: PettyCashConfig | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or PettyCashConfig.with_defaults()

    # =========================================================================
    # Categories
    # =========================================================================

    def create_category(
        self,
        owner_id: UUID,
        name: str,
        actor: Principal,
        icon: str | None = None,
        color: str | None = None,
    ) -> ExpenseCategory:
        name = (name or "").strip()
        if not name:
            raise ValidationError("category name is required")
        existing = self.session.execute(
            select(ExpenseCategoryModel.id).where(
                ExpenseCategoryModel.owner_id == owner_id,
                ExpenseCategoryModel.name == name,
            )
        ).first()
        if existing is not None:
            raise ValidationError(f"category already exists: {name}")

        category = ExpenseCategoryModel(
            owner_id=owner_id,
            name=name,
            icon=icon,
            color=color,
            created_by_id=actor.id,
        )
        self.session.add(category)
        self.session.flush()
        logger.info(
            "expense_category_created",
            extra={"category_id": str(category.id), "category_name": name},
        )
        return category.to_dto()

    def create_subcategory(
        self,
        category_id: UUID,
        name: str,
        actor: Principal,
    ) -> ExpenseSubcategory:
        self._require_category(category_id)
        name = (name or "").strip()
        if not name:
            raise ValidationError("subcategory name is required")

        subcategory = ExpenseSubcategoryModel(
            category_id=category_id,
            name=name,
            created_by_id=actor.id,
        )
        self.session.add(subcategory)
        self.session.flush()
        logger.info(
            "expense_subcategory_created",
            extra={
                "category_id": str(category_id),
                "subcategory_id": str(subcategory.id),
                "subcategory_name": name,
            },
        )
        return subcategory.to_dto()

    def list_categories(self, owner_id: UUID | None = None) -> list[ExpenseCategory]:
        query = select(ExpenseCategoryModel).order_by(ExpenseCategoryModel.name)
        if owner_id is not None:
            query = query.where(ExpenseCategoryModel.owner_id == owner_id)
        return [c.to_dto() for c in self.session.scalars(query)]

    def list_subcategories(self, category_id: UUID) -> list[ExpenseSubcategory]:
        query = (
            select(ExpenseSubcategoryModel)
            .where(ExpenseSubcategoryModel.category_id == category_id)
            .order_by(ExpenseSubcategoryModel.name)
        )
        return [s.to_dto() for s in self.session.scalars(query)]

    def get_category(self, category_id: UUID) -> ExpenseCategory:
        return self._require_category(category_id).to_dto()

    def _require_category(self, category_id: UUID) -> ExpenseCategoryModel:
        category = self.session.get(ExpenseCategoryModel, category_id)
        if category is None:
            raise ExpenseCategoryNotFoundError(str(category_id))
        return category

    # =========================================================================
    # Expenses
    # =========================================================================

    def create_expense(
        self,
        owner_id: UUID,
        details: ExpenseDetails,
        actor: Principal,
    ) -> Expense:
        """
        Persist the expense row for a petty-cash payment.

        ``total_amount`` is ``amount + tax_amount``; the payment method is
        always the configured petty-cash label.
        """
        amount = to_money(details.amount)
        tax_rate = to_money(details.tax_rate)
        tax_amount = to_money(details.tax_amount)
        if tax_rate < ZERO or tax_amount < ZERO:
            raise InvalidAmountError(tax_amount, "tax cannot be negative")

        if details.category_id is not None:
            self._require_category(details.category_id)
        if details.subcategory_id is not None:
            subcategory = self.session.get(ExpenseSubcategoryModel, details.subcategory_id)
            if subcategory is None:
                raise ExpenseCategoryNotFoundError(str(details.subcategory_id))
            if details.category_id is not None and subcategory.category_id != details.category_id:
                raise ValidationError(
                    f"subcategory {details.subcategory_id} does not belong to "
                    f"category {details.category_id}"
                )

        expense = ExpenseModel(
            owner_id=owner_id,
            amount=amount,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            total_amount=round_money(amount + tax_amount),
            payment_method=self._config.expense_payment_method,
            expense_date=details.expense_date or self.clock.today(),
            category_id=details.category_id,
            subcategory_id=details.subcategory_id,
            description=details.description,
            receipt_image_url=details.receipt_image_url,
            created_by_id=actor.id,
        )
        self.session.add(expense)
        self.session.flush()
        logger.debug(
            "expense_row_created",
            extra={"expense_id": str(expense.id), "amount": str(amount)},
        )
        return expense.to_dto()
