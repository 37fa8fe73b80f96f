"""
Module: pettycash_kernel.models.expense
Responsibility: ORM persistence for the collaborator expense store --
    expense rows plus their categories and subcategories.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pettycash_kernel.db.base import TrackedBase, UUIDString
from pettycash_kernel.domain.dtos import Expense, ExpenseCategory, ExpenseSubcategory


class ExpenseCategoryModel(TrackedBase):
    """Table: ``expense_categories``"""

    __tablename__ = "expense_categories"

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(100))
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)

    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_expense_categories_owner_name"),
    )

    def to_dto(self) -> ExpenseCategory:
        return ExpenseCategory(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name,
            icon=self.icon,
            color=self.color,
        )


class ExpenseSubcategoryModel(TrackedBase):
    """Table: ``expense_subcategories``"""

    __tablename__ = "expense_subcategories"

    category_id: Mapped[UUID] = mapped_column(ForeignKey("expense_categories.id"))
    name: Mapped[str] = mapped_column(String(100))

    __table_args__ = (
        UniqueConstraint("category_id", "name", name="uq_expense_subcategories_name"),
    )

    def to_dto(self) -> ExpenseSubcategory:
        return ExpenseSubcategory(
            id=self.id,
            category_id=self.category_id,
            name=self.name,
        )


class ExpenseModel(TrackedBase):
    """Table: ``expenses``"""

    __tablename__ = "expenses"

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    amount: Mapped[Decimal]
    tax_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal]
    payment_method: Mapped[str] = mapped_column(String(50))
    expense_date: Mapped[date]
    category_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("expense_categories.id"), nullable=True,
    )
    subcategory_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("expense_subcategories.id"), nullable=True,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    receipt_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_expenses_owner_date", "owner_id", "expense_date"),
    )

    def to_dto(self) -> Expense:
        return Expense(
            id=self.id,
            owner_id=self.owner_id,
            amount=self.amount,
            total_amount=self.total_amount,
            payment_method=self.payment_method,
            expense_date=self.expense_date,
            tax_rate=self.tax_rate,
            tax_amount=self.tax_amount,
            category_id=self.category_id,
            subcategory_id=self.subcategory_id,
            description=self.description,
            receipt_image_url=self.receipt_image_url,
        )
