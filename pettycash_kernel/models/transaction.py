"""
Module: pettycash_kernel.models.transaction
Responsibility: ORM persistence for the append-only petty-cash ledger.

Invariants enforced:
    - ``(account_id, sequence)`` is unique; sequence is the per-account
      replay order.
    - ``amount >= 0``; type and approval status limited by check
      constraints.
    - ``balance_before`` / ``balance_after`` are stamped at creation and
      never rewritten.
    - ``version`` is the version_id_col, so two concurrent approvals of
      the same row cannot both apply the balance delta.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from pettycash_kernel.db.base import TrackedBase, UUIDString
from pettycash_kernel.domain.dtos import ApprovalStatus, Transaction, TransactionType


class TransactionModel(TrackedBase):
    """
    ORM model for ``Transaction``.

    Table: ``petty_cash_transactions``
    """

    __tablename__ = "petty_cash_transactions"

    account_id: Mapped[UUID] = mapped_column(ForeignKey("petty_cash_accounts.id"))
    sequence: Mapped[int]
    transaction_type: Mapped[str] = mapped_column(String(20))
    transaction_date: Mapped[date]
    transaction_time: Mapped[time]

    amount: Mapped[Decimal]
    balance_before: Mapped[Decimal]
    balance_after: Mapped[Decimal]

    expense_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("expenses.id"), nullable=True,
    )
    category_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("expense_categories.id"), nullable=True,
    )
    subcategory_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("expense_subcategories.id"), nullable=True,
    )
    payment_method: Mapped[str] = mapped_column(String(50), default="Cash")
    tax_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    requires_approval: Mapped[bool] = mapped_column(default=False)
    approval_status: Mapped[str] = mapped_column(String(20))
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    reconciliation_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("petty_cash_reconciliations.id"), nullable=True,
    )
    is_reconciled: Mapped[bool] = mapped_column(default=False)

    recorded_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    receipt_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "transaction_type IN ('allocation', 'expense', 'replenishment', "
            "'adjustment', 'reconciliation')",
            name="ck_petty_cash_transactions_type",
        ),
        CheckConstraint(
            "approval_status IN ('pending', 'approved', 'rejected')",
            name="ck_petty_cash_transactions_approval_status",
        ),
        CheckConstraint("amount >= 0", name="ck_petty_cash_transactions_amount"),
        UniqueConstraint(
            "account_id", "sequence", name="uq_petty_cash_transactions_account_seq",
        ),
        Index(
            "idx_petty_cash_transactions_account_date",
            "account_id", "transaction_date",
        ),
        Index(
            "idx_petty_cash_transactions_pending",
            "requires_approval", "approval_status",
        ),
        Index("idx_petty_cash_transactions_reconciliation", "reconciliation_id"),
    )

    def to_dto(self) -> Transaction:
        return Transaction(
            id=self.id,
            account_id=self.account_id,
            sequence=self.sequence,
            transaction_type=TransactionType(self.transaction_type),
            transaction_date=self.transaction_date,
            transaction_time=self.transaction_time,
            amount=self.amount,
            balance_before=self.balance_before,
            balance_after=self.balance_after,
            requires_approval=self.requires_approval,
            approval_status=ApprovalStatus(self.approval_status),
            recorded_by=self.recorded_by_id,
            payment_method=self.payment_method,
            tax_rate=self.tax_rate,
            tax_amount=self.tax_amount,
            expense_id=self.expense_id,
            category_id=self.category_id,
            subcategory_id=self.subcategory_id,
            approved_by=self.approved_by_id,
            approved_at=self.approved_at,
            rejection_reason=self.rejection_reason,
            reconciliation_id=self.reconciliation_id,
            is_reconciled=self.is_reconciled,
            description=self.description,
            notes=self.notes,
            reference_number=self.reference_number,
            receipt_image_url=self.receipt_image_url,
        )

    def __repr__(self) -> str:
        return (
            f"<TransactionModel(id={self.id!r}, type={self.transaction_type!r}, "
            f"amount={self.amount!r}, status={self.approval_status!r})>"
        )
