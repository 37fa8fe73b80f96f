"""
Module: pettycash_kernel.models.reconciliation
Responsibility: ORM persistence for cash-count reconciliations.

Invariants enforced:
    - ``variance == actual_balance - expected_balance`` (written once).
    - ``status = completed`` iff no adjustment is outstanding.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pettycash_kernel.db.base import TrackedBase, UUIDString
from pettycash_kernel.domain.dtos import Reconciliation, ReconciliationStatus


class ReconciliationModel(TrackedBase):
    """
    ORM model for ``Reconciliation``.

    Table: ``petty_cash_reconciliations``
    """

    __tablename__ = "petty_cash_reconciliations"

    account_id: Mapped[UUID] = mapped_column(ForeignKey("petty_cash_accounts.id"))
    reconciliation_date: Mapped[date]
    period_start: Mapped[date]
    period_end: Mapped[date]

    opening_balance: Mapped[Decimal]
    expected_balance: Mapped[Decimal]
    actual_balance: Mapped[Decimal]
    variance: Mapped[Decimal]
    total_receipts: Mapped[Decimal]
    total_payments: Mapped[Decimal]
    transaction_count: Mapped[int]

    status: Mapped[str] = mapped_column(String(20))
    variance_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # No FK: the adjustment row itself points back here via reconciliation_id
    adjustment_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    reconciled_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None]

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed')",
            name="ck_petty_cash_reconciliations_status",
        ),
        Index(
            "idx_petty_cash_reconciliations_account_date",
            "account_id", "reconciliation_date",
        ),
    )

    def to_dto(self) -> Reconciliation:
        return Reconciliation(
            id=self.id,
            account_id=self.account_id,
            reconciliation_date=self.reconciliation_date,
            period_start=self.period_start,
            period_end=self.period_end,
            opening_balance=self.opening_balance,
            expected_balance=self.expected_balance,
            actual_balance=self.actual_balance,
            variance=self.variance,
            total_receipts=self.total_receipts,
            total_payments=self.total_payments,
            transaction_count=self.transaction_count,
            status=ReconciliationStatus(self.status),
            reconciled_by=self.reconciled_by_id,
            variance_reason=self.variance_reason,
            notes=self.notes,
            adjustment_transaction_id=self.adjustment_transaction_id,
            approved_by=self.approved_by_id,
            approved_at=self.approved_at,
        )

    def __repr__(self) -> str:
        return (
            f"<ReconciliationModel(id={self.id!r}, variance={self.variance!r}, "
            f"status={self.status!r})>"
        )
