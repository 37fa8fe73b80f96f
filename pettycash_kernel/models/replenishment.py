"""
Module: pettycash_kernel.models.replenishment
Responsibility: ORM persistence for replenishment requests.

Invariants enforced:
    - Status limited to the replenishment workflow states.
    - ``transaction_id`` set exactly once, by disbursement.
    - ``version`` is the version_id_col so a request cannot be disbursed
      twice by racing callers.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pettycash_kernel.db.base import TrackedBase, UUIDString
from pettycash_kernel.domain.dtos import Replenishment, ReplenishmentStatus


class ReplenishmentModel(TrackedBase):
    """
    ORM model for ``Replenishment``.

    Table: ``petty_cash_replenishments``
    """

    __tablename__ = "petty_cash_replenishments"

    account_id: Mapped[UUID] = mapped_column(ForeignKey("petty_cash_accounts.id"))
    requested_amount: Mapped[Decimal]
    current_balance_at_request: Mapped[Decimal]
    justification: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20))
    requested_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    request_date: Mapped[date]

    approved_amount: Mapped[Decimal | None]
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    disbursed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    disbursed_at: Mapped[datetime | None]
    disbursement_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("petty_cash_transactions.id"), nullable=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'completed', 'rejected')",
            name="ck_petty_cash_replenishments_status",
        ),
        CheckConstraint(
            "requested_amount > 0", name="ck_petty_cash_replenishments_amount",
        ),
        Index(
            "idx_petty_cash_replenishments_account_status",
            "account_id", "status",
        ),
    )

    def to_dto(self) -> Replenishment:
        return Replenishment(
            id=self.id,
            account_id=self.account_id,
            requested_amount=self.requested_amount,
            current_balance_at_request=self.current_balance_at_request,
            justification=self.justification,
            status=ReplenishmentStatus(self.status),
            requested_by=self.requested_by_id,
            request_date=self.request_date,
            approved_amount=self.approved_amount,
            approved_by=self.approved_by_id,
            approved_at=self.approved_at,
            rejection_reason=self.rejection_reason,
            disbursed_by=self.disbursed_by_id,
            disbursed_at=self.disbursed_at,
            disbursement_method=self.disbursement_method,
            reference_number=self.reference_number,
            transaction_id=self.transaction_id,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return (
            f"<ReplenishmentModel(id={self.id!r}, "
            f"requested={self.requested_amount!r}, status={self.status!r})>"
        )
