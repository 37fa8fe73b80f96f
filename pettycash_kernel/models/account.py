"""
Module: pettycash_kernel.models.account
Responsibility: ORM persistence for petty-cash accounts (fund pools).

Invariants enforced:
    - Status values limited by a check constraint.
    - Assignee is a user or a cashier, never both (check constraint).
    - ``version`` is the SQLAlchemy version_id_col: every UPDATE of an
      account row is a compare-and-swap on it, so two writers that both
      read a stale balance cannot both commit.
    - ``last_sequence`` is bumped by every new ledger transaction, which
      forces concurrent writers on one account through that CAS.
    - ``reconciliation_count`` is bumped by every reconciliation, so a
      count taken against a balance that has since moved fails the CAS.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pettycash_kernel.db.base import TrackedBase, UUIDString
from pettycash_kernel.domain.dtos import Account, AccountStatus


class AccountModel(TrackedBase):
    """
    ORM model for ``Account``.

    Table: ``petty_cash_accounts``
    """

    __tablename__ = "petty_cash_accounts"

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    assigned_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    assigned_cashier_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    name: Mapped[str] = mapped_column(String(200))
    code: Mapped[str] = mapped_column(String(50))

    opening_balance: Mapped[Decimal]
    current_balance: Mapped[Decimal]
    daily_limit: Mapped[Decimal | None]
    transaction_limit: Mapped[Decimal | None]
    approval_threshold: Mapped[Decimal | None]
    minimum_balance: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    status: Mapped[str] = mapped_column(String(20), default=AccountStatus.ACTIVE.value)
    is_active: Mapped[bool] = mapped_column(default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    closed_at: Mapped[datetime | None]

    last_sequence: Mapped[int] = mapped_column(default=0)
    reconciliation_count: Mapped[int] = mapped_column(default=0)
    last_reconciled_at: Mapped[datetime | None]
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'suspended', 'closed')",
            name="ck_petty_cash_accounts_status",
        ),
        CheckConstraint(
            "assigned_user_id IS NULL OR assigned_cashier_id IS NULL",
            name="ck_petty_cash_accounts_single_assignee",
        ),
        UniqueConstraint("owner_id", "code", name="uq_petty_cash_accounts_owner_code"),
        Index("idx_petty_cash_accounts_owner", "owner_id", "status"),
        Index("idx_petty_cash_accounts_assigned_user", "assigned_user_id"),
        Index("idx_petty_cash_accounts_assigned_cashier", "assigned_cashier_id"),
    )

    def to_dto(self) -> Account:
        return Account(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name,
            code=self.code,
            opening_balance=self.opening_balance,
            current_balance=self.current_balance,
            status=AccountStatus(self.status),
            is_active=self.is_active,
            created_by=self.created_by_id,
            assigned_user_id=self.assigned_user_id,
            assigned_cashier_id=self.assigned_cashier_id,
            daily_limit=self.daily_limit,
            transaction_limit=self.transaction_limit,
            approval_threshold=self.approval_threshold,
            minimum_balance=self.minimum_balance,
            description=self.description,
            notes=self.notes,
            closed_by=self.closed_by_id,
            closed_at=self.closed_at,
            reconciliation_count=self.reconciliation_count,
            last_reconciled_at=self.last_reconciled_at,
            version=self.version,
        )

    def __repr__(self) -> str:
        return (
            f"<AccountModel(id={self.id!r}, code={self.code!r}, "
            f"status={self.status!r}, balance={self.current_balance!r})>"
        )
