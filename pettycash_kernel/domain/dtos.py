"""
Petty-cash domain types (``pettycash_kernel.domain.dtos``).

Frozen dataclass value objects for accounts, ledger transactions,
reconciliations, replenishments and collaborator expense records, plus
the status enums.  No business logic; structure only.  ORM models convert
to these via ``to_dto()`` so nothing outside the services layer ever holds
a live ORM instance.

Invariants enforced:
    - All monetary fields are ``Decimal`` -- never ``float``.
    - All DTOs are frozen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =========================================================================
# Status / type enums
# =========================================================================


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CLOSED = "closed"


class TransactionType(str, Enum):
    ALLOCATION = "allocation"
    EXPENSE = "expense"
    REPLENISHMENT = "replenishment"
    ADJUSTMENT = "adjustment"
    RECONCILIATION = "reconciliation"


INFLOW_TYPES: frozenset[TransactionType] = frozenset({
    TransactionType.ALLOCATION,
    TransactionType.REPLENISHMENT,
})


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReconciliationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class ReplenishmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


# =========================================================================
# Entities
# =========================================================================


@dataclass(frozen=True)
class Account:
    """A petty-cash fund pool.

    ``current_balance`` is a cached projection of the approved transaction
    log; see ``domain.balance.replay_balance``.
    """

    id: UUID
    owner_id: UUID
    name: str
    code: str
    opening_balance: Decimal
    current_balance: Decimal
    status: AccountStatus
    is_active: bool
    created_by: UUID
    assigned_user_id: UUID | None = None
    assigned_cashier_id: UUID | None = None
    daily_limit: Decimal | None = None
    transaction_limit: Decimal | None = None
    approval_threshold: Decimal | None = None
    minimum_balance: Decimal = Decimal("0")
    description: str | None = None
    notes: str | None = None
    closed_by: UUID | None = None
    closed_at: datetime | None = None
    reconciliation_count: int = 0
    last_reconciled_at: datetime | None = None
    version: int = 1


@dataclass(frozen=True)
class Transaction:
    """A single typed money movement against an account."""

    id: UUID
    account_id: UUID
    sequence: int
    transaction_type: TransactionType
    transaction_date: date
    transaction_time: time
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    requires_approval: bool
    approval_status: ApprovalStatus
    recorded_by: UUID
    payment_method: str = "Cash"
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    expense_id: UUID | None = None
    category_id: UUID | None = None
    subcategory_id: UUID | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    reconciliation_id: UUID | None = None
    is_reconciled: bool = False
    description: str | None = None
    notes: str | None = None
    reference_number: str | None = None
    receipt_image_url: str | None = None

    @property
    def delta(self) -> Decimal:
        """Signed effect on the balance once approved."""
        return self.balance_after - self.balance_before

    @property
    def is_applied(self) -> bool:
        return (
            self.approval_status is ApprovalStatus.APPROVED
            and self.transaction_type is not TransactionType.RECONCILIATION
        )


@dataclass(frozen=True)
class Reconciliation:
    """Point-in-time comparison of ledger-derived vs counted cash."""

    id: UUID
    account_id: UUID
    reconciliation_date: date
    period_start: date
    period_end: date
    opening_balance: Decimal
    expected_balance: Decimal
    actual_balance: Decimal
    variance: Decimal
    total_receipts: Decimal
    total_payments: Decimal
    transaction_count: int
    status: ReconciliationStatus
    reconciled_by: UUID
    variance_reason: str | None = None
    notes: str | None = None
    adjustment_transaction_id: UUID | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None


@dataclass(frozen=True)
class Replenishment:
    """Request to top an account back up."""

    id: UUID
    account_id: UUID
    requested_amount: Decimal
    current_balance_at_request: Decimal
    justification: str
    status: ReplenishmentStatus
    requested_by: UUID
    request_date: date
    approved_amount: Decimal | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    disbursed_by: UUID | None = None
    disbursed_at: datetime | None = None
    disbursement_method: str | None = None
    reference_number: str | None = None
    transaction_id: UUID | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ExpenseCategory:
    id: UUID
    owner_id: UUID
    name: str
    icon: str | None = None
    color: str | None = None


@dataclass(frozen=True)
class ExpenseSubcategory:
    id: UUID
    category_id: UUID
    name: str


@dataclass(frozen=True)
class Expense:
    """Collaborator expense-store record created by ``record_expense``."""

    id: UUID
    owner_id: UUID
    amount: Decimal
    total_amount: Decimal
    payment_method: str
    expense_date: date
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    category_id: UUID | None = None
    subcategory_id: UUID | None = None
    description: str | None = None
    receipt_image_url: str | None = None


# =========================================================================
# Operation inputs
# =========================================================================


@dataclass(frozen=True)
class AccountSpec:
    """Input for ``AccountStore.create_account``."""

    name: str
    code: str
    opening_balance: Decimal = Decimal("0")
    assigned_user_id: UUID | None = None
    assigned_cashier_id: UUID | None = None
    daily_limit: Decimal | None = None
    transaction_limit: Decimal | None = None
    approval_threshold: Decimal | None = None
    minimum_balance: Decimal = Decimal("0")
    description: str | None = None


@dataclass(frozen=True)
class ExpenseDetails:
    """Input for ``TransactionLedger.record_expense``."""

    amount: Decimal
    category_id: UUID | None = None
    subcategory_id: UUID | None = None
    description: str | None = None
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    expense_date: date | None = None
    receipt_image_url: str | None = None
    reference_number: str | None = None


@dataclass(frozen=True)
class DisbursementDetails:
    """Input for ``ReplenishmentWorkflow.disburse_replenishment``."""

    disbursement_method: str
    reference_number: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class TransactionFilter:
    """Filters for ``TransactionLedger.get_transactions``."""

    account_id: UUID | None = None
    transaction_type: TransactionType | None = None
    date_from: date | None = None
    date_to: date | None = None
    approval_status: ApprovalStatus | None = None
    limit: int | None = None


# =========================================================================
# Results
# =========================================================================


@dataclass(frozen=True)
class ExpenseResult:
    expense: Expense
    transaction: Transaction
    requires_approval: bool


@dataclass(frozen=True)
class DisbursementResult:
    replenishment: Replenishment
    transaction: Transaction


@dataclass(frozen=True)
class CategoryTotal:
    name: str
    count: int
    total: Decimal
    icon: str | None = None
    color: str | None = None


@dataclass(frozen=True)
class DailyTrend:
    date: date
    allocations: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    replenishments: Decimal = Decimal("0")


@dataclass(frozen=True)
class AccountSummary:
    account: Account
    date_from: date | None
    date_to: date | None
    transaction_count: int
    total_allocated: Decimal
    total_expenses: Decimal
    total_replenished: Decimal
    net_adjustments: Decimal
    pending_approvals: int
    category_breakdown: tuple[CategoryTotal, ...] = field(default_factory=tuple)
    daily_trend: tuple[DailyTrend, ...] = field(default_factory=tuple)


class AlertType(str, Enum):
    LOW_BALANCE = "low_balance"
    NO_RECONCILIATION = "no_reconciliation"


@dataclass(frozen=True)
class Alert:
    alert_type: AlertType
    severity: str
    account_id: UUID
    account_name: str
    message: str
    current_balance: Decimal | None = None
    minimum_balance: Decimal | None = None


@dataclass(frozen=True)
class BalanceCheck:
    """Cached balance vs replay of the approved transaction log."""

    account_id: UUID
    recorded_balance: Decimal
    replayed_balance: Decimal

    @property
    def is_consistent(self) -> bool:
        return self.recorded_balance == self.replayed_balance
