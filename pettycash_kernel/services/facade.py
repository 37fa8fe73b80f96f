"""
PettyCashService -- the library-level API of the petty-cash kernel.

Responsibility:
    One method per public operation.  Each call runs in its own unit of
    work (``session_scope``): the services below flush into a shared
    session and this class commits on success or rolls back on failure.

Architecture position:
    Kernel > Services -- outermost layer.  Callers (UI, API handlers,
    scripts) hold a ``PettyCashService`` and pass the acting
    ``Principal`` explicitly into every mutation.

Invariants enforced:
    - No partial writes: validation, status writes and balance effects of
      one call share one database transaction.
    - Bounded retry: ``ConcurrencyError`` (lost compare-and-swap) and
      transient ``OperationalError`` (locked database, deadlock,
      serialization failure) are retried up to ``config.max_retries``
      times with linear backoff.  Every retry re-runs validation against
      fresh data.
    - Other SQLAlchemy errors surface as ``PersistenceError`` chained to
      the original; domain errors (``PettyCashError``) pass through
      unchanged.

Usage::

    service = PettyCashService.from_config(load_config())
    account = service.create_account(AccountSpec(name="Front desk", code="PC-01",
                                                 opening_balance=Decimal("1000")),
                                     actor=owner)
    result = service.record_expense(account.id, ExpenseDetails(amount=Decimal("200")),
                                    actor=cashier)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from pettycash_kernel.config import PettyCashConfig
from pettycash_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from pettycash_kernel.domain.clock import Clock, SystemClock
from pettycash_kernel.domain.dtos import (
    Account,
    AccountSpec,
    AccountStatus,
    AccountSummary,
    Alert,
    BalanceCheck,
    DisbursementDetails,
    DisbursementResult,
    ExpenseCategory,
    ExpenseDetails,
    ExpenseResult,
    ExpenseSubcategory,
    Reconciliation,
    ReconciliationStatus,
    Replenishment,
    ReplenishmentStatus,
    Transaction,
    TransactionFilter,
    TransactionType,
)
from pettycash_kernel.domain.principal import Principal
from pettycash_kernel.exceptions import (
    ConcurrencyError,
    OptimisticLockError,
    PersistenceError,
)
from pettycash_kernel.logging_config import LogContext, get_logger
from pettycash_kernel.selectors.reporting_selector import ReportingSelector
from pettycash_kernel.services.account_service import AccountStore
from pettycash_kernel.services.approval_service import ApprovalGate
from pettycash_kernel.services.expense_store import ExpenseStore
from pettycash_kernel.services.ledger_service import TransactionLedger
from pettycash_kernel.services.reconciliation_service import ReconciliationEngine
from pettycash_kernel.services.replenishment_service import ReplenishmentWorkflow

logger = get_logger("services.facade")

T = TypeVar("T")

_TRANSIENT_MARKERS = (
    "database is locked",
    "database table is locked",
    "deadlock detected",
    "could not serialize access",
    "lock timeout",
    "could not obtain lock",
)


def is_transient(exc: OperationalError) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


@dataclass(frozen=True)
class _Services:
    """Per-session service graph.  Everything shares one Session."""

    session: Session
    expenses: ExpenseStore
    ledger: TransactionLedger
    accounts: AccountStore
    approvals: ApprovalGate
    reconciliations: ReconciliationEngine
    replenishments: ReplenishmentWorkflow
    reporting: ReportingSelector


class PettyCashService:
    """
    Unit-of-work facade over the petty-cash services.

    Contract:
        Every public method either commits and returns a frozen DTO, or
        rolls back and raises a ``PettyCashError`` subclass.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: PettyCashConfig | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._factory = session_factory
        self._config = config or PettyCashConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: PettyCashConfig,
        clock: Clock | None = None,
        create_schema: bool = True,
    ) -> "PettyCashService":
        """Initialize the engine from ``config.database_url`` and build a service."""
        engine = init_engine_from_url(config.database_url)
        if create_schema:
            create_tables(engine)
        return cls(get_session_factory(), config=config, clock=clock)

    @property
    def config(self) -> PettyCashConfig:
        return self._config

    # =========================================================================
    # Unit of work
    # =========================================================================

    def _build(self, session: Session) -> _Services:
        expenses = ExpenseStore(session, self._clock, self._config)
        ledger = TransactionLedger(session, self._clock, self._config, expenses)
        return _Services(
            session=session,
            expenses=expenses,
            ledger=ledger,
            accounts=AccountStore(session, ledger, self._clock),
            approvals=ApprovalGate(session, ledger, self._clock, self._config),
            reconciliations=ReconciliationEngine(session, ledger, self._clock, self._config),
            replenishments=ReplenishmentWorkflow(session, ledger, self._clock, self._config),
            reporting=ReportingSelector(session),
        )

    def _run(
        self,
        operation: str,
        fn: Callable[[_Services], T],
        actor: Principal | None = None,
        account_id: UUID | None = None,
    ) -> T:
        """
        Run ``fn`` in a fresh unit of work, retrying lost races.

        Raises:
            ConcurrencyError: still conflicting after ``max_retries``.
            PersistenceError: non-transient store failure.
        """
        correlation_id = LogContext.get_all().get("correlation_id") or str(uuid4())
        attempts = self._config.max_retries + 1
        with LogContext.bind(
            correlation_id=correlation_id,
            operation=operation,
            actor_id=actor.id if actor else None,
            account_id=account_id,
        ):
            for attempt in range(1, attempts + 1):
                try:
                    with session_scope(self._factory) as session:
                        return fn(self._build(session))
                except StaleDataError as exc:
                    error: PersistenceError = OptimisticLockError("row", "unknown (stale at commit)")
                    error.__cause__ = exc
                except ConcurrencyError as exc:
                    error = exc
                except OperationalError as exc:
                    if not is_transient(exc):
                        raise PersistenceError(operation, str(exc.orig or exc)) from exc
                    error = ConcurrencyError(operation, str(exc.orig or exc))
                    error.__cause__ = exc
                except SQLAlchemyError as exc:
                    raise PersistenceError(operation, str(exc)) from exc

                if attempt == attempts:
                    logger.warning(
                        "operation_retries_exhausted",
                        extra={"attempts": attempt, "error": str(error)},
                    )
                    raise error
                delay = self._config.retry_backoff_seconds * attempt
                logger.info(
                    "operation_retry",
                    extra={"attempt": attempt, "delay": delay, "error": str(error)},
                )
                self._sleep(delay)
        raise AssertionError("unreachable")

    # =========================================================================
    # Accounts
    # =========================================================================

    def create_account(
        self,
        spec: AccountSpec,
        actor: Principal,
        owner_id: UUID | None = None,
    ) -> Account:
        return self._run(
            "create_account",
            lambda s: s.accounts.create_account(spec, actor, owner_id),
            actor=actor,
        )

    def get_account(self, account_id: UUID) -> Account:
        return self._run(
            "get_account", lambda s: s.accounts.get_account(account_id), account_id=account_id,
        )

    def list_accounts(
        self,
        owner_ids: Iterable[UUID] | None = None,
        status: AccountStatus | None = None,
        active_only: bool = False,
    ) -> list[Account]:
        owners = list(owner_ids) if owner_ids is not None else None
        return self._run(
            "list_accounts", lambda s: s.accounts.list_accounts(owners, status, active_only),
        )

    def get_account_for_principal(self, principal: Principal) -> Account | None:
        return self._run(
            "get_account_for_principal",
            lambda s: s.accounts.get_account_for_principal(principal),
            actor=principal,
        )

    def update_account(
        self,
        account_id: UUID,
        patch: dict[str, Any],
        actor: Principal,
    ) -> Account:
        return self._run(
            "update_account",
            lambda s: s.accounts.update_account(account_id, patch, actor),
            actor=actor,
            account_id=account_id,
        )

    def suspend_account(
        self, account_id: UUID, actor: Principal, reason: str | None = None,
    ) -> Account:
        return self._run(
            "suspend_account",
            lambda s: s.accounts.suspend_account(account_id, reason, actor),
            actor=actor,
            account_id=account_id,
        )

    def reactivate_account(
        self, account_id: UUID, actor: Principal, notes: str | None = None,
    ) -> Account:
        return self._run(
            "reactivate_account",
            lambda s: s.accounts.reactivate_account(account_id, notes, actor),
            actor=actor,
            account_id=account_id,
        )

    def close_account(
        self, account_id: UUID, actor: Principal, reason: str | None = None,
    ) -> Account:
        return self._run(
            "close_account",
            lambda s: s.accounts.close_account(account_id, reason, actor),
            actor=actor,
            account_id=account_id,
        )

    # =========================================================================
    # Ledger
    # =========================================================================

    def create_transaction(
        self,
        account_id: UUID,
        transaction_type: TransactionType,
        amount: Decimal,
        actor: Principal,
        **meta: Any,
    ) -> Transaction:
        """Non-expense entries.  ``meta`` keys are those of ``TransactionLedger.append_transaction``."""
        return self._run(
            "create_transaction",
            lambda s: s.ledger.create_transaction(
                account_id, transaction_type, amount, actor, **meta,
            ),
            actor=actor,
            account_id=account_id,
        )

    def record_expense(
        self,
        account_id: UUID,
        details: ExpenseDetails,
        actor: Principal,
    ) -> ExpenseResult:
        return self._run(
            "record_expense",
            lambda s: s.ledger.record_expense(account_id, details, actor),
            actor=actor,
            account_id=account_id,
        )

    def validate_expense(self, account_id: UUID, amount: Decimal) -> None:
        """Run the expense pre-checks without writing anything."""

        def check(s: _Services) -> None:
            s.ledger.validate_expense(s.accounts.get_account(account_id), amount)

        self._run("validate_expense", check, account_id=account_id)

    def get_transaction(self, transaction_id: UUID) -> Transaction:
        return self._run(
            "get_transaction", lambda s: s.ledger.get_transaction(transaction_id),
        )

    def get_transactions(self, filters: TransactionFilter | None = None) -> list[Transaction]:
        return self._run("get_transactions", lambda s: s.ledger.get_transactions(filters))

    # =========================================================================
    # Approvals
    # =========================================================================

    def get_pending_approvals(
        self,
        principal: Principal,
        owner_ids: Iterable[UUID] | None = None,
    ) -> list[Transaction]:
        owners = list(owner_ids) if owner_ids is not None else None
        return self._run(
            "get_pending_approvals",
            lambda s: s.approvals.get_pending_approvals(principal, owners),
            actor=principal,
        )

    def approve_transaction(
        self,
        transaction_id: UUID,
        approver: Principal,
        notes: str | None = None,
    ) -> Transaction:
        return self._run(
            "approve_transaction",
            lambda s: s.approvals.approve_transaction(transaction_id, approver, notes),
            actor=approver,
        )

    def reject_transaction(
        self,
        transaction_id: UUID,
        approver: Principal,
        reason: str | None = None,
    ) -> Transaction:
        return self._run(
            "reject_transaction",
            lambda s: s.approvals.reject_transaction(transaction_id, approver, reason),
            actor=approver,
        )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def create_reconciliation(
        self,
        account_id: UUID,
        period_start: date,
        period_end: date,
        actual_balance: Decimal,
        actor: Principal,
        variance_reason: str | None = None,
        notes: str | None = None,
    ) -> Reconciliation:
        return self._run(
            "create_reconciliation",
            lambda s: s.reconciliations.create_reconciliation(
                account_id,
                period_start,
                period_end,
                actual_balance,
                actor,
                variance_reason=variance_reason,
                notes=notes,
            ),
            actor=actor,
            account_id=account_id,
        )

    def get_reconciliation(self, reconciliation_id: UUID) -> Reconciliation:
        return self._run(
            "get_reconciliation",
            lambda s: s.reconciliations.get_reconciliation(reconciliation_id),
        )

    def get_reconciliations(
        self,
        account_id: UUID | None = None,
        status: ReconciliationStatus | None = None,
    ) -> list[Reconciliation]:
        return self._run(
            "get_reconciliations",
            lambda s: s.reconciliations.get_reconciliations(account_id, status),
            account_id=account_id,
        )

    # =========================================================================
    # Replenishment
    # =========================================================================

    def request_replenishment(
        self,
        account_id: UUID,
        requested_amount: Decimal,
        justification: str,
        actor: Principal,
        notes: str | None = None,
    ) -> Replenishment:
        return self._run(
            "request_replenishment",
            lambda s: s.replenishments.request_replenishment(
                account_id, requested_amount, justification, actor, notes,
            ),
            actor=actor,
            account_id=account_id,
        )

    def approve_replenishment(
        self,
        replenishment_id: UUID,
        approver: Principal,
        approved_amount: Decimal | None = None,
        notes: str | None = None,
    ) -> Replenishment:
        return self._run(
            "approve_replenishment",
            lambda s: s.replenishments.approve_replenishment(
                replenishment_id, approver, approved_amount, notes,
            ),
            actor=approver,
        )

    def reject_replenishment(
        self,
        replenishment_id: UUID,
        approver: Principal,
        reason: str | None = None,
    ) -> Replenishment:
        return self._run(
            "reject_replenishment",
            lambda s: s.replenishments.reject_replenishment(replenishment_id, approver, reason),
            actor=approver,
        )

    def disburse_replenishment(
        self,
        replenishment_id: UUID,
        details: DisbursementDetails,
        actor: Principal,
    ) -> DisbursementResult:
        return self._run(
            "disburse_replenishment",
            lambda s: s.replenishments.disburse_replenishment(replenishment_id, details, actor),
            actor=actor,
        )

    def get_replenishment(self, replenishment_id: UUID) -> Replenishment:
        return self._run(
            "get_replenishment",
            lambda s: s.replenishments.get_replenishment(replenishment_id),
        )

    def get_replenishments(
        self,
        account_id: UUID | None = None,
        status: ReplenishmentStatus | None = None,
    ) -> list[Replenishment]:
        return self._run(
            "get_replenishments",
            lambda s: s.replenishments.get_replenishments(account_id, status),
            account_id=account_id,
        )

    # =========================================================================
    # Expense categories
    # =========================================================================

    def create_category(
        self,
        name: str,
        actor: Principal,
        icon: str | None = None,
        color: str | None = None,
        owner_id: UUID | None = None,
    ) -> ExpenseCategory:
        return self._run(
            "create_category",
            lambda s: s.expenses.create_category(owner_id or actor.id, name, actor, icon, color),
            actor=actor,
        )

    def create_subcategory(
        self,
        category_id: UUID,
        name: str,
        actor: Principal,
    ) -> ExpenseSubcategory:
        return self._run(
            "create_subcategory",
            lambda s: s.expenses.create_subcategory(category_id, name, actor),
            actor=actor,
        )

    def list_categories(self, owner_id: UUID | None = None) -> list[ExpenseCategory]:
        return self._run("list_categories", lambda s: s.expenses.list_categories(owner_id))

    def list_subcategories(self, category_id: UUID) -> list[ExpenseSubcategory]:
        return self._run(
            "list_subcategories", lambda s: s.expenses.list_subcategories(category_id),
        )

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_account_summary(
        self,
        account_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> AccountSummary:
        return self._run(
            "get_account_summary",
            lambda s: s.reporting.get_account_summary(account_id, date_from, date_to),
            account_id=account_id,
        )

    def get_alerts(self, owner_ids: Iterable[UUID] | None = None) -> list[Alert]:
        owners = list(owner_ids) if owner_ids is not None else None
        return self._run("get_alerts", lambda s: s.reporting.get_alerts(owners))

    def replay_balance(self, account_id: UUID) -> Decimal:
        return self._run(
            "replay_balance",
            lambda s: s.reporting.replay_balance(account_id),
            account_id=account_id,
        )

    def verify_balance(self, account_id: UUID) -> BalanceCheck:
        return self._run(
            "verify_balance",
            lambda s: s.reporting.verify_balance(account_id),
            account_id=account_id,
        )
