"""
ReconciliationEngine -- expected vs physically counted cash.

Responsibility:
    Compares an account's ledger-derived balance against a cash count,
    records the variance, marks the period's transactions reconciled and
    raises at most one adjustment transaction that lands the balance on
    the counted amount.

Invariants enforced:
    - ``variance == actual_balance - expected_balance`` where the expected
      balance is the account's current balance at call time.
    - Zero variance: status ``completed``, no adjustment.
    - Non-zero variance: exactly one ``adjustment`` of ``|variance|``
      targeting ``actual_balance``.  A shortage (variance < 0) is parked
      for approval and the reconciliation stays ``pending`` until
      ``ApprovalGate`` decides it; a surplus applies at once and the
      reconciliation completes.
    - A missing variance reason is rejected before anything is written;
      the whole operation shares one unit of work.
    - Every reconciliation writes the account row (``reconciliation_count``),
      so a count against a balance another writer has since moved fails
      with ``OptimisticLockError`` instead of completing on stale figures.

Failure modes:
    - AccountNotFoundError, AccountClosedError.
    - VarianceReasonRequiredError, InvalidAmountError, ValidationError
      (period bounds).
    - OptimisticLockError: the account changed after it was read.
    - ReconciliationNotFoundError on lookup.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pettycash_kernel.config import PettyCashConfig
from pettycash_kernel.db.types import ZERO, to_money
from pettycash_kernel.domain.clock import Clock
from pettycash_kernel.domain.dtos import (
    INFLOW_TYPES,
    ApprovalStatus,
    Reconciliation,
    ReconciliationStatus,
    TransactionType,
)
from pettycash_kernel.domain.principal import Principal
from pettycash_kernel.exceptions import (
    InvalidAmountError,
    ReconciliationNotFoundError,
    ValidationError,
    VarianceReasonRequiredError,
)
from pettycash_kernel.logging_config import get_logger
from pettycash_kernel.models.reconciliation import ReconciliationModel
from pettycash_kernel.models.transaction import TransactionModel
from pettycash_kernel.services.base import BaseService
from pettycash_kernel.services.ledger_service import TransactionLedger

logger = get_logger("services.reconciliation")


class ReconciliationEngine(BaseService[ReconciliationModel]):
    """Creates and lists reconciliations."""

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

    def create_reconciliation(
        self,
        account_id: UUID,
        period_start: date,
        period_end: date,
        actual_balance: Decimal,
        actor: Principal,
        variance_reason: str | None = None,
        notes: str | None = None,
        reconciliation_date: date | None = None,
    ) -> Reconciliation:
        """
        Reconcile an account as of now against a counted balance.

        Receipts and payments are summed over the period's non-rejected
        transactions; the opening balance is the ``balance_before`` of
        the first of them, or the expected balance for an empty period.
        """
        actual = to_money(actual_balance)
        if actual < ZERO:
            raise InvalidAmountError(actual, "counted balance cannot be negative")
        if period_start > period_end:
            raise ValidationError(
                f"period_start {period_start} is after period_end {period_end}"
            )

        account = self._ledger.lock_account(account_id)
        expected = account.current_balance
        variance = actual - expected
        if (
            variance != ZERO
            and self._config.require_variance_reason
            and not (variance_reason or "").strip()
        ):
            raise VarianceReasonRequiredError(str(account.id), variance)

        period_txns = list(self.session.scalars(
            select(TransactionModel)
            .where(
                TransactionModel.account_id == account.id,
                TransactionModel.transaction_date >= period_start,
                TransactionModel.transaction_date <= period_end,
            )
            .order_by(TransactionModel.sequence)
        ))
        counted = [
            t for t in period_txns if t.approval_status != ApprovalStatus.REJECTED.value
        ]
        receipts = sum(
            (t.amount for t in counted if TransactionType(t.transaction_type) in INFLOW_TYPES),
            ZERO,
        )
        payments = sum(
            (t.amount for t in counted if t.transaction_type == TransactionType.EXPENSE.value),
            ZERO,
        )
        opening = period_txns[0].balance_before if period_txns else expected

        reconciliation = ReconciliationModel(
            id=uuid4(),
            account_id=account.id,
            reconciliation_date=reconciliation_date or self.clock.today(),
            period_start=period_start,
            period_end=period_end,
            opening_balance=opening,
            expected_balance=expected,
            actual_balance=actual,
            variance=variance,
            total_receipts=receipts,
            total_payments=payments,
            transaction_count=len(period_txns),
            status=(
                ReconciliationStatus.COMPLETED.value
                if variance == ZERO
                else ReconciliationStatus.PENDING.value
            ),
            variance_reason=variance_reason,
            notes=notes,
            reconciled_by_id=actor.id,
            created_by_id=actor.id,
        )
        self.session.add(reconciliation)
        account.reconciliation_count = account.reconciliation_count + 1
        account.last_reconciled_at = self.clock.now()
        account.updated_by_id = actor.id
        self._flush("Account", account.id)

        self.session.execute(
            update(TransactionModel)
            .where(
                TransactionModel.account_id == account.id,
                TransactionModel.transaction_date >= period_start,
                TransactionModel.transaction_date <= period_end,
                TransactionModel.reconciliation_id.is_(None),
            )
            .values(
                reconciliation_id=reconciliation.id,
                is_reconciled=True,
            )
            .execution_options(synchronize_session="fetch")
        )

        if variance != ZERO:
            shortage = variance < ZERO
            adjustment = self._ledger.append_transaction(
                account,
                TransactionType.ADJUSTMENT,
                abs(variance),
                actor,
                requires_approval=shortage,
                target_balance=actual,
                reconciliation_id=reconciliation.id,
                description=(
                    f"Reconciliation adjustment: {'shortage' if shortage else 'surplus'}"
                ),
                notes=variance_reason,
            )
            reconciliation.adjustment_transaction_id = adjustment.id
            if not shortage:
                reconciliation.status = ReconciliationStatus.COMPLETED.value
                reconciliation.approved_by_id = actor.id
                reconciliation.approved_at = self.clock.now()
            self.session.flush()

        logger.info(
            "reconciliation_created",
            extra={
                "reconciliation_id": str(reconciliation.id),
                "account_id": str(account.id),
                "expected_balance": str(expected),
                "actual_balance": str(actual),
                "variance": str(variance),
                "status": reconciliation.status,
            },
        )
        return reconciliation.to_dto()

    def get_reconciliation(self, reconciliation_id: UUID) -> Reconciliation:
        reconciliation = self.session.get(ReconciliationModel, reconciliation_id)
        if reconciliation is None:
            raise ReconciliationNotFoundError(str(reconciliation_id))
        return reconciliation.to_dto()

    def get_reconciliations(
        self,
        account_id: UUID | None = None,
        status: ReconciliationStatus | None = None,
    ) -> list[Reconciliation]:
        """Newest reconciliation date first."""
        query = select(ReconciliationModel).order_by(
            ReconciliationModel.reconciliation_date.desc(),
            ReconciliationModel.created_at.desc(),
        )
        if account_id is not None:
            query = query.where(ReconciliationModel.account_id == account_id)
        if status is not None:
            query = query.where(
                ReconciliationModel.status == ReconciliationStatus(status).value
            )
        return [r.to_dto() for r in self.session.scalars(query)]
