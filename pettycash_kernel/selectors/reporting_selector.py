"""
Module: pettycash_kernel.selectors.reporting_selector
Responsibility: Read-only petty-cash reporting -- account summaries
    (totals per type, pending approvals, category breakdown, daily trend),
    alerts, and balance replay over the transaction log.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Totals count approved transactions only; pending approvals are
      reported as a separate count.
    - ``replay_balance`` is ``domain.balance.replay_balance`` over the
      account's full log.  ``verify_balance`` compares it with the cached
      ``current_balance``.

Failure modes:
    - AccountNotFoundError for an unknown account id.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import exists, select

from pettycash_kernel.domain.balance import replay_balance
from pettycash_kernel.domain.dtos import (
    AccountStatus,
    AccountSummary,
    Alert,
    AlertType,
    ApprovalStatus,
    BalanceCheck,
    CategoryTotal,
    DailyTrend,
    TransactionType,
)
from pettycash_kernel.exceptions import AccountNotFoundError
from pettycash_kernel.models.account import AccountModel
from pettycash_kernel.models.expense import ExpenseCategoryModel
from pettycash_kernel.models.reconciliation import ReconciliationModel
from pettycash_kernel.models.transaction import TransactionModel
from pettycash_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")
UNCATEGORIZED = "Uncategorized"


class ReportingSelector(BaseSelector[TransactionModel]):
    """Aggregations and alerts over the petty-cash ledger."""

    def get_account_summary(
        self,
        account_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> AccountSummary:
        account = self._require_account(account_id)

        query = select(TransactionModel).where(TransactionModel.account_id == account_id)
        if date_from is not None:
            query = query.where(TransactionModel.transaction_date >= date_from)
        if date_to is not None:
            query = query.where(TransactionModel.transaction_date <= date_to)
        txns = [t.to_dto() for t in self.session.scalars(query.order_by(TransactionModel.sequence))]

        approved = [t for t in txns if t.approval_status is ApprovalStatus.APPROVED]
        pending = sum(
            1 for t in txns
            if t.requires_approval and t.approval_status is ApprovalStatus.PENDING
        )

        def total(kind: TransactionType) -> Decimal:
            return sum((t.amount for t in approved if t.transaction_type is kind), ZERO)

        net_adjustments = sum(
            (t.delta for t in approved if t.transaction_type is TransactionType.ADJUSTMENT),
            ZERO,
        )

        return AccountSummary(
            account=account.to_dto(),
            date_from=date_from,
            date_to=date_to,
            transaction_count=len(txns),
            total_allocated=total(TransactionType.ALLOCATION),
            total_expenses=total(TransactionType.EXPENSE),
            total_replenished=total(TransactionType.REPLENISHMENT),
            net_adjustments=net_adjustments,
            pending_approvals=pending,
            category_breakdown=self._category_breakdown(approved),
            daily_trend=self._daily_trend(approved),
        )

    def get_alerts(self, owner_ids: Iterable[UUID] | None = None) -> list[Alert]:
        """
        ``low_balance`` (warning) when the balance is under the minimum;
        ``no_reconciliation`` (info) when the account was never reconciled.
        Only active accounts are considered.
        """
        reconciled = exists().where(ReconciliationModel.account_id == AccountModel.id)
        query = (
            select(AccountModel, reconciled)
            .where(
                AccountModel.status == AccountStatus.ACTIVE.value,
                AccountModel.is_active.is_(True),
            )
            .order_by(AccountModel.name, AccountModel.code)
        )
        if owner_ids is not None:
            query = query.where(AccountModel.owner_id.in_(list(owner_ids)))

        alerts: list[Alert] = []
        for account, has_reconciliation in self.session.execute(query):
            if account.current_balance < account.minimum_balance:
                alerts.append(Alert(
                    alert_type=AlertType.LOW_BALANCE,
                    severity="warning",
                    account_id=account.id,
                    account_name=account.name,
                    message=(
                        f"{account.name} balance {account.current_balance:.2f} is below "
                        f"minimum {account.minimum_balance:.2f}"
                    ),
                    current_balance=account.current_balance,
                    minimum_balance=account.minimum_balance,
                ))
            if not has_reconciliation:
                alerts.append(Alert(
                    alert_type=AlertType.NO_RECONCILIATION,
                    severity="info",
                    account_id=account.id,
                    account_name=account.name,
                    message=f"{account.name} has never been reconciled",
                    current_balance=account.current_balance,
                ))
        return alerts

    def replay_balance(self, account_id: UUID) -> Decimal:
        self._require_account(account_id)
        txns = self.session.scalars(
            select(TransactionModel)
            .where(TransactionModel.account_id == account_id)
            .order_by(TransactionModel.sequence)
        )
        return replay_balance(t.to_dto() for t in txns)

    def verify_balance(self, account_id: UUID) -> BalanceCheck:
        account = self._require_account(account_id)
        return BalanceCheck(
            account_id=account.id,
            recorded_balance=account.current_balance,
            replayed_balance=self.replay_balance(account_id),
        )

    # -------------------------------------------------------------------------

    def _require_account(self, account_id: UUID) -> AccountModel:
        account = self.session.get(AccountModel, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _category_breakdown(self, approved) -> tuple[CategoryTotal, ...]:
        expenses = [t for t in approved if t.transaction_type is TransactionType.EXPENSE]
        if not expenses:
            return ()

        category_ids = {t.category_id for t in expenses if t.category_id is not None}
        categories = {}
        if category_ids:
            categories = {
                c.id: c
                for c in self.session.scalars(
                    select(ExpenseCategoryModel).where(
                        ExpenseCategoryModel.id.in_(category_ids)
                    )
                )
            }

        counts: dict[UUID | None, int] = defaultdict(int)
        totals: dict[UUID | None, Decimal] = defaultdict(lambda: ZERO)
        for t in expenses:
            counts[t.category_id] += 1
            totals[t.category_id] += t.amount

        rows = []
        for category_id, amount in totals.items():
            category = categories.get(category_id)
            rows.append(CategoryTotal(
                name=category.name if category else UNCATEGORIZED,
                count=counts[category_id],
                total=amount,
                icon=category.icon if category else None,
                color=category.color if category else None,
            ))
        rows.sort(key=lambda r: (-r.total, r.name))
        return tuple(rows)

    def _daily_trend(self, approved) -> tuple[DailyTrend, ...]:
        by_day: dict[date, dict[str, Decimal]] = defaultdict(
            lambda: {"allocations": ZERO, "expenses": ZERO, "replenishments": ZERO}
        )
        buckets = {
            TransactionType.ALLOCATION: "allocations",
            TransactionType.EXPENSE: "expenses",
            TransactionType.REPLENISHMENT: "replenishments",
        }
        for t in approved:
            bucket = buckets.get(t.transaction_type)
            if bucket is not None:
                by_day[t.transaction_date][bucket] += t.amount
        return tuple(
            DailyTrend(date=day, **by_day[day]) for day in sorted(by_day)
        )
