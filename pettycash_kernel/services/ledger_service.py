"""
TransactionLedger -- append-only record of petty-cash money movements.

Responsibility:
    Creates ledger transactions, owns the balance-mutation algorithm and
    the expense pre-checks (active account, balance, per-transaction and
    daily limits).  Also the read path for an account's transaction log.

Architecture position:
    Kernel > Services -- imperative shell.  ``AccountStore``,
    ``ApprovalGate``, ``ReconciliationEngine`` and
    ``ReplenishmentWorkflow`` all move money through this class.

Invariants enforced:
    - ``balance_after`` is stamped at creation per transaction type
      (``domain.balance.compute_balance_after``) and never rewritten.
    - The account balance moves only in ``apply_balance_effect``, which
      runs in the same flush as the status write that makes a
      transaction approved.  It moves by the transaction's signed delta.
    - Every balance read that leads to a write happens on an account row
      loaded ``FOR UPDATE`` exactly once per operation; every new
      transaction bumps ``last_sequence`` so the versioned account UPDATE
      is a compare-and-swap even where row locks are unavailable.
    - A born-approved entry never takes the balance below zero.

Failure modes:
    - AccountNotFoundError, AccountClosedError.
    - AccountInactiveError, InsufficientBalanceError,
      TransactionLimitExceededError, DailyLimitExceededError -- raised by
      ``validate_expense`` before anything is written.
    - InvalidAmountError: float/negative/zero amount, bad adjustment target.
    - OptimisticLockError: the account row changed under us.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pettycash_kernel.config import PettyCashConfig
from pettycash_kernel.db.types import ZERO, to_money
from pettycash_kernel.domain.balance import applies_to_balance, compute_balance_after
from pettycash_kernel.domain.clock import Clock
from pettycash_kernel.domain.dtos import (
    Account,
    AccountStatus,
    ApprovalStatus,
    ExpenseDetails,
    ExpenseResult,
    Transaction,
    TransactionFilter,
    TransactionType,
)
from pettycash_kernel.domain.principal import Principal
from pettycash_kernel.exceptions import (
    AccountClosedError,
    AccountInactiveError,
    AccountNotFoundError,
    DailyLimitExceededError,
    InsufficientBalanceError,
    InvalidAmountError,
    TransactionLimitExceededError,
    TransactionNotFoundError,
    ValidationError,
)
from pettycash_kernel.logging_config import get_logger
from pettycash_kernel.models.account import AccountModel
from pettycash_kernel.models.transaction import TransactionModel
from pettycash_kernel.services.base import BaseService
from pettycash_kernel.services.expense_store import ExpenseStore

logger = get_logger("services.ledger")


class TransactionLedger(BaseService[TransactionModel]):
    """
    Creates transactions and applies their balance effect exactly once.

    Contract:
        ``append_transaction`` persists one row against an account row the
        caller holds and, when the row is born approved, moves the balance
        in the same flush.  Pending rows leave the balance alone until
        ``ApprovalGate`` approves them.  ``create_transaction`` is the
        public entry for non-expense entries and loads the row itself.

    Non-goals:
        - Does NOT decide who may approve (ApprovalGate).
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: PettyCashConfig | None = None,
        expense_store: ExpenseStore | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or PettyCashConfig.with_defaults()
        self._expenses = expense_store or ExpenseStore(session, self.clock, self._config)

    # =========================================================================
    # Account access
    # =========================================================================

    def lock_account(self, account_id: UUID) -> AccountModel:
        """Load the account row ``FOR UPDATE``.  Raises if missing or closed."""
        account = self._load_for_update(AccountModel, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        if account.status == AccountStatus.CLOSED.value:
            raise AccountClosedError(str(account_id))
        return account

    def apply_balance_effect(
        self,
        account: AccountModel,
        txn: TransactionModel,
        actor: Principal,
    ) -> None:
        """
        Move the account balance by the transaction's signed delta.

        Callers hold the account row from ``lock_account`` and have just
        made ``txn`` approved; both writes flush together.
        """
        if not applies_to_balance(TransactionType(txn.transaction_type)):
            return
        delta = txn.balance_after - txn.balance_before
        account.current_balance = account.current_balance + delta
        account.updated_by_id = actor.id
        logger.debug(
            "balance_applied",
            extra={
                "account_id": str(account.id),
                "transaction_id": str(txn.id),
                "delta": str(delta),
                "current_balance": str(account.current_balance),
            },
        )

    # =========================================================================
    # Transactions
    # =========================================================================

    def create_transaction(
        self,
        account_id: UUID,
        transaction_type: TransactionType,
        amount: Decimal,
        actor: Principal,
        **fields,
    ) -> Transaction:
        """
        Lock the account and append one non-expense transaction to it.

        Expenses go through ``record_expense`` so the status, balance and
        limit checks run against the same row the debit is written to.
        ``fields`` are the keyword arguments of ``append_transaction``.
        """
        transaction_type = TransactionType(transaction_type)
        if transaction_type is TransactionType.EXPENSE:
            raise ValidationError("expenses are recorded through record_expense")
        account = self.lock_account(account_id)
        return self.append_transaction(account, transaction_type, amount, actor, **fields)

    def append_transaction(
        self,
        account: AccountModel,
        transaction_type: TransactionType,
        amount: Decimal,
        actor: Principal,
        *,
        requires_approval: bool = False,
        balance_before: Decimal | None = None,
        target_balance: Decimal | None = None,
        expense_id: UUID | None = None,
        category_id: UUID | None = None,
        subcategory_id: UUID | None = None,
        reconciliation_id: UUID | None = None,
        payment_method: str | None = None,
        tax_rate: Decimal = ZERO,
        tax_amount: Decimal = ZERO,
        transaction_date: date | None = None,
        description: str | None = None,
        notes: str | None = None,
        reference_number: str | None = None,
        receipt_image_url: str | None = None,
    ) -> Transaction:
        """
        Append one transaction to an account row the caller already holds.

        Every read that decides the write (balance, sequence) comes from
        ``account`` as loaded by ``lock_account``; nothing here reloads it,
        so a concurrent commit surfaces as ``OptimisticLockError`` on flush.

        Preconditions:
            - ``amount`` is a non-negative Decimal (int/str accepted);
              strictly positive for every type but reconciliation.
            - ``balance_before`` may only be overridden for a
              reconciliation-linked entry.
            - Adjustments carry ``target_balance``; their amount must be
              the distance from ``balance_before`` to it.

        Postconditions:
            - Row persisted with the next per-account ``sequence``.
            - If born approved, ``account.current_balance`` moved by
              ``balance_after - balance_before`` in the same flush, and
              never below zero.
        """
        transaction_type = TransactionType(transaction_type)
        amount = to_money(amount)
        if amount < ZERO:
            raise InvalidAmountError(amount, "cannot be negative")
        if amount == ZERO and transaction_type is not TransactionType.RECONCILIATION:
            raise InvalidAmountError(amount, "must be greater than zero")
        if balance_before is not None and reconciliation_id is None:
            raise InvalidAmountError(
                balance_before,
                "balance_before may only be overridden for reconciliation entries",
            )
        if target_balance is not None:
            target_balance = to_money(target_balance)
            if target_balance < ZERO:
                raise InvalidAmountError(target_balance, "target balance cannot be negative")

        before = to_money(balance_before) if balance_before is not None else account.current_balance
        after = compute_balance_after(transaction_type, before, amount, target_balance)
        status = ApprovalStatus.PENDING if requires_approval else ApprovalStatus.APPROVED

        if status is ApprovalStatus.APPROVED and applies_to_balance(transaction_type):
            delta = after - before
            if account.current_balance + delta < ZERO:
                raise InsufficientBalanceError(str(account.id), account.current_balance, -delta)

        now = self.clock.now()
        account.last_sequence = account.last_sequence + 1

        txn = TransactionModel(
            id=uuid4(),
            account_id=account.id,
            sequence=account.last_sequence,
            transaction_type=transaction_type.value,
            transaction_date=transaction_date or now.date(),
            transaction_time=now.time(),
            amount=amount,
            balance_before=before,
            balance_after=after,
            expense_id=expense_id,
            category_id=category_id,
            subcategory_id=subcategory_id,
            payment_method=payment_method or self._config.default_payment_method,
            tax_rate=to_money(tax_rate),
            tax_amount=to_money(tax_amount),
            requires_approval=requires_approval,
            approval_status=status.value,
            reconciliation_id=reconciliation_id,
            recorded_by_id=actor.id,
            description=description,
            notes=notes,
            reference_number=reference_number,
            receipt_image_url=receipt_image_url,
            created_by_id=actor.id,
        )
        self.session.add(txn)

        if status is ApprovalStatus.APPROVED:
            txn.approved_at = now
            self.apply_balance_effect(account, txn, actor)
        self._flush("Account", account.id)

        logger.info(
            "transaction_created",
            extra={
                "transaction_id": str(txn.id),
                "account_id": str(account.id),
                "transaction_type": transaction_type.value,
                "amount": str(amount),
                "sequence": txn.sequence,
                "approval_status": status.value,
            },
        )
        return txn.to_dto()

    def validate_expense(self, account: Account | AccountModel, amount: Decimal) -> None:
        """
        Fail-closed expense pre-checks, in order: active, balance,
        per-transaction limit, daily limit.
        """
        amount = to_money(amount)
        account_id = str(account.id)
        status = AccountStatus(account.status)
        if status is AccountStatus.CLOSED:
            raise AccountClosedError(account_id)
        if not account.is_active or status is not AccountStatus.ACTIVE:
            raise AccountInactiveError(account_id, status.value)
        if amount > account.current_balance:
            raise InsufficientBalanceError(account_id, account.current_balance, amount)
        if account.transaction_limit is not None and amount > account.transaction_limit:
            raise TransactionLimitExceededError(account_id, account.transaction_limit, amount)
        if account.daily_limit is not None:
            spent_today = self.approved_expense_total(account.id, self.clock.today())
            if spent_today + amount > account.daily_limit:
                raise DailyLimitExceededError(
                    account_id, account.daily_limit, spent_today, amount,
                )

    def approved_expense_total(self, account_id: UUID, on_date: date) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(TransactionModel.amount), 0)).where(
                TransactionModel.account_id == account_id,
                TransactionModel.transaction_type == TransactionType.EXPENSE.value,
                TransactionModel.approval_status == ApprovalStatus.APPROVED.value,
                TransactionModel.transaction_date == on_date,
            )
        ).scalar_one()
        return total if isinstance(total, Decimal) else Decimal(str(total))

    def record_expense(
        self,
        account_id: UUID,
        details: ExpenseDetails,
        actor: Principal,
    ) -> ExpenseResult:
        """
        Validate, write the expense row, then the expense transaction.

        The transaction is parked as pending when the amount exceeds the
        account's approval threshold; otherwise the balance drops now.
        """
        amount = to_money(details.amount)
        if amount <= ZERO:
            raise InvalidAmountError(amount, "expense amount must be greater than zero")

        account = self.lock_account(account_id)
        self.validate_expense(account, amount)

        requires_approval = (
            account.approval_threshold is not None and amount > account.approval_threshold
        )
        expense = self._expenses.create_expense(account.owner_id, details, actor)
        txn = self.append_transaction(
            account,
            TransactionType.EXPENSE,
            amount,
            actor,
            requires_approval=requires_approval,
            expense_id=expense.id,
            category_id=details.category_id,
            subcategory_id=details.subcategory_id,
            tax_rate=details.tax_rate,
            tax_amount=details.tax_amount,
            transaction_date=details.expense_date,
            description=details.description,
            reference_number=details.reference_number,
            receipt_image_url=details.receipt_image_url,
        )
        logger.info(
            "expense_recorded",
            extra={
                "account_id": str(account.id),
                "expense_id": str(expense.id),
                "transaction_id": str(txn.id),
                "amount": str(amount),
                "requires_approval": requires_approval,
            },
        )
        return ExpenseResult(
            expense=expense,
            transaction=txn,
            requires_approval=requires_approval,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_transaction(self, transaction_id: UUID) -> Transaction:
        txn = self.session.get(TransactionModel, transaction_id)
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id))
        return txn.to_dto()

    def get_transactions(self, filters: TransactionFilter | None = None) -> list[Transaction]:
        """Transactions matching ``filters``, newest first."""
        filters = filters or TransactionFilter()
        query = select(TransactionModel)
        if filters.account_id is not None:
            query = query.where(TransactionModel.account_id == filters.account_id)
        if filters.transaction_type is not None:
            query = query.where(
                TransactionModel.transaction_type == TransactionType(filters.transaction_type).value
            )
        if filters.date_from is not None:
            query = query.where(TransactionModel.transaction_date >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(TransactionModel.transaction_date <= filters.date_to)
        if filters.approval_status is not None:
            query = query.where(
                TransactionModel.approval_status == ApprovalStatus(filters.approval_status).value
            )
        query = query.order_by(
            TransactionModel.transaction_date.desc(),
            TransactionModel.transaction_time.desc(),
            TransactionModel.sequence.desc(),
        )
        if filters.limit is not None:
            query = query.limit(filters.limit)
        return [t.to_dto() for t in self.session.scalars(query)]
