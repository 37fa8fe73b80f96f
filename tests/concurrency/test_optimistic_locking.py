"""
Concurrency tests for the account balance.

Two units of work that read the same account and both write it cannot
both commit: the versioned account row turns the second write into an
``OptimisticLockError`` and the facade retries it against fresh data.

Run with: pytest tests/concurrency/test_optimistic_locking.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier

import pytest

from pettycash_kernel.config import PettyCashConfig
from pettycash_kernel.domain.dtos import ApprovalStatus, ExpenseDetails, TransactionType
from pettycash_kernel.exceptions import InsufficientBalanceError, OptimisticLockError
from pettycash_kernel.models.account import AccountModel
from pettycash_kernel.models.transaction import TransactionModel
from pettycash_kernel.services.facade import PettyCashService
from pettycash_kernel.services.ledger_service import TransactionLedger
from pettycash_kernel.services.reconciliation_service import ReconciliationEngine

pytestmark = pytest.mark.slow_locks


@pytest.fixture
def contended_service(session_factory, clock) -> PettyCashService:
    config = PettyCashConfig(max_retries=50, retry_backoff_seconds=0.01)
    return PettyCashService(session_factory, config=config, clock=clock)


class TestStaleWrites:
    def test_stale_account_write_rejected(self, service, make_account, session_factory, clock, cashier):
        account = make_account(opening="500")

        stale_session = session_factory()
        try:
            stale = stale_session.get(AccountModel, account.id)
            stale_version = stale.version

            service.record_expense(account.id, ExpenseDetails(amount=Decimal("100")), cashier)

            stale.current_balance = stale.current_balance - Decimal("50")
            ledger = TransactionLedger(stale_session, clock)
            with pytest.raises(OptimisticLockError) as exc_info:
                ledger._flush("Account", stale.id)
            assert exc_info.value.entity_type == "Account"
        finally:
            stale_session.rollback()
            stale_session.close()

        fresh = service.get_account(account.id)
        assert fresh.current_balance == Decimal("400")
        assert fresh.version > stale_version

    def test_stale_approval_rejected(self, service, make_account, session_factory, owner, manager, cashier):
        account = make_account(opening="500", approval_threshold=Decimal("100"))
        parked = service.record_expense(
            account.id, ExpenseDetails(amount=Decimal("200")), cashier,
        ).transaction

        stale_session = session_factory()
        try:
            stale = stale_session.get(TransactionModel, parked.id)
            service.approve_transaction(parked.id, owner)

            stale.approval_status = ApprovalStatus.REJECTED.value
            stale.approved_by_id = manager.id
            with pytest.raises(OptimisticLockError):
                TransactionLedger(stale_session)._flush("Transaction", stale.id)
        finally:
            stale_session.rollback()
            stale_session.close()

        assert service.get_transaction(parked.id).approval_status is ApprovalStatus.APPROVED
        assert service.get_account(account.id).current_balance == Decimal("300")

    def test_append_to_stale_row_rejected(self, service, make_account, session_factory, clock, cashier):
        account = make_account(opening="500")

        stale_session = session_factory()
        try:
            ledger = TransactionLedger(stale_session, clock)
            stale = stale_session.get(AccountModel, account.id)
            ledger.validate_expense(stale, Decimal("300"))

            service.record_expense(account.id, ExpenseDetails(amount=Decimal("400")), cashier)

            with pytest.raises(OptimisticLockError):
                ledger.append_transaction(stale, TransactionType.EXPENSE, Decimal("300"), cashier)
        finally:
            stale_session.rollback()
            stale_session.close()

        assert service.get_account(account.id).current_balance == Decimal("100")
        assert service.verify_balance(account.id).is_consistent


def _commit_after_lock(ledger, monkeypatch, competitor):
    """Run ``competitor`` in its own unit of work right after ``lock_account`` reads."""
    lock_account = ledger.lock_account

    def lock_then_compete(account_id):
        account = lock_account(account_id)
        competitor()
        return account

    monkeypatch.setattr(ledger, "lock_account", lock_then_compete)


class TestWriteAfterCompetingCommit:
    """A commit lands between a unit of work's account read and its write."""

    @pytest.fixture(autouse=True)
    def _sqlite_only(self, engine):
        if engine.dialect.name != "sqlite":
            pytest.skip("row locks make the competing writer wait instead")

    def test_expense_not_applied_to_moved_balance(
        self, service, make_account, session_factory, clock, config, cashier, monkeypatch,
    ):
        account = make_account(opening="500")

        stale_session = session_factory()
        try:
            ledger = TransactionLedger(stale_session, clock, config)
            _commit_after_lock(ledger, monkeypatch, lambda: service.record_expense(
                account.id, ExpenseDetails(amount=Decimal("400")), cashier,
            ))
            with pytest.raises(OptimisticLockError):
                ledger.record_expense(account.id, ExpenseDetails(amount=Decimal("300")), cashier)
        finally:
            stale_session.rollback()
            stale_session.close()

        final = service.get_account(account.id)
        assert final.current_balance == Decimal("100")
        assert service.verify_balance(account.id).is_consistent

    def test_zero_variance_reconciliation_on_moved_balance_rejected(
        self, service, make_account, session_factory, clock, config, owner, cashier, monkeypatch,
    ):
        account = make_account(opening="500")

        stale_session = session_factory()
        try:
            ledger = TransactionLedger(stale_session, clock, config)
            reconciler = ReconciliationEngine(stale_session, ledger, clock, config)
            _commit_after_lock(ledger, monkeypatch, lambda: service.record_expense(
                account.id, ExpenseDetails(amount=Decimal("100")), cashier,
            ))
            # Counted 500 against the balance read before the expense landed.
            with pytest.raises(OptimisticLockError):
                reconciler.create_reconciliation(
                    account.id, date(2024, 1, 1), date(2024, 1, 1), Decimal("500"), owner,
                )
        finally:
            stale_session.rollback()
            stale_session.close()

        assert service.get_reconciliations(account_id=account.id) == []
        assert service.get_account(account.id).current_balance == Decimal("400")


class TestThreadedContention:
    def test_parallel_expenses_never_overdraw(self, contended_service, make_account, cashier):
        account = make_account(opening="500")
        workers = 10
        barrier = Barrier(workers)

        def spend():
            barrier.wait()
            try:
                contended_service.record_expense(
                    account.id, ExpenseDetails(amount=Decimal("100")), cashier,
                )
                return "ok"
            except InsufficientBalanceError:
                return "insufficient"

        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(lambda _: spend(), range(workers)))

        successes = outcomes.count("ok")
        assert successes == 5
        assert outcomes.count("insufficient") == 5

        final = contended_service.get_account(account.id)
        assert final.current_balance == Decimal("0")
        assert contended_service.verify_balance(account.id).is_consistent

    def test_parallel_approvals_apply_once(
        self, contended_service, make_account, owner, manager, cashier,
    ):
        account = make_account(opening="1000", approval_threshold=Decimal("100"))
        parked = contended_service.record_expense(
            account.id, ExpenseDetails(amount=Decimal("400")), cashier,
        ).transaction
        approvers = [owner, manager] * 4
        barrier = Barrier(len(approvers))

        def approve(principal):
            barrier.wait()
            return contended_service.approve_transaction(parked.id, principal)

        with ThreadPoolExecutor(max_workers=len(approvers)) as pool:
            results = list(pool.map(approve, approvers))

        assert all(r.approval_status is ApprovalStatus.APPROVED for r in results)
        assert len({r.approved_by for r in results}) == 1
        assert contended_service.get_account(account.id).current_balance == Decimal("600")
        assert contended_service.verify_balance(account.id).is_consistent
