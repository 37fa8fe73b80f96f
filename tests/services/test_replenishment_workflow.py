"""
Tests for ReplenishmentWorkflow: pending -> approved -> completed, or
pending -> rejected.  Only disbursement moves money.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from pettycash_kernel.domain.dtos import (
    AccountSpec,
    ApprovalStatus,
    DisbursementDetails,
    ExpenseDetails,
    ReplenishmentStatus,
    TransactionType,
)
from pettycash_kernel.exceptions import (
    AccountClosedError,
    InvalidAmountError,
    InvalidTransitionError,
    ReplenishmentNotFoundError,
    UnauthorizedApproverError,
    ValidationError,
)

CASH = DisbursementDetails(disbursement_method="Cash", reference_number="CHQ-0042")


@pytest.fixture
def account(account_store, ledger, owner, cashier):
    """1000 allocated, 700 spent: balance 300."""
    account = account_store.create_account(
        AccountSpec(name="Front desk float", code="PC-REP", opening_balance=Decimal("1000")),
        owner,
    )
    ledger.record_expense(account.id, ExpenseDetails(amount=Decimal("700")), cashier)
    return account


@pytest.fixture
def requested(replenishment_workflow, account, cashier):
    return replenishment_workflow.request_replenishment(
        account.id, Decimal("700"), "Restore float", cashier,
    )


class TestRequest:
    def test_request_snapshots_balance(self, requested, account, cashier, clock):
        assert requested.status is ReplenishmentStatus.PENDING
        assert requested.requested_amount == Decimal("700")
        assert requested.current_balance_at_request == Decimal("300")
        assert requested.requested_by == cashier.id
        assert requested.request_date == clock.today()
        assert requested.transaction_id is None

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    def test_non_positive_amount(self, replenishment_workflow, account, cashier, amount):
        with pytest.raises(InvalidAmountError):
            replenishment_workflow.request_replenishment(account.id, amount, "x", cashier)

    def test_justification_required(self, replenishment_workflow, account, cashier):
        with pytest.raises(ValidationError):
            replenishment_workflow.request_replenishment(
                account.id, Decimal("10"), "  ", cashier,
            )

    def test_closed_account(self, replenishment_workflow, account_store, account, owner, cashier):
        account_store.close_account(account.id, None, owner)
        with pytest.raises(AccountClosedError):
            replenishment_workflow.request_replenishment(
                account.id, Decimal("10"), "top up", cashier,
            )


class TestApproveAndDisburse:
    def test_full_cycle(
        self, replenishment_workflow, account_store, reporting, account, requested, manager, cashier,
    ):
        approved = replenishment_workflow.approve_replenishment(requested.id, manager)
        assert approved.status is ReplenishmentStatus.APPROVED
        assert approved.approved_amount == Decimal("700")
        assert approved.approved_by == manager.id
        assert account_store.get_account(account.id).current_balance == Decimal("300")

        result = replenishment_workflow.disburse_replenishment(requested.id, CASH, cashier)
        txn = result.transaction
        assert result.replenishment.status is ReplenishmentStatus.COMPLETED
        assert result.replenishment.transaction_id == txn.id
        assert result.replenishment.disbursed_by == cashier.id
        assert result.replenishment.disbursement_method == "Cash"
        assert result.replenishment.reference_number == "CHQ-0042"
        assert txn.transaction_type is TransactionType.REPLENISHMENT
        assert txn.approval_status is ApprovalStatus.APPROVED
        assert txn.amount == Decimal("700")
        assert txn.balance_before == Decimal("300")
        assert txn.balance_after == Decimal("1000")
        assert txn.payment_method == "Cash"
        assert txn.description == "Replenishment: Restore float"
        assert account_store.get_account(account.id).current_balance == Decimal("1000")
        assert reporting.verify_balance(account.id).is_consistent

    def test_approved_amount_override(
        self, replenishment_workflow, account_store, account, requested, owner, cashier,
    ):
        replenishment_workflow.approve_replenishment(
            requested.id, owner, approved_amount=Decimal("500"), notes="partial",
        )
        result = replenishment_workflow.disburse_replenishment(requested.id, CASH, cashier)

        assert result.transaction.amount == Decimal("500")
        assert result.replenishment.notes == "partial"
        assert account_store.get_account(account.id).current_balance == Decimal("800")

    def test_zero_approved_amount_rejected(self, replenishment_workflow, requested, owner):
        with pytest.raises(InvalidAmountError):
            replenishment_workflow.approve_replenishment(
                requested.id, owner, approved_amount=Decimal("0"),
            )

    def test_approver_role_required(self, replenishment_workflow, requested, staff):
        with pytest.raises(UnauthorizedApproverError):
            replenishment_workflow.approve_replenishment(requested.id, staff)

    def test_disbursement_method_required(self, replenishment_workflow, requested, owner):
        replenishment_workflow.approve_replenishment(requested.id, owner)
        with pytest.raises(ValidationError):
            replenishment_workflow.disburse_replenishment(
                requested.id, DisbursementDetails(disbursement_method=""), owner,
            )

    def test_disbursement_to_suspended_account_allowed(
        self, replenishment_workflow, account_store, account, requested, owner,
    ):
        replenishment_workflow.approve_replenishment(requested.id, owner)
        account_store.suspend_account(account.id, "count", owner)
        replenishment_workflow.disburse_replenishment(requested.id, CASH, owner)
        assert account_store.get_account(account.id).current_balance == Decimal("1000")


class TestInvalidTransitions:
    def test_disburse_pending(self, replenishment_workflow, requested, owner):
        with pytest.raises(InvalidTransitionError) as exc_info:
            replenishment_workflow.disburse_replenishment(requested.id, CASH, owner)
        assert exc_info.value.from_state == "pending"

    def test_approve_twice(self, replenishment_workflow, requested, owner):
        replenishment_workflow.approve_replenishment(requested.id, owner)
        with pytest.raises(InvalidTransitionError):
            replenishment_workflow.approve_replenishment(requested.id, owner)

    def test_disburse_twice(self, replenishment_workflow, account_store, account, requested, owner):
        replenishment_workflow.approve_replenishment(requested.id, owner)
        replenishment_workflow.disburse_replenishment(requested.id, CASH, owner)
        with pytest.raises(InvalidTransitionError):
            replenishment_workflow.disburse_replenishment(requested.id, CASH, owner)
        assert account_store.get_account(account.id).current_balance == Decimal("1000")

    def test_reject_approved(self, replenishment_workflow, requested, owner):
        replenishment_workflow.approve_replenishment(requested.id, owner)
        with pytest.raises(InvalidTransitionError):
            replenishment_workflow.reject_replenishment(requested.id, owner)


class TestReject:
    def test_reject_pending(self, replenishment_workflow, account_store, account, requested, manager):
        rejected = replenishment_workflow.reject_replenishment(
            requested.id, manager, reason="float is adequate",
        )
        assert rejected.status is ReplenishmentStatus.REJECTED
        assert rejected.rejection_reason == "float is adequate"
        assert account_store.get_account(account.id).current_balance == Decimal("300")

    def test_rejected_is_terminal(self, replenishment_workflow, requested, owner):
        replenishment_workflow.reject_replenishment(requested.id, owner)
        with pytest.raises(InvalidTransitionError):
            replenishment_workflow.approve_replenishment(requested.id, owner)

    def test_staff_cannot_reject(self, replenishment_workflow, requested, staff):
        with pytest.raises(UnauthorizedApproverError):
            replenishment_workflow.reject_replenishment(requested.id, staff)


class TestReads:
    def test_unknown(self, replenishment_workflow):
        with pytest.raises(ReplenishmentNotFoundError):
            replenishment_workflow.get_replenishment(uuid4())

    def test_list_filters(self, replenishment_workflow, account, requested, owner, cashier):
        other = replenishment_workflow.request_replenishment(
            account.id, Decimal("50"), "Coins", cashier,
        )
        replenishment_workflow.reject_replenishment(other.id, owner)

        all_ids = {r.id for r in replenishment_workflow.get_replenishments(account.id)}
        assert all_ids == {requested.id, other.id}
        pending = replenishment_workflow.get_replenishments(status=ReplenishmentStatus.PENDING)
        assert [r.id for r in pending] == [requested.id]
        assert replenishment_workflow.get_replenishment(other.id).status is ReplenishmentStatus.REJECTED
