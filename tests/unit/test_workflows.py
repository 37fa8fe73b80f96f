"""Tests for the declarative account and replenishment workflows."""

import pytest

from pettycash_kernel.domain.workflows import ACCOUNT_WORKFLOW, REPLENISHMENT_WORKFLOW
from pettycash_kernel.exceptions import InvalidTransitionError


class TestReplenishmentWorkflow:
    def test_happy_path(self):
        approve = REPLENISHMENT_WORKFLOW.require("r1", "pending", "approve")
        assert approve.to_state == "approved"
        assert not approve.applies_balance

        disburse = REPLENISHMENT_WORKFLOW.require("r1", "approved", "disburse")
        assert disburse.to_state == "completed"
        assert disburse.applies_balance

    def test_reject_from_pending(self):
        assert REPLENISHMENT_WORKFLOW.require("r1", "pending", "reject").to_state == "rejected"

    @pytest.mark.parametrize(
        "state,action",
        [
            ("pending", "disburse"),
            ("approved", "approve"),
            ("approved", "reject"),
            ("completed", "disburse"),
            ("rejected", "approve"),
        ],
    )
    def test_illegal_edges(self, state, action):
        with pytest.raises(InvalidTransitionError) as exc_info:
            REPLENISHMENT_WORKFLOW.require("r1", state, action)
        err = exc_info.value
        assert err.from_state == state
        assert err.action == action
        assert err.workflow == "petty_cash_replenishment"

    def test_terminal_states(self):
        assert REPLENISHMENT_WORKFLOW.terminal_states == frozenset({"completed", "rejected"})

    def test_only_disburse_moves_money(self):
        movers = [t.action for t in REPLENISHMENT_WORKFLOW.transitions if t.applies_balance]
        assert movers == ["disburse"]


class TestAccountWorkflow:
    def test_suspend_and_reactivate(self):
        assert ACCOUNT_WORKFLOW.require("a", "active", "suspend").to_state == "suspended"
        assert ACCOUNT_WORKFLOW.require("a", "suspended", "reactivate").to_state == "active"

    @pytest.mark.parametrize("state", ["active", "suspended"])
    def test_close_from_open_states(self, state):
        assert ACCOUNT_WORKFLOW.require("a", state, "close").to_state == "closed"

    def test_closed_is_terminal(self):
        assert ACCOUNT_WORKFLOW.terminal_states == frozenset({"closed"})

    def test_cannot_suspend_twice(self):
        with pytest.raises(InvalidTransitionError):
            ACCOUNT_WORKFLOW.require("a", "suspended", "suspend")
