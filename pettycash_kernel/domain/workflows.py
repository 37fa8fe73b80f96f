"""
Declarative state machines for petty-cash entities.

The services execute transitions; this module only declares the graphs.
A transition not listed here is illegal and the services raise
``InvalidTransitionError`` for it.
"""

from dataclasses import dataclass

from pettycash_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Transition:
    """
    A valid state transition in a workflow.

    When ``applies_balance`` is True the transition creates a ledger
    transaction that moves the account balance.
    """

    from_state: str
    to_state: str
    action: str
    applies_balance: bool = False


@dataclass(frozen=True)
class Workflow:
    """
    A state machine definition.

    ``initial_state`` is an element of ``states``; terminal states have no
    outgoing transitions.
    """

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]

    def transition_for(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def require(self, entity_id: object, from_state: str, action: str) -> Transition:
        """Return the transition or raise ``InvalidTransitionError``."""
        transition = self.transition_for(from_state, action)
        if transition is None:
            raise InvalidTransitionError(self.name, str(entity_id), from_state, action)
        return transition

    @property
    def terminal_states(self) -> frozenset[str]:
        sources = {t.from_state for t in self.transitions}
        return frozenset(s for s in self.states if s not in sources)


# -----------------------------------------------------------------------------
# Account lifecycle
# -----------------------------------------------------------------------------

ACCOUNT_WORKFLOW = Workflow(
    name="petty_cash_account",
    description="Petty-cash account lifecycle",
    initial_state="active",
    states=("active", "suspended", "closed"),
    transitions=(
        Transition(from_state="active", to_state="suspended", action="suspend"),
        Transition(from_state="suspended", to_state="active", action="reactivate"),
        Transition(from_state="active", to_state="closed", action="close"),
        Transition(from_state="suspended", to_state="closed", action="close"),
    ),
)


# -----------------------------------------------------------------------------
# Replenishment: request -> approve -> disburse
# -----------------------------------------------------------------------------

REPLENISHMENT_WORKFLOW = Workflow(
    name="petty_cash_replenishment",
    description="Replenishment request, approval and disbursement",
    initial_state="pending",
    states=("pending", "approved", "completed", "rejected"),
    transitions=(
        Transition(from_state="pending", to_state="approved", action="approve"),
        Transition(from_state="pending", to_state="rejected", action="reject"),
        Transition(
            from_state="approved",
            to_state="completed",
            action="disburse",
            applies_balance=True,
        ),
    ),
)
