"""
Principal -- the caller of every ledger operation.

The kernel never looks up a "current user" from ambient session state.
Every public operation receives the acting Principal explicitly; the
identity/auth collaborator is responsible for producing it.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class Principal:
    """
    An authenticated actor.

    ``id`` is the user id.  ``cashier_id`` is set when the actor signed in
    as a cashier identity; account resolution then looks at the cashier
    assignment instead of the user assignment.
    """

    id: UUID
    role: str
    cashier_id: UUID | None = None

    @property
    def is_cashier(self) -> bool:
        return self.cashier_id is not None

