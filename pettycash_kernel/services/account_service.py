"""
AccountStore -- petty-cash account creation, lookup and lifecycle.

Responsibility:
    CRUD for the fund pools plus the suspend / reactivate / close
    lifecycle declared in ``domain.workflows.ACCOUNT_WORKFLOW``.

Invariants enforced:
    - The opening balance is never written straight into
      ``current_balance``: a positive opening balance is emitted as an
      approved ``allocation`` through ``TransactionLedger`` so its
      provenance is in the log.
    - Limits are positive when set; ``minimum_balance`` is non-negative;
      an account is assigned to a user or a cashier, never both.
    - Closed accounts are frozen.

Failure modes:
    - AccountNotFoundError, AccountClosedError.
    - InvalidAccountConfigError for bad limits, assignee or duplicate code.
    - InvalidTransitionError for lifecycle edges not in the workflow.
    - AmbiguousAccountError when a principal is assigned several open
      accounts.
"""

from __future__ import annotations

from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from pettycash_kernel.db.types import ZERO, to_money
from pettycash_kernel.domain.clock import Clock
from pettycash_kernel.domain.dtos import Account, AccountSpec, AccountStatus, TransactionType
from pettycash_kernel.domain.principal import Principal
from pettycash_kernel.domain.workflows import ACCOUNT_WORKFLOW
from pettycash_kernel.exceptions import (
    AccountClosedError,
    AccountNotFoundError,
    AmbiguousAccountError,
    InvalidAccountConfigError,
)
from pettycash_kernel.logging_config import get_logger
from pettycash_kernel.models.account import AccountModel
from pettycash_kernel.services.base import BaseService
from pettycash_kernel.services.ledger_service import TransactionLedger

logger = get_logger("services.account_store")

_UPDATABLE_FIELDS = frozenset({
    "name",
    "description",
    "notes",
    "daily_limit",
    "transaction_limit",
    "approval_threshold",
    "minimum_balance",
    "assigned_user_id",
    "assigned_cashier_id",
})

_MONEY_FIELDS = ("daily_limit", "transaction_limit", "approval_threshold", "minimum_balance")


def _validate_account_fields(values: dict[str, Any]) -> dict[str, Any]:
    """Coerce money fields and check limits/assignee.  Returns coerced copy."""
    cleaned = dict(values)
    for name in _MONEY_FIELDS:
        if cleaned.get(name) is not None:
            cleaned[name] = to_money(cleaned[name])

    for name in ("daily_limit", "transaction_limit", "approval_threshold"):
        value = cleaned.get(name)
        if value is not None and value <= ZERO:
            raise InvalidAccountConfigError(name, "must be greater than zero when set")
    if cleaned.get("minimum_balance") is not None and cleaned["minimum_balance"] < ZERO:
        raise InvalidAccountConfigError("minimum_balance", "cannot be negative")

    daily, per_txn = cleaned.get("daily_limit"), cleaned.get("transaction_limit")
    if daily is not None and per_txn is not None and per_txn > daily:
        raise InvalidAccountConfigError(
            "transaction_limit", f"{per_txn} exceeds daily limit {daily}",
        )
    if cleaned.get("assigned_user_id") is not None and cleaned.get("assigned_cashier_id") is not None:
        raise InvalidAccountConfigError(
            "assignee", "assign either a user or a cashier, not both",
        )
    if "name" in cleaned:
        cleaned["name"] = (cleaned["name"] or "").strip()
        if not cleaned["name"]:
            raise InvalidAccountConfigError("name", "is required")
    return cleaned


def _append_note(existing: str | None, note: str | None) -> str | None:
    if not note:
        return existing
    return f"{existing}\n{note}" if existing else note


class AccountStore(BaseService[AccountModel]):
    """
    Account CRUD and lifecycle.

    Non-goals:
        - Does NOT move money except through ``TransactionLedger``.
    """

    def __init__(
        self,
        session: Session,
        ledger: TransactionLedger,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger

    # =========================================================================
    # Create / read
    # =========================================================================

    def create_account(
        self,
        spec: AccountSpec,
        actor: Principal,
        owner_id: UUID | None = None,
    ) -> Account:
        """
        Create an account owned by ``owner_id`` (default: the actor).

        Postconditions:
            - ``current_balance == opening_balance``, backed by one
              approved allocation when the opening balance is positive.
        """
        opening = to_money(spec.opening_balance)
        if opening < ZERO:
            raise InvalidAccountConfigError("opening_balance", "cannot be negative")
        code = (spec.code or "").strip()
        if not code:
            raise InvalidAccountConfigError("code", "is required")

        values = _validate_account_fields({
            "name": spec.name,
            "daily_limit": spec.daily_limit,
            "transaction_limit": spec.transaction_limit,
            "approval_threshold": spec.approval_threshold,
            "minimum_balance": spec.minimum_balance,
            "assigned_user_id": spec.assigned_user_id,
            "assigned_cashier_id": spec.assigned_cashier_id,
        })
        owner = owner_id or actor.id

        duplicate = self.session.execute(
            select(AccountModel.id).where(
                AccountModel.owner_id == owner,
                AccountModel.code == code,
            )
        ).first()
        if duplicate is not None:
            raise InvalidAccountConfigError("code", f"'{code}' is already in use")

        account = AccountModel(
            owner_id=owner,
            name=values["name"],
            code=code,
            opening_balance=opening,
            current_balance=ZERO,
            daily_limit=values["daily_limit"],
            transaction_limit=values["transaction_limit"],
            approval_threshold=values["approval_threshold"],
            minimum_balance=values["minimum_balance"] or ZERO,
            assigned_user_id=values["assigned_user_id"],
            assigned_cashier_id=values["assigned_cashier_id"],
            status=AccountStatus.ACTIVE.value,
            is_active=True,
            description=spec.description,
            last_sequence=0,
            reconciliation_count=0,
            created_by_id=actor.id,
        )
        self.session.add(account)
        self.session.flush()

        if opening > ZERO:
            self._ledger.append_transaction(
                account,
                TransactionType.ALLOCATION,
                opening,
                actor,
                description="Opening balance",
            )

        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "code": code,
                "opening_balance": str(opening),
            },
        )
        return account.to_dto()

    def get_account(self, account_id: UUID) -> Account:
        return self._require(account_id).to_dto()

    def list_accounts(
        self,
        owner_ids: Iterable[UUID] | None = None,
        status: AccountStatus | None = None,
        active_only: bool = False,
    ) -> list[Account]:
        query = select(AccountModel).order_by(AccountModel.name, AccountModel.code)
        if owner_ids is not None:
            query = query.where(AccountModel.owner_id.in_(list(owner_ids)))
        if status is not None:
            query = query.where(AccountModel.status == AccountStatus(status).value)
        if active_only:
            query = query.where(
                AccountModel.is_active.is_(True),
                AccountModel.status == AccountStatus.ACTIVE.value,
            )
        return [a.to_dto() for a in self.session.scalars(query)]

    def get_account_for_principal(self, principal: Principal) -> Account | None:
        """
        The caller's own assigned, not-closed account.

        A cashier principal is matched on ``assigned_cashier_id``; anyone
        else on either assignee column.  Several matches is an error.
        """
        query = select(AccountModel).where(
            AccountModel.status != AccountStatus.CLOSED.value,
        )
        if principal.is_cashier:
            query = query.where(AccountModel.assigned_cashier_id == principal.cashier_id)
        else:
            query = query.where(
                or_(
                    AccountModel.assigned_user_id == principal.id,
                    AccountModel.assigned_cashier_id == principal.id,
                )
            )
        matches = list(self.session.scalars(query))
        if not matches:
            return None
        if len(matches) > 1:
            raise AmbiguousAccountError(
                str(principal.id), sorted(str(a.id) for a in matches),
            )
        return matches[0].to_dto()

    # =========================================================================
    # Update / lifecycle
    # =========================================================================

    def update_account(
        self,
        account_id: UUID,
        patch: dict[str, Any],
        actor: Principal,
    ) -> Account:
        """Apply a partial update.  Balances and status are not patchable."""
        unknown = set(patch) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidAccountConfigError(
                sorted(unknown)[0], "is not an updatable field",
            )

        account = self._require_open(account_id)
        merged = {name: getattr(account, name) for name in _UPDATABLE_FIELDS}
        merged.update(patch)
        if merged.get("minimum_balance") is None:
            merged["minimum_balance"] = ZERO
        cleaned = _validate_account_fields(merged)

        for name in patch:
            setattr(account, name, cleaned[name])
        account.updated_by_id = actor.id
        self._flush("Account", account.id)

        logger.info(
            "account_updated",
            extra={"account_id": str(account.id), "fields": sorted(patch)},
        )
        return account.to_dto()

    def suspend_account(
        self,
        account_id: UUID,
        reason: str | None,
        actor: Principal,
    ) -> Account:
        account = self._transition(account_id, "suspend", actor, reason)
        account.is_active = False
        self._flush("Account", account.id)
        return account.to_dto()

    def reactivate_account(
        self,
        account_id: UUID,
        notes: str | None,
        actor: Principal,
    ) -> Account:
        account = self._transition(account_id, "reactivate", actor, notes)
        account.is_active = True
        self._flush("Account", account.id)
        return account.to_dto()

    def close_account(
        self,
        account_id: UUID,
        reason: str | None,
        actor: Principal,
    ) -> Account:
        account = self._transition(account_id, "close", actor, reason)
        account.is_active = False
        account.closed_by_id = actor.id
        account.closed_at = self.clock.now()
        self._flush("Account", account.id)
        return account.to_dto()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _transition(
        self,
        account_id: UUID,
        action: str,
        actor: Principal,
        note: str | None,
    ) -> AccountModel:
        account = self._require_open(account_id)
        transition = ACCOUNT_WORKFLOW.require(account_id, account.status, action)
        account.status = transition.to_state
        account.notes = _append_note(account.notes, note)
        account.updated_by_id = actor.id
        logger.info(
            "account_status_changed",
            extra={
                "account_id": str(account.id),
                "action": action,
                "from_state": transition.from_state,
                "to_state": transition.to_state,
            },
        )
        return account

    def _require(self, account_id: UUID) -> AccountModel:
        account = self.session.get(AccountModel, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _require_open(self, account_id: UUID) -> AccountModel:
        account = self._load_for_update(AccountModel, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        if account.status == AccountStatus.CLOSED.value:
            raise AccountClosedError(str(account_id))
        return account

