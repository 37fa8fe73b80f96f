"""
ReplenishmentWorkflow -- request, approve, disburse.

Responsibility:
    Drives a replenishment through ``domain.workflows.REPLENISHMENT_WORKFLOW``:

        pending --approve--> approved --disburse--> completed
        pending --reject---> rejected

    Approval records the decision and the approved amount only.
    Disbursement is the single step that creates the ``replenishment``
    ledger transaction and moves the balance.

Invariants enforced:
    - ``transaction_id`` is set once, by disbursement.
    - Replenishment rows are versioned and loaded ``FOR UPDATE`` before a
      transition, so a request cannot be disbursed twice.

Failure modes:
    - ReplenishmentNotFoundError, AccountNotFoundError, AccountClosedError.
    - InvalidTransitionError for any edge not in the workflow.
    - UnauthorizedApproverError on approve/reject.
    - InvalidAmountError / ValidationError on bad input.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pettycash_kernel.config import PettyCashConfig
from pettycash_kernel.db.types import ZERO, to_money
from pettycash_kernel.domain.clock import Clock
from pettycash_kernel.domain.dtos import (
    DisbursementDetails,
    DisbursementResult,
    Replenishment,
    ReplenishmentStatus,
    TransactionType,
)
from pettycash_kernel.domain.principal import Principal
from pettycash_kernel.domain.workflows import REPLENISHMENT_WORKFLOW
from pettycash_kernel.exceptions import (
    InvalidAmountError,
    ReplenishmentNotFoundError,
    UnauthorizedApproverError,
    ValidationError,
)
from pettycash_kernel.logging_config import get_logger
from pettycash_kernel.models.replenishment import ReplenishmentModel
from pettycash_kernel.services.base import BaseService
from pettycash_kernel.services.ledger_service import TransactionLedger

logger = get_logger("services.replenishment")


class ReplenishmentWorkflow(BaseService[ReplenishmentModel]):
    """
    Replenishment state machine.

    Non-goals:
        - Does NOT re-validate the request against the balance; the
          balance snapshot is kept for audit only.
    """

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

    def request_replenishment(
        self,
        account_id: UUID,
        requested_amount: Decimal,
        justification: str,
        actor: Principal,
        notes: str | None = None,
    ) -> Replenishment:
        amount = to_money(requested_amount)
        if amount <= ZERO:
            raise InvalidAmountError(amount, "requested amount must be greater than zero")
        if not (justification or "").strip():
            raise ValidationError("replenishment justification is required")

        account = self._ledger.lock_account(account_id)
        replenishment = ReplenishmentModel(
            account_id=account.id,
            requested_amount=amount,
            current_balance_at_request=account.current_balance,
            justification=justification.strip(),
            status=REPLENISHMENT_WORKFLOW.initial_state,
            requested_by_id=actor.id,
            request_date=self.clock.today(),
            notes=notes,
            created_by_id=actor.id,
        )
        self.session.add(replenishment)
        self.session.flush()

        logger.info(
            "replenishment_requested",
            extra={
                "replenishment_id": str(replenishment.id),
                "account_id": str(account.id),
                "requested_amount": str(amount),
                "current_balance": str(account.current_balance),
            },
        )
        return replenishment.to_dto()

    def approve_replenishment(
        self,
        replenishment_id: UUID,
        approver: Principal,
        approved_amount: Decimal | None = None,
        notes: str | None = None,
    ) -> Replenishment:
        """``pending -> approved``.  No balance effect."""
        self._require_approver(approver)
        replenishment = self._lock(replenishment_id)
        self._ledger.lock_account(replenishment.account_id)
        transition = REPLENISHMENT_WORKFLOW.require(
            replenishment_id, replenishment.status, "approve",
        )

        amount = (
            to_money(approved_amount)
            if approved_amount is not None
            else replenishment.requested_amount
        )
        if amount <= ZERO:
            raise InvalidAmountError(amount, "approved amount must be greater than zero")

        replenishment.status = transition.to_state
        replenishment.approved_amount = amount
        replenishment.approved_by_id = approver.id
        replenishment.approved_at = self.clock.now()
        replenishment.updated_by_id = approver.id
        if notes:
            replenishment.notes = (
                f"{replenishment.notes}\n{notes}" if replenishment.notes else notes
            )
        self._flush("Replenishment", replenishment.id)

        logger.info(
            "replenishment_approved",
            extra={
                "replenishment_id": str(replenishment.id),
                "approved_amount": str(amount),
            },
        )
        return replenishment.to_dto()

    def reject_replenishment(
        self,
        replenishment_id: UUID,
        approver: Principal,
        reason: str | None = None,
    ) -> Replenishment:
        """``pending -> rejected`` (terminal)."""
        self._require_approver(approver)
        replenishment = self._lock(replenishment_id)
        self._ledger.lock_account(replenishment.account_id)
        transition = REPLENISHMENT_WORKFLOW.require(
            replenishment_id, replenishment.status, "reject",
        )

        replenishment.status = transition.to_state
        replenishment.rejection_reason = reason
        replenishment.approved_by_id = approver.id
        replenishment.approved_at = self.clock.now()
        replenishment.updated_by_id = approver.id
        self._flush("Replenishment", replenishment.id)

        logger.info(
            "replenishment_rejected",
            extra={"replenishment_id": str(replenishment.id), "reason": reason},
        )
        return replenishment.to_dto()

    def disburse_replenishment(
        self,
        replenishment_id: UUID,
        details: DisbursementDetails,
        actor: Principal,
    ) -> DisbursementResult:
        """
        ``approved -> completed``.  Creates the replenishment transaction
        for the approved amount and links it.
        """
        replenishment = self._lock(replenishment_id)
        transition = REPLENISHMENT_WORKFLOW.require(
            replenishment_id, replenishment.status, "disburse",
        )
        if not (details.disbursement_method or "").strip():
            raise ValidationError("disbursement_method is required")

        amount = replenishment.approved_amount or replenishment.requested_amount
        txn = self._ledger.create_transaction(
            replenishment.account_id,
            TransactionType.REPLENISHMENT,
            amount,
            actor,
            payment_method=details.disbursement_method,
            reference_number=details.reference_number,
            description=f"Replenishment: {replenishment.justification}",
            notes=details.notes,
        )

        replenishment.status = transition.to_state
        replenishment.disbursed_by_id = actor.id
        replenishment.disbursed_at = self.clock.now()
        replenishment.disbursement_method = details.disbursement_method
        replenishment.reference_number = details.reference_number
        replenishment.transaction_id = txn.id
        replenishment.updated_by_id = actor.id
        self._flush("Replenishment", replenishment.id)

        logger.info(
            "replenishment_disbursed",
            extra={
                "replenishment_id": str(replenishment.id),
                "transaction_id": str(txn.id),
                "amount": str(amount),
                "balance_after": str(txn.balance_after),
            },
        )
        return DisbursementResult(replenishment=replenishment.to_dto(), transaction=txn)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_replenishment(self, replenishment_id: UUID) -> Replenishment:
        replenishment = self.session.get(ReplenishmentModel, replenishment_id)
        if replenishment is None:
            raise ReplenishmentNotFoundError(str(replenishment_id))
        return replenishment.to_dto()

    def get_replenishments(
        self,
        account_id: UUID | None = None,
        status: ReplenishmentStatus | None = None,
    ) -> list[Replenishment]:
        """Newest request first."""
        query = select(ReplenishmentModel).order_by(
            ReplenishmentModel.request_date.desc(),
            ReplenishmentModel.created_at.desc(),
        )
        if account_id is not None:
            query = query.where(ReplenishmentModel.account_id == account_id)
        if status is not None:
            query = query.where(
                ReplenishmentModel.status == ReplenishmentStatus(status).value
            )
        return [r.to_dto() for r in self.session.scalars(query)]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_approver(self, principal: Principal) -> None:
        if not self._config.can_approve(principal.role):
            raise UnauthorizedApproverError(str(principal.id), principal.role)

    def _lock(self, replenishment_id: UUID) -> ReplenishmentModel:
        replenishment = self._load_for_update(ReplenishmentModel, replenishment_id)
        if replenishment is None:
            raise ReplenishmentNotFoundError(str(replenishment_id))
        return replenishment
