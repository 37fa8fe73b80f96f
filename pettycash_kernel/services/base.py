"""
BaseService -- abstract base for all petty-cash write services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  All concrete services inherit
    from BaseService, receiving a SQLAlchemy ``Session`` that they use
    via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    The ``PettyCashService`` facade owns commit/rollback; everything
    below it shares the facade's session so that a transaction row and
    the balance it moves land in the same unit of work.

Failure modes:
    - A versioned row (account, transaction, replenishment) updated by
      another unit of work since it was read raises ``StaleDataError`` on
      flush; ``_flush`` turns that into ``OptimisticLockError``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pettycash_kernel.db.base import Base
from pettycash_kernel.domain.clock import Clock, SystemClock
from pettycash_kernel.exceptions import OptimisticLockError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.  The caller controls transaction
          boundaries, enabling atomic multi-step operations.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _load_for_update(self, model: type[ModelType], entity_id) -> ModelType | None:
        """
        Load a row with ``SELECT ... FOR UPDATE``, refreshing any copy
        already in the identity map.  SQLite ignores the lock clause; the
        version column still guards the write.
        """
        return self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _flush(self, entity_type: str, entity_id) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError(entity_type, str(entity_id)) from exc
