"""
BaseService -- abstract base for all ledger services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    service in the kernel, module and cross-module layers.  Services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit.  The caller (``session_scope()`` or a test fixture)
      owns commit/rollback.
    - Operation atomicity: a multi-step operation runs inside
      ``self.atomic()`` (a SAVEPOINT), so a failure midway leaves none of its
      writes behind even if the caller keeps the outer transaction open.
    - Stale version columns surface as ConcurrencyConflictError.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Generator, Generic, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import ConcurrencyConflictError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for ledger services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only projections -- those belong in
          ``ledger_kernel/selectors/`` or the pure engines.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def flush(self) -> None:
        """Flush pending changes, translating stale versions."""
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise ConcurrencyConflictError(str(exc)) from exc

    @contextmanager
    def atomic(self) -> Generator[Session, None, None]:
        """
        Run a block in a SAVEPOINT.

        Commits the savepoint (not the transaction) on success; rolls it
        back on any exception and re-raises.
        """
        with self.session.begin_nested():
            yield self.session
            self.flush()
