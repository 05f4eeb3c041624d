"""
PeriodService -- close the books, reopen them, and gate every dated write.

Responsibility:
    Manages the per-project close state machine (open -> closed -> open) and
    answers "is this date locked?" for the journal engine and every source
    document adapter.

Architecture position:
    Kernel > Services -- imperative shell.  Called by JournalService before
    posting/reversing/deleting and by the module services before any
    create/edit of a dated document.

Invariants enforced:
    - Any transaction dated on or before period_end_date of a CLOSED period
      for the same project (or an owner-wide period, project_id NULL) is
      locked: ``assert_date_open()`` raises ClosedPeriodError.
    - Closing requires ``can_close_books`` and no in-progress bank
      reconciliation with statement_date on or before the close date.
    - Reopening requires ``can_close_books`` and a non-empty reason, stamped
      with reopened_at/reopened_by_id for audit.  Reopening does not
      re-validate already-posted history.

Failure modes:
    - ClosedPeriodError (PeriodLockedError, reason="closed").
    - PendingReconciliationError, PeriodAlreadyClosedError,
      PeriodNotClosedError, ReopenReasonRequiredError.
    - PermissionDeniedError.
    - EntityNotFoundError for an unknown period id.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.permissions import (
    Permission,
    PermissionChecker,
    StaticPermissions,
    require_permission,
)
from ledger_kernel.exceptions import (
    ClosedPeriodError,
    EntityNotFoundError,
    PendingReconciliationError,
    PeriodAlreadyClosedError,
    PeriodNotClosedError,
    ReopenReasonRequiredError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.accounting_period import AccountingPeriod, PeriodStatus
from ledger_kernel.models.bank_reconciliation import (
    BankReconciliation,
    ReconciliationStatus,
)
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")


@dataclass(frozen=True)
class PeriodCloseCheck:
    """Whether books can be closed through a date, and what blocks it."""

    can_close: bool
    blocking_reconciliation_ids: tuple[UUID, ...] = ()


def _project_scope(column, project_id: UUID | None):
    """Rows for this project plus owner-wide rows."""
    if project_id is None:
        return column.is_(None)
    return or_(column == project_id, column.is_(None))


class PeriodService(BaseService[AccountingPeriod]):
    """
    Service for the period close lifecycle and the period lock gate.

    Permissions default to deny-all; the embedding application injects its
    own checker.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        permissions: PermissionChecker | None = None,
    ):
        super().__init__(session, clock)
        self._permissions = permissions or StaticPermissions()

    # ------------------------------------------------------------------
    # Lock gate
    # ------------------------------------------------------------------

    def locking_period(
        self,
        owner_id: UUID,
        project_id: UUID | None,
        on_date: date,
    ) -> AccountingPeriod | None:
        """The latest closed period that locks ``on_date``, if any."""
        return self.session.scalars(
            select(AccountingPeriod)
            .where(
                AccountingPeriod.owner_id == owner_id,
                AccountingPeriod.status == PeriodStatus.CLOSED.value,
                AccountingPeriod.period_end_date >= on_date,
                _project_scope(AccountingPeriod.project_id, project_id),
            )
            .order_by(AccountingPeriod.period_end_date.desc())
            .limit(1)
        ).first()

    def is_date_locked(
        self, owner_id: UUID, project_id: UUID | None, on_date: date
    ) -> bool:
        return self.locking_period(owner_id, project_id, on_date) is not None

    def assert_date_open(
        self,
        owner_id: UUID,
        project_id: UUID | None,
        on_date: date,
    ) -> None:
        """Raise ClosedPeriodError if ``on_date`` is in closed books."""
        period = self.locking_period(owner_id, project_id, on_date)
        if period is None:
            return
        logger.warning(
            "period_lock_rejected",
            extra={
                "owner_id": str(owner_id),
                "project_id": str(project_id) if project_id else None,
                "on_date": on_date.isoformat(),
                "period_end_date": period.period_end_date.isoformat(),
            },
        )
        raise ClosedPeriodError(
            on_date=on_date,
            period_end_date=period.period_end_date,
            project_id=str(project_id) if project_id else None,
        )

    # ------------------------------------------------------------------
    # Close / reopen
    # ------------------------------------------------------------------

    def can_close_period(
        self,
        owner_id: UUID,
        project_id: UUID | None,
        period_end_date: date,
    ) -> PeriodCloseCheck:
        """
        Verify that no bank reconciliation covering the range is unfinished.

        Project-scoped closes are blocked by reconciliations of that project
        and by owner-wide ones; an owner-wide close is blocked by any.
        """
        stmt = select(BankReconciliation.id).where(
            BankReconciliation.owner_id == owner_id,
            BankReconciliation.status == ReconciliationStatus.IN_PROGRESS.value,
            BankReconciliation.statement_date <= period_end_date,
        )
        if project_id is not None:
            stmt = stmt.where(_project_scope(BankReconciliation.project_id, project_id))
        blocking = tuple(self.session.scalars(stmt).all())
        return PeriodCloseCheck(
            can_close=not blocking,
            blocking_reconciliation_ids=blocking,
        )

    def close_period(
        self,
        owner_id: UUID,
        project_id: UUID | None,
        period_end_date: date,
        actor_id: UUID,
        closure_notes: str | None = None,
    ) -> AccountingPeriod:
        """
        Close the books for a project through ``period_end_date``.

        Raises:
            PermissionDeniedError, PendingReconciliationError,
            PeriodAlreadyClosedError.
        """
        require_permission(
            self._permissions, owner_id, actor_id, Permission.CAN_CLOSE_BOOKS
        )

        with self.atomic():
            check = self.can_close_period(owner_id, project_id, period_end_date)
            if not check.can_close:
                raise PendingReconciliationError(
                    period_end_date,
                    [str(rid) for rid in check.blocking_reconciliation_ids],
                )

            existing = self.session.scalars(
                select(AccountingPeriod).where(
                    AccountingPeriod.owner_id == owner_id,
                    AccountingPeriod.project_id.is_(None)
                    if project_id is None
                    else AccountingPeriod.project_id == project_id,
                    AccountingPeriod.period_end_date == period_end_date,
                    AccountingPeriod.status == PeriodStatus.CLOSED.value,
                )
            ).first()
            if existing is not None:
                raise PeriodAlreadyClosedError(
                    period_end_date, str(project_id) if project_id else None
                )

            period = AccountingPeriod(
                owner_id=owner_id,
                project_id=project_id,
                period_end_date=period_end_date,
                status=PeriodStatus.CLOSED.value,
                closed_at=self._clock.now(),
                closed_by_id=actor_id,
                closure_notes=closure_notes,
                created_by_id=actor_id,
            )
            self.session.add(period)

        logger.info(
            "period_closed",
            extra={
                "period_id": str(period.id),
                "owner_id": str(owner_id),
                "project_id": str(project_id) if project_id else None,
                "period_end_date": period_end_date.isoformat(),
                "actor_id": str(actor_id),
            },
        )
        return period

    def reopen_period(
        self,
        period_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> AccountingPeriod:
        """
        Reopen closed books.  The reason is mandatory and kept for audit.

        Raises:
            PermissionDeniedError, ReopenReasonRequiredError,
            EntityNotFoundError, PeriodNotClosedError.
        """
        require_permission(
            self._permissions, owner_id, actor_id, Permission.CAN_CLOSE_BOOKS
        )
        if not reason or not reason.strip():
            raise ReopenReasonRequiredError()

        period = self.get_period(period_id, owner_id)
        if not period.is_closed:
            raise PeriodNotClosedError(str(period_id))

        with self.atomic():
            period.status = PeriodStatus.OPEN.value
            period.reopened_at = self._clock.now()
            period.reopened_by_id = actor_id
            period.reopen_reason = reason.strip()
            period.updated_by_id = actor_id

        logger.info(
            "period_reopened",
            extra={
                "period_id": str(period.id),
                "owner_id": str(owner_id),
                "period_end_date": period.period_end_date.isoformat(),
                "actor_id": str(actor_id),
                "reason": period.reopen_reason,
            },
        )
        return period

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_period(self, period_id: UUID, owner_id: UUID) -> AccountingPeriod:
        period = self.session.get(AccountingPeriod, period_id)
        if period is None or period.owner_id != owner_id:
            raise EntityNotFoundError("accounting period", str(period_id))
        return period

    def list_periods(
        self, owner_id: UUID, project_id: UUID | None = None
    ) -> list[AccountingPeriod]:
        stmt = select(AccountingPeriod).where(AccountingPeriod.owner_id == owner_id)
        if project_id is not None:
            stmt = stmt.where(AccountingPeriod.project_id == project_id)
        return list(
            self.session.scalars(
                stmt.order_by(AccountingPeriod.period_end_date.desc())
            ).all()
        )
