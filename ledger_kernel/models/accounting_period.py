"""
Module: ledger_kernel.models.accounting_period
Responsibility: ORM persistence for period closes ("close the books").
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - While a period is CLOSED, every transaction dated on or before
      period_end_date for its project is locked (checked by PeriodService
      before any create/edit/delete).  A period with project_id NULL locks
      every project of the owner.
    - Reopening requires a non-empty reason and is stamped for audit; the
      row is never deleted.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class PeriodStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class AccountingPeriod(TrackedBase):
    """One close of the books through period_end_date."""

    __tablename__ = "accounting_periods"

    __table_args__ = (
        Index("idx_period_owner_project", "owner_id", "project_id", "period_end_date"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    period_end_date: Mapped[date] = mapped_column(nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(10), default=PeriodStatus.CLOSED.value, nullable=False
    )

    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    closure_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    reopened_at: Mapped[datetime | None] = mapped_column(nullable=True)

    reopened_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reopen_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<AccountingPeriod through {self.period_end_date} ({self.status})>"

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    def locks(self, on_date: date) -> bool:
        return self.is_closed and on_date <= self.period_end_date
