"""
Manual journal entries (``ledger_modules.journal.service``).

Responsibility:
    Bookkeeper-entered entries: validate the form lines, route job-cost
    lines to WIP, post through the journal engine, and delete through the
    owner-checked escape hatch.

Architecture position:
    Modules layer -- source document adapter over ``JournalService``.

Failure modes:
    - ValidationError for fewer than two lines, two-sided or empty lines,
      or missing project/cost code/account.
    - UnbalancedEntryError, UnknownAccountError, ClosedPeriodError from the
      journal engine.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerAccounts
from ledger_kernel.db.types import ZERO, to_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import EntryMeta, LineInput
from ledger_kernel.domain.permissions import PermissionChecker
from ledger_kernel.exceptions import ValidationError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import JournalEntry, SourceType
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService
from ledger_modules.ap.models import LineType

logger = get_logger("modules.journal.service")


@dataclass(frozen=True)
class ManualLineInput:
    """
    One line of a manual entry.

    ``line_type`` ``job_cost`` posts to the WIP account and needs a project
    and cost code; ``expense`` (any account) needs ``account_id``.
    """

    debit: Decimal = ZERO
    credit: Decimal = ZERO
    line_type: LineType = LineType.EXPENSE
    account_id: UUID | None = None
    project_id: UUID | None = None
    cost_code_id: UUID | None = None
    lot_id: UUID | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit", to_money(self.debit))
        object.__setattr__(self, "credit", to_money(self.credit))
        object.__setattr__(self, "line_type", LineType(self.line_type))


class ManualJournalService(BaseService[JournalEntry]):
    """Create and delete manual journal entries."""

    def __init__(
        self,
        session: Session,
        accounts: LedgerAccounts,
        clock: Clock | None = None,
        permissions: PermissionChecker | None = None,
        journal: JournalService | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = accounts
        self._journal = journal or JournalService(session, self._clock, permissions)

    def create_manual_entry(
        self,
        owner_id: UUID,
        entry_date: date,
        description: str | None,
        lines: Sequence[ManualLineInput],
        actor_id: UUID,
        project_id: UUID | None = None,
    ) -> JournalEntry:
        if len(lines) < 2:
            raise ValidationError("A journal entry requires at least two lines", field="lines")

        entry_lines = []
        for number, line in enumerate(lines, start=1):
            has_debit = line.debit > ZERO
            has_credit = line.credit > ZERO
            if has_debit == has_credit or line.debit < ZERO or line.credit < ZERO:
                raise ValidationError(
                    f"Line {number} must have either a debit or a credit amount, not both",
                    field="lines",
                )
            line_project = line.project_id or project_id
            if line.line_type == LineType.JOB_COST:
                if line_project is None or line.cost_code_id is None:
                    raise ValidationError(
                        f"Line {number}: job cost lines require a project and a cost code",
                        field="cost_code_id",
                    )
                account_id = self._ledger.job_cost_id
            else:
                if line.account_id is None:
                    raise ValidationError(
                        f"Line {number}: an account is required", field="account_id"
                    )
                account_id = line.account_id
            entry_lines.append(
                LineInput(
                    account_id=account_id,
                    debit=line.debit,
                    credit=line.credit,
                    memo=line.memo,
                    project_id=line_project,
                    lot_id=line.lot_id,
                    cost_code_id=line.cost_code_id,
                )
            )

        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            entry = self._journal.post_entry(
                owner_id,
                entry_lines,
                EntryMeta(
                    entry_date=entry_date,
                    source_type=SourceType.JOURNAL_ENTRY,
                    description=description,
                    project_id=project_id,
                ),
                actor_id,
            )
            logger.info(
                "manual_entry_created",
                extra={"entry_id": str(entry.id), "line_count": len(lines)},
            )
        return entry

    def delete_manual_entry(self, entry_id: UUID, owner_id: UUID, actor_id: UUID) -> int:
        """Delete a manual entry; documents' entries go through their adapters."""
        entry = self.session.get(JournalEntry, entry_id)
        if entry is not None and entry.source_type != SourceType.JOURNAL_ENTRY.value:
            raise ValidationError(
                f"Entry {entry_id} belongs to a {entry.source_type}; edit the source document",
                field="entry_id",
            )
        return self._journal.delete_journal_entry_with_owner_check(entry_id, owner_id, actor_id)
