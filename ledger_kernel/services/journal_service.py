"""
JournalService -- the journal engine.

Responsibility:
    The only writer of journal entries.  Validates and posts balanced
    entries, reverses them, and offers the single owner-checked delete used
    for corrections.

Architecture position:
    Kernel > Services -- imperative shell.  Every source document adapter
    (bills, payments, deposits, checks, manual entries) builds LineInputs and
    calls ``post_entry``.

Invariants enforced:
    - Balance: sum(debit) == sum(credit) at cents, or UnbalancedEntryError.
    - One-sided lines: each line has exactly one positive side.
    - Known references: every account (and lot) belongs to the owner.
    - Period lock: the entry date must not be in closed books, unless the
      caller explicitly asks to bypass and holds ``can_close_books``.
    - Append-only: reversal creates a new entry with sides swapped and
      stamps reversed_at on the original; original lines are untouched.

Failure modes:
    - ValidationError, UnbalancedEntryError, UnknownAccountError,
      UnknownLotError, ClosedPeriodError, ReversedEntryError,
      EntryNotPostedError, EntityNotFoundError, PermissionDeniedError,
      ReconciledTransactionError.
"""

from datetime import date
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.immutability import sanctioned_correction
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import EntryMeta, LineInput, ReversalResult
from ledger_kernel.domain.permissions import (
    Permission,
    PermissionChecker,
    StaticPermissions,
    require_permission,
)
from ledger_kernel.exceptions import (
    EntityNotFoundError,
    EntryNotPostedError,
    PermissionDeniedError,
    ReconciledTransactionError,
    ReversedEntryError,
    UnbalancedEntryError,
    UnknownLotError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import JournalEntry, JournalEntryLine, SourceType
from ledger_kernel.models.project_lot import ProjectLot
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService

logger = get_logger("services.journal")


class JournalService(BaseService[JournalEntry]):
    """
    Post, reverse and (exceptionally) delete journal entries.

    Flush-only: the caller owns the transaction.  Each public mutation runs
    in its own savepoint so a rejected call leaves no partial entry.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        permissions: PermissionChecker | None = None,
        period_service: PeriodService | None = None,
    ):
        super().__init__(session, clock)
        self._permissions = permissions or StaticPermissions()
        self._periods = period_service or PeriodService(
            session, self._clock, self._permissions
        )
        self._accounts = AccountService(session, self._clock)

    @property
    def periods(self) -> PeriodService:
        return self._periods

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post_entry(
        self,
        owner_id: UUID,
        lines: Sequence[LineInput],
        meta: EntryMeta,
        actor_id: UUID,
        allow_locked_period: bool = False,
    ) -> JournalEntry:
        """
        Validate and post a balanced entry.

        ``allow_locked_period`` lets a holder of ``can_close_books`` post
        into closed books; anyone else gets PermissionDeniedError.
        """
        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.atomic():
                self._validate_lines(owner_id, lines, require_balance=True)
                self._check_lock(owner_id, meta.project_id, meta.entry_date, actor_id, allow_locked_period)

                entry = self._build_entry(owner_id, lines, meta, actor_id)
                entry.posted_at = self._clock.now()
                self.session.add(entry)

            logger.info(
                "journal_entry_posted",
                extra={
                    "entry_id": str(entry.id),
                    "source_type": str(meta.source_type.value),
                    "source_id": str(meta.source_id) if meta.source_id else None,
                    "entry_date": meta.entry_date.isoformat(),
                    "line_count": len(lines),
                    "total": str(entry.total_debits),
                },
            )
        return entry

    def create_draft(
        self,
        owner_id: UUID,
        lines: Sequence[LineInput],
        meta: EntryMeta,
        actor_id: UUID,
    ) -> JournalEntry:
        """Store an unposted entry.  Drafts never affect balances."""
        with self.atomic():
            self._validate_lines(owner_id, lines, require_balance=False)
            entry = self._build_entry(owner_id, lines, meta, actor_id)
            self.session.add(entry)
        logger.info(
            "journal_draft_created",
            extra={"entry_id": str(entry.id), "line_count": len(lines)},
        )
        return entry

    def post_draft(
        self,
        entry_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        allow_locked_period: bool = False,
    ) -> JournalEntry:
        entry = self.get_entry(entry_id, owner_id)
        if entry.is_posted:
            raise ValidationError(f"Journal entry {entry_id} is already posted")

        with self.atomic():
            inputs = [
                LineInput(
                    account_id=line.account_id,
                    debit=line.debit,
                    credit=line.credit,
                    lot_id=line.lot_id,
                )
                for line in entry.lines
            ]
            self._validate_lines(owner_id, inputs, require_balance=True)
            self._check_lock(owner_id, entry.project_id, entry.entry_date, actor_id, allow_locked_period)
            entry.posted_at = self._clock.now()
            entry.updated_by_id = actor_id

        logger.info(
            "journal_entry_posted",
            extra={
                "entry_id": str(entry.id),
                "source_type": str(entry.source_type),
                "entry_date": entry.entry_date.isoformat(),
                "line_count": len(entry.lines),
                "total": str(entry.total_debits),
            },
        )
        return entry

    # ------------------------------------------------------------------
    # Reversal
    # ------------------------------------------------------------------

    def reverse_entry(
        self,
        entry_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        reversal_date: date | None = None,
        description: str | None = None,
    ) -> ReversalResult:
        """
        Post the mirror image of an entry and mark the original reversed.

        The reversal is dated ``reversal_date`` (default: today), which must
        be in open books; the original may sit in closed books.
        """
        original = self.get_entry(entry_id, owner_id)
        if not original.is_posted:
            raise EntryNotPostedError(str(entry_id))
        if original.is_reversed:
            raise ReversedEntryError("JournalEntry", str(entry_id))

        on_date = reversal_date or self._clock.today()
        with self.atomic():
            self._periods.assert_date_open(owner_id, original.project_id, on_date)

            now = self._clock.now()
            reversal = JournalEntry(
                owner_id=owner_id,
                project_id=original.project_id,
                entry_date=on_date,
                description=description or f"Reversal of {original.description or original.id}",
                source_type=original.source_type,
                source_id=original.source_id,
                is_reversal=True,
                reversal_of_id=original.id,
                posted_at=now,
                created_by_id=actor_id,
            )
            for number, line in enumerate(original.lines, start=1):
                reversal.lines.append(
                    JournalEntryLine(
                        line_number=number,
                        account_id=line.account_id,
                        debit=line.credit,
                        credit=line.debit,
                        memo=line.memo,
                        project_id=line.project_id,
                        lot_id=line.lot_id,
                        cost_code_id=line.cost_code_id,
                        created_by_id=actor_id,
                    )
                )
            self.session.add(reversal)
            original.reversed_at = now
            original.updated_by_id = actor_id

        logger.info(
            "journal_entry_reversed",
            extra={
                "entry_id": str(original.id),
                "reversal_entry_id": str(reversal.id),
                "reversal_date": on_date.isoformat(),
            },
        )
        return ReversalResult(
            original_entry_id=original.id,
            reversal_entry_id=reversal.id,
            reversed_at=now,
        )

    # ------------------------------------------------------------------
    # Correction delete
    # ------------------------------------------------------------------

    def delete_journal_entry_with_owner_check(
        self,
        entry_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
    ) -> int:
        """
        Physically delete an entry and its lines.  Returns lines deleted.

        The only sanctioned delete of a posted entry: the caller must own
        it, its date must be in open books, it must be neither reversed nor
        a reversal, and none of its lines may be reconciled.
        """
        entry = self.session.get(JournalEntry, entry_id)
        if entry is None:
            raise EntityNotFoundError("journal entry", str(entry_id))
        if entry.owner_id != owner_id:
            logger.warning(
                "journal_delete_owner_mismatch",
                extra={"entry_id": str(entry_id), "owner_id": str(owner_id)},
            )
            raise PermissionDeniedError("journal_entry_owner", actor_id=str(actor_id))
        if entry.is_reversed or entry.is_reversal:
            raise ReversedEntryError("JournalEntry", str(entry_id))
        self._periods.assert_date_open(owner_id, entry.project_id, entry.entry_date)
        if any(line.reconciled for line in entry.lines):
            raise ReconciledTransactionError("JournalEntry", str(entry_id))

        line_count = len(entry.lines)
        with sanctioned_correction(self.session), self.atomic():
            self.session.delete(entry)
            self.flush()

        logger.info(
            "journal_entry_deleted",
            extra={
                "entry_id": str(entry_id),
                "owner_id": str(owner_id),
                "actor_id": str(actor_id),
                "line_count": line_count,
            },
        )
        return line_count

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: UUID, owner_id: UUID) -> JournalEntry:
        entry = self.session.get(JournalEntry, entry_id)
        if entry is None or entry.owner_id != owner_id:
            raise EntityNotFoundError("journal entry", str(entry_id))
        return entry

    def entries_for_source(
        self,
        owner_id: UUID,
        source_type: SourceType,
        source_id: UUID,
    ) -> list[JournalEntry]:
        return list(
            self.session.scalars(
                select(JournalEntry)
                .where(
                    JournalEntry.owner_id == owner_id,
                    JournalEntry.source_type == source_type.value,
                    JournalEntry.source_id == source_id,
                )
                .order_by(JournalEntry.created_at, JournalEntry.is_reversal)
            ).all()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate_lines(
        self,
        owner_id: UUID,
        lines: Sequence[LineInput],
        require_balance: bool,
    ) -> None:
        if len(lines) < 2:
            raise ValidationError("A journal entry requires at least two lines", field="lines")

        total_debits = ZERO
        total_credits = ZERO
        for number, line in enumerate(lines, start=1):
            if not line.is_one_sided:
                raise ValidationError(
                    f"Line {number} must have either a debit or a credit amount, not both",
                    field="lines",
                )
            total_debits += line.debit
            total_credits += line.credit

        if require_balance and total_debits != total_credits:
            logger.warning(
                "balance_rejected",
                extra={"debits": str(total_debits), "credits": str(total_credits)},
            )
            raise UnbalancedEntryError(total_debits, total_credits)

        self._accounts.require_accounts(owner_id, {line.account_id for line in lines})

        lot_ids = {line.lot_id for line in lines if line.lot_id is not None}
        if lot_ids:
            found = set(
                self.session.scalars(
                    select(ProjectLot.id).where(
                        ProjectLot.owner_id == owner_id, ProjectLot.id.in_(lot_ids)
                    )
                ).all()
            )
            missing = lot_ids - found
            if missing:
                raise UnknownLotError(str(sorted(missing, key=str)[0]))

    def _check_lock(
        self,
        owner_id: UUID,
        project_id: UUID | None,
        on_date: date,
        actor_id: UUID,
        allow_locked_period: bool,
    ) -> None:
        if allow_locked_period and self._periods.is_date_locked(owner_id, project_id, on_date):
            require_permission(
                self._permissions, owner_id, actor_id, Permission.CAN_CLOSE_BOOKS
            )
            logger.warning(
                "period_lock_overridden",
                extra={"on_date": on_date.isoformat(), "actor_id": str(actor_id)},
            )
            return
        self._periods.assert_date_open(owner_id, project_id, on_date)

    def _build_entry(
        self,
        owner_id: UUID,
        lines: Sequence[LineInput],
        meta: EntryMeta,
        actor_id: UUID,
    ) -> JournalEntry:
        entry = JournalEntry(
            owner_id=owner_id,
            project_id=meta.project_id,
            entry_date=meta.entry_date,
            description=meta.description,
            source_type=meta.source_type.value,
            source_id=meta.source_id,
            created_by_id=actor_id,
        )
        for number, line in enumerate(lines, start=1):
            entry.lines.append(
                JournalEntryLine(
                    line_number=number,
                    account_id=line.account_id,
                    debit=line.debit,
                    credit=line.credit,
                    memo=line.memo,
                    project_id=line.project_id,
                    lot_id=line.lot_id,
                    cost_code_id=line.cost_code_id,
                    created_by_id=actor_id,
                )
            )
        return entry

