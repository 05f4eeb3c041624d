"""
Lot service (``ledger_modules.lots.service``).

Responsibility:
    Manage the lots of a project and spread a project's untagged job-cost
    lines across lots after the fact.

Architecture position:
    Modules layer.  Allocation math comes from
    ``ledger_engines.lot_allocation``; line edits run under the kernel's
    sanctioned-correction flag.

Invariants enforced:
    - lot_number is sequential per project: new lots continue after the
      current maximum.
    - A split replaces one line with one line per lot on the same side of
      the same account, so every entry stays balanced to the cent.  Added
      lines point back at the original through split_from_id.
    - Lines in closed books, lines of reversed (or reversal) entries and
      reconciled lines are left alone and counted as skipped.

Failure modes:
    - ValidationError for a non-positive lot count or an empty lot list.
    - UnknownLotError for a lot outside the owner/project.
    - AllocationMismatchError is never raised here: manual amounts are used
      as proportions, not absolutes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_engines.lot_allocation import LotAllocationEngine, split_by_weights
from ledger_kernel.db.immutability import sanctioned_correction
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.permissions import PermissionChecker
from ledger_kernel.exceptions import EntityNotFoundError, UnknownLotError, ValidationError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import JournalEntry, JournalEntryLine
from ledger_kernel.models.project_lot import ProjectLot
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService

logger = get_logger("modules.lots.service")


@dataclass(frozen=True)
class LotSplitResult:
    updated: int = 0
    inserted: int = 0
    skipped: int = 0


class LotService(BaseService[ProjectLot]):
    """Create, rename and list lots; split job-cost lines across them."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        permissions: PermissionChecker | None = None,
        period_service: PeriodService | None = None,
        engine: LotAllocationEngine | None = None,
    ):
        super().__init__(session, clock)
        self._periods = period_service or PeriodService(session, self._clock, permissions)
        self._engine = engine or LotAllocationEngine()

    def create_lots(
        self, owner_id: UUID, project_id: UUID, count: int, actor_id: UUID
    ) -> list[ProjectLot]:
        if count < 1:
            raise ValidationError("At least one lot must be created", field="count")

        with self.atomic():
            current = self.session.scalar(
                select(func.max(ProjectLot.lot_number)).where(
                    ProjectLot.owner_id == owner_id, ProjectLot.project_id == project_id
                )
            ) or 0
            lots = [
                ProjectLot(
                    owner_id=owner_id,
                    project_id=project_id,
                    lot_number=current + offset,
                    created_by_id=actor_id,
                )
                for offset in range(1, count + 1)
            ]
            self.session.add_all(lots)

        logger.info(
            "lots_created",
            extra={
                "project_id": str(project_id),
                "count": count,
                "first_lot_number": current + 1,
            },
        )
        return lots

    def rename_lot(
        self, lot_id: UUID, owner_id: UUID, actor_id: UUID, lot_name: str | None
    ) -> ProjectLot:
        lot = self.session.get(ProjectLot, lot_id)
        if lot is None or lot.owner_id != owner_id:
            raise EntityNotFoundError("lot", str(lot_id))
        with self.atomic():
            lot.lot_name = (lot_name or "").strip() or None
            lot.updated_by_id = actor_id
        return lot

    def list_lots(self, owner_id: UUID, project_id: UUID) -> list[ProjectLot]:
        return list(
            self.session.scalars(
                select(ProjectLot)
                .where(ProjectLot.owner_id == owner_id, ProjectLot.project_id == project_id)
                .order_by(ProjectLot.lot_number)
            ).all()
        )

    # ------------------------------------------------------------------
    # Splitting
    # ------------------------------------------------------------------

    def split_journal_lines_by_lot(
        self,
        owner_id: UUID,
        project_id: UUID,
        lot_ids: Sequence[UUID],
        actor_id: UUID,
        amounts: Mapping[UUID, Decimal] | None = None,
    ) -> LotSplitResult:
        """
        Spread every posted, cost-coded, lot-less line of the project across
        ``lot_ids``.

        Without ``amounts`` each line is split evenly.  With ``amounts``,
        each lot gets a share of every line proportional to its amount.
        """
        selected = list(dict.fromkeys(lot_ids))
        if not selected:
            raise ValidationError("At least one lot must be selected", field="lot_ids")
        known = {lot.id for lot in self.list_lots(owner_id, project_id)}
        unknown = [lot_id for lot_id in selected if lot_id not in known]
        if unknown:
            raise UnknownLotError(str(unknown[0]))

        lines = self.session.scalars(
            select(JournalEntryLine)
            .join(JournalEntry, JournalEntry.id == JournalEntryLine.journal_entry_id)
            .where(
                JournalEntry.owner_id == owner_id,
                JournalEntry.posted_at.is_not(None),
                JournalEntryLine.project_id == project_id,
                JournalEntryLine.lot_id.is_(None),
                JournalEntryLine.cost_code_id.is_not(None),
            )
            .order_by(JournalEntry.entry_date, JournalEntryLine.line_number)
        ).all()

        updated = inserted = skipped = 0
        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with sanctioned_correction(self.session), self.atomic():
                for line in lines:
                    entry = line.journal_entry
                    if (
                        entry.is_reversed
                        or entry.is_reversal
                        or line.reconciled
                        or self._periods.is_date_locked(owner_id, entry.project_id, entry.entry_date)
                    ):
                        skipped += 1
                        continue
                    pieces = self._pieces(line.debit + line.credit, selected, amounts)
                    first = True
                    for lot_id, piece in pieces:
                        if piece == ZERO:
                            continue
                        if first:
                            self._set_amount(line, piece)
                            line.lot_id = lot_id
                            line.updated_by_id = actor_id
                            updated += 1
                            first = False
                            continue
                        entry.lines.append(
                            JournalEntryLine(
                                line_number=entry.next_line_number(),
                                account_id=line.account_id,
                                debit=piece if line.debit > ZERO else ZERO,
                                credit=piece if line.credit > ZERO else ZERO,
                                memo=line.memo,
                                project_id=line.project_id,
                                lot_id=lot_id,
                                cost_code_id=line.cost_code_id,
                                split_from_id=line.id,
                                created_by_id=actor_id,
                            )
                        )
                        inserted += 1

            result = LotSplitResult(updated=updated, inserted=inserted, skipped=skipped)
            logger.info(
                "journal_lines_split_by_lot",
                extra={
                    "project_id": str(project_id),
                    "lot_count": len(selected),
                    "updated": updated,
                    "inserted": inserted,
                    "skipped": skipped,
                },
            )
        return result

    def _pieces(
        self,
        amount: Decimal,
        lot_ids: list[UUID],
        shares: Mapping[UUID, Decimal] | None,
    ) -> list[tuple[UUID, Decimal]]:
        if not shares:
            return [(a.lot_id, a.amount) for a in self._engine.allocate(amount, lot_ids)]
        weights = [shares.get(lot_id, ZERO) for lot_id in lot_ids]
        return list(zip(lot_ids, split_by_weights(amount, weights)))

    @staticmethod
    def _set_amount(line: JournalEntryLine, amount: Decimal) -> None:
        if line.debit > ZERO:
            line.debit = amount
        else:
            line.credit = amount
