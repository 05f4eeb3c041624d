"""
Shared helpers for source document posting flows.

Used by ledger_modules/*/service.py to keep the line-building, tolerance and
edit-guard rules identical across bills, checks, deposits and manual
entries.

Architecture: Modules layer.  Imports ledger_kernel and module value objects
only.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, to_money
from ledger_kernel.domain.dtos import LineInput
from ledger_kernel.exceptions import (
    ReconciledTransactionError,
    ReversedEntryError,
    UnknownLotError,
    ValidationError,
)
from ledger_kernel.models.journal import JournalEntry, JournalEntryLine
from ledger_kernel.models.project_lot import ProjectLot
from ledger_kernel.services.period_service import PeriodService
from ledger_modules.ap.models import LineType


def signed_line(account_id: UUID, amount: Decimal, debit_normal: bool, **tags) -> LineInput:
    """
    A one-sided line for a signed amount.

    A positive amount lands on the natural side (debit when
    ``debit_normal``); a negative amount lands on the other side.
    """
    amount = to_money(amount)
    if (amount > ZERO) == debit_normal:
        return LineInput.dr(account_id, abs(amount), **tags)
    return LineInput.cr(account_id, abs(amount), **tags)


def check_lines_total(
    total: Decimal,
    amounts: Sequence[Decimal],
    tolerance: Decimal,
    field: str = "lines",
) -> Decimal:
    """
    Validate that ``amounts`` sum to ``total`` within ``tolerance``.

    Returns the cent difference (total - sum) left for the caller to absorb.
    """
    lines_total = sum((to_money(a) for a in amounts), ZERO)
    difference = to_money(total) - lines_total
    if abs(difference) > tolerance:
        raise ValidationError(
            f"Line amounts total {lines_total} but the document total is {total}",
            field=field,
        )
    return difference


def absorb_difference(amounts: Sequence[Decimal], difference: Decimal) -> list[Decimal]:
    """Add a rounding ``difference`` to the last nonzero amount."""
    adjusted = [to_money(a) for a in amounts]
    if difference == ZERO:
        return adjusted
    for index in range(len(adjusted) - 1, -1, -1):
        if adjusted[index] != ZERO:
            adjusted[index] += difference
            return adjusted
    return adjusted


def require_positive(amount: Decimal, field: str = "amount") -> Decimal:
    amount = to_money(amount)
    if amount <= ZERO:
        raise ValidationError(f"Amount must be greater than 0, got {amount}", field=field)
    return amount


def require_lots(session: Session, owner_id: UUID, lot_ids: set[UUID]) -> None:
    """Raise UnknownLotError for the first lot id the owner does not have."""
    lot_ids = {lot_id for lot_id in lot_ids if lot_id is not None}
    if not lot_ids:
        return
    found = set(
        session.scalars(
            select(ProjectLot.id).where(
                ProjectLot.owner_id == owner_id, ProjectLot.id.in_(lot_ids)
            )
        ).all()
    )
    missing = lot_ids - found
    if missing:
        raise UnknownLotError(str(sorted(missing, key=str)[0]))


def guard_document_edit(
    periods: PeriodService,
    owner_id: UUID,
    project_id: UUID | None,
    entity_type: str,
    document,
    entry: JournalEntry | None,
    dates: Sequence[date | None],
) -> None:
    """
    Common checks before editing a posted source document.

    Rejects reconciled documents, documents whose entry was reversed, and
    any old or new date that falls in closed books.
    """
    if document.reconciled:
        raise ReconciledTransactionError(entity_type, str(document.id))
    if entry is not None and (entry.is_reversed or entry.is_reversal):
        raise ReversedEntryError(entity_type, str(document.id))
    for on_date in dates:
        if on_date is not None:
            periods.assert_date_open(owner_id, project_id, on_date)


def entry_line(entry: JournalEntry, line_id: UUID | None) -> JournalEntryLine | None:
    if line_id is None:
        return None
    return next((line for line in entry.lines if line.id == line_id), None)


def bank_line(entry: JournalEntry, bank_account_id: UUID) -> JournalEntryLine:
    """The bank account line of a deposit or check entry (always line 1)."""
    for line in entry.lines:
        if line.account_id == bank_account_id:
            return line
    raise ValidationError(f"Journal entry {entry.id} has no line for the bank account")


def cost_line_accounts(job_cost_id: UUID, project_id: UUID | None, lines: Sequence) -> list[UUID]:
    """
    The account each check or card line posts to, in line order.

    Job-cost lines go to the WIP account and need a project and a cost
    code; expense lines need their own account.
    """
    accounts = []
    for number, line in enumerate(lines, start=1):
        if line.line_type == LineType.JOB_COST:
            if project_id is None or line.cost_code_id is None:
                raise ValidationError(
                    f"Line {number}: job cost lines require a project and a cost code",
                    field="cost_code_id",
                )
            accounts.append(job_cost_id)
        else:
            if line.account_id is None:
                raise ValidationError(
                    f"Line {number}: expense lines require an account", field="account_id"
                )
            accounts.append(line.account_id)
    return accounts
