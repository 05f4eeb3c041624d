"""
ORM-level immutability enforcement for the journal and chart of accounts.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here inspect attribute history and raise
ImmutabilityViolationError (or ReversedEntryError) before anything is
written:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> error
    [before_delete] --> _check_*_delete() --> error
         |
         v
    SQL sent to database (only if checks pass)

PROTECTED ENTITIES

Entity            | Rule
------------------|-------------------------------------------------------------
Account           | account_type never changes after creation
JournalEntry      | once posted: only reversed_at (null -> set) and audit
                  | columns change; entry_date/description only inside a
                  | sanctioned correction; never once reversed
JournalEntryLine  | of a posted entry: only reconciliation, lot and audit
                  | columns change, other columns only inside a sanctioned correction;
                  | financial columns never change once the entry is reversed
Delete            | posted entries and their lines only inside a sanctioned
                  | correction

A "sanctioned correction" is a block opened with ``sanctioned_correction``
by a service that has already checked period locks and reconciliation state
(deposit/check/payment edits, lot splits, the owner-checked delete).

Bulk UPDATE statements (ReconciliationService clearing reconciliation
columns) do not pass through mapper events; they only touch columns that are
always mutable.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session, object_session
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError, ReversedEntryError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_CORRECTION_FLAG = "ledger_sanctioned_correction"

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})
_RECONCILIATION_FIELDS = frozenset({"reconciled", "reconciliation_id", "reconciliation_date"})
_ENTRY_CORRECTABLE_FIELDS = frozenset({"entry_date", "description"})
_LINE_DIMENSION_FIELDS = frozenset({"lot_id"})


@contextmanager
def sanctioned_correction(session: Session) -> Generator[Session, None, None]:
    """Allow edits to posted journal rows for the duration of the block."""
    previous = session.info.get(_CORRECTION_FLAG, False)
    session.info[_CORRECTION_FLAG] = True
    try:
        yield session
    finally:
        session.info[_CORRECTION_FLAG] = previous


def _in_correction(target) -> bool:
    session = object_session(target)
    return bool(session is not None and session.info.get(_CORRECTION_FLAG, False))


def _changed_fields(target) -> set[str]:
    """Changed column attributes.  Collection changes (new lines) are not edits."""
    state = inspect(target)
    return {
        prop.key
        for prop in state.mapper.column_attrs
        if state.attrs[prop.key].history.has_changes()
    }


def _block(entity_type: str, entity_id, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_account_type_immutability(mapper, connection, target):
    history = get_history(target, "account_type")
    if history.deleted and history.added and str(history.deleted[0]) != str(history.added[0]):
        _block(
            "Account",
            target.id,
            "UPDATE",
            "account_type cannot change after creation",
        )


def _check_journal_entry_update(mapper, connection, target):
    posted_history = get_history(target, "posted_at")
    was_posted = bool(posted_history.deleted and posted_history.deleted[0] is not None) or (
        not posted_history.has_changes() and target.posted_at is not None
    )
    if not was_posted:
        # Drafts are editable, and stamping posted_at is the posting itself.
        return

    reversed_history = get_history(target, "reversed_at")
    was_reversed = bool(reversed_history.deleted and reversed_history.deleted[0] is not None) or (
        not reversed_history.has_changes() and target.reversed_at is not None
    )

    changed = _changed_fields(target) - _AUDIT_FIELDS
    if was_reversed and changed:
        raise ReversedEntryError("JournalEntry", str(target.id))

    changed.discard("reversed_at")
    if _in_correction(target):
        changed -= _ENTRY_CORRECTABLE_FIELDS
    for key in sorted(changed):
        _block(
            "JournalEntry",
            target.id,
            "UPDATE",
            f"Cannot modify field '{key}' on posted journal entry",
        )


def _parent_state(connection, journal_entry_id) -> tuple[bool, bool]:
    """(posted, reversed) for the parent entry, read on the flushing connection."""
    from ledger_kernel.models.journal import JournalEntry

    row = connection.execute(
        select(JournalEntry.posted_at, JournalEntry.reversed_at).where(
            JournalEntry.id == journal_entry_id
        )
    ).first()
    if row is None:
        return False, False
    return row.posted_at is not None, row.reversed_at is not None


def _check_journal_line_update(mapper, connection, target):
    changed = _changed_fields(target) - _AUDIT_FIELDS - _RECONCILIATION_FIELDS
    if not changed:
        return
    posted, reversed_ = _parent_state(connection, target.journal_entry_id)
    if not posted:
        return
    if reversed_:
        raise ReversedEntryError("JournalEntry", str(target.journal_entry_id))
    if changed <= _LINE_DIMENSION_FIELDS or _in_correction(target):
        return
    _block(
        "JournalEntryLine",
        target.id,
        "UPDATE",
        "Journal lines cannot be modified after the entry is posted",
    )


def _check_journal_entry_delete(mapper, connection, target):
    if target.posted_at is not None and not _in_correction(target):
        _block(
            "JournalEntry",
            target.id,
            "DELETE",
            "Posted journal entries cannot be deleted; reverse them instead",
        )


def _check_journal_line_delete(mapper, connection, target):
    if _in_correction(target):
        return
    posted, _ = _parent_state(connection, target.journal_entry_id)
    if posted:
        _block(
            "JournalEntryLine",
            target.id,
            "DELETE",
            "Journal lines cannot be deleted after the entry is posted",
        )


_LISTENERS = (
    ("Account", "before_update", _check_account_type_immutability),
    ("JournalEntry", "before_update", _check_journal_entry_update),
    ("JournalEntry", "before_delete", _check_journal_entry_delete),
    ("JournalEntryLine", "before_update", _check_journal_line_update),
    ("JournalEntryLine", "before_delete", _check_journal_line_delete),
)


def _models() -> dict[str, type]:
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.journal import JournalEntry, JournalEntryLine

    return {
        "Account": Account,
        "JournalEntry": JournalEntry,
        "JournalEntryLine": JournalEntryLine,
    }


def register_immutability_listeners() -> None:
    """
    Register all immutability listeners.

    Call once during application initialization, after models are imported.
    Safe to call repeatedly.
    """
    models = _models()
    for name, event_name, fn in _LISTENERS:
        if not event.contains(models[name], event_name, fn):
            event.listen(models[name], event_name, fn)


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners. FOR TESTING ONLY."""
    models = _models()
    for name, event_name, fn in _LISTENERS:
        if event.contains(models[name], event_name, fn):
            event.remove(models[name], event_name, fn)
