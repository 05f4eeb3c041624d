"""
Immutable inputs and results exchanged with kernel services.

Contract:
    Every DTO is a frozen dataclass.  Money fields are coerced to cents
    Decimals at construction (float input raises TypeError).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO, to_money
from ledger_kernel.models.journal import SourceType


@dataclass(frozen=True)
class LineInput:
    """A requested journal line.  Exactly one of debit/credit must be nonzero."""

    account_id: UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    memo: str | None = None
    project_id: UUID | None = None
    lot_id: UUID | None = None
    cost_code_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit", to_money(self.debit))
        object.__setattr__(self, "credit", to_money(self.credit))

    @classmethod
    def dr(cls, account_id: UUID, amount: Decimal | str, **tags) -> "LineInput":
        return cls(account_id=account_id, debit=to_money(amount), **tags)

    @classmethod
    def cr(cls, account_id: UUID, amount: Decimal | str, **tags) -> "LineInput":
        return cls(account_id=account_id, credit=to_money(amount), **tags)

    @property
    def is_one_sided(self) -> bool:
        return (self.debit > ZERO and self.credit == ZERO) or (
            self.credit > ZERO and self.debit == ZERO
        )

    def swapped(self) -> "LineInput":
        """Same line with debit and credit exchanged (for reversals and credits)."""
        return LineInput(
            account_id=self.account_id,
            debit=self.credit,
            credit=self.debit,
            memo=self.memo,
            project_id=self.project_id,
            lot_id=self.lot_id,
            cost_code_id=self.cost_code_id,
        )


@dataclass(frozen=True)
class EntryMeta:
    """Header fields for a journal entry."""

    entry_date: date
    source_type: SourceType = SourceType.JOURNAL_ENTRY
    source_id: UUID | None = None
    description: str | None = None
    project_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_type", SourceType(self.source_type))


@dataclass(frozen=True)
class ReversalResult:
    original_entry_id: UUID
    reversal_entry_id: UUID
    reversed_at: datetime


# ---------------------------------------------------------------------------
# Purchase-order linkage on bill lines
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExplicitPO:
    """Line is linked to a specific purchase order."""

    purchase_order_id: UUID
    mode: str = field(default="explicit", init=False)


@dataclass(frozen=True)
class AutoMatch:
    """Line matches a PO by (project, vendor, cost code)."""

    mode: str = field(default="auto", init=False)


@dataclass(frozen=True)
class NoPO:
    """Line is explicitly excluded from PO matching."""

    mode: str = field(default="none", init=False)


PurchaseOrderLink = ExplicitPO | AutoMatch | NoPO

AUTO_MATCH = AutoMatch()
NO_PO = NoPO()

_LEGACY_AUTO = "__auto__"
_LEGACY_NONE = "__none__"


def parse_po_link(value: "PurchaseOrderLink | UUID | str | None") -> PurchaseOrderLink:
    """
    Normalize caller input to a PurchaseOrderLink.

    Accepts a link, a PO id, None (auto-match), or the form values
    ``"__auto__"`` / ``"__none__"``.
    """
    if isinstance(value, (ExplicitPO, AutoMatch, NoPO)):
        return value
    if value is None or value == "" or value == _LEGACY_AUTO:
        return AUTO_MATCH
    if value == _LEGACY_NONE:
        return NO_PO
    if isinstance(value, UUID):
        return ExplicitPO(value)
    return ExplicitPO(UUID(str(value)))
