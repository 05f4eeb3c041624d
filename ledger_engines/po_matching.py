"""
ledger_engines.po_matching -- Bill-to-purchase-order matching projection.

Responsibility:
    Match bill lines against purchase orders and report, per PO, how much
    has been billed and what remains of the commitment.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The AP matching service
    loads snapshots and calls ``POMatchingEngine``.

Invariants enforced:
    - Resolution order per line: NoPO lines are skipped; lines with neither
      a cost code nor an explicit PO are skipped; an explicit PO id wins,
      otherwise the composite key (project, vendor, cost code) is used.
    - A PO appears at most once in a bill's matches.
    - total_billed is cumulative over the billed history for the PO's
      composite key; remaining = po.total_amount - total_billed.
    - Read-only: never mutates inputs and never raises on missing data;
      an unresolvable line simply produces no match.

Failure modes:
    - None.  Missing POs or incomplete keys degrade to ``no_po``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import (
    AUTO_MATCH,
    ExplicitPO,
    NoPO,
    PurchaseOrderLink,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.po_matching")

POKey = tuple[UUID | None, UUID | None, UUID | None]


class MatchStatus(str, Enum):
    MATCHED = "matched"
    OVER_PO = "over_po"
    NO_PO = "no_po"
    PARTIAL = "partial"


# ---------------------------------------------------------------------------
# Input snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class POSnapshot:
    id: UUID
    po_number: str | None
    project_id: UUID | None
    company_id: UUID | None
    cost_code_id: UUID | None
    total_amount: Decimal | None

    @property
    def key(self) -> POKey | None:
        if self.project_id and self.company_id and self.cost_code_id:
            return (self.project_id, self.company_id, self.cost_code_id)
        return None


@dataclass(frozen=True)
class BillLineSnapshot:
    cost_code_id: UUID | None
    amount: Decimal | None
    po_link: PurchaseOrderLink = AUTO_MATCH


@dataclass(frozen=True)
class BillSnapshot:
    id: UUID
    vendor_id: UUID | None
    project_id: UUID | None
    lines: tuple[BillLineSnapshot, ...] = ()


@dataclass(frozen=True)
class BilledLine:
    """One line of an eligible (posted/partial/paid, non-reversed) bill."""

    bill_id: UUID
    project_id: UUID | None
    vendor_id: UUID | None
    cost_code_id: UUID | None
    amount: Decimal | None
    bill_date: date | None = None
    reference_number: str | None = None

    @property
    def key(self) -> POKey:
        return (self.project_id, self.vendor_id, self.cost_code_id)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class POMatch:
    po_id: UUID
    po_number: str
    po_amount: Decimal
    total_billed: Decimal
    remaining: Decimal
    status: MatchStatus
    cost_code_id: UUID | None


@dataclass(frozen=True)
class BillMatchResult:
    bill_id: UUID
    matches: tuple[POMatch, ...] = ()
    overall_status: MatchStatus = MatchStatus.NO_PO

    @property
    def po_ids(self) -> tuple[UUID, ...]:
        return tuple(m.po_id for m in self.matches)


@dataclass(frozen=True)
class RelatedBill:
    """A bill billed against a PO's key, with the amount for that cost code."""

    bill_id: UUID
    bill_date: date | None
    reference_number: str | None
    amount: Decimal


@dataclass
class _BillScan:
    matches: list[POMatch] = field(default_factory=list)
    unmatched_lines: int = 0


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class POMatchingEngine:
    """
    Pure PO matching.

    Contract:
        ``match_bills`` returns one BillMatchResult per input bill, keyed
        by bill id.  Deterministic for identical inputs.
    """

    @traced_engine("po_matching", "1.0")
    def match_bills(
        self,
        bills: Sequence[BillSnapshot],
        purchase_orders: Iterable[POSnapshot],
        billed_history: Iterable[BilledLine],
    ) -> dict[UUID, BillMatchResult]:
        pos_by_id = {po.id: po for po in purchase_orders}
        pos_by_key: dict[POKey, POSnapshot] = {}
        for po in pos_by_id.values():
            if po.key is not None:
                pos_by_key.setdefault(po.key, po)

        billed = self.billed_totals(billed_history)

        results: dict[UUID, BillMatchResult] = {}
        for bill in bills:
            scan = _BillScan()
            for line in bill.lines:
                self._scan_line(bill, line, pos_by_id, pos_by_key, billed, scan)
            results[bill.id] = BillMatchResult(
                bill_id=bill.id,
                matches=tuple(scan.matches),
                overall_status=self._overall_status(scan),
            )

        logger.debug(
            "po_matching_computed",
            extra={
                "bill_count": len(bills),
                "po_count": len(pos_by_id),
                "matched_bills": sum(
                    1 for r in results.values() if r.overall_status != MatchStatus.NO_PO
                ),
            },
        )
        return results

    def billed_totals(self, billed_history: Iterable[BilledLine]) -> dict[POKey, Decimal]:
        """Sum of billed line amounts per (project, vendor, cost code)."""
        totals: dict[POKey, Decimal] = defaultdict(lambda: ZERO)
        for line in billed_history:
            if line.cost_code_id is None:
                continue
            totals[line.key] += line.amount or ZERO
        return dict(totals)

    def related_bills(
        self,
        po: POSnapshot,
        billed_history: Iterable[BilledLine],
    ) -> tuple[RelatedBill, ...]:
        """Bills sharing ``po``'s key, newest first, amount per cost code."""
        if po.key is None:
            return ()

        amounts: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        headers: dict[UUID, BilledLine] = {}
        for line in billed_history:
            if line.key != po.key:
                continue
            amounts[line.bill_id] += line.amount or ZERO
            headers.setdefault(line.bill_id, line)

        related = [
            RelatedBill(
                bill_id=bill_id,
                bill_date=headers[bill_id].bill_date,
                reference_number=headers[bill_id].reference_number,
                amount=amount,
            )
            for bill_id, amount in amounts.items()
        ]
        related.sort(key=lambda r: (r.bill_date or date.min, str(r.bill_id)), reverse=True)
        return tuple(related)

    # ------------------------------------------------------------------

    def _scan_line(
        self,
        bill: BillSnapshot,
        line: BillLineSnapshot,
        pos_by_id: dict[UUID, POSnapshot],
        pos_by_key: dict[POKey, POSnapshot],
        billed: dict[POKey, Decimal],
        scan: _BillScan,
    ) -> None:
        link = line.po_link
        if isinstance(link, NoPO):
            return
        explicit = isinstance(link, ExplicitPO)
        if line.cost_code_id is None and not explicit:
            return

        po: POSnapshot | None = None
        if explicit:
            po = pos_by_id.get(link.purchase_order_id)
        elif bill.project_id is not None:
            po = pos_by_key.get((bill.project_id, bill.vendor_id, line.cost_code_id))

        if po is None:
            scan.unmatched_lines += 1
            return
        if any(m.po_id == po.id for m in scan.matches):
            return

        po_amount = po.total_amount or ZERO
        total_billed = billed.get(po.key, ZERO) if po.key is not None else ZERO
        remaining = po_amount - total_billed
        scan.matches.append(
            POMatch(
                po_id=po.id,
                po_number=po.po_number or "Unknown",
                po_amount=po_amount,
                total_billed=total_billed,
                remaining=remaining,
                status=MatchStatus.MATCHED if remaining >= ZERO else MatchStatus.OVER_PO,
                cost_code_id=po.cost_code_id,
            )
        )

    @staticmethod
    def _overall_status(scan: _BillScan) -> MatchStatus:
        if not scan.matches:
            return MatchStatus.NO_PO
        if any(m.status == MatchStatus.OVER_PO for m in scan.matches):
            return MatchStatus.OVER_PO
        if scan.unmatched_lines:
            return MatchStatus.PARTIAL
        return MatchStatus.MATCHED
