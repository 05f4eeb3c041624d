"""
Purchase-order matching read model (``ledger_modules.ap.matching``).

Loads bill, PO and billed-history snapshots for an owner and hands them to
the pure ``POMatchingEngine``.  Read-only: nothing here writes, and missing
rows degrade to empty results instead of raising.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engines.po_matching import (
    BilledLine,
    BillLineSnapshot,
    BillMatchResult,
    BillSnapshot,
    POMatchingEngine,
    POSnapshot,
    RelatedBill,
)
from ledger_kernel.logging_config import get_logger
from ledger_modules.ap.models import BILLED_STATUSES
from ledger_modules.ap.orm import Bill, BillLine, PurchaseOrder

logger = get_logger("modules.ap.matching")


def _po_snapshot(po: PurchaseOrder) -> POSnapshot:
    return POSnapshot(
        id=po.id,
        po_number=po.po_number,
        project_id=po.project_id,
        company_id=po.company_id,
        cost_code_id=po.cost_code_id,
        total_amount=po.total_amount,
    )


def _bill_snapshot(bill: Bill) -> BillSnapshot:
    return BillSnapshot(
        id=bill.id,
        vendor_id=bill.vendor_id,
        project_id=bill.project_id,
        lines=tuple(
            BillLineSnapshot(
                cost_code_id=line.cost_code_id,
                amount=line.amount,
                po_link=line.po_link,
            )
            for line in bill.lines
        ),
    )


class POMatchingService:
    """Bill-to-PO matching over persisted bills and purchase orders."""

    def __init__(self, session: Session, engine: POMatchingEngine | None = None):
        self.session = session
        self._engine = engine or POMatchingEngine()

    def match_bills_to_pos(
        self, owner_id: UUID, bill_ids: Sequence[UUID]
    ) -> dict[UUID, BillMatchResult]:
        """One BillMatchResult per bill id found for the owner."""
        if not bill_ids:
            return {}
        bills = list(
            self.session.scalars(
                select(Bill).where(Bill.owner_id == owner_id, Bill.id.in_(set(bill_ids)))
            ).all()
        )
        if not bills:
            return {}

        project_ids = {bill.project_id for bill in bills if bill.project_id is not None}
        explicit_ids = {
            line.purchase_order_id
            for bill in bills
            for line in bill.lines
            if line.purchase_order_id is not None
        }
        purchase_orders = self._purchase_orders(owner_id, project_ids, explicit_ids)
        history = self._billed_history(owner_id, {po.project_id for po in purchase_orders})

        results = self._engine.match_bills(
            [_bill_snapshot(bill) for bill in bills],
            [_po_snapshot(po) for po in purchase_orders],
            history,
        )
        logger.debug(
            "po_matching_loaded",
            extra={
                "owner_id": str(owner_id),
                "bill_count": len(bills),
                "po_count": len(purchase_orders),
                "history_lines": len(history),
            },
        )
        return results

    def related_bills(self, owner_id: UUID, po_id: UUID) -> tuple[RelatedBill, ...]:
        """Billed, non-reversed bills sharing the PO's (project, vendor, cost code)."""
        po = self.session.get(PurchaseOrder, po_id)
        if po is None or po.owner_id != owner_id:
            return ()
        history = self._billed_history(owner_id, {po.project_id})
        return self._engine.related_bills(_po_snapshot(po), history)

    # ------------------------------------------------------------------

    def _purchase_orders(
        self,
        owner_id: UUID,
        project_ids: set[UUID],
        explicit_ids: set[UUID],
    ) -> list[PurchaseOrder]:
        clauses = []
        if project_ids:
            clauses.append(PurchaseOrder.project_id.in_(project_ids))
        if explicit_ids:
            clauses.append(PurchaseOrder.id.in_(explicit_ids))
        if not clauses:
            return []
        stmt = select(PurchaseOrder).where(PurchaseOrder.owner_id == owner_id)
        if len(clauses) == 1:
            stmt = stmt.where(clauses[0])
        else:
            stmt = stmt.where(clauses[0] | clauses[1])
        return list(self.session.scalars(stmt.order_by(PurchaseOrder.created_at)).all())

    def _billed_history(self, owner_id: UUID, project_ids: set[UUID]) -> list[BilledLine]:
        if not project_ids:
            return []
        rows = self.session.execute(
            select(
                Bill.id,
                Bill.project_id,
                Bill.vendor_id,
                Bill.bill_date,
                Bill.reference_number,
                BillLine.cost_code_id,
                BillLine.amount,
            )
            .join(BillLine, BillLine.bill_id == Bill.id)
            .where(
                Bill.owner_id == owner_id,
                Bill.project_id.in_(project_ids),
                Bill.status.in_(BILLED_STATUSES),
                Bill.is_reversal.is_(False),
                Bill.reversed_at.is_(None),
            )
        ).all()
        return [
            BilledLine(
                bill_id=row.id,
                project_id=row.project_id,
                vendor_id=row.vendor_id,
                cost_code_id=row.cost_code_id,
                amount=row.amount,
                bill_date=row.bill_date,
                reference_number=row.reference_number,
            )
            for row in rows
        ]
