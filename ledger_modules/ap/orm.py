"""
Accounts Payable ORM Models (``ledger_modules.ap.orm``).

Responsibility
--------------
SQLAlchemy persistence for bills, bill lines, purchase orders and bill
payments.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``ledger_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``ledger_kernel``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import ReconcilableMixin, TrackedBase, UUIDString
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import (
    AUTO_MATCH,
    NO_PO,
    ExplicitPO,
    PurchaseOrderLink,
)
from ledger_modules.ap.models import BillStatus, remaining_of


# ---------------------------------------------------------------------------
# 1. PurchaseOrder
# ---------------------------------------------------------------------------


class PurchaseOrder(TrackedBase):
    """
    A committed spending cap for (project, vendor, cost code).

    Guarantees:
        - total_billed/remaining are never stored; the matching engine
          derives them from posted bills.
        - version guards concurrent edits.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        Index("idx_po_key", "owner_id", "project_id", "company_id", "cost_code_id"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    cost_code_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("project_lots.id"), nullable=True
    )
    po_number: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.po_number} {self.total_amount}>"


# ---------------------------------------------------------------------------
# 2. Bill / BillLine
# ---------------------------------------------------------------------------


class Bill(ReconcilableMixin, TrackedBase):
    """
    A vendor bill.

    Guarantees:
        - amount_paid never exceeds total_amount (APService).
        - status is one of BillStatus; reversals carry is_reversal and a
          negated total.
        - reconciliation columns cover single-bill payments cleared on a
          bank statement.
    """

    __tablename__ = "bills"

    __table_args__ = (
        Index("idx_bills_owner_status", "owner_id", "status"),
        Index("idx_bills_project_vendor", "project_id", "vendor_id"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    vendor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bill_date: Mapped[date] = mapped_column(nullable=False)
    due_date: Mapped[date | None] = mapped_column(nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=BillStatus.DRAFT.value, nullable=False
    )
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_reversal: Mapped[bool] = mapped_column(default=False, nullable=False)
    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("bills.id"), nullable=True
    )
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    lines: Mapped[list["BillLine"]] = relationship(
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillLine.line_number",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Bill {self.reference_number or self.id} {self.total_amount} ({self.status})>"

    @property
    def remaining(self) -> Decimal:
        return remaining_of(self.total_amount, self.amount_paid)

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None


class BillLine(TrackedBase):
    """
    One costed line of a bill.

    The PO link is stored as ``po_link_mode`` (auto/explicit/none) plus
    ``purchase_order_id`` and exposed as ``po_link``.
    """

    __tablename__ = "bill_lines"

    __table_args__ = (
        Index("idx_bill_lines_bill", "bill_id"),
        Index("idx_bill_lines_cost_code", "cost_code_id"),
    )

    bill_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bills.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    line_type: Mapped[str] = mapped_column(String(20), nullable=False)
    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )
    cost_code_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("project_lots.id"), nullable=True
    )
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    po_link_mode: Mapped[str] = mapped_column(String(10), default="auto", nullable=False)
    purchase_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    bill: Mapped[Bill] = relationship(back_populates="lines")

    @property
    def po_link(self) -> PurchaseOrderLink:
        if self.po_link_mode == "explicit" and self.purchase_order_id is not None:
            return ExplicitPO(self.purchase_order_id)
        if self.po_link_mode == "none":
            return NO_PO
        return AUTO_MATCH

    @po_link.setter
    def po_link(self, link: PurchaseOrderLink) -> None:
        self.po_link_mode = link.mode
        self.purchase_order_id = (
            link.purchase_order_id if isinstance(link, ExplicitPO) else None
        )

    def __repr__(self) -> str:
        return f"<BillLine {self.line_number} {self.line_type} {self.amount}>"


# ---------------------------------------------------------------------------
# 3. BillPayment / BillPaymentAllocation
# ---------------------------------------------------------------------------


class BillPayment(ReconcilableMixin, TrackedBase):
    """One payment batch: a single journal entry paying one or more bills."""

    __tablename__ = "bill_payments"

    __table_args__ = (Index("idx_bill_payments_owner_date", "owner_id", "payment_date"),)

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    payment_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
    payment_date: Mapped[date] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    allocations: Mapped[list["BillPaymentAllocation"]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<BillPayment {self.payment_date} {self.amount}>"


class BillPaymentAllocation(TrackedBase):
    """The part of a payment applied to one bill."""

    __tablename__ = "bill_payment_allocations"

    bill_payment_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bill_payments.id", ondelete="CASCADE"), nullable=False
    )
    bill_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bills.id"), nullable=False, index=True
    )
    amount_applied: Mapped[Decimal] = mapped_column(nullable=False)

    payment: Mapped[BillPayment] = relationship(back_populates="allocations")
    bill: Mapped[Bill] = relationship(lazy="joined")
