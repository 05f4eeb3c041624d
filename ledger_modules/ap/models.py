"""
Accounts Payable Domain Models (``ledger_modules.ap.models``).

Responsibility
--------------
Frozen value objects for bills, bill lines, purchase orders and payments:
the inputs that flow *into* ``APService`` and the results that flow out.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O, no database.

Invariants enforced
-------------------
* All monetary fields are cents ``Decimal`` (float input raises TypeError).
* All dataclasses are ``frozen=True``.
* A bill line's PO link is always a ``PurchaseOrderLink`` variant; form
  values (``"__auto__"``, ``"__none__"``, an id string) are normalized at
  construction.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.db.types import ZERO, to_money
from ledger_kernel.domain.dtos import AUTO_MATCH, PurchaseOrderLink, parse_po_link


class BillStatus(str, Enum):
    """Bill lifecycle: draft -> posted -> partial -> paid."""

    DRAFT = "draft"
    POSTED = "posted"
    PARTIAL = "partial"
    PAID = "paid"


PAYABLE_STATUSES = (BillStatus.POSTED.value, BillStatus.PARTIAL.value)
BILLED_STATUSES = (
    BillStatus.POSTED.value,
    BillStatus.PARTIAL.value,
    BillStatus.PAID.value,
)


class LineType(str, Enum):
    """How a bill or check line is costed."""

    JOB_COST = "job_cost"
    EXPENSE = "expense"


@dataclass(frozen=True)
class BillInput:
    vendor_id: UUID
    bill_date: date
    total_amount: Decimal
    project_id: UUID | None = None
    due_date: date | None = None
    reference_number: str | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_amount", to_money(self.total_amount))


@dataclass(frozen=True)
class BillLineInput:
    """
    One line of a bill.

    Job-cost lines need a cost code and a project (their own or the
    bill's); expense lines need an account.
    """

    amount: Decimal
    line_type: LineType = LineType.JOB_COST
    cost_code_id: UUID | None = None
    account_id: UUID | None = None
    lot_id: UUID | None = None
    project_id: UUID | None = None
    po_link: PurchaseOrderLink = AUTO_MATCH
    memo: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_money(self.amount))
        object.__setattr__(self, "line_type", LineType(self.line_type))
        object.__setattr__(self, "po_link", parse_po_link(self.po_link))


@dataclass(frozen=True)
class BillPostingResult:
    bill_id: UUID
    journal_entry_id: UUID
    status: BillStatus
    total_amount: Decimal


@dataclass(frozen=True)
class AppliedPayment:
    """What one payment did to one bill."""

    bill_id: UUID
    amount_applied: Decimal
    amount_paid: Decimal
    remaining: Decimal
    status: BillStatus


@dataclass(frozen=True)
class PaymentResult:
    payment_id: UUID
    journal_entry_id: UUID
    payment_date: date
    amount: Decimal
    applied: tuple[AppliedPayment, ...] = field(default_factory=tuple)

    @property
    def bill_ids(self) -> tuple[UUID, ...]:
        return tuple(a.bill_id for a in self.applied)


@dataclass(frozen=True)
class BillReversalResult:
    bill_id: UUID
    reversal_bill_id: UUID
    reversal_entry_id: UUID
    reversed_at: datetime


def remaining_of(total_amount: Decimal, amount_paid: Decimal | None) -> Decimal:
    """total - paid, as cents."""
    return to_money(total_amount) - to_money(amount_paid or ZERO)
