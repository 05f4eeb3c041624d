"""
Accounts Payable Module (``ledger_modules.ap``).

Responsibility
--------------
Vendor bills, purchase orders and bill payments: draft -> post -> pay,
payment edits, bill reversal, and the bill-to-PO matching read model.

Architecture position
---------------------
**Modules layer** -- source document adapter.  Posting goes through
``ledger_kernel.services.JournalService``; PO matching computation lives in
``ledger_engines.po_matching``.

Audit relevance
---------------
Every write emits a structured log event (``bill_posted``, ``bills_paid``,
``bill_reversed`` ...) and the resulting journal entry carries
``source_type``/``source_id`` back to the bill or payment.
"""

from ledger_modules.ap.matching import POMatchingService
from ledger_modules.ap.models import (
    AppliedPayment,
    BillInput,
    BillLineInput,
    BillPostingResult,
    BillReversalResult,
    BillStatus,
    LineType,
    PaymentResult,
)
from ledger_modules.ap.orm import (
    Bill,
    BillLine,
    BillPayment,
    BillPaymentAllocation,
    PurchaseOrder,
)
from ledger_modules.ap.service import APService

__all__ = [
    "APService",
    "AppliedPayment",
    "Bill",
    "BillInput",
    "BillLine",
    "BillLineInput",
    "BillPayment",
    "BillPaymentAllocation",
    "BillPostingResult",
    "BillReversalResult",
    "BillStatus",
    "LineType",
    "POMatchingService",
    "PaymentResult",
    "PurchaseOrder",
]
