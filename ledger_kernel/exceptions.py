"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (UI forms, API handlers) must render a specific reason for every
rejected operation.  Parsing message strings is fragile, so every failure:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (ids, amounts, dates) as attributes

Example:
    try:
        ap.pay_bills(owner_id, [bill_id], bank_id, date(2024, 3, 1), actor_id,
                     payment_amount=Decimal("900.00"))
    except InvalidPaymentAmountError as e:
        respond(code=e.code, remaining=e.remaining)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- ValidationError
    |   +-- InvalidPaymentAmountError
    |   +-- AllocationMismatchError
    |   +-- DuplicateAccountCodeError
    |   +-- PendingReconciliationError
    |   +-- PeriodAlreadyClosedError
    |   +-- PeriodNotClosedError
    |   +-- ReopenReasonRequiredError
    |   +-- ReconciliationOutOfBalanceError
    |   +-- ReconciliationStateError
    |   +-- InvalidBillStateError
    |   +-- ReconciledTransactionError
    |   +-- EntryNotPostedError
    |
    +-- UnbalancedEntryError
    |
    +-- PeriodLockedError                 (reason: "closed" | "reversed")
    |   +-- ClosedPeriodError
    |   +-- ReversedEntryError
    |
    +-- UnknownReferenceError
    |   +-- UnknownAccountError
    |   +-- UnknownPurchaseOrderError
    |   +-- UnknownLotError
    |   +-- EntityNotFoundError
    |
    +-- MissingConfigurationError
    |   +-- MissingEquityAccountError
    |
    +-- ConcurrencyConflictError
    +-- PermissionDeniedError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                          | When Raised
------------------------------|---------------------------------------------------
VALIDATION_ERROR              | Malformed or out-of-range input
INVALID_PAYMENT_AMOUNT        | Payment <= 0 or > remaining balance
ALLOCATION_MISMATCH           | Lot allocations do not sum to the total
DUPLICATE_ACCOUNT_CODE        | Account code already used by this owner
PENDING_RECONCILIATION        | Close blocked by in-progress reconciliation
PERIOD_ALREADY_CLOSED         | Same project/end date already closed
PERIOD_NOT_CLOSED             | Reopen of a period that is open
REOPEN_REASON_REQUIRED        | Reopen without a reason
RECONCILIATION_OUT_OF_BALANCE | Complete with a nonzero difference
RECONCILIATION_STATE          | Operation not allowed in current status
INVALID_BILL_STATE            | Bill lifecycle transition not allowed
RECONCILED_TRANSACTION        | Edit of a reconciled transaction
ENTRY_NOT_POSTED              | Reversal of a draft entry
UNBALANCED_ENTRY              | Debits != credits
PERIOD_LOCKED                 | Date falls in a closed period, or entry reversed
UNKNOWN_REFERENCE             | Dangling id
UNKNOWN_ACCOUNT               | Account id/code not in the owner's registry
UNKNOWN_PURCHASE_ORDER        | PO id not found for the owner
UNKNOWN_LOT                   | Lot id not found for the owner
ENTITY_NOT_FOUND              | Bill/deposit/check/reconciliation/... not found
MISSING_CONFIGURATION         | Required account mapping absent
MISSING_EQUITY_ACCOUNT        | Customer-deposit equity account absent
CONCURRENCY_CONFLICT          | Row changed by another writer (stale version)
PERMISSION_DENIED             | Actor lacks a permission or owner mismatch
IMMUTABILITY_VIOLATION        | Modification of a protected record
"""

from datetime import date
from decimal import Decimal


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    code: str = "LEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Validation
# =============================================================================


class ValidationError(LedgerError):
    """Malformed or out-of-range input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidPaymentAmountError(ValidationError):
    """Payment amount must satisfy 0 < amount <= remaining balance."""

    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(self, amount: Decimal, remaining: Decimal, bill_id: str | None = None):
        self.amount = str(amount)
        self.remaining = str(remaining)
        self.bill_id = bill_id
        super().__init__(
            f"Payment amount {amount} must be greater than 0 and at most "
            f"the remaining balance {remaining}",
            field="payment_amount",
        )


class AllocationMismatchError(ValidationError):
    """Lot allocations do not sum to the transaction total."""

    code: str = "ALLOCATION_MISMATCH"

    def __init__(self, total: Decimal, allocated: Decimal):
        self.total = str(total)
        self.allocated = str(allocated)
        self.difference = str(total - allocated)
        super().__init__(
            f"Allocations total {allocated} but must equal {total} "
            f"(difference {total - allocated})"
        )


class DuplicateAccountCodeError(ValidationError):
    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}", field="code")


class PendingReconciliationError(ValidationError):
    """Period close blocked by reconciliations that are still in progress."""

    code: str = "PENDING_RECONCILIATION"

    def __init__(self, period_end_date: date, reconciliation_ids: list[str]):
        self.period_end_date = period_end_date.isoformat()
        self.reconciliation_ids = reconciliation_ids
        super().__init__(
            f"Cannot close books through {period_end_date}: "
            f"{len(reconciliation_ids)} bank reconciliation(s) still in progress"
        )


class PeriodAlreadyClosedError(ValidationError):
    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, period_end_date: date, project_id: str | None):
        self.period_end_date = period_end_date.isoformat()
        self.project_id = project_id
        super().__init__(f"Books are already closed through {period_end_date}")


class PeriodNotClosedError(ValidationError):
    code: str = "PERIOD_NOT_CLOSED"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Accounting period {period_id} is not closed")


class ReopenReasonRequiredError(ValidationError):
    code: str = "REOPEN_REASON_REQUIRED"

    def __init__(self):
        super().__init__("A reason is required to reopen books", field="reason")


class ReconciliationOutOfBalanceError(ValidationError):
    code: str = "RECONCILIATION_OUT_OF_BALANCE"

    def __init__(self, reconciliation_id: str, difference: Decimal):
        self.reconciliation_id = reconciliation_id
        self.difference = str(difference)
        super().__init__(
            f"Reconciliation {reconciliation_id} cannot be completed with a "
            f"difference of {difference}"
        )


class ReconciliationStateError(ValidationError):
    code: str = "RECONCILIATION_STATE"

    def __init__(self, reconciliation_id: str, status: str, operation: str):
        self.reconciliation_id = reconciliation_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} reconciliation {reconciliation_id} in status '{status}'"
        )


class InvalidBillStateError(ValidationError):
    code: str = "INVALID_BILL_STATE"

    def __init__(self, bill_id: str, status: str, operation: str):
        self.bill_id = bill_id
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} bill {bill_id} in status '{status}'")


class ReconciledTransactionError(ValidationError):
    """Reconciled transactions are locked until the reconciliation is undone."""

    code: str = "RECONCILED_TRANSACTION"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} is reconciled and cannot be modified"
        )


class EntryNotPostedError(ValidationError):
    code: str = "ENTRY_NOT_POSTED"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry {entry_id} is not posted")


# =============================================================================
# Posting
# =============================================================================


class UnbalancedEntryError(LedgerError):
    """Debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = str(debits)
        self.credits = str(credits)
        super().__init__(
            f"Entry is unbalanced: debits={debits}, credits={credits}"
        )


# =============================================================================
# Locking
# =============================================================================


class PeriodLockedError(LedgerError):
    """Edit attempted against a closed period or a reversed entry.

    ``reason`` lets callers render the two cases differently.
    """

    code: str = "PERIOD_LOCKED"

    CLOSED = "closed"
    REVERSED = "reversed"

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message)


class ClosedPeriodError(PeriodLockedError):
    def __init__(
        self,
        on_date: date,
        period_end_date: date,
        project_id: str | None = None,
    ):
        self.on_date = on_date.isoformat()
        self.period_end_date = period_end_date.isoformat()
        self.project_id = project_id
        super().__init__(
            PeriodLockedError.CLOSED,
            f"Books are closed through {period_end_date}; "
            f"transactions dated {on_date} cannot be changed",
        )


class ReversedEntryError(PeriodLockedError):
    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            PeriodLockedError.REVERSED,
            f"{entity_type} {entity_id} has been reversed and cannot be changed",
        )


# =============================================================================
# References
# =============================================================================


class UnknownReferenceError(LedgerError):
    code: str = "UNKNOWN_REFERENCE"

    def __init__(self, entity_type: str, reference: str):
        self.entity_type = entity_type
        self.reference = reference
        super().__init__(f"Unknown {entity_type}: {reference}")


class UnknownAccountError(UnknownReferenceError):
    code: str = "UNKNOWN_ACCOUNT"

    def __init__(self, reference: str):
        super().__init__("account", reference)


class UnknownPurchaseOrderError(UnknownReferenceError):
    code: str = "UNKNOWN_PURCHASE_ORDER"

    def __init__(self, reference: str):
        super().__init__("purchase order", reference)


class UnknownLotError(UnknownReferenceError):
    code: str = "UNKNOWN_LOT"

    def __init__(self, reference: str):
        super().__init__("lot", reference)


class EntityNotFoundError(UnknownReferenceError):
    code: str = "ENTITY_NOT_FOUND"


# =============================================================================
# Configuration
# =============================================================================


class MissingConfigurationError(LedgerError):
    code: str = "MISSING_CONFIGURATION"

    def __init__(self, setting: str, message: str | None = None):
        self.setting = setting
        super().__init__(message or f"Missing ledger configuration: {setting}")


class MissingEquityAccountError(MissingConfigurationError):
    """No equity account exists for routing customer deposits."""

    code: str = "MISSING_EQUITY_ACCOUNT"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(
            "customer_deposit_account",
            f"Customer deposit equity account {account_code} is not configured",
        )


# =============================================================================
# Concurrency / authorization / immutability
# =============================================================================


class ConcurrencyConflictError(LedgerError):
    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Concurrent modification detected: {detail}")


class PermissionDeniedError(LedgerError):
    code: str = "PERMISSION_DENIED"

    def __init__(self, permission: str, actor_id: str | None = None):
        self.permission = permission
        self.actor_id = actor_id
        super().__init__(f"Permission denied: {permission}")


class ImmutabilityViolationError(LedgerError):
    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
