"""
Cash Domain Models (``ledger_modules.cash.models``).

Responsibility
--------------
Frozen value objects for deposits, checks and credit card transactions:
inputs to ``CashService`` and ``CreditCardService`` and the results they
return.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O, no database.

Invariants enforced
-------------------
* Money fields are cents ``Decimal``; float input raises TypeError.
* Line types are normalized to their enum at construction.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.db.types import to_money
from ledger_modules.ap.models import LineType


class DepositLineType(str, Enum):
    """Revenue lines credit a revenue account; customer payments credit equity."""

    REVENUE = "revenue"
    CUSTOMER_PAYMENT = "customer_payment"


@dataclass(frozen=True)
class DepositInput:
    bank_account_id: UUID
    deposit_date: date
    amount: Decimal
    project_id: UUID | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_money(self.amount))


@dataclass(frozen=True)
class DepositLineInput:
    amount: Decimal
    line_type: DepositLineType = DepositLineType.REVENUE
    account_id: UUID | None = None
    cost_code_id: UUID | None = None
    lot_id: UUID | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_money(self.amount))
        object.__setattr__(self, "line_type", DepositLineType(self.line_type))


@dataclass(frozen=True)
class DepositResult:
    deposit_id: UUID
    journal_entry_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class CheckInput:
    bank_account_id: UUID
    check_date: date
    amount: Decimal
    pay_to: str | None = None
    check_number: str | None = None
    project_id: UUID | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_money(self.amount))


@dataclass(frozen=True)
class CheckLineInput:
    """Job-cost lines need a cost code; expense lines need an account."""

    amount: Decimal
    line_type: LineType = LineType.JOB_COST
    account_id: UUID | None = None
    cost_code_id: UUID | None = None
    lot_id: UUID | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_money(self.amount))
        object.__setattr__(self, "line_type", LineType(self.line_type))


@dataclass(frozen=True)
class CheckResult:
    check_id: UUID
    journal_entry_id: UUID
    amount: Decimal


class CardTransactionType(str, Enum):
    """Purchases raise the card balance; refunds lower it."""

    PURCHASE = "purchase"
    REFUND = "refund"


@dataclass(frozen=True)
class CardTransactionInput:
    """Header of a credit card purchase or refund; the amount is the line total."""

    card_account_id: UUID
    transaction_date: date
    transaction_type: CardTransactionType = CardTransactionType.PURCHASE
    vendor: str | None = None
    project_id: UUID | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "transaction_type", CardTransactionType(self.transaction_type))


class CardLineInput(CheckLineInput):
    """Same rules as a check line: job cost to WIP, expense to its account."""


@dataclass(frozen=True)
class CardTransactionResult:
    transaction_id: UUID
    journal_entry_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class CardReversalResult:
    transaction_id: UUID
    reversal_transaction_id: UUID
    reversal_entry_id: UUID
    reversed_at: datetime
