"""
Cash Module (``ledger_modules.cash``).

Deposits into and checks out of bank accounts, each recorded as one
journal entry whose first line hits the bank account, and purchases and
refunds charged to credit card accounts.
"""

from ledger_modules.cash.credit_cards import CreditCardService
from ledger_modules.cash.models import (
    CardLineInput,
    CardReversalResult,
    CardTransactionInput,
    CardTransactionResult,
    CardTransactionType,
    CheckInput,
    CheckLineInput,
    CheckResult,
    DepositInput,
    DepositLineInput,
    DepositLineType,
    DepositResult,
)
from ledger_modules.cash.orm import (
    Check,
    CheckLine,
    CreditCardLine,
    CreditCardTransaction,
    Deposit,
    DepositLine,
)
from ledger_modules.cash.service import CashService

__all__ = [
    "CardLineInput",
    "CardReversalResult",
    "CardTransactionInput",
    "CardTransactionResult",
    "CardTransactionType",
    "CashService",
    "Check",
    "CheckInput",
    "CheckLine",
    "CheckLineInput",
    "CheckResult",
    "CreditCardLine",
    "CreditCardService",
    "CreditCardTransaction",
    "Deposit",
    "DepositInput",
    "DepositLine",
    "DepositLineInput",
    "DepositLineType",
    "DepositResult",
]
