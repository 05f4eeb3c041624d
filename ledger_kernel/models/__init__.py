"""ORM models owned by the kernel."""

from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.accounting_period import AccountingPeriod, PeriodStatus
from ledger_kernel.models.bank_reconciliation import (
    BankReconciliation,
    ReconciliationStatus,
)
from ledger_kernel.models.journal import JournalEntry, JournalEntryLine, SourceType
from ledger_kernel.models.project_lot import ProjectLot

__all__ = [
    "Account",
    "AccountType",
    "AccountingPeriod",
    "BankReconciliation",
    "JournalEntry",
    "JournalEntryLine",
    "NormalBalance",
    "PeriodStatus",
    "ProjectLot",
    "ReconciliationStatus",
    "SourceType",
]
