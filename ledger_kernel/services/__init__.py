"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodCloseCheck, PeriodService

__all__ = [
    "AccountService",
    "JournalService",
    "PeriodCloseCheck",
    "PeriodService",
]
