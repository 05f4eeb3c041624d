"""Manual journal entries (``ledger_modules.journal``)."""

from ledger_modules.journal.service import ManualJournalService, ManualLineInput

__all__ = ["ManualJournalService", "ManualLineInput"]
