"""
Ledger Modules.

Source document adapters over the ledger kernel and engines.  Each one
turns a business document into journal entries through ``JournalService``.

Modules:
- ap: Bills, purchase orders, bill payments, PO matching
- cash: Deposits and checks
- journal: Manual journal entries
- lots: Project lots and splitting job-cost lines across them
"""

from ledger_modules import ap, cash, journal, lots

__all__ = ["ap", "cash", "journal", "lots"]
