"""
Ledger Kernel

A double-entry ledger core for homebuilder accounting with:
- Balanced, append-only journal entries (reversal, never edit)
- Derived account balances
- Project-scoped period locking with audited reopen
- Explicit tenant (owner) scope on every call
"""

__version__ = "0.1.0"
