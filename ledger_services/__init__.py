"""
ledger_services -- Cross-module orchestration services.

Responsibility:
    Services that span kernel tables and module tables.  Today that is bank
    reconciliation, which clears rows in checks, deposits, bills, bill
    payments and journal entry lines.

Architecture position:
    Services -- top layer.
        ledger_services/ -> ledger_modules/, ledger_engines/, ledger_kernel/  (allowed)
        ledger_kernel/   -> ledger_services/                                  (FORBIDDEN)
"""

from ledger_services.reconciliation_service import (
    ReconciliationClearResult,
    ReconciliationService,
    TransactionKind,
)

__all__ = [
    "ReconciliationClearResult",
    "ReconciliationService",
    "TransactionKind",
]
