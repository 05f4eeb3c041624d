"""
Module: ledger_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines.  This is
    the canonical import surface for ledger_modules and ledger_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    MUST NOT import ledger_modules or ledger_services.

Invariants enforced:
    - Purity: engines never read the clock or touch a session.
    - Decimal-only arithmetic at cents precision; floats are rejected.
    - Determinism: identical inputs always produce identical outputs.
"""

from ledger_engines.lot_allocation import (
    AllocationMode,
    AllocationSession,
    LotAllocation,
    LotAllocationEngine,
    split_amount,
    split_by_weights,
)
from ledger_engines.po_matching import (
    BilledLine,
    BillLineSnapshot,
    BillMatchResult,
    BillSnapshot,
    MatchStatus,
    POMatch,
    POMatchingEngine,
    POSnapshot,
    RelatedBill,
)
from ledger_engines.tracer import traced_engine

__all__ = [
    "AllocationMode",
    "AllocationSession",
    "BilledLine",
    "BillLineSnapshot",
    "BillMatchResult",
    "BillSnapshot",
    "LotAllocation",
    "LotAllocationEngine",
    "MatchStatus",
    "POMatch",
    "POMatchingEngine",
    "POSnapshot",
    "RelatedBill",
    "split_amount",
    "split_by_weights",
    "traced_engine",
]
