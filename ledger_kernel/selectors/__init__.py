"""Read-only query selectors."""

from ledger_kernel.selectors.ledger_selector import (
    AccountBalance,
    LedgerLine,
    LedgerSelector,
)

__all__ = [
    "AccountBalance",
    "LedgerLine",
    "LedgerSelector",
]
