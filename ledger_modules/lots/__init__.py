"""Project lots (``ledger_modules.lots``)."""

from ledger_modules.lots.service import LotService, LotSplitResult

__all__ = ["LotService", "LotSplitResult"]
