"""
ledger_config -- account mapping for the source document adapters.

Usage:
    from ledger_config import bind_ledger_accounts, load_ledger_config

    accounts = bind_ledger_accounts(session, owner_id, load_ledger_config())
"""

from ledger_config.loader import (
    DEFAULT_CONFIG_PATH,
    bind_ledger_accounts,
    load_ledger_config,
    parse_ledger_config,
)
from ledger_config.schema import LedgerAccounts, LedgerConfig

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "LedgerAccounts",
    "LedgerConfig",
    "bind_ledger_accounts",
    "load_ledger_config",
    "parse_ledger_config",
]
