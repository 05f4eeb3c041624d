"""
Configuration loader (``ledger_config.loader``).

Responsibility
--------------
Parses ledger YAML into ``LedgerConfig`` and binds a config to one owner's
chart of accounts, producing ``LedgerAccounts``.

Invariants enforced
-------------------
* Binding happens at configuration time: a missing A/P or job-cost account,
  or a missing customer-deposit equity account while customer deposits are
  enabled, is reported here rather than at the first deposit.
* The customer-deposit account must be an equity account.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` from ``LedgerConfig``.
* ``MissingConfigurationError`` / ``MissingEquityAccountError`` from
  ``bind_ledger_accounts``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from uuid import UUID

import yaml
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerAccounts, LedgerConfig
from ledger_kernel.exceptions import MissingConfigurationError, MissingEquityAccountError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.services.account_service import AccountService

logger = get_logger("config.loader")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "ledger.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_ledger_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Build a ``LedgerConfig`` from parsed YAML.

    Absent keys keep their defaults.  Codes are read as strings so that
    unquoted YAML numbers (``2010``) still work.
    """
    accounts = data.get("accounts") or {}
    kwargs: dict[str, Any] = {}
    if "accounts_payable" in accounts:
        kwargs["accounts_payable_code"] = str(accounts["accounts_payable"])
    if "job_cost" in accounts:
        kwargs["job_cost_code"] = str(accounts["job_cost"])
    if "customer_deposit" in accounts:
        kwargs["customer_deposit_account_code"] = str(accounts["customer_deposit"])
    if "money_tolerance" in data:
        kwargs["money_tolerance"] = str(data["money_tolerance"])
    if "customer_deposits_enabled" in data:
        kwargs["customer_deposits_enabled"] = bool(data["customer_deposits_enabled"])
    return LedgerConfig(**kwargs)


def load_ledger_config(path: str | Path | None = None) -> LedgerConfig:
    """Read a ledger YAML file (the packaged default when ``path`` is None)."""
    path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_ledger_config(load_yaml_file(path))
    logger.info(
        "ledger_config_loaded",
        extra={
            "path": str(path),
            "accounts_payable_code": config.accounts_payable_code,
            "job_cost_code": config.job_cost_code,
            "customer_deposit_account_code": config.customer_deposit_account_code,
        },
    )
    return config


def bind_ledger_accounts(
    session: Session,
    owner_id: UUID,
    config: LedgerConfig | None = None,
) -> LedgerAccounts:
    """
    Resolve the configured account codes to ids for ``owner_id``.

    Raises:
        MissingConfigurationError: A/P or job-cost account absent.
        MissingEquityAccountError: customer deposits enabled but the
            equity account is absent or not an equity account.
    """
    config = config or LedgerConfig()
    accounts = AccountService(session)

    def _require(setting: str, code: str) -> Account:
        account = accounts.find_by_code(owner_id, code)
        if account is None:
            logger.error(
                "ledger_account_missing",
                extra={"owner_id": str(owner_id), "setting": setting, "account_code": code},
            )
            raise MissingConfigurationError(
                setting, f"Account {code} for {setting} is not configured"
            )
        return account

    payable = _require("accounts_payable", config.accounts_payable_code)
    job_cost = _require("job_cost", config.job_cost_code)

    deposit_id = None
    if config.customer_deposits_enabled:
        deposit = accounts.find_by_code(owner_id, config.customer_deposit_account_code)
        if deposit is None or deposit.account_type != AccountType.EQUITY.value:
            logger.error(
                "customer_deposit_account_missing",
                extra={
                    "owner_id": str(owner_id),
                    "account_code": config.customer_deposit_account_code,
                },
            )
            raise MissingEquityAccountError(config.customer_deposit_account_code)
        deposit_id = deposit.id

    return LedgerAccounts(
        owner_id=owner_id,
        accounts_payable_id=payable.id,
        job_cost_id=job_cost.id,
        customer_deposit_id=deposit_id,
        customer_deposit_code=config.customer_deposit_account_code,
        money_tolerance=config.money_tolerance,
    )
