"""Tests for ledger YAML loading and account binding."""

from decimal import Decimal
from uuid import uuid4

import pytest
import yaml

from ledger_config import (
    DEFAULT_CONFIG_PATH,
    LedgerConfig,
    bind_ledger_accounts,
    load_ledger_config,
    parse_ledger_config,
)
from ledger_kernel.exceptions import MissingConfigurationError, MissingEquityAccountError
from ledger_kernel.models.account import AccountType


class TestLedgerConfig:

    def test_defaults(self):
        config = LedgerConfig()
        assert config.accounts_payable_code == "2010"
        assert config.job_cost_code == "1430"
        assert config.customer_deposit_account_code == "2905"
        assert config.money_tolerance == Decimal("0.01")

    def test_float_tolerance_rejected(self):
        with pytest.raises(ValueError):
            LedgerConfig(money_tolerance=0.01)

    def test_negative_tolerance_rejected(self):
        with pytest.raises(ValueError):
            LedgerConfig(money_tolerance=Decimal("-0.01"))

    def test_blank_code_rejected(self):
        with pytest.raises(ValueError):
            LedgerConfig(job_cost_code="  ")


class TestLoadLedgerConfig:

    def test_packaged_defaults(self):
        assert DEFAULT_CONFIG_PATH.exists()
        config = load_ledger_config()
        assert config.accounts_payable_code == "2010"
        assert config.customer_deposits_enabled is True

    def test_unquoted_codes_read_as_strings(self):
        config = parse_ledger_config({"accounts": {"accounts_payable": 2020, "customer_deposit": 2950}})
        assert config.accounts_payable_code == "2020"
        assert config.customer_deposit_account_code == "2950"
        assert config.job_cost_code == "1430"

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "accounts": {"job_cost": "1440"},
                    "money_tolerance": "0.05",
                    "customer_deposits_enabled": False,
                }
            )
        )
        config = load_ledger_config(path)
        assert config.job_cost_code == "1440"
        assert config.money_tolerance == Decimal("0.05")
        assert config.customer_deposits_enabled is False

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_ledger_config(path) == LedgerConfig()

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_ledger_config(tmp_path / "nope.yaml")


class TestBindLedgerAccounts:

    def test_binds_ids_for_owner(self, session, owner_id, accounts):
        bound = bind_ledger_accounts(session, owner_id, LedgerConfig())
        assert bound.owner_id == owner_id
        assert bound.accounts_payable_id == accounts["2010"].id
        assert bound.job_cost_id == accounts["1430"].id
        assert bound.customer_deposit_id == accounts["2905"].id

    def test_missing_payable_account(self, session, account_service, test_actor_id):
        owner = uuid4()
        account_service.create_account(owner, "1430", "WIP", AccountType.ASSET, test_actor_id)
        with pytest.raises(MissingConfigurationError):
            bind_ledger_accounts(session, owner, LedgerConfig())

    def test_missing_customer_deposit_account(self, session, account_service, test_actor_id, captured_logs):
        owner = uuid4()
        account_service.create_account(owner, "2010", "A/P", AccountType.LIABILITY, test_actor_id)
        account_service.create_account(owner, "1430", "WIP", AccountType.ASSET, test_actor_id)

        with pytest.raises(MissingEquityAccountError) as exc_info:
            bind_ledger_accounts(session, owner, LedgerConfig())
        assert exc_info.value.account_code == "2905"
        assert any(r["message"] == "customer_deposit_account_missing" for r in captured_logs())

    def test_customer_deposit_account_must_be_equity(self, session, account_service, test_actor_id):
        owner = uuid4()
        account_service.create_account(owner, "2010", "A/P", AccountType.LIABILITY, test_actor_id)
        account_service.create_account(owner, "1430", "WIP", AccountType.ASSET, test_actor_id)
        account_service.create_account(owner, "2905", "Deposits", AccountType.LIABILITY, test_actor_id)
        with pytest.raises(MissingEquityAccountError):
            bind_ledger_accounts(session, owner, LedgerConfig())

    def test_disabled_customer_deposits_skip_check(self, session, account_service, test_actor_id):
        owner = uuid4()
        account_service.create_account(owner, "2010", "A/P", AccountType.LIABILITY, test_actor_id)
        account_service.create_account(owner, "1430", "WIP", AccountType.ASSET, test_actor_id)
        bound = bind_ledger_accounts(session, owner, LedgerConfig(customer_deposits_enabled=False))
        assert bound.customer_deposit_id is None
