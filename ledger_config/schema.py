"""
Ledger configuration schema (``ledger_config.schema``).

Responsibility
--------------
Declares which accounts the source document adapters post to, by account
code, plus the money tolerance used when user-entered amounts are compared
against a document total.  Defaults match the standard homebuilder chart
of accounts.

Architecture position
---------------------
**Config layer**.  ``LedgerConfig`` is the human-authored side (codes);
``LedgerAccounts`` is the runtime side (ids bound for one owner by
``ledger_config.loader.bind_ledger_accounts``).  The kernel never imports
this package.

Invariants enforced
-------------------
* Account codes are non-empty strings.
* ``money_tolerance`` is a non-negative ``Decimal`` (never ``float``).

Failure modes
-------------
* ``ValueError`` at construction if any constraint is violated.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from ledger_kernel.logging_config import get_logger

logger = get_logger("config.schema")

DEFAULT_ACCOUNTS_PAYABLE_CODE = "2010"
DEFAULT_JOB_COST_CODE = "1430"
DEFAULT_CUSTOMER_DEPOSIT_CODE = "2905"


@dataclass
class LedgerConfig:
    """
    Account-code mapping and tolerances for one deployment.

        config = LedgerConfig(customer_deposit_account_code="2950")
    """

    accounts_payable_code: str = DEFAULT_ACCOUNTS_PAYABLE_CODE
    job_cost_code: str = DEFAULT_JOB_COST_CODE
    customer_deposit_account_code: str = DEFAULT_CUSTOMER_DEPOSIT_CODE
    money_tolerance: Decimal = field(default_factory=lambda: Decimal("0.01"))
    customer_deposits_enabled: bool = True

    def __post_init__(self):
        if isinstance(self.money_tolerance, float):
            raise ValueError("money_tolerance must be a Decimal or string, not float")
        self.money_tolerance = Decimal(str(self.money_tolerance))
        if self.money_tolerance < 0:
            raise ValueError("money_tolerance cannot be negative")
        for name in (
            "accounts_payable_code",
            "job_cost_code",
            "customer_deposit_account_code",
        ):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} cannot be empty")
            setattr(self, name, value.strip())
        logger.debug(
            "ledger_config_initialized",
            extra={
                "accounts_payable_code": self.accounts_payable_code,
                "job_cost_code": self.job_cost_code,
                "customer_deposit_account_code": self.customer_deposit_account_code,
                "money_tolerance": str(self.money_tolerance),
                "customer_deposits_enabled": self.customer_deposits_enabled,
            },
        )


@dataclass(frozen=True)
class LedgerAccounts:
    """
    Account ids resolved for one owner.

    ``customer_deposit_id`` is None only when customer deposits are
    disabled in the configuration.
    """

    owner_id: UUID
    accounts_payable_id: UUID
    job_cost_id: UUID
    customer_deposit_id: UUID | None = None
    customer_deposit_code: str = DEFAULT_CUSTOMER_DEPOSIT_CODE
    money_tolerance: Decimal = Decimal("0.01")
