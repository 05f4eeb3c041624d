"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every journal line.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique within an owner (uq_account_owner_code).
    - account_type is immutable after creation (db/immutability.py); changing
      it would change the meaning of every historical report.

Audit relevance:
    Balances are never stored on the account; they are derived by summing
    posted journal lines (selectors/ledger_selector.py).
"""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalEntryLine


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


_NORMAL_BALANCE_BY_TYPE = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}


def normal_balance_for(account_type: AccountType | str) -> NormalBalance:
    return _NORMAL_BALANCE_BY_TYPE[AccountType(account_type)]


class Account(TrackedBase):
    """
    Chart of accounts entry, owned by a single tenant.

    Contract:
        (owner_id, code) is unique.  parent_id links sub-accounts into a
        hierarchy ordered by code.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("owner_id", "code", name="uq_account_owner_code"),
        Index("idx_account_owner_type", "owner_id", "account_type"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    journal_lines: Mapped[list["JournalEntryLine"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def normal_balance(self) -> NormalBalance:
        return normal_balance_for(self.account_type)

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    @property
    def can_fund_payments(self) -> bool:
        """Bank/cash (asset) or credit card (liability) accounts."""
        return self.account_type in (AccountType.ASSET, AccountType.LIABILITY)
