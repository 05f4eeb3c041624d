"""
Cash ORM Models (``ledger_modules.cash.orm``).

Responsibility
--------------
SQLAlchemy persistence for deposits, checks and credit card transactions
and their lines.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``ledger_kernel.db.base``.
MUST NOT be imported by ``ledger_kernel``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import ReconcilableMixin, TrackedBase, UUIDString


# ---------------------------------------------------------------------------
# 1. Deposit / DepositLine
# ---------------------------------------------------------------------------


class Deposit(ReconcilableMixin, TrackedBase):
    """
    Money received into a bank account.

    Guarantees:
        - amount equals the sum of the lines (CashService).
        - journal_entry_id points at the entry whose first line debits the
          bank account.
    """

    __tablename__ = "deposits"

    __table_args__ = (Index("idx_deposits_owner_date", "owner_id", "deposit_date"),)

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    deposit_date: Mapped[date] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    lines: Mapped[list["DepositLine"]] = relationship(
        back_populates="deposit",
        cascade="all, delete-orphan",
        order_by="DepositLine.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Deposit {self.deposit_date} {self.amount}>"


class DepositLine(TrackedBase):
    """One credited line of a deposit; journal_line_id is its journal credit."""

    __tablename__ = "deposit_lines"

    deposit_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("deposits.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    line_type: Mapped[str] = mapped_column(String(20), nullable=False)
    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )
    cost_code_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("project_lots.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    journal_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entry_lines.id"), nullable=True
    )

    deposit: Mapped[Deposit] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<DepositLine {self.line_number} {self.line_type} {self.amount}>"


# ---------------------------------------------------------------------------
# 2. Check / CheckLine
# ---------------------------------------------------------------------------


class Check(ReconcilableMixin, TrackedBase):
    """A check (or other direct payment) written from a bank account."""

    __tablename__ = "checks"

    __table_args__ = (Index("idx_checks_owner_date", "owner_id", "check_date"),)

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    check_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    check_date: Mapped[date] = mapped_column(nullable=False)
    pay_to: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    lines: Mapped[list["CheckLine"]] = relationship(
        back_populates="check",
        cascade="all, delete-orphan",
        order_by="CheckLine.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Check {self.check_number or self.id} {self.amount}>"


class CheckLine(TrackedBase):
    __tablename__ = "check_lines"

    check_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("checks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    line_type: Mapped[str] = mapped_column(String(20), nullable=False)
    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )
    cost_code_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("project_lots.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    journal_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entry_lines.id"), nullable=True
    )

    check: Mapped[Check] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<CheckLine {self.line_number} {self.line_type} {self.amount}>"


# ---------------------------------------------------------------------------
# 3. CreditCardTransaction / CreditCardLine
# ---------------------------------------------------------------------------


class CreditCardTransaction(ReconcilableMixin, TrackedBase):
    """
    A purchase or refund charged to a credit card (liability) account.

    Guarantees:
        - amount is the sum of the lines.
        - A purchase credits the card and debits each line; a refund is the
          mirror image.
        - A reversal row carries the same amount and type, is_reversal set
          and reversal_of_id pointing at the original, whose reversed_at is
          stamped.
    """

    __tablename__ = "credit_card_transactions"

    __table_args__ = (
        Index("idx_card_transactions_owner_date", "owner_id", "transaction_date"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    card_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    transaction_date: Mapped[date] = mapped_column(nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(10), nullable=False)
    vendor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_reversal: Mapped[bool] = mapped_column(default=False, nullable=False)
    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("credit_card_transactions.id"), nullable=True
    )
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    lines: Mapped[list["CreditCardLine"]] = relationship(
        back_populates="card_transaction",
        cascade="all, delete-orphan",
        order_by="CreditCardLine.line_number",
        lazy="selectin",
    )

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None

    def __repr__(self) -> str:
        return f"<CreditCardTransaction {self.transaction_type} {self.amount}>"


class CreditCardLine(TrackedBase):
    __tablename__ = "credit_card_lines"

    card_transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("credit_card_transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    line_type: Mapped[str] = mapped_column(String(20), nullable=False)
    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )
    cost_code_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("project_lots.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    journal_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entry_lines.id"), nullable=True
    )

    card_transaction: Mapped[CreditCardTransaction] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<CreditCardLine {self.line_number} {self.line_type} {self.amount}>"
