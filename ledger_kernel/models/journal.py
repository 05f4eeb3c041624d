"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and their lines -- the
    single source of truth for every financial event.
Architecture position: Kernel > Models.  May import from db/base.py and
    models/account.py.

Invariants enforced:
    - A posted entry balances: sum(debit) == sum(credit), exact to the cent
      (validated by JournalService before posted_at is stamped).
    - Each line is one-sided: exactly one of debit/credit is nonzero and the
      other is exactly 0 (ck_line_one_sided).
    - Posted entries are append-only (db/immutability.py).  Corrections are
      reversals; reversed_at marks the original, is_reversal marks the new
      entry.

Audit relevance:
    source_type/source_id are weak back-references to the document (bill,
    payment, deposit, check) that produced the entry; they are lookup keys,
    not ownership.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import ReconcilableMixin, TrackedBase, UUIDString
from ledger_kernel.db.types import ZERO
from ledger_kernel.models.account import Account


class SourceType(str, Enum):
    """Kinds of source documents that produce journal entries."""

    BILL = "bill"
    BILL_PAYMENT = "bill_payment"
    DEPOSIT = "deposit"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    JOURNAL_ENTRY = "journal_entry"


class JournalEntry(TrackedBase):
    """
    A dated, balanced set of journal lines recording one financial event.

    posted_at is null while the entry is a draft.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        Index("idx_journal_owner_date", "owner_id", "entry_date"),
        Index("idx_journal_source", "source_type", "source_id"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    entry_date: Mapped[date] = mapped_column(nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    source_type: Mapped[SourceType] = mapped_column(String(30), nullable=False)

    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_reversal: Mapped[bool] = mapped_column(default=False, nullable=False)

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    lines: Mapped[list["JournalEntryLine"]] = relationship(
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalEntryLine.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.id} {self.entry_date} {self.source_type}>"

    @property
    def is_posted(self) -> bool:
        return self.posted_at is not None

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def next_line_number(self) -> int:
        return max((line.line_number for line in self.lines), default=0) + 1


class JournalEntryLine(ReconcilableMixin, TrackedBase):
    """
    One side of a journal entry.

    project_id, lot_id and cost_code_id are optional job-cost dimensions.
    """

    __tablename__ = "journal_entry_lines"

    __table_args__ = (
        CheckConstraint(
            "(debit = 0 AND credit > 0) OR (credit = 0 AND debit > 0)",
            name="ck_line_one_sided",
        ),
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
        Index("idx_line_project_lot", "project_id", "lot_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    credit: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("project_lots.id"),
        nullable=True,
    )

    cost_code_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    # Set on lines a lot split added; the line they were carved from.
    split_from_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True, index=True)

    journal_entry: Mapped[JournalEntry] = relationship(back_populates="lines")

    account: Mapped[Account] = relationship(back_populates="journal_lines")

    def __repr__(self) -> str:
        side = f"Dr {self.debit}" if self.debit else f"Cr {self.credit}"
        return f"<JournalEntryLine {self.line_number} {self.account_id} {side}>"

    @property
    def signed_amount(self) -> Decimal:
        """Debit-positive amount."""
        return self.debit - self.credit
