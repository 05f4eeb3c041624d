"""
Module: ledger_kernel.models.bank_reconciliation
Responsibility: ORM persistence for bank statement reconciliation sessions.
Architecture position: Kernel > Models.

State machine:
    in_progress --complete--> completed
    in_progress --reset/discard--> (row deleted, transactions released)
    completed   --undo--> (row deleted, transactions released)

Invariants enforced:
    - The row is only deleted after every check, deposit, bill, bill payment
      and journal entry line referencing it has had its reconciliation
      columns cleared, in the same transaction (ReconciliationService).
    - version guards concurrent edits (optimistic locking).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import ZERO


class ReconciliationStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class BankReconciliation(TrackedBase):
    """A reconciliation of one bank account against one statement."""

    __tablename__ = "bank_reconciliations"

    __table_args__ = (
        Index("idx_recon_bank_project", "owner_id", "bank_account_id", "project_id"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )

    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    statement_date: Mapped[date] = mapped_column(nullable=False)

    statement_beginning_balance: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    statement_ending_balance: Mapped[Decimal] = mapped_column(nullable=False)

    reconciled_balance: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    difference: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    status: Mapped[ReconciliationStatus] = mapped_column(
        String(20), default=ReconciliationStatus.IN_PROGRESS.value, nullable=False
    )

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    completed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<BankReconciliation {self.statement_date} ({self.status})>"

    @property
    def is_in_progress(self) -> bool:
        return self.status == ReconciliationStatus.IN_PROGRESS
