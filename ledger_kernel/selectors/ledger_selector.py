"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: account balances, trial balance,
    and the line-level ledger view.  The ledger is a derived view over posted
    journal lines; no balance is stored anywhere.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Only posted entries count (posted_at IS NOT NULL).  Drafts never move
      a balance.  Reversed entries still count; their reversal offsets them.
    - All balances are Decimal quantized to cents.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, to_money
from ledger_kernel.models.account import Account, NormalBalance, normal_balance_for
from ledger_kernel.models.journal import JournalEntry, JournalEntryLine
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AccountBalance:
    """Balance for a single account."""

    account_id: UUID
    account_code: str
    account_name: str
    normal_balance: NormalBalance
    debit_total: Decimal
    credit_total: Decimal

    @property
    def net(self) -> Decimal:
        """Debits minus credits."""
        return self.debit_total - self.credit_total

    @property
    def balance(self) -> Decimal:
        """Balance in the account's normal sign."""
        if self.normal_balance == NormalBalance.DEBIT:
            return self.net
        return -self.net


@dataclass(frozen=True)
class LedgerLine:
    """A single posted line in the ledger view."""

    journal_entry_id: UUID
    journal_line_id: UUID
    entry_date: date
    account_id: UUID
    debit: Decimal
    credit: Decimal
    memo: str | None
    project_id: UUID | None
    lot_id: UUID | None
    cost_code_id: UUID | None
    reconciled: bool


class LedgerSelector(BaseSelector[JournalEntryLine]):
    """Balance computation over posted journal lines."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _posted(self, owner_id: UUID, as_of: date | None):
        conditions = [
            JournalEntry.owner_id == owner_id,
            JournalEntry.posted_at.is_not(None),
        ]
        if as_of is not None:
            conditions.append(JournalEntry.entry_date <= as_of)
        return conditions

    def account_balance(
        self,
        owner_id: UUID,
        account_id: UUID,
        as_of: date | None = None,
        project_id: UUID | None = None,
    ) -> AccountBalance:
        """Balance of one account; zero when it has no activity."""
        account = self.session.get(Account, account_id)
        stmt = (
            select(
                func.coalesce(func.sum(JournalEntryLine.debit), 0),
                func.coalesce(func.sum(JournalEntryLine.credit), 0),
            )
            .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
            .where(JournalEntryLine.account_id == account_id, *self._posted(owner_id, as_of))
        )
        if project_id is not None:
            stmt = stmt.where(JournalEntryLine.project_id == project_id)
        debits, credits = self.session.execute(stmt).one()

        return AccountBalance(
            account_id=account_id,
            account_code=account.code if account else "",
            account_name=account.name if account else "",
            normal_balance=(
                normal_balance_for(account.account_type) if account else NormalBalance.DEBIT
            ),
            debit_total=to_money(Decimal(str(debits))),
            credit_total=to_money(Decimal(str(credits))),
        )

    def trial_balance(
        self,
        owner_id: UUID,
        as_of: date | None = None,
    ) -> list[AccountBalance]:
        """Per-account totals for every account with posted activity, by code."""
        stmt = (
            select(
                Account.id,
                Account.code,
                Account.name,
                Account.account_type,
                func.sum(JournalEntryLine.debit),
                func.sum(JournalEntryLine.credit),
            )
            .join(JournalEntryLine, JournalEntryLine.account_id == Account.id)
            .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
            .where(*self._posted(owner_id, as_of))
            .group_by(Account.id, Account.code, Account.name, Account.account_type)
            .order_by(Account.code)
        )
        return [
            AccountBalance(
                account_id=account_id,
                account_code=code,
                account_name=name,
                normal_balance=normal_balance_for(account_type),
                debit_total=to_money(Decimal(str(debits or 0))),
                credit_total=to_money(Decimal(str(credits or 0))),
            )
            for account_id, code, name, account_type, debits, credits in self.session.execute(stmt).all()
        ]

    def total_debits_credits(
        self, owner_id: UUID, as_of: date | None = None
    ) -> tuple[Decimal, Decimal]:
        rows = self.trial_balance(owner_id, as_of)
        return (
            sum((row.debit_total for row in rows), ZERO),
            sum((row.credit_total for row in rows), ZERO),
        )

    def query(
        self,
        owner_id: UUID,
        account_id: UUID | None = None,
        as_of: date | None = None,
        project_id: UUID | None = None,
        lot_id: UUID | None = None,
        reconciled: bool | None = None,
    ) -> list[LedgerLine]:
        """Posted lines, oldest first, with optional filters."""
        stmt = (
            select(JournalEntryLine, JournalEntry.entry_date)
            .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
            .where(*self._posted(owner_id, as_of))
        )
        if account_id is not None:
            stmt = stmt.where(JournalEntryLine.account_id == account_id)
        if project_id is not None:
            stmt = stmt.where(JournalEntryLine.project_id == project_id)
        if lot_id is not None:
            stmt = stmt.where(JournalEntryLine.lot_id == lot_id)
        if reconciled is not None:
            stmt = stmt.where(JournalEntryLine.reconciled.is_(reconciled))
        stmt = stmt.order_by(JournalEntry.entry_date, JournalEntryLine.line_number)

        return [
            LedgerLine(
                journal_entry_id=line.journal_entry_id,
                journal_line_id=line.id,
                entry_date=entry_date,
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                memo=line.memo,
                project_id=line.project_id,
                lot_id=line.lot_id,
                cost_code_id=line.cost_code_id,
                reconciled=line.reconciled,
            )
            for line, entry_date in self.session.execute(stmt).all()
        ]
