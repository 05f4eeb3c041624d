"""
Credit card service (``ledger_modules.cash.credit_cards``).

Responsibility:
    Record purchases and refunds charged to a credit card account, and
    reverse them.

Architecture position:
    Modules layer.  Posts through ``JournalService``; line accounts follow
    the same job-cost/expense rules as checks.

Invariants enforced:
    - Purchase entry: one debit per line (job cost to WIP with project,
      cost code and lot tags; expense to the line's account), then one
      credit to the card for the total.  A refund swaps every side.
    - The card line carries no project: the card balance is company-wide.
    - amount is the sum of the lines; every line is positive.
    - Reversal posts the mirror entry via ``JournalService.reverse_entry``
      and adds a reversal row with negated amounts, linked to the original.

Failure modes:
    - ValidationError: no lines, a non-positive line, a card account that
      is not a liability, a job-cost line without project or cost code, an
      expense line without an account.
    - UnknownAccountError, UnknownLotError, ClosedPeriodError.
    - ReversedEntryError / ReconciledTransactionError when reversing a
      reversed, reversal or reconciled transaction.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerAccounts
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import EntryMeta, LineInput
from ledger_kernel.domain.permissions import PermissionChecker
from ledger_kernel.exceptions import (
    EntityNotFoundError,
    ReconciledTransactionError,
    ReversedEntryError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.journal import JournalEntry, SourceType
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService
from ledger_modules._posting_helpers import cost_line_accounts, require_lots, require_positive
from ledger_modules.cash.models import (
    CardLineInput,
    CardReversalResult,
    CardTransactionInput,
    CardTransactionResult,
    CardTransactionType,
)
from ledger_modules.cash.orm import CreditCardLine, CreditCardTransaction

logger = get_logger("modules.cash.credit_cards")


class CreditCardService(BaseService[CreditCardTransaction]):
    """Flush-only; the caller owns the transaction."""

    def __init__(
        self,
        session: Session,
        accounts: LedgerAccounts,
        clock: Clock | None = None,
        permissions: PermissionChecker | None = None,
        journal: JournalService | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = accounts
        self._journal = journal or JournalService(session, self._clock, permissions)
        self._periods = self._journal.periods
        self._accounts = AccountService(session, self._clock)

    def record_card_transaction(
        self,
        owner_id: UUID,
        transaction: CardTransactionInput,
        lines: Sequence[CardLineInput],
        actor_id: UUID,
    ) -> CardTransactionResult:
        """Record a purchase (credit the card) or a refund (debit the card)."""
        if not lines:
            raise ValidationError("At least one line item is required", field="lines")
        for line in lines:
            require_positive(line.amount, field="lines")
        card = self._accounts.require_account(owner_id, transaction.card_account_id)
        if AccountType(card.account_type) != AccountType.LIABILITY:
            raise ValidationError(
                f"Account {card.code} is not a credit card account",
                field="card_account_id",
            )

        line_accounts = cost_line_accounts(self._ledger.job_cost_id, transaction.project_id, lines)
        self._accounts.require_accounts(owner_id, set(line_accounts))
        require_lots(self.session, owner_id, {line.lot_id for line in lines})
        self._periods.assert_date_open(owner_id, transaction.project_id, transaction.transaction_date)

        purchase = transaction.transaction_type == CardTransactionType.PURCHASE
        total = sum((line.amount for line in lines), ZERO)

        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.atomic():
                row = CreditCardTransaction(
                    owner_id=owner_id,
                    card_account_id=transaction.card_account_id,
                    project_id=transaction.project_id,
                    transaction_date=transaction.transaction_date,
                    transaction_type=transaction.transaction_type.value,
                    vendor=transaction.vendor,
                    amount=total,
                    memo=transaction.memo,
                    created_by_id=actor_id,
                )
                for number, line in enumerate(lines, start=1):
                    row.lines.append(
                        CreditCardLine(
                            line_number=number,
                            line_type=line.line_type.value,
                            account_id=line.account_id,
                            cost_code_id=line.cost_code_id,
                            lot_id=line.lot_id,
                            amount=line.amount,
                            memo=line.memo,
                            created_by_id=actor_id,
                        )
                    )
                self.session.add(row)
                self.flush()

                side = LineInput.dr if purchase else LineInput.cr
                cost_lines = [
                    side(
                        account_id,
                        line.amount,
                        memo=line.memo,
                        project_id=transaction.project_id,
                        lot_id=line.lot_id,
                        cost_code_id=line.cost_code_id,
                    )
                    for line, account_id in zip(row.lines, line_accounts)
                ]
                if purchase:
                    entry_lines = cost_lines + [
                        LineInput.cr(transaction.card_account_id, total, memo=transaction.memo)
                    ]
                else:
                    entry_lines = [
                        LineInput.dr(transaction.card_account_id, total, memo=transaction.memo)
                    ] + cost_lines

                label = "Purchase" if purchase else "Refund"
                entry = self._journal.post_entry(
                    owner_id,
                    entry_lines,
                    EntryMeta(
                        entry_date=transaction.transaction_date,
                        source_type=SourceType.CREDIT_CARD,
                        source_id=row.id,
                        description=f"{label} - {transaction.vendor}" if transaction.vendor else label,
                        project_id=transaction.project_id,
                    ),
                    actor_id,
                )
                row.journal_entry_id = entry.id
                journal_lines = entry.lines[:-1] if purchase else entry.lines[1:]
                for line, journal_line in zip(row.lines, journal_lines):
                    line.journal_line_id = journal_line.id

            logger.info(
                "card_transaction_recorded",
                extra={
                    "transaction_id": str(row.id),
                    "entry_id": str(entry.id),
                    "transaction_type": row.transaction_type,
                    "amount": str(total),
                },
            )
        return CardTransactionResult(transaction_id=row.id, journal_entry_id=entry.id, amount=total)

    def reverse_card_transaction(
        self,
        transaction_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        reversal_date: date | None = None,
    ) -> CardReversalResult:
        """
        Reverse a card transaction.

        The entry is reversed and a reversal row with negated line amounts
        records it; the original is stamped reversed.
        """
        row = self.get_card_transaction(transaction_id, owner_id)
        if row.is_reversal or row.is_reversed:
            raise ReversedEntryError("CreditCardTransaction", str(transaction_id))
        if row.reconciled:
            raise ReconciledTransactionError("CreditCardTransaction", str(transaction_id))

        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.atomic():
                result = self._journal.reverse_entry(
                    row.journal_entry_id,
                    owner_id,
                    actor_id,
                    reversal_date=reversal_date,
                    description=f"Reversal of card transaction {row.vendor or row.id}",
                )
                reversal_entry = self.session.get(JournalEntry, result.reversal_entry_id)
                reversal = CreditCardTransaction(
                    owner_id=owner_id,
                    card_account_id=row.card_account_id,
                    project_id=row.project_id,
                    transaction_date=reversal_entry.entry_date,
                    transaction_type=row.transaction_type,
                    vendor=row.vendor,
                    amount=-row.amount,
                    memo=f"REVERSAL: {row.memo or ''}".strip(),
                    is_reversal=True,
                    reversal_of_id=row.id,
                    journal_entry_id=reversal_entry.id,
                    created_by_id=actor_id,
                )
                original_entry = self.session.get(JournalEntry, row.journal_entry_id)
                # reverse_entry mirrors the original lines in order
                mirrors = {
                    line.id: mirror.id
                    for line, mirror in zip(original_entry.lines, reversal_entry.lines)
                }
                for line in row.lines:
                    reversal.lines.append(
                        CreditCardLine(
                            line_number=line.line_number,
                            line_type=line.line_type,
                            account_id=line.account_id,
                            cost_code_id=line.cost_code_id,
                            lot_id=line.lot_id,
                            amount=-line.amount,
                            memo=line.memo,
                            journal_line_id=mirrors.get(line.journal_line_id),
                            created_by_id=actor_id,
                        )
                    )
                self.session.add(reversal)
                row.reversed_at = result.reversed_at
                row.updated_by_id = actor_id

            logger.info(
                "card_transaction_reversed",
                extra={
                    "transaction_id": str(row.id),
                    "reversal_transaction_id": str(reversal.id),
                    "reversal_entry_id": str(result.reversal_entry_id),
                },
            )
        return CardReversalResult(
            transaction_id=row.id,
            reversal_transaction_id=reversal.id,
            reversal_entry_id=result.reversal_entry_id,
            reversed_at=result.reversed_at,
        )

    def get_card_transaction(self, transaction_id: UUID, owner_id: UUID) -> CreditCardTransaction:
        row = self.session.get(CreditCardTransaction, transaction_id)
        if row is None or row.owner_id != owner_id:
            raise EntityNotFoundError("credit card transaction", str(transaction_id))
        return row
