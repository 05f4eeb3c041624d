"""
Cash Module Service (``ledger_modules.cash.service``).

Responsibility
--------------
Deposits and checks: record them as journal entries and keep the document,
its entry and its lines in step when an amount or date is edited.

Architecture position
---------------------
**Modules layer** -- source document adapter over ``JournalService``.

Invariants enforced
-------------------
* Deposit entry: line 1 debits the bank for the deposit amount; one credit
  per deposit line (revenue lines to their account, customer payments to
  the bound customer-deposit equity account with cost-code/lot tags).
* Check entry: line 1 credits the bank for the check amount; one debit per
  check line (job-cost lines to WIP with tags, expense lines to their
  account).
* Document amount == sum of lines within tolerance; the rounding cent lands
  on the last line.
* Edits run in one savepoint under the sanctioned-correction flag and
  touch only the document row, the entry date, the bank line and the
  line being changed (with any lot pieces split from it, which keep their
  proportions).  Old and new dates must both be open; reconciled or
  reversed documents are rejected.

Failure modes
-------------
* ValidationError, MissingEquityAccountError, UnknownAccountError,
  UnknownLotError, EntityNotFoundError, ClosedPeriodError,
  ReversedEntryError, ReconciledTransactionError.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerAccounts
from ledger_engines.lot_allocation import split_by_weights
from ledger_kernel.db.immutability import sanctioned_correction
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import EntryMeta, LineInput
from ledger_kernel.domain.permissions import PermissionChecker
from ledger_kernel.exceptions import (
    EntityNotFoundError,
    MissingEquityAccountError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import JournalEntry, JournalEntryLine, SourceType
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService
from ledger_modules._posting_helpers import (
    absorb_difference,
    bank_line,
    check_lines_total,
    cost_line_accounts,
    entry_line,
    guard_document_edit,
    require_lots,
    require_positive,
)
from ledger_modules.cash.models import (
    CheckInput,
    CheckLineInput,
    CheckResult,
    DepositInput,
    DepositLineInput,
    DepositLineType,
    DepositResult,
)
from ledger_modules.cash.orm import Check, CheckLine, Deposit, DepositLine

logger = get_logger("modules.cash.service")


class CashService(BaseService[Deposit]):
    """
    Orchestrates deposits and checks through the journal engine.

    Flush-only; the caller owns the transaction.
    """

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

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------

    def create_deposit(
        self,
        owner_id: UUID,
        deposit: DepositInput,
        lines: Sequence[DepositLineInput],
        actor_id: UUID,
    ) -> DepositResult:
        """Record a deposit: debit the bank, credit each line."""
        if not lines:
            raise ValidationError("A deposit requires at least one line", field="lines")
        require_positive(deposit.amount)
        for line in lines:
            require_positive(line.amount, field="lines")
        self._require_bank(owner_id, deposit.bank_account_id)

        credit_accounts = [self._deposit_account(line) for line in lines]
        self._accounts.require_accounts(owner_id, set(credit_accounts))
        require_lots(self.session, owner_id, {line.lot_id for line in lines})
        self._periods.assert_date_open(owner_id, deposit.project_id, deposit.deposit_date)

        difference = check_lines_total(
            deposit.amount, [line.amount for line in lines], self._ledger.money_tolerance
        )
        amounts = absorb_difference([line.amount for line in lines], difference)

        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.atomic():
                row = Deposit(
                    owner_id=owner_id,
                    bank_account_id=deposit.bank_account_id,
                    project_id=deposit.project_id,
                    deposit_date=deposit.deposit_date,
                    amount=deposit.amount,
                    memo=deposit.memo,
                    created_by_id=actor_id,
                )
                for number, (line, amount) in enumerate(zip(lines, amounts), start=1):
                    row.lines.append(
                        DepositLine(
                            line_number=number,
                            line_type=line.line_type.value,
                            account_id=line.account_id,
                            cost_code_id=line.cost_code_id,
                            lot_id=line.lot_id,
                            amount=amount,
                            memo=line.memo,
                            created_by_id=actor_id,
                        )
                    )
                self.session.add(row)
                self.flush()

                entry_lines = [
                    LineInput.dr(
                        deposit.bank_account_id,
                        deposit.amount,
                        memo=deposit.memo,
                        project_id=deposit.project_id,
                    )
                ]
                for line, account_id in zip(row.lines, credit_accounts):
                    entry_lines.append(
                        LineInput.cr(
                            account_id,
                            line.amount,
                            memo=line.memo,
                            project_id=deposit.project_id,
                            lot_id=line.lot_id,
                            cost_code_id=line.cost_code_id,
                        )
                    )
                entry = self._journal.post_entry(
                    owner_id,
                    entry_lines,
                    EntryMeta(
                        entry_date=deposit.deposit_date,
                        source_type=SourceType.DEPOSIT,
                        source_id=row.id,
                        description=deposit.memo or "Deposit",
                        project_id=deposit.project_id,
                    ),
                    actor_id,
                )
                row.journal_entry_id = entry.id
                for line, journal_line in zip(row.lines, entry.lines[1:]):
                    line.journal_line_id = journal_line.id

            logger.info(
                "deposit_created",
                extra={
                    "deposit_id": str(row.id),
                    "entry_id": str(entry.id),
                    "amount": str(row.amount),
                    "line_count": len(lines),
                },
            )
        return DepositResult(deposit_id=row.id, journal_entry_id=entry.id, amount=row.amount)

    def update_deposit(
        self,
        deposit_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        amount: Decimal | None = None,
        deposit_date: date | None = None,
    ) -> DepositResult:
        """
        Change a deposit's amount and/or date.

        Amount changes are limited to single-line deposits; the bank debit
        and the line's credit move together.
        """
        deposit = self.get_deposit(deposit_id, owner_id)
        entry = self._document_entry(deposit)
        guard_document_edit(
            self._periods,
            owner_id,
            deposit.project_id,
            "Deposit",
            deposit,
            entry,
            [deposit.deposit_date, deposit_date],
        )
        if amount is not None:
            if len(deposit.lines) != 1:
                raise ValidationError(
                    "The amount can only be changed on a single-line deposit; edit the lines",
                    field="amount",
                )
            amount = require_positive(amount)

        with sanctioned_correction(self.session), self.atomic():
            if deposit_date is not None:
                deposit.deposit_date = deposit_date
                entry.entry_date = deposit_date
                entry.updated_by_id = actor_id
            if amount is not None:
                line = deposit.lines[0]
                self._respread_line_amount(entry, line.journal_line_id, amount, actor_id)
                bank = bank_line(entry, deposit.bank_account_id)
                bank.debit = amount
                bank.updated_by_id = actor_id
                line.amount = amount
                line.updated_by_id = actor_id
                deposit.amount = amount
            deposit.updated_by_id = actor_id

        logger.info(
            "deposit_updated",
            extra={
                "deposit_id": str(deposit.id),
                "entry_id": str(entry.id),
                "amount": str(deposit.amount),
                "deposit_date": deposit.deposit_date.isoformat(),
            },
        )
        return DepositResult(deposit_id=deposit.id, journal_entry_id=entry.id, amount=deposit.amount)

    def update_deposit_line(
        self,
        line_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        amount: Decimal,
    ) -> DepositResult:
        """Change one line; the deposit total and bank debit follow by the delta."""
        line = self.session.get(DepositLine, line_id)
        if line is None or line.deposit.owner_id != owner_id:
            raise EntityNotFoundError("deposit line", str(line_id))
        deposit = line.deposit
        entry = self._document_entry(deposit)
        guard_document_edit(
            self._periods,
            owner_id,
            deposit.project_id,
            "Deposit",
            deposit,
            entry,
            [deposit.deposit_date],
        )
        amount = require_positive(amount)
        delta = amount - line.amount

        with sanctioned_correction(self.session), self.atomic():
            self._respread_line_amount(entry, line.journal_line_id, amount, actor_id)
            bank = bank_line(entry, deposit.bank_account_id)
            bank.debit = bank.debit + delta
            bank.updated_by_id = actor_id
            line.amount = amount
            line.updated_by_id = actor_id
            deposit.amount = deposit.amount + delta
            deposit.updated_by_id = actor_id

        logger.info(
            "deposit_line_updated",
            extra={
                "deposit_id": str(deposit.id),
                "line_id": str(line.id),
                "delta": str(delta),
                "amount": str(deposit.amount),
            },
        )
        return DepositResult(deposit_id=deposit.id, journal_entry_id=entry.id, amount=deposit.amount)

    def get_deposit(self, deposit_id: UUID, owner_id: UUID) -> Deposit:
        deposit = self.session.get(Deposit, deposit_id)
        if deposit is None or deposit.owner_id != owner_id:
            raise EntityNotFoundError("deposit", str(deposit_id))
        return deposit

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def write_check(
        self,
        owner_id: UUID,
        check: CheckInput,
        lines: Sequence[CheckLineInput],
        actor_id: UUID,
    ) -> CheckResult:
        """Record a check: credit the bank, debit each line."""
        if not lines:
            raise ValidationError("A check requires at least one line", field="lines")
        require_positive(check.amount)
        for line in lines:
            require_positive(line.amount, field="lines")
        self._require_bank(owner_id, check.bank_account_id)

        debit_accounts = cost_line_accounts(self._ledger.job_cost_id, check.project_id, lines)
        self._accounts.require_accounts(owner_id, set(debit_accounts))
        require_lots(self.session, owner_id, {line.lot_id for line in lines})
        self._periods.assert_date_open(owner_id, check.project_id, check.check_date)

        difference = check_lines_total(
            check.amount, [line.amount for line in lines], self._ledger.money_tolerance
        )
        amounts = absorb_difference([line.amount for line in lines], difference)

        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.atomic():
                row = Check(
                    owner_id=owner_id,
                    bank_account_id=check.bank_account_id,
                    project_id=check.project_id,
                    check_number=check.check_number,
                    check_date=check.check_date,
                    pay_to=check.pay_to,
                    amount=check.amount,
                    memo=check.memo,
                    created_by_id=actor_id,
                )
                for number, (line, amount) in enumerate(zip(lines, amounts), start=1):
                    row.lines.append(
                        CheckLine(
                            line_number=number,
                            line_type=line.line_type.value,
                            account_id=line.account_id,
                            cost_code_id=line.cost_code_id,
                            lot_id=line.lot_id,
                            amount=amount,
                            memo=line.memo,
                            created_by_id=actor_id,
                        )
                    )
                self.session.add(row)
                self.flush()

                entry_lines = [
                    LineInput.cr(
                        check.bank_account_id,
                        check.amount,
                        memo=check.memo,
                        project_id=check.project_id,
                    )
                ]
                for line, account_id in zip(row.lines, debit_accounts):
                    entry_lines.append(
                        LineInput.dr(
                            account_id,
                            line.amount,
                            memo=line.memo,
                            project_id=check.project_id,
                            lot_id=line.lot_id,
                            cost_code_id=line.cost_code_id,
                        )
                    )
                entry = self._journal.post_entry(
                    owner_id,
                    entry_lines,
                    EntryMeta(
                        entry_date=check.check_date,
                        source_type=SourceType.CHECK,
                        source_id=row.id,
                        description=f"Check {check.check_number or ''} {check.pay_to or ''}".strip(),
                        project_id=check.project_id,
                    ),
                    actor_id,
                )
                row.journal_entry_id = entry.id
                for line, journal_line in zip(row.lines, entry.lines[1:]):
                    line.journal_line_id = journal_line.id

            logger.info(
                "check_written",
                extra={
                    "check_id": str(row.id),
                    "entry_id": str(entry.id),
                    "amount": str(row.amount),
                    "check_number": row.check_number,
                },
            )
        return CheckResult(check_id=row.id, journal_entry_id=entry.id, amount=row.amount)

    def update_check(
        self,
        check_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        amount: Decimal | None = None,
        check_date: date | None = None,
    ) -> CheckResult:
        """Change a check's amount (single-line checks only) and/or date."""
        check = self.get_check(check_id, owner_id)
        entry = self._document_entry(check)
        guard_document_edit(
            self._periods,
            owner_id,
            check.project_id,
            "Check",
            check,
            entry,
            [check.check_date, check_date],
        )
        if amount is not None:
            if len(check.lines) != 1:
                raise ValidationError(
                    "The amount can only be changed on a single-line check", field="amount"
                )
            amount = require_positive(amount)

        with sanctioned_correction(self.session), self.atomic():
            if check_date is not None:
                check.check_date = check_date
                entry.entry_date = check_date
                entry.updated_by_id = actor_id
            if amount is not None:
                line = check.lines[0]
                self._respread_line_amount(entry, line.journal_line_id, amount, actor_id)
                bank = bank_line(entry, check.bank_account_id)
                bank.credit = amount
                bank.updated_by_id = actor_id
                line.amount = amount
                line.updated_by_id = actor_id
                check.amount = amount
            check.updated_by_id = actor_id

        logger.info(
            "check_updated",
            extra={
                "check_id": str(check.id),
                "entry_id": str(entry.id),
                "amount": str(check.amount),
                "check_date": check.check_date.isoformat(),
            },
        )
        return CheckResult(check_id=check.id, journal_entry_id=entry.id, amount=check.amount)

    def get_check(self, check_id: UUID, owner_id: UUID) -> Check:
        check = self.session.get(Check, check_id)
        if check is None or check.owner_id != owner_id:
            raise EntityNotFoundError("check", str(check_id))
        return check

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_bank(self, owner_id: UUID, account_id: UUID) -> None:
        account = self._accounts.require_account(owner_id, account_id)
        if not account.can_fund_payments:
            raise ValidationError(
                f"Account {account.code} is not a bank or credit card account",
                field="bank_account_id",
            )

    def _deposit_account(self, line: DepositLineInput) -> UUID:
        if line.line_type == DepositLineType.CUSTOMER_PAYMENT:
            if self._ledger.customer_deposit_id is None:
                logger.error(
                    "customer_deposit_account_missing",
                    extra={"account_code": self._ledger.customer_deposit_code},
                )
                raise MissingEquityAccountError(self._ledger.customer_deposit_code)
            return self._ledger.customer_deposit_id
        if line.account_id is None:
            raise ValidationError("Revenue lines require an account", field="account_id")
        return line.account_id

    def _document_entry(self, document) -> JournalEntry:
        entry = (
            self.session.get(JournalEntry, document.journal_entry_id)
            if document.journal_entry_id is not None
            else None
        )
        if entry is None:
            raise EntityNotFoundError("journal entry", str(document.journal_entry_id))
        return entry

    @staticmethod
    def _respread_line_amount(
        entry: JournalEntry, line_id: UUID | None, amount: Decimal, actor_id: UUID
    ) -> list[JournalEntryLine]:
        """
        Set the journal amount behind one document line to ``amount``.

        When a lot split has carved the line into pieces, the new amount is
        spread over the original and its pieces in their current proportions.
        """
        journal_line = entry_line(entry, line_id)
        if journal_line is None:
            raise ValidationError(f"Journal entry {entry.id} has no line {line_id}")
        pieces = [journal_line] + [
            line for line in entry.lines if line.split_from_id == journal_line.id
        ]
        amounts = split_by_weights(amount, [piece.debit + piece.credit for piece in pieces])
        if any(value <= ZERO for value in amounts):
            raise ValidationError(
                f"{amount} is too small to stay split across {len(pieces)} lots",
                field="amount",
            )
        for piece, value in zip(pieces, amounts):
            if piece.debit > ZERO:
                piece.debit = value
            else:
                piece.credit = value
            piece.updated_by_id = actor_id
        return pieces
