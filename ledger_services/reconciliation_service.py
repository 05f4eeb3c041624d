"""
ledger_services.reconciliation_service -- Bank statement reconciliation.

Responsibility:
    Runs the reconciliation state machine for one bank account and one
    statement: start, mark/unmark cleared transactions, keep the reconciled
    balance current, complete, and tear down (reset, discard, undo).

Architecture position:
    Services -- cross-module orchestration.  Clears reconciliation columns
    on kernel rows (journal entry lines) and module rows (checks, deposits,
    bills, bill payments, credit card transactions), so it lives above both
    layers.

Invariants enforced:
    - At most one in-progress reconciliation per bank account and project.
    - reconciled_balance = beginning + cleared deposits - cleared checks
      - cleared bills (amount paid) - cleared bill payments + cleared
      journal lines on the bank account (debit - credit) - cleared card
      purchases + cleared card refunds;
      difference = ending - reconciled_balance.
    - Completion requires |difference| < 0.01.
    - Teardown clears every referencing row and deletes the reconciliation
      in one savepoint; a failure leaves everything as it was.
    - Undo re-bases every in-progress reconciliation of the same bank
      account and project on the latest remaining completed one.

Failure modes:
    - EntityNotFoundError: unknown reconciliation or transaction.
    - PermissionDeniedError: owner mismatch, or undo without
      ``can_undo_reconciliation``.
    - ReconciliationStateError: wrong status for the operation, or a second
      in-progress reconciliation.
    - ReconciliationOutOfBalanceError: completing with a difference.
    - ValidationError: a row on another bank account, a journal line that
      belongs to a source document (deposit, check, bill, payment), or a
      bill with no payment drawn on the reconciled account.
    - ReconciledTransactionError: marking a row cleared on another
      statement.

Audit relevance:
    Teardown is logged with per-table counts (``reconciliation_reset``,
    ``reconciliation_discarded``, ``reconciliation_undone``).  Bulk updates
    bypass ORM immutability listeners; they only touch the reconciliation
    columns, which are always mutable.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from ledger_kernel.db.types import MONEY_TOLERANCE, ZERO, to_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.permissions import (
    Permission,
    PermissionChecker,
    StaticPermissions,
    require_permission,
)
from ledger_kernel.exceptions import (
    EntityNotFoundError,
    PermissionDeniedError,
    ReconciledTransactionError,
    ReconciliationOutOfBalanceError,
    ReconciliationStateError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.bank_reconciliation import BankReconciliation, ReconciliationStatus
from ledger_kernel.models.journal import JournalEntryLine, SourceType
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService
from ledger_modules.ap.orm import Bill, BillPayment, BillPaymentAllocation
from ledger_modules.cash.models import CardTransactionType
from ledger_modules.cash.orm import Check, CreditCardTransaction, Deposit

logger = get_logger("services.reconciliation")


class TransactionKind(str, Enum):
    """What a cleared statement line refers to, and so which table it lives in."""

    CHECK = "check"
    DEPOSIT = "deposit"
    BILL_PAYMENT = "bill_payment"
    CONSOLIDATED_BILL_PAYMENT = "consolidated_bill_payment"
    CREDIT_CARD = "credit_card"
    JOURNAL_ENTRY = "journal_entry"


_KIND_MODELS = {
    TransactionKind.CHECK: Check,
    TransactionKind.DEPOSIT: Deposit,
    TransactionKind.BILL_PAYMENT: Bill,
    TransactionKind.CONSOLIDATED_BILL_PAYMENT: BillPayment,
    TransactionKind.CREDIT_CARD: CreditCardTransaction,
    TransactionKind.JOURNAL_ENTRY: JournalEntryLine,
}


@dataclass(frozen=True)
class ReconciliationClearResult:
    """Rows released per table by a teardown."""

    reconciliation_id: UUID
    checks: int = 0
    deposits: int = 0
    bills: int = 0
    bill_payments: int = 0
    journal_lines: int = 0
    credit_cards: int = 0

    @property
    def total(self) -> int:
        return (
            self.checks
            + self.deposits
            + self.bills
            + self.bill_payments
            + self.journal_lines
            + self.credit_cards
        )


def _project_scope(column, project_id: UUID | None):
    if project_id is None:
        return column.is_(None)
    return column == project_id


class ReconciliationService(BaseService[BankReconciliation]):
    """
    Bank reconciliation lifecycle.

    Contract:
        Flush-only inside the caller's transaction; each mutation runs in
        its own savepoint.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        permissions: PermissionChecker | None = None,
    ):
        super().__init__(session, clock)
        self._permissions = permissions or StaticPermissions()
        self._accounts = AccountService(session, self._clock)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_reconciliation(
        self,
        owner_id: UUID,
        bank_account_id: UUID,
        statement_date: date,
        statement_ending_balance: Decimal,
        actor_id: UUID,
        project_id: UUID | None = None,
        statement_beginning_balance: Decimal | None = None,
        notes: str | None = None,
    ) -> BankReconciliation:
        account = self._accounts.require_account(owner_id, bank_account_id)
        if not account.can_fund_payments:
            raise ValidationError(
                f"Account {account.code} is not a bank or credit card account",
                field="bank_account_id",
            )

        existing = self._in_progress(owner_id, bank_account_id, project_id)
        if existing:
            raise ReconciliationStateError(
                str(existing[0].id), ReconciliationStatus.IN_PROGRESS.value, "start another"
            )

        if statement_beginning_balance is None:
            beginning = self._latest_completed_ending(owner_id, bank_account_id, project_id)
        else:
            beginning = to_money(statement_beginning_balance)
        ending = to_money(statement_ending_balance)

        with self.atomic():
            rec = BankReconciliation(
                owner_id=owner_id,
                bank_account_id=bank_account_id,
                project_id=project_id,
                statement_date=statement_date,
                statement_beginning_balance=beginning,
                statement_ending_balance=ending,
                reconciled_balance=beginning,
                difference=ending - beginning,
                status=ReconciliationStatus.IN_PROGRESS.value,
                notes=notes,
                created_by_id=actor_id,
            )
            self.session.add(rec)

        logger.info(
            "reconciliation_started",
            extra={
                "reconciliation_id": str(rec.id),
                "bank_account_id": str(bank_account_id),
                "statement_date": statement_date.isoformat(),
                "beginning_balance": str(beginning),
                "ending_balance": str(ending),
            },
        )
        return rec

    def mark_transaction(
        self,
        reconciliation_id: UUID,
        owner_id: UUID,
        kind: TransactionKind | str,
        transaction_id: UUID,
        reconciled: bool,
        actor_id: UUID,
    ) -> BankReconciliation:
        """Clear (or unclear) one transaction on the statement."""
        rec = self._owned(reconciliation_id, owner_id, actor_id)
        if not rec.is_in_progress:
            raise ReconciliationStateError(str(rec.id), rec.status, "mark transactions on")
        kind = TransactionKind(kind)
        row = self._transaction_row(kind, transaction_id, owner_id, rec)

        if reconciled and row.reconciled and row.reconciliation_id not in (None, rec.id):
            raise ReconciledTransactionError(kind.value, str(transaction_id))

        with self.atomic():
            if reconciled:
                row.reconciled = True
                row.reconciliation_id = rec.id
                row.reconciliation_date = rec.statement_date
            elif row.reconciliation_id in (None, rec.id):
                row.reconciled = False
                row.reconciliation_id = None
                row.reconciliation_date = None
            self._refresh(rec, actor_id)

        logger.debug(
            "reconciliation_transaction_marked",
            extra={
                "reconciliation_id": str(rec.id),
                "kind": kind.value,
                "transaction_id": str(transaction_id),
                "reconciled": reconciled,
                "difference": str(rec.difference),
            },
        )
        return rec

    def refresh_balances(
        self, reconciliation_id: UUID, owner_id: UUID, actor_id: UUID
    ) -> BankReconciliation:
        rec = self._owned(reconciliation_id, owner_id, actor_id)
        with self.atomic():
            self._refresh(rec, actor_id)
        return rec

    def complete_reconciliation(
        self, reconciliation_id: UUID, owner_id: UUID, actor_id: UUID
    ) -> BankReconciliation:
        rec = self._owned(reconciliation_id, owner_id, actor_id)
        if not rec.is_in_progress:
            raise ReconciliationStateError(str(rec.id), rec.status, "complete")

        with self.atomic():
            self._refresh(rec, actor_id)
            if abs(rec.difference) >= MONEY_TOLERANCE:
                logger.warning(
                    "reconciliation_out_of_balance",
                    extra={"reconciliation_id": str(rec.id), "difference": str(rec.difference)},
                )
                raise ReconciliationOutOfBalanceError(str(rec.id), rec.difference)
            rec.status = ReconciliationStatus.COMPLETED.value
            rec.completed_at = self._clock.now()
            rec.completed_by_id = actor_id

        logger.info(
            "reconciliation_completed",
            extra={
                "reconciliation_id": str(rec.id),
                "reconciled_balance": str(rec.reconciled_balance),
            },
        )
        return rec

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def reset_reconciliation(
        self, reconciliation_id: UUID, owner_id: UUID, actor_id: UUID
    ) -> ReconciliationClearResult:
        """Release every cleared transaction and delete the reconciliation."""
        rec = self._owned(reconciliation_id, owner_id, actor_id)
        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            result = self._tear_down(rec)
            logger.info("reconciliation_reset", extra=self._clear_extra(result))
        return result

    def discard_reconciliation(
        self, reconciliation_id: UUID, owner_id: UUID, actor_id: UUID
    ) -> ReconciliationClearResult:
        """Like reset, but only for a reconciliation that is still in progress."""
        rec = self._owned(reconciliation_id, owner_id, actor_id)
        if not rec.is_in_progress:
            raise ReconciliationStateError(str(rec.id), rec.status, "discard")
        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            result = self._tear_down(rec)
            logger.info("reconciliation_discarded", extra=self._clear_extra(result))
        return result

    def undo_reconciliation(
        self, reconciliation_id: UUID, owner_id: UUID, actor_id: UUID
    ) -> ReconciliationClearResult:
        """
        Undo a completed reconciliation.

        After teardown, in-progress reconciliations of the same bank account
        and project start from the ending balance of the latest remaining
        completed reconciliation (or zero).
        """
        require_permission(
            self._permissions, owner_id, actor_id, Permission.CAN_UNDO_RECONCILIATION
        )
        rec = self._owned(reconciliation_id, owner_id, actor_id)
        if rec.status != ReconciliationStatus.COMPLETED.value:
            raise ReconciliationStateError(str(rec.id), rec.status, "undo")
        bank_account_id, project_id = rec.bank_account_id, rec.project_id

        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.atomic():
                result = self._tear_down(rec)
                beginning = self._latest_completed_ending(owner_id, bank_account_id, project_id)
                rebased = self._in_progress(owner_id, bank_account_id, project_id)
                for other in rebased:
                    other.statement_beginning_balance = beginning
                    self._refresh(other, actor_id)

            extra = self._clear_extra(result)
            extra.update(
                {"rebased_count": len(rebased), "beginning_balance": str(beginning)}
            )
            logger.info("reconciliation_undone", extra=extra)
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_reconciliation(self, reconciliation_id: UUID, owner_id: UUID) -> BankReconciliation:
        rec = self.session.get(BankReconciliation, reconciliation_id)
        if rec is None or rec.owner_id != owner_id:
            raise EntityNotFoundError("reconciliation", str(reconciliation_id))
        return rec

    def list_reconciliations(
        self, owner_id: UUID, bank_account_id: UUID, project_id: UUID | None = None
    ) -> list[BankReconciliation]:
        return list(
            self.session.scalars(
                select(BankReconciliation)
                .where(
                    BankReconciliation.owner_id == owner_id,
                    BankReconciliation.bank_account_id == bank_account_id,
                    _project_scope(BankReconciliation.project_id, project_id),
                )
                .order_by(BankReconciliation.statement_date)
            ).all()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _owned(self, reconciliation_id: UUID, owner_id: UUID, actor_id: UUID) -> BankReconciliation:
        rec = self.session.get(BankReconciliation, reconciliation_id)
        if rec is None:
            raise EntityNotFoundError("reconciliation", str(reconciliation_id))
        if rec.owner_id != owner_id:
            logger.warning(
                "reconciliation_owner_mismatch",
                extra={"reconciliation_id": str(reconciliation_id), "owner_id": str(owner_id)},
            )
            raise PermissionDeniedError("reconciliation_owner", actor_id=str(actor_id))
        return rec

    def _in_progress(
        self, owner_id: UUID, bank_account_id: UUID, project_id: UUID | None
    ) -> list[BankReconciliation]:
        return list(
            self.session.scalars(
                select(BankReconciliation).where(
                    BankReconciliation.owner_id == owner_id,
                    BankReconciliation.bank_account_id == bank_account_id,
                    _project_scope(BankReconciliation.project_id, project_id),
                    BankReconciliation.status == ReconciliationStatus.IN_PROGRESS.value,
                )
            ).all()
        )

    def _latest_completed_ending(
        self, owner_id: UUID, bank_account_id: UUID, project_id: UUID | None
    ) -> Decimal:
        ending = self.session.scalars(
            select(BankReconciliation.statement_ending_balance)
            .where(
                BankReconciliation.owner_id == owner_id,
                BankReconciliation.bank_account_id == bank_account_id,
                _project_scope(BankReconciliation.project_id, project_id),
                BankReconciliation.status == ReconciliationStatus.COMPLETED.value,
            )
            .order_by(
                BankReconciliation.statement_date.desc(),
                BankReconciliation.completed_at.desc(),
            )
            .limit(1)
        ).first()
        return to_money(ending) if ending is not None else ZERO

    def _transaction_row(
        self,
        kind: TransactionKind,
        transaction_id: UUID,
        owner_id: UUID,
        rec: BankReconciliation,
    ):
        row = self.session.get(_KIND_MODELS[kind], transaction_id)
        if kind == TransactionKind.JOURNAL_ENTRY:
            owner = row.journal_entry.owner_id if row is not None else None
        else:
            owner = row.owner_id if row is not None else None
        if row is None or owner != owner_id:
            raise EntityNotFoundError(kind.value, str(transaction_id))

        if kind in (TransactionKind.CHECK, TransactionKind.DEPOSIT):
            account_id = row.bank_account_id
        elif kind == TransactionKind.CREDIT_CARD:
            account_id = row.card_account_id
        elif kind == TransactionKind.CONSOLIDATED_BILL_PAYMENT:
            account_id = row.payment_account_id
        elif kind == TransactionKind.JOURNAL_ENTRY:
            # Document lines clear through their document, never on their own.
            if row.journal_entry.source_type != SourceType.JOURNAL_ENTRY.value:
                raise ValidationError(
                    f"Line {transaction_id} belongs to a {row.journal_entry.source_type} entry; "
                    "reconcile the document instead",
                    field="transaction_id",
                )
            account_id = row.account_id
        else:
            account_id = rec.bank_account_id if self._paid_from(row, rec.bank_account_id) else None
        if account_id != rec.bank_account_id:
            raise ValidationError(
                f"{kind.value} {transaction_id} is not on the reconciled bank account",
                field="transaction_id",
            )
        return row

    def _paid_from(self, bill: Bill, bank_account_id: UUID) -> bool:
        """True when some payment applied to ``bill`` was drawn on ``bank_account_id``."""
        payment_id = self.session.scalar(
            select(BillPayment.id)
            .join(BillPaymentAllocation, BillPaymentAllocation.bill_payment_id == BillPayment.id)
            .where(
                BillPaymentAllocation.bill_id == bill.id,
                BillPayment.payment_account_id == bank_account_id,
            )
            .limit(1)
        )
        return payment_id is not None

    def _cleared_sum(self, column, model, rec: BankReconciliation, *criteria) -> Decimal:
        total = self.session.scalar(
            select(func.coalesce(func.sum(column), 0)).where(
                model.reconciliation_id == rec.id,
                model.reconciled.is_(True),
                *criteria,
            )
        )
        return to_money(total)

    def _refresh(self, rec: BankReconciliation, actor_id: UUID) -> None:
        self.flush()
        deposits = self._cleared_sum(Deposit.amount, Deposit, rec)
        checks = self._cleared_sum(Check.amount, Check, rec)
        bills = self._cleared_sum(Bill.amount_paid, Bill, rec)
        payments = self._cleared_sum(BillPayment.amount, BillPayment, rec)
        journal = self._cleared_sum(
            JournalEntryLine.debit - JournalEntryLine.credit,
            JournalEntryLine,
            rec,
            JournalEntryLine.account_id == rec.bank_account_id,
        )
        # purchases leave the account like checks; refunds come back like deposits
        cards = self._cleared_sum(
            case(
                (
                    CreditCardTransaction.transaction_type == CardTransactionType.PURCHASE.value,
                    -CreditCardTransaction.amount,
                ),
                else_=CreditCardTransaction.amount,
            ),
            CreditCardTransaction,
            rec,
        )
        reconciled = (
            rec.statement_beginning_balance
            + deposits
            - checks
            - bills
            - payments
            + journal
            + cards
        )
        rec.reconciled_balance = reconciled
        rec.difference = rec.statement_ending_balance - reconciled
        rec.updated_by_id = actor_id

    def _tear_down(self, rec: BankReconciliation) -> ReconciliationClearResult:
        with self.atomic():
            counts = {
                name: self._clear(model, rec.id)
                for name, model in (
                    ("checks", Check),
                    ("deposits", Deposit),
                    ("bills", Bill),
                    ("bill_payments", BillPayment),
                    ("journal_lines", JournalEntryLine),
                    ("credit_cards", CreditCardTransaction),
                )
            }
            self.session.delete(rec)
        return ReconciliationClearResult(reconciliation_id=rec.id, **counts)

    def _clear(self, model, reconciliation_id: UUID) -> int:
        result = self.session.execute(
            update(model)
            .where(model.reconciliation_id == reconciliation_id)
            .values(reconciled=False, reconciliation_id=None, reconciliation_date=None)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    @staticmethod
    def _clear_extra(result: ReconciliationClearResult) -> dict:
        return {
            "reconciliation_id": str(result.reconciliation_id),
            "checks_cleared": result.checks,
            "deposits_cleared": result.deposits,
            "bills_cleared": result.bills,
            "bill_payments_cleared": result.bill_payments,
            "journal_lines_cleared": result.journal_lines,
            "credit_cards_cleared": result.credit_cards,
        }
