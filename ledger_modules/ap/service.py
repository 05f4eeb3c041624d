"""
Accounts Payable Module Service (``ledger_modules.ap.service``).

Responsibility
--------------
Turns bills, bill payments and purchase orders into journal entries:
create a draft bill, edit it, post it, pay it (in full or in part), edit a
payment, reverse or delete a bill.

Architecture position
---------------------
**Modules layer** -- source document adapter.  ``APService`` is the sole
public entry point for AP writes.  Journal persistence goes through the
kernel ``JournalService``; period locks through ``PeriodService``.

Invariants enforced
-------------------
* Posting: one entry per bill -- one debit per bill line (job-cost lines to
  the WIP account with project/cost-code/lot tags, expense lines to their
  account) and one aggregated credit to A/P for |total|.  A negative total
  (vendor credit) swaps every side.  Lines must sum to the total within
  the configured tolerance; the cent difference lands on the last line.
* Payment: 0 < amount <= remaining for a single-bill partial payment;
  multi-bill payments pay each bill in full.  One entry per payment batch:
  debit A/P, credit the payment account.
* amount_paid never exceeds total_amount; status is ``paid`` when
  amount_paid >= total - tolerance, ``partial`` when 0 < amount_paid,
  ``posted`` otherwise.
* Only drafts are edited in place.  Deleting a posted bill deletes its
  entry in the same savepoint; paid, reconciled and reversed bills are
  never deleted.
* Every dated write checks the period lock; every operation runs in a
  savepoint.

Failure modes
-------------
* ValidationError, InvalidPaymentAmountError, InvalidBillStateError,
  UnknownAccountError, UnknownPurchaseOrderError, UnknownLotError,
  EntityNotFoundError, ClosedPeriodError, ReversedEntryError,
  ReconciledTransactionError, ConcurrencyConflictError.

Usage::

    ap = APService(session, ledger_accounts, clock=clock)
    bill = ap.create_bill(owner_id, BillInput(...), [BillLineInput(...)], actor_id)
    ap.post_bill(bill.id, owner_id, actor_id)
    result = ap.pay_bills(owner_id, [bill.id], bank_id, date(2024, 3, 1), actor_id,
                          payment_amount=Decimal("200.00"))
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerAccounts
from ledger_kernel.db.immutability import sanctioned_correction
from ledger_kernel.db.types import ZERO, to_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import EntryMeta, ExplicitPO, LineInput
from ledger_kernel.domain.permissions import PermissionChecker
from ledger_kernel.exceptions import (
    EntityNotFoundError,
    InvalidBillStateError,
    InvalidPaymentAmountError,
    ReconciledTransactionError,
    ReversedEntryError,
    UnknownPurchaseOrderError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import JournalEntry, SourceType
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService
from ledger_modules._posting_helpers import (
    absorb_difference,
    check_lines_total,
    guard_document_edit,
    require_lots,
    require_positive,
    signed_line,
)
from ledger_modules.ap.models import (
    PAYABLE_STATUSES,
    AppliedPayment,
    BillInput,
    BillLineInput,
    BillPostingResult,
    BillReversalResult,
    BillStatus,
    LineType,
    PaymentResult,
    remaining_of,
)
from ledger_modules.ap.orm import (
    Bill,
    BillLine,
    BillPayment,
    BillPaymentAllocation,
    PurchaseOrder,
)

logger = get_logger("modules.ap.service")


def _bill_lines(bill: BillInput, lines: Sequence[BillLineInput], actor_id: UUID) -> list[BillLine]:
    return [
        BillLine(
            line_number=number,
            line_type=line.line_type.value,
            account_id=line.account_id,
            cost_code_id=line.cost_code_id,
            lot_id=line.lot_id,
            project_id=line.project_id or bill.project_id,
            po_link_mode=line.po_link.mode,
            purchase_order_id=(
                line.po_link.purchase_order_id if isinstance(line.po_link, ExplicitPO) else None
            ),
            amount=line.amount,
            memo=line.memo,
            created_by_id=actor_id,
        )
        for number, line in enumerate(lines, start=1)
    ]


class APService(BaseService[Bill]):
    """
    Orchestrates accounts payable operations through the journal engine.

    Contract
    --------
    Flush-only; the caller owns the transaction.  Every public mutation is
    atomic on its own (savepoint).
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
    # Purchase orders
    # ------------------------------------------------------------------

    def create_purchase_order(
        self,
        owner_id: UUID,
        project_id: UUID,
        company_id: UUID,
        cost_code_id: UUID,
        po_number: str,
        total_amount: Decimal,
        actor_id: UUID,
        lot_id: UUID | None = None,
        description: str | None = None,
    ) -> PurchaseOrder:
        total_amount = to_money(total_amount)
        if total_amount < ZERO:
            raise ValidationError("PO total cannot be negative", field="total_amount")
        if not po_number or not po_number.strip():
            raise ValidationError("PO number is required", field="po_number")

        with self.atomic():
            require_lots(self.session, owner_id, {lot_id})
            po = PurchaseOrder(
                owner_id=owner_id,
                project_id=project_id,
                company_id=company_id,
                cost_code_id=cost_code_id,
                lot_id=lot_id,
                po_number=po_number.strip(),
                description=description,
                total_amount=total_amount,
                created_by_id=actor_id,
            )
            self.session.add(po)

        logger.info(
            "purchase_order_created",
            extra={
                "purchase_order_id": str(po.id),
                "po_number": po.po_number,
                "total_amount": str(total_amount),
            },
        )
        return po

    def get_purchase_order(self, po_id: UUID, owner_id: UUID) -> PurchaseOrder:
        po = self.session.get(PurchaseOrder, po_id)
        if po is None or po.owner_id != owner_id:
            raise UnknownPurchaseOrderError(str(po_id))
        return po

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

    def create_bill(
        self,
        owner_id: UUID,
        bill: BillInput,
        lines: Sequence[BillLineInput],
        actor_id: UUID,
    ) -> Bill:
        """Create a draft bill.  Drafts do not touch the ledger."""
        if not lines:
            raise ValidationError("A bill requires at least one line", field="lines")

        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            self._periods.assert_date_open(owner_id, bill.project_id, bill.bill_date)
            self._validate_bill_lines(owner_id, bill, lines)

            with self.atomic():
                row = Bill(
                    owner_id=owner_id,
                    vendor_id=bill.vendor_id,
                    project_id=bill.project_id,
                    reference_number=bill.reference_number,
                    bill_date=bill.bill_date,
                    due_date=bill.due_date,
                    total_amount=bill.total_amount,
                    amount_paid=ZERO,
                    status=BillStatus.DRAFT.value,
                    memo=bill.memo,
                    created_by_id=actor_id,
                )
                row.lines.extend(_bill_lines(bill, lines, actor_id))
                self.session.add(row)

            logger.info(
                "bill_created",
                extra={
                    "bill_id": str(row.id),
                    "vendor_id": str(bill.vendor_id),
                    "total_amount": str(bill.total_amount),
                    "line_count": len(lines),
                },
            )
        return row

    def update_bill(
        self,
        bill_id: UUID,
        owner_id: UUID,
        bill: BillInput,
        lines: Sequence[BillLineInput],
        actor_id: UUID,
    ) -> Bill:
        """Replace a draft bill's header and lines."""
        row = self.get_bill(bill_id, owner_id)
        if row.status != BillStatus.DRAFT.value:
            raise InvalidBillStateError(str(bill_id), row.status, "edit")
        if not lines:
            raise ValidationError("A bill requires at least one line", field="lines")

        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            self._periods.assert_date_open(owner_id, row.project_id, row.bill_date)
            self._periods.assert_date_open(owner_id, bill.project_id, bill.bill_date)
            self._validate_bill_lines(owner_id, bill, lines)

            with self.atomic():
                row.vendor_id = bill.vendor_id
                row.project_id = bill.project_id
                row.reference_number = bill.reference_number
                row.bill_date = bill.bill_date
                row.due_date = bill.due_date
                row.total_amount = bill.total_amount
                row.memo = bill.memo
                row.updated_by_id = actor_id
                row.lines.clear()
                self.flush()
                row.lines.extend(_bill_lines(bill, lines, actor_id))

            logger.info(
                "bill_updated",
                extra={
                    "bill_id": str(row.id),
                    "total_amount": str(row.total_amount),
                    "line_count": len(lines),
                },
            )
        return row

    def delete_bill(self, bill_id: UUID, owner_id: UUID, actor_id: UUID) -> None:
        """
        Delete an unpaid bill and, when posted, its journal entry.

        Paid, reconciled, reversed and reversal bills stay; so does any bill
        dated in closed books.
        """
        bill = self.get_bill(bill_id, owner_id)
        if bill.reconciled:
            raise ReconciledTransactionError("Bill", str(bill_id))
        if bill.is_reversal or bill.is_reversed:
            raise ReversedEntryError("Bill", str(bill_id))
        if bill.amount_paid != ZERO or self.payments_for_bill(bill_id, owner_id):
            raise InvalidBillStateError(str(bill_id), bill.status, "delete a paid")
        self._periods.assert_date_open(owner_id, bill.project_id, bill.bill_date)

        entry_id = bill.journal_entry_id
        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.atomic():
                self.session.delete(bill)
                # the bill references its entry
                self.flush()
                if entry_id is not None:
                    self._journal.delete_journal_entry_with_owner_check(entry_id, owner_id, actor_id)

            logger.info(
                "bill_deleted",
                extra={
                    "bill_id": str(bill_id),
                    "entry_id": str(entry_id) if entry_id else None,
                },
            )

    def post_bill(self, bill_id: UUID, owner_id: UUID, actor_id: UUID) -> BillPostingResult:
        """Post a draft bill: debit cost, credit A/P."""
        bill = self.get_bill(bill_id, owner_id)
        if bill.status != BillStatus.DRAFT.value:
            raise InvalidBillStateError(str(bill_id), bill.status, "post")
        if bill.total_amount == ZERO:
            raise ValidationError("Bill total must be nonzero", field="total_amount")

        difference = check_lines_total(
            bill.total_amount,
            [line.amount for line in bill.lines],
            self._ledger.money_tolerance,
        )

        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.atomic():
                amounts = absorb_difference([line.amount for line in bill.lines], difference)
                entry_lines: list[LineInput] = []
                for line, amount in zip(bill.lines, amounts):
                    line.amount = amount
                    if amount == ZERO:
                        continue
                    entry_lines.append(
                        signed_line(
                            self._cost_account(line),
                            amount,
                            debit_normal=True,
                            memo=line.memo,
                            project_id=line.project_id,
                            lot_id=line.lot_id,
                            cost_code_id=line.cost_code_id,
                        )
                    )
                entry_lines.append(
                    signed_line(
                        self._ledger.accounts_payable_id,
                        bill.total_amount,
                        debit_normal=False,
                        project_id=bill.project_id,
                    )
                )

                entry = self._journal.post_entry(
                    owner_id,
                    entry_lines,
                    EntryMeta(
                        entry_date=bill.bill_date,
                        source_type=SourceType.BILL,
                        source_id=bill.id,
                        description=f"Bill {bill.reference_number or bill.id}",
                        project_id=bill.project_id,
                    ),
                    actor_id,
                )
                bill.journal_entry_id = entry.id
                bill.status = BillStatus.POSTED.value
                bill.updated_by_id = actor_id

            logger.info(
                "bill_posted",
                extra={
                    "bill_id": str(bill.id),
                    "entry_id": str(entry.id),
                    "total_amount": str(bill.total_amount),
                },
            )
        return BillPostingResult(
            bill_id=bill.id,
            journal_entry_id=entry.id,
            status=BillStatus.POSTED,
            total_amount=bill.total_amount,
        )

    def reverse_bill(
        self,
        bill_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        reversal_date: date | None = None,
    ) -> BillReversalResult:
        """
        Reverse a posted, unpaid bill.

        The bill's entry is reversed and a reversal bill row with the
        negated total records the credit.
        """
        bill = self.get_bill(bill_id, owner_id)
        if bill.is_reversal or bill.is_reversed:
            raise ReversedEntryError("Bill", str(bill_id))
        if bill.status == BillStatus.DRAFT.value or bill.journal_entry_id is None:
            raise InvalidBillStateError(str(bill_id), bill.status, "reverse")
        if bill.amount_paid != ZERO:
            raise InvalidBillStateError(str(bill_id), bill.status, "reverse a paid")

        with self.atomic():
            result = self._journal.reverse_entry(
                bill.journal_entry_id,
                owner_id,
                actor_id,
                reversal_date=reversal_date,
                description=f"Reversal of bill {bill.reference_number or bill.id}",
            )
            reversal_entry = self.session.get(JournalEntry, result.reversal_entry_id)
            reversal = Bill(
                owner_id=owner_id,
                vendor_id=bill.vendor_id,
                project_id=bill.project_id,
                reference_number=bill.reference_number,
                bill_date=reversal_entry.entry_date,
                total_amount=-bill.total_amount,
                amount_paid=ZERO,
                status=BillStatus.POSTED.value,
                is_reversal=True,
                reversal_of_id=bill.id,
                journal_entry_id=result.reversal_entry_id,
                created_by_id=actor_id,
            )
            self.session.add(reversal)
            bill.reversed_at = result.reversed_at
            bill.updated_by_id = actor_id

        logger.info(
            "bill_reversed",
            extra={
                "bill_id": str(bill.id),
                "reversal_bill_id": str(reversal.id),
                "reversal_entry_id": str(result.reversal_entry_id),
            },
        )
        return BillReversalResult(
            bill_id=bill.id,
            reversal_bill_id=reversal.id,
            reversal_entry_id=result.reversal_entry_id,
            reversed_at=result.reversed_at,
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def pay_bills(
        self,
        owner_id: UUID,
        bill_ids: Sequence[UUID],
        payment_account_id: UUID,
        payment_date: date,
        actor_id: UUID,
        memo: str | None = None,
        payment_amount: Decimal | None = None,
    ) -> PaymentResult:
        """
        Pay one or more posted bills from a bank or credit card account.

        ``payment_amount`` is accepted for a single bill only and must
        satisfy 0 < amount <= remaining balance.
        """
        unique_ids = list(dict.fromkeys(bill_ids))
        if not unique_ids:
            raise ValidationError("At least one bill is required", field="bill_ids")
        bills = [self.get_bill(bill_id, owner_id) for bill_id in unique_ids]
        for bill in bills:
            if bill.is_reversal or bill.is_reversed or bill.status not in PAYABLE_STATUSES:
                raise InvalidBillStateError(str(bill.id), bill.status, "pay")

        account = self._accounts.require_account(owner_id, payment_account_id)
        if not account.can_fund_payments:
            raise ValidationError(
                f"Account {account.code} cannot fund payments; use a bank or credit card account",
                field="payment_account_id",
            )

        amounts = self._payment_amounts(bills, payment_amount)
        projects = {bill.project_id for bill in bills}
        project_id = projects.pop() if len(projects) == 1 else None
        for bill in bills:
            self._periods.assert_date_open(owner_id, bill.project_id, payment_date)

        total = sum(amounts, ZERO)
        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.atomic():
                payment = BillPayment(
                    owner_id=owner_id,
                    project_id=project_id,
                    payment_account_id=payment_account_id,
                    payment_date=payment_date,
                    amount=total,
                    memo=memo,
                    created_by_id=actor_id,
                )
                self.session.add(payment)
                self.flush()

                applied = []
                for bill, amount in zip(bills, amounts):
                    payment.allocations.append(
                        BillPaymentAllocation(
                            bill_id=bill.id,
                            amount_applied=amount,
                            created_by_id=actor_id,
                        )
                    )
                    self._apply_paid(bill, bill.amount_paid + amount, actor_id)
                    applied.append(
                        AppliedPayment(
                            bill_id=bill.id,
                            amount_applied=amount,
                            amount_paid=bill.amount_paid,
                            remaining=bill.remaining,
                            status=BillStatus(bill.status),
                        )
                    )

                entry = self._journal.post_entry(
                    owner_id,
                    [
                        LineInput.dr(self._ledger.accounts_payable_id, total, project_id=project_id),
                        LineInput.cr(payment_account_id, total, memo=memo, project_id=project_id),
                    ],
                    EntryMeta(
                        entry_date=payment_date,
                        source_type=SourceType.BILL_PAYMENT,
                        source_id=payment.id,
                        description=memo or f"Payment of {len(bills)} bill(s)",
                        project_id=project_id,
                    ),
                    actor_id,
                )
                payment.journal_entry_id = entry.id

            logger.info(
                "bills_paid",
                extra={
                    "payment_id": str(payment.id),
                    "entry_id": str(entry.id),
                    "bill_count": len(bills),
                    "amount": str(total),
                    "partial": payment_amount is not None,
                },
            )
        return PaymentResult(
            payment_id=payment.id,
            journal_entry_id=entry.id,
            payment_date=payment_date,
            amount=total,
            applied=tuple(applied),
        )

    def update_bill_payment(
        self,
        payment_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        amount: Decimal | None = None,
        payment_date: date | None = None,
    ) -> PaymentResult:
        """
        Edit a payment's amount and/or date.

        The payment row, its entry (date, A/P and bank line amounts) and the
        bill's amount_paid/status are patched together.  Amount changes are
        allowed on single-bill payments only.
        """
        payment = self.get_payment(payment_id, owner_id)
        entry = self.session.get(JournalEntry, payment.journal_entry_id)
        guard_document_edit(
            self._periods,
            owner_id,
            payment.project_id,
            "BillPayment",
            payment,
            entry,
            [payment.payment_date, payment_date],
        )

        allocation = None
        new_amount = None
        if amount is not None:
            if len(payment.allocations) != 1:
                raise ValidationError(
                    "The amount can only be changed on a single-bill payment",
                    field="amount",
                )
            allocation = payment.allocations[0]
            bill = allocation.bill
            if bill.reconciled:
                raise ValidationError(
                    f"Bill {bill.id} is reconciled; its payment amount cannot change",
                    field="amount",
                )
            new_amount = to_money(amount)
            paid_elsewhere = bill.amount_paid - allocation.amount_applied
            ceiling = remaining_of(bill.total_amount, paid_elsewhere)
            if new_amount <= ZERO or new_amount > ceiling:
                raise InvalidPaymentAmountError(new_amount, ceiling, str(bill.id))

        with sanctioned_correction(self.session), self.atomic():
            if payment_date is not None:
                payment.payment_date = payment_date
                entry.entry_date = payment_date
            if allocation is not None:
                bill = allocation.bill
                paid_elsewhere = bill.amount_paid - allocation.amount_applied
                allocation.amount_applied = new_amount
                allocation.updated_by_id = actor_id
                self._apply_paid(bill, paid_elsewhere + new_amount, actor_id)
                payment.amount = new_amount
                for line in entry.lines:
                    if line.debit > ZERO:
                        line.debit = new_amount
                    else:
                        line.credit = new_amount
                    line.updated_by_id = actor_id
            payment.updated_by_id = actor_id
            entry.updated_by_id = actor_id

        logger.info(
            "bill_payment_updated",
            extra={
                "payment_id": str(payment.id),
                "entry_id": str(entry.id),
                "amount": str(payment.amount),
                "payment_date": payment.payment_date.isoformat(),
            },
        )
        return PaymentResult(
            payment_id=payment.id,
            journal_entry_id=entry.id,
            payment_date=payment.payment_date,
            amount=payment.amount,
            applied=tuple(
                AppliedPayment(
                    bill_id=a.bill_id,
                    amount_applied=a.amount_applied,
                    amount_paid=a.bill.amount_paid,
                    remaining=a.bill.remaining,
                    status=BillStatus(a.bill.status),
                )
                for a in payment.allocations
            ),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def remaining_balance(bill: Bill) -> Decimal:
        return remaining_of(bill.total_amount, bill.amount_paid)

    def get_bill(self, bill_id: UUID, owner_id: UUID) -> Bill:
        bill = self.session.get(Bill, bill_id)
        if bill is None or bill.owner_id != owner_id:
            raise EntityNotFoundError("bill", str(bill_id))
        return bill

    def get_payment(self, payment_id: UUID, owner_id: UUID) -> BillPayment:
        payment = self.session.get(BillPayment, payment_id)
        if payment is None or payment.owner_id != owner_id:
            raise EntityNotFoundError("bill payment", str(payment_id))
        return payment

    def payments_for_bill(self, bill_id: UUID, owner_id: UUID) -> list[BillPayment]:
        return list(
            self.session.scalars(
                select(BillPayment)
                .join(BillPaymentAllocation)
                .where(
                    BillPayment.owner_id == owner_id,
                    BillPaymentAllocation.bill_id == bill_id,
                )
                .order_by(BillPayment.payment_date)
            ).all()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate_bill_lines(
        self,
        owner_id: UUID,
        bill: BillInput,
        lines: Sequence[BillLineInput],
    ) -> None:
        account_ids: set[UUID] = set()
        po_ids: set[UUID] = set()
        for number, line in enumerate(lines, start=1):
            if line.line_type == LineType.JOB_COST:
                if (line.project_id or bill.project_id) is None:
                    raise ValidationError(
                        f"Line {number}: job cost lines require a project", field="project_id"
                    )
                if line.cost_code_id is None:
                    raise ValidationError(
                        f"Line {number}: job cost lines require a cost code",
                        field="cost_code_id",
                    )
            else:
                if line.account_id is None:
                    raise ValidationError(
                        f"Line {number}: expense lines require an account", field="account_id"
                    )
                account_ids.add(line.account_id)
            if isinstance(line.po_link, ExplicitPO):
                po_ids.add(line.po_link.purchase_order_id)

        if account_ids:
            self._accounts.require_accounts(owner_id, account_ids)
        require_lots(self.session, owner_id, {line.lot_id for line in lines})
        if po_ids:
            found = set(
                self.session.scalars(
                    select(PurchaseOrder.id).where(
                        PurchaseOrder.owner_id == owner_id, PurchaseOrder.id.in_(po_ids)
                    )
                ).all()
            )
            missing = po_ids - found
            if missing:
                raise UnknownPurchaseOrderError(str(sorted(missing, key=str)[0]))

    def _cost_account(self, line: BillLine) -> UUID:
        if line.line_type == LineType.JOB_COST.value:
            return self._ledger.job_cost_id
        return line.account_id

    def _payment_amounts(
        self, bills: list[Bill], payment_amount: Decimal | None
    ) -> list[Decimal]:
        if payment_amount is not None:
            if len(bills) != 1:
                raise ValidationError(
                    "A payment amount can only be given for a single bill",
                    field="payment_amount",
                )
            bill = bills[0]
            amount = to_money(payment_amount)
            if amount <= ZERO or amount > bill.remaining:
                raise InvalidPaymentAmountError(amount, bill.remaining, str(bill.id))
            return [amount]

        amounts = []
        for bill in bills:
            remaining = bill.remaining
            if remaining <= ZERO:
                raise InvalidPaymentAmountError(remaining, remaining, str(bill.id))
            amounts.append(remaining)
        return amounts

    def _apply_paid(self, bill: Bill, amount_paid: Decimal, actor_id: UUID) -> None:
        amount_paid = to_money(amount_paid)
        bill.amount_paid = amount_paid
        if amount_paid >= bill.total_amount - self._ledger.money_tolerance:
            bill.status = BillStatus.PAID.value
        elif amount_paid > ZERO:
            bill.status = BillStatus.PARTIAL.value
        else:
            bill.status = BillStatus.POSTED.value
        bill.updated_by_id = actor_id
