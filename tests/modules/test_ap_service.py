"""
Accounts payable tests.

Covers the bill lifecycle (draft -> posted -> partial -> paid), vendor
credits, bill reversal, payment edits and PO matching over stored bills.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.db.immutability import sanctioned_correction
from ledger_kernel.exceptions import (
    ClosedPeriodError,
    EntityNotFoundError,
    InvalidBillStateError,
    InvalidPaymentAmountError,
    ReconciledTransactionError,
    ReversedEntryError,
    UnknownPurchaseOrderError,
    ValidationError,
)
from ledger_kernel.models.journal import JournalEntry, SourceType
from ledger_modules.ap.models import BillInput, BillLineInput, BillStatus, LineType
from ledger_modules.ap.orm import BillPayment, BillPaymentAllocation
from ledger_engines.po_matching import MatchStatus
from ledger_kernel.domain.dtos import ExplicitPO, NoPO


@pytest.fixture
def vendor_id():
    return uuid4()


@pytest.fixture
def cost_code_id():
    return uuid4()


@pytest.fixture
def posted_bill(ap_service, owner_id, project_id, vendor_id, cost_code_id, test_actor_id):
    """Create and post a job-cost bill; returns the Bill row."""

    def _make(total="500.00", lines=None, bill_date=date(2024, 3, 1), reference="INV-100"):
        bill = ap_service.create_bill(
            owner_id,
            BillInput(
                vendor_id=vendor_id,
                bill_date=bill_date,
                total_amount=Decimal(total),
                project_id=project_id,
                reference_number=reference,
            ),
            lines or [BillLineInput(amount=Decimal(total), cost_code_id=cost_code_id)],
            test_actor_id,
        )
        ap_service.post_bill(bill.id, owner_id, test_actor_id)
        return bill

    return _make


def _entry(session, entry_id) -> JournalEntry:
    return session.get(JournalEntry, entry_id)


class TestCreateBill:

    def test_draft_does_not_touch_ledger(
        self, ap_service, ledger_selector, owner_id, project_id, vendor_id, cost_code_id, accounts, test_actor_id
    ):
        bill = ap_service.create_bill(
            owner_id,
            BillInput(vendor_id, date(2024, 3, 1), Decimal("100.00"), project_id=project_id),
            [BillLineInput(amount=Decimal("100.00"), cost_code_id=cost_code_id)],
            test_actor_id,
        )
        assert bill.status == BillStatus.DRAFT.value
        assert bill.journal_entry_id is None
        assert ledger_selector.account_balance(owner_id, accounts["2010"].id).balance == Decimal("0.00")

    def test_job_cost_line_requires_project(self, ap_service, owner_id, vendor_id, cost_code_id, test_actor_id):
        with pytest.raises(ValidationError):
            ap_service.create_bill(
                owner_id,
                BillInput(vendor_id, date(2024, 3, 1), Decimal("100.00")),
                [BillLineInput(amount=Decimal("100.00"), cost_code_id=cost_code_id)],
                test_actor_id,
            )

    def test_job_cost_line_requires_cost_code(self, ap_service, owner_id, project_id, vendor_id, test_actor_id):
        with pytest.raises(ValidationError):
            ap_service.create_bill(
                owner_id,
                BillInput(vendor_id, date(2024, 3, 1), Decimal("100.00"), project_id=project_id),
                [BillLineInput(amount=Decimal("100.00"))],
                test_actor_id,
            )

    def test_expense_line_requires_account(self, ap_service, owner_id, vendor_id, test_actor_id):
        with pytest.raises(ValidationError):
            ap_service.create_bill(
                owner_id,
                BillInput(vendor_id, date(2024, 3, 1), Decimal("100.00")),
                [BillLineInput(amount=Decimal("100.00"), line_type=LineType.EXPENSE)],
                test_actor_id,
            )

    def test_unknown_explicit_po_rejected(
        self, ap_service, owner_id, project_id, vendor_id, cost_code_id, test_actor_id
    ):
        with pytest.raises(UnknownPurchaseOrderError):
            ap_service.create_bill(
                owner_id,
                BillInput(vendor_id, date(2024, 3, 1), Decimal("100.00"), project_id=project_id),
                [
                    BillLineInput(
                        amount=Decimal("100.00"),
                        cost_code_id=cost_code_id,
                        po_link=ExplicitPO(uuid4()),
                    )
                ],
                test_actor_id,
            )

    def test_form_values_normalize_po_link(self, cost_code_id):
        line = BillLineInput(amount=Decimal("1.00"), cost_code_id=cost_code_id, po_link="__none__")
        assert isinstance(line.po_link, NoPO)

    def test_closed_period_rejected(
        self, ap_service, period_service, owner_id, project_id, vendor_id, cost_code_id, test_actor_id
    ):
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        with pytest.raises(ClosedPeriodError):
            ap_service.create_bill(
                owner_id,
                BillInput(vendor_id, date(2024, 3, 1), Decimal("100.00"), project_id=project_id),
                [BillLineInput(amount=Decimal("100.00"), cost_code_id=cost_code_id)],
                test_actor_id,
            )


class TestPostBill:

    def test_job_cost_bill_debits_wip_credits_ap(
        self, session, ap_service, posted_bill, ledger_selector, owner_id, project_id, cost_code_id, accounts
    ):
        bill = posted_bill("500.00")
        entry = _entry(session, bill.journal_entry_id)

        assert bill.status == BillStatus.POSTED.value
        assert entry.source_type == SourceType.BILL.value
        assert entry.source_id == bill.id
        wip_line, ap_line = entry.lines
        assert wip_line.account_id == accounts["1430"].id
        assert wip_line.debit == Decimal("500.00")
        assert wip_line.project_id == project_id
        assert wip_line.cost_code_id == cost_code_id
        assert ap_line.account_id == accounts["2010"].id
        assert ap_line.credit == Decimal("500.00")
        assert ledger_selector.account_balance(owner_id, accounts["2010"].id).balance == Decimal("500.00")

    def test_expense_and_job_cost_lines(
        self, session, posted_bill, cost_code_id, accounts
    ):
        bill = posted_bill(
            "300.00",
            lines=[
                BillLineInput(amount=Decimal("200.00"), cost_code_id=cost_code_id),
                BillLineInput(
                    amount=Decimal("100.00"),
                    line_type=LineType.EXPENSE,
                    account_id=accounts["6010"].id,
                ),
            ],
        )
        entry = _entry(session, bill.journal_entry_id)
        assert [(l.account_id, l.debit, l.credit) for l in entry.lines] == [
            (accounts["1430"].id, Decimal("200.00"), Decimal("0.00")),
            (accounts["6010"].id, Decimal("100.00"), Decimal("0.00")),
            (accounts["2010"].id, Decimal("0.00"), Decimal("300.00")),
        ]

    def test_vendor_credit_swaps_sides(self, session, posted_bill, cost_code_id, accounts):
        bill = posted_bill(
            "-120.00",
            lines=[BillLineInput(amount=Decimal("-120.00"), cost_code_id=cost_code_id)],
        )
        wip_line, ap_line = _entry(session, bill.journal_entry_id).lines
        assert wip_line.credit == Decimal("120.00")
        assert ap_line.account_id == accounts["2010"].id
        assert ap_line.debit == Decimal("120.00")

    def test_cent_difference_lands_on_last_line(self, session, posted_bill, cost_code_id):
        bill = posted_bill(
            "100.00",
            lines=[
                BillLineInput(amount=Decimal("33.33"), cost_code_id=cost_code_id),
                BillLineInput(amount=Decimal("33.33"), cost_code_id=cost_code_id),
                BillLineInput(amount=Decimal("33.33"), cost_code_id=cost_code_id),
            ],
        )
        entry = _entry(session, bill.journal_entry_id)
        assert [l.debit for l in entry.lines[:3]] == [
            Decimal("33.33"),
            Decimal("33.33"),
            Decimal("33.34"),
        ]
        assert entry.is_balanced

    def test_lines_outside_tolerance_rejected(
        self, ap_service, owner_id, project_id, vendor_id, cost_code_id, test_actor_id
    ):
        bill = ap_service.create_bill(
            owner_id,
            BillInput(vendor_id, date(2024, 3, 1), Decimal("100.00"), project_id=project_id),
            [BillLineInput(amount=Decimal("90.00"), cost_code_id=cost_code_id)],
            test_actor_id,
        )
        with pytest.raises(ValidationError):
            ap_service.post_bill(bill.id, owner_id, test_actor_id)

    def test_post_twice_rejected(self, ap_service, posted_bill, owner_id, test_actor_id):
        bill = posted_bill()
        with pytest.raises(InvalidBillStateError):
            ap_service.post_bill(bill.id, owner_id, test_actor_id)

    def test_other_owner_cannot_see_bill(self, ap_service, posted_bill, test_actor_id):
        bill = posted_bill()
        with pytest.raises(EntityNotFoundError):
            ap_service.get_bill(bill.id, uuid4())


class TestPayBills:

    def test_partial_then_full_payment(
        self, ap_service, posted_bill, ledger_selector, owner_id, accounts, test_actor_id
    ):
        bill = posted_bill("500.00")

        result = ap_service.pay_bills(
            owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id,
            payment_amount=Decimal("200.00"),
        )
        (applied,) = result.applied
        assert applied.amount_paid == Decimal("200.00")
        assert applied.remaining == Decimal("300.00")
        assert applied.status == BillStatus.PARTIAL
        assert ap_service.remaining_balance(bill) == Decimal("300.00")

        ap_service.pay_bills(owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 15), test_actor_id)
        assert bill.status == BillStatus.PAID.value
        assert bill.amount_paid == Decimal("500.00")
        assert ledger_selector.account_balance(owner_id, accounts["2010"].id).balance == Decimal("0.00")
        assert ledger_selector.account_balance(owner_id, accounts["1010"].id).balance == Decimal("-500.00")

    def test_overpayment_rejected(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        bill = posted_bill("500.00")
        ap_service.pay_bills(
            owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id,
            payment_amount=Decimal("200.00"),
        )
        with pytest.raises(InvalidPaymentAmountError) as exc_info:
            ap_service.pay_bills(
                owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 2), test_actor_id,
                payment_amount=Decimal("300.01"),
            )
        assert exc_info.value.remaining == "300.00"

    @pytest.mark.parametrize("amount", ["0.00", "-5.00"])
    def test_non_positive_payment_rejected(self, ap_service, posted_bill, owner_id, accounts, test_actor_id, amount):
        bill = posted_bill("500.00")
        with pytest.raises(InvalidPaymentAmountError):
            ap_service.pay_bills(
                owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id,
                payment_amount=Decimal(amount),
            )

    def test_multi_bill_payment_pays_each_in_full(
        self, session, ap_service, posted_bill, owner_id, accounts, test_actor_id
    ):
        first = posted_bill("100.00", reference="INV-1")
        second = posted_bill("250.00", reference="INV-2")

        result = ap_service.pay_bills(
            owner_id, [first.id, second.id], accounts["2100"].id, date(2024, 4, 1), test_actor_id
        )

        assert result.amount == Decimal("350.00")
        assert set(result.bill_ids) == {first.id, second.id}
        assert first.status == second.status == BillStatus.PAID.value
        entry = _entry(session, result.journal_entry_id)
        assert entry.source_type == SourceType.BILL_PAYMENT.value
        assert [(l.account_id, l.debit, l.credit) for l in entry.lines] == [
            (accounts["2010"].id, Decimal("350.00"), Decimal("0.00")),
            (accounts["2100"].id, Decimal("0.00"), Decimal("350.00")),
        ]

    def test_partial_amount_needs_single_bill(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        first = posted_bill("100.00", reference="INV-1")
        second = posted_bill("100.00", reference="INV-2")
        with pytest.raises(ValidationError):
            ap_service.pay_bills(
                owner_id, [first.id, second.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id,
                payment_amount=Decimal("50.00"),
            )

    def test_revenue_account_cannot_fund_payment(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        bill = posted_bill()
        with pytest.raises(ValidationError):
            ap_service.pay_bills(owner_id, [bill.id], accounts["4010"].id, date(2024, 4, 1), test_actor_id)

    def test_paid_bill_cannot_be_paid_again(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        bill = posted_bill()
        ap_service.pay_bills(owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id)
        with pytest.raises(InvalidBillStateError):
            ap_service.pay_bills(owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 2), test_actor_id)

    def test_payments_for_bill(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        bill = posted_bill("500.00")
        first = ap_service.pay_bills(
            owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id,
            payment_amount=Decimal("100.00"),
        )
        second = ap_service.pay_bills(owner_id, [bill.id], accounts["1010"].id, date(2024, 5, 1), test_actor_id)
        assert [p.id for p in ap_service.payments_for_bill(bill.id, owner_id)] == [
            first.payment_id,
            second.payment_id,
        ]

    def test_payment_logs_event(self, ap_service, posted_bill, owner_id, accounts, test_actor_id, captured_logs):
        bill = posted_bill()
        ap_service.pay_bills(owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id)
        records = [r for r in captured_logs() if r["message"] == "bills_paid"]
        assert records[-1]["amount"] == "500.00"
        assert records[-1]["partial"] is False

    def test_failed_posting_leaves_bill_unpaid(
        self, session, monkeypatch, ap_service, journal_service, posted_bill, owner_id, accounts, test_actor_id
    ):
        bill = posted_bill("500.00")

        def _fail(*args, **kwargs):
            raise RuntimeError("posting failed")

        monkeypatch.setattr(journal_service, "post_entry", _fail)
        with pytest.raises(RuntimeError):
            ap_service.pay_bills(owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id)
        session.expire_all()

        bill = ap_service.get_bill(bill.id, owner_id)
        assert bill.amount_paid == Decimal("0.00")
        assert bill.status == BillStatus.POSTED.value
        assert ap_service.payments_for_bill(bill.id, owner_id) == []
        assert session.scalar(select(func.count()).select_from(BillPaymentAllocation)) == 0
        assert session.scalar(select(func.count()).select_from(BillPayment)) == 0


class TestUpdateBillPayment:

    def test_amount_change_patches_entry_and_bill(
        self, session, ap_service, posted_bill, ledger_selector, owner_id, accounts, test_actor_id
    ):
        bill = posted_bill("500.00")
        payment = ap_service.pay_bills(
            owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id,
            payment_amount=Decimal("200.00"),
        )

        result = ap_service.update_bill_payment(
            payment.payment_id, owner_id, test_actor_id, amount=Decimal("350.00"), payment_date=date(2024, 4, 5)
        )

        assert result.amount == Decimal("350.00")
        assert result.payment_date == date(2024, 4, 5)
        assert bill.amount_paid == Decimal("350.00")
        assert bill.status == BillStatus.PARTIAL.value
        entry = _entry(session, payment.journal_entry_id)
        assert entry.entry_date == date(2024, 4, 5)
        assert entry.is_balanced
        assert entry.total_debits == Decimal("350.00")
        assert ledger_selector.account_balance(owner_id, accounts["2010"].id).balance == Decimal("150.00")

    def test_amount_above_ceiling_rejected(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        bill = posted_bill("500.00")
        payment = ap_service.pay_bills(
            owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id,
            payment_amount=Decimal("200.00"),
        )
        with pytest.raises(InvalidPaymentAmountError):
            ap_service.update_bill_payment(payment.payment_id, owner_id, test_actor_id, amount=Decimal("500.01"))

    def test_full_amount_marks_bill_paid(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        bill = posted_bill("500.00")
        payment = ap_service.pay_bills(
            owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id,
            payment_amount=Decimal("200.00"),
        )
        ap_service.update_bill_payment(payment.payment_id, owner_id, test_actor_id, amount=Decimal("500.00"))
        assert bill.status == BillStatus.PAID.value

    def test_multi_bill_amount_change_rejected(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        first = posted_bill("100.00", reference="INV-1")
        second = posted_bill("100.00", reference="INV-2")
        payment = ap_service.pay_bills(
            owner_id, [first.id, second.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id
        )
        with pytest.raises(ValidationError):
            ap_service.update_bill_payment(payment.payment_id, owner_id, test_actor_id, amount=Decimal("150.00"))

    def test_reconciled_payment_cannot_change(
        self, session, ap_service, posted_bill, owner_id, accounts, test_actor_id
    ):
        bill = posted_bill()
        payment = ap_service.pay_bills(owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id)
        row = ap_service.get_payment(payment.payment_id, owner_id)
        row.reconciled = True
        session.flush()
        with pytest.raises(ReconciledTransactionError):
            ap_service.update_bill_payment(payment.payment_id, owner_id, test_actor_id, payment_date=date(2024, 4, 2))

    def test_move_into_closed_period_rejected(
        self, ap_service, period_service, posted_bill, owner_id, project_id, accounts, test_actor_id
    ):
        bill = posted_bill()
        payment = ap_service.pay_bills(owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id)
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        with pytest.raises(ClosedPeriodError):
            ap_service.update_bill_payment(payment.payment_id, owner_id, test_actor_id, payment_date=date(2024, 3, 30))


class TestReverseBill:

    def test_reversal_clears_payable(
        self, ap_service, posted_bill, ledger_selector, owner_id, accounts, test_actor_id
    ):
        bill = posted_bill("500.00")
        result = ap_service.reverse_bill(bill.id, owner_id, test_actor_id)

        reversal = ap_service.get_bill(result.reversal_bill_id, owner_id)
        assert bill.is_reversed
        assert reversal.is_reversal
        assert reversal.reversal_of_id == bill.id
        assert reversal.total_amount == Decimal("-500.00")
        assert reversal.bill_date == date(2024, 6, 30)
        assert ledger_selector.account_balance(owner_id, accounts["2010"].id).balance == Decimal("0.00")
        assert ledger_selector.account_balance(owner_id, accounts["1430"].id).balance == Decimal("0.00")

    def test_reverse_twice_rejected(self, ap_service, posted_bill, owner_id, test_actor_id):
        bill = posted_bill()
        result = ap_service.reverse_bill(bill.id, owner_id, test_actor_id)
        with pytest.raises(ReversedEntryError):
            ap_service.reverse_bill(bill.id, owner_id, test_actor_id)
        with pytest.raises(ReversedEntryError):
            ap_service.reverse_bill(result.reversal_bill_id, owner_id, test_actor_id)

    def test_paid_bill_cannot_be_reversed(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        bill = posted_bill("500.00")
        ap_service.pay_bills(
            owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id,
            payment_amount=Decimal("1.00"),
        )
        with pytest.raises(InvalidBillStateError):
            ap_service.reverse_bill(bill.id, owner_id, test_actor_id)

    def test_draft_cannot_be_reversed(
        self, ap_service, owner_id, project_id, vendor_id, cost_code_id, test_actor_id
    ):
        bill = ap_service.create_bill(
            owner_id,
            BillInput(vendor_id, date(2024, 3, 1), Decimal("10.00"), project_id=project_id),
            [BillLineInput(amount=Decimal("10.00"), cost_code_id=cost_code_id)],
            test_actor_id,
        )
        with pytest.raises(InvalidBillStateError):
            ap_service.reverse_bill(bill.id, owner_id, test_actor_id)

    def test_reversed_bill_cannot_be_paid(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        bill = posted_bill()
        ap_service.reverse_bill(bill.id, owner_id, test_actor_id)
        with pytest.raises(InvalidBillStateError):
            ap_service.pay_bills(owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id)


@pytest.fixture
def draft_bill(ap_service, owner_id, project_id, vendor_id, cost_code_id, test_actor_id):
    return ap_service.create_bill(
        owner_id,
        BillInput(vendor_id, date(2024, 3, 1), Decimal("100.00"), project_id=project_id),
        [BillLineInput(amount=Decimal("100.00"), cost_code_id=cost_code_id)],
        test_actor_id,
    )


class TestUpdateBill:

    def test_draft_lines_and_total_replaced(
        self, ap_service, draft_bill, owner_id, project_id, vendor_id, cost_code_id, accounts, test_actor_id
    ):
        bill = ap_service.update_bill(
            draft_bill.id,
            owner_id,
            BillInput(
                vendor_id, date(2024, 3, 5), Decimal("250.00"), project_id=project_id, reference_number="INV-7"
            ),
            [
                BillLineInput(amount=Decimal("200.00"), cost_code_id=cost_code_id),
                BillLineInput(amount=Decimal("50.00"), line_type=LineType.EXPENSE, account_id=accounts["6010"].id),
            ],
            test_actor_id,
        )

        assert bill.total_amount == Decimal("250.00")
        assert bill.bill_date == date(2024, 3, 5)
        assert bill.reference_number == "INV-7"
        assert [(l.line_number, l.amount) for l in bill.lines] == [
            (1, Decimal("200.00")),
            (2, Decimal("50.00")),
        ]
        assert bill.status == BillStatus.DRAFT.value

    def test_updated_draft_posts_new_lines(
        self, session, ap_service, draft_bill, owner_id, project_id, vendor_id, cost_code_id, accounts, test_actor_id
    ):
        ap_service.update_bill(
            draft_bill.id,
            owner_id,
            BillInput(vendor_id, date(2024, 3, 1), Decimal("80.00"), project_id=project_id),
            [BillLineInput(amount=Decimal("80.00"), cost_code_id=cost_code_id)],
            test_actor_id,
        )
        result = ap_service.post_bill(draft_bill.id, owner_id, test_actor_id)
        entry = _entry(session, result.journal_entry_id)
        assert [(l.debit, l.credit) for l in entry.lines] == [
            (Decimal("80.00"), Decimal("0.00")),
            (Decimal("0.00"), Decimal("80.00")),
        ]

    def test_posted_bill_rejected(self, ap_service, posted_bill, owner_id, project_id, vendor_id, cost_code_id, test_actor_id):
        bill = posted_bill()
        with pytest.raises(InvalidBillStateError):
            ap_service.update_bill(
                bill.id,
                owner_id,
                BillInput(vendor_id, date(2024, 3, 1), Decimal("10.00"), project_id=project_id),
                [BillLineInput(amount=Decimal("10.00"), cost_code_id=cost_code_id)],
                test_actor_id,
            )

    def test_move_into_closed_period_rejected(
        self, ap_service, period_service, draft_bill, owner_id, project_id, vendor_id, cost_code_id, test_actor_id
    ):
        period_service.close_period(owner_id, project_id, date(2024, 2, 29), test_actor_id)
        with pytest.raises(ClosedPeriodError):
            ap_service.update_bill(
                draft_bill.id,
                owner_id,
                BillInput(vendor_id, date(2024, 2, 20), Decimal("100.00"), project_id=project_id),
                [BillLineInput(amount=Decimal("100.00"), cost_code_id=cost_code_id)],
                test_actor_id,
            )

    def test_lines_required(self, ap_service, draft_bill, owner_id, project_id, vendor_id, test_actor_id):
        with pytest.raises(ValidationError):
            ap_service.update_bill(
                draft_bill.id,
                owner_id,
                BillInput(vendor_id, date(2024, 3, 1), Decimal("100.00"), project_id=project_id),
                [],
                test_actor_id,
            )


class TestDeleteBill:

    def test_draft_deleted(self, ap_service, draft_bill, owner_id, test_actor_id, captured_logs):
        ap_service.delete_bill(draft_bill.id, owner_id, test_actor_id)
        with pytest.raises(EntityNotFoundError):
            ap_service.get_bill(draft_bill.id, owner_id)
        assert any(r["message"] == "bill_deleted" for r in captured_logs())

    def test_posted_bill_and_entry_deleted(
        self, ap_service, journal_service, ledger_selector, posted_bill, owner_id, accounts, test_actor_id
    ):
        bill = posted_bill("500.00")
        bill_id = bill.id

        ap_service.delete_bill(bill_id, owner_id, test_actor_id)

        with pytest.raises(EntityNotFoundError):
            ap_service.get_bill(bill_id, owner_id)
        assert journal_service.entries_for_source(owner_id, SourceType.BILL, bill_id) == []
        assert ledger_selector.account_balance(owner_id, accounts["2010"].id).balance == Decimal("0.00")

    def test_paid_bill_rejected(self, ap_service, posted_bill, owner_id, accounts, test_actor_id):
        bill = posted_bill("500.00")
        ap_service.pay_bills(
            owner_id, [bill.id], accounts["1010"].id, date(2024, 4, 1), test_actor_id,
            payment_amount=Decimal("1.00"),
        )
        with pytest.raises(InvalidBillStateError):
            ap_service.delete_bill(bill.id, owner_id, test_actor_id)

    def test_closed_period_rejected(
        self, ap_service, period_service, posted_bill, owner_id, project_id, test_actor_id
    ):
        bill = posted_bill()
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        with pytest.raises(ClosedPeriodError):
            ap_service.delete_bill(bill.id, owner_id, test_actor_id)
        assert ap_service.get_bill(bill.id, owner_id).journal_entry_id is not None

    def test_reconciled_bill_rejected(self, session, ap_service, posted_bill, owner_id, test_actor_id):
        bill = posted_bill()
        bill.reconciled = True
        session.flush()
        with pytest.raises(ReconciledTransactionError):
            ap_service.delete_bill(bill.id, owner_id, test_actor_id)

    def test_reversed_bill_rejected(self, ap_service, posted_bill, owner_id, test_actor_id):
        bill = posted_bill()
        result = ap_service.reverse_bill(bill.id, owner_id, test_actor_id)
        with pytest.raises(ReversedEntryError):
            ap_service.delete_bill(bill.id, owner_id, test_actor_id)
        with pytest.raises(ReversedEntryError):
            ap_service.delete_bill(result.reversal_bill_id, owner_id, test_actor_id)

    def test_failed_entry_delete_keeps_bill(
        self, ap_service, journal_service, posted_bill, owner_id, test_actor_id, monkeypatch
    ):
        bill = posted_bill()

        def _fail(*args, **kwargs):
            raise RuntimeError("journal unavailable")

        monkeypatch.setattr(journal_service, "delete_journal_entry_with_owner_check", _fail)
        with pytest.raises(RuntimeError):
            ap_service.delete_bill(bill.id, owner_id, test_actor_id)
        assert ap_service.get_bill(bill.id, owner_id).journal_entry_id is not None


class TestPOMatchingService:

    @pytest.fixture
    def purchase_order(self, ap_service, owner_id, project_id, vendor_id, cost_code_id, test_actor_id):
        return ap_service.create_purchase_order(
            owner_id, project_id, vendor_id, cost_code_id, "PO-1001", Decimal("1000.00"), test_actor_id
        )

    def test_cumulative_billing_goes_over_po(
        self, po_matching_service, posted_bill, purchase_order, owner_id
    ):
        posted_bill("600.00", reference="INV-1")
        second = posted_bill("500.00", reference="INV-2")

        result = po_matching_service.match_bills_to_pos(owner_id, [second.id])[second.id]

        assert result.overall_status == MatchStatus.OVER_PO
        (match,) = result.matches
        assert match.po_id == purchase_order.id
        assert match.total_billed == Decimal("1100.00")
        assert match.remaining == Decimal("-100.00")

    def test_reversed_bills_excluded_from_history(
        self, ap_service, po_matching_service, posted_bill, purchase_order, owner_id, test_actor_id
    ):
        first = posted_bill("600.00", reference="INV-1")
        ap_service.reverse_bill(first.id, owner_id, test_actor_id)
        second = posted_bill("500.00", reference="INV-2")

        match = po_matching_service.match_bills_to_pos(owner_id, [second.id])[second.id].matches[0]
        assert match.total_billed == Decimal("500.00")
        assert match.status == MatchStatus.MATCHED

    def test_related_bills(self, po_matching_service, posted_bill, purchase_order, owner_id):
        older = posted_bill("100.00", bill_date=date(2024, 2, 1), reference="INV-1")
        newer = posted_bill("200.00", bill_date=date(2024, 3, 1), reference="INV-2")

        related = po_matching_service.related_bills(owner_id, purchase_order.id)
        assert [r.bill_id for r in related] == [newer.id, older.id]

    def test_related_bills_hidden_from_other_owner(self, po_matching_service, purchase_order):
        assert po_matching_service.related_bills(uuid4(), purchase_order.id) == ()

    def test_unknown_bills_yield_empty_result(self, po_matching_service, owner_id):
        assert po_matching_service.match_bills_to_pos(owner_id, [uuid4()]) == {}


class TestReversedEntryGuards:

    def test_reversed_bill_entry_cannot_be_corrected(
        self, session, ap_service, posted_bill, owner_id, test_actor_id
    ):
        bill = posted_bill()
        ap_service.reverse_bill(bill.id, owner_id, test_actor_id)
        entry = _entry(session, bill.journal_entry_id)
        with sanctioned_correction(session):
            entry.lines[0].memo = "edited"
            with pytest.raises(ReversedEntryError):
                session.flush()
