"""
Credit card transaction tests.

A purchase debits WIP or an expense account and credits the card; a refund
is the mirror image.  Reversal posts the swapped entry and records a
reversal row.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import (
    ClosedPeriodError,
    EntityNotFoundError,
    ReconciledTransactionError,
    ReversedEntryError,
    ValidationError,
)
from ledger_kernel.models.journal import JournalEntry, SourceType
from ledger_modules.ap.models import LineType
from ledger_modules.cash.models import CardLineInput, CardTransactionInput, CardTransactionType
from ledger_services.reconciliation_service import TransactionKind


@pytest.fixture
def card_id(accounts):
    return accounts["2100"].id


@pytest.fixture
def record(credit_card_service, owner_id, project_id, card_id, test_actor_id):
    def _record(lines, transaction_type=CardTransactionType.PURCHASE, on=date(2024, 4, 8)):
        return credit_card_service.record_card_transaction(
            owner_id,
            CardTransactionInput(
                card_id, on, transaction_type, vendor="Home Depot", project_id=project_id
            ),
            lines,
            test_actor_id,
        )

    return _record


def _entry(session, entry_id) -> JournalEntry:
    return session.get(JournalEntry, entry_id)


class TestRecordCardTransaction:

    def test_purchase_debits_costs_and_credits_card(
        self, session, record, ledger_selector, owner_id, project_id, accounts, card_id
    ):
        cost_code_id = uuid4()
        result = record(
            [
                CardLineInput(amount=Decimal("80.00"), cost_code_id=cost_code_id),
                CardLineInput(
                    amount=Decimal("40.00"), line_type=LineType.EXPENSE, account_id=accounts["6010"].id
                ),
            ]
        )

        assert result.amount == Decimal("120.00")
        entry = _entry(session, result.journal_entry_id)
        assert entry.source_type == SourceType.CREDIT_CARD.value
        assert entry.description == "Purchase - Home Depot"
        assert [(l.account_id, l.debit, l.credit) for l in entry.lines] == [
            (accounts["1430"].id, Decimal("80.00"), Decimal("0.00")),
            (accounts["6010"].id, Decimal("40.00"), Decimal("0.00")),
            (card_id, Decimal("0.00"), Decimal("120.00")),
        ]
        assert entry.lines[0].project_id == project_id
        assert entry.lines[0].cost_code_id == cost_code_id
        assert entry.lines[2].project_id is None
        assert ledger_selector.account_balance(owner_id, card_id).balance == Decimal("120.00")

    def test_refund_swaps_sides(self, session, record, accounts, card_id):
        result = record(
            [CardLineInput(amount=Decimal("25.00"), line_type="expense", account_id=accounts["6010"].id)],
            transaction_type="refund",
        )

        entry = _entry(session, result.journal_entry_id)
        assert entry.description == "Refund - Home Depot"
        assert [(l.account_id, l.debit, l.credit) for l in entry.lines] == [
            (card_id, Decimal("25.00"), Decimal("0.00")),
            (accounts["6010"].id, Decimal("0.00"), Decimal("25.00")),
        ]

    def test_lines_link_to_journal_lines(self, session, record, credit_card_service, owner_id):
        result = record([CardLineInput(amount=Decimal("10.00"), cost_code_id=uuid4())])
        row = credit_card_service.get_card_transaction(result.transaction_id, owner_id)
        entry = _entry(session, result.journal_entry_id)
        assert row.lines[0].journal_line_id == entry.lines[0].id

    def test_bank_account_is_not_a_card(self, credit_card_service, owner_id, accounts, test_actor_id):
        with pytest.raises(ValidationError):
            credit_card_service.record_card_transaction(
                owner_id,
                CardTransactionInput(accounts["1010"].id, date(2024, 4, 8)),
                [CardLineInput(amount=Decimal("10.00"), line_type="expense", account_id=accounts["6010"].id)],
                test_actor_id,
            )

    def test_lines_required(self, record):
        with pytest.raises(ValidationError):
            record([])

    def test_expense_line_requires_account(self, record):
        with pytest.raises(ValidationError):
            record([CardLineInput(amount=Decimal("10.00"), line_type="expense")])

    def test_zero_line_rejected(self, record):
        with pytest.raises(ValidationError):
            record([CardLineInput(amount=Decimal("0.00"), cost_code_id=uuid4())])

    def test_closed_period_rejected(self, record, period_service, owner_id, project_id, test_actor_id):
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        with pytest.raises(ClosedPeriodError):
            record([CardLineInput(amount=Decimal("10.00"), cost_code_id=uuid4())], on=date(2024, 3, 20))

    def test_logs_event(self, record, captured_logs):
        record([CardLineInput(amount=Decimal("12.50"), cost_code_id=uuid4())])
        records = [r for r in captured_logs() if r["message"] == "card_transaction_recorded"]
        assert records[-1]["amount"] == "12.50"
        assert records[-1]["transaction_type"] == "purchase"


class TestReverseCardTransaction:

    def test_reversal_swaps_entry_and_links_rows(
        self, session, record, credit_card_service, ledger_selector, owner_id, card_id, test_actor_id
    ):
        original = record([CardLineInput(amount=Decimal("60.00"), cost_code_id=uuid4())])

        result = credit_card_service.reverse_card_transaction(
            original.transaction_id, owner_id, test_actor_id, reversal_date=date(2024, 4, 20)
        )

        reversal_entry = _entry(session, result.reversal_entry_id)
        original_entry = _entry(session, original.journal_entry_id)
        assert reversal_entry.is_reversal
        assert reversal_entry.entry_date == date(2024, 4, 20)
        assert [(l.account_id, l.debit, l.credit) for l in reversal_entry.lines] == [
            (l.account_id, l.credit, l.debit) for l in original_entry.lines
        ]
        assert original_entry.is_reversed

        row = credit_card_service.get_card_transaction(original.transaction_id, owner_id)
        reversal = credit_card_service.get_card_transaction(result.reversal_transaction_id, owner_id)
        assert row.is_reversed
        assert reversal.is_reversal
        assert reversal.reversal_of_id == row.id
        assert reversal.amount == Decimal("-60.00")
        assert reversal.lines[0].journal_line_id == reversal_entry.lines[0].id
        assert ledger_selector.account_balance(owner_id, card_id).balance == Decimal("0.00")

    def test_reverse_twice_rejected(self, record, credit_card_service, owner_id, test_actor_id):
        original = record([CardLineInput(amount=Decimal("5.00"), cost_code_id=uuid4())])
        result = credit_card_service.reverse_card_transaction(original.transaction_id, owner_id, test_actor_id)

        with pytest.raises(ReversedEntryError):
            credit_card_service.reverse_card_transaction(original.transaction_id, owner_id, test_actor_id)
        with pytest.raises(ReversedEntryError):
            credit_card_service.reverse_card_transaction(result.reversal_transaction_id, owner_id, test_actor_id)

    def test_reconciled_transaction_rejected(
        self, record, credit_card_service, reconciliation_service, owner_id, card_id, test_actor_id
    ):
        original = record([CardLineInput(amount=Decimal("5.00"), cost_code_id=uuid4())])
        rec = reconciliation_service.start_reconciliation(
            owner_id, card_id, date(2024, 4, 30), Decimal("-5.00"), test_actor_id
        )
        reconciliation_service.mark_transaction(
            rec.id, owner_id, TransactionKind.CREDIT_CARD, original.transaction_id, True, test_actor_id
        )

        with pytest.raises(ReconciledTransactionError):
            credit_card_service.reverse_card_transaction(original.transaction_id, owner_id, test_actor_id)

    def test_other_owner_cannot_reverse(self, record, credit_card_service, test_actor_id):
        original = record([CardLineInput(amount=Decimal("5.00"), cost_code_id=uuid4())])
        with pytest.raises(EntityNotFoundError):
            credit_card_service.reverse_card_transaction(original.transaction_id, uuid4(), test_actor_id)


class TestCardReconciliation:

    def test_purchases_and_refunds_clear_signed(
        self, record, reconciliation_service, owner_id, card_id, accounts, test_actor_id
    ):
        purchase = record([CardLineInput(amount=Decimal("100.00"), cost_code_id=uuid4())])
        refund = record(
            [CardLineInput(amount=Decimal("30.00"), line_type="expense", account_id=accounts["6010"].id)],
            transaction_type=CardTransactionType.REFUND,
        )
        rec = reconciliation_service.start_reconciliation(
            owner_id, card_id, date(2024, 4, 30), Decimal("-70.00"), test_actor_id
        )

        for transaction_id in (purchase.transaction_id, refund.transaction_id):
            reconciliation_service.mark_transaction(
                rec.id, owner_id, TransactionKind.CREDIT_CARD, transaction_id, True, test_actor_id
            )

        assert rec.reconciled_balance == Decimal("-70.00")
        assert rec.difference == Decimal("0.00")

        result = reconciliation_service.reset_reconciliation(rec.id, owner_id, test_actor_id)
        assert result.credit_cards == 2

    def test_card_row_rejected_on_bank_reconciliation(
        self, record, reconciliation_service, owner_id, accounts, test_actor_id
    ):
        purchase = record([CardLineInput(amount=Decimal("10.00"), cost_code_id=uuid4())])
        rec = reconciliation_service.start_reconciliation(
            owner_id, accounts["1010"].id, date(2024, 4, 30), Decimal("0.00"), test_actor_id
        )
        with pytest.raises(ValidationError):
            reconciliation_service.mark_transaction(
                rec.id, owner_id, TransactionKind.CREDIT_CARD, purchase.transaction_id, True, test_actor_id
            )
