"""
Books-closing tests.

A closed period locks every transaction dated on or before its end date for
the project it covers (or for all projects when it is owner-wide).  Closing
and reopening require the can_close_books permission; reopening requires a
reason.
"""

from datetime import date
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import EntryMeta, LineInput
from ledger_kernel.domain.permissions import StaticPermissions
from ledger_kernel.exceptions import (
    ClosedPeriodError,
    PendingReconciliationError,
    PeriodAlreadyClosedError,
    PeriodLockedError,
    PeriodNotClosedError,
    PermissionDeniedError,
    ReopenReasonRequiredError,
)
from ledger_kernel.models.accounting_period import PeriodStatus
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodService


class TestClosePeriod:

    def test_close_locks_dates_through_end(self, period_service, owner_id, project_id, test_actor_id):
        period = period_service.close_period(
            owner_id, project_id, date(2024, 3, 31), test_actor_id, closure_notes="Q1"
        )
        assert period.status == PeriodStatus.CLOSED.value
        assert period.closed_by_id == test_actor_id
        assert period_service.is_date_locked(owner_id, project_id, date(2024, 3, 31))
        assert period_service.is_date_locked(owner_id, project_id, date(2023, 12, 1))
        assert not period_service.is_date_locked(owner_id, project_id, date(2024, 4, 1))

    def test_project_close_does_not_lock_other_projects(
        self, period_service, owner_id, project_id, test_actor_id
    ):
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        assert not period_service.is_date_locked(owner_id, uuid4(), date(2024, 3, 1))

    def test_owner_wide_close_locks_every_project(self, period_service, owner_id, test_actor_id):
        period_service.close_period(owner_id, None, date(2024, 3, 31), test_actor_id)
        assert period_service.is_date_locked(owner_id, uuid4(), date(2024, 3, 1))
        assert period_service.is_date_locked(owner_id, None, date(2024, 3, 1))

    def test_close_twice_rejected(self, period_service, owner_id, project_id, test_actor_id):
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        with pytest.raises(PeriodAlreadyClosedError):
            period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)

    def test_close_requires_permission(self, session, deterministic_clock, owner_id, project_id):
        service = PeriodService(session, deterministic_clock, StaticPermissions())
        with pytest.raises(PermissionDeniedError):
            service.close_period(owner_id, project_id, date(2024, 3, 31), uuid4())

    def test_pending_reconciliation_blocks_close(
        self, period_service, reconciliation_service, owner_id, project_id, accounts, test_actor_id
    ):
        recon = reconciliation_service.start_reconciliation(
            owner_id,
            accounts["1010"].id,
            date(2024, 3, 31),
            "1000.00",
            test_actor_id,
            project_id=project_id,
        )
        check = period_service.can_close_period(owner_id, project_id, date(2024, 3, 31))
        assert not check.can_close
        assert check.blocking_reconciliation_ids == (recon.id,)

        with pytest.raises(PendingReconciliationError):
            period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)

    def test_later_reconciliation_does_not_block(
        self, period_service, reconciliation_service, owner_id, project_id, accounts, test_actor_id
    ):
        reconciliation_service.start_reconciliation(
            owner_id,
            accounts["1010"].id,
            date(2024, 4, 30),
            "0.00",
            test_actor_id,
            project_id=project_id,
        )
        assert period_service.can_close_period(owner_id, project_id, date(2024, 3, 31)).can_close

    def test_close_logs_event(self, period_service, owner_id, project_id, test_actor_id, captured_logs):
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        records = [r for r in captured_logs() if r["message"] == "period_closed"]
        assert records[0]["period_end_date"] == "2024-03-31"


class TestPostingIntoClosedBooks:

    def _lines(self, accounts, project_id):
        return [
            LineInput.dr(accounts["6010"].id, "10.00", project_id=project_id),
            LineInput.cr(accounts["1010"].id, "10.00", project_id=project_id),
        ]

    def test_posting_into_closed_period_rejected(
        self, journal_service, period_service, owner_id, project_id, accounts, test_actor_id
    ):
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        with pytest.raises(ClosedPeriodError) as exc_info:
            journal_service.post_entry(
                owner_id,
                self._lines(accounts, project_id),
                EntryMeta(entry_date=date(2024, 3, 15), project_id=project_id),
                test_actor_id,
            )
        assert exc_info.value.reason == PeriodLockedError.CLOSED
        assert exc_info.value.period_end_date == "2024-03-31"

    def test_override_requires_close_books_permission(
        self, session, deterministic_clock, period_service, owner_id, project_id, accounts, test_actor_id
    ):
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        outsider = JournalService(session, deterministic_clock, StaticPermissions(), period_service)
        with pytest.raises(PermissionDeniedError):
            outsider.post_entry(
                owner_id,
                self._lines(accounts, project_id),
                EntryMeta(entry_date=date(2024, 3, 15), project_id=project_id),
                uuid4(),
                allow_locked_period=True,
            )

    def test_override_with_permission_posts(
        self, journal_service, period_service, owner_id, project_id, accounts, test_actor_id, captured_logs
    ):
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        entry = journal_service.post_entry(
            owner_id,
            self._lines(accounts, project_id),
            EntryMeta(entry_date=date(2024, 3, 15), project_id=project_id),
            test_actor_id,
            allow_locked_period=True,
        )
        assert entry.is_posted
        assert any(r["message"] == "period_lock_overridden" for r in captured_logs())


class TestReopenPeriod:

    def test_reopen_unlocks_dates(self, period_service, owner_id, project_id, test_actor_id):
        period = period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        reopened = period_service.reopen_period(period.id, owner_id, test_actor_id, "  late vendor invoice ")

        assert reopened.status == PeriodStatus.OPEN.value
        assert reopened.reopen_reason == "late vendor invoice"
        assert reopened.reopened_by_id == test_actor_id
        assert not period_service.is_date_locked(owner_id, project_id, date(2024, 3, 15))

    def test_reason_required(self, period_service, owner_id, project_id, test_actor_id):
        period = period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        with pytest.raises(ReopenReasonRequiredError):
            period_service.reopen_period(period.id, owner_id, test_actor_id, "   ")

    def test_reopen_open_period_rejected(self, period_service, owner_id, project_id, test_actor_id):
        period = period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        period_service.reopen_period(period.id, owner_id, test_actor_id, "correction")
        with pytest.raises(PeriodNotClosedError):
            period_service.reopen_period(period.id, owner_id, test_actor_id, "again")

    def test_reopen_requires_permission(
        self, session, deterministic_clock, period_service, owner_id, project_id, test_actor_id
    ):
        period = period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        outsider = PeriodService(session, deterministic_clock, StaticPermissions())
        with pytest.raises(PermissionDeniedError):
            outsider.reopen_period(period.id, owner_id, uuid4(), "reason")

    def test_earlier_close_still_locks_after_later_reopen(
        self, period_service, owner_id, project_id, test_actor_id
    ):
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        june = period_service.close_period(owner_id, project_id, date(2024, 6, 30), test_actor_id)
        period_service.reopen_period(june.id, owner_id, test_actor_id, "adjustments")

        assert period_service.is_date_locked(owner_id, project_id, date(2024, 3, 1))
        assert not period_service.is_date_locked(owner_id, project_id, date(2024, 5, 1))

    def test_list_periods_newest_first(self, period_service, owner_id, project_id, test_actor_id):
        period_service.close_period(owner_id, project_id, date(2024, 3, 31), test_actor_id)
        period_service.close_period(owner_id, project_id, date(2024, 6, 30), test_actor_id)
        ends = [p.period_end_date for p in period_service.list_periods(owner_id, project_id)]
        assert ends == [date(2024, 6, 30), date(2024, 3, 31)]
