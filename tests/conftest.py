"""
Pytest fixtures for the ledger test suite.

Provides:
- An in-memory SQLite engine shared by the whole session (StaticPool)
- Per-test sessions isolated by an outer transaction that is rolled back
- A deterministic clock, actor/owner/project ids
- A seeded homebuilder chart of accounts and the bound LedgerAccounts
- Service fixtures wired to the same session, clock and permissions
- ``captured_logs`` for asserting on structured log events
"""

import json
import logging
from datetime import date, datetime, timezone
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ledger_config import LedgerConfig, bind_ledger_accounts
from ledger_kernel.db.engine import init_engine_from_url, reset_engine
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.dtos import EntryMeta, LineInput
from ledger_kernel.domain.permissions import Permission, StaticPermissions
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.account import AccountType
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodService
from ledger_modules._orm_registry import create_all_tables, drop_all_tables
from ledger_modules.ap.matching import POMatchingService
from ledger_modules.ap.service import APService
from ledger_modules.cash.credit_cards import CreditCardService
from ledger_modules.cash.service import CashService
from ledger_modules.journal.service import ManualJournalService
from ledger_modules.lots.service import LotService
from ledger_services.reconciliation_service import ReconciliationService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# Chart of accounts seeded for every test owner: code -> (name, type)
CHART_OF_ACCOUNTS = {
    "1010": ("Operating Bank", AccountType.ASSET),
    "1020": ("Payroll Bank", AccountType.ASSET),
    "1430": ("Work in Progress", AccountType.ASSET),
    "2010": ("Accounts Payable", AccountType.LIABILITY),
    "2100": ("Company Credit Card", AccountType.LIABILITY),
    "2905": ("Customer Deposits", AccountType.EQUITY),
    "3000": ("Owner Equity", AccountType.EQUITY),
    "4010": ("Construction Revenue", AccountType.REVENUE),
    "6010": ("Office Expense", AccountType.EXPENSE),
}


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ap_service):
            ap_service.post_bill(...)
            assert any(r["message"] == "bill_posted" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single in-memory SQLite engine for the entire test session."""
    eng = init_engine_from_url("sqlite://")
    create_all_tables()
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    drop_all_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """
    Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection; every
    service savepoint nests inside it and teardown rolls everything back.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Identity, time, permissions
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def project_id() -> UUID:
    return uuid4()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 6, 30, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def permissions(test_actor_id) -> StaticPermissions:
    """The test actor may close books and undo reconciliations."""
    return StaticPermissions(
        {
            test_actor_id: {
                Permission.CAN_CLOSE_BOOKS,
                Permission.CAN_UNDO_RECONCILIATION,
            }
        }
    )


# =============================================================================
# Chart of accounts
# =============================================================================


@pytest.fixture
def account_service(session, deterministic_clock) -> AccountService:
    return AccountService(session, deterministic_clock)


@pytest.fixture
def accounts(account_service, owner_id, test_actor_id) -> dict:
    """Seed the chart of accounts; returns code -> Account."""
    return {
        code: account_service.create_account(owner_id, code, name, account_type, test_actor_id)
        for code, (name, account_type) in CHART_OF_ACCOUNTS.items()
    }


@pytest.fixture
def ledger_accounts(session, owner_id, accounts):
    return bind_ledger_accounts(session, owner_id, LedgerConfig())


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def period_service(session, deterministic_clock, permissions) -> PeriodService:
    return PeriodService(session, deterministic_clock, permissions)


@pytest.fixture
def journal_service(session, deterministic_clock, permissions, period_service) -> JournalService:
    return JournalService(session, deterministic_clock, permissions, period_service)


@pytest.fixture
def ledger_selector(session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def ap_service(session, ledger_accounts, deterministic_clock, journal_service) -> APService:
    return APService(session, ledger_accounts, clock=deterministic_clock, journal=journal_service)


@pytest.fixture
def po_matching_service(session) -> POMatchingService:
    return POMatchingService(session)


@pytest.fixture
def cash_service(session, ledger_accounts, deterministic_clock, journal_service) -> CashService:
    return CashService(session, ledger_accounts, clock=deterministic_clock, journal=journal_service)


@pytest.fixture
def credit_card_service(session, ledger_accounts, deterministic_clock, journal_service) -> CreditCardService:
    return CreditCardService(session, ledger_accounts, clock=deterministic_clock, journal=journal_service)


@pytest.fixture
def manual_journal_service(
    session, ledger_accounts, deterministic_clock, journal_service
) -> ManualJournalService:
    return ManualJournalService(
        session, ledger_accounts, clock=deterministic_clock, journal=journal_service
    )


@pytest.fixture
def lot_service(session, deterministic_clock, period_service) -> LotService:
    return LotService(session, deterministic_clock, period_service=period_service)


@pytest.fixture
def reconciliation_service(session, deterministic_clock, permissions) -> ReconciliationService:
    return ReconciliationService(session, deterministic_clock, permissions)


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def post_simple_entry(journal_service, owner_id, accounts, test_actor_id):
    """
    Post a two-line entry: debit one account code, credit another.

    Usage::

        entry = post_simple_entry("6010", "1010", "125.00", date(2024, 3, 1))
    """

    def _post(
        debit_code: str,
        credit_code: str,
        amount: str,
        entry_date: date = date(2024, 3, 1),
        project_id: UUID | None = None,
        **tags,
    ):
        return journal_service.post_entry(
            owner_id,
            [
                LineInput.dr(accounts[debit_code].id, amount, project_id=project_id, **tags),
                LineInput.cr(accounts[credit_code].id, amount, project_id=project_id),
            ],
            EntryMeta(entry_date=entry_date, description="test entry", project_id=project_id),
            test_actor_id,
        )

    return _post
