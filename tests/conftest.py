"""
Pytest fixtures for the hospital ledger test suite.

Provides:
- Database sessions isolated per test (outer transaction rolled back)
- Deterministic clock, actors and closing settings
- A hospital chart of accounts and closing period factories
- A recording notification hook and structured log capture

Environment Variables:
- DATABASE_URL: SQLAlchemy URL of the test database.  Defaults to an
  in-memory SQLite database; point it at PostgreSQL to run the suite against
  the production backend.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Any, Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ledger_config import DEFAULT_CONFIG_PATH, load_settings_from
from ledger_engines.periods import period_bounds
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.actor import Actor, Capability
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.domain.values import AccountType, NormalBalance, PeriodType
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.posting_orchestrator import PostingOrchestrator

# Test actor ID for setup operations (accounts, periods, rules)
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite:///:memory:"

SUPERVISOR_ROLE = "supervisor_keuangan"
MANAGER_ROLE = "manager_keuangan"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
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

        def test_something(captured_logs, orchestrator):
            orchestrator.record_entry(...)
            logs = captured_logs()
            assert any(r["message"] == "journal_entry_posted" for r in logs)
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
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Uses the SQLAlchemy 2.0 ``join_transaction_mode`` pattern:
    - Opens a dedicated connection with an outer transaction
    - Creates a session that *joins* the outer transaction
    - Any ``session.commit()`` inside the test releases a savepoint; it
      does NOT actually commit to the database
    - At teardown the outer transaction is rolled back, undoing ALL data
      changes made during the test
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
# Actors, clock, settings
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock (2025-01-01 09:00 UTC)."""
    return DeterministicClock()


@pytest.fixture
def poster() -> Actor:
    """Accounting staff: may post, holds no gated capability."""
    return Actor.of(uuid4())


@pytest.fixture
def closer() -> Actor:
    """Finance lead who closes and reopens periods."""
    return Actor.of(
        uuid4(),
        roles=[MANAGER_ROLE],
        capabilities=[Capability.CLOSE_PERIOD, Capability.REOPEN_PERIOD],
    )


@pytest.fixture
def override_closer() -> Actor:
    """Closer who may also close before the cutoff / hard-close date."""
    return Actor.of(
        uuid4(),
        roles=[MANAGER_ROLE],
        capabilities=[
            Capability.CLOSE_PERIOD,
            Capability.REOPEN_PERIOD,
            Capability.OVERRIDE_CUTOFF,
        ],
    )


@pytest.fixture
def supervisor() -> Actor:
    return Actor.of(uuid4(), roles=[SUPERVISOR_ROLE], capabilities=[Capability.APPROVE])


@pytest.fixture
def manager() -> Actor:
    return Actor.of(uuid4(), roles=[MANAGER_ROLE], capabilities=[Capability.APPROVE])


@pytest.fixture
def bypass_poster() -> Actor:
    """Poster allowed to request changes in hard-closed periods."""
    return Actor.of(uuid4(), capabilities=[Capability.BYPASS_PERIOD_LOCK])


@pytest.fixture(scope="session")
def default_settings():
    """Settings parsed from the packaged closing.yaml."""
    return load_settings_from(DEFAULT_CONFIG_PATH)


@pytest.fixture
def closing_settings(default_settings):
    """Per-test settings; override with ``closing_settings.with_overrides``."""
    return default_settings


# =============================================================================
# Notifications
# =============================================================================


class RecordingNotifier:
    """NotificationHook that keeps every event for assertions."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def of(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# =============================================================================
# Orchestrator
# =============================================================================


@pytest.fixture
def make_orchestrator(session, closing_settings, deterministic_clock, notifier, test_actor_id):
    """Factory for an orchestrator bound to the test session.

    ``auto_commit=False`` leaves the transaction to the test harness.  The
    configured approval rules are installed on first use.
    """

    def _make(settings=None) -> PostingOrchestrator:
        orchestrator = PostingOrchestrator(
            session,
            settings=settings or closing_settings,
            clock=deterministic_clock,
            notifier=notifier,
            auto_commit=False,
        )
        orchestrator.approvals.install_rules(test_actor_id)
        return orchestrator

    return _make


@pytest.fixture
def orchestrator(make_orchestrator) -> PostingOrchestrator:
    return make_orchestrator()


# =============================================================================
# Chart of accounts
# =============================================================================

# (code, name, type, parent, normal balance override)
HOSPITAL_ACCOUNTS: tuple[tuple[str, str, AccountType, str | None, NormalBalance | None], ...] = (
    ("1", "Aset", AccountType.ASSET, None, None),
    ("11", "Kas dan Setara Kas", AccountType.ASSET, "1", None),
    ("1101", "Kas Besar", AccountType.ASSET, "11", None),
    ("1102", "Kas Kecil", AccountType.ASSET, "11", None),
    ("1110", "Bank Mandiri", AccountType.ASSET, "11", None),
    ("1120", "Giro BCA", AccountType.ASSET, "11", None),
    ("12", "Piutang", AccountType.ASSET, "1", None),
    ("1201", "Piutang Pasien", AccountType.ASSET, "12", None),
    ("1202", "Uang Muka Pembelian", AccountType.ASSET, "12", None),
    ("13", "Aset Tetap", AccountType.ASSET, "1", None),
    ("1301", "Peralatan Medis", AccountType.ASSET, "13", None),
    ("1302", "Akumulasi Penyusutan Peralatan Medis", AccountType.ASSET, "13", NormalBalance.CREDIT),
    ("14", "Pajak Dibayar Dimuka", AccountType.ASSET, "1", None),
    ("1401", "PPN Masukan", AccountType.ASSET, "14", None),
    ("2", "Kewajiban", AccountType.LIABILITY, None, None),
    ("2101", "Utang Usaha", AccountType.LIABILITY, "2", None),
    ("2102", "Utang Gaji", AccountType.LIABILITY, "2", None),
    ("2103", "Utang PPh 21", AccountType.LIABILITY, "2", None),
    ("2104", "Utang BPJS", AccountType.LIABILITY, "2", None),
    ("3", "Ekuitas", AccountType.EQUITY, None, None),
    ("3101", "Modal Rumah Sakit", AccountType.EQUITY, "3", None),
    ("4", "Pendapatan", AccountType.REVENUE, None, None),
    ("4101", "Pendapatan Rawat Jalan", AccountType.REVENUE, "4", None),
    ("4102", "Pendapatan Rawat Inap", AccountType.REVENUE, "4", None),
    ("4201", "Laba Pelepasan Aset", AccountType.REVENUE, "4", None),
    ("4301", "Potongan Pembelian", AccountType.REVENUE, "4", None),
    ("5", "Beban", AccountType.EXPENSE, None, None),
    ("5101", "Beban Gaji Pokok", AccountType.EXPENSE, "5", None),
    ("5102", "Beban Tunjangan", AccountType.EXPENSE, "5", None),
    ("5201", "Beban Obat dan BHP", AccountType.EXPENSE, "5", None),
    ("5301", "Beban Penyusutan", AccountType.EXPENSE, "5", None),
    ("5401", "Rugi Pelepasan Aset", AccountType.EXPENSE, "5", None),
    ("5501", "Beban Listrik dan Air", AccountType.EXPENSE, "5", None),
)


@pytest.fixture
def hospital_accounts(session, test_actor_id):
    """Create the hospital chart of accounts; returns AccountInfo by code."""
    service = AccountService(session)
    accounts = {}
    for code, name, account_type, parent_code, normal_balance in HOSPITAL_ACCOUNTS:
        accounts[code] = service.create_account(
            code,
            name,
            account_type,
            normal_balance,
            test_actor_id,
            parent_code=parent_code,
        )
    return accounts


# =============================================================================
# Closing periods
# =============================================================================


@pytest.fixture
def create_period(orchestrator, test_actor_id):
    """Factory fixture creating the monthly (or other) period containing ``anchor``."""

    def _create_period(
        anchor: date,
        period_type: PeriodType = PeriodType.MONTHLY,
        **kwargs,
    ):
        bounds = period_bounds(period_type, anchor)
        return orchestrator.periods.create_period(
            period_type,
            bounds.start,
            bounds.end,
            test_actor_id,
            **kwargs,
        )

    return _create_period


@pytest.fixture
def january_period(create_period):
    """Open period 2025-01 (cutoff 2025-02-05, hard close 2025-02-20)."""
    return create_period(date(2025, 1, 15))


@pytest.fixture
def soft_closed_january(january_period, orchestrator, closer, deterministic_clock, test_actor_id):
    """Period 2025-01 soft closed on 2025-02-06, clock left on that day."""
    from ledger_config.schema import BANK_RECONCILIATION

    deterministic_clock.set_date(date(2025, 2, 6))
    orchestrator.periods.complete_checklist_item(
        january_period.id, BANK_RECONCILIATION, test_actor_id, notes="Rekonsiliasi Mandiri OK"
    )
    return orchestrator.soft_close(january_period.id, closer)


@pytest.fixture
def approve_close(orchestrator, closer, manager):
    """Request the monthly closing approval for a soft-closed period and grant every level."""

    def _approve_close(period_id):
        approval = orchestrator.request_close_approval(period_id, closer)
        while approval.is_open:
            approval = orchestrator.approvals.approve(approval.id, manager)
        return approval

    return _approve_close


@pytest.fixture
def hard_closed_january(soft_closed_january, orchestrator, closer, deterministic_clock, approve_close):
    """Period 2025-01 hard closed on 2025-02-21."""
    deterministic_clock.set_date(date(2025, 2, 21))
    approve_close(soft_closed_january.id)
    return orchestrator.hard_close(soft_closed_january.id, closer)


# =============================================================================
# Utilities
# =============================================================================


def make_balanced_lines(
    debit_account_code: str,
    credit_account_code: str,
    amount: Decimal | str,
) -> list[LineSpec]:
    """Create a balanced pair of journal lines using account codes."""
    amount = Decimal(str(amount))
    return [
        LineSpec.dr(debit_account_code, amount),
        LineSpec.cr(credit_account_code, amount),
    ]


@pytest.fixture
def make_lines():
    return make_balanced_lines
