"""
Two sessions racing on the same rows.

Each test builds its own file-backed SQLite database so the sessions hold
separate connections and see each other's commits, which the shared
rolled-back test session cannot show.

Covers:
- A period transition lost to a concurrent close fails with PeriodStateError
- A stale version counter fails with OptimisticLockError
- Posting an entry another session already posted fails with AlreadyPostedError
"""

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

import ledger_kernel.models  # noqa: F401
from ledger_config.schema import BANK_RECONCILIATION
from ledger_kernel.db.base import Base
from ledger_kernel.domain.values import AccountType, JournalEntryStatus, PeriodStatus, PeriodType
from ledger_kernel.exceptions import AlreadyPostedError, OptimisticLockError, PeriodStateError
from ledger_kernel.models.closing_period import ClosingPeriod
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.services.posting_orchestrator import PostingOrchestrator


@pytest.fixture
def file_engine(tmp_path, db_tables):
    engine = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def open_sessions(file_engine):
    sessions = []

    def _open() -> Session:
        sess = Session(file_engine, expire_on_commit=False)
        sessions.append(sess)
        return sess

    yield _open
    for sess in sessions:
        sess.close()


@pytest.fixture
def make_file_orchestrator(open_sessions, closing_settings, deterministic_clock, notifier):
    def _make() -> PostingOrchestrator:
        return PostingOrchestrator(
            open_sessions(),
            settings=closing_settings,
            clock=deterministic_clock,
            notifier=notifier,
        )

    return _make


@pytest.fixture
def committed_january(make_file_orchestrator, deterministic_clock, test_actor_id):
    """Committed open period 2025-01, checklist attested, clock past cutoff."""
    setup = make_file_orchestrator()
    period = setup.periods.create_period(
        PeriodType.MONTHLY, date(2025, 1, 1), date(2025, 1, 31), test_actor_id
    )
    setup.periods.complete_checklist_item(period.id, BANK_RECONCILIATION, test_actor_id)
    setup.accounts.create_account("1101", "Kas Besar", AccountType.ASSET, None, test_actor_id)
    setup.accounts.create_account("4101", "Pendapatan Rawat Jalan", AccountType.REVENUE, None, test_actor_id)
    setup.periods.session.commit()
    deterministic_clock.set_date(date(2025, 2, 6))
    return period


class TestPeriodTransitionRace:
    def test_loser_sees_new_status(self, make_file_orchestrator, committed_january, closer):
        first = make_file_orchestrator()
        second = make_file_orchestrator()
        # both sessions have read the period while it was open
        assert first.periods.get_period(committed_january.id).status == PeriodStatus.OPEN
        assert second.periods.get_period(committed_january.id).status == PeriodStatus.OPEN

        first.soft_close(committed_january.id, closer)

        with pytest.raises(PeriodStateError) as exc_info:
            second.soft_close(committed_january.id, closer)

        assert exc_info.value.actual == "soft_close"
        assert second.periods.get_period(committed_january.id).soft_closed_by_id == closer.id

    def test_stale_version_rejected(self, make_file_orchestrator, committed_january, closer, captured_logs):
        first = make_file_orchestrator()
        second = make_file_orchestrator()
        stale = second.periods.session.get(ClosingPeriod, committed_january.id)

        first.soft_close(committed_january.id, closer)

        stale.notes = "Catatan dari sesi lama"
        with pytest.raises(OptimisticLockError):
            second.periods._flush_transition(stale)

        assert any(r["message"] == "period_transition_conflict" for r in captured_logs())


class TestConcurrentPosting:
    def test_second_post_of_same_draft(self, make_file_orchestrator, committed_january, poster, make_lines):
        first = make_file_orchestrator()
        second = make_file_orchestrator()
        draft = first.create_draft(
            date(2025, 1, 20),
            "Pendapatan rawat jalan",
            make_lines("1101", "4101", "150000"),
            poster,
        )
        # second session caches the draft before the first posts it
        assert second.periods.session.get(JournalEntry, draft.id).status == JournalEntryStatus.DRAFT

        first.post(draft.id, poster)

        with pytest.raises(AlreadyPostedError) as exc_info:
            second.post(draft.id, poster)

        assert exc_info.value.status == "posted"
        assert second.ledger.get_entry(draft.id).posted_by_id == poster.id
