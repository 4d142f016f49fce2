"""
Tests for the closing period state machine.

    OPEN --soft_close--> SOFT_CLOSE --hard_close--> HARD_CLOSE
      ^                      |                          |
      +-------reopen---------+----reopen (if allowed)---+

A blocked close reports every violation at once and leaves the period
unchanged.
"""

from dataclasses import replace
from datetime import date

import pytest

from ledger_config.schema import ALL_POSTED, BANK_RECONCILIATION
from ledger_kernel.domain.dtos import PostingStatus
from ledger_kernel.domain.values import ApprovalStatus, ClosingMode, PeriodStatus
from ledger_kernel.exceptions import (
    CloseBlockedError,
    InsufficientCapabilityError,
    PeriodStateError,
    ReasonTooShortError,
    ReopenForbiddenError,
)
from ledger_kernel.services.closing_period_service import (
    BEFORE_CUTOFF,
    BEFORE_HARD_CLOSE_DATE,
    CHECKLIST_INCOMPLETE,
    CLOSE_APPROVAL_MISSING,
    CLOSE_APPROVAL_PENDING,
    CLOSE_APPROVAL_REJECTED,
    HARD_CLOSE_DISABLED,
    INVALID_STATUS,
    MODULE_DISABLED,
    PENDING_REVISIONS,
    UNPOSTED_JOURNALS,
)
from ledger_kernel.services.notifications import PERIOD_TRANSITIONED

JAN_20 = date(2025, 1, 20)
REOPEN_REASON = "Koreksi saldo piutang BPJS"


def violation(exc_info, code):
    return next(v for v in exc_info.value.violations if v.code == code)


@pytest.fixture
def reconciled_january(january_period, orchestrator, test_actor_id):
    """January with the manual bank reconciliation attested."""
    return orchestrator.periods.complete_checklist_item(
        january_period.id, BANK_RECONCILIATION, test_actor_id
    )


class TestSoftClose:
    def test_soft_close(self, soft_closed_january, closer):
        assert soft_closed_january.status == PeriodStatus.SOFT_CLOSE
        assert soft_closed_january.soft_closed_by_id == closer.id
        assert soft_closed_january.soft_closed_at is not None

    def test_blocked_reports_every_violation(self, orchestrator, january_period, closer):
        with pytest.raises(CloseBlockedError) as exc_info:
            orchestrator.soft_close(january_period.id, closer)

        codes = [v.code for v in exc_info.value.violations]
        assert codes == [BEFORE_CUTOFF, CHECKLIST_INCOMPLETE]
        assert exc_info.value.target_status == "soft_close"
        assert violation(exc_info, BEFORE_CUTOFF).details == {
            "cutoff_date": "2025-02-05",
            "today": "2025-01-01",
        }
        assert violation(exc_info, CHECKLIST_INCOMPLETE).item_key == BANK_RECONCILIATION
        assert orchestrator.periods.get_period(january_period.id).status == PeriodStatus.OPEN

    def test_override_closes_before_cutoff(self, orchestrator, reconciled_january, override_closer):
        closed = orchestrator.soft_close(reconciled_january.id, override_closer)
        assert closed.status == PeriodStatus.SOFT_CLOSE

    def test_unposted_drafts_block(
        self,
        orchestrator,
        hospital_accounts,
        reconciled_january,
        deterministic_clock,
        closer,
        make_lines,
        test_actor_id,
    ):
        draft = orchestrator.ledger.create_draft(
            JAN_20, "Belum diposting", make_lines("1101", "4101", "1000"), test_actor_id
        )
        deterministic_clock.set_date(date(2025, 2, 6))

        with pytest.raises(CloseBlockedError) as exc_info:
            orchestrator.soft_close(reconciled_january.id, closer)

        unposted = violation(exc_info, UNPOSTED_JOURNALS)
        assert unposted.item_key == ALL_POSTED
        assert unposted.details == {"entries": [draft.entry_number]}

    def test_drafts_outside_period_ignored(
        self,
        orchestrator,
        hospital_accounts,
        reconciled_january,
        deterministic_clock,
        closer,
        make_lines,
        test_actor_id,
    ):
        orchestrator.ledger.create_draft(
            date(2025, 2, 3), "Februari", make_lines("1101", "4101", "1000"), test_actor_id
        )
        deterministic_clock.set_date(date(2025, 2, 6))

        assert orchestrator.soft_close(reconciled_january.id, closer).status == PeriodStatus.SOFT_CLOSE

    def test_requires_capability(self, orchestrator, reconciled_january, poster):
        with pytest.raises(InsufficientCapabilityError) as exc_info:
            orchestrator.soft_close(reconciled_january.id, poster)
        assert exc_info.value.capability == "close_period"

    def test_only_from_open(self, orchestrator, soft_closed_january, closer):
        with pytest.raises(PeriodStateError) as exc_info:
            orchestrator.soft_close(soft_closed_january.id, closer)
        assert exc_info.value.expected == "open"
        assert exc_info.value.actual == "soft_close"

    def test_module_disabled(
        self, make_orchestrator, closing_settings, reconciled_january, override_closer
    ):
        disabled = make_orchestrator(closing_settings.with_overrides(closing_mode=ClosingMode.DISABLED))

        with pytest.raises(CloseBlockedError) as exc_info:
            disabled.soft_close(reconciled_january.id, override_closer)

        assert [v.code for v in exc_info.value.violations] == [MODULE_DISABLED]

    def test_notified(self, soft_closed_january, notifier, closer):
        event = notifier.of(PERIOD_TRANSITIONED)[-1]
        assert event == {
            "period_id": str(soft_closed_january.id),
            "period_code": "2025-01",
            "from_status": "open",
            "to_status": "soft_close",
            "actor_id": str(closer.id),
            "reason": None,
        }

    def test_transition_log(self, orchestrator, reconciled_january, override_closer, captured_logs):
        orchestrator.soft_close(reconciled_january.id, override_closer, notes="Tutup awal")

        record = next(r for r in captured_logs() if r["message"] == "period_soft_closed")
        assert record["from_status"] == "open"
        assert record["to_status"] == "soft_close"
        assert record["period_code"] == "2025-01"
        assert orchestrator.periods.get_period(reconciled_january.id).notes == "Tutup awal"

    def test_blocked_logged(self, orchestrator, january_period, closer, captured_logs):
        with pytest.raises(CloseBlockedError):
            orchestrator.soft_close(january_period.id, closer)

        record = next(r for r in captured_logs() if r["message"] == "period_close_blocked")
        assert record["level"] == "WARNING"
        assert record["violation_codes"] == [BEFORE_CUTOFF, CHECKLIST_INCOMPLETE]
        assert record["target_status"] == "soft_close"


class TestHardClose:
    def test_hard_close(self, hard_closed_january, closer):
        assert hard_closed_january.status == PeriodStatus.HARD_CLOSE
        assert hard_closed_january.hard_closed_by_id == closer.id
        assert hard_closed_january.soft_closed_by_id == closer.id

    def test_before_hard_close_date(self, orchestrator, soft_closed_january, closer):
        with pytest.raises(CloseBlockedError) as exc_info:
            orchestrator.hard_close(soft_closed_january.id, closer)

        blocked = violation(exc_info, BEFORE_HARD_CLOSE_DATE)
        assert blocked.details == {"hard_close_date": "2025-02-20", "today": "2025-02-06"}

    def test_override_before_hard_close_date(
        self, orchestrator, soft_closed_january, override_closer, approve_close
    ):
        approve_close(soft_closed_january.id)
        closed = orchestrator.hard_close(soft_closed_january.id, override_closer)
        assert closed.status == PeriodStatus.HARD_CLOSE

    def test_pending_revisions_block(
        self,
        orchestrator,
        hospital_accounts,
        soft_closed_january,
        deterministic_clock,
        closer,
        poster,
        make_lines,
        approve_close,
    ):
        orchestrator.record_entry(
            date(2025, 1, 28),
            "Tagihan laboratorium terlambat",
            make_lines("5501", "1101", "400000"),
            poster,
            reason="Faktur vendor diterima setelah cutoff",
        )
        deterministic_clock.set_date(date(2025, 2, 21))
        approve_close(soft_closed_january.id)

        with pytest.raises(CloseBlockedError) as exc_info:
            orchestrator.hard_close(soft_closed_january.id, closer)

        assert [v.code for v in exc_info.value.violations] == [PENDING_REVISIONS]
        assert exc_info.value.violations[0].details == {"pending_count": 1}

    def test_only_from_soft_close(self, orchestrator, january_period, override_closer):
        with pytest.raises(PeriodStateError) as exc_info:
            orchestrator.hard_close(january_period.id, override_closer)
        assert exc_info.value.expected == "soft_close"

    def test_disabled_in_soft_only_mode(
        self, make_orchestrator, closing_settings, deterministic_clock, closer, test_actor_id
    ):
        soft_only = make_orchestrator(closing_settings.with_overrides(closing_mode=ClosingMode.SOFT_ONLY))
        period = soft_only.periods.create_period(
            "monthly", date(2025, 1, 1), date(2025, 1, 31), test_actor_id
        )
        soft_only.periods.complete_checklist_item(period.id, BANK_RECONCILIATION, test_actor_id)
        deterministic_clock.set_date(date(2025, 3, 1))
        soft_only.soft_close(period.id, closer)

        with pytest.raises(CloseBlockedError) as exc_info:
            soft_only.hard_close(period.id, closer)

        assert [v.code for v in exc_info.value.violations] == [
            HARD_CLOSE_DISABLED,
            BEFORE_HARD_CLOSE_DATE,
            CLOSE_APPROVAL_MISSING,
        ]

    def test_readiness_for_open_period(self, orchestrator, january_period, closer):
        readiness = orchestrator.periods.close_readiness(
            january_period.id, closer, PeriodStatus.HARD_CLOSE
        )

        assert not readiness.can_proceed
        assert readiness.violation_codes == (
            INVALID_STATUS,
            BEFORE_HARD_CLOSE_DATE,
            CLOSE_APPROVAL_MISSING,
        )


class TestCloseApproval:
    """Hard close waits for the monthly closing approval."""

    @pytest.fixture(autouse=True)
    def _after_hard_close_date(self, soft_closed_january, deterministic_clock):
        deterministic_clock.set_date(date(2025, 2, 21))

    def test_missing_approval_blocks(self, orchestrator, soft_closed_january, closer):
        with pytest.raises(CloseBlockedError) as exc_info:
            orchestrator.hard_close(soft_closed_january.id, closer)

        assert [v.code for v in exc_info.value.violations] == [CLOSE_APPROVAL_MISSING]
        assert orchestrator.periods.get_period(soft_closed_january.id).status == PeriodStatus.SOFT_CLOSE

    def test_request_uses_monthly_closing_rule(self, orchestrator, soft_closed_january, closer, captured_logs):
        approval = orchestrator.request_close_approval(soft_closed_january.id, closer)

        assert approval.rule_name == "Monthly Closing Approval"
        assert approval.required_levels == 2
        assert approval.required_role == "manager_keuangan"
        assert approval.approvable.record_id == soft_closed_january.id
        record = next(r for r in captured_logs() if r["message"] == "period_close_approval_requested")
        assert record["approval_id"] == str(approval.id)

    def test_second_request_returns_open_approval(self, orchestrator, soft_closed_january, closer):
        first = orchestrator.request_close_approval(soft_closed_january.id, closer)
        second = orchestrator.request_close_approval(soft_closed_january.id, closer)

        assert second.id == first.id

    def test_partially_approved_blocks(self, orchestrator, soft_closed_january, closer, manager):
        approval = orchestrator.request_close_approval(soft_closed_january.id, closer)
        orchestrator.approvals.approve(approval.id, manager)

        with pytest.raises(CloseBlockedError) as exc_info:
            orchestrator.hard_close(soft_closed_january.id, closer)

        pending = violation(exc_info, CLOSE_APPROVAL_PENDING)
        assert pending.details == {"approval_id": str(approval.id), "approval_level": 2}

    def test_rejected_blocks(self, orchestrator, soft_closed_january, closer, manager):
        approval = orchestrator.request_close_approval(soft_closed_january.id, closer)
        orchestrator.approvals.reject(approval.id, manager, "Rekonsiliasi persediaan belum lengkap")

        with pytest.raises(CloseBlockedError) as exc_info:
            orchestrator.hard_close(soft_closed_january.id, closer)

        rejected = violation(exc_info, CLOSE_APPROVAL_REJECTED)
        assert "Rekonsiliasi persediaan" in rejected.message

    def test_approved_allows_hard_close(self, orchestrator, soft_closed_january, closer, approve_close):
        approval = approve_close(soft_closed_january.id)

        closed = orchestrator.hard_close(soft_closed_january.id, closer)

        assert approval.status == ApprovalStatus.APPROVED
        assert closed.status == PeriodStatus.HARD_CLOSE

    def test_request_after_grant_returns_grant(self, orchestrator, soft_closed_january, closer, approve_close):
        granted = approve_close(soft_closed_january.id)

        again = orchestrator.request_close_approval(soft_closed_january.id, closer)

        assert again.id == granted.id
        assert orchestrator.approvals.open_for(again.approvable, "monthly_closing") is None

    def test_request_needs_soft_closed_period(self, orchestrator, create_period, closer):
        february = create_period(date(2025, 2, 10))

        with pytest.raises(PeriodStateError):
            orchestrator.request_close_approval(february.id, closer)

    def test_request_needs_close_capability(self, orchestrator, soft_closed_january, manager):
        with pytest.raises(InsufficientCapabilityError):
            orchestrator.request_close_approval(soft_closed_january.id, manager)

    def test_approval_before_reopen_does_not_count(
        self,
        make_orchestrator,
        closing_settings,
        hard_closed_january,
        closer,
        deterministic_clock,
        approve_close,
    ):
        permissive = make_orchestrator(closing_settings.with_overrides(allow_reopen_hard_close=True))
        permissive.reopen(hard_closed_january.id, closer, REOPEN_REASON)
        permissive.soft_close(hard_closed_january.id, closer)

        with pytest.raises(CloseBlockedError) as exc_info:
            permissive.hard_close(hard_closed_january.id, closer)
        assert [v.code for v in exc_info.value.violations] == [CLOSE_APPROVAL_MISSING]

        deterministic_clock.advance_hours(1)
        approve_close(hard_closed_january.id)
        assert permissive.hard_close(hard_closed_january.id, closer).status == PeriodStatus.HARD_CLOSE

    def test_inactive_rule_lifts_gate(
        self, orchestrator, closing_settings, soft_closed_january, closer, test_actor_id
    ):
        rule = next(r for r in closing_settings.approval_rules if r.approval_type == "monthly_closing")
        orchestrator.approvals.install_rules(test_actor_id, [replace(rule, is_active=False)])

        assert orchestrator.request_close_approval(soft_closed_january.id, closer) is None
        assert orchestrator.hard_close(soft_closed_january.id, closer).status == PeriodStatus.HARD_CLOSE


class TestCloseReadiness:
    def test_reports_without_transition(self, orchestrator, january_period, closer):
        readiness = orchestrator.periods.close_readiness(january_period.id, closer)

        assert readiness.period_code == "2025-01"
        assert readiness.target_status == PeriodStatus.SOFT_CLOSE
        assert readiness.violation_codes == (BEFORE_CUTOFF, CHECKLIST_INCOMPLETE)
        assert orchestrator.periods.get_period(january_period.id).status == PeriodStatus.OPEN

    def test_ready(self, orchestrator, reconciled_january, deterministic_clock, closer):
        deterministic_clock.set_date(date(2025, 2, 5))

        assert orchestrator.periods.close_readiness(reconciled_january.id, closer).can_proceed


class TestReopen:
    def test_reopen_soft_closed(self, orchestrator, soft_closed_january, closer, notifier):
        reopened = orchestrator.reopen(soft_closed_january.id, closer, REOPEN_REASON)

        assert reopened.status == PeriodStatus.OPEN
        assert reopened.reopened_by_id == closer.id
        assert reopened.reopen_reason == REOPEN_REASON
        event = notifier.of(PERIOD_TRANSITIONED)[-1]
        assert (event["from_status"], event["to_status"]) == ("soft_close", "open")
        assert event["reason"] == REOPEN_REASON

    def test_reason_is_stripped_and_measured(self, orchestrator, soft_closed_january, closer):
        with pytest.raises(ReasonTooShortError) as exc_info:
            orchestrator.reopen(soft_closed_january.id, closer, "   salah    ")

        assert exc_info.value.min_length == 10
        assert exc_info.value.actual_length == 5

    def test_open_period_rejected(self, orchestrator, january_period, closer):
        with pytest.raises(PeriodStateError):
            orchestrator.reopen(january_period.id, closer, REOPEN_REASON)

    def test_requires_capability(self, orchestrator, soft_closed_january, manager):
        with pytest.raises(InsufficientCapabilityError):
            orchestrator.reopen(soft_closed_january.id, manager, REOPEN_REASON)

    def test_hard_closed_forbidden_by_default(self, orchestrator, hard_closed_january, closer, captured_logs):
        with pytest.raises(ReopenForbiddenError) as exc_info:
            orchestrator.reopen(hard_closed_january.id, closer, REOPEN_REASON)

        assert exc_info.value.period_status == "hard_close"
        assert any(r["message"] == "period_reopen_forbidden" for r in captured_logs())

    def test_hard_closed_when_allowed(
        self, make_orchestrator, closing_settings, hard_closed_january, closer, captured_logs
    ):
        permissive = make_orchestrator(closing_settings.with_overrides(allow_reopen_hard_close=True))

        reopened = permissive.reopen(hard_closed_january.id, closer, REOPEN_REASON)

        assert reopened.status == PeriodStatus.OPEN
        record = next(r for r in captured_logs() if r["message"] == "period_reopened")
        assert record["from_status"] == "hard_close"
        assert record["reason"] == REOPEN_REASON

    def test_posting_allowed_after_reopen(
        self, orchestrator, hospital_accounts, soft_closed_january, closer, poster, make_lines
    ):
        orchestrator.reopen(soft_closed_january.id, closer, REOPEN_REASON)

        result = orchestrator.record_entry(JAN_20, "Koreksi", make_lines("1101", "4101", "5000"), poster)

        assert result.status == PostingStatus.POSTED
        assert result.revision_id is None

    def test_close_again_after_reopen(self, orchestrator, soft_closed_january, closer):
        orchestrator.reopen(soft_closed_january.id, closer, REOPEN_REASON)

        again = orchestrator.soft_close(soft_closed_january.id, closer)

        assert again.status == PeriodStatus.SOFT_CLOSE
        assert again.reopen_reason == REOPEN_REASON
