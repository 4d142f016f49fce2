"""
Tests for closing period creation, templates and lookups.

Covers:
- Default cutoff / hard-close derivation and template schedules
- Checklist assembled from template items plus mandatory validations
- Date, duplicate and same-type overlap validation
- Editing open periods: schedule re-derivation, recoding, overlap with others
- suggest_next_period, ensure_period_for, list_periods, governing_period
"""

from datetime import date
from uuid import uuid4

import pytest

from ledger_config.schema import (
    ALL_POSTED,
    BANK_RECONCILIATION,
    CASH_OPNAME,
    INVENTORY_COUNT,
    JOURNAL_BALANCE,
)
from ledger_kernel.domain.values import ClosingMode, PeriodStatus, PeriodType
from ledger_kernel.exceptions import (
    InvalidPeriodDatesError,
    PeriodCodeExistsError,
    PeriodNotFoundError,
    PeriodOverlapError,
    PeriodStateError,
    PeriodTemplateNotFoundError,
)


@pytest.fixture
def periods(orchestrator):
    return orchestrator.periods


def checklist_keys(period):
    return [item.item_key for item in period.checklist]


class TestCreatePeriod:
    def test_default_schedule(self, january_period):
        assert january_period.period_code == "2025-01"
        assert january_period.status == PeriodStatus.OPEN
        assert january_period.cutoff_date == date(2025, 2, 5)
        assert january_period.hard_close_date == date(2025, 2, 20)
        assert january_period.template_code is None

    def test_default_checklist_is_mandatory_validations(self, january_period):
        assert checklist_keys(january_period) == [ALL_POSTED, JOURNAL_BALANCE, BANK_RECONCILIATION]
        assert all(item.is_required for item in january_period.checklist)
        assert not any(item.is_completed for item in january_period.checklist)

    def test_explicit_cutoff_moves_hard_close(self, periods, test_actor_id):
        period = periods.create_period(
            PeriodType.MONTHLY,
            date(2025, 5, 1),
            date(2025, 5, 31),
            test_actor_id,
            cutoff_date=date(2025, 6, 10),
        )
        assert period.hard_close_date == date(2025, 6, 25)

    def test_explicit_code_and_notes(self, periods, test_actor_id):
        period = periods.create_period(
            PeriodType.CUSTOM,
            date(2025, 7, 1),
            date(2025, 7, 15),
            test_actor_id,
            period_code="AUDIT-2025-H1",
            notes="Audit eksternal",
        )
        assert period.period_code == "AUDIT-2025-H1"
        assert period.notes == "Audit eksternal"

    def test_soft_only_mode_has_no_hard_close_date(self, make_orchestrator, closing_settings, test_actor_id):
        periods = make_orchestrator(
            closing_settings.with_overrides(closing_mode=ClosingMode.SOFT_ONLY)
        ).periods
        period = periods.create_period(PeriodType.MONTHLY, date(2025, 1, 1), date(2025, 1, 31), test_actor_id)
        assert period.hard_close_date is None

    def test_cash_opname_required_by_settings(self, make_orchestrator, closing_settings, test_actor_id):
        periods = make_orchestrator(closing_settings.with_overrides(require_cash_opname=True)).periods
        period = periods.create_period(PeriodType.MONTHLY, date(2025, 1, 1), date(2025, 1, 31), test_actor_id)
        assert CASH_OPNAME in checklist_keys(period)

    def test_logged(self, periods, test_actor_id, captured_logs):
        periods.create_period(PeriodType.MONTHLY, date(2025, 1, 1), date(2025, 1, 31), test_actor_id)

        created = next(r for r in captured_logs() if r["message"] == "period_created")
        assert created["period_code"] == "2025-01"
        assert created["cutoff_date"] == "2025-02-05"


class TestUpdatePeriod:
    @pytest.fixture
    def audit_period(self, periods, test_actor_id):
        return periods.create_period(
            PeriodType.CUSTOM,
            date(2025, 7, 1),
            date(2025, 7, 15),
            test_actor_id,
            period_code="AUDIT-2025-H1",
        )

    def test_new_end_rederives_schedule(self, periods, audit_period, test_actor_id):
        updated = periods.update_period(audit_period.id, test_actor_id, period_end=date(2025, 7, 20))

        assert updated.period_code == "AUDIT-2025-H1"
        assert updated.period_end == date(2025, 7, 20)
        assert updated.cutoff_date == date(2025, 7, 25)
        assert updated.hard_close_date == date(2025, 8, 9)

    def test_notes_only_keeps_explicit_schedule(self, periods, test_actor_id, captured_logs):
        period = periods.create_period(
            PeriodType.MONTHLY,
            date(2025, 5, 1),
            date(2025, 5, 31),
            test_actor_id,
            cutoff_date=date(2025, 6, 10),
        )

        updated = periods.update_period(period.id, test_actor_id, notes="Menunggu laporan BPJS")

        assert updated.notes == "Menunggu laporan BPJS"
        assert updated.cutoff_date == date(2025, 6, 10)
        assert updated.hard_close_date == date(2025, 6, 25)
        record = next(r for r in captured_logs() if r["message"] == "period_updated")
        assert record["changed_fields"] == ["notes"]

    def test_explicit_cutoff_moves_hard_close(self, periods, january_period, test_actor_id):
        updated = periods.update_period(january_period.id, test_actor_id, cutoff_date=date(2025, 2, 8))

        assert updated.cutoff_date == date(2025, 2, 8)
        assert updated.hard_close_date == date(2025, 2, 23)

    def test_new_start_recodes(self, periods, january_period, test_actor_id, captured_logs):
        updated = periods.update_period(
            january_period.id,
            test_actor_id,
            period_start=date(2025, 2, 1),
            period_end=date(2025, 2, 28),
        )

        assert updated.period_code == "2025-02"
        assert updated.cutoff_date == date(2025, 3, 5)
        assert periods.get_period_by_code("2025-02").id == january_period.id
        record = next(r for r in captured_logs() if r["message"] == "period_updated")
        assert record["previous_period_code"] == "2025-01"

    def test_template_change_adds_checklist_items(self, periods, create_period, test_actor_id):
        quarter = create_period(date(2025, 4, 15), PeriodType.QUARTERLY)
        assert quarter.cutoff_date == date(2025, 7, 5)

        updated = periods.update_period(quarter.id, test_actor_id, template_code="quarterly")

        assert updated.template_code == "quarterly"
        assert updated.cutoff_date == date(2025, 7, 10)
        assert updated.hard_close_date == date(2025, 8, 9)
        assert checklist_keys(updated) == [
            ALL_POSTED,
            JOURNAL_BALANCE,
            BANK_RECONCILIATION,
            CASH_OPNAME,
            INVENTORY_COUNT,
        ]

    def test_own_range_is_not_an_overlap(self, periods, january_period, test_actor_id):
        updated = periods.update_period(january_period.id, test_actor_id, period_end=date(2025, 1, 31))
        assert updated.period_end == date(2025, 1, 31)

    def test_overlap_with_another_period(self, periods, create_period, january_period, test_actor_id):
        create_period(date(2025, 2, 1))

        with pytest.raises(PeriodOverlapError) as exc_info:
            periods.update_period(january_period.id, test_actor_id, period_end=date(2025, 2, 10))
        assert exc_info.value.existing_period_code == "2025-02"

    def test_code_taken(self, periods, create_period, january_period, test_actor_id):
        create_period(date(2025, 2, 1))

        with pytest.raises(PeriodCodeExistsError):
            periods.update_period(january_period.id, test_actor_id, period_code="2025-02")

    def test_invalid_dates(self, periods, january_period, test_actor_id):
        with pytest.raises(InvalidPeriodDatesError, match="cutoff_date"):
            periods.update_period(january_period.id, test_actor_id, cutoff_date=date(2025, 1, 20))

    def test_only_open_periods(self, periods, soft_closed_january, test_actor_id):
        with pytest.raises(PeriodStateError):
            periods.update_period(soft_closed_january.id, test_actor_id, notes="Revisi jadwal")


class TestTemplates:

    def test_monthly_fast(self, periods, test_actor_id):
        period = periods.create_from_template("monthly_fast", date(2025, 3, 10), test_actor_id)

        assert (period.period_start, period.period_end) == (date(2025, 3, 1), date(2025, 3, 31))
        assert period.cutoff_date == date(2025, 4, 3)
        assert period.hard_close_date == date(2025, 4, 13)
        assert checklist_keys(period) == [JOURNAL_BALANCE, ALL_POSTED, BANK_RECONCILIATION]

    def test_weekly_review_is_soft_only(self, periods, test_actor_id):
        period = periods.create_from_template("weekly_review", date(2025, 1, 15), test_actor_id)

        assert period.period_code == "2025-W03"
        assert period.cutoff_date == date(2025, 1, 21)
        assert period.hard_close_date is None

    def test_quarterly_full_checklist(self, periods, test_actor_id):
        period = periods.create_from_template("quarterly", date(2025, 4, 15), test_actor_id)

        assert period.period_code == "2025-Q2"
        assert period.cutoff_date == date(2025, 7, 10)
        assert period.hard_close_date == date(2025, 8, 9)
        assert checklist_keys(period) == [
            JOURNAL_BALANCE,
            ALL_POSTED,
            BANK_RECONCILIATION,
            CASH_OPNAME,
            INVENTORY_COUNT,
        ]

    def test_template_code_on_create_period(self, periods, test_actor_id):
        period = periods.create_period(
            PeriodType.YEARLY,
            date(2025, 1, 1),
            date(2025, 12, 31),
            test_actor_id,
            template_code="year_end",
        )
        assert period.template_code == "year_end"
        assert period.cutoff_date == date(2026, 1, 15)
        assert period.hard_close_date == date(2026, 3, 1)

    def test_unknown_template(self, periods, test_actor_id):
        with pytest.raises(PeriodTemplateNotFoundError) as exc_info:
            periods.create_from_template("biweekly", date(2025, 1, 1), test_actor_id)
        assert exc_info.value.template_code == "biweekly"


class TestValidation:
    def test_start_after_end(self, periods, test_actor_id):
        with pytest.raises(InvalidPeriodDatesError, match="period_start"):
            periods.create_period(PeriodType.CUSTOM, date(2025, 2, 1), date(2025, 1, 1), test_actor_id)

    def test_cutoff_before_end(self, periods, test_actor_id):
        with pytest.raises(InvalidPeriodDatesError, match="cutoff_date"):
            periods.create_period(
                PeriodType.MONTHLY,
                date(2025, 1, 1),
                date(2025, 1, 31),
                test_actor_id,
                cutoff_date=date(2025, 1, 30),
            )

    def test_hard_close_before_cutoff(self, periods, test_actor_id):
        with pytest.raises(InvalidPeriodDatesError, match="hard_close_date"):
            periods.create_period(
                PeriodType.MONTHLY,
                date(2025, 1, 1),
                date(2025, 1, 31),
                test_actor_id,
                cutoff_date=date(2025, 2, 5),
                hard_close_date=date(2025, 2, 4),
            )

    def test_duplicate_code(self, periods, january_period, test_actor_id):
        with pytest.raises(PeriodCodeExistsError):
            periods.create_period(
                PeriodType.CUSTOM,
                date(2026, 1, 1),
                date(2026, 1, 31),
                test_actor_id,
                period_code="2025-01",
            )

    def test_overlap_with_same_type(self, periods, january_period, test_actor_id):
        with pytest.raises(PeriodOverlapError) as exc_info:
            periods.create_period(
                PeriodType.MONTHLY,
                date(2025, 1, 15),
                date(2025, 2, 14),
                test_actor_id,
                period_code="2025-01-MID",
            )
        assert exc_info.value.existing_period_code == "2025-01"
        assert exc_info.value.overlap_start == "2025-01-15"
        assert exc_info.value.overlap_end == "2025-01-31"

    def test_other_types_may_overlap(self, create_period, january_period):
        quarter = create_period(date(2025, 2, 1), PeriodType.QUARTERLY)
        assert quarter.period_code == "2025-Q1"


class TestLookups:
    def test_suggest_from_today_when_empty(self, periods):
        suggestion = periods.suggest_next_period(PeriodType.MONTHLY)
        assert suggestion.period_code == "2025-01"

    def test_suggest_after_latest(self, periods, january_period):
        suggestion = periods.suggest_next_period(PeriodType.MONTHLY)
        assert suggestion.period_code == "2025-02"
        assert suggestion.period_start == date(2025, 2, 1)
        assert suggestion.period_end == date(2025, 2, 28)

    def test_ensure_period_for_existing(self, periods, january_period, test_actor_id):
        assert periods.ensure_period_for(date(2025, 1, 9), test_actor_id).id == january_period.id

    def test_ensure_period_for_without_auto_create(self, periods, test_actor_id):
        assert periods.ensure_period_for(date(2025, 4, 9), test_actor_id) is None
        assert periods.list_periods() == []

    def test_ensure_period_for_auto_create(self, make_orchestrator, closing_settings, test_actor_id):
        periods = make_orchestrator(closing_settings.with_overrides(auto_create_period=True)).periods

        created = periods.ensure_period_for(date(2025, 4, 9), test_actor_id)

        assert created.period_code == "2025-04"
        assert created.template_code == "monthly_standard"

    def test_get_by_code_and_id(self, periods, january_period):
        assert periods.get_period_by_code("2025-01").id == january_period.id
        assert periods.get_period(january_period.id).period_code == "2025-01"

    def test_not_found(self, periods):
        with pytest.raises(PeriodNotFoundError):
            periods.get_period_by_code("1999-01")
        with pytest.raises(PeriodNotFoundError):
            periods.get_period(uuid4())

    def test_list_filters(self, periods, create_period, january_period):
        create_period(date(2025, 2, 1))
        create_period(date(2025, 1, 1), PeriodType.QUARTERLY)

        assert [p.period_code for p in periods.list_periods(PeriodType.MONTHLY)] == ["2025-01", "2025-02"]
        assert [p.period_code for p in periods.list_periods(status=PeriodStatus.OPEN)] == [
            "2025-01",
            "2025-Q1",
            "2025-02",
        ]

    def test_governing_period_none(self, periods):
        assert periods.governing_period(date(2025, 1, 1)) is None
