"""
Tests for splitledger_batch.domain.schedule.

Validates the pure cadence functions: calendar_date() reduction to UTC
dates, add_months_clamped(), next_execution_date() and is_due().
"""

import calendar
from datetime import date, datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from splitledger_batch.domain.schedule import (
    add_months_clamped,
    calendar_date,
    is_due,
    next_execution_date,
)
from splitledger_batch.domain.types import ActionFrequency, ActionType, ScheduledAction


# =============================================================================
# calendar_date
# =============================================================================


class TestCalendarDate:
    def test_date_passes_through(self):
        assert calendar_date(date(2024, 3, 15)) == date(2024, 3, 15)

    def test_naive_datetime_is_utc(self):
        assert calendar_date(datetime(2024, 3, 15, 23, 59)) == date(2024, 3, 15)

    def test_aware_datetime_uses_utc_date(self):
        late_in_new_york = datetime(2024, 3, 15, 22, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert calendar_date(late_in_new_york) == date(2024, 3, 16)

        early_in_kolkata = datetime(2024, 3, 15, 2, 0, tzinfo=timezone(timedelta(hours=5, minutes=30)))
        assert calendar_date(early_in_kolkata) == date(2024, 3, 14)

    def test_iso_strings(self):
        assert calendar_date("2024-03-15") == date(2024, 3, 15)
        assert calendar_date("2024-03-15T23:30:00Z") == date(2024, 3, 15)
        assert calendar_date("2024-03-15T23:30:00-05:00") == date(2024, 3, 16)

    def test_bad_string_raises(self):
        with pytest.raises(ValueError):
            calendar_date("15/03/2024")

    def test_other_types_raise(self):
        with pytest.raises(TypeError):
            calendar_date(20240315)  # type: ignore[arg-type]


# =============================================================================
# add_months_clamped
# =============================================================================


class TestAddMonthsClamped:
    def test_clamps_to_short_month(self):
        assert add_months_clamped(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months_clamped(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_returns_to_original_day(self):
        assert add_months_clamped(date(2024, 1, 31), 2) == date(2024, 3, 31)

    def test_crosses_year(self):
        assert add_months_clamped(date(2024, 11, 30), 3) == date(2025, 2, 28)

    def test_target_day_override(self):
        assert add_months_clamped(date(2024, 2, 29), 1, target_day=31) == date(2024, 3, 31)


# =============================================================================
# next_execution_date
# =============================================================================


class TestNextExecutionDate:
    def test_daily(self):
        assert next_execution_date(date(2024, 3, 14), ActionFrequency.DAILY, date(2024, 3, 15)) == date(2024, 3, 16)

    def test_weekly(self):
        assert next_execution_date(date(2024, 3, 8), ActionFrequency.WEEKLY, date(2024, 3, 15)) == date(2024, 3, 22)

    def test_weekly_between_occurrences(self):
        assert next_execution_date(date(2024, 3, 8), "weekly", date(2024, 3, 18)) == date(2024, 3, 22)

    def test_start_in_future_returned_unchanged(self):
        assert next_execution_date(date(2024, 4, 1), ActionFrequency.MONTHLY, date(2024, 3, 15)) == date(2024, 4, 1)

    def test_start_today_moves_one_step(self):
        assert next_execution_date(date(2024, 3, 15), ActionFrequency.DAILY, date(2024, 3, 15)) == date(2024, 3, 16)
        assert next_execution_date(date(2024, 3, 15), ActionFrequency.MONTHLY, date(2024, 3, 15)) == date(2024, 4, 15)

    def test_monthly_end_of_month_leap_year(self):
        assert next_execution_date(date(2024, 1, 31), ActionFrequency.MONTHLY, date(2024, 2, 10)) == date(2024, 2, 29)

    def test_monthly_end_of_month_common_year(self):
        assert next_execution_date(date(2023, 1, 31), ActionFrequency.MONTHLY, date(2023, 2, 1)) == date(2023, 2, 28)

    def test_monthly_recovers_day_after_short_month(self):
        assert next_execution_date(date(2024, 1, 31), ActionFrequency.MONTHLY, date(2024, 2, 29)) == date(2024, 3, 31)

    def test_monthly_same_month_not_yet_reached(self):
        assert next_execution_date(date(2024, 1, 20), ActionFrequency.MONTHLY, date(2024, 3, 15)) == date(2024, 3, 20)

    def test_monthly_same_month_already_passed(self):
        assert next_execution_date(date(2024, 1, 10), ActionFrequency.MONTHLY, date(2024, 3, 15)) == date(2024, 4, 10)

    def test_datetime_today_uses_utc_date(self):
        today = datetime(2024, 3, 15, 23, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert next_execution_date(date(2024, 3, 14), ActionFrequency.DAILY, today) == date(2024, 3, 17)

    def test_unknown_frequency_raises(self):
        with pytest.raises(ValueError):
            next_execution_date(date(2024, 3, 14), "yearly", date(2024, 3, 15))


_dates = st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 12, 31))


class TestNextExecutionDateProperties:
    @given(start=_dates, today=_dates, frequency=st.sampled_from(list(ActionFrequency)))
    def test_result_is_after_today_or_start(self, start, today, frequency):
        result = next_execution_date(start, frequency, today)
        if start > today:
            assert result == start
        else:
            assert result > today

    @given(start=_dates, today=_dates, frequency=st.sampled_from([ActionFrequency.DAILY, ActionFrequency.WEEKLY]))
    def test_fixed_steps_stay_on_grid(self, start, today, frequency):
        step = 1 if frequency is ActionFrequency.DAILY else 7
        result = next_execution_date(start, frequency, today)
        if start <= today:
            assert (result - start).days % step == 0
            assert (result - today).days <= step

    @given(start=_dates, today=_dates)
    def test_monthly_keeps_day_of_month(self, start, today):
        result = next_execution_date(start, ActionFrequency.MONTHLY, today)
        last_day = calendar.monthrange(result.year, result.month)[1]
        assert result.day == min(start.day, last_day)
        if start <= today:
            assert (result - today).days <= 62


# =============================================================================
# is_due
# =============================================================================


def _action(next_date: date, is_active: bool = True) -> ScheduledAction:
    return ScheduledAction(
        action_id="act-1",
        user_id="user-1",
        action_type=ActionType.ADD_BUDGET,
        frequency=ActionFrequency.DAILY,
        start_date=date(2024, 1, 1),
        next_execution_date=next_date,
        action_data={},
        is_active=is_active,
    )


class TestIsDue:
    def test_due_on_or_before(self):
        assert is_due(_action(date(2024, 3, 15)), date(2024, 3, 15))
        assert is_due(_action(date(2024, 3, 1)), date(2024, 3, 15))

    def test_not_due_in_future(self):
        assert not is_due(_action(date(2024, 3, 16)), date(2024, 3, 15))

    def test_inactive_never_due(self):
        assert not is_due(_action(date(2024, 3, 1), is_active=False), date(2024, 3, 15))
