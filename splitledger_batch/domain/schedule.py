"""
Pure cadence calculation for scheduled actions.

Contract:
    ``next_execution_date(start_date, frequency, today)`` returns the first
    occurrence of the cadence strictly after ``today``, or ``start_date``
    itself when the action has not started yet.  ``today`` is always an
    explicit argument; nothing here reads the system clock.

Architecture: splitledger_batch/domain.  ZERO I/O.

Rules:
    - All arithmetic is on UTC calendar dates.  A datetime ``today`` is
      reduced to its UTC date first (midnight UTC reference instant).
    - Monthly cadence keeps the start date's day-of-month.  When the target
      month is shorter, the date clamps to that month's last day, and the
      next month returns to the original day (Jan 31 -> Feb 29 -> Mar 31).
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone

from splitledger_batch.domain.types import ActionFrequency, ScheduledAction

_FIXED_STEP_DAYS = {
    ActionFrequency.DAILY: 1,
    ActionFrequency.WEEKLY: 7,
}


def calendar_date(value: date | datetime | str) -> date:
    """Reduce a trigger value to its UTC calendar date.

    Accepts a ``date``, a ``datetime`` (naive values are taken as UTC) or an
    ISO string (``YYYY-MM-DD``, ``YYYY-MM-DDTHH:MM:SS[Z|+hh:mm]`` or
    ``YYYY-MM-DD HH:MM:SS``).

    Raises:
        ValueError: If a string cannot be parsed.
        TypeError: For any other type.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(timezone.utc).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return date.fromisoformat(text)
        return calendar_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
    raise TypeError(f"Cannot derive a calendar date from {type(value).__name__}")


def add_months_clamped(value: date, months: int, target_day: int | None = None) -> date:
    """Move ``value`` by ``months`` calendar months.

    The result uses ``target_day`` (default: ``value.day``), clamped to the
    last day of the resulting month.
    """
    day = target_day or value.day
    month_index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def next_execution_date(
    start_date: date,
    frequency: ActionFrequency | str,
    today: date | datetime | str,
) -> date:
    """Next due date of a cadence, relative to ``today``.

    - ``start_date > today``: returns ``start_date`` unchanged.
    - Otherwise: the first ``start_date + k * step`` (k >= 1) strictly
      after ``today``.

    Raises:
        ValueError: If ``frequency`` is not a known cadence.
    """
    frequency = ActionFrequency(frequency)
    today = calendar_date(today)
    start_date = calendar_date(start_date)

    if start_date > today:
        return start_date

    match frequency:
        case ActionFrequency.DAILY | ActionFrequency.WEEKLY:
            step = _FIXED_STEP_DAYS[frequency]
            steps = (today - start_date).days // step + 1
            return start_date + timedelta(days=steps * step)
        case ActionFrequency.MONTHLY:
            months = (today.year - start_date.year) * 12 + (today.month - start_date.month)
            months = max(months, 1)
            candidate = add_months_clamped(start_date, months)
            # Candidate is in today's month and may not be past today yet
            while candidate <= today:
                months += 1
                candidate = add_months_clamped(start_date, months)
            return candidate


def is_due(action: ScheduledAction, on_date: date) -> bool:
    """True when the action is active and its next date is on or before ``on_date``."""
    return action.is_active and action.next_execution_date <= on_date
