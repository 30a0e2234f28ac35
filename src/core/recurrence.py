"""Recurrence rule evaluator — pure business logic.

Decides whether a rule should produce a task instance today and computes
the next occurrence date for daily, weekly and monthly patterns.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timedelta

from src.data.models import (
    Frequency,
    MonthlyPattern,
    RecurrencePattern,
    RecurringTask,
    WeeklyPattern,
)

logger = logging.getLogger(__name__)

_DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def weekday_ordinal(day: date) -> int:
    """Weekday as 0=Sunday .. 6=Saturday (Python's weekday() starts on Monday)."""
    return (day.weekday() + 1) % 7


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def is_same_day(first: date | datetime, second: date | datetime) -> bool:
    """Check if two dates fall on the same calendar day."""
    return _as_date(first) == _as_date(second)


def should_generate_today(rule: RecurringTask, today: date | datetime) -> bool:
    """Check if the rule should produce a new instance on this day.

    Idempotent per day once the caller persists last_generated_date = today.
    """
    today = _as_date(today)

    if today < rule.start_date:
        return False
    if rule.end_date is not None and today > rule.end_date:
        return False

    last = rule.last_generated_date
    if last is None:
        return True
    if last > today:
        logger.warning(
            "Recurring task %s last generated %s, after today %s, skipping",
            rule.id, last.isoformat(), today.isoformat(),
        )
        return False
    return not is_same_day(last, today)


def _next_weekly(last_date: date, pattern: WeeklyPattern) -> date:
    current = weekday_ordinal(last_date)
    days = sorted(pattern.days) or [current]

    later = [d for d in days if d > current]
    if later:
        return last_date + timedelta(days=later[0] - current)
    # Wrap to the first matching day of the following week
    return last_date + timedelta(days=7 - current + days[0])


def _next_monthly(last_date: date, pattern: MonthlyPattern) -> date:
    year, month = last_date.year, last_date.month + 1
    if month > 12:
        year, month = year + 1, 1
    month_length = days_in_month(year, month)

    if pattern.day_of_month == "last_day":
        return date(year, month, month_length)

    target = pattern.day_of_month if pattern.day_of_month is not None else last_date.day
    return date(year, month, min(target, month_length))


def get_next_occurrence(
    last_date: date | datetime,
    frequency: Frequency | str,
    pattern: RecurrencePattern,
) -> date:
    """Return the next occurrence strictly after last_date.

    Args:
        last_date: The later of last_generated_date or start_date.
        frequency: daily, weekly or monthly.
        pattern: The rule's validated recurrence pattern.
    """
    last_date = _as_date(last_date)
    frequency = Frequency(frequency)

    if frequency is Frequency.DAILY:
        return last_date + timedelta(days=1)
    if frequency is Frequency.WEEKLY:
        return _next_weekly(last_date, pattern)
    return _next_monthly(last_date, pattern)


def format_recurrence(frequency: Frequency | str, pattern: RecurrencePattern) -> str:
    """Human-readable description of a rule, e.g. "Every week on Mon, Wed"."""
    frequency = Frequency(frequency)

    if frequency is Frequency.DAILY:
        return "Every day"
    if frequency is Frequency.WEEKLY:
        names = ", ".join(_DAY_NAMES[d] for d in pattern.days)
        return f"Every week on {names}" if names else "Every week"
    if pattern.day_of_month == "last_day":
        return "Last day of every month"
    if pattern.day_of_month is None:
        return "Every month"
    return f"Every month on day {pattern.day_of_month}"
