"""Expected-occurrence arithmetic for billing schedules.

Periods are (year, month) buckets regardless of a schedule's cadence; weekly
schedules are anchored on the first matching weekday of the month.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union

from .models import Frequency, Schedule

DateLike = Union[date, datetime]


def as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def sunday_based_weekday(day: date) -> int:
    # date.weekday() is Monday=0; schedules store Sunday=0.
    return (day.weekday() + 1) % 7


def period_of(day: DateLike) -> Tuple[int, int]:
    day = as_date(day)
    return day.year, day.month


def shift_period(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def expected_date(schedule: Schedule, year: int, month: int) -> date:
    if schedule.frequency == Frequency.MONTHLY:
        day = schedule.expected_day_of_month or 1
        return date(year, month, min(day, days_in_month(year, month)))

    if schedule.frequency == Frequency.WEEKLY:
        target = schedule.expected_day_of_week or 0
        first = date(year, month, 1)
        offset = (target - sunday_based_weekday(first)) % 7
        return first + timedelta(days=offset)

    if schedule.once_date is None:
        # Rejected by the registry; keep the calculator total for ad hoc schedules.
        return date(year, month, 1)
    return schedule.once_date


def applies_to_period(schedule: Schedule, year: int, month: int) -> bool:
    if schedule.frequency != Frequency.ONCE or schedule.once_date is None:
        return True
    return period_of(schedule.once_date) == (year, month)


def next_expected_date(schedule: Schedule, today: DateLike) -> Optional[date]:
    """Next occurrence strictly after `today`; None for a once-schedule that has passed."""
    today = as_date(today)

    if schedule.frequency == Frequency.MONTHLY:
        current = expected_date(schedule, today.year, today.month)
        if current > today:
            return current
        year, month = shift_period(today.year, today.month, 1)
        return expected_date(schedule, year, month)

    if schedule.frequency == Frequency.WEEKLY:
        target = schedule.expected_day_of_week or 0
        days_until = (target - sunday_based_weekday(today)) % 7
        return today + timedelta(days=days_until or 7)

    if schedule.once_date is not None and schedule.once_date > today:
        return schedule.once_date
    return None
