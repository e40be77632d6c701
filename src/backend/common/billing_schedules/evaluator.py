from __future__ import annotations

from datetime import timedelta
from typing import Optional

from .models import FulfillmentEvent, PeriodStatus, ReadinessVerdict, Schedule, ScheduleStatus
from .periods import DateLike, as_date, expected_date


def evaluate(
    schedule: Schedule,
    year: int,
    month: int,
    fulfillment: Optional[FulfillmentEvent],
    verdict: Optional[ReadinessVerdict],
    now: DateLike,
    *,
    blockers_missed: bool = False,
) -> PeriodStatus:
    """Derive the status of one schedule for one period.

    Pure: identical inputs give an identical PeriodStatus, so it is safe to
    re-run on every read. A recorded fulfillment is authoritative and is judged
    on its own expected date, whatever the dependency verdict says.

    `blockers_missed` tells the evaluator that every blocking dependency is itself
    `missed`; only then can `missed_dependency_timeout_days` turn `blocked` into
    `missed`.
    """
    expected = expected_date(schedule, year, month)
    base = dict(
        schedule_id=schedule.id,
        property_id=schedule.property_id,
        schedule_type=schedule.schedule_type,
        period_year=year,
        period_month=month,
        expected_date=expected,
    )

    if fulfillment is not None:
        fulfilled_on = as_date(fulfillment.fulfilled_at)
        if fulfilled_on <= expected:
            status, days_late = ScheduleStatus.ON_TIME, 0
        else:
            status, days_late = ScheduleStatus.LATE, (fulfilled_on - expected).days
        return PeriodStatus(
            **base,
            status=status,
            days_late=days_late,
            fulfilled_at=fulfillment.fulfilled_at,
            reference_id=fulfillment.reference_id,
        )

    today = as_date(now)
    if schedule.gates_on_bills and verdict is not None and not verdict.ready:
        timeout = schedule.missed_dependency_timeout_days
        if blockers_missed and timeout is not None and today > expected + timedelta(days=timeout):
            return PeriodStatus(**base, status=ScheduleStatus.MISSED)
        return PeriodStatus(
            **base,
            status=ScheduleStatus.BLOCKED,
            blocked_by=verdict.blocking_schedule_ids,
        )

    if today > expected:
        return PeriodStatus(**base, status=ScheduleStatus.MISSED)
    return PeriodStatus(**base, status=ScheduleStatus.PENDING)
