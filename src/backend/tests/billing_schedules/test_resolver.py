from datetime import date

import pytest

from common.billing_schedules.errors import ValidationError
from common.billing_schedules.models import (
    BillType,
    Frequency,
    PeriodStatus,
    ScheduleStatus,
)
from common.billing_schedules.resolver import (
    all_blockers_missed,
    ensure_acyclic,
    is_ready,
    resolve_dependencies,
)


def _status(schedule_id: str, status: ScheduleStatus) -> PeriodStatus:
    return PeriodStatus(schedule_id=schedule_id, period_year=2025, period_month=3, status=status)


@pytest.fixture
def bills(make_schedule):
    return [
        make_schedule(id="bill-a", bill_type=BillType.MUNICIPALITY),
        make_schedule(id="bill-b", bill_type=BillType.LEVY),
        make_schedule(id="bill-off", bill_type=BillType.UTILITY, is_active=False),
        make_schedule(id="bill-other", property_id="prop-2"),
    ]


def test_not_waiting_for_bills_is_always_ready(make_output, bills):
    output = make_output(wait_for_bills=False, depends_on={"bill-a"})

    verdict = is_ready(output, 2025, 3, {}, bills)

    assert verdict.ready
    assert verdict.blocking_schedule_ids == ()


def test_explicit_dependencies_resolve_in_stable_order(make_output, bills):
    output = make_output(depends_on={"bill-b", "bill-a"})
    assert resolve_dependencies(output, bills) == ("bill-a", "bill-b")


def test_empty_depends_on_expands_to_active_bills_of_same_property(make_output, bills):
    output = make_output()
    assert resolve_dependencies(output, bills) == ("bill-a", "bill-b")


def test_ready_only_when_every_dependency_arrived(make_output, bills):
    output = make_output(depends_on={"bill-a", "bill-b"})

    arrived = {
        "bill-a": _status("bill-a", ScheduleStatus.ON_TIME),
        "bill-b": _status("bill-b", ScheduleStatus.LATE),
    }
    assert is_ready(output, 2025, 3, arrived, bills).ready

    partial = {"bill-a": _status("bill-a", ScheduleStatus.ON_TIME)}
    verdict = is_ready(output, 2025, 3, partial, bills)
    assert not verdict.ready
    assert verdict.blocking_schedule_ids == ("bill-b",)


def test_pending_blocked_and_missed_dependencies_all_block(make_output, bills):
    output = make_output(depends_on={"bill-a"})

    for status in (ScheduleStatus.PENDING, ScheduleStatus.BLOCKED, ScheduleStatus.MISSED):
        verdict = is_ready(output, 2025, 3, {"bill-a": _status("bill-a", status)}, bills)
        assert not verdict.ready
        assert verdict.blocking_schedule_ids == ("bill-a",)


def test_one_satisfied_implicit_dependency_does_not_unblock(make_output, bills):
    output = make_output()
    statuses = {
        "bill-a": _status("bill-a", ScheduleStatus.MISSED),
        "bill-b": _status("bill-b", ScheduleStatus.ON_TIME),
    }

    verdict = is_ready(output, 2025, 3, statuses, bills)

    assert not verdict.ready
    assert verdict.blocking_schedule_ids == ("bill-a",)
    assert all_blockers_missed(verdict, statuses)


def test_all_blockers_missed_requires_every_blocker_missed(make_output, bills):
    output = make_output()
    statuses = {
        "bill-a": _status("bill-a", ScheduleStatus.MISSED),
        "bill-b": _status("bill-b", ScheduleStatus.PENDING),
    }

    verdict = is_ready(output, 2025, 3, statuses, bills)

    assert verdict.blocking_schedule_ids == ("bill-a", "bill-b")
    assert not all_blockers_missed(verdict, statuses)


def test_once_dependency_outside_its_period_is_skipped(make_schedule, make_output):
    one_off = make_schedule(id="bill-once", frequency=Frequency.ONCE, once_date=date(2025, 1, 15))
    output = make_output(depends_on={"bill-once"})

    assert is_ready(output, 2025, 3, {}, [one_off]).ready
    assert not is_ready(output, 2025, 1, {}, [one_off]).ready


def test_ensure_acyclic_rejects_cycles(make_schedule, make_output):
    first = make_output(id="out-1", depends_on={"out-2"})
    second = make_output(id="out-2", depends_on={"out-1"})

    with pytest.raises(ValidationError, match="cycle"):
        ensure_acyclic([first, second])


def test_ensure_acyclic_accepts_bipartite_graph(make_schedule, make_output, bills):
    ensure_acyclic([*bills, make_output(depends_on={"bill-a", "bill-b"})])
