from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable

from common.billing_schedules.models import FulfillmentEvent, Schedule, ScheduleType
from common.billing_schedules.registry import ScheduleRegistry
from common.billing_schedules.store import FulfillmentLedger

_REQUIRED_SCHEDULE_FIELDS = ("property_id", "schedule_type", "frequency")


def schedules_from_manifest(manifest: dict[str, Any]) -> list[Schedule]:
    """
    Build schedules from a JSON manifest.

    Expected shape:
      {
        "schedules": [
          {
            "id": "municipality-a",
            "property_id": "prop-1",
            "schedule_type": "bill_input",
            "bill_type": "municipality",
            "frequency": "monthly",
            "expected_day_of_month": 5,
            "depends_on": [],
            "wait_for_bills": false
          }
        ]
      }

    Notes:
    - property_id, schedule_type and frequency are required
    - once_date is parsed from YYYY-MM-DD
    """
    schedules: list[Schedule] = []
    for entry in manifest.get("schedules") or []:
        if not isinstance(entry, dict):
            raise ValueError("Schedule manifest entries must be objects.")
        for name in _REQUIRED_SCHEDULE_FIELDS:
            if not entry.get(name):
                raise ValueError(f"Schedule entry missing required field: {name}")

        data = dict(entry)
        data["depends_on"] = frozenset(str(v) for v in entry.get("depends_on") or [])
        data["once_date"] = _parse_date(entry.get("once_date"))
        schedules.append(Schedule.model_validate(data))
    return schedules


def fulfillments_from_manifest(manifest: dict[str, Any]) -> list[FulfillmentEvent]:
    """
    Build fulfillment events from a JSON manifest.

    Each entry needs `schedule_id`, `fulfilled_at` and either `period` ("YYYY-MM")
    or `period_year` + `period_month`.
    """
    events: list[FulfillmentEvent] = []
    for entry in manifest.get("fulfillments") or []:
        if not isinstance(entry, dict):
            raise ValueError("Fulfillment manifest entries must be objects.")
        schedule_id = entry.get("schedule_id")
        if not schedule_id:
            raise ValueError("Fulfillment entry missing required field: schedule_id")
        fulfilled_at = _parse_datetime(entry.get("fulfilled_at"))
        if fulfilled_at is None:
            raise ValueError("Fulfillment entry missing required field: fulfilled_at")

        year, month = _parse_period(entry)
        events.append(
            FulfillmentEvent(
                schedule_id=str(schedule_id),
                period_year=year,
                period_month=month,
                fulfilled_at=fulfilled_at,
                reference_id=entry.get("reference_id"),
            )
        )
    return events


def register_manifest(
    manifest: dict[str, Any],
    registry: ScheduleRegistry,
    ledger: FulfillmentLedger,
) -> list[Schedule]:
    """Create manifest schedules (bill inputs first) and record its fulfillments."""
    created = [registry.create(s) for s in _inputs_first(schedules_from_manifest(manifest))]
    for event in fulfillments_from_manifest(manifest):
        ledger.record(event)
    return created


def _inputs_first(schedules: Iterable[Schedule]) -> list[Schedule]:
    return sorted(schedules, key=lambda s: s.schedule_type != ScheduleType.BILL_INPUT)


def _parse_period(entry: dict[str, Any]) -> tuple[int, int]:
    period = entry.get("period")
    if period:
        year_raw, _, month_raw = str(period).partition("-")
        return int(year_raw), int(month_raw)
    if entry.get("period_year") is None or entry.get("period_month") is None:
        raise ValueError("Fulfillment entry needs `period` or `period_year`/`period_month`.")
    return int(entry["period_year"]), int(entry["period_month"])


def _parse_date(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _parse_datetime(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value))
