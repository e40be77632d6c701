from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from .config import EngineConfig
from .errors import DependencyInUseError, NotFoundError, ValidationError
from .models import (
    BillType,
    DeletionPolicy,
    Frequency,
    PropertySchedules,
    Schedule,
    ScheduleType,
    ScheduleUpdate,
)
from .periods import next_expected_date
from .resolver import ensure_acyclic, resolve_dependencies
from .store import ScheduleStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_IMMUTABLE_FIELDS = ("property_id", "schedule_type")
_TIMING_FIELDS = frozenset(
    {"frequency", "expected_day_of_month", "expected_day_of_week", "once_date"}
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _sort_key(schedule: Schedule) -> tuple:
    return (
        schedule.schedule_type.value,
        schedule.bill_type.value if schedule.bill_type else "",
        schedule.id,
    )


class ScheduleRegistry:
    """Owns schedule definitions and the output -> bill_input dependency edges.

    All writes go through one lock so the one-active-output-per-type rule and
    dependency edits are checked against a stable view of the property.
    """

    def __init__(
        self,
        store: ScheduleStore,
        *,
        config: Optional[EngineConfig] = None,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._config = config or EngineConfig()
        self._clock = clock
        self._write_lock = threading.Lock()

    # Reads

    def get(self, schedule_id: str) -> Schedule:
        schedule = self._store.get(schedule_id)
        if schedule is None:
            raise NotFoundError(schedule_id)
        return schedule

    def list_by_property(self, property_id: str) -> PropertySchedules:
        return self._with_adjacency(property_id, self._store.list_by_property(property_id))

    def list_by_properties(self, property_ids: Iterable[str]) -> Dict[str, PropertySchedules]:
        grouped = self._store.list_by_properties(property_ids)
        return {pid: self._with_adjacency(pid, schedules) for pid, schedules in grouped.items()}

    def list_property_ids(self) -> List[str]:
        return self._store.list_property_ids()

    def find_bill_input_for(self, property_id: str, bill_type: BillType) -> Optional[Schedule]:
        """Active bill_input schedule a bill of `bill_type` should be matched against."""
        for schedule in sorted(self._store.list_by_property(property_id), key=_sort_key):
            if (
                schedule.schedule_type == ScheduleType.BILL_INPUT
                and schedule.bill_type == bill_type
                and schedule.is_active
            ):
                return schedule
        return None

    # Writes

    def create(self, schedule: Schedule) -> Schedule:
        with self._write_lock:
            if self._store.get(schedule.id) is not None:
                raise ValidationError(f"Billing schedule already exists: {schedule.id}")
            siblings = self._store.list_by_property(schedule.property_id)
            self._validate(schedule, siblings)

            now = self._clock()
            stored = schedule.model_copy(
                update={
                    "next_expected_date": next_expected_date(schedule, now),
                    "created_at": now,
                    "updated_at": now,
                }
            )
            ensure_acyclic([*siblings, stored])
            self._store.put(stored)

        logger.info(
            "Created billing schedule %s (%s, %s) for property %s",
            stored.id,
            stored.schedule_type.value,
            stored.frequency.value,
            stored.property_id,
        )
        return stored

    def update(self, schedule_id: str, changes: ScheduleUpdate) -> Schedule:
        data = changes.changes()
        with self._write_lock:
            current = self.get(schedule_id)
            for name in _IMMUTABLE_FIELDS:
                if name in data and data[name] != getattr(current, name):
                    raise ValidationError(f"{name} cannot be changed on an existing schedule.")

            try:
                merged = Schedule.model_validate({**current.model_dump(), **data})
            except PydanticValidationError as exc:
                raise ValidationError(f"Invalid update for schedule {schedule_id}: {exc}") from exc
            siblings = [
                s for s in self._store.list_by_property(current.property_id) if s.id != schedule_id
            ]
            self._validate(merged, siblings)

            now = self._clock()
            update = {"updated_at": now}
            if _TIMING_FIELDS & data.keys():
                update["next_expected_date"] = next_expected_date(merged, now)
            merged = merged.model_copy(update=update)
            ensure_acyclic([*siblings, merged])

            if current.is_active and not merged.is_active:
                self._release_references(current, siblings, None)
            self._store.put(merged)

        logger.info("Updated billing schedule %s (%s)", schedule_id, ", ".join(sorted(data)))
        return merged

    def delete(self, schedule_id: str, *, policy: Optional[DeletionPolicy] = None) -> None:
        with self._write_lock:
            current = self.get(schedule_id)
            siblings = [
                s for s in self._store.list_by_property(current.property_id) if s.id != schedule_id
            ]
            self._release_references(current, siblings, policy)
            self._store.remove(schedule_id)
        logger.info("Deleted billing schedule %s", schedule_id)

    def refresh_next_expected_date(self, schedule_id: str) -> Schedule:
        with self._write_lock:
            current = self.get(schedule_id)
            refreshed = next_expected_date(current, self._clock())
            if refreshed == current.next_expected_date:
                return current
            updated = current.model_copy(update={"next_expected_date": refreshed})
            self._store.put(updated)
            return updated

    # Internals

    def _with_adjacency(self, property_id: str, schedules: List[Schedule]) -> PropertySchedules:
        ordered = sorted(schedules, key=_sort_key)
        return PropertySchedules(
            property_id=property_id,
            schedules=ordered,
            dependencies={
                s.id: resolve_dependencies(s, ordered) for s in ordered if s.is_output
            },
        )

    def _release_references(
        self,
        schedule: Schedule,
        siblings: List[Schedule],
        policy: Optional[DeletionPolicy],
    ) -> None:
        dependents = [s for s in siblings if schedule.id in s.depends_on]
        if not dependents:
            return

        policy = policy or self._config.deletion_policy
        if policy == DeletionPolicy.RESTRICT:
            raise DependencyInUseError(schedule.id, [s.id for s in dependents])

        now = self._clock()
        released: List[str] = []
        for dependent in dependents:
            remaining = dependent.depends_on - {schedule.id}
            if not remaining:
                logger.warning(
                    "Schedule %s lost its last explicit dependency (%s); it now waits on all "
                    "active bill schedules of property %s",
                    dependent.id,
                    schedule.id,
                    dependent.property_id,
                )
            updated = dependent.model_copy(update={"depends_on": remaining, "updated_at": now})
            self._store.put(updated)
            released.append(updated.id)

        logger.info(
            "Removed schedule %s from the dependencies of %s",
            schedule.id,
            ", ".join(sorted(released)),
        )

    def _validate(self, schedule: Schedule, siblings: List[Schedule]) -> None:
        if schedule.schedule_type == ScheduleType.BILL_INPUT:
            if schedule.bill_type is None:
                raise ValidationError("bill_input schedules require a bill_type.")
            if schedule.depends_on:
                raise ValidationError("Only invoice/payable schedules can depend on other schedules.")
        elif schedule.bill_type is not None:
            raise ValidationError("bill_type is only allowed on bill_input schedules.")

        self._validate_timing(schedule)

        timeout = schedule.missed_dependency_timeout_days
        if timeout is not None and timeout < 0:
            raise ValidationError("missed_dependency_timeout_days must be non-negative.")

        if schedule.is_output and schedule.is_active:
            for other in siblings:
                if other.schedule_type == schedule.schedule_type and other.is_active:
                    raise ValidationError(
                        f"Property {schedule.property_id} already has an active "
                        f"{schedule.schedule_type.value} schedule ({other.id})."
                    )

        by_id = {s.id: s for s in siblings}
        for dep_id in sorted(schedule.depends_on):
            if dep_id == schedule.id:
                raise ValidationError("A schedule cannot depend on itself.")
            dep = by_id.get(dep_id)
            if dep is None:
                foreign = self._store.get(dep_id)
                if foreign is not None and foreign.property_id != schedule.property_id:
                    raise ValidationError(
                        f"Dependency {dep_id} belongs to another property ({foreign.property_id})."
                    )
                raise ValidationError(f"Dependency {dep_id} does not exist.")
            if dep.schedule_type != ScheduleType.BILL_INPUT:
                raise ValidationError(f"Dependency {dep_id} is not a bill_input schedule.")
            if not dep.is_active:
                raise ValidationError(f"Dependency {dep_id} is not active.")

    @staticmethod
    def _validate_timing(schedule: Schedule) -> None:
        # Fields of the other frequencies are range-checked too.
        day_of_month = schedule.expected_day_of_month
        if day_of_month is not None and not 1 <= day_of_month <= 31:
            raise ValidationError("expected_day_of_month must be between 1 and 31.")
        day_of_week = schedule.expected_day_of_week
        if day_of_week is not None and not 0 <= day_of_week <= 6:
            raise ValidationError("expected_day_of_week must be between 0 and 6.")

        if schedule.frequency == Frequency.MONTHLY:
            day = schedule.expected_day_of_month
            if day is None or not 1 <= day <= 31:
                raise ValidationError("Monthly schedules require expected_day_of_month between 1 and 31.")
        elif schedule.frequency == Frequency.WEEKLY:
            day = schedule.expected_day_of_week
            if day is None or not 0 <= day <= 6:
                raise ValidationError("Weekly schedules require expected_day_of_week between 0 and 6.")
        elif schedule.once_date is None:
            raise ValidationError("One-off schedules require once_date.")
