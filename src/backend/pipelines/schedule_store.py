from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional

from common.billing_schedules.models import FulfillmentEvent, PeriodStatus, Schedule
from common.billing_schedules.store import StatusKey


class InMemoryScheduleStore:
    def __init__(self, schedules: Iterable[Schedule] = ()) -> None:
        self._lock = threading.Lock()
        self._schedules: Dict[str, Schedule] = {s.id: s for s in schedules}

    def get(self, schedule_id: str) -> Optional[Schedule]:
        with self._lock:
            return self._schedules.get(schedule_id)

    def list_by_property(self, property_id: str) -> List[Schedule]:
        with self._lock:
            return [s for s in self._schedules.values() if s.property_id == property_id]

    def list_by_properties(self, property_ids: Iterable[str]) -> Dict[str, List[Schedule]]:
        wanted = set(property_ids)
        out: Dict[str, List[Schedule]] = {pid: [] for pid in wanted}
        with self._lock:
            for schedule in self._schedules.values():
                if schedule.property_id in wanted:
                    out[schedule.property_id].append(schedule)
        return out

    def list_property_ids(self) -> List[str]:
        with self._lock:
            return sorted({s.property_id for s in self._schedules.values()})

    def put(self, schedule: Schedule) -> None:
        with self._lock:
            self._schedules[schedule.id] = schedule

    def remove(self, schedule_id: str) -> None:
        with self._lock:
            self._schedules.pop(schedule_id, None)


class InMemoryFulfillmentLedger:
    def __init__(self, events: Iterable[FulfillmentEvent] = ()) -> None:
        self._lock = threading.Lock()
        self._events: Dict[StatusKey, FulfillmentEvent] = {}
        for event in events:
            self.record(event)

    def record(self, event: FulfillmentEvent) -> None:
        with self._lock:
            self._events[event.key] = event

    def for_period(
        self, schedule_ids: Iterable[str], year: int, month: int
    ) -> Dict[str, FulfillmentEvent]:
        with self._lock:
            out: Dict[str, FulfillmentEvent] = {}
            for schedule_id in schedule_ids:
                event = self._events.get((schedule_id, year, month))
                if event is not None:
                    out[schedule_id] = event
            return out


class InMemoryStatusStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._statuses: Dict[StatusKey, PeriodStatus] = {}

    def upsert(self, status: PeriodStatus) -> None:
        with self._lock:
            self._statuses[status.key] = status

    def get(self, schedule_id: str, year: int, month: int) -> Optional[PeriodStatus]:
        with self._lock:
            return self._statuses.get((schedule_id, year, month))

    def __len__(self) -> int:
        with self._lock:
            return len(self._statuses)
