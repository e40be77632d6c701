"""Storage seams the engine needs; implementations live in `pipelines.schedule_store`."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .models import FulfillmentEvent, PeriodStatus, Schedule

StatusKey = Tuple[str, int, int]


class ScheduleStore(Protocol):
    def get(self, schedule_id: str) -> Optional[Schedule]:
        ...

    def list_by_property(self, property_id: str) -> List[Schedule]:
        ...

    def list_by_properties(self, property_ids: Iterable[str]) -> Dict[str, List[Schedule]]:
        ...

    def list_property_ids(self) -> List[str]:
        ...

    def put(self, schedule: Schedule) -> None:
        """Insert or replace by id."""
        ...

    def remove(self, schedule_id: str) -> None:
        ...


class FulfillmentLedger(Protocol):
    def record(self, event: FulfillmentEvent) -> None:
        """Store the event, replacing any earlier event for the same key."""
        ...

    def for_period(
        self, schedule_ids: Iterable[str], year: int, month: int
    ) -> Dict[str, FulfillmentEvent]:
        ...


class StatusStore(Protocol):
    def upsert(self, status: PeriodStatus) -> None:
        ...

    def get(self, schedule_id: str, year: int, month: int) -> Optional[PeriodStatus]:
        ...
