import os
import sys
from datetime import datetime, timezone


# Ensure `src/backend` is on sys.path so imports like `import common...` work,
# even when pytest's rootdir is the repository root.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import pytest

from common.billing_schedules.config import EngineConfig
from common.billing_schedules.models import (
    BillType,
    Frequency,
    FulfillmentEvent,
    Schedule,
    ScheduleType,
)
from common.billing_schedules.registry import ScheduleRegistry
from common.billing_schedules.service import ComplianceService
from pipelines.schedule_store import (
    InMemoryFulfillmentLedger,
    InMemoryScheduleStore,
    InMemoryStatusStore,
)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set_day(self, day: int, *, year: int = 2025, month: int = 3) -> None:
        self.now = datetime(year, month, day, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def period() -> tuple[int, int]:
    return (2025, 3)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def schedule_store() -> InMemoryScheduleStore:
    return InMemoryScheduleStore()


@pytest.fixture
def ledger() -> InMemoryFulfillmentLedger:
    return InMemoryFulfillmentLedger()


@pytest.fixture
def status_store() -> InMemoryStatusStore:
    return InMemoryStatusStore()


@pytest.fixture
def registry(schedule_store, engine_config, clock) -> ScheduleRegistry:
    return ScheduleRegistry(schedule_store, config=engine_config, clock=clock)


@pytest.fixture
def service(registry, ledger, status_store, engine_config, clock) -> ComplianceService:
    return ComplianceService(registry, ledger, status_store, config=engine_config, clock=clock)


@pytest.fixture
def make_schedule():
    def _make(**overrides) -> Schedule:
        schedule_type = overrides.pop("schedule_type", ScheduleType.BILL_INPUT)
        data = {
            "property_id": "prop-1",
            "schedule_type": schedule_type,
            "bill_type": BillType.MUNICIPALITY if schedule_type == ScheduleType.BILL_INPUT else None,
            "frequency": Frequency.MONTHLY,
            "expected_day_of_month": 5,
        }
        data.update(overrides)
        if "depends_on" in data:
            data["depends_on"] = frozenset(data["depends_on"])
        return Schedule(**data)

    return _make


@pytest.fixture
def make_output(make_schedule):
    def _make(**overrides) -> Schedule:
        overrides.setdefault("schedule_type", ScheduleType.INVOICE_OUTPUT)
        overrides.setdefault("expected_day_of_month", 10)
        overrides.setdefault("wait_for_bills", True)
        return make_schedule(**overrides)

    return _make


@pytest.fixture
def make_event(period):
    def _make(schedule_id: str, day: int, *, hour: int = 10, reference_id=None) -> FulfillmentEvent:
        year, month = period
        return FulfillmentEvent(
            schedule_id=schedule_id,
            period_year=year,
            period_month=month,
            fulfilled_at=datetime(year, month, day, hour, 0, tzinfo=timezone.utc),
            reference_id=reference_id,
        )

    return _make
