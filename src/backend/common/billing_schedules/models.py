from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ScheduleType(str, Enum):
    BILL_INPUT = "bill_input"
    INVOICE_OUTPUT = "invoice_output"
    PAYABLE_OUTPUT = "payable_output"


OUTPUT_SCHEDULE_TYPES = frozenset({ScheduleType.INVOICE_OUTPUT, ScheduleType.PAYABLE_OUTPUT})


class BillType(str, Enum):
    MUNICIPALITY = "municipality"
    LEVY = "levy"
    UTILITY = "utility"
    OTHER = "other"


class Frequency(str, Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    ONCE = "once"


class ScheduleSource(str, Enum):
    MANUAL_UPLOAD = "manual_upload"
    EMAIL = "email"
    AGENTIC = "agentic"


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    ON_TIME = "on_time"
    LATE = "late"
    MISSED = "missed"
    BLOCKED = "blocked"


# A dependency is satisfied once the bill actually arrived, regardless of promptness.
FULFILLED_STATUSES = frozenset({ScheduleStatus.ON_TIME, ScheduleStatus.LATE})


class DeletionPolicy(str, Enum):
    RESTRICT = "restrict"
    CASCADE = "cascade"


def _new_id() -> str:
    return uuid.uuid4().hex


class Schedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    property_id: str
    schedule_type: ScheduleType
    bill_type: Optional[BillType] = None

    source: ScheduleSource = ScheduleSource.MANUAL_UPLOAD
    extraction_rule_id: Optional[str] = None
    # Email matching hints (from, subject); only used when source is `email`.
    email_filter: Optional[Dict[str, Any]] = None

    frequency: Frequency
    expected_day_of_month: Optional[int] = None
    # 0-6, Sunday=0.
    expected_day_of_week: Optional[int] = None
    once_date: Optional[date] = None

    # Empty means "every active bill_input schedule of the property".
    depends_on: FrozenSet[str] = Field(default_factory=frozenset)
    wait_for_bills: bool = False
    # None keeps an output blocked indefinitely behind a missed bill.
    missed_dependency_timeout_days: Optional[int] = None

    is_active: bool = True
    next_expected_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_output(self) -> bool:
        return self.schedule_type in OUTPUT_SCHEDULE_TYPES

    @property
    def gates_on_bills(self) -> bool:
        return self.is_output and self.wait_for_bills


class ScheduleUpdate(BaseModel):
    """Partial update; unset fields are left unchanged."""

    property_id: Optional[str] = None
    schedule_type: Optional[ScheduleType] = None
    bill_type: Optional[BillType] = None
    source: Optional[ScheduleSource] = None
    extraction_rule_id: Optional[str] = None
    email_filter: Optional[Dict[str, Any]] = None
    frequency: Optional[Frequency] = None
    expected_day_of_month: Optional[int] = None
    expected_day_of_week: Optional[int] = None
    once_date: Optional[date] = None
    depends_on: Optional[FrozenSet[str]] = None
    wait_for_bills: Optional[bool] = None
    missed_dependency_timeout_days: Optional[int] = None
    is_active: Optional[bool] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class FulfillmentEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    schedule_id: str
    period_year: int = Field(ge=1, le=9999)
    period_month: int = Field(ge=1, le=12)
    fulfilled_at: datetime
    # Bill, invoice or payable id that satisfied the obligation.
    reference_id: Optional[str] = None

    @property
    def key(self) -> Tuple[str, int, int]:
        return (self.schedule_id, self.period_year, self.period_month)


class PeriodStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    schedule_id: str
    property_id: str = ""
    schedule_type: Optional[ScheduleType] = None
    period_year: int
    period_month: int

    status: ScheduleStatus = ScheduleStatus.PENDING
    days_late: int = Field(default=0, ge=0)
    fulfilled_at: Optional[datetime] = None
    expected_date: Optional[date] = None
    blocked_by: Tuple[str, ...] = ()
    reference_id: Optional[str] = None

    @property
    def key(self) -> Tuple[str, int, int]:
        return (self.schedule_id, self.period_year, self.period_month)


class ReadinessVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    ready: bool
    blocking_schedule_ids: Tuple[str, ...] = ()
    reason: Optional[str] = None


class GenerationDecision(BaseModel):
    can_generate: bool
    reason: Optional[str] = None
    blocking_schedule_ids: Tuple[str, ...] = ()


class PropertySchedules(BaseModel):
    property_id: str
    schedules: List[Schedule] = Field(default_factory=list)
    # Output schedule id -> concrete bill_input ids it waits on.
    dependencies: Dict[str, Tuple[str, ...]] = Field(default_factory=dict)

    def active(self) -> List[Schedule]:
        return [s for s in self.schedules if s.is_active]

    def bill_inputs(self) -> List[Schedule]:
        return [s for s in self.schedules if s.schedule_type == ScheduleType.BILL_INPUT]


class SweepSummary(BaseModel):
    period_year: int
    period_month: int
    generated_at: datetime
    checked: int = 0
    properties: List[str] = Field(default_factory=list)
    counts: Dict[ScheduleStatus, int] = Field(default_factory=dict)
    statuses: List[PeriodStatus] = Field(default_factory=list)
