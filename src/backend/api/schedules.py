from __future__ import annotations

import threading
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from common.billing_schedules.config import load_engine_config
from common.billing_schedules.errors import (
    BillingScheduleError,
    DependencyInUseError,
    NotFoundError,
    ValidationError,
)
from common.billing_schedules.models import (
    DeletionPolicy,
    FulfillmentEvent,
    PeriodStatus,
    PropertySchedules,
    ReadinessVerdict,
    Schedule,
    ScheduleUpdate,
)
from common.billing_schedules.registry import ScheduleRegistry
from common.billing_schedules.service import ComplianceService
from pipelines.schedule_store import (
    InMemoryFulfillmentLedger,
    InMemoryScheduleStore,
    InMemoryStatusStore,
)


router = APIRouter(prefix="/billing-schedules", tags=["billing-schedules"])

_SERVICE_LOCK = threading.Lock()
_SERVICE: ComplianceService | None = None


class LateOrMissedCountsRequest(BaseModel):
    property_ids: List[str] = Field(default_factory=list)
    year: int = Field(ge=1, le=9999)
    month: int = Field(ge=1, le=12)


def get_compliance_service() -> ComplianceService:
    global _SERVICE
    with _SERVICE_LOCK:
        if _SERVICE is None:
            config = load_engine_config()
            registry = ScheduleRegistry(InMemoryScheduleStore(), config=config)
            _SERVICE = ComplianceService(
                registry,
                InMemoryFulfillmentLedger(),
                InMemoryStatusStore(),
                config=config,
            )
        return _SERVICE


def _http_error(exc: BillingScheduleError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DependencyInUseError):
        return HTTPException(
            status_code=409,
            detail={"message": str(exc), "dependent_ids": list(exc.dependent_ids)},
        )
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@router.post("/schedules", response_model=Schedule, status_code=201)
def create_schedule(
    schedule: Schedule,
    service: ComplianceService = Depends(get_compliance_service),
):
    try:
        return service.registry.create(schedule)
    except BillingScheduleError as exc:
        raise _http_error(exc) from exc


@router.patch("/schedules/{schedule_id}", response_model=Schedule)
def update_schedule(
    schedule_id: str,
    changes: ScheduleUpdate,
    service: ComplianceService = Depends(get_compliance_service),
):
    try:
        return service.registry.update(schedule_id, changes)
    except BillingScheduleError as exc:
        raise _http_error(exc) from exc


@router.delete("/schedules/{schedule_id}")
def delete_schedule(
    schedule_id: str,
    policy: Optional[DeletionPolicy] = Query(None),
    service: ComplianceService = Depends(get_compliance_service),
):
    try:
        service.registry.delete(schedule_id, policy=policy)
    except BillingScheduleError as exc:
        raise _http_error(exc) from exc
    return {"deleted": schedule_id}


@router.get("/properties/{property_id}/schedules", response_model=PropertySchedules)
def list_property_schedules(
    property_id: str,
    service: ComplianceService = Depends(get_compliance_service),
):
    return service.registry.list_by_property(property_id)


@router.get("/properties/{property_id}/status", response_model=List[PeriodStatus])
def property_status(
    property_id: str,
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    service: ComplianceService = Depends(get_compliance_service),
):
    return service.get_status_for_property(property_id, year, month)


@router.post("/late-or-missed-counts", response_model=Dict[str, int])
def late_or_missed_counts(
    request: LateOrMissedCountsRequest,
    service: ComplianceService = Depends(get_compliance_service),
):
    return service.get_late_or_missed_counts(request.property_ids, request.year, request.month)


@router.get("/schedules/{schedule_id}/readiness", response_model=ReadinessVerdict)
def schedule_readiness(
    schedule_id: str,
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    service: ComplianceService = Depends(get_compliance_service),
):
    try:
        return service.is_ready_to_generate(schedule_id, year, month)
    except BillingScheduleError as exc:
        raise _http_error(exc) from exc


@router.post("/fulfillments", response_model=PeriodStatus)
def record_fulfillment(
    event: FulfillmentEvent,
    service: ComplianceService = Depends(get_compliance_service),
):
    try:
        return service.record_fulfillment(event)
    except BillingScheduleError as exc:
        raise _http_error(exc) from exc
