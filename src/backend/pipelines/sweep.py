"""Periodic re-evaluation tick.

The engine owns no timers; a cron job or queue consumer calls `run_sweep` and the
sweep fans out one evaluation per property. Properties are independent, so they
are evaluated concurrently without ordering.
"""

from __future__ import annotations

import concurrent.futures
import logging
from datetime import datetime
from typing import Iterable, Optional

from common.billing_schedules.models import PeriodStatus, ScheduleStatus, SweepSummary
from common.billing_schedules.periods import period_of
from common.billing_schedules.service import ComplianceService

from .snapshots import SnapshotStore

logger = logging.getLogger(__name__)


def run_sweep(
    service: ComplianceService,
    *,
    now: datetime,
    year: Optional[int] = None,
    month: Optional[int] = None,
    property_ids: Optional[Iterable[str]] = None,
    snapshot_store: Optional[SnapshotStore] = None,
) -> SweepSummary:
    """Re-evaluate every property for one period (default: the period containing `now`)."""
    if year is None or month is None:
        year, month = period_of(now)
    if property_ids is not None:
        targets = sorted(set(property_ids))
    else:
        targets = service.registry.list_property_ids()

    statuses: list[PeriodStatus] = []
    max_workers = max(1, min(service.config.sweep_max_workers, len(targets) or 1))
    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(service.evaluate_property, pid, year, month, now=now): pid
            for pid in targets
        }
        for future in concurrent.futures.as_completed(futures):
            statuses.extend(future.result())

    statuses.sort(
        key=lambda s: (
            s.property_id,
            s.schedule_type.value if s.schedule_type else "",
            s.schedule_id,
        )
    )
    counts: dict[ScheduleStatus, int] = {}
    for status in statuses:
        counts[status.status] = counts.get(status.status, 0) + 1

    summary = SweepSummary(
        period_year=year,
        period_month=month,
        generated_at=now,
        checked=len(statuses),
        properties=list(targets),
        counts=counts,
        statuses=statuses,
    )
    logger.info(
        "Swept %d schedule(s) across %d properties for %s-%02d: %s",
        summary.checked,
        len(targets),
        year,
        month,
        ", ".join(f"{k.value}={v}" for k, v in sorted(counts.items(), key=lambda kv: kv[0].value)),
    )

    if snapshot_store is not None:
        snapshot_store.save_json(
            scope="sweeps",
            period=f"{year}-{month:02d}",
            name="schedule_sweep",
            payload=summary.model_dump(mode="json"),
        )
    return summary
