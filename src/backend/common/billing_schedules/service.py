from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .config import EngineConfig
from .errors import NotFoundError, ValidationError
from .evaluator import evaluate
from .models import (
    FulfillmentEvent,
    GenerationDecision,
    PeriodStatus,
    PropertySchedules,
    ReadinessVerdict,
    Schedule,
    ScheduleStatus,
    ScheduleType,
)
from .periods import DateLike, applies_to_period
from .registry import Clock, ScheduleRegistry, utc_now
from .resolver import all_blockers_missed, is_ready
from .store import FulfillmentLedger, StatusStore

logger = logging.getLogger(__name__)

LATE_OR_MISSED = frozenset({ScheduleStatus.LATE, ScheduleStatus.MISSED})

_WRONG_TYPE_REASONS = {
    ScheduleType.INVOICE_OUTPUT: "Schedule is not an invoice output schedule",
    ScheduleType.PAYABLE_OUTPUT: "Schedule is not a payable output schedule",
}


def _evaluable(snapshot: PropertySchedules, year: int, month: int) -> List[Schedule]:
    return [s for s in snapshot.active() if applies_to_period(s, year, month)]


def _bill_statuses(
    snapshot: PropertySchedules,
    year: int,
    month: int,
    fulfillments: Dict[str, FulfillmentEvent],
    now: DateLike,
) -> Dict[str, PeriodStatus]:
    return {
        s.id: evaluate(s, year, month, fulfillments.get(s.id), None, now)
        for s in _evaluable(snapshot, year, month)
        if s.schedule_type == ScheduleType.BILL_INPUT
    }


def evaluate_snapshot(
    snapshot: PropertySchedules,
    year: int,
    month: int,
    fulfillments: Dict[str, FulfillmentEvent],
    now: DateLike,
) -> List[PeriodStatus]:
    """Evaluate one property for one period from a single consistent read.

    Bill inputs are evaluated first; outputs are gated on exactly those statuses.
    """
    bill_statuses = _bill_statuses(snapshot, year, month, fulfillments, now)
    bill_inputs = snapshot.bill_inputs()

    results = list(bill_statuses.values())
    for schedule in _evaluable(snapshot, year, month):
        if not schedule.is_output:
            continue
        verdict = is_ready(schedule, year, month, bill_statuses, bill_inputs)
        status = evaluate(
            schedule,
            year,
            month,
            fulfillments.get(schedule.id),
            verdict,
            now,
            blockers_missed=all_blockers_missed(verdict, bill_statuses),
        )
        if status.status == ScheduleStatus.BLOCKED:
            logger.debug(
                "Schedule %s blocked for %s-%02d by %s",
                schedule.id,
                year,
                month,
                ", ".join(status.blocked_by),
            )
        results.append(status)
    return results


class ComplianceService:
    """Read/gate surface over the registry, the fulfillment ledger and status projections."""

    def __init__(
        self,
        registry: ScheduleRegistry,
        ledger: FulfillmentLedger,
        statuses: StatusStore,
        *,
        config: Optional[EngineConfig] = None,
        clock: Clock = utc_now,
    ):
        self.registry = registry
        self._ledger = ledger
        self._statuses = statuses
        self.config = config or EngineConfig()
        self._clock = clock

    def record_fulfillment(self, event: FulfillmentEvent) -> PeriodStatus:
        schedule = self.registry.get(event.schedule_id)
        self._ledger.record(event)
        logger.info(
            "Recorded fulfillment for schedule %s (%s-%02d) at %s",
            event.schedule_id,
            event.period_year,
            event.period_month,
            event.fulfilled_at.isoformat(),
        )
        self.registry.refresh_next_expected_date(schedule.id)

        # Re-evaluating the whole property lets outputs waiting on this bill unblock.
        for status in self.evaluate_property(
            schedule.property_id, event.period_year, event.period_month
        ):
            if status.schedule_id == schedule.id:
                return status
        # Inactive or outside its one-off period: judge the fulfillment on its own.
        return evaluate(
            schedule, event.period_year, event.period_month, event, None, self._clock()
        )

    def evaluate_property(
        self,
        property_id: str,
        year: int,
        month: int,
        *,
        now: Optional[DateLike] = None,
    ) -> List[PeriodStatus]:
        snapshot = self.registry.list_by_property(property_id)
        ids = [s.id for s in _evaluable(snapshot, year, month)]
        fulfillments = self._ledger.for_period(ids, year, month)
        results = evaluate_snapshot(
            snapshot, year, month, fulfillments, now if now is not None else self._clock()
        )
        for status in results:
            self._statuses.upsert(status)
        return results

    def get_status_for_property(
        self, property_id: str, year: int, month: int
    ) -> List[PeriodStatus]:
        return self.evaluate_property(property_id, year, month)

    def get_late_or_missed_counts(
        self, property_ids: Iterable[str], year: int, month: int
    ) -> Dict[str, int]:
        property_ids = list(dict.fromkeys(property_ids))
        snapshots = self.registry.list_by_properties(property_ids)
        all_ids = [
            s.id for snapshot in snapshots.values() for s in _evaluable(snapshot, year, month)
        ]
        fulfillments = self._ledger.for_period(all_ids, year, month)
        now = self._clock()

        counts: Dict[str, int] = {}
        for property_id in property_ids:
            snapshot = snapshots.get(property_id)
            if snapshot is None:
                counts[property_id] = 0
                continue
            statuses = evaluate_snapshot(snapshot, year, month, fulfillments, now)
            counts[property_id] = sum(1 for s in statuses if s.status in LATE_OR_MISSED)
        return counts

    def is_ready_to_generate(self, schedule_id: str, year: int, month: int) -> ReadinessVerdict:
        schedule = self.registry.get(schedule_id)
        if not schedule.is_output:
            raise ValidationError(f"Schedule {schedule_id} is not an invoice/payable schedule.")
        if not schedule.is_active:
            return ReadinessVerdict(ready=False, reason="Schedule is inactive.")

        snapshot = self.registry.list_by_property(schedule.property_id)
        ids = [s.id for s in _evaluable(snapshot, year, month)]
        fulfillments = self._ledger.for_period(ids, year, month)
        bill_statuses = _bill_statuses(snapshot, year, month, fulfillments, self._clock())
        return is_ready(schedule, year, month, bill_statuses, snapshot.bill_inputs())

    def can_generate_invoice(self, schedule_id: str, year: int, month: int) -> GenerationDecision:
        return self._can_generate(schedule_id, year, month, ScheduleType.INVOICE_OUTPUT)

    def can_generate_payable(self, schedule_id: str, year: int, month: int) -> GenerationDecision:
        return self._can_generate(schedule_id, year, month, ScheduleType.PAYABLE_OUTPUT)

    def materialize_period(
        self, year: int, month: int, *, now: Optional[DateLike] = None
    ) -> List[PeriodStatus]:
        results: List[PeriodStatus] = []
        for property_id in self.registry.list_property_ids():
            results.extend(self.evaluate_property(property_id, year, month, now=now))
        return results

    def _can_generate(
        self, schedule_id: str, year: int, month: int, schedule_type: ScheduleType
    ) -> GenerationDecision:
        try:
            schedule = self.registry.get(schedule_id)
        except NotFoundError:
            return GenerationDecision(can_generate=False, reason="Schedule not found")

        if schedule.schedule_type != schedule_type:
            return GenerationDecision(
                can_generate=False, reason=_WRONG_TYPE_REASONS[schedule_type]
            )

        verdict = self.is_ready_to_generate(schedule_id, year, month)
        if verdict.ready:
            return GenerationDecision(can_generate=True)
        if not verdict.blocking_schedule_ids:
            return GenerationDecision(can_generate=False, reason=verdict.reason)

        names = []
        for dep_id in verdict.blocking_schedule_ids:
            try:
                dep = self.registry.get(dep_id)
            except NotFoundError:
                names.append(dep_id)
                continue
            names.append(f"{dep.bill_type.value if dep.bill_type else 'unknown'} bill schedule")
        return GenerationDecision(
            can_generate=False,
            reason=f"Waiting for dependencies: {', '.join(names)}",
            blocking_schedule_ids=verdict.blocking_schedule_ids,
        )
