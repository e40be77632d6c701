from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .errors import ValidationError
from .models import (
    FULFILLED_STATUSES,
    PeriodStatus,
    ReadinessVerdict,
    Schedule,
    ScheduleStatus,
    ScheduleType,
)
from .periods import applies_to_period


def resolve_dependencies(schedule: Schedule, bill_inputs: Iterable[Schedule]) -> Tuple[str, ...]:
    """Concrete bill_input ids an output schedule waits on.

    An empty `depends_on` expands to every active bill_input schedule of the
    schedule's property at read time.
    """
    if schedule.depends_on:
        return tuple(sorted(schedule.depends_on))
    return tuple(
        sorted(
            s.id
            for s in bill_inputs
            if s.property_id == schedule.property_id
            and s.schedule_type == ScheduleType.BILL_INPUT
            and s.is_active
        )
    )


def is_ready(
    schedule: Schedule,
    year: int,
    month: int,
    sibling_statuses: Mapping[str, PeriodStatus],
    bill_inputs: Sequence[Schedule],
) -> ReadinessVerdict:
    if not schedule.wait_for_bills:
        return ReadinessVerdict(ready=True)

    by_id = {s.id: s for s in bill_inputs}
    blocking: List[str] = []
    for dep_id in resolve_dependencies(schedule, bill_inputs):
        dep = by_id.get(dep_id)
        if dep is not None and not applies_to_period(dep, year, month):
            continue
        status = sibling_statuses.get(dep_id)
        if status is None or status.status not in FULFILLED_STATUSES:
            blocking.append(dep_id)

    if blocking:
        return ReadinessVerdict(
            ready=False,
            blocking_schedule_ids=tuple(blocking),
            reason=f"Waiting for {len(blocking)} bill schedule(s) for {year}-{month:02d}.",
        )
    return ReadinessVerdict(ready=True)


def all_blockers_missed(
    verdict: ReadinessVerdict, sibling_statuses: Mapping[str, PeriodStatus]
) -> bool:
    if verdict.ready or not verdict.blocking_schedule_ids:
        return False
    for dep_id in verdict.blocking_schedule_ids:
        status = sibling_statuses.get(dep_id)
        if status is None or status.status != ScheduleStatus.MISSED:
            return False
    return True


def ensure_acyclic(schedules: Iterable[Schedule]) -> None:
    """Raise ValidationError if `depends_on` edges form a cycle."""
    graph: Dict[str, Tuple[str, ...]] = {s.id: tuple(sorted(s.depends_on)) for s in schedules}
    done: Set[str] = set()

    def _visit(node: str, path: List[str], on_path: Set[str]) -> Optional[List[str]]:
        if node in on_path:
            return path[path.index(node):] + [node]
        if node in done:
            return None
        on_path.add(node)
        path.append(node)
        for nxt in graph.get(node, ()):
            cycle = _visit(nxt, path, on_path)
            if cycle:
                return cycle
        path.pop()
        on_path.discard(node)
        done.add(node)
        return None

    for start in sorted(graph):
        cycle = _visit(start, [], set())
        if cycle:
            raise ValidationError(f"Dependency cycle detected: {' -> '.join(cycle)}")
