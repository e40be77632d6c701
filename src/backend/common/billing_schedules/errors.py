from __future__ import annotations

from typing import Iterable


class BillingScheduleError(Exception):
    """Base class for billing schedule engine errors."""


class ValidationError(BillingScheduleError):
    """Schedule configuration rejected at write time."""


class NotFoundError(BillingScheduleError):
    def __init__(self, schedule_id: str):
        super().__init__(f"Billing schedule not found: {schedule_id}")
        self.schedule_id = schedule_id


class DependencyInUseError(BillingScheduleError):
    def __init__(self, schedule_id: str, dependent_ids: Iterable[str]):
        self.schedule_id = schedule_id
        self.dependent_ids = tuple(sorted(dependent_ids))
        super().__init__(
            f"Billing schedule {schedule_id} is a dependency of: {', '.join(self.dependent_ids)}"
        )
