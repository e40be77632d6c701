"""Billing schedule compliance and dependency engine.

This package intentionally contains only domain logic:
- Inputs are schedule definitions, fulfillment events and an injected "now".
- No database, bill ingestion or invoice generation lives here; storage is
  reached through the protocols in `store`.
"""

from .errors import BillingScheduleError, DependencyInUseError, NotFoundError, ValidationError
from .evaluator import evaluate
from .models import (
    BillType,
    DeletionPolicy,
    Frequency,
    FulfillmentEvent,
    PeriodStatus,
    ReadinessVerdict,
    Schedule,
    ScheduleStatus,
    ScheduleType,
    ScheduleUpdate,
)
from .periods import expected_date, next_expected_date
from .registry import ScheduleRegistry
from .resolver import is_ready
from .service import ComplianceService
