"""JSON fixture adapters for billing schedules (no I/O)."""

from .schedule_manifest import (
    fulfillments_from_manifest,
    register_manifest,
    schedules_from_manifest,
)

__all__ = [
    "fulfillments_from_manifest",
    "register_manifest",
    "schedules_from_manifest",
]
