from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .models import DeletionPolicy


class EngineConfig(BaseModel):
    # Applied when a referenced bill_input schedule is deleted or deactivated.
    deletion_policy: DeletionPolicy = DeletionPolicy.RESTRICT
    sweep_max_workers: int = Field(default=4, ge=1)
    # If set, sweep summaries are written here as JSON snapshots.
    snapshot_dir: Optional[Path] = None


def load_engine_config() -> EngineConfig:
    """
    Load engine configuration from environment variables (and `.env`, if present).

    Reads:
      BILLING_SCHEDULE_DELETION_POLICY (restrict|cascade)
      BILLING_SCHEDULE_SWEEP_MAX_WORKERS
      BILLING_SCHEDULE_SNAPSHOT_DIR
    """
    load_dotenv()

    policy_raw = os.getenv("BILLING_SCHEDULE_DELETION_POLICY", "restrict").strip().lower()
    try:
        policy = DeletionPolicy(policy_raw)
    except ValueError as exc:
        raise ValueError(
            "BILLING_SCHEDULE_DELETION_POLICY must be 'restrict' or 'cascade'."
        ) from exc

    workers_raw = os.getenv("BILLING_SCHEDULE_SWEEP_MAX_WORKERS", "").strip()
    try:
        workers = int(workers_raw) if workers_raw else 4
    except ValueError as exc:
        raise ValueError("BILLING_SCHEDULE_SWEEP_MAX_WORKERS must be an integer.") from exc

    snapshot_dir = os.getenv("BILLING_SCHEDULE_SNAPSHOT_DIR", "").strip()
    return EngineConfig(
        deletion_policy=policy,
        sweep_max_workers=workers,
        snapshot_dir=Path(snapshot_dir) if snapshot_dir else None,
    )
