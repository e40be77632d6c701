from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path


def _ensure_backend_on_path() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    if str(backend_dir) not in sys.path:
        sys.path.insert(0, str(backend_dir))


def _load_json(path: Path):
    with path.open() as handle:
        return json.load(handle)


def _parse_now(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value)


def _write_markdown(summary, out_path: Path) -> None:
    lines = [
        f"# Billing Schedule Sweep {summary.period_year}-{summary.period_month:02d}",
        "",
        f"Generated at: {summary.generated_at.isoformat()}",
        "",
        "## Totals",
    ]
    for status, count in sorted(summary.counts.items(), key=lambda kv: kv[0].value):
        lines.append(f"- {status.value}: {count}")
    lines.append("")
    lines.append("## Schedules")
    current_property = None
    for status in summary.statuses:
        if status.property_id != current_property:
            current_property = status.property_id
            lines.append("")
            lines.append(f"### Property {current_property}")
        kind = status.schedule_type.value if status.schedule_type else "unknown"
        line = f"- {status.schedule_id} ({kind}): {status.status.value}, expected {status.expected_date}"
        if status.days_late:
            line += f", {status.days_late} day(s) late"
        if status.blocked_by:
            line += f", waiting on {', '.join(status.blocked_by)}"
        lines.append(line)
    out_path.write_text("\n".join(lines))


def run_schedule_sweep_from_manifest(
    manifest: dict,
    *,
    now: datetime,
    year: int | None = None,
    month: int | None = None,
):
    _ensure_backend_on_path()

    from adapters.fixtures.schedule_manifest import register_manifest
    from common.billing_schedules.config import load_engine_config
    from common.billing_schedules.registry import ScheduleRegistry
    from common.billing_schedules.service import ComplianceService
    from pipelines.schedule_store import (
        InMemoryFulfillmentLedger,
        InMemoryScheduleStore,
        InMemoryStatusStore,
    )
    from pipelines.snapshots import LocalSnapshotStore
    from pipelines.sweep import run_sweep

    config = load_engine_config()

    def clock() -> datetime:
        return now

    registry = ScheduleRegistry(InMemoryScheduleStore(), config=config, clock=clock)
    ledger = InMemoryFulfillmentLedger()
    register_manifest(manifest, registry, ledger)
    service = ComplianceService(
        registry, ledger, InMemoryStatusStore(), config=config, clock=clock
    )
    snapshot_store = LocalSnapshotStore(config.snapshot_dir) if config.snapshot_dir else None
    return run_sweep(service, now=now, year=year, month=month, snapshot_store=snapshot_store)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Evaluate billing schedule compliance for one period from a JSON manifest."
    )
    parser.add_argument("--manifest", required=True, help="Path to a schedules/fulfillments manifest.")
    parser.add_argument("--year", type=int, default=None, help="Period year (defaults to --now).")
    parser.add_argument("--month", type=int, default=None, help="Period month (defaults to --now).")
    parser.add_argument(
        "--now",
        default=None,
        help="Evaluation time (ISO 8601). Defaults to the current UTC time.",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Output directory for sweep files (defaults to the manifest directory).",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if (args.year is None) != (args.month is None):
        raise SystemExit("--year and --month must be given together.")

    manifest_path = Path(args.manifest).resolve()
    output_dir = Path(args.output_dir).resolve() if args.output_dir else manifest_path.parent
    output_dir.mkdir(parents=True, exist_ok=True)

    summary = run_schedule_sweep_from_manifest(
        _load_json(manifest_path),
        now=_parse_now(args.now),
        year=args.year,
        month=args.month,
    )

    base_name = f"schedule_sweep_{summary.period_year}-{summary.period_month:02d}"
    out_json = output_dir / f"{base_name}.json"
    out_md = output_dir / f"{base_name}.md"
    out_json.write_text(json.dumps(summary.model_dump(mode="json"), indent=2))
    _write_markdown(summary, out_md)

    print(f"Wrote {out_json}")
    print(f"Wrote {out_md}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
