import json
from datetime import datetime

from scripts.run_schedule_sweep import main, run_schedule_sweep_from_manifest


MANIFEST = {
    "schedules": [
        {
            "id": "inv-1",
            "property_id": "prop-1",
            "schedule_type": "invoice_output",
            "frequency": "monthly",
            "expected_day_of_month": 10,
            "wait_for_bills": True,
            "depends_on": ["bill-a"],
        },
        {
            "id": "bill-a",
            "property_id": "prop-1",
            "schedule_type": "bill_input",
            "bill_type": "municipality",
            "frequency": "monthly",
            "expected_day_of_month": 7,
        },
    ],
    "fulfillments": [
        {"schedule_id": "bill-a", "period": "2025-03", "fulfilled_at": "2025-03-09T08:00:00"},
    ],
}


def test_run_schedule_sweep_from_manifest(monkeypatch):
    monkeypatch.delenv("BILLING_SCHEDULE_SNAPSHOT_DIR", raising=False)

    summary = run_schedule_sweep_from_manifest(MANIFEST, now=datetime(2025, 3, 11, 12, 0))
    by_id = {s.schedule_id: s for s in summary.statuses}

    assert by_id["bill-a"].days_late == 2
    assert by_id["inv-1"].status.value == "missed"


def test_main_writes_json_and_markdown(tmp_path, monkeypatch):
    monkeypatch.delenv("BILLING_SCHEDULE_SNAPSHOT_DIR", raising=False)
    manifest_path = tmp_path / "manifest.json"
    manifest_path.write_text(json.dumps({"schedules": MANIFEST["schedules"]}))
    out_dir = tmp_path / "out"

    exit_code = main(
        [
            "--manifest",
            str(manifest_path),
            "--now",
            "2025-03-08T12:00:00",
            "--output-dir",
            str(out_dir),
        ]
    )

    assert exit_code == 0
    payload = json.loads((out_dir / "schedule_sweep_2025-03.json").read_text())
    statuses = {s["schedule_id"]: s["status"] for s in payload["statuses"]}
    assert statuses == {"bill-a": "missed", "inv-1": "blocked"}
    markdown = (out_dir / "schedule_sweep_2025-03.md").read_text()
    assert "waiting on bill-a" in markdown
