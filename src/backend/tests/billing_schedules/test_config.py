from pathlib import Path

import pytest

from common.billing_schedules.config import EngineConfig, load_engine_config
from common.billing_schedules.models import DeletionPolicy


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    for name in (
        "BILLING_SCHEDULE_DELETION_POLICY",
        "BILLING_SCHEDULE_SWEEP_MAX_WORKERS",
        "BILLING_SCHEDULE_SNAPSHOT_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment():
    assert load_engine_config() == EngineConfig()


def test_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("BILLING_SCHEDULE_DELETION_POLICY", "Cascade")
    monkeypatch.setenv("BILLING_SCHEDULE_SWEEP_MAX_WORKERS", "8")
    monkeypatch.setenv("BILLING_SCHEDULE_SNAPSHOT_DIR", str(tmp_path))

    config = load_engine_config()

    assert config.deletion_policy == DeletionPolicy.CASCADE
    assert config.sweep_max_workers == 8
    assert config.snapshot_dir == Path(tmp_path)


def test_rejects_invalid_values(monkeypatch):
    monkeypatch.setenv("BILLING_SCHEDULE_DELETION_POLICY", "orphan")
    with pytest.raises(ValueError, match="restrict"):
        load_engine_config()

    monkeypatch.setenv("BILLING_SCHEDULE_DELETION_POLICY", "restrict")
    monkeypatch.setenv("BILLING_SCHEDULE_SWEEP_MAX_WORKERS", "many")
    with pytest.raises(ValueError, match="integer"):
        load_engine_config()
