"""Scheduled multi-window snapshot job"""

from dataclasses import replace

import pytest
from freezegun import freeze_time

from pulse.core.cache_keys import SNAPSHOTS_COLLECTION
from pulse.core.errors import InternalError, InvalidArgumentError
from pulse.services.pulse_service import PulseService
from worker.jobs.pulse_snapshots import run_daily_pulse_snapshots


@pytest.fixture
def service(store, cfg, put_brief):
    put_brief("2025-03-14", ["Cyber Liability"])
    put_brief("2025-03-01", ["Commercial Auto"])
    return PulseService(store, replace(cfg, window_sizes=(7, 30)))


@freeze_time("2025-03-14 06:30:00")
def test_all_windows_succeed(service, store):
    summary = run_daily_pulse_snapshots("2025-03-14", service=service)
    assert summary["success"] is True
    assert summary["failed_windows"] == []
    assert set(summary["windows"]) == {"7", "30"}
    assert store.get(SNAPSHOTS_COLLECTION, "7")["dateKey"] == "2025-03-14"
    assert store.get(SNAPSHOTS_COLLECTION, "30")["windowDays"] == 30


@freeze_time("2025-03-14 06:30:00")
def test_one_window_failing_does_not_block_the_other(service, store, monkeypatch):
    original = service.compute_and_cache_snapshot

    def flaky(window_days, date_key, force_regen=False):
        if window_days == 7:
            raise InternalError("boom")
        return original(window_days, date_key, force_regen=force_regen)

    monkeypatch.setattr(service, "compute_and_cache_snapshot", flaky)
    summary = run_daily_pulse_snapshots("2025-03-14", service=service)

    assert summary["success"] is False
    assert summary["failed_windows"] == [7]
    assert summary["windows"]["7"]["success"] is False
    assert "boom" in summary["windows"]["7"]["error"]
    assert summary["windows"]["30"]["success"] is True
    assert store.get(SNAPSHOTS_COLLECTION, "7") is None
    assert store.get(SNAPSHOTS_COLLECTION, "30") is not None


@freeze_time("2025-03-15 06:00:00")
def test_defaults_to_today_in_configured_timezone(service):
    summary = run_daily_pulse_snapshots(service=service)
    assert summary["date_key"] == "2025-03-15"


def test_rejects_bad_date(service):
    with pytest.raises(InvalidArgumentError):
        run_daily_pulse_snapshots("03/14/2025", service=service)


def test_beat_schedule_registered():
    from worker import celeryconfig

    entry = celeryconfig.beat_schedule["daily_pulse_snapshots"]
    assert entry["task"] == "worker.jobs.pulse_snapshots.daily_pulse_snapshots"
    assert entry["schedule"].hour == {6}
    assert entry["schedule"].minute == {30}
