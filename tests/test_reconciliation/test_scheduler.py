"""Tests for the APScheduler-driven sync and cleanup jobs."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from splitpay.core.exceptions import ConfigurationError
from splitpay.services.reconciliation.scheduler import (
    CLEANUP_JOB_ID,
    SYNC_JOB_ID,
    SyncScheduler,
    sync_interval_hours,
)


@pytest.mark.parametrize(
    "frequency,hours", [("hourly", 1), ("twicedaily", 12), ("daily", 24)]
)
def test_interval_hours(frequency, hours):
    assert sync_interval_hours(frequency) == hours


def test_unknown_frequency_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="weekly"):
        sync_interval_hours("weekly")


def test_start_registers_both_jobs():
    container = MagicMock()
    container.config.sync_frequency = "twicedaily"
    scheduler = SyncScheduler(MagicMock(), container)

    scheduler.start()
    try:
        job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
        assert job_ids == {SYNC_JOB_ID, CLEANUP_JOB_ID}
    finally:
        scheduler.shutdown()
    assert not scheduler.scheduler.running


def test_run_sync_closes_session_even_on_error():
    db = MagicMock()
    container = MagicMock()
    container.reconciliation.return_value.sync_all.side_effect = RuntimeError("boom")

    SyncScheduler(lambda: db, container).run_sync()

    db.close.assert_called_once()


def test_run_cleanup_uses_engine():
    db = MagicMock()
    container = MagicMock()

    SyncScheduler(lambda: db, container).run_cleanup()

    container.reconciliation.return_value.cleanup.assert_called_once_with()
    db.close.assert_called_once()
