"""
Unit tests for the job registry and manual triggering.
"""

from unittest.mock import AsyncMock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from hostel_pass.core import scheduler


@pytest.fixture(autouse=True)
def empty_registry(monkeypatch):
    monkeypatch.setattr(scheduler, "_job_registry", {})
    monkeypatch.setattr(scheduler, "_scheduler", None)


class TestRegistry:
    """Tests for registering and listing jobs before the scheduler starts."""

    def test_register_job_without_scheduler(self):
        func = AsyncMock(return_value={"total_deleted": 0})

        scheduler.register_job("sweep", func, IntervalTrigger(minutes=2), run_immediately=True)

        assert scheduler.list_registered_jobs() == [
            {"job_id": "sweep", "registered": True, "last_run_at": None, "last_error": None}
        ]
        assert scheduler._job_registry["sweep"].run_immediately is True

    def test_pause_and_resume_without_scheduler(self):
        scheduler.register_job("sweep", AsyncMock(), IntervalTrigger(minutes=2))
        assert scheduler.pause_job("sweep") is False
        assert scheduler.resume_job("sweep") is False


class TestTriggerJobManually:
    """Tests for trigger_job_manually."""

    @pytest.mark.asyncio
    async def test_returns_job_result(self):
        func = AsyncMock(return_value={"total_deleted": 3})
        scheduler.register_job("sweep", func, IntervalTrigger(minutes=2))

        result = await scheduler.trigger_job_manually("sweep")

        assert result["status"] == "success"
        assert result["result"] == {"total_deleted": 3}
        assert scheduler.list_registered_jobs()[0]["last_run_at"] is not None
        func.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_is_reported(self):
        func = AsyncMock(side_effect=RuntimeError("store down"))
        scheduler.register_job("sweep", func, IntervalTrigger(minutes=2))

        result = await scheduler.trigger_job_manually("sweep")

        assert result["status"] == "error"
        assert result["error"] == "store down"
        assert scheduler.list_registered_jobs()[0]["last_error"] == "store down"

    @pytest.mark.asyncio
    async def test_unknown_job_raises(self):
        with pytest.raises(ValueError):
            await scheduler.trigger_job_manually("missing")


class TestStartScheduler:
    """Tests for scheduling registered jobs on start."""

    @pytest.mark.asyncio
    async def test_run_immediately_jobs_get_next_run_time(self):
        scheduler.register_job(
            "sweep", AsyncMock(), IntervalTrigger(minutes=2), run_immediately=True
        )
        scheduler.register_job("cleanup", AsyncMock(), IntervalTrigger(minutes=10))

        started = await scheduler.start_scheduler()
        try:
            jobs = {job["job_id"]: job for job in scheduler.list_registered_jobs()}
            assert set(jobs) == {"sweep", "cleanup"}
            assert jobs["sweep"]["next_run_time"] is not None
            assert jobs["cleanup"]["is_paused"] is False

            assert scheduler.pause_job("cleanup") is True
            assert scheduler.list_registered_jobs()[1]["is_paused"] is True
            assert scheduler.resume_job("cleanup") is True
        finally:
            started.shutdown(wait=False)
