"""Tests for the APScheduler wiring of the lifecycle loop."""

from unittest.mock import AsyncMock, patch

import pytest

from proxybid.api import scheduler


class TestScheduler:
    @pytest.mark.asyncio
    async def test_registers_single_instance_interval_job(self):
        sched = scheduler.init_scheduler(tick_seconds=30, max_concurrency=3)
        try:
            job = sched.get_job("auction_lifecycle")
            assert job.max_instances == 1
            assert job.coalesce is True
            assert job.trigger.interval.total_seconds() == 30
        finally:
            await scheduler.shutdown_scheduler()
        assert scheduler._scheduler is None

    @pytest.mark.asyncio
    async def test_tick_job_swallows_errors(self):
        with patch.object(scheduler, "lifecycle_run_tick", AsyncMock(side_effect=RuntimeError("boom"))):
            await scheduler.lifecycle_tick_job()

    @pytest.mark.asyncio
    async def test_tick_job_runs_tick(self, dispatcher):
        tick = AsyncMock()
        tick.return_value.failed = 0
        with patch.object(scheduler, "lifecycle_run_tick", tick):
            await scheduler.lifecycle_tick_job()
        tick.assert_awaited_once()
        assert tick.await_args.kwargs["dispatcher"] is dispatcher

    @pytest.mark.asyncio
    async def test_shutdown_without_start(self):
        await scheduler.shutdown_scheduler()
