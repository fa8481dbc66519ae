"""
Unit Tests for RefreshScheduler

Run with:
    pytest tests/unit/test_refresh_scheduler.py -v
"""

import asyncio

import pytest

from services.refresh_scheduler import RefreshScheduler


class CountingJob:
    def __init__(self, fail_first: bool = False):
        self.calls = 0
        self.fail_first = fail_first

    async def run(self):
        self.calls += 1
        if self.fail_first and self.calls == 1:
            raise RuntimeError("first cycle blew up")

        class Result:
            success = True
            error = None

        return Result()


class TestRefreshScheduler:
    """Tests for the background refresh loop"""

    @pytest.mark.asyncio
    async def test_runs_repeatedly_until_stopped(self):
        """Verify the loop calls the job on every interval"""
        job = CountingJob()
        scheduler = RefreshScheduler(job, interval_seconds=0.01)

        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert job.calls >= 2
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self):
        """Verify repeated start/stop calls are harmless"""
        scheduler = RefreshScheduler(CountingJob(), interval_seconds=0.01)

        await scheduler.stop()
        await scheduler.start()
        first_task = scheduler._task
        await scheduler.start()
        assert scheduler._task is first_task

        await scheduler.stop()
        await scheduler.stop()
        assert scheduler._task is None

    @pytest.mark.asyncio
    async def test_failing_cycle_does_not_stop_loop(self):
        """Verify an exception in one cycle is logged and the loop continues"""
        job = CountingJob(fail_first=True)
        scheduler = RefreshScheduler(job, interval_seconds=0.01)

        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert job.calls >= 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
