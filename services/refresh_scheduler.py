"""
Internal Refresh Scheduler

Optional background loop that runs the refresh job every
REFRESH_INTERVAL_SECONDS, for deployments without an external cron.
Disabled unless ENABLE_INTERNAL_SCHEDULER=true.
"""

import asyncio
import contextlib
from typing import Optional

from core.config import settings
from core.logging import get_logger
from services.refresh_job import MarketRefreshJob


class RefreshScheduler:
    """
    Background service calling MarketRefreshJob.run() on a fixed interval.

    start() and stop() are idempotent. A failing cycle is logged and the loop
    keeps going.
    """

    def __init__(self, job: MarketRefreshJob, interval_seconds: Optional[float] = None) -> None:
        self._logger = get_logger(__name__)
        self._job = job
        self._interval = interval_seconds or settings.refresh_interval_seconds
        self._running = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.cycles = 0

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    async def start(self) -> None:
        if self._running.is_set():
            return
        self._running.set()
        self._logger.info(f"Starting refresh scheduler (every {self._interval}s)...")
        self._task = asyncio.create_task(self._run(), name="refresh_scheduler")

    async def stop(self) -> None:
        if not self._running.is_set():
            return
        self._logger.info("Stopping refresh scheduler...")
        self._running.clear()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    # ============================================
    # Core Loop
    # ============================================
    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while self._running.is_set():
            cycle_start = loop.time()
            try:
                result = await self._job.run()
                if not result.success:
                    self._logger.warning(f"Scheduled refresh failed: {result.error}")
            except Exception as e:
                self._logger.error(f"Refresh scheduler cycle error: {e}")
            self.cycles += 1

            elapsed = loop.time() - cycle_start
            await asyncio.sleep(max(0.0, self._interval - elapsed))
