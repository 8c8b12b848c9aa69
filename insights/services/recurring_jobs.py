"""
Recurring Jobs
==============

Time-driven triggers for the pipeline: the analysis sweep (default every
5 minutes) and the executive-summary check (default daily).

The sweep is cheap and runs inline. The summary check makes serial provider
calls with retries, so it runs as its own tracked task; a long summary pass
never holds back the next sweep, and at most one pass runs at a time.

``tick()`` runs whatever is due at ``now`` and is what tests call directly;
``run_forever()`` is the production loop started from the app lifespan.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from insights.services.analysis_orchestrator import AnalysisOrchestrator, SweepReport
from insights.services.summary_scheduler import SummaryScheduler

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    sweep: Optional[SweepReport] = None
    summary_check_started: bool = False


class RecurringJobs:
    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        scheduler: SummaryScheduler,
        *,
        sweep_interval_s: float = 300,
        summary_interval_s: float = 86400,
        poll_interval_s: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.orchestrator = orchestrator
        self.scheduler = scheduler
        self.sweep_interval_s = sweep_interval_s
        self.summary_interval_s = summary_interval_s
        self.poll_interval_s = poll_interval_s
        self._clock = clock
        self._last_sweep: Optional[float] = None
        self._last_summary: Optional[float] = None
        self._summary_task: Optional[asyncio.Task] = None
        self.last_summaries_refreshed: Optional[int] = None

    def _due(self, last: Optional[float], interval: float, now: float) -> bool:
        return last is None or now - last >= interval

    @property
    def summary_check_running(self) -> bool:
        return self._summary_task is not None and not self._summary_task.done()

    async def _run_summary_check(self):
        try:
            self.last_summaries_refreshed = await self.scheduler.check_all()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Summary check failed")

    async def tick(self, now: Optional[float] = None) -> TickResult:
        now = self._clock() if now is None else now
        result = TickResult()

        if self._due(self._last_sweep, self.sweep_interval_s, now):
            self._last_sweep = now
            result.sweep = self.orchestrator.run_sweep()

        if self._due(self._last_summary, self.summary_interval_s, now):
            self._last_summary = now
            if self.summary_check_running:
                logger.warning("Previous summary check still running; skipping this interval")
            else:
                self._summary_task = asyncio.create_task(self._run_summary_check())
                result.summary_check_started = True

        return result

    async def wait_for_summary_check(self) -> Optional[int]:
        """Wait for the in-flight summary check, if any. Returns its refresh count."""
        if self._summary_task is not None:
            await self._summary_task
        return self.last_summaries_refreshed

    async def run_forever(self):
        logger.info(
            "Recurring jobs started (sweep every %ss, summaries every %ss)",
            self.sweep_interval_s, self.summary_interval_s,
        )
        try:
            while True:
                try:
                    await self.tick()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Recurring job tick failed")
                await asyncio.sleep(self.poll_interval_s)
        finally:
            if self.summary_check_running:
                self._summary_task.cancel()
                try:
                    await self._summary_task
                except asyncio.CancelledError:
                    logger.info("In-flight summary check cancelled")
