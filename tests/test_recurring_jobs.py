"""
Recurring Jobs Tests
====================

Coverage:
  - First tick runs the sweep and starts the summary check
  - Subsequent ticks run each job only once its interval has elapsed
  - A slow or failing summary check never holds back the sweep
  - A failing tick does not stop run_forever
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from insights.services.analysis_orchestrator import SweepReport
from insights.services.recurring_jobs import RecurringJobs


@pytest.fixture
def jobs():
    orchestrator = MagicMock()
    orchestrator.run_sweep.return_value = SweepReport()
    scheduler = MagicMock()
    scheduler.check_all = AsyncMock(return_value=2)
    return RecurringJobs(
        orchestrator,
        scheduler,
        sweep_interval_s=300,
        summary_interval_s=86400,
        poll_interval_s=0.01,
        clock=lambda: 0.0,
    )


class TestTick:

    @pytest.mark.asyncio
    async def test_first_tick_runs_everything(self, jobs):
        result = await jobs.tick(now=0.0)

        assert result.sweep == SweepReport()
        assert result.summary_check_started is True
        jobs.orchestrator.run_sweep.assert_called_once()

        assert await jobs.wait_for_summary_check() == 2
        jobs.scheduler.check_all.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_intervals_respected(self, jobs):
        await jobs.tick(now=0.0)
        await jobs.wait_for_summary_check()

        early = await jobs.tick(now=299.0)
        assert early.sweep is None
        assert early.summary_check_started is False

        sweep_due = await jobs.tick(now=300.0)
        assert sweep_due.sweep is not None
        assert sweep_due.summary_check_started is False

        await jobs.tick(now=86400.0)
        await jobs.wait_for_summary_check()
        assert jobs.orchestrator.run_sweep.call_count == 3
        assert jobs.scheduler.check_all.await_count == 2

    @pytest.mark.asyncio
    async def test_uses_clock_when_now_omitted(self, jobs):
        await jobs.tick()
        await jobs.tick()
        await jobs.wait_for_summary_check()
        assert jobs.orchestrator.run_sweep.call_count == 1

    @pytest.mark.asyncio
    async def test_slow_summary_check_does_not_block_sweep(self, jobs):
        release = asyncio.Event()

        async def _slow_check_all():
            await release.wait()
            return 5

        jobs.scheduler.check_all = AsyncMock(side_effect=_slow_check_all)

        first = await jobs.tick(now=0.0)
        assert first.summary_check_started is True
        await asyncio.sleep(0)
        assert jobs.summary_check_running

        sweep_due = await jobs.tick(now=300.0)
        assert sweep_due.sweep is not None
        assert jobs.orchestrator.run_sweep.call_count == 2

        # Still running when the next summary interval comes round
        overlapping = await jobs.tick(now=86400.0)
        assert overlapping.summary_check_started is False
        assert jobs.scheduler.check_all.await_count == 1

        release.set()
        assert await jobs.wait_for_summary_check() == 5
        assert not jobs.summary_check_running

    @pytest.mark.asyncio
    async def test_failed_summary_check_is_logged_not_raised(self, jobs):
        jobs.scheduler.check_all = AsyncMock(side_effect=RuntimeError("provider down"))

        await jobs.tick(now=0.0)

        assert await jobs.wait_for_summary_check() is None
        assert (await jobs.tick(now=300.0)).sweep is not None


class TestRunForever:

    @pytest.mark.asyncio
    async def test_survives_failing_tick(self, jobs):
        calls = []

        def _sweep():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("db gone")
            return SweepReport()

        jobs.orchestrator.run_sweep.side_effect = _sweep
        ticks = iter([0.0, 300.0, 600.0, 600.0, 600.0])
        jobs._clock = lambda: next(ticks, 600.0)

        task = asyncio.create_task(jobs.run_forever())
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert jobs.orchestrator.run_sweep.call_count >= 2

    @pytest.mark.asyncio
    async def test_cancel_stops_in_flight_summary_check(self, jobs):
        started = asyncio.Event()

        async def _hanging_check_all():
            started.set()
            await asyncio.sleep(60)

        jobs.scheduler.check_all = AsyncMock(side_effect=_hanging_check_all)

        task = asyncio.create_task(jobs.run_forever())
        await asyncio.wait_for(started.wait(), timeout=2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not jobs.summary_check_running
