"""Tests for schedule parsing and the periodic job runner."""

import asyncio

import pytest
from metasync.errors import ScheduleError
from metasync.scheduler import Scheduler, parse_schedule


class TestParseSchedule:
    """Tests for parse_schedule()."""

    @pytest.mark.parametrize(
        "expression,seconds",
        [
            ("* * * * *", 60),
            ("*/15 * * * *", 900),
            ("*/30 * * * *", 1800),
            ("0 * * * *", 3600),
            ("0 */6 * * *", 21600),
        ],
    )
    def test_supported(self, expression, seconds):
        assert parse_schedule(expression) == seconds

    @pytest.mark.parametrize(
        "expression",
        ["", "*/15 * * *", "5 4 * * *", "*/0 * * * *", "*/60 * * * *", "0 */24 * * *", "*/5 * * * 1"],
    )
    def test_unsupported(self, expression):
        with pytest.raises(ScheduleError):
            parse_schedule(expression)

    def test_schedule_error_is_value_error(self):
        """Test that ScheduleError can be caught as ValueError."""
        with pytest.raises(ValueError):
            parse_schedule("every minute")


class TestScheduler:
    """Tests for Scheduler."""

    @pytest.mark.asyncio
    async def test_job_runs_repeatedly_until_stopped(self):
        """Test that a job runs on every tick and stops cleanly."""
        scheduler = Scheduler()
        calls = []

        async def action():
            calls.append(1)
            if len(calls) == 3:
                scheduler.stop()

        job = scheduler.add_job("tick", 0.01, action)
        await asyncio.wait_for(scheduler.run(), timeout=5)

        assert job.runs == 3
        assert job.failures == 0

    @pytest.mark.asyncio
    async def test_failing_job_keeps_running(self):
        """Test that an exception in one run does not stop later runs."""
        scheduler = Scheduler()
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) >= 3:
                scheduler.stop()
            if len(attempts) < 3:
                raise RuntimeError("upstream down")

        job = scheduler.add_job("flaky", 0.01, flaky)
        await asyncio.wait_for(scheduler.run(), timeout=5)

        assert job.runs == 3
        assert job.failures == 2

    @pytest.mark.asyncio
    async def test_jobs_are_independent(self):
        """Test that a slow job does not delay another job."""
        scheduler = Scheduler()
        fast_calls = []
        release = asyncio.Event()

        async def slow():
            await release.wait()

        async def fast():
            fast_calls.append(1)
            if len(fast_calls) == 3:
                release.set()
                scheduler.stop()

        scheduler.add_job("slow", 0.01, slow)
        scheduler.add_job("fast", 0.01, fast)
        await asyncio.wait_for(scheduler.run(), timeout=5)

        assert len(fast_calls) == 3

    @pytest.mark.asyncio
    async def test_delayed_start(self):
        """Test that a job without immediate start waits for the first tick."""
        scheduler = Scheduler()
        job = scheduler.add_job("later", 60, lambda: asyncio.sleep(0), run_immediately=False)

        task = asyncio.ensure_future(scheduler.run())
        await asyncio.sleep(0.01)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=5)

        assert job.runs == 0
