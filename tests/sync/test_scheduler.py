"""
Tests for PeriodicTask scheduling and metrics.
"""

import asyncio

import pytest

from replica_core.sync.scheduler import PeriodicTask, TaskStatus


class Counter:
    def __init__(self, fail: bool = False, duration: float = 0.0):
        self.calls = 0
        self.fail = fail
        self.duration = duration

    async def __call__(self):
        self.calls += 1
        if self.duration:
            await asyncio.sleep(self.duration)
        if self.fail:
            raise RuntimeError("tick failed")
        return self.calls


class TestPeriodicTask:
    """Test periodic task lifecycle."""

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            PeriodicTask("bad", Counter(), interval=0)

    @pytest.mark.asyncio
    async def test_run_once_records_success(self):
        task = PeriodicTask("tick", Counter(), interval=10)

        result = await task.run_once()

        assert result == 1
        assert task.metrics.total_runs == 1
        assert task.metrics.successful_runs == 1
        assert task.metrics.success_rate == 100.0

    @pytest.mark.asyncio
    async def test_run_once_records_failure_and_reraises(self):
        task = PeriodicTask("tick", Counter(fail=True), interval=10)

        with pytest.raises(RuntimeError):
            await task.run_once()

        assert task.metrics.failed_runs == 1
        assert task.metrics.consecutive_failures == 1
        assert task.get_status()["last_error"] == "tick failed"

    @pytest.mark.asyncio
    async def test_metrics_track_mixed_outcomes(self):
        action = Counter()
        task = PeriodicTask("tick", action, interval=10)

        await task.run_once()
        action.fail = True
        with pytest.raises(RuntimeError):
            await task.run_once()

        metrics = task.get_status()["metrics"]
        assert metrics["total_runs"] == 2
        assert metrics["success_rate_percent"] == 50.0
        assert metrics["consecutive_failures"] == 1
        assert metrics["last_run_succeeded"] is False
        assert metrics["last_run_at"] is not None

    @pytest.mark.asyncio
    async def test_runs_after_initial_delay_then_repeats(self):
        action = Counter()
        task = PeriodicTask("tick", action, interval=0.05, initial_delay=0.05)

        assert await task.start() is True
        assert task.status == TaskStatus.RUNNING
        await asyncio.sleep(0.02)
        assert action.calls == 0

        await asyncio.sleep(0.15)
        await task.stop()

        assert action.calls >= 2
        assert task.status == TaskStatus.STOPPED

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_schedule(self):
        action = Counter(fail=True)
        task = PeriodicTask("tick", action, interval=0.02)

        await task.start()
        await asyncio.sleep(0.1)
        await task.stop()

        assert action.calls >= 2
        assert task.metrics.failed_runs == action.calls

    @pytest.mark.asyncio
    async def test_stop_interrupts_long_wait(self):
        action = Counter()
        task = PeriodicTask("tick", action, interval=60, initial_delay=60)
        await task.start()

        await asyncio.wait_for(task.stop(), timeout=1.0)

        assert action.calls == 0
        assert task.is_running is False

    @pytest.mark.asyncio
    async def test_stop_waits_for_inflight_run(self):
        action = Counter(duration=0.05)
        task = PeriodicTask("tick", action, interval=60)
        await task.start()
        await asyncio.sleep(0.01)

        await task.stop()

        assert action.calls == 1
        assert task.metrics.successful_runs == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_run_exceeding_timeout(self):
        action = Counter(duration=5.0)
        task = PeriodicTask("tick", action, interval=60, stop_timeout=0.05)
        await task.start()
        await asyncio.sleep(0.01)

        await asyncio.wait_for(task.stop(), timeout=1.0)

        assert task.metrics.successful_runs == 0
        assert task.is_running is False

    @pytest.mark.asyncio
    async def test_double_start_returns_false(self):
        task = PeriodicTask("tick", Counter(), interval=60, initial_delay=60)
        try:
            assert await task.start() is True
            assert await task.start() is False
        finally:
            await task.stop()

    @pytest.mark.asyncio
    async def test_status_reports_schedule(self):
        task = PeriodicTask("tick", Counter(), interval=30, initial_delay=5)
        await task.start()
        try:
            status = task.get_status()
        finally:
            await task.stop()

        assert status["name"] == "tick"
        assert status["status"] == "running"
        assert status["interval_seconds"] == 30
        assert status["next_run_time"] is not None
