"""
Periodic task scheduler for replica-sync.

Runs an async action after an initial delay and then at a fixed interval
until stopped. Used for the batch flush timer, the drift detector, and the
reconciliation engine.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    """Status of a periodic task."""
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class TaskMetrics:
    """Run counters for one periodic task."""
    successful_runs: int = 0
    failed_runs: int = 0
    consecutive_failures: int = 0
    last_run_at: Optional[datetime] = None
    last_run_succeeded: Optional[bool] = None
    last_duration_seconds: float = 0.0
    busy_seconds: float = 0.0

    @property
    def total_runs(self) -> int:
        return self.successful_runs + self.failed_runs

    @property
    def success_rate(self) -> float:
        """Percentage of runs that completed without raising"""
        if self.total_runs == 0:
            return 0.0
        return self.successful_runs * 100.0 / self.total_runs

    def record(self, succeeded: bool, duration: float) -> None:
        if succeeded:
            self.successful_runs += 1
            self.consecutive_failures = 0
        else:
            self.failed_runs += 1
            self.consecutive_failures += 1
        self.last_run_at = datetime.now()
        self.last_run_succeeded = succeeded
        self.last_duration_seconds = duration
        self.busy_seconds += duration

    def to_dict(self) -> Dict[str, Any]:
        mean = self.busy_seconds / self.total_runs if self.total_runs else 0.0
        return {
            "total_runs": self.total_runs,
            "successful_runs": self.successful_runs,
            "failed_runs": self.failed_runs,
            "consecutive_failures": self.consecutive_failures,
            "success_rate_percent": round(self.success_rate, 2),
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_succeeded": self.last_run_succeeded,
            "last_duration_seconds": self.last_duration_seconds,
            "mean_duration_seconds": mean
        }


class PeriodicTask:
    """
    Asyncio-based periodic task.

    The action runs first after ``initial_delay`` seconds and then every
    ``interval`` seconds, measured from the end of the previous run, so runs
    of one task never overlap. Failures are logged and counted; the schedule
    keeps going.
    """

    def __init__(
        self,
        name: str,
        action: Callable[[], Awaitable[Any]],
        interval: float,
        initial_delay: float = 0.0,
        stop_timeout: float = 30.0
    ):
        """
        Initialize periodic task.

        Args:
            name: Name used in log messages and status output
            action: Zero-argument coroutine factory run on each tick
            interval: Seconds between the end of one run and the next
            initial_delay: Seconds to wait before the first run
            stop_timeout: Seconds stop() waits for an in-flight run before cancelling it
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.name = name
        self.action = action
        self.interval = interval
        self.initial_delay = max(0.0, initial_delay)
        self.stop_timeout = stop_timeout

        # State management
        self.status = TaskStatus.STOPPED
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._lifecycle_lock = asyncio.Lock()
        self._start_time: Optional[datetime] = None
        self._next_run_time: Optional[datetime] = None

        # Metrics and error tracking
        self.metrics = TaskMetrics()
        self._last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.status == TaskStatus.RUNNING

    async def start(self) -> bool:
        """
        Start the periodic task.

        Returns:
            True if started, False if it was already running
        """
        async with self._lifecycle_lock:
            if self.status == TaskStatus.RUNNING:
                logger.warning(f"Periodic task '{self.name}' is already running")
                return False

            self._shutdown_event.clear()
            self._task = asyncio.create_task(self._run_periodic_task())
            self.status = TaskStatus.RUNNING
            self._start_time = datetime.now()
            self._next_run_time = self._start_time + timedelta(seconds=self.initial_delay)

            logger.info(
                f"Started periodic task '{self.name}' "
                f"(interval: {self.interval}s, initial_delay: {self.initial_delay}s)"
            )
            return True

    async def stop(self) -> None:
        """Stop the task, letting an in-flight run finish within stop_timeout."""
        async with self._lifecycle_lock:
            if self.status == TaskStatus.STOPPED and self._task is None:
                logger.debug(f"Periodic task '{self.name}' is already stopped")
                return

            self._shutdown_event.set()
            self.status = TaskStatus.STOPPED
            self._next_run_time = None

            if self._task and not self._task.done():
                try:
                    await asyncio.wait_for(asyncio.shield(self._task), timeout=self.stop_timeout)
                except asyncio.TimeoutError:
                    logger.warning(
                        f"Periodic task '{self.name}' did not finish within "
                        f"{self.stop_timeout}s; cancelling"
                    )
                    self._task.cancel()
                    try:
                        await self._task
                    except asyncio.CancelledError:
                        pass
                except Exception as e:
                    logger.warning(f"Error during shutdown of '{self.name}': {e}")

            self._task = None
            logger.info(f"Periodic task '{self.name}' stopped")

    async def run_once(self) -> Any:
        """
        Run the action immediately and record the outcome.

        Returns:
            The action's result

        Raises:
            Exception: whatever the action raised
        """
        start_time = time.perf_counter()
        try:
            result = await self.action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.metrics.record(False, time.perf_counter() - start_time)
            self._last_error = str(e)
            raise

        self.metrics.record(True, time.perf_counter() - start_time)
        return result

    def get_status(self) -> Dict[str, Any]:
        """Get current task status and metrics."""
        return {
            "name": self.name,
            "status": self.status.value,
            "interval_seconds": self.interval,
            "initial_delay_seconds": self.initial_delay,
            "start_time": self._start_time.isoformat() if self._start_time else None,
            "next_run_time": self._next_run_time.isoformat() if self._next_run_time else None,
            "last_error": self._last_error,
            "metrics": self.metrics.to_dict()
        }

    async def _wait_or_shutdown(self, timeout: float) -> bool:
        """Sleep for ``timeout`` seconds; return True if shutdown was requested."""
        if timeout <= 0:
            return self._shutdown_event.is_set()
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _run_periodic_task(self) -> None:
        """Main background loop for periodic execution."""
        if await self._wait_or_shutdown(self.initial_delay):
            return

        while not self._shutdown_event.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                logger.debug(f"Periodic task '{self.name}' cancelled")
                raise
            except Exception as e:
                logger.error(f"Periodic task '{self.name}' failed: {e}")

            self._next_run_time = datetime.now() + timedelta(seconds=self.interval)
            if await self._wait_or_shutdown(self.interval):
                break
