"""
Drift detector for replica-sync.

Periodically compares source and index document counts and starts a full
sync when they diverge by more than a threshold.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..models.config import CountMonitorConfig
from ..models.results import CountCheckResult
from ..models.stats import DriftStats
from ..storage.base import SourceAdapter, TargetAdapter
from ..sync.full_sync import FullSyncDriver
from ..sync.scheduler import PeriodicTask

logger = logging.getLogger(__name__)


class DriftDetector:
    """
    Count-based drift detection with optional automatic full sync.

    Counts are cheap on both stores, so the check runs on a long interval.
    On a mismatch a small sample of source documents is checked against the
    index for diagnosis. When auto-sync is enabled and the difference exceeds
    the threshold, a full sync runs in the background followed by a
    verification count check.
    """

    def __init__(
        self,
        source: SourceAdapter,
        target: TargetAdapter,
        full_sync: FullSyncDriver,
        config: Optional[CountMonitorConfig] = None
    ):
        self.source = source
        self.target = target
        self.full_sync = full_sync
        self.config = config or CountMonitorConfig()

        self.auto_sync_enabled = self.config.auto_sync_enabled
        self.auto_sync_threshold = self.config.auto_sync_threshold

        self.stats = DriftStats()
        self.last_result: Optional[CountCheckResult] = None
        self._auto_sync_task: Optional[asyncio.Task] = None

        self._timer = PeriodicTask(
            name="count-monitor",
            action=self.check_counts,
            interval=self.config.interval_seconds,
            initial_delay=self.config.startup_delay_seconds
        )

    @property
    def is_running(self) -> bool:
        return self._timer.is_running

    @property
    def auto_sync_in_progress(self) -> bool:
        return self._auto_sync_task is not None and not self._auto_sync_task.done()

    async def start(self) -> None:
        await self._timer.start()
        logger.info(
            f"Drift detector started: first check in {self.config.startup_delay_seconds}s, "
            f"then every {self.config.interval_seconds}s"
        )

    async def stop(self) -> None:
        await self._timer.stop()
        if self.auto_sync_in_progress:
            self._auto_sync_task.cancel()
            try:
                await self._auto_sync_task
            except asyncio.CancelledError:
                pass
        self._auto_sync_task = None
        logger.info("Drift detector stopped")

    async def check_counts(self, allow_auto_sync: bool = True) -> CountCheckResult:
        """
        Compare source and index document counts.

        Args:
            allow_auto_sync: Whether a large mismatch may start a full sync

        Returns:
            Both counts, their absolute difference, and whether they match
        """
        logger.info("Starting document count check")
        try:
            source_count, target_count = await asyncio.gather(
                self.source.count(),
                self.target.count_documents()
            )
        except Exception as e:
            self.stats.errors += 1
            logger.error(f"Document count check failed: {e}")
            raise

        result = CountCheckResult(source_count=source_count, target_count=target_count)
        self.stats.checks_performed += 1
        self.stats.last_check = result.timestamp

        if result.is_match:
            logger.info(
                f"Document count check passed: source={source_count}, index={target_count}"
            )
        else:
            self.stats.mismatches_detected += 1
            self.stats.last_mismatch = result.timestamp
            logger.warning(
                f"Document count mismatch: source={source_count}, index={target_count}, "
                f"difference={result.difference}, source_higher={result.source_higher}"
            )

            await self._log_mismatch_details()

            if (allow_auto_sync and self.auto_sync_enabled
                    and result.difference > self.auto_sync_threshold):
                result.auto_sync_triggered = self._trigger_auto_sync(result.difference)

        self.last_result = result
        return result

    async def wait_for_auto_sync(self) -> None:
        """Wait until a running auto-sync and its verification finish"""
        if self._auto_sync_task is not None:
            await asyncio.gather(self._auto_sync_task, return_exceptions=True)

    def set_auto_sync_enabled(self, enabled: bool) -> None:
        self.auto_sync_enabled = enabled
        logger.info(f"Auto-sync {'enabled' if enabled else 'disabled'}")

    def set_auto_sync_threshold(self, threshold: int) -> None:
        if threshold < 0:
            raise ValueError("Auto-sync threshold cannot be negative")
        self.auto_sync_threshold = threshold
        logger.info(f"Auto-sync threshold set to {threshold} documents")

    def get_auto_sync_config(self) -> Dict[str, Any]:
        return {
            "enabled": self.auto_sync_enabled,
            "threshold": self.auto_sync_threshold,
            "triggered": self.stats.auto_sync_triggered,
            "last_triggered": (
                self.stats.last_auto_sync.isoformat() if self.stats.last_auto_sync else None
            ),
            "in_progress": self.auto_sync_in_progress
        }

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats.update({
            "is_running": self.is_running,
            "auto_sync_enabled": self.auto_sync_enabled,
            "auto_sync_threshold": self.auto_sync_threshold,
            "timer": self._timer.get_status()
        })
        return stats

    async def _log_mismatch_details(self) -> None:
        """Log whether a few source documents are present in the index"""
        if self.config.sample_size <= 0:
            return
        try:
            documents = await self.source.find(limit=self.config.sample_size)
            sample_ids = [str(doc["_id"]) for doc in documents]
            presence = await asyncio.gather(
                *(self.target.document_exists(doc_id) for doc_id in sample_ids)
            )
            missing = [doc_id for doc_id, exists in zip(sample_ids, presence) if not exists]
            logger.warning(
                f"Mismatch sample: {len(sample_ids)} source documents checked, "
                f"{len(missing)} missing from index: {missing}"
            )
        except Exception as e:
            logger.error(f"Failed to collect mismatch details: {e}")

    def _trigger_auto_sync(self, difference: int) -> bool:
        if self.auto_sync_in_progress:
            logger.info("Auto-sync already in progress, not starting another")
            return False

        logger.info(
            f"Auto-sync triggered: difference={difference} "
            f"(threshold={self.auto_sync_threshold})"
        )
        self.stats.auto_sync_triggered += 1
        self.stats.last_auto_sync = datetime.now()
        self._auto_sync_task = asyncio.create_task(self._run_auto_sync())
        return True

    async def _run_auto_sync(self) -> None:
        try:
            result = await self.full_sync.run(batch_size=self.config.auto_sync_batch_size)
            logger.info(
                f"Auto-sync completed: {result.processed} processed, {result.errors} errors, "
                f"{result.success_rate}% success rate"
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.stats.errors += 1
            logger.error(f"Auto-sync failed, count monitor keeps running: {e}")
            return

        if self.config.verification_delay_seconds > 0:
            await asyncio.sleep(self.config.verification_delay_seconds)

        try:
            verification = await self.check_counts(allow_auto_sync=False)
        except Exception as e:
            logger.error(f"Failed to verify auto-sync results: {e}")
            return

        if verification.is_match:
            logger.info("Auto-sync verification successful: counts now match")
        else:
            logger.warning(
                f"Auto-sync verification: counts still differ by {verification.difference}"
            )
