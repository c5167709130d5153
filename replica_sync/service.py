"""
Replication service for replica-sync.

Owns the store adapters and every subsystem for one process. Control
surfaces (the CLI, or an HTTP layer) hold a reference to one instance.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from replica_core.models.config import ServiceConfig
from replica_core.models.results import (
    CountCheckResult, FullSyncResult, ReconciliationResult
)
from replica_core.monitor.drift import DriftDetector
from replica_core.monitor.reconciler import ReconciliationEngine
from replica_core.storage.base import SourceAdapter, TargetAdapter
from replica_core.storage.source import MongoSourceAdapter
from replica_core.storage.target import OpenSearchTargetAdapter
from replica_core.sync.batch import BatchProcessor
from replica_core.sync.feed import ChangeFeedConsumer
from replica_core.sync.full_sync import FullSyncDriver

logger = logging.getLogger(__name__)


class ReplicaSyncService:
    """
    Process-level replication service.

    Construct once at startup and pass by reference. ``initialize()`` must
    succeed before any subsystem is started.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        source: Optional[SourceAdapter] = None,
        target: Optional[TargetAdapter] = None
    ):
        """
        Initialize the service.

        Args:
            config: Service configuration (defaults if None)
            source: Source adapter, built from config when omitted
            target: Target adapter, built from config when omitted
        """
        self.config = config or ServiceConfig()

        self.source = source or MongoSourceAdapter(self.config.mongodb, self.config.feed)
        self.target = target or OpenSearchTargetAdapter(self.config.opensearch)

        self.batch_processor = BatchProcessor(self.target, self.config.batch)
        self.change_feed = ChangeFeedConsumer(
            self.source,
            self.batch_processor,
            restart_delay=self.config.feed.restart_delay_seconds
        )
        self.full_sync = FullSyncDriver(self.source, self.target, self.config.full_sync)
        self.drift_detector = DriftDetector(
            self.source, self.target, self.full_sync, self.config.count_monitor
        )
        self.reconciliation = ReconciliationEngine(
            self.source, self.target, self.config.reconciliation
        )

        self.is_initialized = False
        self.start_time: Optional[datetime] = None
        self._lifecycle_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """
        Connect to both stores.

        Raises:
            SourceUnavailableError: the source store is unreachable
            TargetUnavailableError: the search index is unreachable
        """
        if self.is_initialized:
            return

        await self.source.connect()
        await self.target.connect()
        self.is_initialized = True
        logger.info("Replica sync service initialized")

    async def start(self) -> None:
        """Start every enabled subsystem"""
        async with self._lifecycle_lock:
            await self.initialize()

            if self.config.feed.enabled:
                await self.start_change_feed()
            if self.config.count_monitor.enabled:
                await self.start_drift_detector()
            if self.config.reconciliation.enabled:
                await self.start_reconciliation()

            self.start_time = datetime.now()
            logger.info("Replica sync service started")

    async def stop(self) -> None:
        """Stop every subsystem, drain pending writes, and close the stores"""
        async with self._lifecycle_lock:
            logger.info("Stopping replica sync service")

            await self.stop_reconciliation()
            await self.stop_drift_detector()
            await self.stop_change_feed()

            if self.is_initialized:
                await self.source.close()
                await self.target.close()
                self.is_initialized = False

            logger.info("Replica sync service stopped")

    # Per-subsystem control

    async def start_change_feed(self) -> None:
        await self.initialize()
        await self.change_feed.start()

    async def stop_change_feed(self) -> None:
        await self.change_feed.stop()

    async def start_drift_detector(self) -> None:
        await self.initialize()
        await self.drift_detector.start()

    async def stop_drift_detector(self) -> None:
        await self.drift_detector.stop()

    async def start_reconciliation(self) -> None:
        await self.initialize()
        await self.reconciliation.start()

    async def stop_reconciliation(self) -> None:
        await self.reconciliation.stop()

    # Manual triggers

    async def trigger_full_sync(
        self,
        filter: Optional[Dict[str, Any]] = None,
        batch_size: Optional[int] = None,
        show_progress: bool = False
    ) -> FullSyncResult:
        await self.initialize()
        return await self.full_sync.run(filter, batch_size, show_progress)

    async def trigger_reconciliation(self) -> ReconciliationResult:
        await self.initialize()
        return await self.reconciliation.check_and_sync()

    async def trigger_count_check(self, allow_auto_sync: bool = True) -> CountCheckResult:
        await self.initialize()
        return await self.drift_detector.check_counts(allow_auto_sync=allow_auto_sync)

    # Status

    def get_stats(self) -> Dict[str, Any]:
        uptime = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0.0
        return {
            "initialized": self.is_initialized,
            "uptime_seconds": uptime,
            "change_feed": self.change_feed.get_stats(),
            "batch_processor": self.batch_processor.get_stats(),
            "drift_detector": self.drift_detector.get_stats(),
            "reconciliation": self.reconciliation.get_stats(),
            "full_sync": {
                "is_running": self.full_sync.is_running,
                "last_result": (
                    self.full_sync.last_result.to_dict() if self.full_sync.last_result else None
                )
            }
        }

    async def health_check(self) -> Dict[str, Any]:
        source_health, target_health = await asyncio.gather(
            self.source.health_check(),
            self.target.health_check()
        )
        healthy = (
            source_health.get("status") == "healthy"
            and target_health.get("status") == "healthy"
        )
        return {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": datetime.now().isoformat(),
            "source": source_health,
            "target": target_health,
            "change_feed_running": self.change_feed.is_running,
            "queue_size": self.batch_processor.queue_size
        }
