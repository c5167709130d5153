"""
Reconciliation engine for replica-sync.

Finds source documents missing from the search index by comparing the two
identifier sets, then copies just those documents across.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from ..models.config import ReconciliationConfig
from ..models.results import ReconciliationResult
from ..models.stats import ReconciliationStats
from ..storage.base import SourceAdapter, TargetAdapter
from ..sync.scheduler import PeriodicTask

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """
    Identifier-level repair of index gaps.

    The source is authoritative and repair only ever adds documents to the
    index. Equal counts take the cheap path without scanning identifiers;
    an index holding more documents than the source is logged as orphaned
    documents and left alone.
    """

    def __init__(
        self,
        source: SourceAdapter,
        target: TargetAdapter,
        config: Optional[ReconciliationConfig] = None
    ):
        self.source = source
        self.target = target
        self.config = config or ReconciliationConfig()

        self.stats = ReconciliationStats()
        self.last_result: Optional[ReconciliationResult] = None
        self._cycle_lock = asyncio.Lock()

        self._timer = PeriodicTask(
            name="reconciliation",
            action=self.check_and_sync,
            interval=self.config.interval_seconds,
            initial_delay=self.config.startup_delay_seconds
        )

    @property
    def is_running(self) -> bool:
        return self._timer.is_running

    async def start(self) -> None:
        await self._timer.start()
        logger.info(
            f"Reconciliation engine started: first check in "
            f"{self.config.startup_delay_seconds}s, then every {self.config.interval_seconds}s"
        )

    async def stop(self) -> None:
        await self._timer.stop()
        logger.info("Reconciliation engine stopped")

    async def check_and_sync(self) -> ReconciliationResult:
        """
        Run one reconciliation cycle.

        Cycles never overlap; a call made during a running cycle waits for it
        and then runs its own.

        Returns:
            Counts, difference, and how many missing documents were repaired.
            Failures are reported in the result rather than raised.
        """
        async with self._cycle_lock:
            start_time = time.time()
            try:
                result = await self._run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats.errors += 1
                logger.error(f"Reconciliation check failed: {e}")
                result = ReconciliationResult.failed(str(e))

            result.duration_seconds = time.time() - start_time
            self.last_result = result
            return result

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats.update({
            "is_running": self.is_running,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "timer": self._timer.get_status()
        })
        return stats

    async def _run_cycle(self) -> ReconciliationResult:
        logger.info("Starting reconciliation check")
        self.stats.total_checks += 1
        self.stats.last_check = datetime.now()

        source_count, target_count = await asyncio.gather(
            self.source.count(),
            self.target.count_documents()
        )
        difference = source_count - target_count
        result = ReconciliationResult(
            source_count=source_count,
            target_count=target_count,
            difference=difference
        )
        logger.info(
            f"Count comparison: source={source_count}, index={target_count}, "
            f"difference={difference}"
        )

        if difference == 0:
            logger.info("Counts match, no reconciliation needed")
            result.in_sync = True
            return result

        if difference < 0:
            result.orphaned_count = -difference
            logger.warning(
                f"Index has {result.orphaned_count} more documents than the source "
                f"(orphaned documents); not deleting"
            )
            return result

        logger.info(f"Source has {difference} more documents, looking for missing ids")
        missing_ids = await self._find_missing_ids()
        result.missing_count = len(missing_ids)

        if not missing_ids:
            logger.info("All source documents exist in the index")
            result.in_sync = True
            return result

        result.synced_count = await self._sync_documents_by_ids(missing_ids)
        result.in_sync = result.synced_count == result.missing_count

        self.stats.total_syncs += 1
        self.stats.last_sync = datetime.now()
        self.stats.documents_synced += result.synced_count

        logger.info(
            f"Reconciliation complete: synced {result.synced_count} of "
            f"{result.missing_count} missing documents"
        )
        return result

    async def _find_missing_ids(self) -> List[Any]:
        """Return the stored identifiers of source documents absent from the index"""
        source_ids = await self.source.fetch_all_ids()
        logger.info(f"Found {len(source_ids)} documents in source")

        target_ids: Set[str] = set()
        async for doc_id in self.target.scan_all_ids():
            target_ids.add(doc_id)
        logger.info(f"Found {len(target_ids)} documents in index")

        missing = sorted(source_ids.keys() - target_ids)
        logger.info(f"Found {len(missing)} documents missing from index")
        return [source_ids[key] for key in missing]

    async def _sync_documents_by_ids(self, ids: List[Any]) -> int:
        batch_size = self.config.repair_batch_size
        total_batches = (len(ids) + batch_size - 1) // batch_size
        synced = 0

        logger.info(f"Syncing {len(ids)} documents in batches of {batch_size}")

        for batch_num, start in enumerate(range(0, len(ids), batch_size), start=1):
            batch_ids = ids[start:start + batch_size]
            try:
                documents = await self.source.find_by_ids(batch_ids)
                if documents:
                    write = await self.target.bulk_upsert(documents)
                    synced += len(documents) - write.errors
                    if write.errors:
                        logger.warning(f"Repair batch {batch_num} had {write.errors} errors")
                    logger.info(
                        f"Synced batch {batch_num}/{total_batches}: {len(documents)} documents "
                        f"(total: {synced}/{len(ids)})"
                    )
            except Exception as e:
                self.stats.errors += 1
                logger.error(f"Failed to sync repair batch {batch_num}: {e}")

            if batch_num < total_batches and self.config.batch_delay_seconds > 0:
                await asyncio.sleep(self.config.batch_delay_seconds)

        return synced
