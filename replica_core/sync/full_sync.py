"""
Full sync driver for replica-sync.

Copies every source document matching a filter into the search index,
page by page, writing straight to the target adapter.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from tqdm.asyncio import tqdm

from ..models.config import FullSyncConfig
from ..models.results import FullSyncResult
from ..storage.base import SourceAdapter, TargetAdapter

logger = logging.getLogger(__name__)


class FullSyncDriver:
    """
    Re-indexes the source collection with skip/limit paging.

    Pages bypass the batch processor so a large sync never grows its queue.
    A page whose write fails adds the page size to the error count and the
    sync moves on to the next page. Documents written concurrently with a
    long sync may be skipped or repeated by the paging; reconciliation
    covers that.
    """

    def __init__(
        self,
        source: SourceAdapter,
        target: TargetAdapter,
        config: Optional[FullSyncConfig] = None
    ):
        self.source = source
        self.target = target
        self.config = config or FullSyncConfig()

        self.is_running = False
        self.last_result: Optional[FullSyncResult] = None

    async def run(
        self,
        filter: Optional[Dict[str, Any]] = None,
        batch_size: Optional[int] = None,
        show_progress: bool = False
    ) -> FullSyncResult:
        """
        Sync every matching source document to the index.

        Args:
            filter: Source query selecting the documents to sync
            batch_size: Documents per page (defaults to the configured size)
            show_progress: Whether to show a progress bar

        Returns:
            Processed, error, and conflict totals with the success rate
        """
        if self.is_running:
            logger.warning("Full sync already running, ignoring request")
            return FullSyncResult(success=False)

        self.is_running = True
        try:
            return await self._run(filter or {}, batch_size or self.config.batch_size, show_progress)
        finally:
            self.is_running = False

    async def _run(
        self,
        filter: Dict[str, Any],
        batch_size: int,
        show_progress: bool
    ) -> FullSyncResult:
        start_time = time.time()
        result = FullSyncResult()

        result.total_count = await self.source.count(filter)
        logger.info(f"Starting full sync: {result.total_count} documents, page size {batch_size}")

        pbar = None
        if show_progress:
            pbar = tqdm(
                total=result.total_count,
                desc="Full sync",
                unit="docs",
                unit_scale=True
            )

        skip = 0
        try:
            while True:
                documents = await self.source.find(filter, limit=batch_size, skip=skip)
                if not documents:
                    break

                result.pages += 1
                result.processed += len(documents)

                try:
                    write = await self.target.bulk_upsert(documents)
                    result.errors += write.errors
                    result.version_conflicts += write.version_conflicts
                except Exception as e:
                    logger.error(f"Failed to sync page {result.pages} at skip {skip}: {e}")
                    result.errors += len(documents)

                if (result.pages % self.config.progress_log_every == 0
                        or result.processed >= result.total_count):
                    logger.info(
                        f"Full sync progress: {result.processed}/{result.total_count} "
                        f"({self._percent(result.processed, result.total_count)}%), "
                        f"errors: {result.errors}, version conflicts: {result.version_conflicts}"
                    )

                if pbar:
                    pbar.update(len(documents))
                    pbar.set_postfix({
                        'errors': result.errors,
                        'conflicts': result.version_conflicts
                    })

                skip += len(documents)
                if len(documents) < batch_size:
                    break

                if self.config.page_delay_seconds > 0:
                    await asyncio.sleep(self.config.page_delay_seconds)
        finally:
            if pbar:
                pbar.close()

        result.duration_seconds = time.time() - start_time
        self.last_result = result

        logger.info(
            f"Full sync completed: {result.processed} documents, {result.errors} errors, "
            f"{result.version_conflicts} version conflicts, {result.success_rate}% success rate "
            f"in {result.duration_seconds:.2f}s"
        )
        return result

    @staticmethod
    def _percent(part: int, whole: int) -> float:
        if whole <= 0:
            return 100.0
        return round(part / whole * 100, 2)
