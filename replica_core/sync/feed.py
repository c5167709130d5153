"""
Change feed consumer for replica-sync.

Reads the source change feed one event at a time and turns each event into
a batch processor operation. Reopens the feed after failures.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from .batch import BatchProcessor
from ..models.events import ChangeEvent, WriteKind
from ..models.stats import FeedStats
from ..storage.base import ChangeFeed, SourceAdapter

logger = logging.getLogger(__name__)


class ChangeFeedConsumer:
    """
    Drives the source change feed into the batch processor.

    Each event is fully queued before the next one is requested, so a slow
    index pauses the feed instead of buffering without bound. A feed error is
    logged and the feed is reopened after ``restart_delay`` seconds; events
    emitted while it was down are not replayed.
    """

    def __init__(
        self,
        source: SourceAdapter,
        batch_processor: BatchProcessor,
        restart_delay: float = 5.0,
        stop_timeout: float = 5.0
    ):
        self.source = source
        self.batch_processor = batch_processor
        self.restart_delay = restart_delay
        self.stop_timeout = stop_timeout

        self.stats = FeedStats()
        self.is_running = False

        self._feed: Optional[ChangeFeed] = None
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._lifecycle_lock = asyncio.Lock()

    async def start(self) -> None:
        """
        Open the change feed and start consuming it.

        Raises:
            Exception: the feed could not be opened; the consumer stays stopped
        """
        async with self._lifecycle_lock:
            if self.is_running:
                logger.warning("Change feed consumer is already running")
                return

            self._shutdown_event.clear()
            self._feed = await self.source.open_change_feed()
            await self.batch_processor.start()

            self._task = asyncio.create_task(self._consume_loop())
            self.is_running = True
            self.stats.start_time = datetime.now()
            logger.info("Change feed consumer started")

    async def stop(self) -> None:
        """Close the feed, stop the consume loop, then drain the batch processor."""
        async with self._lifecycle_lock:
            if not self.is_running:
                return

            logger.info("Stopping change feed consumer")
            self.is_running = False
            self._shutdown_event.set()
            await self._close_feed()

            if self._task and not self._task.done():
                self._task.cancel()
                try:
                    await asyncio.wait_for(self._task, timeout=self.stop_timeout)
                except (asyncio.CancelledError, asyncio.TimeoutError):
                    logger.debug("Consume loop cancelled or timed out during shutdown")
                except Exception as e:
                    logger.warning(f"Error stopping consume loop: {e}")
            self._task = None

            result = await self.batch_processor.stop()
            logger.info(
                f"Change feed consumer stopped (final flush: {result.processed} operations)"
            )

    async def handle_event(self, event: ChangeEvent) -> None:
        """
        Queue the index write for one change event.

        Upserts need the resolved document; an insert, update, or replace
        whose document is already gone is counted as skipped. Deletes carry
        the pre-image when the feed supplied one so the write can be routed.
        """
        if event.operation.is_delete:
            document: Dict[str, Any] = dict(event.previous_document or {})
            document["_id"] = event.document_id
            await self.batch_processor.add(document, WriteKind.DELETE)
        elif event.has_document:
            await self.batch_processor.add(event.document, WriteKind.UPSERT)
        else:
            self.stats.documents_skipped += 1
            logger.debug(f"Skipping {event}: document no longer exists")
            return

        self.stats.documents_processed += 1
        self.stats.last_sync = datetime.now()

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats["is_running"] = self.is_running
        return stats

    async def _consume_loop(self) -> None:
        """Receive loop with automatic reopen after feed errors."""
        while not self._shutdown_event.is_set():
            try:
                if self._feed is None:
                    self._feed = await self.source.open_change_feed()
                    self.stats.restarts += 1
                    logger.info(f"Change feed reopened (restart #{self.stats.restarts})")

                async for event in self._feed:
                    try:
                        await self.handle_event(event)
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        self.stats.errors += 1
                        logger.error(f"Failed to handle {event}: {e}")

                    if self._shutdown_event.is_set():
                        break

                if self._shutdown_event.is_set():
                    break
                logger.warning("Change feed ended unexpectedly")

            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self._shutdown_event.is_set():
                    break
                self.stats.errors += 1
                logger.error(f"Change feed error: {e}")

            await self._close_feed()
            logger.info(f"Reopening change feed in {self.restart_delay}s")
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.restart_delay)
                break
            except asyncio.TimeoutError:
                continue

    async def _close_feed(self) -> None:
        feed, self._feed = self._feed, None
        if feed is None:
            return
        try:
            await feed.close()
        except Exception as e:
            logger.warning(f"Error closing change feed: {e}")
