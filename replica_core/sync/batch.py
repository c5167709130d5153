"""
Batch processor for replica-sync.

Queues upserts and deletes destined for the search index and applies them
in bounded batches, with retries and re-queueing on failure.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from itertools import groupby
from typing import Any, Deque, Dict, Iterable, List, Optional, Union

from .scheduler import PeriodicTask
from ..exceptions import RetryExhaustedError
from ..models.config import BatchConfig
from ..models.events import PendingOperation, WriteKind
from ..models.results import BatchResult
from ..models.stats import BatchStats
from ..storage.base import TargetAdapter
from ..storage.documents import estimate_size
from ..storage.retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)


class BatchProcessor:
    """
    Accumulates index writes and flushes them in bounded batches.

    A flush is triggered when the queue reaches ``batch_size``, on the
    periodic flush timer, or explicitly. Only one flush runs at a time.
    A batch that cannot be written as a whole is replayed one operation at
    a time: permanent failures are counted and dropped, and the first
    transient failure puts the rest back at the front of the queue.
    flush() itself never raises for either.
    """

    def __init__(self, target: TargetAdapter, config: Optional[BatchConfig] = None):
        """
        Initialize batch processor.

        Args:
            target: Search index adapter the batches are written to
            config: Batch size, byte bound, timer, and retry settings
        """
        self.target = target
        self.config = config or BatchConfig()

        self._pending: Deque[PendingOperation] = deque()
        self._flush_lock = asyncio.Lock()
        self.stats = BatchStats()

        self.retry_config = RetryConfig(
            max_attempts=self.config.max_retries,
            initial_delay=self.config.retry_base_delay_seconds,
            backoff_factor=2.0,
            should_retry=target.is_transient_error
        )

        self._timer = PeriodicTask(
            name="batch-flush",
            action=self._scheduled_flush,
            interval=self.config.flush_interval_seconds,
            initial_delay=self.config.flush_interval_seconds
        )

    @property
    def queue_size(self) -> int:
        return len(self._pending)

    @property
    def is_processing(self) -> bool:
        return self._flush_lock.locked()

    async def start(self) -> None:
        """Start the periodic flush timer"""
        await self._timer.start()

    async def stop(self) -> BatchResult:
        """Stop the flush timer and drain the queue"""
        await self._timer.stop()
        result = await self.flush(wait=True)
        if self._pending:
            logger.warning(f"Batch processor stopped with {len(self._pending)} operations still queued")
        return result

    async def add(
        self,
        document: Dict[str, Any],
        operation: Union[WriteKind, str] = WriteKind.UPSERT
    ) -> None:
        """
        Queue one write and flush if the batch size is reached.

        Args:
            document: Source document; deletes need at least ``_id``
            operation: Upsert or delete
        """
        kind = WriteKind(operation)

        if not isinstance(document, dict) or document.get("_id") is None:
            self.stats.errors += 1
            logger.error(f"Dropping {kind.value} operation without a document id")
            return

        self._pending.append(PendingOperation(document=document, kind=kind))

        if len(self._pending) >= self.config.batch_size:
            await self.flush()

    async def add_many(
        self,
        documents: Iterable[Dict[str, Any]],
        operation: Union[WriteKind, str] = WriteKind.UPSERT
    ) -> None:
        for document in documents:
            await self.add(document, operation)

    async def flush(self, wait: bool = False) -> BatchResult:
        """
        Drain the queue one batch at a time.

        Stops early when a batch fails and is re-queued, leaving it for the
        next tick. A call made while another flush is running returns a
        skipped result unless ``wait`` is set.

        Returns:
            Totals over every batch written by this call
        """
        if self._flush_lock.locked() and not wait:
            logger.debug("Flush already in progress, skipping")
            return BatchResult(skipped=True)

        total = BatchResult()
        async with self._flush_lock:
            while self._pending:
                batch = self._detach_batch()
                result = await self._process_batch(batch)
                total.add(result)
                if result.requeued:
                    break

        return total

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats.update({
            "queue_size": self.queue_size,
            "is_processing": self.is_processing,
            "timer": self._timer.get_status()
        })
        return stats

    def _detach_batch(self) -> List[PendingOperation]:
        """Take up to batch_size operations within the byte bound, at least one"""
        batch: List[PendingOperation] = []
        batch_bytes = 0

        while self._pending and len(batch) < self.config.batch_size:
            size = estimate_size(self._pending[0].document)
            if batch and batch_bytes + size > self.config.batch_size_bytes:
                break
            batch.append(self._pending.popleft())
            batch_bytes += size

        return batch

    async def _process_batch(self, batch: List[PendingOperation]) -> BatchResult:
        attempts = 0

        async def apply() -> BatchResult:
            nonlocal attempts
            attempts += 1
            return await self._apply_batch(batch)

        try:
            result = await retry_async(
                apply,
                self.retry_config,
                f"batch of {len(batch)} operations",
                on_retry=self._on_retry
            )
        except asyncio.CancelledError:
            self._pending.extendleft(reversed(batch))
            raise
        except Exception as e:
            cause = e.last_error if isinstance(e, RetryExhaustedError) else e
            self.stats.failed_batches += 1
            logger.warning(
                f"Batch of {len(batch)} operations failed after {attempts} attempts "
                f"({cause}), applying operations one at a time"
            )
            result = await self._apply_individually(batch)

        result.attempts = attempts
        self.stats.processed += result.processed
        self.stats.errors += result.errors
        self.stats.version_conflicts += result.version_conflicts
        if not result.requeued:
            self.stats.batches += 1
            self.stats.last_processed = datetime.now()

        logger.debug(
            f"Flushed batch: {result.upserted} upserted, {result.deleted} deleted, "
            f"{result.errors} errors, {result.version_conflicts} conflicts"
        )
        return result

    async def _apply_individually(self, batch: List[PendingOperation]) -> BatchResult:
        """
        Replay a failed batch one operation at a time.

        An operation rejected with a permanent error is counted and dropped.
        The first transient failure stops the replay; that operation and all
        later ones go back to the front of the queue in their original order.
        """
        result = BatchResult()

        for position, op in enumerate(batch):
            try:
                result.add(await self._apply_batch([op]))
            except asyncio.CancelledError:
                self._pending.extendleft(reversed(batch[position:]))
                raise
            except Exception as e:
                if self.target.is_transient_error(e):
                    remaining = batch[position:]
                    self._pending.extendleft(reversed(remaining))
                    result.errors += len(remaining)
                    result.requeued = True
                    logger.error(
                        f"Re-queued {len(remaining)} operations "
                        f"({len(self._pending)} pending): {e}"
                    )
                    break

                result.processed += 1
                result.errors += 1
                self.stats.dropped += 1
                logger.error(f"Dropping {op.kind.value} of document {op.document_id}: {e}")

        return result

    async def _apply_batch(self, batch: List[PendingOperation]) -> BatchResult:
        """
        Write one batch to the target.

        Consecutive operations of the same kind are applied together, in
        queue order: each upsert run is one bulk request, each delete is its
        own call. Writes to one id are therefore applied in the order they
        were queued.
        """
        result = BatchResult(processed=len(batch))

        for kind, group in groupby(batch, key=lambda op: op.kind):
            run = list(group)
            if kind is WriteKind.UPSERT:
                write = await self.target.bulk_upsert([op.document for op in run])
                result.upserted += write.succeeded
                result.errors += write.errors
                result.version_conflicts += write.version_conflicts
            else:
                for op in run:
                    await self.target.delete_one(op.document_id, op.document)
                    result.deleted += 1

        return result

    def _on_retry(self, attempt: int, error: BaseException) -> None:
        self.stats.retries += 1

    async def _scheduled_flush(self) -> None:
        if self._pending:
            await self.flush()
