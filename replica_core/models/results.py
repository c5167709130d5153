"""
Result models for write, sync, and consistency-check operations.

Every manual trigger returns the same shapes the timer-driven paths produce.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class BulkWriteResult:
    """Outcome of one bulk upsert request against the search index"""
    processed: int = 0
    errors: int = 0
    version_conflicts: int = 0
    took_ms: int = 0
    error_details: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.processed - self.errors - self.version_conflicts


@dataclass
class BatchResult:
    """Outcome of one flushing pass of the batch processor"""
    processed: int = 0
    upserted: int = 0
    deleted: int = 0
    errors: int = 0
    version_conflicts: int = 0
    attempts: int = 0
    requeued: bool = False
    skipped: bool = False

    def add(self, other: 'BatchResult') -> None:
        """Accumulate another result's counts into this one"""
        self.processed += other.processed
        self.upserted += other.upserted
        self.deleted += other.deleted
        self.errors += other.errors
        self.version_conflicts += other.version_conflicts
        self.attempts += other.attempts
        self.requeued = self.requeued or other.requeued


@dataclass
class FullSyncResult:
    """Result of a full source-to-index sync"""
    processed: int = 0
    errors: int = 0
    version_conflicts: int = 0
    pages: int = 0
    total_count: int = 0
    duration_seconds: float = 0.0
    success: bool = True

    @property
    def success_rate(self) -> float:
        """Percentage of processed documents that were written without error"""
        if self.processed == 0:
            return 0.0
        return round((self.processed - self.errors) / self.processed * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "processed": self.processed,
            "errors": self.errors,
            "version_conflicts": self.version_conflicts,
            "success_rate": self.success_rate,
            "pages": self.pages,
            "total_count": self.total_count,
            "duration_seconds": self.duration_seconds
        }


@dataclass
class CountCheckResult:
    """Result of one drift detector count comparison"""
    source_count: int
    target_count: int
    timestamp: datetime = field(default_factory=datetime.now)
    auto_sync_triggered: bool = False

    @property
    def difference(self) -> int:
        return abs(self.source_count - self.target_count)

    @property
    def is_match(self) -> bool:
        return self.source_count == self.target_count

    @property
    def source_higher(self) -> bool:
        return self.source_count > self.target_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_count": self.source_count,
            "target_count": self.target_count,
            "difference": self.difference,
            "is_match": self.is_match,
            "source_higher": self.source_higher,
            "auto_sync_triggered": self.auto_sync_triggered,
            "timestamp": self.timestamp.isoformat()
        }


@dataclass
class ReconciliationResult:
    """
    Result of one reconciliation cycle.

    ``difference`` is signed: positive when the source holds more documents,
    negative when the index holds orphans.
    """
    in_sync: bool = False
    source_count: int = 0
    target_count: int = 0
    difference: int = 0
    missing_count: int = 0
    synced_count: int = 0
    orphaned_count: int = 0
    success: bool = True
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @classmethod
    def failed(cls, error: str) -> 'ReconciliationResult':
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "in_sync": self.in_sync,
            "source_count": self.source_count,
            "target_count": self.target_count,
            "difference": self.difference,
            "missing_count": self.missing_count,
            "synced_count": self.synced_count,
            "orphaned_count": self.orphaned_count,
            "error": self.error,
            "duration_seconds": self.duration_seconds
        }
