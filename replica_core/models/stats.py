"""
Per-subsystem statistics.

Each stats object is written only by the subsystem that owns it; status
queries read snapshots through ``to_dict``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class BatchStats:
    """Counters for the batch processor"""
    processed: int = 0
    errors: int = 0
    version_conflicts: int = 0
    failed_batches: int = 0
    dropped: int = 0
    retries: int = 0
    batches: int = 0
    last_processed: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "errors": self.errors,
            "version_conflicts": self.version_conflicts,
            "failed_batches": self.failed_batches,
            "dropped": self.dropped,
            "retries": self.retries,
            "batches": self.batches,
            "last_processed": _iso(self.last_processed)
        }


@dataclass
class FeedStats:
    """Counters for the change feed consumer"""
    documents_processed: int = 0
    documents_skipped: int = 0
    errors: int = 0
    restarts: int = 0
    last_sync: Optional[datetime] = None
    start_time: Optional[datetime] = None

    @property
    def uptime_seconds(self) -> float:
        if not self.start_time:
            return 0.0
        return (datetime.now() - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documents_processed": self.documents_processed,
            "documents_skipped": self.documents_skipped,
            "errors": self.errors,
            "restarts": self.restarts,
            "last_sync": _iso(self.last_sync),
            "start_time": _iso(self.start_time),
            "uptime_seconds": self.uptime_seconds
        }


@dataclass
class DriftStats:
    """Counters for the drift detector"""
    checks_performed: int = 0
    mismatches_detected: int = 0
    auto_sync_triggered: int = 0
    errors: int = 0
    last_check: Optional[datetime] = None
    last_mismatch: Optional[datetime] = None
    last_auto_sync: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checks_performed": self.checks_performed,
            "mismatches_detected": self.mismatches_detected,
            "auto_sync_triggered": self.auto_sync_triggered,
            "errors": self.errors,
            "last_check": _iso(self.last_check),
            "last_mismatch": _iso(self.last_mismatch),
            "last_auto_sync": _iso(self.last_auto_sync)
        }


@dataclass
class ReconciliationStats:
    """Counters for the reconciliation engine"""
    total_checks: int = 0
    total_syncs: int = 0
    documents_synced: int = 0
    errors: int = 0
    last_check: Optional[datetime] = None
    last_sync: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_checks": self.total_checks,
            "total_syncs": self.total_syncs,
            "documents_synced": self.documents_synced,
            "errors": self.errors,
            "last_check": _iso(self.last_check),
            "last_sync": _iso(self.last_sync)
        }
