"""
Core data models for replica-sync

Configuration, change events, operation results, and per-subsystem statistics.
"""

from .config import (
    ServiceConfig, MongoConfig, OpenSearchConfig, BatchConfig, FeedConfig,
    FullSyncConfig, CountMonitorConfig, ReconciliationConfig, ProcessSettings
)
from .events import ChangeEvent, OperationType, PendingOperation, WriteKind
from .results import (
    BulkWriteResult, BatchResult, FullSyncResult, CountCheckResult, ReconciliationResult
)
from .stats import BatchStats, FeedStats, DriftStats, ReconciliationStats

__all__ = [
    # Configuration
    "ServiceConfig",
    "MongoConfig",
    "OpenSearchConfig",
    "BatchConfig",
    "FeedConfig",
    "FullSyncConfig",
    "CountMonitorConfig",
    "ReconciliationConfig",
    "ProcessSettings",

    # Events
    "ChangeEvent",
    "OperationType",
    "PendingOperation",
    "WriteKind",

    # Results
    "BulkWriteResult",
    "BatchResult",
    "FullSyncResult",
    "CountCheckResult",
    "ReconciliationResult",

    # Stats
    "BatchStats",
    "FeedStats",
    "DriftStats",
    "ReconciliationStats"
]
