"""
replica-sync core package

Keeps an OpenSearch index consistent with a MongoDB collection.
"""

__version__ = "1.0.0"

from .models import ServiceConfig, ChangeEvent, ReconciliationResult, FullSyncResult, CountCheckResult
from .exceptions import ReplicaSyncError

__all__ = [
    "ServiceConfig",
    "ChangeEvent",
    "ReconciliationResult",
    "FullSyncResult",
    "CountCheckResult",
    "ReplicaSyncError"
]
