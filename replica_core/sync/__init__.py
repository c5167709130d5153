"""
Replication pipeline for replica-sync.

Batch processor, change feed consumer, full sync driver, and the periodic
task scheduler shared by the timer-driven subsystems.
"""

from .batch import BatchProcessor
from .feed import ChangeFeedConsumer
from .full_sync import FullSyncDriver
from .scheduler import PeriodicTask, TaskMetrics, TaskStatus

__all__ = [
    "BatchProcessor",
    "ChangeFeedConsumer",
    "FullSyncDriver",
    "PeriodicTask",
    "TaskMetrics",
    "TaskStatus"
]
