"""
Exception types for the replication engine.

Failures that stop a subsystem from working at all propagate as these
exceptions; per-document and per-batch failures are counted instead.
"""

from typing import Optional


class ReplicaSyncError(Exception):
    """Base class for replication engine errors"""
    pass


class SourceUnavailableError(ReplicaSyncError):
    """Raised when the source store cannot be reached or initialised"""
    pass


class TargetUnavailableError(ReplicaSyncError):
    """Raised when the search index cannot be reached or initialised"""
    pass


class DocumentConversionError(ReplicaSyncError):
    """Raised when a source document cannot be turned into an index document"""
    pass


class RetryExhaustedError(ReplicaSyncError):
    """Raised when every attempt of a retried operation failed"""

    def __init__(self, description: str, attempts: int, last_error: Optional[BaseException] = None):
        self.description = description
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{description} failed after {attempts} attempts: {last_error}"
        )
