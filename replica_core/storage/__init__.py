"""
Store adapters for replica-sync.

Source (MongoDB) and target (OpenSearch) adapters, document conversion, and
the shared retry utility.
"""

from .base import ChangeFeed, SourceAdapter, TargetAdapter
from .documents import (
    document_id_str, estimate_size, make_json_safe, resolve_routing,
    routing_key, source_id_candidates, to_index_document, to_source_id
)
from .retry import RetryConfig, retry_async
from .source import MongoChangeFeed, MongoSourceAdapter, change_to_event
from .target import OpenSearchTargetAdapter, is_transient_error

__all__ = [
    # Interfaces
    "ChangeFeed",
    "SourceAdapter",
    "TargetAdapter",

    # Adapters
    "MongoSourceAdapter",
    "MongoChangeFeed",
    "OpenSearchTargetAdapter",
    "change_to_event",
    "is_transient_error",

    # Documents
    "document_id_str",
    "estimate_size",
    "make_json_safe",
    "resolve_routing",
    "routing_key",
    "source_id_candidates",
    "to_index_document",
    "to_source_id",

    # Retry
    "RetryConfig",
    "retry_async"
]
