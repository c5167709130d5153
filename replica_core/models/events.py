"""
Change Event Models.

Defines the change notifications read from the source change feed and the
pending write operations queued by the batch processor.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class OperationType(Enum):
    """Mutation kinds emitted by the source change feed"""
    INSERT = "insert"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"

    @classmethod
    def from_feed(cls, value: str) -> Optional['OperationType']:
        """Map a raw feed operation name, returning None for kinds we do not watch"""
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def is_delete(self) -> bool:
        return self is OperationType.DELETE


class WriteKind(Enum):
    """Kinds of writes applied to the search index"""
    UPSERT = "upsert"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """
    A single change notification from the source store.

    ``document`` is the resolved current state of the document; it is absent
    for deletes and for updates whose document was removed before the feed
    could look it up.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    operation: OperationType
    document_id: Any
    document: Optional[Dict[str, Any]] = None
    previous_document: Optional[Dict[str, Any]] = None
    received_at: datetime = Field(default_factory=datetime.now)

    @field_validator('document_id')
    @classmethod
    def validate_document_id(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError('Change event requires a document identifier')
        return v

    @property
    def has_document(self) -> bool:
        return self.document is not None

    def __str__(self) -> str:
        return f"ChangeEvent({self.operation.value}, {self.document_id})"


@dataclass
class PendingOperation:
    """A write waiting in the batch processor queue"""
    document: Dict[str, Any]
    kind: WriteKind = WriteKind.UPSERT
    enqueued_at: datetime = field(default_factory=datetime.now)

    @property
    def document_id(self) -> Any:
        return self.document.get("_id")

    @property
    def is_delete(self) -> bool:
        return self.kind is WriteKind.DELETE
