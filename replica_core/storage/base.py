"""
Store adapter interfaces for replica-sync.

Defines the abstract source store, change feed, and search index contracts
that the replication engine is written against.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from ..exceptions import RetryExhaustedError
from ..models.events import ChangeEvent
from ..models.results import BulkWriteResult


class ChangeFeed(ABC):
    """
    An open change feed yielding one ChangeEvent at a time.

    Consumers iterate with ``async for``; each event is requested only after
    the previous one has been handled, so a slow consumer pauses the feed.
    """

    def __aiter__(self) -> 'ChangeFeed':
        return self

    @abstractmethod
    async def __anext__(self) -> ChangeEvent:
        """Block until the next event; raise StopAsyncIteration once closed"""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the feed handle"""
        ...


class SourceAdapter(ABC):
    """Primary document store contract"""

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the store; raise SourceUnavailableError on failure"""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def count(self, filter: Optional[Dict[str, Any]] = None) -> int:
        ...

    @abstractmethod
    async def find(
        self,
        filter: Optional[Dict[str, Any]] = None,
        limit: int = 1000,
        skip: int = 0,
        projection: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Return one page of documents in stable identifier order"""
        ...

    @abstractmethod
    async def find_by_id(self, document_id: Any) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def find_by_ids(self, document_ids: List[Any]) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def fetch_all_ids(self) -> Dict[str, Any]:
        """Map the string form of every document identifier to its stored value"""
        ...

    @abstractmethod
    async def open_change_feed(self) -> ChangeFeed:
        ...

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        ...


class TargetAdapter(ABC):
    """Search index contract"""

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the index; raise TargetUnavailableError on failure"""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def bulk_upsert(self, documents: List[Dict[str, Any]]) -> BulkWriteResult:
        """Create-or-merge every document in one bulk request"""
        ...

    @abstractmethod
    async def delete_one(
        self,
        document_id: Any,
        document: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Delete one document; a missing document counts as success"""
        ...

    def is_transient_error(self, error: BaseException) -> bool:
        """True when a failed write may succeed if tried again later"""
        return isinstance(error, (ConnectionError, TimeoutError, RetryExhaustedError))

    @abstractmethod
    async def count_documents(self) -> int:
        ...

    @abstractmethod
    async def document_exists(self, document_id: Any) -> bool:
        ...

    @abstractmethod
    def scan_all_ids(self) -> AsyncIterator[str]:
        """Stream every document identifier using cursor pagination"""
        ...

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        ...
