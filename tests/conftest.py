"""
Shared fixtures: in-memory source and index stores.

The fakes implement the adapter interfaces closely enough for engine tests:
the index merges upserted fields like ``doc_as_upsert`` and treats deletes
of missing documents as success.
"""

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional, Set

import pytest

from replica_core.models.events import ChangeEvent
from replica_core.models.results import BulkWriteResult
from replica_core.storage.base import ChangeFeed, SourceAdapter, TargetAdapter
from replica_core.storage.documents import document_id_str, to_index_document


def make_documents(count: int, start: int = 0, **fields) -> List[Dict[str, Any]]:
    """Documents with 24-hex string ids in ascending order"""
    return [
        {"_id": f"{i:024x}", "name": f"doc-{i}", "page_id": f"page-{i % 7}", **fields}
        for i in range(start, start + count)
    ]


class FakeChangeFeed(ChangeFeed):
    """Change feed fed by the test through push() and fail()"""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    def fail(self, error: Exception) -> None:
        self._queue.put_nowait(error)

    async def __anext__(self) -> ChangeEvent:
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(None)


class FakeSource(SourceAdapter):
    """In-memory source collection"""

    def __init__(self, documents: Optional[List[Dict[str, Any]]] = None):
        self.documents: Dict[str, Dict[str, Any]] = {}
        for document in documents or []:
            self.insert(document)
        self.feeds: List[FakeChangeFeed] = []
        self.open_failures = 0
        self.connect_error: Optional[Exception] = None
        self.connected = False

    def insert(self, document: Dict[str, Any]) -> None:
        self.documents[str(document["_id"])] = document

    def _matching(self, filter: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        filter = filter or {}
        return [
            doc for _, doc in sorted(self.documents.items())
            if all(doc.get(key) == value for key, value in filter.items())
        ]

    async def connect(self) -> None:
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def count(self, filter: Optional[Dict[str, Any]] = None) -> int:
        return len(self._matching(filter))

    async def find(self, filter=None, limit=1000, skip=0, projection=None):
        return [dict(doc) for doc in self._matching(filter)[skip:skip + limit]]

    async def find_by_id(self, document_id):
        return self.documents.get(str(document_id))

    async def find_by_ids(self, document_ids):
        """Match stored ids exactly, like an $in query"""
        wanted = set(document_ids)
        return [doc for _, doc in sorted(self.documents.items()) if doc["_id"] in wanted]

    async def fetch_all_ids(self) -> Dict[str, Any]:
        return {key: doc["_id"] for key, doc in self.documents.items()}

    async def open_change_feed(self) -> FakeChangeFeed:
        if self.open_failures > 0:
            self.open_failures -= 1
            raise ConnectionError("change stream unavailable")
        feed = FakeChangeFeed()
        self.feeds.append(feed)
        return feed

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "document_count": len(self.documents)}


class FakeTarget(TargetAdapter):
    """In-memory index with create-or-merge upserts"""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.bulk_calls: List[List[str]] = []
        self.delete_calls: List[str] = []
        self.fail_bulk_times = 0
        self.fail_always = False
        self.conflict_ids: Set[str] = set()
        self.connect_error: Optional[Exception] = None
        self.connected = False

    async def connect(self) -> None:
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def bulk_upsert(self, documents: List[Dict[str, Any]]) -> BulkWriteResult:
        if self.fail_always or self.fail_bulk_times > 0:
            self.fail_bulk_times = max(0, self.fail_bulk_times - 1)
            raise ConnectionError("index unavailable")

        result = BulkWriteResult()
        call_ids = []
        for document in documents:
            result.processed += 1
            if document.get("_id") is None:
                result.errors += 1
                continue
            doc_id = document_id_str(document)
            call_ids.append(doc_id)
            if doc_id in self.conflict_ids:
                result.version_conflicts += 1
                continue
            merged = self.documents.setdefault(doc_id, {})
            merged.update(to_index_document(document))
        self.bulk_calls.append(call_ids)
        return result

    async def delete_one(self, document_id, document=None) -> bool:
        if self.fail_always:
            raise ConnectionError("index unavailable")
        self.delete_calls.append(str(document_id))
        self.documents.pop(str(document_id), None)
        return True

    async def count_documents(self) -> int:
        return len(self.documents)

    async def document_exists(self, document_id) -> bool:
        return str(document_id) in self.documents

    async def scan_all_ids(self) -> AsyncIterator[str]:
        for doc_id in sorted(self.documents):
            yield doc_id

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "document_count": len(self.documents)}


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def target():
    return FakeTarget()


@pytest.fixture
def documents():
    return make_documents


@pytest.fixture
def make_source():
    return FakeSource
