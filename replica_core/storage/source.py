"""
MongoDB source adapter for replica-sync.

Reads documents, identifiers, and change notifications from the primary
document store using PyMongo's asyncio client.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.errors import PyMongoError

from .base import ChangeFeed, SourceAdapter
from .documents import SOURCE_ID_FIELD, source_id_candidates, to_source_id
from ..exceptions import SourceUnavailableError
from ..models.config import FeedConfig, MongoConfig
from ..models.events import ChangeEvent, OperationType

logger = logging.getLogger(__name__)

WATCHED_OPERATIONS = [op.value for op in OperationType]


def change_to_event(change: Dict[str, Any]) -> Optional[ChangeEvent]:
    """
    Convert a raw change stream document into a ChangeEvent.

    Returns None for operation kinds that are not replicated and for
    notifications without a document key.
    """
    operation = OperationType.from_feed(change.get("operationType", ""))
    if operation is None:
        return None

    document_key = change.get("documentKey") or {}
    document_id = document_key.get(SOURCE_ID_FIELD)
    if document_id is None:
        logger.warning(f"Ignoring {operation.value} change without a document key")
        return None

    return ChangeEvent(
        operation=operation,
        document_id=document_id,
        document=change.get("fullDocument"),
        previous_document=change.get("fullDocumentBeforeChange")
    )


class MongoChangeFeed(ChangeFeed):
    """Change feed over a PyMongo AsyncChangeStream"""

    def __init__(self, stream):
        self._stream = stream
        self._closed = False

    async def __anext__(self) -> ChangeEvent:
        while True:
            if self._closed:
                raise StopAsyncIteration
            change = await self._stream.next()
            event = change_to_event(change)
            if event is not None:
                return event
            logger.debug(f"Skipping change of kind {change.get('operationType')}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._stream.close()
        except PyMongoError as e:
            logger.warning(f"Error closing change stream: {e}")


class MongoSourceAdapter(SourceAdapter):
    """
    Source store adapter backed by AsyncMongoClient.

    All reads go to the configured database and collection. Identifier sets
    are keyed by string form so they can be compared with index ids.
    """

    def __init__(
        self,
        config: MongoConfig,
        feed_config: Optional[FeedConfig] = None,
        client: Optional[AsyncMongoClient] = None
    ):
        self.config = config
        self.feed_config = feed_config or FeedConfig()
        self._client = client
        self._connection_lock = asyncio.Lock()
        self._connected = False

        logger.info(
            f"Initialized MongoSourceAdapter: {config.database}.{config.collection}"
        )

    @property
    def client(self) -> AsyncMongoClient:
        if self._client is None:
            self._client = AsyncMongoClient(
                self.config.uri,
                maxPoolSize=self.config.max_pool_size,
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
                socketTimeoutMS=self.config.socket_timeout_ms
            )
        return self._client

    @property
    def collection(self):
        return self.client[self.config.database][self.config.collection]

    async def connect(self) -> None:
        """
        Verify the source store is reachable.

        Raises:
            SourceUnavailableError: the server did not answer a ping
        """
        async with self._connection_lock:
            if self._connected:
                return

            try:
                start_time = time.time()
                await self.client.admin.command("ping")
                elapsed = time.time() - start_time

                self._connected = True
                logger.info(f"Connected to MongoDB in {elapsed:.3f}s")
            except PyMongoError as e:
                self._connected = False
                raise SourceUnavailableError(f"Failed to connect to MongoDB: {e}") from e

    async def close(self) -> None:
        async with self._connection_lock:
            if self._client is not None:
                await self._client.close()
                self._client = None
            self._connected = False
            logger.info("Disconnected from MongoDB")

    async def count(self, filter: Optional[Dict[str, Any]] = None) -> int:
        return await self.collection.count_documents(filter or {})

    async def find(
        self,
        filter: Optional[Dict[str, Any]] = None,
        limit: int = 1000,
        skip: int = 0,
        projection: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Read one page of documents.

        Pages are sorted by ``_id`` so skip/limit paging visits every document
        exactly once while the collection is not being modified.
        """
        cursor = (
            self.collection.find(filter or {}, projection)
            .sort(SOURCE_ID_FIELD, ASCENDING)
            .skip(skip)
            .limit(limit)
        )
        return await cursor.to_list(None)

    async def find_by_id(self, document_id: Any) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({SOURCE_ID_FIELD: to_source_id(document_id)})

    async def find_by_ids(self, document_ids: List[Any]) -> List[Dict[str, Any]]:
        """
        Fetch documents by id.

        Stored values (ints, UUIDs, ObjectIds) match as they are; a 24-hex
        string also matches the ObjectId it spells.
        """
        if not document_ids:
            return []
        candidates = source_id_candidates(document_ids)
        cursor = self.collection.find({SOURCE_ID_FIELD: {"$in": candidates}})
        return await cursor.to_list(None)

    async def fetch_all_ids(self) -> Dict[str, Any]:
        """
        Read every identifier with an id-only projection.

        Keys are the string forms compared against index ids; values are the
        identifiers as stored, for looking the documents up again.
        """
        ids: Dict[str, Any] = {}
        cursor = self.collection.find({}, {SOURCE_ID_FIELD: 1})
        async for document in cursor:
            stored = document[SOURCE_ID_FIELD]
            ids[str(stored)] = stored
        return ids

    async def open_change_feed(self) -> MongoChangeFeed:
        """
        Open a change stream over the collection.

        Only insert, update, replace, and delete notifications are requested.
        Updates carry the looked-up current document; deletes carry the
        pre-image when the collection records one.
        """
        pipeline = [{"$match": {"operationType": {"$in": WATCHED_OPERATIONS}}}]
        options: Dict[str, Any] = {"full_document": self.feed_config.full_document}
        if self.feed_config.full_document_before_change:
            options["full_document_before_change"] = self.feed_config.full_document_before_change

        stream = await self.collection.watch(pipeline, **options)
        logger.info(
            f"Opened change stream on {self.config.database}.{self.config.collection}"
        )
        return MongoChangeFeed(stream)

    async def health_check(self) -> Dict[str, Any]:
        try:
            start_time = time.time()
            await self.client.admin.command("ping")
            elapsed = time.time() - start_time
            document_count = await self.collection.estimated_document_count()

            return {
                "status": "healthy",
                "response_time_ms": elapsed * 1000,
                "document_count": document_count,
                "connected": self._connected,
                "database": self.config.database,
                "collection": self.config.collection
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "connected": False,
                "database": self.config.database,
                "collection": self.config.collection
            }
