"""
OpenSearch target adapter for replica-sync.

Writes mirrored documents into the search index with create-or-merge bulk
updates, routed deletes, and cursor-paginated identifier scans.
"""

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional

from opensearchpy import AsyncOpenSearch
from opensearchpy.exceptions import ConnectionError, NotFoundError, TransportError

from .base import TargetAdapter
from .documents import document_id_str, resolve_routing, routing_key, to_index_document
from .retry import RetryConfig, retry_async
from ..exceptions import DocumentConversionError, RetryExhaustedError, TargetUnavailableError
from ..models.config import OpenSearchConfig
from ..models.results import BulkWriteResult

logger = logging.getLogger(__name__)

VERSION_CONFLICT_ERROR = "version_conflict_engine_exception"
TRANSIENT_STATUS_CODES = {429, 502, 503, 504}


def is_transient_error(error: BaseException) -> bool:
    """True for connection failures and overload responses worth retrying"""
    if isinstance(error, (ConnectionError, RetryExhaustedError)):
        return True
    if isinstance(error, TransportError):
        return error.status_code in TRANSIENT_STATUS_CODES
    return False


class OpenSearchTargetAdapter(TargetAdapter):
    """
    Search index adapter backed by AsyncOpenSearch.

    Features:
    - Bulk create-or-merge writes routed by grouping field
    - Version conflicts reported separately from real failures
    - Idempotent deletes (a missing document is success)
    - Identifier scans with search_after pagination
    - Transient transport errors retried with backoff
    """

    def __init__(
        self,
        config: OpenSearchConfig,
        client: Optional[AsyncOpenSearch] = None,
        retry_config: Optional[RetryConfig] = None
    ):
        """
        Initialize OpenSearch target adapter.

        Args:
            config: Connection and index settings
            client: Pre-built client, mainly for tests
            retry_config: Retry policy for transient transport errors
        """
        self.config = config
        self.index = config.index
        self._client = client
        self._connection_lock = asyncio.Lock()
        self._connected = False

        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            initial_delay=0.5,
            max_delay=5.0,
            retry_on=(TransportError,),
            should_retry=is_transient_error
        )

        # Performance tracking
        self._total_requests = 0
        self._total_request_time = 0.0
        self._failed_requests = 0

        logger.info(f"Initialized OpenSearchTargetAdapter: {config.url}/{config.index}")

    @property
    def client(self) -> AsyncOpenSearch:
        """Get OpenSearch client instance"""
        if self._client is None:
            http_auth = None
            if self.config.username:
                http_auth = (self.config.username, self.config.password or "")
            self._client = AsyncOpenSearch(
                hosts=[self.config.url],
                http_auth=http_auth,
                use_ssl=self.config.use_ssl,
                verify_certs=self.config.verify_certs,
                ssl_show_warn=False,
                timeout=self.config.timeout,
                maxsize=self.config.max_connections
            )
        return self._client

    async def connect(self) -> None:
        """
        Verify the cluster is reachable.

        Raises:
            TargetUnavailableError: the cluster did not answer
        """
        async with self._connection_lock:
            if self._connected:
                return

            try:
                start_time = time.time()
                info = await self.client.info()
                elapsed = time.time() - start_time

                self._connected = True
                version = info.get("version", {}).get("number", "unknown")
                logger.info(f"Connected to OpenSearch {version} in {elapsed:.3f}s")
            except Exception as e:
                self._connected = False
                raise TargetUnavailableError(
                    f"Failed to connect to OpenSearch at {self.config.url}: {e}"
                ) from e

    async def close(self) -> None:
        """Close the client connection pool"""
        async with self._connection_lock:
            if self._client is not None:
                try:
                    await self._client.close()
                except Exception as e:
                    logger.warning(f"Error closing OpenSearch client: {e}")
                self._client = None

            self._connected = False
            logger.info("Disconnected from OpenSearch")

    def is_transient_error(self, error: BaseException) -> bool:
        return is_transient_error(error)

    async def _request(self, description: str, operation):
        """Run one client call with transient retries and performance tracking"""
        start_time = time.time()
        self._total_requests += 1
        try:
            return await retry_async(operation, self.retry_config, description)
        except Exception:
            self._failed_requests += 1
            raise
        finally:
            self._total_request_time += time.time() - start_time

    def _build_bulk_body(
        self,
        documents: List[Dict[str, Any]],
        result: BulkWriteResult
    ) -> List[Dict[str, Any]]:
        body: List[Dict[str, Any]] = []
        for document in documents:
            try:
                doc_id = document_id_str(document)
                index_doc = to_index_document(document, self.config.excluded_fields)
            except DocumentConversionError as e:
                result.processed += 1
                result.errors += 1
                result.error_details.append({"id": None, "type": "conversion", "reason": str(e)})
                logger.error(f"Skipping document in bulk upsert: {e}")
                continue

            body.append({
                "update": {
                    "_index": self.index,
                    "_id": doc_id,
                    "routing": resolve_routing(document, self.config.routing_fields),
                    "retry_on_conflict": self.config.retry_on_conflict
                }
            })
            body.append({"doc": index_doc, "doc_as_upsert": True})
        return body

    async def bulk_upsert(self, documents: List[Dict[str, Any]]) -> BulkWriteResult:
        """
        Create-or-merge documents in one bulk request.

        Per-item version conflicts and errors are counted in the result.
        Transport-level failures that survive retries propagate to the caller.

        Args:
            documents: Source documents, each carrying ``_id``

        Returns:
            Counts of processed, failed, and conflicting items
        """
        result = BulkWriteResult()
        if not documents:
            return result

        body = self._build_bulk_body(documents, result)
        if not body:
            return result

        response = await self._request(
            f"bulk upsert of {len(body) // 2} documents",
            lambda: self.client.bulk(body=body, refresh=False)
        )

        result.took_ms = response.get("took", 0)
        for item in response.get("items", []):
            action = item.get("update") or next(iter(item.values()), {})
            result.processed += 1

            error = action.get("error")
            if not error:
                continue

            error_type = error.get("type") if isinstance(error, dict) else str(error)
            if error_type == VERSION_CONFLICT_ERROR:
                result.version_conflicts += 1
            else:
                result.errors += 1
                result.error_details.append({
                    "id": action.get("_id"),
                    "type": error_type,
                    "reason": error.get("reason") if isinstance(error, dict) else None
                })

        if result.errors:
            logger.error(
                f"Bulk upsert had {result.errors} errors out of {result.processed} "
                f"documents; first: {result.error_details[0]}"
            )
        if result.version_conflicts:
            logger.warning(f"Bulk upsert had {result.version_conflicts} version conflicts")

        logger.debug(f"Bulk upserted {result.processed} documents in {result.took_ms}ms")
        return result

    async def delete_one(
        self,
        document_id: Any,
        document: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Delete one document from the index.

        With a known grouping value the delete is routed to its shard; with no
        routing fields configured the id itself is the routing; otherwise the
        document is removed by an id query across all shards.

        Returns:
            True when the document is gone, including when it never existed
        """
        doc_id = str(document_id)
        key = routing_key(document, self.config.routing_fields)

        try:
            if key is not None or not self.config.routing_fields:
                await self._request(
                    f"delete {doc_id}",
                    lambda: self.client.delete(
                        index=self.index,
                        id=doc_id,
                        routing=key or doc_id,
                        refresh=False
                    )
                )
            else:
                response = await self._request(
                    f"delete by query {doc_id}",
                    lambda: self.client.delete_by_query(
                        index=self.index,
                        body={"query": {"ids": {"values": [doc_id]}}},
                        conflicts="proceed"
                    )
                )
                if not response.get("deleted"):
                    logger.debug(f"Document {doc_id} not found in index during delete")
        except NotFoundError:
            logger.debug(f"Document {doc_id} not found in index during delete")

        return True

    async def count_documents(self) -> int:
        """Count documents in the index; a missing index counts as empty"""
        try:
            response = await self._request(
                "count documents",
                lambda: self.client.count(index=self.index)
            )
        except NotFoundError:
            logger.warning(f"Index {self.index} does not exist; treating count as 0")
            return 0
        return int(response.get("count", 0))

    async def document_exists(self, document_id: Any) -> bool:
        """Check for a document by id regardless of its routing"""
        try:
            response = await self._request(
                f"exists {document_id}",
                lambda: self.client.count(
                    index=self.index,
                    body={"query": {"ids": {"values": [str(document_id)]}}}
                )
            )
        except NotFoundError:
            return False
        return int(response.get("count", 0)) > 0

    async def scan_all_ids(self, page_size: Optional[int] = None) -> AsyncIterator[str]:
        """
        Stream every identifier in the index.

        Pages are sorted ascending on the configured sort field and continued
        with search_after, so the scan is not bounded by the result window.
        """
        size = page_size or self.config.scan_page_size
        search_after: Optional[List[Any]] = None

        while True:
            body: Dict[str, Any] = {
                "size": size,
                "_source": False,
                "sort": [{self.config.id_sort_field: "asc"}],
                "query": {"match_all": {}}
            }
            if search_after is not None:
                body["search_after"] = search_after

            try:
                response = await self._request(
                    "scan identifiers",
                    lambda: self.client.search(index=self.index, body=body)
                )
            except NotFoundError:
                logger.warning(f"Index {self.index} does not exist; nothing to scan")
                return

            hits = response.get("hits", {}).get("hits", [])
            for hit in hits:
                yield hit["_id"]

            if len(hits) < size:
                return
            search_after = hits[-1].get("sort")
            if not search_after:
                return

    async def health_check(self) -> Dict[str, Any]:
        """
        Check OpenSearch cluster health.

        Returns:
            Health status information
        """
        try:
            start_time = time.time()
            health = await self.client.cluster.health()
            elapsed = time.time() - start_time
            document_count = await self.count_documents()

            return {
                "status": "healthy" if health.get("status") in ("green", "yellow") else "unhealthy",
                "cluster_status": health.get("status"),
                "document_count": document_count,
                "response_time_ms": elapsed * 1000,
                "connected": self._connected,
                "url": self.config.url,
                "index": self.index
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "connected": False,
                "url": self.config.url,
                "index": self.index
            }

    def get_performance_metrics(self) -> Dict[str, Any]:
        """Get client performance metrics"""
        return {
            "total_requests": self._total_requests,
            "total_request_time_s": self._total_request_time,
            "failed_requests": self._failed_requests,
            "average_request_time_ms": (
                self._total_request_time / max(1, self._total_requests) * 1000
            ),
            "success_rate": (
                (self._total_requests - self._failed_requests) / max(1, self._total_requests)
            )
        }
