"""Qdrant vector database service with per-version namespaces."""

import asyncio
import logging
import uuid
from typing import List, Optional, Sequence

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from docdialogue.core.config import settings
from docdialogue.core.exceptions import VectorDBError
from docdialogue.models.document import VectorMatch, VectorRecord

logger = logging.getLogger(__name__)

NAMESPACE_FIELD = "namespace"
RECORD_ID_FIELD = "record_id"
_POINT_ID_NAMESPACE = uuid.UUID("00000000-0000-0000-0000-000000000000")


def namespace_for(document_id: str, doc_version_id: str) -> str:
    """Isolation key for all vectors of one document version."""
    return f"doc:{document_id}:v:{doc_version_id}"


def record_id_for(document_id: str, idx: int) -> str:
    """Record id of a chunk; identical across re-ingests of a version."""
    return f"{document_id}-{idx}"


def point_id_for(namespace: str, record_id: str) -> str:
    """
    Deterministic Qdrant point id for a namespace-scoped record id.

    Qdrant ids are global to the collection, so the namespace is folded in.
    """
    return str(uuid.uuid5(_POINT_ID_NAMESPACE, f"{namespace}/{record_id}"))


def _namespace_filter(namespace: str) -> Filter:
    return Filter(
        must=[FieldCondition(key=NAMESPACE_FIELD, match=MatchValue(value=namespace))]
    )


class VectorDBService:
    """Service for interacting with the Qdrant vector index."""

    def __init__(
        self,
        client: Optional[AsyncQdrantClient] = None,
        collection_name: Optional[str] = None,
        dimensions: Optional[int] = None,
    ) -> None:
        """Initialize the vector database service."""
        self.client = client
        self.collection_name = collection_name or settings.qdrant_collection_name
        self.dimensions = dimensions or settings.embedding_dimensions
        self._connect_lock = asyncio.Lock()
        self._ready = False

    async def connect(self) -> None:
        """Connect to Qdrant and make sure the collection exists."""
        async with self._connect_lock:
            if self._ready:
                return
            try:
                if self.client is None:
                    self.client = AsyncQdrantClient(
                        url=settings.qdrant_url,
                        api_key=settings.qdrant_api_key or None,
                        timeout=int(settings.http_timeout_seconds),
                    )
                await self._ensure_collection()
                self._ready = True
            except Exception as e:
                raise VectorDBError(
                    f"Failed to connect to Qdrant: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Qdrant."""
        if self.client:
            await self.client.close()
        self._ready = False

    async def _ensure_collection(self) -> None:
        """Ensure the collection and its namespace payload index exist."""
        collections = await self.client.get_collections()
        collection_names = [col.name for col in collections.collections]

        if self.collection_name not in collection_names:
            await self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.dimensions,
                    distance=Distance.COSINE,
                ),
            )
            await self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name=NAMESPACE_FIELD,
                field_schema=PayloadSchemaType.KEYWORD,
            )

    async def _client(self) -> AsyncQdrantClient:
        if not self._ready:
            await self.connect()
        return self.client

    async def clear_namespace(self, namespace: str) -> None:
        """
        Delete every vector in a namespace.

        Args:
            namespace: Namespace key from ``namespace_for``.
        """
        client = await self._client()
        try:
            await client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(filter=_namespace_filter(namespace)),
                wait=True,
            )
        except Exception as e:
            raise VectorDBError(
                f"Failed to clear namespace {namespace}: {str(e)}") from e

    async def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> None:
        """
        Upsert one batch of records into a namespace.

        Args:
            namespace: Namespace key.
            records: Records whose ids are unique within the namespace.
        """
        client = await self._client()
        points = [
            PointStruct(
                id=point_id_for(namespace, record.id),
                vector=record.values,
                payload={
                    **record.metadata,
                    NAMESPACE_FIELD: namespace,
                    RECORD_ID_FIELD: record.id,
                },
            )
            for record in records
        ]
        try:
            await client.upsert(
                collection_name=self.collection_name, points=points, wait=True)
        except Exception as e:
            raise VectorDBError(f"Failed to upsert vectors: {str(e)}") from e

    async def upsert_batched(
        self, namespace: str, records: Sequence[VectorRecord], batch_size: int
    ) -> int:
        """
        Upsert records in batches; the first failing batch aborts the rest.

        Returns:
            Number of records written.
        """
        written = 0
        for start in range(0, len(records), batch_size):
            batch = records[start:start + batch_size]
            await self.upsert(namespace, batch)
            written += len(batch)
        return written

    async def query(
        self, namespace: str, vector: List[float], top_k: int
    ) -> List[VectorMatch]:
        """
        Search a namespace for the vectors closest to ``vector``.

        Args:
            namespace: Namespace key.
            vector: Query embedding.
            top_k: Maximum number of matches.

        Returns:
            Matches sorted by descending score.
        """
        client = await self._client()
        try:
            results = await client.query_points(
                collection_name=self.collection_name,
                query=vector,
                query_filter=_namespace_filter(namespace),
                limit=top_k,
                with_payload=True,
            )
        except Exception as e:
            raise VectorDBError(f"Vector query failed: {str(e)}") from e

        matches = []
        for point in results.points:
            payload = dict(point.payload or {})
            payload.pop(NAMESPACE_FIELD, None)
            record_id = payload.pop(RECORD_ID_FIELD, str(point.id))
            matches.append(
                VectorMatch(id=record_id, score=point.score, metadata=payload))

        return sorted(matches, key=lambda m: m.score, reverse=True)

    async def count(self, namespace: str) -> int:
        """Number of records stored in a namespace."""
        client = await self._client()
        result = await client.count(
            collection_name=self.collection_name,
            count_filter=_namespace_filter(namespace),
            exact=True,
        )
        return result.count

    async def list_ids(self, namespace: str) -> List[str]:
        """Record ids stored in a namespace."""
        client = await self._client()
        ids: List[str] = []
        offset = None
        while True:
            points, offset = await client.scroll(
                collection_name=self.collection_name,
                scroll_filter=_namespace_filter(namespace),
                limit=256,
                offset=offset,
                with_payload=[RECORD_ID_FIELD],
                with_vectors=False,
            )
            ids.extend(str((p.payload or {}).get(RECORD_ID_FIELD, p.id)) for p in points)
            if offset is None:
                return ids
