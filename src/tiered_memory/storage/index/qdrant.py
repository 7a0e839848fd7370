"""
Qdrant-backed embedding index for records.

The SQL record store keeps embeddings on the row as the source of truth and
mirrors them into this index for similarity search. Points are keyed by a
UUID derived from the record id; owner_id, status and is_historical live in
the payload so searches filter to one owner's live records.
"""

import logging
import threading
import uuid
from typing import List, Optional, Tuple

from qdrant_client import QdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from tiered_memory.errors import PersistenceError
from tiered_memory.models import MemoryRecord
from tiered_memory.storage.vectors import usable_embedding

logger = logging.getLogger(__name__)

POINT_NAMESPACE = uuid.UUID("6f1c52d4-8c1e-4a52-9d55-0d8f2b8f5e11")

QDRANT_ERRORS = (UnexpectedResponse, ResponseHandlingException)


def point_id(record_id: str) -> str:
    """Qdrant only accepts UUIDs or integers as point ids."""
    return str(uuid.uuid5(POINT_NAMESPACE, record_id))


class QdrantRecordIndex:
    """
    Cosine-similarity index over record embeddings.

    The collection is created on the first upsert, sized to that embedding.
    Vectors of another size are skipped on write and return no hits on
    search.

    Example:
        index = QdrantRecordIndex(host="localhost", port=6333)
        store = SQLAlchemyRecordStore(engine, vector_index=index)

    With no arguments the index runs in Qdrant's local in-memory mode, which
    is not persistent; the SQL store reloads an owner's embeddings into it on
    first search.
    """

    def __init__(
        self,
        client: Optional[QdrantClient] = None,
        host: Optional[str] = None,
        port: int = 6333,
        collection_name: str = "memory_records",
    ):
        """
        Initialize the record index.

        Args:
            client: Pre-built client (takes precedence over host/port)
            host: Qdrant host; omit for local in-memory mode
            port: Qdrant port (default: 6333)
            collection_name: Collection name (default: memory_records)
        """
        if client is not None:
            self.client = client
            self.persistent = True
        elif host is not None:
            self.client = QdrantClient(host=host, port=port)
            self.persistent = True
        else:
            self.client = QdrantClient(location=":memory:")
            self.persistent = False

        self.collection_name = collection_name
        self._dimension: Optional[int] = None
        self._lock = threading.RLock()

        with self._lock:
            self._load_dimension()

        logger.info(
            f"QdrantRecordIndex initialized (collection={collection_name}, "
            f"persistent={self.persistent})"
        )

    def _load_dimension(self):
        try:
            if self.client.collection_exists(self.collection_name):
                info = self.client.get_collection(self.collection_name)
                self._dimension = info.config.params.vectors.size
        except QDRANT_ERRORS as e:
            raise PersistenceError(f"Qdrant collection check failed: {e}") from e

    def _ensure_collection(self, dimension: int):
        if self._dimension is not None:
            return

        self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=VectorParams(size=dimension, distance=Distance.COSINE),
        )
        for field in ("owner_id", "status"):
            self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name=field,
                field_schema=PayloadSchemaType.KEYWORD,
            )
        self._dimension = dimension
        logger.info(f"Created Qdrant collection {self.collection_name} (dimension={dimension})")

    @staticmethod
    def _live_filter(owner_id: str, include_historical: bool = False) -> Filter:
        conditions = [
            FieldCondition(key="owner_id", match=MatchValue(value=owner_id)),
            FieldCondition(key="status", match=MatchValue(value="active")),
        ]
        if not include_historical:
            conditions.append(FieldCondition(key="is_historical", match=MatchValue(value=False)))
        return Filter(must=conditions)

    def upsert(self, records: List[MemoryRecord]):
        """Mirror records into the index; records without a usable embedding are removed."""
        points = []
        stale = []
        dimension = self._dimension
        for record in records:
            vector = usable_embedding(record.embedding)
            if vector is None:
                stale.append(record.id)
                continue
            dimension = dimension or len(vector)
            if len(vector) != dimension:
                logger.warning(
                    f"Skipping index for {record.id}: dimension {len(vector)} != {dimension}"
                )
                stale.append(record.id)
                continue
            points.append(
                PointStruct(
                    id=point_id(record.id),
                    vector=vector,
                    payload={
                        "record_id": record.id,
                        "owner_id": record.owner_id,
                        "status": record.status,
                        "is_historical": record.is_historical,
                    },
                )
            )

        try:
            with self._lock:
                if points:
                    self._ensure_collection(dimension)
                    self.client.upsert(collection_name=self.collection_name, points=points)
            if stale:
                self.delete(stale)
        except QDRANT_ERRORS as e:
            logger.error(f"Failed to index {len(points)} records: {e}")
            raise PersistenceError(f"Qdrant upsert failed: {e}") from e

        logger.debug(f"Indexed {len(points)} records, removed {len(stale)}")

    def delete(self, record_ids: List[str]):
        if not record_ids:
            return

        try:
            with self._lock:
                if self._dimension is None:
                    return
                self.client.delete(
                    collection_name=self.collection_name,
                    points_selector=PointIdsList(points=[point_id(rid) for rid in record_ids]),
                )
        except QDRANT_ERRORS as e:
            raise PersistenceError(f"Qdrant delete failed: {e}") from e

    def clear_owner(self, owner_id: str):
        """Remove every point belonging to an owner."""
        try:
            with self._lock:
                if self._dimension is None:
                    return
                self.client.delete(
                    collection_name=self.collection_name,
                    points_selector=FilterSelector(
                        filter=Filter(
                            must=[FieldCondition(key="owner_id", match=MatchValue(value=owner_id))]
                        )
                    ),
                )
        except QDRANT_ERRORS as e:
            raise PersistenceError(f"Qdrant delete failed: {e}") from e

        logger.info(f"Cleared index for owner_id={owner_id}")

    def search(
        self,
        owner_id: str,
        embedding: List[float],
        threshold: float,
        limit: int,
        include_historical: bool = False,
    ) -> List[Tuple[str, float]]:
        """
        Find the owner's live records closest to an embedding.

        Returns:
            (record_id, similarity) pairs, most similar first
        """
        with self._lock:
            if self._dimension is None or len(embedding) != self._dimension:
                return []
            try:
                response = self.client.query_points(
                    collection_name=self.collection_name,
                    query=list(embedding),
                    query_filter=self._live_filter(owner_id, include_historical),
                    limit=limit,
                    score_threshold=threshold,
                    with_payload=True,
                )
            except QDRANT_ERRORS as e:
                raise PersistenceError(f"Qdrant search failed: {e}") from e

        hits = [(point.payload["record_id"], point.score) for point in response.points]
        logger.debug(f"{len(hits)} index hits for owner_id={owner_id} (threshold={threshold})")
        return hits
