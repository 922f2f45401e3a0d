# docchat/memory/store.py

"""
Vector store gateway.

Interface:
• upsert(records)                     → batched, sequential, no rollback
• query(vector, top_k, filter)        → List[VectorMatch], best first
• delete(ids=..., filter=...)         → blocking delete
• delete_async(ids=..., filter=...)   → Future the caller may await or ignore

Filters are flat equality dicts, e.g. {"source_type": "user", "user_id": "u1"}.
Every backend failure surfaces as VectorStoreError.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List, Optional

from qdrant_client.http.models import (
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PointIdsList,
    PointStruct,
)

from docchat.config import UPSERT_BATCH_SIZE
from docchat.errors import VectorStoreError
from docchat.memory.qdrant_client import QdrantVectorDB
from docchat.memory.types import VectorMatch, VectorRecord
from docchat.resilience import gateway_retry, is_transient_qdrant_error

logger = logging.getLogger(__name__)

# Background deletions are rare and short
_DELETE_EXECUTOR = ThreadPoolExecutor(max_workers=2, thread_name_prefix="vector-delete")


class VectorStore(ABC):

    batch_size = UPSERT_BATCH_SIZE

    # ============================================================
    # UPSERT
    # ============================================================

    def upsert(self, records: List[VectorRecord]) -> int:
        """
        Upsert in batches, one network call per batch.

        A failure mid-stream leaves earlier batches committed.
        Returns the number of records written.
        """

        written = 0

        for start in range(0, len(records), self.batch_size):

            batch = records[start:start + self.batch_size]

            logger.info(
                "Upserting vector batch",
                extra={
                    "batch_number": start // self.batch_size + 1,
                    "batch_size": len(batch),
                },
            )

            self._upsert_batch(batch)

            written += len(batch)

        logger.info("Vector upsert complete", extra={"vectors": written})

        return written

    # ============================================================
    # DELETE
    # ============================================================

    def delete(
        self,
        ids: Optional[List[str]] = None,
        filter: Optional[Dict[str, str]] = None,
    ) -> None:

        if not ids and not filter:
            raise ValueError("delete requires ids or a filter")

        if ids:
            self._delete_ids(ids)
        else:
            self._delete_filter(filter)

    def delete_async(
        self,
        ids: Optional[List[str]] = None,
        filter: Optional[Dict[str, str]] = None,
    ) -> "Future[None]":
        """
        Schedule a delete. The returned future logs its own outcome, so
        callers may await it or drop it.
        """

        future = _DELETE_EXECUTOR.submit(self.delete, ids=ids, filter=filter)

        def _report(done: Future):

            error = done.exception()

            if error is None:
                logger.info(
                    "Vector deletion finished",
                    extra={"ids": len(ids or []), "filter": filter},
                )
            else:
                logger.warning(
                    "Vector deletion failed, orphaned vectors remain",
                    extra={"filter": filter, "error": str(error)},
                )

        future.add_done_callback(_report)

        return future

    # ============================================================
    # BACKEND HOOKS
    # ============================================================

    @abstractmethod
    def query(
        self,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, str]] = None,
    ) -> List[VectorMatch]:
        ...

    @abstractmethod
    def count(self) -> int:
        ...

    @abstractmethod
    def _upsert_batch(self, batch: List[VectorRecord]) -> None:
        ...

    @abstractmethod
    def _delete_ids(self, ids: List[str]) -> None:
        ...

    @abstractmethod
    def _delete_filter(self, filter: Dict[str, str]) -> None:
        ...


def matches_filter(metadata: Dict, filter: Optional[Dict[str, str]]) -> bool:

    if not filter:
        return True

    return all(metadata.get(key) == value for key, value in filter.items())


# ============================================================
# QDRANT BACKEND
# ============================================================

def point_id_for(chunk_id: str) -> str:
    """Qdrant accepts only UUIDs or ints as point ids."""

    return str(uuid.uuid5(uuid.NAMESPACE_URL, chunk_id))


def to_qdrant_filter(filter: Optional[Dict[str, str]]) -> Optional[Filter]:

    if not filter:
        return None

    return Filter(
        must=[
            FieldCondition(key=key, match=MatchValue(value=value))
            for key, value in filter.items()
        ]
    )


class QdrantVectorStore(VectorStore):

    def __init__(self, db: QdrantVectorDB):

        self._db = db

    @property
    def _client(self):
        return self._db.client

    @property
    def _collection(self):
        return self._db.collection

    def query(self, vector, top_k, filter=None):

        try:

            response = self._query_with_retry(vector, top_k, filter)

        except Exception as e:

            logger.error(
                "Qdrant query failed",
                extra={"error": str(e), "filter": filter},
            )

            raise VectorStoreError(f"Vector query failed: {e}") from e

        matches = []

        for point in response.points:

            payload = dict(point.payload or {})

            matches.append(
                VectorMatch(
                    id=payload.pop("chunk_id", None) or str(point.id),
                    score=float(point.score),
                    metadata=payload,
                )
            )

        logger.info(
            "Qdrant query completed",
            extra={"matches": len(matches), "top_k": top_k},
        )

        return matches

    def count(self) -> int:

        try:
            return self._client.count(collection_name=self._collection).count
        except Exception as e:
            raise VectorStoreError(f"Vector count failed: {e}") from e

    @gateway_retry(is_transient_qdrant_error, "qdrant.query_points")
    def _query_with_retry(self, vector, top_k, filter):

        return self._client.query_points(
            collection_name=self._collection,
            query=list(vector),
            limit=top_k,
            query_filter=to_qdrant_filter(filter),
            with_payload=True,
        )

    def _upsert_batch(self, batch):

        points = [
            PointStruct(
                id=point_id_for(record.id),
                vector=list(record.vector),
                payload={**record.metadata, "chunk_id": record.id},
            )
            for record in batch
        ]

        try:
            self._upsert_with_retry(points)
        except Exception as e:
            raise VectorStoreError(f"Vector upsert failed: {e}") from e

    @gateway_retry(is_transient_qdrant_error, "qdrant.upsert")
    def _upsert_with_retry(self, points):

        self._client.upsert(collection_name=self._collection, points=points)

    def _delete_ids(self, ids):

        selector = PointIdsList(points=[point_id_for(chunk_id) for chunk_id in ids])

        try:
            self._delete_with_retry(selector)
        except Exception as e:
            raise VectorStoreError(f"Vector delete by id failed: {e}") from e

    def _delete_filter(self, filter):

        selector = FilterSelector(filter=to_qdrant_filter(filter))

        try:
            self._delete_with_retry(selector)
        except Exception as e:
            raise VectorStoreError(f"Vector delete by filter failed: {e}") from e

    @gateway_retry(is_transient_qdrant_error, "qdrant.delete")
    def _delete_with_retry(self, selector):

        self._client.delete(
            collection_name=self._collection,
            points_selector=selector,
        )


# ============================================================
# FACTORY
# ============================================================

def create_vector_store(backend: str, dim: int) -> VectorStore:

    if backend == "qdrant":
        return QdrantVectorStore(QdrantVectorDB(dim))

    if backend == "memory":

        from docchat.memory.memory_store import InMemoryVectorStore

        return InMemoryVectorStore(dim)

    raise ValueError(f"Unknown vector backend: {backend}")
