# docchat/memory/memory_store.py

"""
In-process FAISS vector store for local development and tests.

Same gateway contract as QdrantVectorStore. One instance per process or
test; nothing is module-global. Call clear() to reset.
"""

import logging
import threading
from typing import Dict, List

import faiss
import numpy as np

from docchat.errors import VectorStoreError
from docchat.memory.store import VectorStore, matches_filter
from docchat.memory.types import VectorMatch

logger = logging.getLogger(__name__)


class InMemoryVectorStore(VectorStore):

    def __init__(self, dim: int):

        if dim <= 0:
            raise ValueError("Embedding dimension must be positive")

        self._dim = dim
        self._lock = threading.Lock()
        self._index = faiss.IndexFlatIP(dim)
        self._ids: List[str] = []
        self._metadata: List[Dict] = []

        logger.info("In-memory vector store created", extra={"dimension": dim})

    # ============================================================
    # QUERY
    # ============================================================

    def query(self, vector, top_k, filter=None):

        if top_k <= 0:
            return []

        query = self._prepare(np.array([vector], dtype="float32"))

        with self._lock:

            total = self._index.ntotal

            if total == 0:
                return []

            # Score everything, then filter; flat index has no payload filter
            scores, positions = self._index.search(query, total)

            matches = []

            for score, position in zip(scores[0], positions[0]):

                if position < 0:
                    continue

                metadata = self._metadata[position]

                if not matches_filter(metadata, filter):
                    continue

                matches.append(
                    VectorMatch(
                        id=self._ids[position],
                        score=float(np.clip(score, -1.0, 1.0)),
                        metadata=dict(metadata),
                    )
                )

                if len(matches) >= top_k:
                    break

        return matches

    def count(self) -> int:
        return self._index.ntotal

    def clear(self):

        with self._lock:

            self._index = faiss.IndexFlatIP(self._dim)
            self._ids = []
            self._metadata = []

        logger.info("In-memory vector store cleared")

    # ============================================================
    # BACKEND HOOKS
    # ============================================================

    def _upsert_batch(self, batch):

        vectors = self._prepare(
            np.array([record.vector for record in batch], dtype="float32")
        )

        with self._lock:

            incoming = {record.id for record in batch}

            self._rebuild_without(lambda i: self._ids[i] in incoming)

            self._index.add(vectors)

            for record in batch:
                self._ids.append(record.id)
                self._metadata.append(dict(record.metadata))

    def _delete_ids(self, ids):

        doomed = set(ids)

        with self._lock:
            self._rebuild_without(lambda i: self._ids[i] in doomed)

    def _delete_filter(self, filter):

        with self._lock:
            self._rebuild_without(lambda i: matches_filter(self._metadata[i], filter))

    # ============================================================
    # INTERNALS
    # ============================================================

    def _prepare(self, vectors: np.ndarray) -> np.ndarray:

        if vectors.ndim != 2 or vectors.shape[1] != self._dim:
            raise VectorStoreError(
                f"Vector dimension mismatch: expected {self._dim}, got {vectors.shape[-1]}"
            )

        norms = np.linalg.norm(vectors, axis=1, keepdims=True)

        return np.ascontiguousarray(vectors / np.clip(norms, 1e-10, None))

    def _rebuild_without(self, should_drop):
        """Rebuild the flat index keeping rows where should_drop is false."""

        keep = [i for i in range(len(self._ids)) if not should_drop(i)]

        if len(keep) == len(self._ids):
            return

        new_index = faiss.IndexFlatIP(self._dim)

        if keep:
            vectors = np.vstack([self._index.reconstruct(i) for i in keep])
            new_index.add(vectors)

        self._index = new_index
        self._ids = [self._ids[i] for i in keep]
        self._metadata = [self._metadata[i] for i in keep]
