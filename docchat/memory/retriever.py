# docchat/memory/retriever.py

"""
Hybrid retrieval: filename keyword search + semantic vector search.

Flow:
query → lowercase ─┬─ keyword matcher ──────────────┐
                   └─ embedder → vector store top-K ─┴→ boost → stable sort

Keyword search runs beside embedding generation; both only need the query.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from docchat.config import KEYWORD_BOOST, KEYWORD_WORKERS, SEMANTIC_TOP_K
from docchat.errors import (
    EmbeddingError,
    InputValidationError,
    RetrievalError,
    VectorStoreError,
)
from docchat.memory.keyword import KeywordMatcher
from docchat.memory.types import Partition, RetrievalCandidate, RetrievalResult

logger = logging.getLogger(__name__)

_KEYWORD_EXECUTOR = ThreadPoolExecutor(max_workers=KEYWORD_WORKERS, thread_name_prefix="keyword")


def build_metadata_filter(partition: Partition, owner_id: Optional[str]) -> Dict[str, str]:

    partition = Partition(partition)

    if partition == Partition.USER:

        if not owner_id:
            raise InputValidationError("An owner id is required for user documents.")

        return {"source_type": partition.value, "user_id": str(owner_id)}

    return {"source_type": partition.value}


def rank_candidates(candidates: List[RetrievalCandidate]) -> List[RetrievalCandidate]:
    """
    Descending by boosted score. sorted() is stable, so ties keep the
    vector store's order.
    """

    return sorted(candidates, key=lambda c: c.boosted_score, reverse=True)


class HybridRetriever:

    def __init__(
        self,
        embedder,
        vector_store,
        keyword_matcher: KeywordMatcher,
        top_k: int = SEMANTIC_TOP_K,
        boost: float = KEYWORD_BOOST,
        executor: Optional[ThreadPoolExecutor] = None,
    ):

        if boost < 1:
            raise ValueError("Keyword boost must be >= 1")

        self._embedder = embedder
        self._store = vector_store
        self._keywords = keyword_matcher
        self._top_k = top_k
        self._boost = boost
        self._executor = executor or _KEYWORD_EXECUTOR

    def retrieve(
        self,
        query: str,
        partition: Partition,
        owner_id: Optional[str] = None,
    ) -> RetrievalResult:

        partition = Partition(partition)

        # Validate before any external call
        metadata_filter = build_metadata_filter(partition, owner_id)

        normalized = query.lower()

        keyword_future = self._executor.submit(
            self._keywords.find,
            normalized,
            partition,
            owner_id if partition == Partition.USER else None,
        )

        try:

            vector = self._embedder.embed(normalized)

        except EmbeddingError as e:

            keyword_future.cancel()

            logger.error(
                "Query embedding failed",
                extra={"error": str(e)},
                exc_info=True,
            )

            raise RetrievalError(f"Failed to generate query embedding: {e}") from e

        if not vector:
            keyword_future.cancel()
            raise RetrievalError("Failed to generate query embedding: empty vector")

        try:

            matches = self._store.query(vector, self._top_k, metadata_filter)

        except VectorStoreError as e:

            keyword_future.cancel()

            logger.error(
                "Semantic search failed",
                extra={"error": str(e), "filter": metadata_filter},
                exc_info=True,
            )

            raise RetrievalError(f"Semantic search failed: {e}") from e

        keyword_ids = [m.document_id for m in keyword_future.result()]
        keyword_set = set(keyword_ids)

        candidates = []

        for match in matches:

            candidate = RetrievalCandidate.from_match(
                match,
                keyword_set,
                self._boost,
                partition,
            )

            if not self._in_scope(candidate, partition, owner_id):
                continue

            candidates.append(candidate)

        ranked = rank_candidates(candidates)

        logger.info(
            "Hybrid retrieval completed",
            extra={
                "partition": partition.value,
                "semantic_matches": len(matches),
                "keyword_documents": len(keyword_ids),
                "candidates": len(ranked),
                "top_score": ranked[0].boosted_score if ranked else None,
                "top_keyword_match": ranked[0].is_keyword_match if ranked else None,
            },
        )

        return RetrievalResult(
            query=query,
            partition=partition,
            candidates=ranked,
            keyword_ids=keyword_ids,
        )

    @staticmethod
    def _in_scope(candidate, partition, owner_id) -> bool:
        """Drop matches whose metadata contradicts the requested scope."""

        if candidate.partition != partition:
            in_scope = False
        elif partition == Partition.USER:
            in_scope = candidate.owner_id == str(owner_id)
        else:
            in_scope = True

        if not in_scope:
            logger.warning(
                "Dropping out-of-scope vector match",
                extra={
                    "chunk_id": candidate.chunk_id,
                    "partition": candidate.partition.value,
                },
            )

        return in_scope
