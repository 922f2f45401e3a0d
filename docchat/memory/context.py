# docchat/memory/context.py

"""
Context assembly: dedup, keyword priority, budget.

Pass 1 guarantees a slot for every document the user named by filename
(its best chunk, if that chunk has text). Pass 2 fills the remaining
budget with the best chunk of each unseen document.
"""

import logging
from typing import Iterable, List

from docchat.config import CONTEXT_LIMIT, CONTEXT_SEPARATOR
from docchat.memory.types import (
    AssembledContext,
    EvidenceItem,
    Partition,
    RetrievalCandidate,
)

logger = logging.getLogger(__name__)


def no_context_message(query: str, partition: Partition) -> str:

    return (
        f"No relevant context found in {Partition(partition).value} documents "
        f'for the query "{query}".'
    )


class ContextAssembler:

    def __init__(self, limit: int = CONTEXT_LIMIT, separator: str = CONTEXT_SEPARATOR):

        if limit < 0:
            raise ValueError("Context limit must be non-negative")

        self._limit = limit
        self._separator = separator

    def select(
        self,
        candidates: List[RetrievalCandidate],
        keyword_ids: Iterable[str],
    ) -> List[RetrievalCandidate]:
        """
        Candidates must already be in boosted-score order.
        """

        keyword_ids = set(keyword_ids)

        selected: List[RetrievalCandidate] = []
        seen = set()

        # Pass 1: best chunk per keyword-matched document
        best_per_keyword_doc = {}

        for candidate in candidates:
            if candidate.document_id in keyword_ids:
                best_per_keyword_doc.setdefault(candidate.document_id, candidate)

        for document_id, candidate in best_per_keyword_doc.items():

            if len(selected) >= self._limit:
                break

            if not candidate.text:
                logger.warning(
                    "Keyword matched chunk has no text, skipping",
                    extra={"doc_id": document_id, "chunk_id": candidate.chunk_id},
                )
                continue

            selected.append(candidate)
            seen.add(document_id)

        keyword_selected = len(selected)

        # Pass 2: fill the remaining budget
        for candidate in candidates:

            if len(selected) >= self._limit:
                break

            key = candidate.dedup_key

            if key is None or key in seen:
                continue

            if not candidate.text:
                continue

            selected.append(candidate)
            seen.add(key)

        logger.info(
            "Context selection completed",
            extra={
                "candidates": len(candidates),
                "keyword_selected": keyword_selected,
                "selected": len(selected),
                "limit": self._limit,
            },
        )

        return selected

    def assemble(
        self,
        candidates: List[RetrievalCandidate],
        keyword_ids: Iterable[str],
        query: str,
        partition: Partition,
    ) -> AssembledContext:

        selected = self.select(candidates, keyword_ids)

        evidence = [
            EvidenceItem.from_candidate(candidate, rank=position)
            for position, candidate in enumerate(selected, 1)
        ]

        context_text = self._separator.join(item.text for item in evidence)

        if not context_text.strip():

            logger.info(
                "No relevant context found",
                extra={"partition": Partition(partition).value},
            )

            context_text = no_context_message(query, partition)

        return AssembledContext(evidence=evidence, context_text=context_text)
