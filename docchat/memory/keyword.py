# docchat/memory/keyword.py

import logging
from typing import List, Optional

from docchat.config import KEYWORD_LIMIT
from docchat.memory.types import KeywordMatch, Partition

logger = logging.getLogger(__name__)


class KeywordMatcher:
    """
    Filename keyword search over the document registry.

    Strictly an enhancement: any store failure is logged and treated
    as zero matches.
    """

    def __init__(self, registry, limit: int = KEYWORD_LIMIT):

        self._registry = registry
        self._limit = limit

    def find(
        self,
        query_lower: str,
        partition: Partition,
        owner_id: Optional[str] = None,
    ) -> List[KeywordMatch]:

        if not query_lower:
            return []

        try:

            matches = self._registry.keyword_find(
                query_lower,
                partition,
                owner_id=owner_id,
                limit=self._limit,
            )

        except Exception as e:

            logger.warning(
                "Keyword search failed, continuing with semantic search only",
                extra={"error": str(e), "partition": Partition(partition).value},
            )

            return []

        matches = matches[:self._limit]

        logger.info(
            "Keyword search completed",
            extra={
                "matches": len(matches),
                "filenames": [m.filename for m in matches],
            },
        )

        return matches
