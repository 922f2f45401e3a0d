# docchat/memory/chunker.py

import logging
from typing import List

from docchat.config import CHUNK_OVERLAP, CHUNK_SIZE, MAX_CHUNKS_PER_DOCUMENT

logger = logging.getLogger(__name__)


def chunk_text(
    text: str,
    size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> List[str]:
    """
    Fixed-size character windows with overlap.

    Guarantees:
    • deterministic chunk generation
    • no whitespace-only chunks
    • bounded chunk count
    """

    if size <= 0:
        raise ValueError(f"Invalid chunk size: {size}")

    if overlap < 0 or overlap >= size:
        raise ValueError(f"Invalid chunk overlap: {overlap}")

    if not text or not text.strip():
        logger.warning("Chunking skipped: empty text")
        return []

    step = size - overlap

    chunks = []

    for start in range(0, len(text), step):

        chunk = text[start:start + size]

        if chunk.strip():
            chunks.append(chunk)

        if start + size >= len(text):
            break

        if len(chunks) >= MAX_CHUNKS_PER_DOCUMENT:
            logger.warning(
                "Chunk limit reached, truncating document",
                extra={"max_chunks": MAX_CHUNKS_PER_DOCUMENT},
            )
            break

    logger.info(
        "Chunking completed",
        extra={
            "characters": len(text),
            "chunks": len(chunks),
            "chunk_size": size,
            "overlap": overlap,
        },
    )

    return chunks
