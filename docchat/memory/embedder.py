# docchat/memory/embedder.py

"""
Embedding gateway with batching.

Architecture contract:
chunker → embedder → vector_store
query   → embedder → hybrid retriever

Guarantees:
• Always numpy float32, L2-normalized (cosine-ready)
• Output order matches input order
• Malformed or empty results raise EmbeddingError
"""

import logging
from typing import List, Optional

import numpy as np
from openai import OpenAI, OpenAIError

from docchat.config import (
    EMBEDDING_MODEL,
    EMBEDDING_DIMENSIONS,
    EMBED_BATCH_SIZE,
    MAX_CHUNKS_PER_DOCUMENT,
)
from docchat.errors import EmbeddingError
from docchat.resilience import gateway_retry, is_transient_openai_error, openai_client

logger = logging.getLogger(__name__)


class Embedder:
    """
    OpenAI embedding client.

    Responsibilities:
    • Call the embedding API in bounded batches
    • Normalize vectors for cosine similarity
    • Translate every failure into EmbeddingError
    """

    def __init__(self, model: str = EMBEDDING_MODEL, client: Optional[OpenAI] = None):

        if model not in EMBEDDING_DIMENSIONS:
            raise ValueError(f"Unsupported embedding model: {model}")

        self._model = model
        self._dimension = EMBEDDING_DIMENSIONS[model]
        self._client = client or openai_client()

        logger.info(
            "Embedding model initialized",
            extra={"model": model, "dimension": self._dimension},
        )

    # ============================================================
    # PUBLIC API
    # ============================================================

    def embed(self, text: str) -> List[float]:
        """
        Embed a single text. Raises EmbeddingError on an empty vector.
        """

        vectors = self.embed_batch([text])

        if vectors.shape[0] != 1 or vectors.shape[1] == 0:
            raise EmbeddingError("Embedding gateway returned an empty vector")

        return vectors[0].tolist()

    def embed_batch(
        self,
        texts: List[str],
        batch_size: int = EMBED_BATCH_SIZE,
    ) -> np.ndarray:

        if not texts:

            logger.warning("Empty embedding request")

            return np.empty((0, self._dimension), dtype="float32")

        if len(texts) > MAX_CHUNKS_PER_DOCUMENT:
            raise EmbeddingError(
                f"Chunk count exceeds MAX_CHUNKS_PER_DOCUMENT "
                f"({MAX_CHUNKS_PER_DOCUMENT})"
            )

        total = len(texts)

        logger.info(
            "Embedding started",
            extra={"chunks": total, "batch_size": batch_size},
        )

        all_embeddings = []

        for start in range(0, total, batch_size):

            batch = texts[start:start + batch_size]

            try:
                response = self._create_with_retry(batch)
            except OpenAIError as e:

                logger.error(
                    "Embedding generation failed",
                    extra={"error": str(e), "batch_start": start},
                )

                raise EmbeddingError(f"Embedding generation failed: {e}") from e

            data = sorted(response.data or [], key=lambda item: item.index)

            if len(data) != len(batch):
                raise EmbeddingError(
                    f"Embedding count mismatch: expected {len(batch)}, got {len(data)}"
                )

            batch_embeddings = np.array(
                [item.embedding for item in data],
                dtype="float32",
            )

            if batch_embeddings.ndim != 2 or batch_embeddings.shape[1] == 0:
                raise EmbeddingError("Embedding gateway returned malformed vectors")

            all_embeddings.append(self._normalize(batch_embeddings))

        embeddings = np.vstack(all_embeddings)

        logger.info(
            "Embedding completed",
            extra={"chunks": total, "shape": list(embeddings.shape)},
        )

        return embeddings

    # ============================================================
    # INTERNALS
    # ============================================================

    @gateway_retry(is_transient_openai_error, "embeddings.create")
    def _create_with_retry(self, batch: List[str]):

        return self._client.embeddings.create(
            model=self._model,
            input=batch,
        )

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:

        norms = np.linalg.norm(vectors, axis=1, keepdims=True)

        return vectors / np.clip(norms, 1e-10, None)

    # ============================================================
    # ACCESSORS
    # ============================================================

    def get_dimension(self) -> int:
        return self._dimension
