"""
Configuration for the document chat backend.

This file centralizes all tunable parameters for the retrieval pipeline.
Every value can be overridden through an environment variable of the same
name, so deployments change behavior without code modifications.
"""

import os


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


# ========== HYBRID RETRIEVAL ==========

# Max documents returned by filename keyword search
KEYWORD_LIMIT = _env_int("KEYWORD_LIMIT", 5)

# Threads shared by all retrievers for the keyword lookup that runs
# beside query embedding (one lookup per in-flight chat request)
KEYWORD_WORKERS = _env_int("KEYWORD_WORKERS", 4)

# Nearest chunks requested from the vector store.
# Larger than CONTEXT_LIMIT to leave room for re-ranking.
SEMANTIC_TOP_K = _env_int("SEMANTIC_TOP_K", 15)

# Score multiplier for chunks whose document also matched by filename
KEYWORD_BOOST = _env_float("KEYWORD_BOOST", 1.5)

# Max evidence items placed in one prompt
CONTEXT_LIMIT = _env_int("CONTEXT_LIMIT", 7)

CONTEXT_SEPARATOR = "\n\n---\n\n"

# Display name given to chunks without filename metadata
UNKNOWN_FILENAME = "Unknown File"


# ========== DOCUMENT PROCESSING ==========

CHUNK_SIZE = _env_int("CHUNK_SIZE", 1000)  # characters per chunk
CHUNK_OVERLAP = _env_int("CHUNK_OVERLAP", 200)  # characters shared by neighbours

MAX_FILE_SIZE_MB = _env_int("MAX_FILE_SIZE_MB", 10)
ALLOWED_FILE_EXTENSIONS = [".pdf", ".txt", ".md"]

MAX_CHUNKS_PER_DOCUMENT = _env_int("MAX_CHUNKS_PER_DOCUMENT", 5000)

# Vectors per upsert network call
UPSERT_BATCH_SIZE = _env_int("UPSERT_BATCH_SIZE", 100)


# ========== EMBEDDING CONFIGURATION ==========

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

EMBEDDING_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

EMBED_BATCH_SIZE = _env_int("EMBED_BATCH_SIZE", 32)


# ========== VECTOR STORE ==========

# "qdrant" → hosted store, "memory" → FAISS store for local development
VECTOR_BACKEND = os.getenv("VECTOR_BACKEND", "qdrant")

QDRANT_URL = os.getenv("QDRANT_URL", "http://localhost:6333")
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY")
QDRANT_COLLECTION = os.getenv("QDRANT_COLLECTION", "docchat_chunks")
QDRANT_TIMEOUT_SECONDS = _env_float("QDRANT_TIMEOUT_SECONDS", 60.0)


# ========== LLM CONFIGURATION ==========

LLM_MODEL = os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini")
LLM_TEMPERATURE = _env_float("LLM_TEMPERATURE", 0.7)
LLM_MAX_TOKENS = _env_int("LLM_MAX_TOKENS", 1000)

# USD per token
MODEL_PRICING = {
    "gpt-4o-mini": {"input": 0.15 / 1_000_000, "output": 0.60 / 1_000_000},
    "gpt-4.1-mini": {"input": 0.40 / 1_000_000, "output": 1.60 / 1_000_000},
    "gpt-4.1-mini-2025-04-14": {"input": 0.40 / 1_000_000, "output": 1.60 / 1_000_000},
    "gpt-3.5-turbo": {"input": 0.50 / 1_000_000, "output": 1.50 / 1_000_000},
    "gpt-3.5-turbo-0125": {"input": 0.50 / 1_000_000, "output": 1.50 / 1_000_000},
}


# ========== GATEWAY RESILIENCE ==========

# Only transient failures (connection, timeout, 5xx) are retried
GATEWAY_MAX_ATTEMPTS = _env_int("GATEWAY_MAX_ATTEMPTS", 3)
GATEWAY_RETRY_MAX_WAIT = _env_float("GATEWAY_RETRY_MAX_WAIT", 8.0)


# ========== CHAT ==========

CHAT_TITLE_MAX_LENGTH = 40
DEFAULT_CHAT_TITLE = "Chat Session"


# ========== STORAGE & LOGGING ==========

STORAGE_DIR = os.getenv("STORAGE_DIR", "storage")
UPLOAD_DIR = os.path.join(STORAGE_DIR, "uploads")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. SEMANTIC_TOP_K = 15 vs CONTEXT_LIMIT = 7:
   - The vector store returns several chunks per document
   - Dedup by document shrinks the list, re-ranking needs spare candidates

2. KEYWORD_BOOST = 1.5:
   - A filename hit is strong evidence the user means that document
   - Multiplicative so that an irrelevant chunk of a named file still
     ranks below a highly similar chunk elsewhere

3. Substring filename match (not full-text relevance):
   - Predictable for partial names such as "invoice" or "acme"
   - Relevance scoring is a possible enhancement, not assumed
"""
