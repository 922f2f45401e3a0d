# tests/fakes.py
"""
In-process stand-ins for the embedding, vector store, keyword and
completion gateways.
"""

import numpy as np

from docchat.memory.store import VectorStore, matches_filter
from docchat.memory.types import CompletionResult, Usage

DIM = 4


class FakeEmbedder:
    """
    Deterministic embedder: every text maps to the same unit vector,
    so every stored chunk scores 1.0 against every query.
    """

    def __init__(self, error=None, empty=False):
        self.error = error
        self.empty = empty
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        if self.empty:
            return []
        return [0.5] * DIM

    def embed_batch(self, texts, batch_size=32):
        if self.error:
            raise self.error
        return np.full((len(texts), DIM), 0.5, dtype="float32")

    def get_dimension(self):
        return DIM


class ScriptedVectorStore(VectorStore):
    """
    Returns a fixed match list regardless of the filter, recording
    every call. Lets tests feed contradicting metadata to the retriever.
    """

    def __init__(self, matches=None, error=None, delete_error=None):
        self.matches = list(matches or [])
        self.error = error
        self.delete_error = delete_error
        self.queries = []
        self.upserted = []
        self.deleted_filters = []

    def query(self, vector, top_k, filter=None):
        self.queries.append({"vector": vector, "top_k": top_k, "filter": filter})
        if self.error:
            raise self.error
        return self.matches[:top_k]

    def count(self):
        return len(self.upserted)

    def _upsert_batch(self, batch):
        self.upserted.extend(batch)

    def _delete_ids(self, ids):
        if self.delete_error:
            raise self.delete_error

    def _delete_filter(self, filter):
        if self.delete_error:
            raise self.delete_error
        self.deleted_filters.append(filter)
        self.upserted = [r for r in self.upserted if not matches_filter(r.metadata, filter)]


class FakeKeywordMatcher:

    def __init__(self, matches=None):
        self.matches = list(matches or [])
        self.calls = []

    def find(self, query_lower, partition, owner_id=None):
        self.calls.append((query_lower, partition, owner_id))
        return list(self.matches)


class FakeCompletionClient:

    def __init__(self, text="Here is the answer.", usage=Usage(100, 50), error=None,
                 model="gpt-4o-mini"):
        self.text = text
        self.usage = usage
        self.error = error
        self.model = model
        self.calls = []

    def complete(self, system_prompt, history, user_turn):
        self.calls.append(
            {"system_prompt": system_prompt, "history": history, "user_turn": user_turn}
        )
        if self.error:
            raise self.error
        return CompletionResult(text=self.text, model=self.model, usage=self.usage)

