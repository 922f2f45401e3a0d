# docchat/memory/types.py

"""
Canonical retrieval structures.

Every chunk travelling through the pipeline carries the same fixed field
set, with the partition as an explicit discriminant.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from docchat.config import UNKNOWN_FILENAME


class Partition(str, Enum):
    SYSTEM = "system"
    USER = "user"


def chunk_id_for(document_id: str, index: int) -> str:
    return f"{document_id}_chunk_{index}"


@dataclass
class VectorRecord:
    """One chunk ready for upsert."""

    id: str
    vector: List[float]
    metadata: Dict[str, Any]


@dataclass
class VectorMatch:
    """One nearest-neighbour hit returned by a vector store."""

    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class KeywordMatch:
    document_id: str
    filename: str


@dataclass
class RetrievalCandidate:
    chunk_id: str
    score: float
    boosted_score: float
    is_keyword_match: bool
    document_id: Optional[str]
    filename: str
    chunk_index: int
    partition: Partition
    owner_id: Optional[str]
    text: str

    @classmethod
    def from_match(
        cls,
        match: VectorMatch,
        keyword_ids: set,
        boost: float,
        default_partition: Partition,
    ) -> "RetrievalCandidate":

        metadata = match.metadata or {}

        document_id = metadata.get("document_id") or None
        is_keyword_match = bool(document_id) and document_id in keyword_ids

        chunk_index = metadata.get("chunk_index")
        if not isinstance(chunk_index, int) or isinstance(chunk_index, bool):
            chunk_index = -1

        try:
            partition = Partition(metadata.get("source_type") or default_partition)
        except ValueError:
            partition = default_partition

        score = float(match.score)

        return cls(
            chunk_id=match.id,
            score=score,
            boosted_score=score * boost if is_keyword_match else score,
            is_keyword_match=is_keyword_match,
            document_id=document_id,
            filename=metadata.get("filename") or UNKNOWN_FILENAME,
            chunk_index=chunk_index,
            partition=partition,
            owner_id=metadata.get("user_id"),
            text=metadata.get("text") or "",
        )

    @property
    def dedup_key(self) -> Optional[str]:
        """Document id, or filename for legacy chunks without one."""

        if self.document_id:
            return self.document_id

        if self.filename and self.filename != UNKNOWN_FILENAME:
            return f"filename:{self.filename}"

        return None


@dataclass
class EvidenceItem(RetrievalCandidate):
    rank: int = 0

    @classmethod
    def from_candidate(cls, candidate: RetrievalCandidate, rank: int) -> "EvidenceItem":
        return cls(**asdict(candidate), rank=rank)

    def to_source(self) -> Dict[str, Any]:
        """Shape exposed to API clients and stored with chat messages."""

        return {
            "document_id": self.document_id,
            "type": self.partition.value,
            "filename": self.filename,
            "chunk_index": self.chunk_index,
            "score": self.boosted_score,
            "keyword_match": self.is_keyword_match,
            "rank": self.rank,
        }


@dataclass
class RetrievalResult:
    query: str
    partition: Partition
    candidates: List[RetrievalCandidate]
    keyword_ids: List[str]


@dataclass
class AssembledContext:
    evidence: List[EvidenceItem]
    context_text: str

    @property
    def has_evidence(self) -> bool:
        return bool(self.evidence)


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class CompletionResult:
    text: str
    model: str
    usage: Optional[Usage] = None
