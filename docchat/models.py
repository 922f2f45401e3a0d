# docchat/models.py
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from docchat.memory.types import Partition


def partition_for_mode(search_mode: Optional[str]) -> Partition:
    """Map the client's search mode onto a partition."""
    return Partition.USER if search_mode == "user-docs" else Partition.SYSTEM


# ============================================================
# USERS
# ============================================================

class UserCreateRequest(BaseModel):
    """Register a caller resolved by the upstream identity provider."""
    user_id: str = Field(..., min_length=1, max_length=100)
    username: str = Field(..., min_length=1, max_length=100)
    role: str = "user"

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in ("user", "admin"):
            raise ValueError("Role must be 'user' or 'admin'")
        return v


class UserResponse(BaseModel):
    id: str
    username: str
    role: str


class UsageResponse(BaseModel):
    """Usage accumulated in the current billing month."""
    usage_month_marker: Optional[str] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0


# ============================================================
# CHAT
# ============================================================

class HistoryTurn(BaseModel):
    role: str
    content: Optional[str] = None


class ChatRequest(BaseModel):
    """A question asked against the system or the caller's documents."""
    query: str = Field(..., max_length=4000)
    history: List[HistoryTurn] = Field(default_factory=list)
    search_mode: Optional[str] = None
    chat_id: Optional[str] = None

    @field_validator("chat_id")
    @classmethod
    def validate_chat_id(cls, v):
        """Treat an empty chat id as a new conversation."""
        if v is not None and not v.strip():
            return None
        return v


class SourceItem(BaseModel):
    document_id: Optional[str] = None
    type: str
    filename: str
    chunk_index: int
    score: float
    keyword_match: bool
    rank: int


class TokenUsage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatResponse(BaseModel):
    answer: str
    sources: List[SourceItem]
    usage: Optional[TokenUsage] = None
    cost: float = 0.0
    chat_id: Optional[str] = None
    warning: Optional[str] = None


class SearchResponse(BaseModel):
    query: str
    partition: str
    context: str
    sources: List[SourceItem]


# ============================================================
# CONVERSATIONS
# ============================================================

class ConversationSummary(BaseModel):
    id: str
    title: str
    created_at: str
    updated_at: str
    message_count: int


class ConversationListResponse(BaseModel):
    chats: List[ConversationSummary]
    total: int


class ConversationMessage(BaseModel):
    role: str
    content: str
    sources: list = Field(default_factory=list)
    timestamp: Optional[str] = None


class ConversationDetail(BaseModel):
    id: str
    title: str
    created_at: str
    updated_at: str
    messages: List[ConversationMessage]


# ============================================================
# DOCUMENTS
# ============================================================

class DocumentInfo(BaseModel):
    """Information about a stored document."""
    document_id: str
    filename: str
    partition: str
    status: str
    chunks_count: int
    size_bytes: int
    error_message: Optional[str] = None
    upload_timestamp: Optional[str] = None

    @classmethod
    def from_record(cls, record: dict) -> "DocumentInfo":
        return cls(
            document_id=record["id"],
            filename=record["filename"],
            partition=record["partition"],
            status=record["status"],
            chunks_count=record.get("chunk_count") or 0,
            size_bytes=record.get("size_bytes") or 0,
            error_message=record.get("error_message"),
            upload_timestamp=record.get("upload_timestamp"),
        )


class ListDocumentsResponse(BaseModel):
    """Response listing documents visible to the caller."""
    documents: List[DocumentInfo]
    total_documents: int
    total_chunks: int


class DeleteDocumentResponse(BaseModel):
    """Response after deleting a document."""
    document_id: str
    message: str
    success: bool


class DeleteAllResponse(BaseModel):
    deleted: int
    message: str


# ============================================================
# HEALTH
# ============================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    total_documents: int
    total_vectors: int
    vector_backend: str
