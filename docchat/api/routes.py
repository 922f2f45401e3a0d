from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
import logging
import time
from typing import Optional

from docchat.api.dependencies import Services, get_current_user, get_services
from docchat.errors import DocChatError, NotFoundError, PermissionDeniedError
from docchat.memory.types import Partition
from docchat.observability.metrics import metrics_tracker
from docchat.observability.posthog_client import posthog_client

from docchat.models import (
    ChatRequest,
    ChatResponse,
    ConversationDetail,
    ConversationListResponse,
    ConversationSummary,
    DeleteAllResponse,
    DeleteDocumentResponse,
    DocumentInfo,
    HealthResponse,
    ListDocumentsResponse,
    SearchResponse,
    SourceItem,
    TokenUsage,
    UsageResponse,
    UserCreateRequest,
    UserResponse,
    partition_for_mode,
)


# ============================================================
# LOGGER
# ============================================================

logger = logging.getLogger(__name__)

router = APIRouter()


def _track_failure(user: dict, error: Exception, endpoint: str):

    posthog_client.track_error(
        distinct_id=user["id"],
        error_type=type(error).__name__,
        error_message=str(error),
        endpoint=endpoint,
    )


def _document_list(records) -> ListDocumentsResponse:

    documents = [DocumentInfo.from_record(r) for r in records]

    return ListDocumentsResponse(
        documents=documents,
        total_documents=len(documents),
        total_chunks=sum(d.chunks_count for d in documents),
    )


# ============================================================
# HEALTH
# ============================================================

@router.get("/health", response_model=HealthResponse)
def health_check(services: Services = Depends(get_services)):

    return HealthResponse(
        status="healthy",
        total_documents=len(services.documents),
        total_vectors=services.vector_store.count(),
        vector_backend=services.vector_backend,
    )


# ============================================================
# USERS
# ============================================================

@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(payload: UserCreateRequest, services: Services = Depends(get_services)):

    try:
        user = services.users.create(payload.user_id, payload.username, payload.role)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return UserResponse(id=user["id"], username=user["username"], role=user["role"])


@router.get("/users/me/usage", response_model=UsageResponse)
def get_usage(
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    usage = services.users.get_usage(user["id"]) or {}

    return UsageResponse(**usage)


# ============================================================
# CHAT
# ============================================================

@router.post("/chat", response_model=ChatResponse)
def chat(
    payload: ChatRequest,
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    start_time = time.time()

    partition = partition_for_mode(payload.search_mode)

    try:

        result = services.orchestrator.answer_query(
            user_id=user["id"],
            query=payload.query,
            history=[turn.model_dump() for turn in payload.history],
            partition=partition,
            conversation_id=payload.chat_id,
        )

    except DocChatError as e:

        _track_failure(user, e, "/chat")

        raise

    latency = time.time() - start_time

    keyword_sources = sum(1 for item in result.sources if item.is_keyword_match)
    usage = result.usage

    metrics_tracker.record_chat_answer(
        evidence=len(result.sources),
        keyword_evidence=keyword_sources,
        prompt_tokens=usage.prompt_tokens if usage else 0,
        completion_tokens=usage.completion_tokens if usage else 0,
        cost=result.cost,
    )

    posthog_client.track_chat_answer(
        distinct_id=user["id"],
        partition=partition.value,
        sources=len(result.sources),
        keyword_sources=keyword_sources,
        total_tokens=usage.total_tokens if usage else None,
        cost=result.cost,
        latency=latency,
        persisted=result.persistence_warning is None,
    )

    return ChatResponse(
        answer=result.answer,
        sources=[SourceItem(**item.to_source()) for item in result.sources],
        usage=TokenUsage(
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
        ) if usage else None,
        cost=result.cost,
        chat_id=result.conversation_id,
        warning=result.persistence_warning,
    )


@router.get("/chat/chats", response_model=ConversationListResponse)
def list_chats(
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    chats = [ConversationSummary(**c) for c in services.conversations.list_for_user(user["id"])]

    return ConversationListResponse(chats=chats, total=len(chats))


@router.get("/chat/chats/{chat_id}", response_model=ConversationDetail)
def get_chat(
    chat_id: str,
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    conversation = services.conversations.find_owned(chat_id, user["id"])

    if conversation is None:
        raise NotFoundError("Chat not found.")

    return ConversationDetail(**conversation)


@router.delete("/chat/chats/{chat_id}")
def delete_chat(
    chat_id: str,
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    if not services.conversations.delete(chat_id, user["id"]):
        raise NotFoundError("Chat not found.")

    return {"message": "Chat deleted", "chat_id": chat_id}


@router.delete("/chat/all", response_model=DeleteAllResponse)
def delete_all_chats(
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    deleted = services.conversations.delete_all_for_user(user["id"])

    return DeleteAllResponse(deleted=deleted, message=f"Deleted {deleted} chats")


# ============================================================
# DOCUMENTS
# ============================================================

@router.post("/documents/upload", response_model=DocumentInfo, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    partition: Partition = Form(Partition.USER),
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    if partition == Partition.SYSTEM and user["role"] != "admin":
        raise PermissionDeniedError("Only admins can upload system documents.")

    start_time = time.time()

    content = await file.read()

    try:

        record = services.ingestion.ingest(
            filename=file.filename,
            content=content,
            mime_type=file.content_type or "application/octet-stream",
            partition=partition,
            owner_id=user["id"] if partition == Partition.USER else None,
        )

    except DocChatError as e:

        metrics_tracker.record_ingestion(success=False)

        _track_failure(user, e, "/documents/upload")

        raise

    metrics_tracker.record_ingestion(success=True)

    posthog_client.track_document_upload(
        distinct_id=user["id"],
        document_id=record["id"],
        partition=partition.value,
        chunks=record["chunk_count"],
        latency=time.time() - start_time,
    )

    return DocumentInfo.from_record(record)


@router.get("/documents", response_model=ListDocumentsResponse)
def list_documents(
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    return _document_list(
        services.documents.find_by_filter(
            owner_id=user["id"],
            partition=Partition.USER.value,
        )
    )


@router.get("/documents/system", response_model=ListDocumentsResponse)
def list_system_documents(
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    return _document_list(
        services.documents.find_by_filter(partition=Partition.SYSTEM.value)
    )


@router.delete("/documents/user/all", response_model=DeleteAllResponse)
def delete_all_user_documents(
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    deleted, _ = services.ingestion.delete_all_user_documents(user["id"])

    return DeleteAllResponse(deleted=deleted, message=f"Deleted {deleted} documents")


@router.delete("/documents/{document_id}", response_model=DeleteDocumentResponse)
def delete_document(
    document_id: str,
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    services.ingestion.delete_document(document_id, requester=user)

    posthog_client.track_document_deleted(distinct_id=user["id"], document_id=document_id)

    return DeleteDocumentResponse(
        document_id=document_id,
        message="Deleted",
        success=True,
    )


@router.post("/documents/{document_id}/reindex", response_model=DocumentInfo)
def reindex_document(
    document_id: str,
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    record = services.ingestion.reindex(document_id, requester=user)

    return DocumentInfo.from_record(record)


# ============================================================
# SEARCH
# ============================================================

@router.get("/search", response_model=SearchResponse)
def search(
    q: str = Query(..., max_length=4000),
    mode: Optional[str] = Query(None),
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    partition = partition_for_mode(mode)

    assembled = services.orchestrator.retrieve_context(
        q,
        partition,
        owner_id=user["id"] if partition == Partition.USER else None,
    )

    posthog_client.track_context_search(
        distinct_id=user["id"],
        partition=partition.value,
        evidence=len(assembled.evidence),
        top_score=assembled.evidence[0].boosted_score if assembled.evidence else None,
    )

    return SearchResponse(
        query=q,
        partition=partition.value,
        context=assembled.context_text,
        sources=[SourceItem(**item.to_source()) for item in assembled.evidence],
    )


@router.get("/search/filename", response_model=ListDocumentsResponse)
def search_filenames(
    q: str = Query(..., min_length=1),
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    needle = q.lower()

    return _document_list(
        record
        for record in services.documents.find_by_filter(owner_id=user["id"])
        if needle in record["filename"].lower()
    )


# ============================================================
# METRICS ENDPOINT
# ============================================================

@router.get("/metrics")
def get_metrics():

    return metrics_tracker.get_metrics()
