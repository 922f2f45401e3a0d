# docchat/api/dependencies.py

"""
Service wiring for the HTTP layer.

Every collaborator is built once per process and handed to the routes
through FastAPI dependencies, so tests swap the whole container with
app.dependency_overrides.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from docchat.config import (
    CONTEXT_LIMIT,
    CONTEXT_SEPARATOR,
    KEYWORD_BOOST,
    KEYWORD_LIMIT,
    SEMANTIC_TOP_K,
    STORAGE_DIR,
    UPLOAD_DIR,
    VECTOR_BACKEND,
)
from docchat.errors import UserNotFoundError
from docchat.llm.client import CompletionClient
from docchat.memory.context import ContextAssembler
from docchat.memory.embedder import Embedder
from docchat.memory.keyword import KeywordMatcher
from docchat.memory.retriever import HybridRetriever
from docchat.memory.store import VectorStore, create_vector_store
from docchat.persistence.conversations import ConversationStore
from docchat.persistence.documents import DocumentRegistry
from docchat.persistence.users import UserStore
from docchat.workflow.document_qa import ChatOrchestrator
from docchat.workflow.ingestion import DocumentIngestionService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    users: UserStore
    documents: DocumentRegistry
    conversations: ConversationStore
    vector_store: VectorStore
    orchestrator: ChatOrchestrator
    ingestion: DocumentIngestionService
    vector_backend: str = VECTOR_BACKEND


def build_services(
    embedder,
    vector_store: VectorStore,
    completion_client,
    storage_dir: str = STORAGE_DIR,
    upload_dir: str = UPLOAD_DIR,
    vector_backend: str = VECTOR_BACKEND,
) -> Services:

    users = UserStore(os.path.join(storage_dir, "users.json"))
    documents = DocumentRegistry(os.path.join(storage_dir, "document_registry.json"))
    conversations = ConversationStore(os.path.join(storage_dir, "conversations.json"))

    retriever = HybridRetriever(
        embedder=embedder,
        vector_store=vector_store,
        keyword_matcher=KeywordMatcher(documents, limit=KEYWORD_LIMIT),
        top_k=SEMANTIC_TOP_K,
        boost=KEYWORD_BOOST,
    )

    orchestrator = ChatOrchestrator(
        retriever=retriever,
        assembler=ContextAssembler(limit=CONTEXT_LIMIT, separator=CONTEXT_SEPARATOR),
        completion_client=completion_client,
        users=users,
        conversations=conversations,
    )

    ingestion = DocumentIngestionService(
        registry=documents,
        embedder=embedder,
        vector_store=vector_store,
        upload_dir=upload_dir,
    )

    return Services(
        users=users,
        documents=documents,
        conversations=conversations,
        vector_store=vector_store,
        orchestrator=orchestrator,
        ingestion=ingestion,
        vector_backend=vector_backend,
    )


@lru_cache(maxsize=1)
def get_services() -> Services:

    embedder = Embedder()

    vector_store = create_vector_store(VECTOR_BACKEND, dim=embedder.get_dimension())

    services = build_services(
        embedder=embedder,
        vector_store=vector_store,
        completion_client=CompletionClient(),
    )

    logger.info(
        "Services initialized",
        extra={
            "vector_backend": VECTOR_BACKEND,
            "documents": len(services.documents),
            "users": len(services.users),
        },
    )

    return services


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> dict:
    """Resolve the caller from the identity header set upstream."""

    user = services.users.find_by_id(x_user_id) if x_user_id else None

    if user is None:
        raise UserNotFoundError(f"User {x_user_id!r} could not be resolved")

    return user
