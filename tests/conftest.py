# tests/conftest.py
import pytest
from fastapi.testclient import TestClient

from docchat.api.dependencies import build_services, get_services
from docchat.main import app
from docchat.memory.context import ContextAssembler
from docchat.memory.memory_store import InMemoryVectorStore
from docchat.memory.retriever import HybridRetriever
from docchat.memory.types import KeywordMatch, VectorMatch
from docchat.observability.metrics import metrics_tracker
from docchat.persistence.conversations import ConversationStore
from docchat.persistence.documents import DocumentRegistry
from docchat.persistence.users import UserStore
from docchat.workflow.document_qa import ChatOrchestrator

from fakes import (
    DIM,
    FakeCompletionClient,
    FakeEmbedder,
    FakeKeywordMatcher,
    ScriptedVectorStore,
)


# ============================================================
# BUILDING BLOCKS
# ============================================================

@pytest.fixture
def make_match():
    """
    Factory for vector matches carrying chunk metadata.
    """

    def _make(document_id, score, index=0, text=None, filename=None,
              source_type="system", user_id=None):

        metadata = {
            "document_id": document_id,
            "chunk_index": index,
            "text": f"text of {document_id} #{index}" if text is None else text,
            "filename": filename or f"{document_id}.pdf",
            "source_type": source_type,
        }

        if user_id is not None:
            metadata["user_id"] = user_id

        return VectorMatch(id=f"{document_id}_chunk_{index}", score=score, metadata=metadata)

    return _make


@pytest.fixture
def keyword_match():
    return lambda document_id, filename=None: KeywordMatch(document_id, filename or f"{document_id}.pdf")


@pytest.fixture
def users(tmp_path):
    store = UserStore(str(tmp_path / "users.json"))
    store.create("u1", "alice")
    store.create("u2", "bob")
    store.create("admin", "root", role="admin")
    return store


@pytest.fixture
def documents(tmp_path):
    return DocumentRegistry(str(tmp_path / "document_registry.json"))


@pytest.fixture
def conversations(tmp_path):
    return ConversationStore(str(tmp_path / "conversations.json"))


@pytest.fixture
def build_orchestrator(users, conversations):
    """
    Orchestrator over scripted gateways.

    Usage:
        orchestrator, llm = build_orchestrator(matches=[...], keywords=[...])
    """

    def _build(matches=None, keywords=None, llm=None, embedder=None,
               vector_store=None, conversation_store=None):

        llm = llm or FakeCompletionClient()

        retriever = HybridRetriever(
            embedder=embedder or FakeEmbedder(),
            vector_store=vector_store if vector_store is not None else ScriptedVectorStore(matches),
            keyword_matcher=FakeKeywordMatcher(keywords),
        )

        orchestrator = ChatOrchestrator(
            retriever=retriever,
            assembler=ContextAssembler(),
            completion_client=llm,
            users=users,
            conversations=conversation_store if conversation_store is not None else conversations,
        )

        return orchestrator, llm

    return _build


# ============================================================
# APPLICATION
# ============================================================

@pytest.fixture(autouse=True)
def isolated_metrics(tmp_path, monkeypatch):
    """
    Keep the process-wide metrics file out of the working tree.
    """
    monkeypatch.setattr(metrics_tracker, "_path", str(tmp_path / "metrics.json"))
    metrics_tracker.reset()
    yield


@pytest.fixture
def completion_client():
    return FakeCompletionClient()


@pytest.fixture
def services(tmp_path, completion_client):
    """
    Full service container on the FAISS store, fake model gateways and
    JSON stores rooted at tmp_path.
    """

    container = build_services(
        embedder=FakeEmbedder(),
        vector_store=InMemoryVectorStore(DIM),
        completion_client=completion_client,
        storage_dir=str(tmp_path / "storage"),
        upload_dir=str(tmp_path / "storage" / "uploads"),
        vector_backend="memory",
    )

    container.users.create("u1", "alice")
    container.users.create("u2", "bob")
    container.users.create("admin", "root", role="admin")

    return container


@pytest.fixture
def client(services):
    """
    FastAPI test client wired to the test service container.
    """

    app.dependency_overrides[get_services] = lambda: services

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def as_user():
    """Identity headers for a registered caller."""
    return lambda user_id="u1": {"X-User-Id": user_id}


@pytest.fixture
def upload(client, as_user):
    """
    Upload a text document and return the response body.
    """

    def _upload(filename="handbook.txt", content=b"Employees get 25 days of leave.",
                partition="user", user_id="u1"):
        response = client.post(
            "/documents/upload",
            files={"file": (filename, content, "text/plain")},
            data={"partition": partition},
            headers=as_user(user_id),
        )
        assert response.status_code == 201, f"Upload failed: {response.json()}"
        return response.json()

    return _upload
