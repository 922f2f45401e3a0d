# tests/test_ingestion.py
import os

import pytest

from docchat.errors import (
    EmbeddingError,
    IngestionError,
    InputValidationError,
    MetadataStoreError,
    NotFoundError,
    VectorStoreError,
)
from docchat.memory.chunker import chunk_text
from docchat.memory.loader import load_text, validate_upload
from docchat.memory.memory_store import InMemoryVectorStore
from docchat.memory.types import Partition
from docchat.workflow.ingestion import DocumentIngestionService

from fakes import DIM, FakeEmbedder, ScriptedVectorStore


def make_pdf(text: str) -> bytes:
    """
    Single-page PDF with one line of Helvetica text and a correct xref table.
    """

    stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Resources << /Font << /F1 5 0 R >> >> /Contents 4 0 R >>",
        b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n" + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []

    for number, body in enumerate(objects, 1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_offset = len(out)

    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()

    out += f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n".encode()
    out += f"startxref\n{xref_offset}\n%%EOF\n".encode()

    return bytes(out)


@pytest.fixture
def upload_dir(tmp_path):
    return str(tmp_path / "uploads")


@pytest.fixture
def vector_store():
    return InMemoryVectorStore(DIM)


@pytest.fixture
def ingestion(documents, vector_store, upload_dir):
    return DocumentIngestionService(documents, FakeEmbedder(), vector_store, upload_dir)


class TestChunker:
    """Fixed-size character windows with overlap."""

    def test_windows_overlap(self):
        text = "".join(chr(ord("a") + i % 26) for i in range(2500))

        chunks = chunk_text(text, size=1000, overlap=200)

        assert [len(c) for c in chunks] == [1000, 1000, 900]
        assert chunks[0][800:] == chunks[1][:200]
        assert chunks[2] == text[1600:]

    def test_short_text_single_chunk(self):
        assert chunk_text("short text") == ["short text"]

    def test_blank_text_no_chunks(self):
        assert chunk_text("   \n\t ") == []

    def test_whitespace_windows_skipped(self):
        text = "a" * 10 + " " * 30 + "b" * 10

        chunks = chunk_text(text, size=10, overlap=0)

        assert chunks == ["a" * 10, "b" * 10]

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            chunk_text("text", size=0)
        with pytest.raises(ValueError):
            chunk_text("text", size=10, overlap=10)


class TestLoader:
    """Upload validation and text extraction."""

    def test_pdf_text_extracted(self):
        text = load_text("report.pdf", make_pdf("Quarterly revenue grew"))

        assert "Quarterly revenue grew" in text

    def test_text_files_decoded(self):
        assert load_text("notes.md", "café menu".encode("utf-8")) == "café menu"

    def test_invalid_pdf_raises(self):
        with pytest.raises(IngestionError):
            load_text("broken.pdf", b"this is not a pdf")

    def test_unsupported_extension(self):
        with pytest.raises(InputValidationError):
            validate_upload("malware.exe", b"MZ")

    def test_empty_file(self):
        with pytest.raises(InputValidationError):
            validate_upload("empty.txt", b"")

    def test_oversized_file(self):
        with pytest.raises(InputValidationError):
            validate_upload("huge.txt", b"x" * (11 * 1024 * 1024))


class TestDocumentIngestion:
    """Upload → chunk → embed → upsert lifecycle."""

    def test_user_document_indexed(self, ingestion, documents, vector_store, upload_dir):
        content = ("Section one. " * 200).encode()

        record = ingestion.ingest("guide.txt", content, "text/plain", Partition.USER, owner_id="u1")

        assert record["status"] == "completed"
        assert record["chunk_count"] == len(chunk_text(content.decode()))
        assert vector_store.count() == record["chunk_count"]
        assert os.path.exists(os.path.join(upload_dir, record["storage_name"]))

        match = vector_store.query([0.5] * DIM, top_k=1, filter={"user_id": "u1"})[0]

        assert match.id == f"{record['id']}_chunk_{match.metadata['chunk_index']}"
        assert match.metadata["source_type"] == "user"
        assert match.metadata["filename"] == "guide.txt"
        assert match.metadata["document_id"] == record["id"]
        assert match.metadata["text"]

    def test_system_document_has_no_owner_metadata(self, ingestion, vector_store):
        ingestion.ingest("policy.pdf", make_pdf("Refunds within 30 days"), "application/pdf",
                         Partition.SYSTEM)

        match = vector_store.query([0.5] * DIM, top_k=1)[0]

        assert match.metadata["source_type"] == "system"
        assert "user_id" not in match.metadata
        assert "Refunds within 30 days" in match.metadata["text"]

    def test_storage_names_do_not_collide(self, ingestion):
        first = ingestion.ingest("same.txt", b"one", "text/plain", Partition.USER, owner_id="u1")
        second = ingestion.ingest("same.txt", b"two", "text/plain", Partition.USER, owner_id="u1")

        assert first["storage_name"] != second["storage_name"]

    def test_embedding_failure_marks_failed(self, documents, vector_store, upload_dir):
        service = DocumentIngestionService(
            documents, FakeEmbedder(error=EmbeddingError("quota")), vector_store, upload_dir
        )

        with pytest.raises(EmbeddingError):
            service.ingest("a.txt", b"content", "text/plain", Partition.USER, owner_id="u1")

        record = documents.list()[0]

        assert record["status"] == "failed"
        assert "quota" in record["error_message"]
        assert vector_store.count() == 0

    def test_blank_document_marks_failed(self, ingestion, documents):
        with pytest.raises(IngestionError):
            ingestion.ingest("blank.txt", b"     ", "text/plain", Partition.USER, owner_id="u1")

        assert documents.list()[0]["status"] == "failed"

    def test_invalid_upload_creates_no_record(self, ingestion, documents):
        with pytest.raises(InputValidationError):
            ingestion.ingest("x.exe", b"MZ", "application/octet-stream", Partition.USER, owner_id="u1")

        assert len(documents) == 0

    def test_failed_record_create_leaves_no_file(
        self, ingestion, documents, upload_dir, monkeypatch
    ):

        def _create(**kwargs):
            raise MetadataStoreError("disk full")

        monkeypatch.setattr(documents, "create", _create)

        with pytest.raises(MetadataStoreError):
            ingestion.ingest("a.txt", b"text", "text/plain", Partition.USER, owner_id="u1")

        assert os.listdir(upload_dir) == []

    def test_user_document_requires_owner(self, ingestion):
        with pytest.raises(InputValidationError):
            ingestion.ingest("a.txt", b"text", "text/plain", Partition.USER)

    def test_reindex_replaces_chunks(self, ingestion, vector_store):
        record = ingestion.ingest("a.txt", b"x" * 2500, "text/plain", Partition.USER, owner_id="u1")
        before = vector_store.count()

        reindexed = ingestion.reindex(record["id"], requester={"id": "u1", "role": "user"})

        assert reindexed["status"] == "completed"
        assert vector_store.count() == before

    def test_reindex_of_foreign_document_hidden(self, ingestion):
        record = ingestion.ingest("a.txt", b"text", "text/plain", Partition.USER, owner_id="u1")

        with pytest.raises(NotFoundError):
            ingestion.reindex(record["id"], requester={"id": "u2", "role": "user"})


class TestDocumentDeletion:
    """Metadata and file removal with background vector cleanup."""

    def test_owner_deletes_document(self, ingestion, documents, vector_store, upload_dir):
        record = ingestion.ingest("a.txt", b"text", "text/plain", Partition.USER, owner_id="u1")

        removed, task = ingestion.delete_document(record["id"], {"id": "u1", "role": "user"})
        task.result(timeout=5)

        assert removed["id"] == record["id"]
        assert documents.find_by_id(record["id"]) is None
        assert vector_store.count() == 0
        assert not os.path.exists(os.path.join(upload_dir, record["storage_name"]))

    def test_vector_failure_does_not_block_metadata_delete(self, documents, upload_dir):
        """The record is gone even when the vector store is unreachable."""
        store = ScriptedVectorStore(delete_error=VectorStoreError("unreachable"))
        service = DocumentIngestionService(documents, FakeEmbedder(), store, upload_dir)
        record = service.ingest("a.txt", b"text", "text/plain", Partition.USER, owner_id="u1")

        _, task = service.delete_document(record["id"], {"id": "u1", "role": "user"})

        assert isinstance(task.exception(timeout=5), VectorStoreError)
        assert documents.find_by_id(record["id"]) is None

    def test_other_users_cannot_delete(self, ingestion, documents):
        record = ingestion.ingest("a.txt", b"text", "text/plain", Partition.USER, owner_id="u1")

        with pytest.raises(NotFoundError):
            ingestion.delete_document(record["id"], {"id": "u2", "role": "user"})

        assert documents.find_by_id(record["id"]) is not None

    def test_system_documents_need_admin(self, ingestion):
        record = ingestion.ingest("p.txt", b"text", "text/plain", Partition.SYSTEM)

        with pytest.raises(NotFoundError):
            ingestion.delete_document(record["id"], {"id": "u1", "role": "user"})

        ingestion.delete_document(record["id"], {"id": "admin", "role": "admin"})

    def test_missing_file_ignored(self, ingestion, upload_dir):
        record = ingestion.ingest("a.txt", b"text", "text/plain", Partition.USER, owner_id="u1")
        os.remove(os.path.join(upload_dir, record["storage_name"]))

        removed, _ = ingestion.delete_document(record["id"], {"id": "u1", "role": "user"})

        assert removed["id"] == record["id"]

    def test_delete_all_user_documents(self, ingestion, documents, vector_store):
        for name in ("a.txt", "b.txt"):
            ingestion.ingest(name, b"text", "text/plain", Partition.USER, owner_id="u1")
        ingestion.ingest("c.txt", b"text", "text/plain", Partition.USER, owner_id="u2")
        ingestion.ingest("d.txt", b"text", "text/plain", Partition.SYSTEM)

        deleted, task = ingestion.delete_all_user_documents("u1")
        task.result(timeout=5)

        assert deleted == 2
        assert [r["filename"] for r in documents.find_by_filter(owner_id="u1")] == []
        assert vector_store.count() == 2
