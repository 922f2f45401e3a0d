# docchat/workflow/ingestion.py

"""
Document ingestion and removal.

ingest:
validate → record (processing) → extract → chunk → embed → upsert
→ record (completed | failed)

delete:
vector delete scheduled as a background task → metadata delete → file delete.
Metadata deletion never waits on the vector store; a failed vector delete
leaves orphaned vectors that re-indexing removes.
"""

import logging
import os
import uuid
from concurrent.futures import Future
from typing import Optional, Tuple

from docchat.config import UPLOAD_DIR
from docchat.errors import (
    IngestionError,
    InputValidationError,
    NotFoundError,
)
from docchat.memory.chunker import chunk_text
from docchat.memory.loader import file_extension, load_text, validate_upload
from docchat.memory.types import Partition, VectorRecord, chunk_id_for
from docchat.persistence.documents import DocumentStatus

logger = logging.getLogger(__name__)


class DocumentIngestionService:

    def __init__(self, registry, embedder, vector_store, upload_dir: str = UPLOAD_DIR):

        self._registry = registry
        self._embedder = embedder
        self._store = vector_store
        self._upload_dir = upload_dir

    # ============================================================
    # INGEST
    # ============================================================

    def ingest(
        self,
        filename: str,
        content: bytes,
        mime_type: str,
        partition: Partition,
        owner_id: Optional[str] = None,
    ) -> dict:

        partition = Partition(partition)

        validate_upload(filename, content)

        if partition == Partition.USER and not owner_id:
            raise InputValidationError("An owner id is required for user documents.")

        storage_name = f"{uuid.uuid4().hex}{file_extension(filename)}"

        self._write_file(storage_name, content)

        try:

            record = self._registry.create(
                filename=filename,
                storage_name=storage_name,
                size_bytes=len(content),
                mime_type=mime_type,
                partition=partition,
                owner_id=owner_id,
            )

        except Exception:
            # Unreferenced without a record
            self._remove_file(storage_name)
            raise

        return self._index(record, content)

    def reindex(self, document_id: str, requester: Optional[dict] = None) -> dict:
        """
        Replace every chunk of a document from its stored file.
        """

        record = self._registry.find_by_id(document_id)

        if record is None or (requester is not None and not self._can_manage(record, requester)):
            raise NotFoundError("Document not found or access denied.")

        path = os.path.join(self._upload_dir, record["storage_name"])

        try:
            with open(path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise NotFoundError("Document file not found on server.") from e

        # Old chunks go first; the new set is inserted as a unit
        self._store.delete(filter={"document_id": document_id})

        self._registry.update_status(document_id, DocumentStatus.PROCESSING, chunk_count=0)

        return self._index(record, content)

    def _index(self, record: dict, content: bytes) -> dict:

        document_id = record["id"]

        try:

            text = load_text(record["filename"], content)

            chunks = chunk_text(text)

            if not chunks:
                raise IngestionError("File chunking resulted in zero chunks.")

            embeddings = self._embedder.embed_batch(chunks)

            if len(embeddings) != len(chunks):
                raise IngestionError(
                    f"Embedding count ({len(embeddings)}) does not match "
                    f"chunk count ({len(chunks)})"
                )

            records = [
                VectorRecord(
                    id=chunk_id_for(document_id, index),
                    vector=[float(v) for v in vector],
                    metadata=self._chunk_metadata(record, index, chunk),
                )
                for index, (chunk, vector) in enumerate(zip(chunks, embeddings))
            ]

            self._store.upsert(records)

        except Exception as e:

            logger.error(
                "Document ingestion failed",
                extra={"doc_id": document_id, "error": str(e)},
                exc_info=True,
            )

            self._mark_failed(document_id, str(e))

            raise

        updated = self._registry.update_status(
            document_id,
            DocumentStatus.COMPLETED,
            chunk_count=len(chunks),
        )

        logger.info(
            "Document ingestion complete",
            extra={"doc_id": document_id, "chunks": len(chunks)},
        )

        return updated

    @staticmethod
    def _chunk_metadata(record: dict, index: int, text: str) -> dict:

        metadata = {
            "document_id": record["id"],
            "filename": record["filename"],
            "chunk_index": index,
            "text": text,
            "source_type": record["partition"],
        }

        if record["partition"] == Partition.USER.value:
            metadata["user_id"] = record["owner_id"]

        return metadata

    def _mark_failed(self, document_id: str, message: str):

        try:
            self._registry.update_status(
                document_id,
                DocumentStatus.FAILED,
                error_message=message,
            )
        except Exception as e:
            logger.error(
                "Could not mark document as failed",
                extra={"doc_id": document_id, "error": str(e)},
            )

    # ============================================================
    # DELETE
    # ============================================================

    def delete_document(self, document_id: str, requester: dict) -> Tuple[dict, Future]:

        record = self._registry.find_by_id(document_id)

        if record is None or not self._can_manage(record, requester):
            raise NotFoundError("Document not found or access denied.")

        vector_task = self._store.delete_async(filter={"document_id": document_id})

        self._registry.delete_by_id(document_id)
        self._remove_file(record.get("storage_name"))

        logger.info(
            "Document deleted",
            extra={"doc_id": document_id, "user_id": requester["id"]},
        )

        return record, vector_task

    def delete_all_user_documents(self, user_id: str) -> Tuple[int, Future]:

        removed = self._registry.delete_by_filter(
            owner_id=user_id,
            partition=Partition.USER.value,
        )

        vector_task = self._store.delete_async(
            filter={"user_id": user_id, "source_type": Partition.USER.value}
        )

        for record in removed:
            self._remove_file(record.get("storage_name"))

        logger.info(
            "All user documents deleted",
            extra={"user_id": user_id, "documents": len(removed)},
        )

        return len(removed), vector_task

    @staticmethod
    def _can_manage(record: dict, requester: dict) -> bool:

        if requester.get("role") == "admin":
            return True

        return (
            record["partition"] == Partition.USER.value
            and record.get("owner_id") == requester["id"]
        )

    # ============================================================
    # FILES
    # ============================================================

    def _write_file(self, storage_name: str, content: bytes):

        os.makedirs(self._upload_dir, exist_ok=True)

        with open(os.path.join(self._upload_dir, storage_name), "wb") as f:
            f.write(content)

    def _remove_file(self, storage_name: Optional[str]):

        if not storage_name:
            return

        try:
            os.remove(os.path.join(self._upload_dir, storage_name))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(
                "Stored file deletion failed",
                extra={"storage_name": storage_name, "error": str(e)},
            )
