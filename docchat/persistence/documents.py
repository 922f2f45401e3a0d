# docchat/persistence/documents.py

"""
Document metadata registry.

Record lifecycle:
processing → completed (all chunks embedded and stored)
processing → failed    (error_message set)
"""

import logging
import uuid
from enum import Enum
from typing import List, Optional

from docchat.errors import MetadataStoreError
from docchat.memory.types import KeywordMatch, Partition
from docchat.persistence.json_store import JsonStore, utcnow_iso

logger = logging.getLogger(__name__)


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_document_id() -> str:
    return f"doc_{uuid.uuid4().hex[:12]}"


class DocumentRegistry(JsonStore):

    def create(
        self,
        filename: str,
        storage_name: str,
        size_bytes: int,
        mime_type: str,
        partition: Partition,
        owner_id: Optional[str],
    ) -> dict:

        if partition == Partition.USER and not owner_id:
            raise ValueError("User documents require an owner id")

        record = {
            "id": generate_document_id(),
            "filename": filename,
            "storage_name": storage_name,
            "size_bytes": size_bytes,
            "mime_type": mime_type,
            "partition": Partition(partition).value,
            "owner_id": owner_id if partition == Partition.USER else None,
            "status": DocumentStatus.PROCESSING.value,
            "chunk_count": 0,
            "error_message": None,
            "upload_timestamp": utcnow_iso(),
        }

        with self._lock:
            self._put(record)

        logger.info(
            "Document record created",
            extra={"doc_id": record["id"], "doc_filename": filename},
        )

        return dict(record)

    def find_by_id(self, document_id: str) -> Optional[dict]:

        record = self._records.get(document_id)

        return dict(record) if record else None

    def find_by_filter(self, **criteria) -> List[dict]:
        """Equality match on any record fields, newest first."""

        with self._lock:
            records = [
                dict(record)
                for record in self._records.values()
                if all(record.get(key) == value for key, value in criteria.items())
            ]

        records.sort(key=lambda r: r["upload_timestamp"], reverse=True)

        return records

    def keyword_find(
        self,
        query_lower: str,
        partition: Partition,
        owner_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[KeywordMatch]:
        """
        Case-insensitive substring match on the display filename,
        in insertion order.
        """

        partition = Partition(partition)
        needle = query_lower.lower()

        matches = []

        with self._lock:

            for record in self._records.values():

                if len(matches) >= limit:
                    break

                if record.get("partition") != partition.value:
                    continue

                if partition == Partition.USER and record.get("owner_id") != owner_id:
                    continue

                if needle in (record.get("filename") or "").lower():
                    matches.append(KeywordMatch(record["id"], record["filename"]))

        return matches

    def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        chunk_count: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> dict:

        with self._lock:

            current = self._records.get(document_id)

            if current is None:
                raise MetadataStoreError(f"Document {document_id} not found")

            record = dict(current)

            record["status"] = DocumentStatus(status).value

            if chunk_count is not None:
                record["chunk_count"] = chunk_count

            record["error_message"] = error_message

            self._put(record)

        logger.info(
            "Document status updated",
            extra={"doc_id": document_id, "status": record["status"]},
        )

        return dict(record)

    def delete_by_id(self, document_id: str) -> bool:

        with self._lock:

            if document_id not in self._records:
                return False

            self._drop([document_id])

        return True

    def delete_by_filter(self, **criteria) -> List[dict]:

        with self._lock:

            doomed = [
                record
                for record in self._records.values()
                if all(record.get(key) == value for key, value in criteria.items())
            ]

            if doomed:
                self._drop(record["id"] for record in doomed)

        return doomed

    def list(self) -> List[dict]:
        return self.find_by_filter()
