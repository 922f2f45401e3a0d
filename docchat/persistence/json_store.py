# docchat/persistence/json_store.py

"""
Lock-guarded JSON file persistence shared by the metadata registries.

Each store keeps its records in memory and rewrites the whole file on
every mutation through a temp file + os.replace. Mutations are staged on a
copy and only become visible once the file write succeeds.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from typing import Dict

from docchat.errors import MetadataStoreError

logger = logging.getLogger(__name__)


def utcnow_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


class JsonStore:

    def __init__(self, path: str):

        self._path = path
        self._lock = threading.RLock()
        self._records: Dict[str, dict] = {}

        self._load()

    # ============================================================
    # FILE I/O
    # ============================================================

    def _load(self):

        if not os.path.exists(self._path):
            logger.info("Store file not found. Starting fresh.", extra={"path": self._path})
            return

        try:

            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)

        except (OSError, ValueError) as e:

            logger.error(
                "Store load failed",
                extra={"path": self._path, "error": str(e)},
            )

            raise MetadataStoreError(f"Could not load {self._path}: {e}") from e

        self._records = dict(data)

        logger.info(
            "Store loaded",
            extra={"path": self._path, "records": len(self._records)},
        )

    def _write(self, records: Dict[str, dict]):

        directory = os.path.dirname(self._path) or "."

        try:

            os.makedirs(directory, exist_ok=True)

            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")

            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)

            os.replace(tmp_path, self._path)

        except OSError as e:

            logger.error(
                "Store save failed",
                extra={"path": self._path, "error": str(e)},
            )

            raise MetadataStoreError(f"Could not save {self._path}: {e}") from e

    # ============================================================
    # MUTATION (caller must hold the lock)
    # ============================================================

    def _commit(self, records: Dict[str, dict]):

        self._write(records)
        self._records = records

    def _put(self, record: dict):

        records = dict(self._records)
        records[record["id"]] = record

        self._commit(records)

    def _drop(self, record_ids):

        doomed = set(record_ids)

        self._commit({k: v for k, v in self._records.items() if k not in doomed})

    def __len__(self):
        return len(self._records)
