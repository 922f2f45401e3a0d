import json
import logging
import os
import threading
from typing import List, Optional

from docchat.config import STORAGE_DIR

logger = logging.getLogger(__name__)

_METRICS_PATH = os.path.join(STORAGE_DIR, "metrics.json")

# Keep percentile history bounded
_MAX_LATENCIES = 1000

_lock = threading.Lock()


def _empty_metrics() -> dict:

    return {

        "total_requests": 0,
        "successful_requests": 0,
        "failed_requests": 0,

        "total_latency": 0.0,
        "avg_latency": 0.0,
        "latencies": [],

        "chat_answers": 0,
        "no_context_answers": 0,
        "keyword_evidence_items": 0,
        "prompt_tokens": 0,
        "completion_tokens": 0,
        "total_cost": 0.0,

        "documents_ingested": 0,
        "documents_failed": 0,

    }


class MetricsTracker:

    def __init__(self, path: Optional[str] = _METRICS_PATH):

        self._path = path
        self._metrics = _empty_metrics()

        self._load()

    def _load(self):

        if not self._path or not os.path.exists(self._path):
            return

        try:

            with open(self._path, "r") as f:
                data = json.load(f)

            # Files written by older versions lack newer counters
            self._metrics.update(data)

        except (OSError, ValueError) as e:

            logger.warning(
                "Metrics file unreadable, starting fresh",
                extra={"error": str(e)},
            )

    def _save(self):

        if not self._path:
            return

        try:

            os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)

            with open(self._path, "w") as f:
                json.dump(self._metrics, f, indent=2)

        except OSError as e:

            logger.warning("Metrics save failed", extra={"error": str(e)})

    # ============================================================
    # REQUESTS
    # ============================================================

    def record_success(self, latency: float):

        with _lock:

            self._metrics["total_requests"] += 1
            self._metrics["successful_requests"] += 1
            self._metrics["total_latency"] += latency

            self._metrics["avg_latency"] = (
                self._metrics["total_latency"]
                / self._metrics["successful_requests"]
            )

            self._metrics["latencies"].append(latency)
            del self._metrics["latencies"][:-_MAX_LATENCIES]

            self._save()

    def record_failure(self):

        with _lock:

            self._metrics["total_requests"] += 1
            self._metrics["failed_requests"] += 1

            self._save()

    # ============================================================
    # CHAT & INGESTION
    # ============================================================

    def record_chat_answer(
        self,
        evidence: int,
        keyword_evidence: int,
        prompt_tokens: int,
        completion_tokens: int,
        cost: float,
    ):

        with _lock:

            self._metrics["chat_answers"] += 1

            if evidence == 0:
                self._metrics["no_context_answers"] += 1

            self._metrics["keyword_evidence_items"] += keyword_evidence
            self._metrics["prompt_tokens"] += prompt_tokens
            self._metrics["completion_tokens"] += completion_tokens
            self._metrics["total_cost"] += cost

            self._save()

    def record_ingestion(self, success: bool):

        with _lock:

            key = "documents_ingested" if success else "documents_failed"
            self._metrics[key] += 1

            self._save()

    # ============================================================
    # READ
    # ============================================================

    def get_metrics(self) -> dict:

        with _lock:

            snapshot = {k: v for k, v in self._metrics.items() if k != "latencies"}

        snapshot["p50_latency"] = self.get_latency_percentile(50)
        snapshot["p95_latency"] = self.get_latency_percentile(95)

        return snapshot

    def get_latency_percentile(self, percentile: float) -> float:

        latencies: List[float] = list(self._metrics.get("latencies", []))

        if not latencies:
            return 0.0

        sorted_latencies = sorted(latencies)

        index = int(len(sorted_latencies) * percentile / 100)

        index = min(index, len(sorted_latencies) - 1)

        return sorted_latencies[index]

    def reset(self):

        with _lock:

            self._metrics = _empty_metrics()

            self._save()


metrics_tracker = MetricsTracker()
