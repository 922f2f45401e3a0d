# docchat/observability/posthog_client.py

"""
PostHog product analytics.

Architecture contract:
- Does NOT replace structured logging
- Uses the caller's user id, falling back to request_id
- Never blocks or fails an API call
"""

import os
import logging
from typing import Optional, Dict, Any

from posthog import Posthog


logger = logging.getLogger(__name__)


class PostHogClient:
    """
    Safe PostHog wrapper.

    Disabled when POSTHOG_API_KEY is not set; every tracking method
    becomes a no-op.
    """

    def __init__(self, api_key: Optional[str] = None, host: Optional[str] = None):

        self._enabled = False
        self._client: Optional[Posthog] = None

        api_key = api_key or os.getenv("POSTHOG_API_KEY")
        host = host or os.getenv("POSTHOG_HOST", "https://app.posthog.com")

        if not api_key:
            logger.info("PostHog disabled: POSTHOG_API_KEY not set")
            return

        try:

            self._client = Posthog(
                project_api_key=api_key,
                host=host,
                timeout=5,
                flush_interval=1,
            )

            self._enabled = True

            logger.info("PostHog client initialized", extra={"host": host})

        except Exception as e:

            logger.error(
                "PostHog initialization failed",
                extra={"error": str(e)}
            )

    @property
    def enabled(self) -> bool:
        return self._enabled

    # ==========================================================
    # INTERNAL SAFE TRACK
    # ==========================================================

    def _track(
        self,
        distinct_id: str,
        event: str,
        properties: Optional[Dict[str, Any]] = None,
    ):

        if not self._enabled or not self._client:
            return

        try:

            self._client.capture(
                distinct_id=distinct_id,
                event=event,
                properties=properties or {},
            )

        except Exception as e:

            logger.warning(
                "PostHog tracking failed",
                extra={"event": event, "error": str(e)},
            )

    # ==========================================================
    # DOCUMENTS
    # ==========================================================

    def track_document_upload(
        self,
        distinct_id: str,
        document_id: str,
        partition: str,
        chunks: int,
        latency: float,
    ):

        self._track(
            distinct_id,
            "document_uploaded",
            {
                "document_id": document_id,
                "partition": partition,
                "chunks": chunks,
                "latency_seconds": latency,
            },
        )

    def track_document_deleted(self, distinct_id: str, document_id: str):

        self._track(distinct_id, "document_deleted", {"document_id": document_id})

    # ==========================================================
    # CHAT
    # ==========================================================

    def track_chat_answer(
        self,
        distinct_id: str,
        partition: str,
        sources: int,
        keyword_sources: int,
        total_tokens: Optional[int],
        cost: float,
        latency: float,
        persisted: bool,
    ):

        self._track(
            distinct_id,
            "chat_answered",
            {
                "partition": partition,
                "sources": sources,
                "keyword_sources": keyword_sources,
                "total_tokens": total_tokens,
                "cost": cost,
                "latency_seconds": latency,
                "persisted": persisted,
            },
        )

    def track_context_search(
        self,
        distinct_id: str,
        partition: str,
        evidence: int,
        top_score: Optional[float],
    ):

        self._track(
            distinct_id,
            "context_searched",
            {
                "partition": partition,
                "evidence": evidence,
                "top_score": top_score,
            },
        )

    # ==========================================================
    # ERRORS
    # ==========================================================

    def track_error(
        self,
        distinct_id: str,
        error_type: str,
        error_message: str,
        endpoint: str,
    ):

        self._track(
            distinct_id,
            "system_error",
            {
                "error_type": error_type,
                "error_message": error_message,
                "endpoint": endpoint,
            },
        )

    def shutdown(self):

        if self._client is not None:
            try:
                self._client.shutdown()
            except Exception as e:
                logger.warning("PostHog shutdown failed", extra={"error": str(e)})


posthog_client = PostHogClient()
