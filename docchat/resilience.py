# docchat/resilience.py

"""
Bounded retries for external gateway calls.

Only transient failures are retried: connection drops, timeouts and 5xx
responses. Client errors (auth, validation, rate limiting) surface on the
first attempt.
"""

import logging
from typing import Callable

import httpx
import openai
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from docchat.config import GATEWAY_MAX_ATTEMPTS, GATEWAY_RETRY_MAX_WAIT

logger = logging.getLogger(__name__)


def openai_client(**kwargs) -> openai.OpenAI:
    """
    OpenAI client with the SDK's own retries disabled.

    gateway_retry is the only retry layer, so a 429 is sent once and a 5xx
    at most GATEWAY_MAX_ATTEMPTS times.
    """

    return openai.OpenAI(max_retries=0, **kwargs)


def is_transient_openai_error(error: BaseException) -> bool:

    if isinstance(error, (openai.APIConnectionError, openai.APITimeoutError)):
        return True

    if isinstance(error, openai.APIStatusError):
        return error.status_code >= 500

    return False


def is_transient_qdrant_error(error: BaseException) -> bool:

    # Transport failure before any HTTP response
    if isinstance(error, ResponseHandlingException):
        return True

    if isinstance(error, UnexpectedResponse):
        return error.status_code is not None and error.status_code >= 500

    return isinstance(error, (httpx.TransportError, TimeoutError, ConnectionError))


def gateway_retry(is_transient: Callable[[BaseException], bool], operation: str):
    """
    Build a tenacity decorator for one gateway operation.
    """

    def _log_retry(retry_state):

        error = retry_state.outcome.exception() if retry_state.outcome else None

        logger.warning(
            "Gateway call failed, retrying",
            extra={
                "operation": operation,
                "attempt": retry_state.attempt_number,
                "max_attempts": GATEWAY_MAX_ATTEMPTS,
                "error": str(error),
            },
        )

    return retry(
        retry=retry_if_exception(is_transient),
        stop=stop_after_attempt(GATEWAY_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=GATEWAY_RETRY_MAX_WAIT),
        before_sleep=_log_retry,
        reraise=True,
    )
