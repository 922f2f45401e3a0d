# docchat/llm/client.py

import logging
import time
from typing import Dict, List, Optional

from openai import OpenAI, OpenAIError

from docchat.config import (
    LLM_MAX_TOKENS,
    LLM_MODEL,
    LLM_TEMPERATURE,
    MODEL_PRICING,
)
from docchat.errors import CompletionError
from docchat.memory.types import CompletionResult, Usage
from docchat.resilience import gateway_retry, is_transient_openai_error, openai_client

logger = logging.getLogger(__name__)


def estimate_cost(usage: Optional[Usage], model: str = LLM_MODEL) -> float:
    """
    USD cost of one completion. Unknown models fall back to the
    configured model's prices.
    """

    if usage is None:
        return 0.0

    pricing = MODEL_PRICING.get(model)

    if pricing is None:

        logger.warning(
            "Pricing not found for model, using default pricing",
            extra={"model": model, "default_model": LLM_MODEL},
        )

        pricing = MODEL_PRICING.get(LLM_MODEL, {"input": 0.0, "output": 0.0})

    return (
        usage.prompt_tokens * pricing["input"]
        + usage.completion_tokens * pricing["output"]
    )


class CompletionClient:
    """
    Client for the OpenAI chat completion API.

    complete() takes a system prompt, prior turns and the current user
    turn, and returns the answer text with token usage.
    """

    def __init__(
        self,
        model: str = LLM_MODEL,
        temperature: float = LLM_TEMPERATURE,
        max_tokens: int = LLM_MAX_TOKENS,
        client: Optional[OpenAI] = None,
    ):
        """
        Args:
            model: OpenAI chat model
            client: preconfigured OpenAI client without SDK retries; built from
                OPENAI_API_KEY when omitted
        """

        self._client = client or openai_client()
        self.model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

        logger.info("Completion client initialized", extra={"model": model})

    def complete(
        self,
        system_prompt: str,
        history: List[Dict[str, str]],
        user_turn: str,
    ) -> CompletionResult:
        """
        Raises:
            CompletionError: transport failure, or no usable choice returned
        """

        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(
            {"role": turn["role"], "content": turn["content"]} for turn in history
        )
        messages.append({"role": "user", "content": user_turn})

        start = time.time()

        try:

            response = self._create_with_retry(messages)

        except OpenAIError as e:

            logger.error(
                "Chat completion failed",
                extra={"model": self.model, "error": str(e)},
            )

            raise CompletionError(f"Chat completion failed: {e}") from e

        latency = time.time() - start

        usage = None

        if getattr(response, "usage", None) is not None:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
            )
        else:
            logger.warning("Completion response did not contain usage data")

        model_used = getattr(response, "model", None) or self.model

        logger.info(
            "LLM provider success",
            extra={
                "provider": "openai",
                "model": model_used,
                "latency_seconds": round(latency, 3),
                "prompt_tokens": usage.prompt_tokens if usage else None,
                "completion_tokens": usage.completion_tokens if usage else None,
                "history_length": len(history),
            },
        )

        if not response.choices:
            raise CompletionError("No choices returned from chat completion")

        content = response.choices[0].message.content

        if not content or not content.strip():
            raise CompletionError("Chat completion returned empty content")

        return CompletionResult(text=content.strip(), model=model_used, usage=usage)

    @gateway_retry(is_transient_openai_error, "chat.completions.create")
    def _create_with_retry(self, messages):

        return self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
