# docchat/workflow/document_qa.py

"""
Chat orchestration.

answer_query:
validate → hybrid retrieve → assemble context → complete
→ cost + monthly usage → persist exchange

Fatal: retrieval and generation failures (nothing is persisted).
Non-fatal: usage accounting and conversation persistence failures.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from docchat.errors import (
    CompletionError,
    GenerationError,
    InputValidationError,
    UserNotFoundError,
)
from docchat.llm.client import estimate_cost
from docchat.memory.context import ContextAssembler
from docchat.memory.retriever import HybridRetriever
from docchat.memory.types import AssembledContext, EvidenceItem, Partition, Usage
from docchat.persistence.conversations import is_valid_conversation_id, make_message
from docchat.persistence.users import month_marker
from docchat.prompts.prompt_builder import build_system_prompt, filter_history

logger = logging.getLogger(__name__)

PERSISTENCE_WARNING = "Failed to save chat history."


@dataclass
class ChatAnswer:
    answer: str
    sources: List[EvidenceItem]
    usage: Optional[Usage]
    cost: float
    conversation_id: Optional[str] = None
    persistence_warning: Optional[str] = None
    context: Optional[AssembledContext] = field(default=None, repr=False)


class ChatOrchestrator:

    def __init__(
        self,
        retriever: HybridRetriever,
        assembler: ContextAssembler,
        completion_client,
        users,
        conversations,
    ):

        self._retriever = retriever
        self._assembler = assembler
        self._llm = completion_client
        self._users = users
        self._conversations = conversations

    # ============================================================
    # RETRIEVAL ONLY
    # ============================================================

    def retrieve_context(
        self,
        query: str,
        partition: Partition,
        owner_id: Optional[str] = None,
    ) -> AssembledContext:

        if not query or not query.strip():
            raise InputValidationError("Query is required.")

        result = self._retriever.retrieve(query, partition, owner_id)

        return self._assembler.assemble(
            result.candidates,
            result.keyword_ids,
            query=result.query,
            partition=result.partition,
        )

    # ============================================================
    # FULL CHAT
    # ============================================================

    def answer_query(
        self,
        user_id: str,
        query: str,
        history: Optional[List[Dict]] = None,
        partition: Partition = Partition.SYSTEM,
        owner_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> ChatAnswer:

        partition = Partition(partition)

        if not query or not query.strip():
            raise InputValidationError("Query is required.")

        if conversation_id is not None and not is_valid_conversation_id(conversation_id):
            raise InputValidationError("Invalid conversation id format.")

        if self._users.find_by_id(user_id) is None:
            raise UserNotFoundError(f"User {user_id} could not be resolved")

        if partition == Partition.USER:
            owner_id = owner_id or user_id

        logger.info(
            "Chat query received",
            extra={
                "user_id": user_id,
                "partition": partition.value,
                "query_preview": query[:50],
                "conversation_id": conversation_id,
            },
        )

        assembled = self.retrieve_context(query, partition, owner_id)

        system_prompt = build_system_prompt(assembled)
        turns = filter_history(history or [])

        try:
            completion = self._llm.complete(system_prompt, turns, query)
        except CompletionError as e:
            raise GenerationError(f"Failed to get response from AI assistant: {e}") from e

        cost = estimate_cost(completion.usage, completion.model)

        if completion.usage is not None:
            self._record_usage(user_id, completion.usage, cost)

        answer = ChatAnswer(
            answer=completion.text,
            sources=assembled.evidence,
            usage=completion.usage,
            cost=cost,
            context=assembled,
        )

        self._persist(user_id, query, answer, conversation_id)

        logger.info(
            "Chat answer ready",
            extra={
                "user_id": user_id,
                "answer_length": len(answer.answer),
                "sources": len(answer.sources),
                "cost": cost,
                "conversation_id": answer.conversation_id,
                "persistence_warning": answer.persistence_warning,
            },
        )

        return answer

    # ============================================================
    # SIDE EFFECTS
    # ============================================================

    def _record_usage(self, user_id: str, usage: Usage, cost: float):

        try:

            self._users.record_usage(
                user_id,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                cost=cost,
                marker=month_marker(),
            )

        except Exception as e:

            logger.error(
                "Usage tracking update failed",
                extra={"user_id": user_id, "error": str(e)},
                exc_info=True,
            )

    def _persist(self, user_id: str, query: str, answer: ChatAnswer, conversation_id):

        user_message = make_message("user", query)
        assistant_message = make_message(
            "assistant",
            answer.answer,
            sources=[
                {
                    "document_id": item.document_id,
                    "filename": item.filename,
                    "type": item.partition.value,
                }
                for item in answer.sources
            ],
        )

        try:

            conversation = self._conversations.append_exchange(
                user_id,
                user_message,
                assistant_message,
                conversation_id=conversation_id,
            )

            answer.conversation_id = conversation["id"]

        except Exception as e:

            logger.error(
                "Chat persistence failed",
                extra={"user_id": user_id, "error": str(e)},
                exc_info=True,
            )

            answer.persistence_warning = PERSISTENCE_WARNING
