# docchat/prompts/prompt_builder.py

from typing import Dict, List

from docchat.memory.types import AssembledContext
from docchat.prompts.system_prompts import DOCUMENT_CHAT_SYSTEM_PROMPT_TEMPLATE


def build_context_block(assembled: AssembledContext) -> str:
    """
    Evidence text followed by the list of source filenames, so the model
    can answer "which documents mention X".
    """

    if not assembled.has_evidence:
        return assembled.context_text

    filenames = []
    for item in assembled.evidence:
        if item.filename not in filenames:
            filenames.append(item.filename)

    sources = "\n".join(f"- {name}" for name in filenames)

    return f"{assembled.context_text}\n\nSources:\n{sources}"


def build_system_prompt(assembled: AssembledContext) -> str:

    return DOCUMENT_CHAT_SYSTEM_PROMPT_TEMPLATE.replace(
        "{context}", build_context_block(assembled)
    ).strip()


def filter_history(history: List[Dict]) -> List[Dict[str, str]]:
    """Keep only turns with both a role and non-empty content."""

    cleaned = []

    for turn in history or []:

        role = turn.get("role")
        content = turn.get("content")

        if role and content and str(content).strip():
            cleaned.append({"role": role, "content": content})

    return cleaned
