"""Prompt assembly for the first turn of a conversation."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from src.memory.models import ScoredMemory

SYSTEM_INSTRUCTION = (
    "You are a helpful AI assistant. Answer questions concisely based on the "
    "provided context. If the answer isn't in the context, say so briefly."
)

DEFAULT_PAGE_CONTEXT_CHARS = 8000


def format_memories(memories: Sequence[ScoredMemory]) -> str:
    """Render retrieved memories, each prefixed with where it came from."""
    if not memories:
        return ""

    lines = ["Relevant notes from your memory:"]
    for memory in memories:
        label = f"[Memory from {memory.source_url}]" if memory.source_url else "[Memory]"
        lines.append(f"- {label} {memory.text}")
    return "\n".join(lines)


def build_first_turn_prompt(
    question: str,
    page_context: str,
    memories: Sequence[ScoredMemory] = (),
    context_chars: int = DEFAULT_PAGE_CONTEXT_CHARS,
) -> str:
    """Combine the question, recalled memories and a bounded page excerpt."""
    sections = [
        "Based on the following page content, please answer this question concisely:",
        f"Question: {question}",
    ]

    memory_block = format_memories(memories)
    if memory_block:
        sections.append(memory_block)

    sections.append(f"Page Context:\n{(page_context or '')[:context_chars]}")
    return "\n\n".join(sections)
