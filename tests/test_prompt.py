"""Tests for first-turn prompt assembly."""

from src.llm.prompt import SYSTEM_INSTRUCTION, build_first_turn_prompt, format_memories
from src.memory.models import MemoryRecord, ScoredMemory


def _memory(text: str, url: str = "", score: float = 0.8) -> ScoredMemory:
    record = MemoryRecord(id=1, text=text, embedding=[1.0], source_url=url, created_at="x")
    return ScoredMemory(record=record, score=score)


def test_prompt_contains_question_and_context() -> None:
    prompt = build_first_turn_prompt("What is this?", "Page body text")

    assert prompt.startswith("Based on the following page content")
    assert "Question: What is this?" in prompt
    assert prompt.endswith("Page Context:\nPage body text")
    assert "memory" not in prompt.lower()


def test_page_context_is_bounded() -> None:
    prompt = build_first_turn_prompt("q", "a" * 50, context_chars=10)
    assert prompt.endswith("Page Context:\n" + "a" * 10)


def test_memories_are_attributed() -> None:
    prompt = build_first_turn_prompt(
        "q",
        "ctx",
        [_memory("The sky is blue", "https://sky.example"), _memory("Untracked note")],
    )

    assert "- [Memory from https://sky.example] The sky is blue" in prompt
    assert "- [Memory] Untracked note" in prompt
    assert prompt.index("Question: q") < prompt.index("Relevant notes") < prompt.index("Page Context")


def test_format_memories_empty() -> None:
    assert format_memories([]) == ""


def test_none_page_context() -> None:
    assert build_first_turn_prompt("q", None).endswith("Page Context:\n")


def test_system_instruction_mentions_context() -> None:
    assert "context" in SYSTEM_INSTRUCTION
