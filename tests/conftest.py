"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import pytest

from src.config import Settings
from src.conversation.session import Turn
from src.errors import EmbeddingServiceError
from src.memory.store import MemoryStore


class FakeEmbedder:
    """Returns canned vectors per text; unknown text raises like a network failure."""

    def __init__(self, vectors: dict[str, list[float]] | None = None) -> None:
        self.vectors = dict(vectors or {})
        self.calls: list[str] = []
        self.error: Exception | None = None

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        if text not in self.vectors:
            raise EmbeddingServiceError("no canned vector", status=500)
        return self.vectors[text]


class FakeGenerator:
    """Streams canned deltas and records the turns it was called with."""

    def __init__(self, deltas: Sequence[str] = ("Hello", " world")) -> None:
        self.deltas = list(deltas)
        self.calls: list[list[Turn]] = []
        self.system_instructions: list[str | None] = []
        self.error: Exception | None = None

    async def stream(
        self, turns: Sequence[Turn], system_instruction: str | None = None
    ) -> AsyncIterator[str]:
        self.calls.append(list(turns))
        self.system_instructions.append(system_instruction)
        for delta in self.deltas:
            yield delta
        if self.error is not None:
            raise self.error


@pytest.fixture
def config() -> Settings:
    """Settings with a credential present."""
    return Settings(gemini_api_key="test-key", gemini_api_base="https://gemini.test/v1beta")


@pytest.fixture
def store(tmp_path: Path) -> MemoryStore:
    """A MemoryStore backed by a temp database."""
    MemoryStore._reset()
    yield MemoryStore(db_path=tmp_path / "memories.db")
    MemoryStore._reset()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()
