"""Per-conversation coordinator for ask and save requests.

An ask moves a conversation through ``idle -> awaiting_memory ->
awaiting_model -> streaming -> idle``. Memory lookup is best-effort: any
failure there just means the prompt goes out without recalled notes. The
generation call is the primary path: its failure is reported to the caller
as a final error delta, after whatever partial text was already streamed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from src.config import Settings, settings
from src.conversation.session import ConversationStore, Phase, Turn
from src.errors import (
    AskpaneError,
    ConfigurationError,
    NetworkError,
    StorageError,
)
from src.llm.channel import DeltaChannel
from src.llm.client import GenerationClient
from src.llm.embeddings import EmbeddingClient
from src.llm.prompt import SYSTEM_INSTRUCTION, build_first_turn_prompt
from src.memory.store import MemoryStore

if TYPE_CHECKING:
    from src.memory.models import MemoryRecord, ScoredMemory

logger = logging.getLogger(__name__)

API_KEY_MISSING_MESSAGE = "Error: API Key not set. Please set it in the extension options."


@dataclass
class OperationResult:
    """Outcome of a save: ``data`` on success, ``error`` plus kind on failure."""

    data: dict[str, Any] | None = None
    error: str | None = None
    error_kind: str | None = None  # invalid, configuration, network, storage

    @property
    def success(self) -> bool:
        return self.error is None


def _error_kind(exc: Exception) -> str:
    if isinstance(exc, ConfigurationError):
        return "configuration"
    if isinstance(exc, NetworkError):
        return "network"
    if isinstance(exc, StorageError):
        return "storage"
    return "invalid"


class Orchestrator:
    """Coordinates memory recall, prompt building and streamed generation.

    Collaborators are injected so tests can run without a network or a real
    database; omitted ones fall back to the shared production instances.
    """

    def __init__(
        self,
        store: MemoryStore | None = None,
        embedder: EmbeddingClient | None = None,
        generator: GenerationClient | None = None,
        conversations: ConversationStore | None = None,
        config: Settings | None = None,
    ) -> None:
        self._config = config or settings
        self.store = store or MemoryStore.get()
        self.embedder = embedder or EmbeddingClient(self._config)
        self.generator = generator or GenerationClient(self._config)
        self.conversations = conversations or ConversationStore()
        self._tasks: set[asyncio.Task] = set()

    # -- Ask -------------------------------------------------------------------

    async def ask(
        self,
        key: str,
        question: str,
        page_context: str = "",
        is_new_search: bool = False,
    ) -> DeltaChannel:
        """Start answering *question* and return the channel it streams into.

        The channel always ends with exactly one terminal event. A missing
        API key fails immediately with a single visible message and no
        network call.
        """
        channel = DeltaChannel()

        if not self._config.has_api_key:
            logger.warning("Ask rejected for %s: API key not set", key)
            channel.fail("API key not set", as_delta=API_KEY_MISSING_MESSAGE)
            return channel

        if not question or not question.strip():
            channel.fail("Question is empty", as_delta="Error: There is no question to ask.")
            return channel

        task = asyncio.create_task(
            self._run_ask(channel, key, question, page_context, is_new_search)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return channel

    async def _recall(self, question: str) -> list[ScoredMemory]:
        """Embed the question and fetch related memories. Never raises."""
        try:
            vector = await self.embedder.embed(question)
            return await self.store.query_by_embedding(
                vector,
                k=self._config.memory_top_k,
                min_score=self._config.memory_min_score,
            )
        except Exception:
            logger.exception("Memory recall failed, continuing without memories")
            return []

    async def _run_ask(
        self,
        channel: DeltaChannel,
        key: str,
        question: str,
        page_context: str,
        is_new_search: bool,
    ) -> None:
        async with self.conversations.lock_for(key):
            # Looked up under the lock so a conversation replaced while this
            # ask was queued is the one that receives its turn.
            conversation, created = self.conversations.get_or_create(key)
            if is_new_search and not created:
                self.conversations.reset(key)

            prompt = question
            error: Exception | None = None
            try:
                if conversation.is_first_turn:
                    conversation.set_phase(Phase.AWAITING_MEMORY)
                    memories = await self._recall(question)
                    if memories:
                        logger.info(
                            "Recalled %d memories for %s (top score %.3f)",
                            len(memories),
                            key,
                            memories[0].score,
                        )
                    prompt = build_first_turn_prompt(
                        question,
                        page_context,
                        memories,
                        context_chars=self._config.page_context_chars,
                    )

                outbound = [*conversation.turns, Turn(role="user", text=prompt)]
                conversation.set_phase(Phase.AWAITING_MODEL)

                async for delta in self.generator.stream(outbound, SYSTEM_INSTRUCTION):
                    if conversation.phase is not Phase.STREAMING:
                        conversation.set_phase(Phase.STREAMING)
                    channel.send(delta)
            except AskpaneError as exc:
                logger.error("Ask failed for %s: %s", key, exc)
                error = exc
            except Exception as exc:
                logger.exception("Unexpected failure answering %s", key)
                error = exc

            # Only the question is recorded; the assistant reply is not.
            conversation.add("user", prompt)
            conversation.set_phase(Phase.IDLE)

        if error is None:
            channel.close()
        else:
            channel.fail(str(error), as_delta=f"\n\n**Error:** {error}")

    async def drain(self) -> None:
        """Wait for every in-flight ask to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # -- Conversation lifecycle -----------------------------------------------

    def reset(self, key: str) -> int:
        return self.conversations.reset(key)

    def destroy(self, key: str) -> bool:
        return self.conversations.destroy(key)

    # -- Memories ----------------------------------------------------------------

    async def save(self, text: str, source_url: str = "") -> OperationResult:
        """Embed *text* and persist it. Failures come back as a result, not raised."""
        if not text or not text.strip():
            return OperationResult(error="Nothing to save: text is empty", error_kind="invalid")
        if not self._config.has_api_key:
            return OperationResult(error=API_KEY_MISSING_MESSAGE, error_kind="configuration")

        try:
            embedding = await self.embedder.embed(text)
            memory_id = await self.store.insert(text, embedding, source_url)
        except (AskpaneError, ValueError) as exc:
            logger.error("Save failed: %s", exc)
            return OperationResult(error=str(exc), error_kind=_error_kind(exc))

        return OperationResult(data={"id": memory_id})

    async def list_memories(self) -> list[MemoryRecord]:
        return await self.store.list_all()

    async def delete_memory(self, memory_id: int) -> None:
        await self.store.delete(memory_id)
