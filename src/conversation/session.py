"""In-memory conversation state keyed by conversation id (e.g. a browser tab)."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum

logger = logging.getLogger(__name__)


class Phase(StrEnum):
    """Where a conversation is in the ask cycle."""

    IDLE = "idle"
    AWAITING_MEMORY = "awaiting_memory"
    AWAITING_MODEL = "awaiting_model"
    STREAMING = "streaming"


@dataclass(frozen=True)
class Turn:
    """A single conversation turn."""

    role: str  # "user" or "assistant"
    text: str


@dataclass
class Conversation:
    """Turn history for a single conversation.

    ``lock`` serialises asks for this key so overlapping requests queue
    instead of interleaving their history updates. Conversations created by
    ``ConversationStore`` share the store's lock for their key.
    """

    key: str
    turns: list[Turn] = field(default_factory=list)
    phase: Phase = Phase.IDLE
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def is_first_turn(self) -> bool:
        return not self.turns

    def add(self, role: str, text: str) -> None:
        """Append a turn. History is append-only within a session."""
        self.turns.append(Turn(role=role, text=text))

    def clear(self) -> int:
        """Clear all turns. Returns the count of cleared turns."""
        count = len(self.turns)
        self.turns.clear()
        return count

    def set_phase(self, phase: Phase) -> None:
        logger.debug("Conversation %s: %s -> %s", self.key, self.phase, phase)
        self.phase = phase


class ConversationStore:
    """Owns the lifecycle of every live conversation.

    Process-lifetime only; nothing is persisted. Locks are kept per key and
    outlive the conversations that use them, so replacing or destroying a
    conversation mid-ask never lets a second ask for that key run alongside.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, key: str) -> asyncio.Lock:
        """The lock serialising asks for *key*, shared by every conversation under it."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def create(self, key: str) -> Conversation:
        """Start a fresh conversation, replacing any existing one."""
        conversation = Conversation(key=key, lock=self.lock_for(key))
        self._conversations[key] = conversation
        return conversation

    def get(self, key: str) -> Conversation | None:
        return self._conversations.get(key)

    def get_or_create(self, key: str) -> tuple[Conversation, bool]:
        """Return the conversation for *key* and whether it was just created."""
        conversation = self._conversations.get(key)
        if conversation is None:
            return self.create(key), True
        return conversation, False

    def reset(self, key: str) -> int:
        """Clear a conversation's turns, keeping its lock. Returns turns cleared."""
        conversation = self._conversations.get(key)
        if conversation is None:
            return 0
        count = conversation.clear()
        if count:
            logger.info("Reset conversation %s (%d turns)", key, count)
        return count

    def destroy(self, key: str) -> bool:
        """Forget a conversation entirely. Returns True if it existed."""
        return self._conversations.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._conversations)

    def __len__(self) -> int:
        return len(self._conversations)
