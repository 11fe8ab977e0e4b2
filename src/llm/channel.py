"""Async channel carrying streamed text deltas from a producer to a consumer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

EventKind = Literal["delta", "end", "error"]


@dataclass(frozen=True)
class StreamEvent:
    """One event on a channel. ``end`` and ``error`` are terminal."""

    kind: EventKind
    text: str = ""

    @property
    def terminal(self) -> bool:
        return self.kind != "delta"

    def to_dict(self) -> dict[str, str]:
        return {"type": self.kind, "text": self.text}


class DeltaChannel:
    """FIFO of text deltas with a single terminal event.

    The producer calls ``send()`` for each delta and finishes with either
    ``close()`` or ``fail()``. The consumer iterates with ``async for`` and
    stops after the terminal event. Anything sent after the terminal event
    is dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._closed = False
        self.error: str | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, text: str) -> None:
        if self._closed:
            logger.debug("Dropping delta sent after close")
            return
        if text:
            self._queue.put_nowait(StreamEvent("delta", text))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(StreamEvent("end"))

    def fail(self, message: str, *, as_delta: str | None = None) -> None:
        """Terminate with an error.

        *as_delta* is sent as a last visible delta first, so a consumer that
        only renders text still shows the failure after any partial output.
        """
        if self._closed:
            return
        if as_delta:
            self.send(as_delta)
        self.error = message
        self._closed = True
        self._queue.put_nowait(StreamEvent("error", message))

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.terminal:
                return

    async def collect(self) -> str:
        """Drain the channel and return the concatenated delta text."""
        parts = [event.text async for event in self if event.kind == "delta"]
        return "".join(parts)
