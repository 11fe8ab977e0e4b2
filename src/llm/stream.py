"""Incremental decoder for Gemini's server-sent event stream.

The remote sends newline-delimited records. Payload records start with
``data: `` and carry a JSON ``GenerateContentResponse``; ``data: [DONE]``
marks end-of-stream. Every other line (comments, ``event:`` fields, blank
separators) is ignored.

Fragments from the transport can split a record anywhere, so a line is only
evaluated once its terminating newline has arrived. Whatever is left over
when the transport finishes is handled by ``flush()``.
"""

from __future__ import annotations

import json
import logging

from pydantic import BaseModel, ValidationError

from src.errors import MalformedRecordError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


# -- Response schema -----------------------------------------------------------


class Part(BaseModel):
    text: str | None = None


class Content(BaseModel):
    parts: list[Part] | None = None
    role: str | None = None


class Candidate(BaseModel):
    content: Content | None = None


class StreamChunk(BaseModel):
    """One decoded payload record. Unknown fields are ignored."""

    candidates: list[Candidate] | None = None

    def delta_text(self) -> str | None:
        """Text at ``candidates[0].content.parts[0].text``, or None if absent."""
        if not self.candidates:
            return None
        content = self.candidates[0].content
        if content is None or not content.parts:
            return None
        return content.parts[0].text


def parse_chunk(payload: str) -> StreamChunk:
    """Parse one record body. Raises ``MalformedRecordError`` on bad input."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedRecordError(payload) from exc
    if not isinstance(data, dict):
        raise MalformedRecordError(payload)
    try:
        return StreamChunk.model_validate(data)
    except ValidationError as exc:
        raise MalformedRecordError(payload) from exc


# -- Decoder -------------------------------------------------------------------


class StreamDecoder:
    """Turns arbitrarily split text fragments into ordered text deltas.

    Usage::

        decoder = StreamDecoder()
        async for fragment in response.aiter_text():
            for delta in decoder.feed(fragment):
                ...
        for delta in decoder.flush():
            ...
    """

    def __init__(self) -> None:
        self._buffer = ""
        self.records_seen = 0
        self.records_skipped = 0

    @property
    def pending(self) -> str:
        """Unterminated text waiting for its newline."""
        return self._buffer

    def feed(self, fragment: str) -> list[str]:
        """Append *fragment* and return deltas from every completed line."""
        if not fragment:
            return []

        self._buffer += fragment
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        deltas: list[str] = []
        for line in lines:
            delta = self._process_line(line.removesuffix("\r"))
            if delta:
                deltas.append(delta)
        return deltas

    def flush(self) -> list[str]:
        """Process a final unterminated line once, then clear the buffer."""
        remainder = self._buffer.removesuffix("\r")
        self._buffer = ""
        if not remainder.strip():
            return []
        delta = self._process_line(remainder)
        return [delta] if delta else []

    def _process_line(self, line: str) -> str | None:
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX) :]
        if payload == DONE_SENTINEL:
            return None

        self.records_seen += 1
        try:
            chunk = parse_chunk(payload)
        except MalformedRecordError as exc:
            self.records_skipped += 1
            logger.warning("%s", exc)
            return None

        return chunk.delta_text() or None
