"""Async Gemini client: streaming generation over SSE."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from src.config import Settings, settings
from src.errors import ConfigurationError, GenerationServiceError, NetworkError
from src.llm.stream import StreamDecoder

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from src.conversation.session import Turn

logger = logging.getLogger(__name__)

# Raw error bodies are cut to this many characters in user-visible messages.
ERROR_BODY_LIMIT = 100

_ROLE_MAP = {"user": "user", "assistant": "model"}


def describe_failure(prefix: str, status: int, body: str) -> str:
    """Build a readable message from a non-success response.

    Uses ``error.message`` from a JSON body when present, otherwise the
    first ``ERROR_BODY_LIMIT`` characters of the raw body.
    """
    message = f"{prefix} with status {status}"
    try:
        data = json.loads(body)
    except ValueError:
        logger.error("%s, raw body: %s", message, body[:500])
        return f"{message}: {body[:ERROR_BODY_LIMIT]}..."

    logger.error("%s, body: %s", message, json.dumps(data)[:500])
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return f"{message}: {error['message']}"
    return message


def build_contents(turns: Sequence[Turn]) -> list[dict[str, Any]]:
    """Format turns for the Gemini ``contents`` field."""
    return [
        {"role": _ROLE_MAP.get(turn.role, "user"), "parts": [{"text": turn.text}]}
        for turn in turns
    ]


class GenerationClient:
    """Streams model output for a conversation.

    *transport* is passed straight to ``httpx.AsyncClient`` so tests can
    substitute ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or settings
        self._transport = transport

    @property
    def model(self) -> str:
        return self._config.gemini_model

    def _url(self) -> str:
        return f"{self._config.gemini_api_base}/models/{self.model}:streamGenerateContent"

    def build_request_body(
        self, turns: Sequence[Turn], system_instruction: str | None = None
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "contents": build_contents(turns),
            "generationConfig": {
                "temperature": self._config.temperature,
                "maxOutputTokens": self._config.max_output_tokens,
            },
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        return body

    async def stream(
        self, turns: Sequence[Turn], system_instruction: str | None = None
    ) -> AsyncIterator[str]:
        """Yield text deltas in arrival order.

        The initial status is checked before any line is decoded, so a
        rejected request raises ``GenerationServiceError`` without yielding.
        Transport failures at any point raise ``NetworkError``.
        """
        if not self._config.has_api_key:
            raise ConfigurationError("Gemini API key is not configured")

        params = {"alt": "sse", "key": self._config.gemini_api_key}
        body = self.build_request_body(turns, system_instruction)
        decoder = StreamDecoder()
        emitted = 0

        logger.debug("Streaming from %s (%d turns)", self.model, len(turns))
        try:
            async with (
                httpx.AsyncClient(
                    timeout=self._config.request_timeout_seconds,
                    transport=self._transport,
                ) as client,
                client.stream("POST", self._url(), params=params, json=body) as resp,
            ):
                if not resp.is_success:
                    raw = (await resp.aread()).decode("utf-8", errors="replace")
                    raise GenerationServiceError(
                        describe_failure("API call failed", resp.status_code, raw),
                        status=resp.status_code,
                    )

                async for fragment in resp.aiter_text():
                    for delta in decoder.feed(fragment):
                        emitted += 1
                        yield delta

                for delta in decoder.flush():
                    emitted += 1
                    yield delta
        except httpx.HTTPError as exc:
            raise NetworkError(f"Generation request failed: {exc}") from exc

        logger.info(
            "Stream finished: %d deltas, %d records, %d skipped",
            emitted,
            decoder.records_seen,
            decoder.records_skipped,
        )
