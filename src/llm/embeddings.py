"""Gemini ``embedContent`` client: text in, fixed-dimension vector out."""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ValidationError

from src.config import Settings, settings
from src.errors import ConfigurationError, EmbeddingServiceError, NetworkError
from src.llm.client import describe_failure

logger = logging.getLogger(__name__)


class _Embedding(BaseModel):
    values: list[float]


class EmbedContentResponse(BaseModel):
    embedding: _Embedding


class EmbeddingClient:
    """Thin wrapper around the remote embedding call. No retries."""

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or settings
        self._transport = transport

    @property
    def model(self) -> str:
        return self._config.embedding_model

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*.

        Raises:
            ValueError: *text* is empty.
            ConfigurationError: no API key is configured.
            EmbeddingServiceError: non-success status or unusable body.
            NetworkError: the request never completed.
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        if not self._config.has_api_key:
            raise ConfigurationError("Gemini API key is not configured")

        url = f"{self._config.gemini_api_base}/models/{self.model}:embedContent"
        payload = {
            "model": f"models/{self.model}",
            "content": {"parts": [{"text": text}]},
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._config.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    url, params={"key": self._config.gemini_api_key}, json=payload
                )
        except httpx.HTTPError as exc:
            raise NetworkError(f"Embedding request failed: {exc}") from exc

        if not resp.is_success:
            raise EmbeddingServiceError(
                describe_failure("Embedding call failed", resp.status_code, resp.text),
                status=resp.status_code,
            )

        try:
            parsed = EmbedContentResponse.model_validate_json(resp.content)
        except ValidationError as exc:
            raise EmbeddingServiceError(
                f"Unexpected embedding response: {resp.text[:100]}",
                status=resp.status_code,
            ) from exc

        if not parsed.embedding.values:
            raise EmbeddingServiceError("Embedding response contained no values")

        logger.debug("Embedded %d chars into %d dims", len(text), len(parsed.embedding.values))
        return parsed.embedding.values
