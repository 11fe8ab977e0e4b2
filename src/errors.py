"""Exception taxonomy shared by the ask and save paths."""

from __future__ import annotations


class AskpaneError(Exception):
    """Base class for all askpane errors."""


class ConfigurationError(AskpaneError):
    """A required setting (the API credential) is missing."""


class NetworkError(AskpaneError):
    """A remote call failed at the transport level or returned non-success."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class EmbeddingServiceError(NetworkError):
    """The embedding endpoint returned a non-success or unusable response."""


class GenerationServiceError(NetworkError):
    """The generation endpoint rejected the request before streaming."""


class MalformedRecordError(AskpaneError):
    """A single stream record could not be parsed. Never propagated."""

    def __init__(self, payload: str) -> None:
        super().__init__(f"Could not parse stream record: {payload[:200]}")
        self.payload = payload


class StorageError(AskpaneError):
    """The memory database failed. Raised on writes, swallowed on reads."""


class DimensionMismatchError(AskpaneError, ValueError):
    """Two vectors that must share a dimensionality do not."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
