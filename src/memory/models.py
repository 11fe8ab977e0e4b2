"""Data models for saved memories."""

from __future__ import annotations

import json

from pydantic import BaseModel, Field


class MemoryRecord(BaseModel):
    """A saved snippet with its embedding.

    Records are immutable once written; the only mutation is deletion.
    """

    id: int
    text: str
    embedding: list[float] = Field(default_factory=list)
    source_url: str = ""
    created_at: str = ""

    model_config = {"frozen": True}

    @property
    def dimension(self) -> int:
        return len(self.embedding)

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``memories`` column order."""
        return (
            self.id,
            self.text,
            json.dumps(self.embedding),
            self.source_url,
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> MemoryRecord:
        return cls(
            id=row[0],
            text=row[1],
            embedding=json.loads(row[2]),
            source_url=row[3] or "",
            created_at=row[4],
        )

    def to_public_dict(self) -> dict:
        """Listing representation; embeddings stay server-side."""
        return {
            "id": self.id,
            "text": self.text,
            "source_url": self.source_url,
            "created_at": self.created_at,
        }


class ScoredMemory(BaseModel):
    """A memory retrieved for a query, with its cosine similarity."""

    record: MemoryRecord
    score: float

    @property
    def text(self) -> str:
        return self.record.text

    @property
    def source_url(self) -> str:
        return self.record.source_url
