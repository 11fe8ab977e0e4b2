"""MemoryStore — aiosqlite persistence and similarity search for saved snippets.

Writes are surfaced to the caller (``StorageError``); reads are best-effort
and degrade to empty results so a broken database never blocks an ask.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import aiosqlite
import numpy as np

from src.config import settings
from src.errors import DimensionMismatchError, StorageError
from src.memory.models import MemoryRecord, ScoredMemory
from src.memory.vector_math import cosine_similarities

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3
DEFAULT_MIN_SCORE = 0.6

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS memories (
    id INTEGER PRIMARY KEY,
    text TEXT NOT NULL,
    embedding TEXT NOT NULL,
    source_url TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    dimension INTEGER NOT NULL
)
"""

_COLUMNS = "id, text, embedding, source_url, created_at"


class MemoryStore:
    """Persists memory records in SQLite.

    Singleton accessed via ``MemoryStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: MemoryStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False
        self._last_id = 0
        self._write_lock = asyncio.Lock()

    @classmethod
    def get(cls) -> MemoryStore:
        """Return the shared MemoryStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            try:
                await db.execute(_CREATE_TABLE)
                await db.commit()
                cursor = await db.execute("SELECT MAX(id) FROM memories")
                row = await cursor.fetchone()
            except Exception:
                await db.close()
                raise
            self._last_id = max(self._last_id, (row[0] if row and row[0] else 0))
            self._initialised = True
        return db

    def _next_id(self) -> int:
        """Millisecond timestamp id, forced strictly above every id issued so far.

        Milliseconds keep ids below 2**53 so JSON clients decode them exactly.
        """
        self._last_id = max(time.time_ns() // 1_000_000, self._last_id + 1)
        return self._last_id

    # -- Write -----------------------------------------------------------------

    async def insert(self, text: str, embedding: Sequence[float], source_url: str = "") -> int:
        """Persist a new record and return its id.

        Raises ``ValueError`` for empty text or embedding,
        ``DimensionMismatchError`` when *embedding* does not match the
        store's dimensionality, and ``StorageError`` on database failure.
        """
        if not text or not text.strip():
            raise ValueError("Memory text must not be empty")
        if not embedding:
            raise ValueError("Memory embedding must not be empty")

        vector = [float(v) for v in embedding]

        async with self._write_lock:
            try:
                db = await self._connect()
            except (aiosqlite.Error, OSError) as exc:
                raise StorageError(f"Could not open memory database: {exc}") from exc

            try:
                cursor = await db.execute("SELECT dimension FROM memories LIMIT 1")
                existing = await cursor.fetchone()
                if existing and existing[0] != len(vector):
                    raise DimensionMismatchError(existing[0], len(vector))

                record = MemoryRecord(
                    id=self._next_id(),
                    text=text,
                    embedding=vector,
                    source_url=source_url or "",
                    created_at=datetime.now(UTC).isoformat(),
                )
                await db.execute(
                    f"INSERT INTO memories ({_COLUMNS}, dimension) VALUES (?, ?, ?, ?, ?, ?)",
                    (*record.to_row(), record.dimension),
                )
                await db.commit()
            except aiosqlite.Error as exc:
                raise StorageError(f"Could not save memory: {exc}") from exc
            finally:
                await db.close()

        logger.info("Saved memory %d (%d dims): %s", record.id, record.dimension, text[:80])
        return record.id

    async def delete(self, memory_id: int) -> None:
        """Delete a record. Unknown ids are a no-op."""
        async with self._write_lock:
            try:
                db = await self._connect()
            except (aiosqlite.Error, OSError) as exc:
                raise StorageError(f"Could not open memory database: {exc}") from exc

            try:
                cursor = await db.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
                await db.commit()
                deleted = cursor.rowcount > 0
            except aiosqlite.Error as exc:
                raise StorageError(f"Could not delete memory {memory_id}: {exc}") from exc
            finally:
                await db.close()

        if deleted:
            logger.info("Deleted memory: %d", memory_id)
        else:
            logger.debug("Delete ignored, no memory with id %d", memory_id)

    # -- Read ------------------------------------------------------------------

    async def _fetch_all(self) -> list[MemoryRecord]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM memories ORDER BY created_at DESC, id DESC"
            )
            rows = await cursor.fetchall()
            return [MemoryRecord.from_row(row) for row in rows]
        finally:
            await db.close()

    async def list_all(self) -> list[MemoryRecord]:
        """Return every record, newest first. Failures yield an empty list."""
        try:
            return await self._fetch_all()
        except (aiosqlite.Error, OSError, ValueError):
            logger.exception("Failed to list memories")
            return []

    async def count(self) -> int:
        """Number of stored records (0 on read failure)."""
        try:
            db = await self._connect()
            try:
                cursor = await db.execute("SELECT COUNT(*) FROM memories")
                row = await cursor.fetchone()
                return row[0] if row else 0
            finally:
                await db.close()
        except (aiosqlite.Error, OSError):
            logger.exception("Failed to count memories")
            return 0

    async def query_by_embedding(
        self,
        query_vector: Sequence[float],
        k: int = DEFAULT_TOP_K,
        min_score: float = DEFAULT_MIN_SCORE,
    ) -> list[ScoredMemory]:
        """Return up to *k* records scoring strictly above *min_score*.

        Results are sorted by descending score, ties broken by ascending id.
        NaN scores and records of a different dimensionality are excluded.
        Read failures yield an empty list.
        """
        if k <= 0:
            return []

        try:
            records = await self._fetch_all()
        except (aiosqlite.Error, OSError, ValueError):
            logger.exception("Memory query failed")
            return []

        dims = len(query_vector)
        candidates: list[MemoryRecord] = []
        for record in records:
            if record.dimension != dims:
                logger.warning(
                    "Skipping memory %d: %d dims vs query %d dims",
                    record.id,
                    record.dimension,
                    dims,
                )
                continue
            candidates.append(record)
        if not candidates:
            return []

        matrix = np.stack([np.asarray(r.embedding, dtype=np.float64) for r in candidates])
        scores = cosine_similarities(query_vector, matrix)
        ids = np.array([r.id for r in candidates], dtype=np.int64)

        keep = np.flatnonzero(~np.isnan(scores) & (scores > min_score))
        # Primary key is the last one: descending score, then ascending id.
        order = keep[np.lexsort((ids[keep], -scores[keep]))]
        results = [
            ScoredMemory(record=candidates[i], score=float(scores[i])) for i in order[:k]
        ]
        logger.debug(
            "Memory query: %d records, %d above %.2f, returning %d",
            len(records),
            len(keep),
            min_score,
            len(results),
        )
        return results
