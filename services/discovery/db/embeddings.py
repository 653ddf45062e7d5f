"""
Persistent venue vectors.

The EmbeddingStore is hydrated from here at startup (load_all) and written
back by scripts/embed_venues.py (upsert). One row per venue; vectors are
float8[] of length EMBEDDING_DIM.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone

from services.discovery.embedding.vectors import VectorLike, as_vector


class VenueEmbeddingRepository(ABC):
    @abstractmethod
    async def load_all(self) -> list[tuple[str, list[float]]]:
        ...

    @abstractmethod
    async def upsert(self, pairs: Iterable[tuple[str, VectorLike]], model: str) -> int:
        ...

    @abstractmethod
    async def missing(self, venue_ids: Iterable[str]) -> list[str]:
        """Subset of venue_ids with no stored vector, in input order."""


class InMemoryVenueEmbeddingRepository(VenueEmbeddingRepository):
    def __init__(self) -> None:
        self._rows: dict[str, list[float]] = {}

    async def load_all(self) -> list[tuple[str, list[float]]]:
        return [(vid, list(vec)) for vid, vec in self._rows.items()]

    async def upsert(self, pairs: Iterable[tuple[str, VectorLike]], model: str) -> int:
        n = 0
        for vid, vec in pairs:
            self._rows[vid] = [float(x) for x in as_vector(vec)]
            n += 1
        return n

    async def missing(self, venue_ids: Iterable[str]) -> list[str]:
        return [vid for vid in venue_ids if vid not in self._rows]


_LOAD_ALL_SQL = """
SELECT venue_id::text AS venue_id, embedding_vector
FROM venue_embeddings
"""

_UPSERT_SQL = """
INSERT INTO venue_embeddings (venue_id, embedding_vector, model, created_at)
VALUES ($1, $2, $3, $4)
ON CONFLICT (venue_id) DO UPDATE
SET embedding_vector = EXCLUDED.embedding_vector,
    model = EXCLUDED.model,
    created_at = EXCLUDED.created_at
"""

_PRESENT_SQL = """
SELECT venue_id::text AS venue_id
FROM venue_embeddings
WHERE venue_id::text = ANY($1::text[])
"""


class PgVenueEmbeddingRepository(VenueEmbeddingRepository):
    def __init__(self, pool) -> None:
        self._pool = pool

    async def load_all(self) -> list[tuple[str, list[float]]]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_LOAD_ALL_SQL)
        return [(r["venue_id"], list(r["embedding_vector"])) for r in rows]

    async def upsert(self, pairs: Iterable[tuple[str, VectorLike]], model: str) -> int:
        now = datetime.now(timezone.utc)
        args = [(vid, [float(x) for x in as_vector(vec)], model, now) for vid, vec in pairs]
        if not args:
            return 0
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(_UPSERT_SQL, args)
        return len(args)

    async def missing(self, venue_ids: Iterable[str]) -> list[str]:
        ids = list(venue_ids)
        if not ids:
            return []
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_PRESENT_SQL, ids)
        present = {r["venue_id"] for r in rows}
        return [vid for vid in ids if vid not in present]
