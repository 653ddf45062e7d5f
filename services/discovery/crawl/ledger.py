"""
TileLedger: which map tiles have been crawled, when, and how many elements
each yielded.

Contract:
  lookup(tile_key)        -> TileRecord | None
  lookup_many(tile_keys)  -> {tile_key: TileRecord}
  record(tile_key, element_count, collected_at)  idempotent upsert

Re-collection fully replaces collected_at/element_count (last writer wins).
An element_count of 0 is a real result ("crawled, nothing there") and is
never confused with an absent record. Writes are the only mutation path;
there is no delete in normal operation.

Two implementations:
  InMemoryTileLedger  keyed asyncio locks, used by tests and dry runs
  PgTileLedger        collected_tiles table, single-statement upsert
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from services.discovery.locks import KeyedLock

logger = logging.getLogger(__name__)

DEFAULT_STALENESS = timedelta(days=30)


@dataclass(frozen=True)
class TileRecord:
    tile_key: str
    collected_at: datetime | None
    element_count: int


@dataclass(frozen=True)
class LedgerSummary:
    tiles: int
    elements: int


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def is_fresh(
    record: TileRecord | None,
    now: datetime,
    staleness: timedelta = DEFAULT_STALENESS,
) -> bool:
    """True when the tile was collected within the staleness window."""
    if record is None or record.collected_at is None:
        return False
    return _as_utc(now) - _as_utc(record.collected_at) <= staleness


class TileLedger(ABC):
    """Abstract ledger. Subclasses own storage and per-key atomicity."""

    @abstractmethod
    async def lookup(self, tile_key: str) -> TileRecord | None:
        ...

    @abstractmethod
    async def record(
        self,
        tile_key: str,
        element_count: int,
        collected_at: datetime,
    ) -> TileRecord:
        ...

    @abstractmethod
    async def summary(self) -> LedgerSummary:
        ...

    async def lookup_many(self, tile_keys: Iterable[str]) -> dict[str, TileRecord]:
        found: dict[str, TileRecord] = {}
        for key in tile_keys:
            rec = await self.lookup(key)
            if rec is not None:
                found[key] = rec
        return found

    @staticmethod
    def _validate(element_count: int) -> None:
        if element_count < 0:
            raise ValueError(f"element_count must be >= 0, got {element_count}")


class InMemoryTileLedger(TileLedger):
    def __init__(self) -> None:
        self._records: dict[str, TileRecord] = {}
        self._locks = KeyedLock()

    async def lookup(self, tile_key: str) -> TileRecord | None:
        return self._records.get(tile_key)

    async def record(
        self,
        tile_key: str,
        element_count: int,
        collected_at: datetime,
    ) -> TileRecord:
        self._validate(element_count)
        rec = TileRecord(tile_key, _as_utc(collected_at), element_count)
        async with self._locks.hold(tile_key):
            self._records[tile_key] = rec
        return rec

    async def summary(self) -> LedgerSummary:
        records = list(self._records.values())
        return LedgerSummary(
            tiles=len(records),
            elements=sum(r.element_count for r in records),
        )

    def __len__(self) -> int:
        return len(self._records)


# ---------------------------------------------------------------------------
# Postgres
# ---------------------------------------------------------------------------

_LOOKUP_SQL = """
SELECT tile_key, collected_at, element_count
FROM collected_tiles
WHERE tile_key = $1
"""

_LOOKUP_MANY_SQL = """
SELECT tile_key, collected_at, element_count
FROM collected_tiles
WHERE tile_key = ANY($1::text[])
"""

# One statement: the row lock taken by ON CONFLICT serialises writers per key.
_UPSERT_SQL = """
INSERT INTO collected_tiles (tile_key, collected_at, element_count)
VALUES ($1, $2, $3)
ON CONFLICT (tile_key) DO UPDATE
SET collected_at = EXCLUDED.collected_at,
    element_count = EXCLUDED.element_count
RETURNING tile_key, collected_at, element_count
"""

_SUMMARY_SQL = """
SELECT COUNT(*) AS tiles, COALESCE(SUM(element_count), 0) AS elements
FROM collected_tiles
"""


def _row_to_record(row) -> TileRecord:
    return TileRecord(
        tile_key=row["tile_key"],
        collected_at=row["collected_at"],
        element_count=row["element_count"],
    )


class PgTileLedger(TileLedger):
    """collected_tiles(tile_key PK, collected_at, element_count) via asyncpg."""

    def __init__(self, pool) -> None:
        self._pool = pool

    async def lookup(self, tile_key: str) -> TileRecord | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(_LOOKUP_SQL, tile_key)
        return _row_to_record(row) if row else None

    async def lookup_many(self, tile_keys: Iterable[str]) -> dict[str, TileRecord]:
        keys = list(tile_keys)
        if not keys:
            return {}
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_LOOKUP_MANY_SQL, keys)
        return {row["tile_key"]: _row_to_record(row) for row in rows}

    async def record(
        self,
        tile_key: str,
        element_count: int,
        collected_at: datetime,
    ) -> TileRecord:
        self._validate(element_count)
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                _UPSERT_SQL, tile_key, _as_utc(collected_at), element_count
            )
        logger.debug("Recorded tile %s (%d elements)", tile_key, element_count)
        return _row_to_record(row)

    async def summary(self) -> LedgerSummary:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(_SUMMARY_SQL)
        return LedgerSummary(tiles=int(row["tiles"]), elements=int(row["elements"]))
