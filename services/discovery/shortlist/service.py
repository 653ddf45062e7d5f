"""
Shortlist: the venues a user has saved.

(user, venue) is unique. save() is idempotent: a second save returns the
existing entry untouched. remove() is a hard delete. toggle() flips between
the two and records the user's current taste score for the venue as a
snapshot, which is what the shortlist's taste_score sort uses later even if
the profile has since moved.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone

from services.discovery.db.venues import VenueRepository
from services.discovery.locks import KeyedLock
from services.discovery.ranking.engine import (
    OrderedPage,
    PageRequest,
    RankingEngine,
    SortMode,
    VenueFilter,
)
from services.discovery.types import ShortlistEntry, TasteProfile

logger = logging.getLogger(__name__)


class ShortlistRepository(ABC):
    @abstractmethod
    async def get(self, user_id: str, venue_id: str) -> ShortlistEntry | None:
        ...

    @abstractmethod
    async def list(self, user_id: str) -> list[ShortlistEntry]:
        ...

    @abstractmethod
    async def insert(self, entry: ShortlistEntry) -> ShortlistEntry:
        """Insert unless present. Returns whichever entry is stored afterwards."""

    @abstractmethod
    async def delete(self, user_id: str, venue_id: str) -> bool:
        ...


class InMemoryShortlistRepository(ShortlistRepository):
    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], ShortlistEntry] = {}

    async def get(self, user_id: str, venue_id: str) -> ShortlistEntry | None:
        return self._entries.get((user_id, venue_id))

    async def list(self, user_id: str) -> list[ShortlistEntry]:
        return [e for (uid, _), e in self._entries.items() if uid == user_id]

    async def insert(self, entry: ShortlistEntry) -> ShortlistEntry:
        return self._entries.setdefault((entry.user_id, entry.venue_id), entry)

    async def delete(self, user_id: str, venue_id: str) -> bool:
        return self._entries.pop((user_id, venue_id), None) is not None


_GET_SQL = """
SELECT user_id, venue_id, saved_at, taste_score_snapshot
FROM shortlist
WHERE user_id = $1 AND venue_id = $2
"""

_LIST_SQL = """
SELECT user_id, venue_id, saved_at, taste_score_snapshot
FROM shortlist
WHERE user_id = $1
"""

# UNIQUE (user_id, venue_id): a concurrent duplicate save inserts nothing.
_INSERT_SQL = """
INSERT INTO shortlist (id, user_id, venue_id, saved_at, taste_score_snapshot)
VALUES (gen_random_uuid()::text, $1, $2, $3, $4)
ON CONFLICT (user_id, venue_id) DO NOTHING
RETURNING user_id, venue_id, saved_at, taste_score_snapshot
"""

_DELETE_SQL = """
DELETE FROM shortlist
WHERE user_id = $1 AND venue_id = $2
"""


def _row_to_entry(row) -> ShortlistEntry:
    return ShortlistEntry(
        user_id=row["user_id"],
        venue_id=row["venue_id"],
        saved_at=row["saved_at"],
        taste_score_snapshot=row["taste_score_snapshot"],
    )


class PgShortlistRepository(ShortlistRepository):
    def __init__(self, pool) -> None:
        self._pool = pool

    async def get(self, user_id: str, venue_id: str) -> ShortlistEntry | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(_GET_SQL, user_id, venue_id)
        return _row_to_entry(row) if row else None

    async def list(self, user_id: str) -> list[ShortlistEntry]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_LIST_SQL, user_id)
        return [_row_to_entry(r) for r in rows]

    async def insert(self, entry: ShortlistEntry) -> ShortlistEntry:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                _INSERT_SQL,
                entry.user_id,
                entry.venue_id,
                entry.saved_at,
                entry.taste_score_snapshot,
            )
            if row is None:
                row = await conn.fetchrow(_GET_SQL, entry.user_id, entry.venue_id)
        return _row_to_entry(row)

    async def delete(self, user_id: str, venue_id: str) -> bool:
        async with self._pool.acquire() as conn:
            status = await conn.execute(_DELETE_SQL, user_id, venue_id)
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return status.rsplit(" ", 1)[-1] != "0"


@dataclass
class ToggleResult:
    saved: bool
    entry: ShortlistEntry | None


class ShortlistService:
    def __init__(
        self,
        repo: ShortlistRepository,
        venues: VenueRepository,
        ranking: RankingEngine,
    ) -> None:
        self._repo = repo
        self._venues = venues
        self._ranking = ranking
        self._locks = KeyedLock()

    async def save(
        self,
        user_id: str,
        venue_id: str,
        taste_score_snapshot: float | None = None,
        now: datetime | None = None,
    ) -> ShortlistEntry:
        await self._venues.require(venue_id)
        entry = ShortlistEntry(
            user_id=user_id,
            venue_id=venue_id,
            saved_at=now or datetime.now(timezone.utc),
            taste_score_snapshot=taste_score_snapshot,
        )
        return await self._repo.insert(entry)

    async def remove(self, user_id: str, venue_id: str) -> bool:
        return await self._repo.delete(user_id, venue_id)

    async def toggle(
        self,
        user_id: str,
        venue_id: str,
        profile: TasteProfile | None = None,
        now: datetime | None = None,
    ) -> ToggleResult:
        async with self._locks.hold((user_id, venue_id)):
            if await self._repo.get(user_id, venue_id) is not None:
                await self._repo.delete(user_id, venue_id)
                logger.debug("Shortlist remove %s/%s", user_id, venue_id)
                return ToggleResult(saved=False, entry=None)

            snapshot = self._ranking.taste_scores(profile, [venue_id]).get(venue_id)
            entry = await self.save(user_id, venue_id, snapshot, now)
            logger.debug("Shortlist save %s/%s score=%s", user_id, venue_id, snapshot)
            return ToggleResult(saved=True, entry=entry)

    async def venue_ids(self, user_id: str) -> set[str]:
        return {e.venue_id for e in await self._repo.list(user_id)}

    async def list(
        self,
        user_id: str,
        sort: SortMode = SortMode.DATE_SAVED,
        venue_filter: VenueFilter | None = None,
        page: PageRequest | None = None,
    ) -> OrderedPage:
        entries = await self._repo.list(user_id)
        venues = await self._venues.get_many(e.venue_id for e in entries)
        return self._ranking.rank(
            candidates=[venues[e.venue_id] for e in entries if e.venue_id in venues],
            # Saved venues stay visible even if later reclassified
            venue_filter=venue_filter or VenueFilter(wedding_only=False),
            sort=sort,
            page=page or PageRequest(),
            saved_at={e.venue_id: e.saved_at for e in entries},
            score_snapshots={e.venue_id: e.taste_score_snapshot for e in entries},
        )
