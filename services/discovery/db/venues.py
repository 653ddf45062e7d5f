"""
Venue catalog access.

The catalog is read far more than it is written: search, the discovery feed
and the shortlist all rank over catalog() and resolve ids with get_many().
Writes come from the crawler (upsert_crawled, keyed on osm_id) and from
enrichment jobs outside this service.
"""

from __future__ import annotations

import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone

from services.discovery.crawl.overpass import RawVenueRecord
from services.discovery.errors import NotFoundError
from services.discovery.types import Venue, parse_pricing_tier

logger = logging.getLogger(__name__)


class VenueRepository(ABC):
    @abstractmethod
    async def catalog(self) -> list[Venue]:
        """All active venues."""

    @abstractmethod
    async def get_many(self, venue_ids: Iterable[str]) -> dict[str, Venue]:
        ...

    @abstractmethod
    async def upsert_crawled(self, records: Iterable[RawVenueRecord], now: datetime | None = None) -> int:
        """Insert or refresh crawled venues by osm_id. Returns rows written."""

    async def get(self, venue_id: str) -> Venue | None:
        return (await self.get_many([venue_id])).get(venue_id)

    async def require(self, venue_id: str) -> Venue:
        venue = await self.get(venue_id)
        if venue is None:
            raise NotFoundError("venue", venue_id)
        return venue


class InMemoryVenueRepository(VenueRepository):
    def __init__(self, venues: Iterable[Venue] = ()) -> None:
        self._venues: dict[str, Venue] = {}
        self._by_osm: dict[str, str] = {}
        for v in venues:
            self.put(v)

    def put(self, venue: Venue) -> None:
        self._venues[venue.venue_id] = venue

    async def catalog(self) -> list[Venue]:
        return list(self._venues.values())

    async def get_many(self, venue_ids: Iterable[str]) -> dict[str, Venue]:
        return {vid: self._venues[vid] for vid in venue_ids if vid in self._venues}

    async def upsert_crawled(self, records: Iterable[RawVenueRecord], now: datetime | None = None) -> int:
        written = 0
        for rec in records:
            venue_id = self._by_osm.get(rec.osm_id)
            if venue_id is None:
                venue_id = str(uuid.uuid4())
                self._by_osm[rec.osm_id] = venue_id
                self._venues[venue_id] = Venue(
                    venue_id=venue_id, name=rec.name, lat=rec.lat, lng=rec.lng,
                    website_url=rec.website_url,
                )
            else:
                self._venues[venue_id] = replace(
                    self._venues[venue_id],
                    name=rec.name, lat=rec.lat, lng=rec.lng, website_url=rec.website_url,
                )
            written += 1
        return written


_VENUE_COLUMNS = """
    venue_id::text AS venue_id, name, lat, lng, pricing_tier::text AS pricing_tier,
    is_wedding_venue, is_estate, is_historic, has_lodging, lodging_capacity,
    website_url, raw_markdown
"""

_CATALOG_SQL = f"""
SELECT {_VENUE_COLUMNS}
FROM venues
WHERE is_active = true
"""

_GET_MANY_SQL = f"""
SELECT {_VENUE_COLUMNS}
FROM venues
WHERE venue_id::text = ANY($1::text[])
"""

# Crawled rows only refresh source fields; enrichment columns are untouched.
_UPSERT_CRAWLED_SQL = """
INSERT INTO venues (osm_id, name, website_url, lat, lng, osm_metadata, is_active, last_crawled_at)
VALUES ($1, $2, $3, $4, $5, $6::jsonb, true, $7)
ON CONFLICT (osm_id) DO UPDATE
SET name = EXCLUDED.name,
    website_url = EXCLUDED.website_url,
    lat = EXCLUDED.lat,
    lng = EXCLUDED.lng,
    osm_metadata = EXCLUDED.osm_metadata,
    last_crawled_at = EXCLUDED.last_crawled_at,
    updated_at = now()
"""


def _row_to_venue(row) -> Venue:
    return Venue(
        venue_id=row["venue_id"],
        name=row["name"],
        lat=row["lat"],
        lng=row["lng"],
        pricing_tier=parse_pricing_tier(row["pricing_tier"]),
        is_wedding_venue=bool(row["is_wedding_venue"]),
        is_estate=bool(row["is_estate"]),
        is_historic=bool(row["is_historic"]),
        has_lodging=bool(row["has_lodging"]),
        lodging_capacity=row["lodging_capacity"],
        website_url=row["website_url"],
        raw_markdown=row["raw_markdown"],
    )


class PgVenueRepository(VenueRepository):
    def __init__(self, pool) -> None:
        self._pool = pool

    async def catalog(self) -> list[Venue]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_CATALOG_SQL)
        return [_row_to_venue(r) for r in rows]

    async def get_many(self, venue_ids: Iterable[str]) -> dict[str, Venue]:
        ids = list(dict.fromkeys(venue_ids))
        if not ids:
            return {}
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_GET_MANY_SQL, ids)
        return {r["venue_id"]: _row_to_venue(r) for r in rows}

    async def upsert_crawled(self, records: Iterable[RawVenueRecord], now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        args = [
            (r.osm_id, r.name, r.website_url, r.lat, r.lng, json.dumps(r.tags), now)
            for r in records
        ]
        if not args:
            return 0
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(_UPSERT_CRAWLED_SQL, args)
        logger.debug("Upserted %d crawled venues", len(args))
        return len(args)
