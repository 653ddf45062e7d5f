"""
Overpass API fetcher for venue candidates.

Builds a query for wedding-relevant OSM features inside one tile, POSTs it
with endpoint rotation and exponential backoff on retryable statuses, and
normalises the returned elements into RawVenueRecord rows for ingestion.

Usage:
    async with OverpassFetcher(settings.overpass_endpoints) as fetcher:
        report = await scheduler.run(region, 0.05, fetcher.fetch, timeout_s=120)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from services.discovery.crawl.tiles import BBox, Tile
from services.discovery.errors import FetchFailure

logger = logging.getLogger(__name__)

USER_AGENT = "wedding-venue-finder/0.1 (venue discovery crawler)"

RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})
MAX_ATTEMPTS_PER_ENDPOINT = 4
BASE_DELAY_S = 2.0

_NAME_PATTERN = "Estate|Garden|Ranch|Vineyard|Winery|Lodge|Inn|Chateau|Mansion|Barn|Retreat|Manor"

# Each filter is emitted for both node and way
_FEATURE_FILTERS: list[str] = [
    '["amenity"~"events_venue|conference_centre|wedding_venue"]',
    '["leisure"="resort"]',
    '["tourism"="hotel"]',
    '["leisure"="golf_course"]',
    '["amenity"="community_centre"]',
    '["historic"~"manor|castle|stately_house"]',
    f'["name"~"{_NAME_PATTERN}",i]',
]


def build_query(bbox: BBox, server_timeout_s: int = 90) -> str:
    """Overpass QL for all venue-like features inside bbox."""
    area = bbox.to_overpass()
    lines = [f"[out:json][timeout:{server_timeout_s}];", "("]
    for flt in _FEATURE_FILTERS:
        lines.append(f"  node{flt}{area};")
        lines.append(f"  way{flt}{area};")
    lines.append(");")
    lines.append("out body center;")
    return "\n".join(lines)


@dataclass(frozen=True)
class RawVenueRecord:
    osm_id: str
    name: str
    lat: float
    lng: float
    website_url: str | None
    tags: dict[str, Any] = field(default_factory=dict)


def elements_to_venues(elements: list[dict[str, Any]]) -> list[RawVenueRecord]:
    """
    Normalise Overpass elements. Ways carry their position in "center".
    Elements without coordinates are dropped; duplicates collapse by osm_id.
    """
    seen: set[str] = set()
    records: list[RawVenueRecord] = []
    for el in elements:
        tags = el.get("tags") or {}
        center = el.get("center") or {}
        lat = el.get("lat", center.get("lat"))
        lng = el.get("lon", center.get("lon"))
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            continue

        osm_id = f"{el.get('type')}/{el.get('id')}"
        if osm_id in seen:
            continue
        seen.add(osm_id)

        records.append(RawVenueRecord(
            osm_id=osm_id,
            name=tags.get("name") or "Unknown Venue",
            lat=float(lat),
            lng=float(lng),
            website_url=tags.get("website") or tags.get("contact:website") or tags.get("url"),
            tags=dict(tags),
        ))
    return records


class OverpassFetcher:
    """POSTs tile queries to Overpass. fetch() returns the raw element list."""

    def __init__(
        self,
        endpoints: list[str],
        *,
        client: httpx.AsyncClient | None = None,
        base_delay_s: float = BASE_DELAY_S,
        max_attempts: int = MAX_ATTEMPTS_PER_ENDPOINT,
    ) -> None:
        if not endpoints:
            raise ValueError("at least one Overpass endpoint is required")
        self._endpoints = list(endpoints)
        self._client = client
        self._owns_client = client is None
        self._base_delay_s = base_delay_s
        self._max_attempts = max_attempts

    async def __aenter__(self) -> "OverpassFetcher":
        if self._client is None:
            self._client = httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, tile: Tile) -> list[dict[str, Any]]:
        if self._client is None:
            raise RuntimeError("OverpassFetcher must be used as an async context manager")

        query = build_query(tile.fetch_bbox)
        last_error = "no endpoints tried"

        for endpoint in self._endpoints:
            for attempt in range(self._max_attempts):
                try:
                    resp = await self._client.post(
                        endpoint,
                        data={"data": query},
                        headers={"User-Agent": USER_AGENT},
                    )
                except httpx.TransportError as exc:
                    last_error = f"{endpoint}: {type(exc).__name__}"
                    logger.warning("Overpass transport error on %s: %s", endpoint, exc)
                    break

                if resp.status_code == 200:
                    body = resp.json()
                    elements = body.get("elements")
                    remark = body.get("remark") or ""
                    # Server-side timeouts and memory aborts still come back as 200
                    if "runtime error" in remark or not isinstance(elements, list):
                        reason = remark or "response has no elements"
                        logger.warning("Overpass %s aborted tile %s: %s", endpoint, tile.key, reason)
                        raise FetchFailure(tile.key, reason, timed_out="timed out" in reason)
                    return elements

                last_error = f"{endpoint}: HTTP {resp.status_code}"
                if resp.status_code not in RETRYABLE_STATUSES:
                    break

                if attempt < self._max_attempts - 1:
                    delay = self._base_delay_s * (2 ** attempt)
                    logger.warning(
                        "Overpass %s returned %d (attempt %d/%d), retrying in %.1fs",
                        endpoint, resp.status_code, attempt + 1, self._max_attempts, delay,
                    )
                    await asyncio.sleep(delay)

        raise FetchFailure(tile.key, last_error)
