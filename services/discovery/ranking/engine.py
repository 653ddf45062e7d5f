"""
RankingEngine: filter, order and paginate venues.

Filtering is AND across facets; multiple pricing tiers within the tier facet
are OR'd. Sorting:

  taste_score   cosine to the taste profile, descending. Venues without an
                embedding follow all embedded venues. With no profile (or an
                undetermined one) the sort falls back to name ordering.
  pricing_tier  low, medium, high, luxury, then unknown
  name          case-insensitive
  date_saved    newest first (shortlist only; unsaved venues last)

Every sort ends in ascending venue id, so identical (filter, sort, page)
requests against unchanged data always return the same slice.

Pure: no I/O, safe to call concurrently for different users.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from services.discovery.embedding.store import EmbeddingStore
from services.discovery.types import PRICING_ORDER, PricingTier, TasteProfile, Venue

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000.0


class SortMode(str, Enum):
    TASTE_SCORE = "taste_score"
    PRICING_TIER = "pricing_tier"
    NAME = "name"
    DATE_SAVED = "date_saved"


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dp = p2 - p1
    dl = math.radians(lng2 - lng1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


@dataclass(frozen=True)
class GeoRadius:
    lat: float
    lng: float
    radius_m: float


@dataclass(frozen=True)
class VenueFilter:
    pricing_tiers: frozenset[PricingTier] = field(default_factory=frozenset)
    has_lodging: bool | None = None
    is_estate: bool | None = None
    is_historic: bool | None = None
    lodging_capacity_min: int | None = None
    near: GeoRadius | None = None
    wedding_only: bool = True

    def matches(self, venue: Venue) -> bool:
        if self.wedding_only and not venue.is_wedding_venue:
            return False
        if self.pricing_tiers and venue.pricing_tier not in self.pricing_tiers:
            return False
        if self.has_lodging is not None and venue.has_lodging != self.has_lodging:
            return False
        if self.is_estate is not None and venue.is_estate != self.is_estate:
            return False
        if self.is_historic is not None and venue.is_historic != self.is_historic:
            return False
        if self.lodging_capacity_min is not None:
            if venue.lodging_capacity is None or venue.lodging_capacity < self.lodging_capacity_min:
                return False
        if self.near is not None:
            if venue.lat is None or venue.lng is None:
                return False
            if haversine_m(self.near.lat, self.near.lng, venue.lat, venue.lng) > self.near.radius_m:
                return False
        return True


@dataclass(frozen=True)
class PageRequest:
    limit: int = 20
    offset: int = 0

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.offset < 0:
            raise ValueError("offset must be >= 0")


@dataclass
class RankedVenue:
    venue: Venue
    taste_score: float | None = None
    distance_m: float | None = None
    saved_at: datetime | None = None


@dataclass
class OrderedPage:
    items: list[RankedVenue]
    total: int
    limit: int
    offset: int
    sort: SortMode
    requested_sort: SortMode

    @property
    def page(self) -> int:
        return self.offset // self.limit + 1

    @property
    def fell_back(self) -> bool:
        return self.sort is not self.requested_sort


class RankingEngine:
    def __init__(self, embeddings: EmbeddingStore) -> None:
        self._embeddings = embeddings

    def taste_scores(self, profile: TasteProfile | None, venue_ids: Iterable[str]) -> dict[str, float]:
        """Cosine per venue with an embedding. Empty without a usable profile."""
        if profile is None or profile.is_undetermined:
            return {}
        scores: dict[str, float] = {}
        for vid in venue_ids:
            score = self._embeddings.score(profile.vector, vid)
            if score is not None:
                scores[vid] = score
        return scores

    def rank(
        self,
        candidates: Iterable[Venue],
        venue_filter: VenueFilter,
        sort: SortMode,
        page: PageRequest,
        profile: TasteProfile | None = None,
        saved_at: Mapping[str, datetime] | None = None,
        score_snapshots: Mapping[str, float | None] | None = None,
    ) -> OrderedPage:
        matched = [v for v in candidates if venue_filter.matches(v)]

        if score_snapshots is not None:
            scores = {vid: s for vid, s in score_snapshots.items() if s is not None}
        else:
            scores = self.taste_scores(profile, (v.venue_id for v in matched))

        applied = sort
        if sort is SortMode.TASTE_SCORE and not scores and (profile is None or profile.is_undetermined):
            applied = SortMode.NAME
            logger.debug("taste_score sort without a usable profile, falling back to name")

        saved = saved_at or {}
        near = venue_filter.near
        ranked = [
            RankedVenue(
                venue=v,
                taste_score=scores.get(v.venue_id),
                distance_m=(
                    haversine_m(near.lat, near.lng, v.lat, v.lng)
                    if near is not None and v.lat is not None and v.lng is not None
                    else None
                ),
                saved_at=saved.get(v.venue_id),
            )
            for v in matched
        ]
        ranked.sort(key=_sort_key(applied))

        window = ranked[page.offset: page.offset + page.limit]
        return OrderedPage(
            items=window,
            total=len(ranked),
            limit=page.limit,
            offset=page.offset,
            sort=applied,
            requested_sort=sort,
        )


def _sort_key(mode: SortMode):
    if mode is SortMode.TASTE_SCORE:
        def key(r: RankedVenue):
            if r.taste_score is None:
                return (1, 0.0, r.venue.venue_id)
            return (0, -r.taste_score, r.venue.venue_id)
    elif mode is SortMode.PRICING_TIER:
        def key(r: RankedVenue):
            return (PRICING_ORDER[r.venue.pricing_tier], r.venue.venue_id)
    elif mode is SortMode.DATE_SAVED:
        def key(r: RankedVenue):
            if r.saved_at is None:
                return (1, 0.0, r.venue.venue_id)
            return (0, -r.saved_at.timestamp(), r.venue.venue_id)
    else:
        def key(r: RankedVenue):
            return (r.venue.name.casefold(), r.venue.venue_id)
    return key
