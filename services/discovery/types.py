"""
Domain dataclasses shared across the discovery core.

Venue, SwipeEvent, TasteProfile and ShortlistEntry are the canonical shapes
passed between the swipe engine, the taste builder, ranking and the
persistence layer. Rows from Postgres are converted into these at the
repository boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class PricingTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    LUXURY = "luxury"


# Sort position for pricing; unknown/None sorts last
PRICING_ORDER: dict[PricingTier | None, int] = {
    PricingTier.LOW: 1,
    PricingTier.MEDIUM: 2,
    PricingTier.HIGH: 3,
    PricingTier.LUXURY: 4,
    None: 5,
}


def parse_pricing_tier(raw: str | None) -> PricingTier | None:
    """DB rows carry 'unknown' for unclassified venues."""
    if raw is None or raw == "unknown":
        return None
    return PricingTier(raw)


class SessionContext(str, Enum):
    ONBOARDING = "onboarding"
    DISCOVERY = "discovery"


class Decision(str, Enum):
    LIKE = "like"
    SKIP = "skip"
    UNDO = "undo"


@dataclass(frozen=True)
class Venue:
    venue_id: str
    name: str
    lat: float | None = None
    lng: float | None = None
    pricing_tier: PricingTier | None = None
    is_wedding_venue: bool = True
    is_estate: bool = False
    is_historic: bool = False
    has_lodging: bool = False
    lodging_capacity: int | None = None
    website_url: str | None = None
    raw_markdown: str | None = None


@dataclass(frozen=True)
class SwipeEvent:
    """
    One entry of the append-only decision log.

    For decision == UNDO, target_sequence is the sequence of the like/skip
    being reverted and venue_id repeats that entry's venue.
    """

    user_id: str
    context: SessionContext
    sequence: int
    venue_id: str
    decision: Decision
    timestamp: datetime
    target_sequence: int | None = None


@dataclass(frozen=True)
class TasteProfile:
    """
    Immutable so replacement is a single reference swap: readers see the old
    profile or the new one, never a mix.
    """

    user_id: str
    vector: tuple[float, ...]
    confidence: float
    descriptive_words: tuple[str, ...]
    generated_at: datetime
    swipe_count: int
    like_count: int = 0

    @property
    def is_undetermined(self) -> bool:
        """No likes folded in: the vector is only the catalog-wide default."""
        return self.like_count == 0


@dataclass(frozen=True)
class ShortlistEntry:
    user_id: str
    venue_id: str
    saved_at: datetime
    taste_score_snapshot: float | None = None


@dataclass
class VenueAttributes:
    """Attribute flags of a liked venue, as consumed by the taste builder."""

    is_estate: bool = False
    is_historic: bool = False
    has_lodging: bool = False
    pricing_tier: PricingTier | None = None

    @classmethod
    def from_venue(cls, venue: Venue) -> "VenueAttributes":
        return cls(
            is_estate=venue.is_estate,
            is_historic=venue.is_historic,
            has_lodging=venue.has_lodging,
            pricing_tier=venue.pricing_tier,
        )
