"""
Shared router plumbing: service lookup, caller identity, query parsing and
response shaping.
"""

from __future__ import annotations

from typing import Any

from fastapi import Header, HTTPException, Query, Request

from services.discovery.config import settings
from services.discovery.discovery.service import DiscoveryService
from services.discovery.ranking.engine import (
    GeoRadius,
    OrderedPage,
    PageRequest,
    RankedVenue,
    VenueFilter,
)
from services.discovery.swipes.engine import LogEntry, SessionState
from services.discovery.types import PricingTier, TasteProfile, Venue


def get_service(request: Request) -> DiscoveryService:
    return request.app.state.discovery


def current_user(x_user_id: str = Header(..., alias="X-User-Id", min_length=1, max_length=128)) -> str:
    """Identity is asserted by the upstream auth layer."""
    return x_user_id


def envelope(request: Request, data: Any) -> dict:
    return {
        "success": True,
        "data": data,
        "requestId": request.state.request_id,
    }


def validation_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"code": "VALIDATION_ERROR", "message": message},
    )


# ---------------------------------------------------------------------------
# Query parameter dependencies
# ---------------------------------------------------------------------------


def venue_filter_params(
    pricing_tier: list[PricingTier] | None = Query(None, alias="pricingTier"),
    has_lodging: bool | None = Query(None, alias="hasLodging"),
    is_estate: bool | None = Query(None, alias="isEstate"),
    is_historic: bool | None = Query(None, alias="isHistoric"),
    lodging_capacity_min: int | None = Query(None, ge=0, alias="lodgingCapacityMin"),
    lat: float | None = Query(None, ge=-90, le=90),
    lng: float | None = Query(None, ge=-180, le=180),
    radius_m: float | None = Query(None, gt=0, alias="radiusM"),
) -> VenueFilter:
    near = None
    if radius_m is not None:
        if lat is None or lng is None:
            raise validation_error("radiusM requires lat and lng.")
        near = GeoRadius(lat=lat, lng=lng, radius_m=radius_m)
    return VenueFilter(
        pricing_tiers=frozenset(pricing_tier or ()),
        has_lodging=has_lodging,
        is_estate=is_estate,
        is_historic=is_historic,
        lodging_capacity_min=lodging_capacity_min,
        near=near,
    )


def page_params(
    limit: int = Query(settings.search_default_limit, ge=1, le=settings.search_max_limit),
    offset: int = Query(0, ge=0),
) -> PageRequest:
    return PageRequest(limit=limit, offset=offset)


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


def venue_to_dict(venue: Venue) -> dict:
    return {
        "id": venue.venue_id,
        "name": venue.name,
        "lat": venue.lat,
        "lng": venue.lng,
        "pricingTier": venue.pricing_tier.value if venue.pricing_tier else "unknown",
        "isWeddingVenue": venue.is_wedding_venue,
        "isEstate": venue.is_estate,
        "isHistoric": venue.is_historic,
        "hasLodging": venue.has_lodging,
        "lodgingCapacity": venue.lodging_capacity,
        "websiteUrl": venue.website_url,
    }


def ranked_to_dict(item: RankedVenue) -> dict:
    data = venue_to_dict(item.venue)
    data["tasteScore"] = item.taste_score
    if item.distance_m is not None:
        data["distanceM"] = round(item.distance_m, 1)
    if item.saved_at is not None:
        data["savedAt"] = item.saved_at.isoformat()
    return data


def page_to_dict(page: OrderedPage) -> dict:
    return {
        "results": [ranked_to_dict(i) for i in page.items],
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "offset": page.offset,
        "sort": page.sort.value,
        "requestedSort": page.requested_sort.value,
    }


def state_to_dict(state: SessionState) -> dict:
    data = {
        "context": state.context.value,
        "status": state.status.value,
        "remaining": len(state.remaining),
        "liked": sorted(state.liked),
        "skipped": sorted(state.skipped),
        "eventCount": state.event_count,
    }
    if state.reverted is not None:
        data["reverted"] = {
            "venueId": state.reverted.venue_id,
            "decision": state.reverted.decision.value,
            "sequence": state.reverted.sequence,
        }
    return data


def log_entry_to_dict(entry: LogEntry) -> dict:
    ev = entry.event
    data = {
        "sequence": ev.sequence,
        "venueId": ev.venue_id,
        "decision": ev.decision.value,
        "timestamp": ev.timestamp.isoformat(),
        "undone": entry.undone,
    }
    if ev.target_sequence is not None:
        data["targetSequence"] = ev.target_sequence
    return data


def profile_to_dict(profile: TasteProfile, include_vector: bool = False) -> dict:
    data = {
        "userId": profile.user_id,
        "confidence": round(profile.confidence, 4),
        "descriptiveWords": list(profile.descriptive_words),
        "generatedAt": profile.generated_at.isoformat(),
        "swipeCount": profile.swipe_count,
        "likeCount": profile.like_count,
        "undetermined": profile.is_undetermined,
    }
    if include_vector:
        data["vector"] = list(profile.vector)
    return data
