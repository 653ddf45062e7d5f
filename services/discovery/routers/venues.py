"""
Venue endpoints.

  GET /venues/search       filter + sort + paginate the catalog
  GET /venues/{venue_id}   one venue with the caller's taste score

Pricing tiers are OR'd (repeat pricingTier); every other facet is AND'd.
sort=taste_score without a usable profile comes back sorted by name, and
data.sort reports what was applied.
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query, Request

from services.discovery.discovery.service import DiscoveryService
from services.discovery.ranking.engine import PageRequest, SortMode, VenueFilter
from services.discovery.routers._deps import (
    current_user,
    envelope,
    get_service,
    page_params,
    page_to_dict,
    ranked_to_dict,
    venue_filter_params,
)

router = APIRouter(prefix="/venues", tags=["venues"])


@router.get("/search")
async def search_venues(
    request: Request,
    sort: Literal["taste_score", "pricing_tier", "name"] = Query("taste_score"),
    venue_filter: VenueFilter = Depends(venue_filter_params),
    page: PageRequest = Depends(page_params),
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    result = await service.search(user_id, venue_filter, SortMode(sort), page)
    return envelope(request, page_to_dict(result))


@router.get("/{venue_id}")
async def get_venue(
    venue_id: str,
    request: Request,
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    detail = await service.venue_detail(user_id, venue_id)
    data = ranked_to_dict(detail.ranked)
    data["shortlisted"] = detail.shortlisted
    return envelope(request, data)
