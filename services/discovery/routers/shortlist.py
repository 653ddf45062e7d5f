"""
Shortlist endpoints.

  GET  /shortlist                      saved venues, default newest first
  POST /shortlist/{venue_id}/toggle    save or unsave
"""

from dataclasses import replace
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from services.discovery.discovery.service import DiscoveryService
from services.discovery.ranking.engine import PageRequest, SortMode, VenueFilter
from services.discovery.routers._deps import (
    current_user,
    envelope,
    get_service,
    page_params,
    page_to_dict,
    venue_filter_params,
)

router = APIRouter(prefix="/shortlist", tags=["shortlist"])


class ToggleResponse(BaseModel):
    success: bool
    data: dict
    requestId: str


@router.get("")
async def get_shortlist(
    request: Request,
    sort: Literal["date_saved", "taste_score", "pricing_tier", "name"] = Query("date_saved"),
    venue_filter: VenueFilter = Depends(venue_filter_params),
    page: PageRequest = Depends(page_params),
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    # Saved venues stay listed even if no longer classified as wedding venues
    venue_filter = replace(venue_filter, wedding_only=False)
    result = await service.shortlist(user_id, SortMode(sort), venue_filter, page)
    return envelope(request, page_to_dict(result))


@router.post("/{venue_id}/toggle", response_model=ToggleResponse)
async def toggle_shortlist(
    venue_id: str,
    request: Request,
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> ToggleResponse:
    result = await service.toggle_shortlist(user_id, venue_id)
    data = {"venueId": venue_id, "saved": result.saved}
    if result.entry is not None:
        data["savedAt"] = result.entry.saved_at.isoformat()
        data["tasteScoreSnapshot"] = result.entry.taste_score_snapshot
    return ToggleResponse(success=True, data=data, requestId=request.state.request_id)
