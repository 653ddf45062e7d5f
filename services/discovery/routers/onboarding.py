"""Onboarding: POST /onboarding/start opens (or resumes) the seed swipe session."""

from fastapi import APIRouter, Depends, Request

from services.discovery.discovery.service import DiscoveryService
from services.discovery.routers._deps import (
    current_user,
    envelope,
    get_service,
    ranked_to_dict,
    state_to_dict,
)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


@router.post("/start")
async def start_onboarding(
    request: Request,
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    view = await service.start_onboarding(user_id)
    return envelope(request, {
        "session": state_to_dict(view.state),
        "venues": [ranked_to_dict(v) for v in view.upcoming],
    })
