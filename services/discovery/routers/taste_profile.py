"""
Taste profile endpoints.

  GET  /taste-profile            current profile (404 before the first build)
  POST /taste-profile/generate   close onboarding and build from its swipes
  POST /taste-profile/refine     rebuild from all live swipes
"""

import logging

from fastapi import APIRouter, Depends, Query, Request

from services.discovery.discovery.service import DiscoveryService
from services.discovery.routers._deps import current_user, envelope, get_service, profile_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/taste-profile", tags=["taste-profile"])


@router.get("")
async def get_taste_profile(
    request: Request,
    include_vector: bool = Query(False, alias="includeVector"),
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    profile = await service.get_profile(user_id)
    return envelope(request, profile_to_dict(profile, include_vector))


@router.post("/generate")
async def generate_taste_profile(
    request: Request,
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    profile = await service.generate_profile(user_id)
    logger.info(
        "profile_generated user=%s likes=%d confidence=%.3f",
        user_id, profile.like_count, profile.confidence,
    )
    return envelope(request, profile_to_dict(profile))


@router.post("/refine")
async def refine_taste_profile(
    request: Request,
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    profile = await service.refine_profile(user_id)
    return envelope(request, profile_to_dict(profile))
