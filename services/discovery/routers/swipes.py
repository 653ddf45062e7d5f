"""
Swipe endpoints.

  POST /swipes                     like or skip a venue
  POST /swipes/undo                revert the latest live decision in a context
  GET  /swipes/session/{context}   session status plus the next venues to show
  GET  /swipes/history/{context}   every logged decision, with undone flags

Onboarding swipes are limited to the user's seed list; discovery swipes
draw from the catalog minus anything already decided or shortlisted.
"""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from services.discovery.discovery.service import DiscoveryService
from services.discovery.routers._deps import (
    current_user,
    envelope,
    get_service,
    log_entry_to_dict,
    ranked_to_dict,
    state_to_dict,
)
from services.discovery.types import Decision, SessionContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/swipes", tags=["swipes"])


class SwipeRequest(BaseModel):
    venueId: str = Field(..., min_length=1, max_length=128)
    decision: Literal["like", "skip"]
    context: SessionContext = SessionContext.DISCOVERY


class UndoRequest(BaseModel):
    context: SessionContext = SessionContext.DISCOVERY


@router.post("")
async def submit_swipe(
    body: SwipeRequest,
    request: Request,
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    result = await service.swipe(user_id, body.context, body.venueId, Decision(body.decision))
    return envelope(request, {
        "session": state_to_dict(result.state),
        "profileUpdated": result.profile_updated,
    })


@router.post("/undo")
async def undo_swipe(
    body: UndoRequest,
    request: Request,
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    state = await service.undo(user_id, body.context)
    return envelope(request, {"session": state_to_dict(state)})


@router.get("/session/{context}")
async def session_state(
    context: SessionContext,
    request: Request,
    limit: int = Query(10, ge=1, le=50),
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    view = await service.session(user_id, context, limit)
    return envelope(request, {
        "session": state_to_dict(view.state),
        "upcoming": [ranked_to_dict(v) for v in view.upcoming],
    })


@router.get("/history/{context}")
async def swipe_history(
    context: SessionContext,
    request: Request,
    user_id: str = Depends(current_user),
    service: DiscoveryService = Depends(get_service),
) -> dict:
    entries = await service.history(user_id, context)
    return envelope(request, {
        "context": context.value,
        "events": [log_entry_to_dict(e) for e in entries],
    })
