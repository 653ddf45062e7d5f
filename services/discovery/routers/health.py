"""
Liveness plus a readiness hint.

Reports "degraded" while no venue vectors are loaded: search still answers,
but every taste sort falls back to name order.
"""

from fastapi import APIRouter, Request

from services.discovery.routers._deps import envelope

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    state = request.app.state
    embeddings = getattr(state, "embeddings", None)
    loaded = len(embeddings) if embeddings is not None else 0
    return envelope(request, {
        "status": "healthy" if loaded else "degraded",
        "version": state.settings.app_version,
        "embeddings": loaded,
        "embeddingDim": state.settings.embedding_dim,
    })
