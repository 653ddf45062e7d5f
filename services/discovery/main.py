"""
Venue discovery FastAPI service: swipes, taste profiles, search, shortlist.

Entrypoint: uvicorn services.discovery.main:app --host 0.0.0.0 --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from services.discovery.config import settings
from services.discovery.db.embeddings import PgVenueEmbeddingRepository
from services.discovery.db.engine import create_pool
from services.discovery.db.venues import PgVenueRepository, VenueRepository
from services.discovery.discovery.service import DiscoveryService
from services.discovery.embedding.store import EmbeddingStore
from services.discovery.errors import DimensionMismatchError, DiscoveryError
from services.discovery.middleware.cors import setup_cors
from services.discovery.middleware.sentry import setup_sentry
from services.discovery.ranking.engine import RankingEngine
from services.discovery.routers import health, onboarding, shortlist, swipes, taste_profile, venues
from services.discovery.shortlist.service import (
    PgShortlistRepository,
    ShortlistRepository,
    ShortlistService,
)
from services.discovery.swipes.log import PgSwipeLog, SwipeLogRepository
from services.discovery.taste.builder import TasteProfileBuilder
from services.discovery.taste.profiles import PgProfileStore, ProfileStore

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "DATA_INTEGRITY": 500,
}


def build_service(
    *,
    venues: VenueRepository,
    embeddings: EmbeddingStore,
    swipe_log: SwipeLogRepository,
    profiles: ProfileStore,
    shortlist_repo: ShortlistRepository,
) -> DiscoveryService:
    """Assemble the service graph from settings and the given storage."""
    ranking = RankingEngine(embeddings)
    return DiscoveryService(
        venues=venues,
        embeddings=embeddings,
        swipe_log=swipe_log,
        profiles=profiles,
        shortlist=ShortlistService(shortlist_repo, venues, ranking),
        builder=TasteProfileBuilder(
            settings.embedding_dim,
            damping=settings.taste_damping,
            like_saturation=settings.taste_like_saturation,
            word_threshold=settings.taste_word_threshold,
            max_words=settings.taste_max_words,
        ),
        ranking=ranking,
        onboarding_venue_count=settings.onboarding_venue_count,
        min_onboarding_likes=settings.min_onboarding_likes,
        live_profile_updates=settings.live_profile_updates,
        live_update_learning_rate=settings.live_update_learning_rate,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    setup_sentry()
    app.state.settings = settings

    db_pool = await create_pool()
    app.state.db = db_pool

    # Venue vectors are served from memory; Postgres is the system of record
    embeddings = EmbeddingStore(settings.embedding_dim)
    embeddings.load(await PgVenueEmbeddingRepository(db_pool).load_all())
    app.state.embeddings = embeddings

    app.state.discovery = build_service(
        venues=PgVenueRepository(db_pool),
        embeddings=embeddings,
        swipe_log=PgSwipeLog(db_pool),
        profiles=PgProfileStore(db_pool),
        shortlist_repo=PgShortlistRepository(db_pool),
    )
    logger.info("Discovery service ready: %d venue embeddings", len(embeddings))

    yield

    await db_pool.close()


app = FastAPI(
    title="Venue Discovery API",
    version=settings.app_version,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(swipes.router)
app.include_router(onboarding.router)
app.include_router(taste_profile.router)
app.include_router(venues.router)
app.include_router(shortlist.router)

# -- Middleware (order matters: last added = outermost in Starlette) --

# CORS (needs to be outermost to handle preflight)
setup_cors(app)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# -- Exception Handlers --


def _error(request: Request, status_code: int, code: str, message) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message},
            "requestId": getattr(request.state, "request_id", str(uuid.uuid4())),
        },
    )


@app.exception_handler(DiscoveryError)
async def discovery_error_handler(request: Request, exc: DiscoveryError) -> JSONResponse:
    status_code = _STATUS_BY_CODE.get(exc.code, 500)
    if isinstance(exc, DimensionMismatchError):
        logger.error("Embedding integrity error on %s: %s", request.url.path, exc)
        return _error(request, status_code, exc.code, "Stored embedding data is inconsistent.")
    return _error(request, status_code, exc.code, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return _error(request, 422, "VALIDATION_ERROR", errors)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        return _error(request, exc.status_code, exc.detail["code"], exc.detail.get("message", ""))
    code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
    return _error(request, exc.status_code, code, str(exc.detail))


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc) -> JSONResponse:
    return _error(request, 500, "INTERNAL_ERROR", "An unexpected error occurred.")
