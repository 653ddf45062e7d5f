"""
DiscoveryService: the operations behind the HTTP API.

Wires the swipe engine, taste builder, profile store, ranking engine and
shortlist together. Each public method is one API operation; routers only
translate HTTP to these calls and back.

Flow:
    start_onboarding -> swipe (onboarding) ... -> generate_profile
    -> swipe (discovery, live nudges) ... -> refine_profile
    search / session view / shortlist rank against the current profile.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone

from services.discovery.db.venues import VenueRepository
from services.discovery.embedding.store import EmbeddingStore
from services.discovery.errors import InsufficientSwipesError
from services.discovery.locks import KeyedLock
from services.discovery.ranking.engine import (
    OrderedPage,
    PageRequest,
    RankedVenue,
    RankingEngine,
    SortMode,
    VenueFilter,
)
from services.discovery.shortlist.service import ShortlistService, ToggleResult
from services.discovery.swipes.engine import LogEntry, SessionState, SwipeFeedbackEngine
from services.discovery.swipes.log import SwipeLogRepository
from services.discovery.taste.builder import DEFAULT_LEARNING_RATE, TasteProfileBuilder
from services.discovery.taste.profiles import ProfileStore
from services.discovery.types import (
    Decision,
    SessionContext,
    TasteProfile,
    VenueAttributes,
)

logger = logging.getLogger(__name__)


@dataclass
class SessionView:
    state: SessionState
    upcoming: list[RankedVenue] = field(default_factory=list)


@dataclass
class SwipeResult:
    state: SessionState
    profile_updated: bool = False


@dataclass
class VenueDetail:
    ranked: RankedVenue
    shortlisted: bool


class DiscoveryService:
    def __init__(
        self,
        *,
        venues: VenueRepository,
        embeddings: EmbeddingStore,
        swipe_log: SwipeLogRepository,
        profiles: ProfileStore,
        shortlist: ShortlistService,
        builder: TasteProfileBuilder,
        ranking: RankingEngine,
        onboarding_venue_count: int = 10,
        min_onboarding_likes: int = 0,
        live_profile_updates: bool = True,
        live_update_learning_rate: float = DEFAULT_LEARNING_RATE,
    ) -> None:
        self._venues = venues
        self._embeddings = embeddings
        self._profiles = profiles
        self._shortlist = shortlist
        self._builder = builder
        self._ranking = ranking
        self._onboarding_venue_count = onboarding_venue_count
        self._min_onboarding_likes = min_onboarding_likes
        self._live_profile_updates = live_profile_updates
        self._learning_rate = live_update_learning_rate
        self._profile_locks = KeyedLock()
        self.swipes = SwipeFeedbackEngine(swipe_log, self._discovery_pool)

    # ------------------------------------------------------------------
    # Swipes
    # ------------------------------------------------------------------

    async def start_onboarding(self, user_id: str, now: datetime | None = None) -> SessionView:
        """Open (or resume) onboarding with a per-user seeded sample of embedded venues."""
        catalog = await self._venues.catalog()
        eligible = sorted(
            v.venue_id for v in catalog if v.is_wedding_venue and v.venue_id in self._embeddings
        )
        # Seeded by user id: the same user always gets the same sample
        rng = random.Random(user_id)
        seeds = rng.sample(eligible, min(self._onboarding_venue_count, len(eligible)))
        state = await self.swipes.start_onboarding(user_id, seeds, now)
        return await self._view(user_id, state, limit=len(state.remaining) or 1)

    async def swipe(
        self,
        user_id: str,
        context: SessionContext,
        venue_id: str,
        decision: Decision,
        now: datetime | None = None,
    ) -> SwipeResult:
        if decision is Decision.LIKE:
            state = await self.swipes.like(user_id, context, venue_id, now)
        elif decision is Decision.SKIP:
            state = await self.swipes.skip(user_id, context, venue_id, now)
        else:
            raise ValueError("use undo() to revert a decision")

        updated = False
        if (
            decision is Decision.LIKE
            and context is SessionContext.DISCOVERY
            and self._live_profile_updates
        ):
            updated = await self._nudge(user_id, venue_id, now)
        return SwipeResult(state=state, profile_updated=updated)

    async def undo(self, user_id: str, context: SessionContext, now: datetime | None = None) -> SessionState:
        return await self.swipes.undo(user_id, context, now)

    async def session(self, user_id: str, context: SessionContext, limit: int = 10) -> SessionView:
        state = await self.swipes.state(user_id, context)
        return await self._view(user_id, state, limit)

    async def history(self, user_id: str, context: SessionContext) -> list[LogEntry]:
        """Full decision log for one context, undo events included."""
        return await self.swipes.history(user_id, context)

    # ------------------------------------------------------------------
    # Taste profile
    # ------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> TasteProfile:
        return await self._profiles.require(user_id)

    async def generate_profile(self, user_id: str, now: datetime | None = None) -> TasteProfile:
        """End onboarding and build the first profile from its live decisions."""
        state = await self.swipes.state(user_id, SessionContext.ONBOARDING)
        if len(state.liked) < self._min_onboarding_likes:
            raise InsufficientSwipesError(user_id, len(state.liked), self._min_onboarding_likes)
        await self.swipes.complete(user_id, SessionContext.ONBOARDING, now)
        return await self._rebuild(user_id, now)

    async def refine_profile(self, user_id: str, now: datetime | None = None) -> TasteProfile:
        """Rebuild from every live decision across onboarding and discovery."""
        return await self._rebuild(user_id, now)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def search(
        self,
        user_id: str,
        venue_filter: VenueFilter,
        sort: SortMode,
        page: PageRequest,
    ) -> OrderedPage:
        catalog = await self._venues.catalog()
        profile = await self._profiles.get(user_id)
        result = self._ranking.rank(catalog, venue_filter, sort, page, profile=profile)
        logger.debug(
            "search user=%s sort=%s applied=%s total=%d",
            user_id, sort.value, result.sort.value, result.total,
        )
        return result

    async def venue_detail(self, user_id: str, venue_id: str) -> VenueDetail:
        venue = await self._venues.require(venue_id)
        profile = await self._profiles.get(user_id)
        score = self._ranking.taste_scores(profile, [venue_id]).get(venue_id)
        shortlisted = venue_id in await self._shortlist.venue_ids(user_id)
        return VenueDetail(ranked=RankedVenue(venue=venue, taste_score=score), shortlisted=shortlisted)

    async def shortlist(
        self,
        user_id: str,
        sort: SortMode,
        venue_filter: VenueFilter,
        page: PageRequest,
    ) -> OrderedPage:
        return await self._shortlist.list(user_id, sort, venue_filter, page)

    async def toggle_shortlist(self, user_id: str, venue_id: str, now: datetime | None = None) -> ToggleResult:
        profile = await self._profiles.get(user_id)
        return await self._shortlist.toggle(user_id, venue_id, profile, now)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _discovery_pool(self, user_id: str) -> list[str]:
        catalog = await self._venues.catalog()
        saved = await self._shortlist.venue_ids(user_id)
        return [v.venue_id for v in catalog if v.is_wedding_venue and v.venue_id not in saved]

    async def _view(self, user_id: str, state: SessionState, limit: int) -> SessionView:
        if not state.remaining:
            return SessionView(state=state)
        venues = await self._venues.get_many(state.remaining)

        if state.context is SessionContext.ONBOARDING:
            # Seed order is part of the session
            upcoming = [RankedVenue(venue=venues[v]) for v in state.remaining if v in venues]
            return SessionView(state=state, upcoming=upcoming[:limit])

        profile = await self._profiles.get(user_id)
        page = self._ranking.rank(
            list(venues.values()),
            VenueFilter(),
            SortMode.TASTE_SCORE,
            PageRequest(limit=limit),
            profile=profile,
        )
        return SessionView(state=state, upcoming=page.items)

    async def _rebuild(self, user_id: str, now: datetime | None) -> TasteProfile:
        now = now or datetime.now(timezone.utc)
        async with self._profile_locks.hold(user_id):
            live = await self.swipes.live_decisions(user_id)
            liked_ids = sorted(v for v, d in live.items() if d is Decision.LIKE)
            skipped_ids = sorted(v for v, d in live.items() if d is Decision.SKIP)

            venues = await self._venues.get_many(liked_ids)
            liked, liked_attrs = [], []
            for vid in liked_ids:
                vec = self._embeddings.get(vid)
                if vec is None:
                    logger.warning("Liked venue %s has no embedding; left out of profile", vid)
                    continue
                liked.append(vec)
                venue = venues.get(vid)
                liked_attrs.append(VenueAttributes.from_venue(venue) if venue else None)
            skipped = []
            for vid in skipped_ids:
                vec = self._embeddings.get(vid)
                if vec is not None:
                    skipped.append(vec)

            profile = self._builder.build(
                user_id,
                liked,
                skipped,
                liked_attrs,
                self._embeddings.mean_vector(),
                now=now,
            )
            return await self._profiles.replace(profile)

    async def _nudge(self, user_id: str, venue_id: str, now: datetime | None) -> bool:
        async with self._profile_locks.hold(user_id):
            profile = await self._profiles.get(user_id)
            vec = self._embeddings.get(venue_id)
            if profile is None or profile.is_undetermined or vec is None:
                return False
            nudged = self._builder.nudge(profile, vec, self._learning_rate, now)
            await self._profiles.replace(nudged)
            return True
