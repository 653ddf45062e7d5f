"""
Tests for services.discovery.discovery.service

End-to-end over in-memory storage: onboarding, profile generation, discovery
swipes with live nudges, refinement, search and shortlist interplay.
"""

from datetime import datetime, timezone

import pytest

from services.discovery.errors import InsufficientSwipesError, NotFoundError, SessionClosedError
from services.discovery.ranking.engine import PageRequest, SortMode, VenueFilter
from services.discovery.swipes.engine import SessionStatus
from services.discovery.types import Decision, SessionContext

ONB = SessionContext.ONBOARDING
DISC = SessionContext.DISCOVERY
NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)
EMBEDDED_WEDDING = {"v1", "v2", "v3", "v4", "v5"}


async def _finish_onboarding(service, user_id, likes=("v1", "v3")):
    view = await service.start_onboarding(user_id)
    for vid in list(view.state.remaining):
        decision = Decision.LIKE if vid in likes else Decision.SKIP
        await service.swipe(user_id, ONB, vid, decision)
    return view


@pytest.mark.asyncio
class TestOnboarding:
    async def test_seeds_are_embedded_wedding_venues(self, service):
        view = await service.start_onboarding("u1")
        assert len(view.state.remaining) == 4
        assert set(view.state.remaining) <= EMBEDDED_WEDDING
        assert [r.venue.venue_id for r in view.upcoming] == view.state.remaining

    async def test_seeds_stable_per_user(self, service):
        first = await service.start_onboarding("u1")
        again = await service.start_onboarding("u1")
        assert first.state.remaining == again.state.remaining

    async def test_session_view(self, service):
        await service.start_onboarding("u1")
        view = await service.session("u1", ONB, limit=2)
        assert len(view.upcoming) == 2

    async def test_generate_completes_onboarding(self, service):
        await _finish_onboarding(service, "u1")
        onboarding = await service.swipes.state("u1", ONB)
        liked = set(onboarding.liked)

        profile = await service.generate_profile("u1", now=NOW)

        assert profile.like_count == len(liked)
        assert profile.generated_at == NOW
        state = await service.swipes.state("u1", ONB)
        assert state.status is SessionStatus.TERMINAL
        with pytest.raises(SessionClosedError):
            await service.undo("u1", ONB)

    async def test_generate_without_likes_is_undetermined(self, service):
        await _finish_onboarding(service, "u1", likes=())
        profile = await service.generate_profile("u1")
        assert profile.is_undetermined
        assert profile.confidence == 0.0

        page = await service.search("u1", VenueFilter(), SortMode.TASTE_SCORE, PageRequest())
        assert page.sort is SortMode.NAME

    async def test_generate_requires_minimum_likes(self, service_factory):
        service = service_factory(min_onboarding_likes=5)
        await _finish_onboarding(service, "u1")
        with pytest.raises(InsufficientSwipesError):
            await service.generate_profile("u1")
        state = await service.swipes.state("u1", ONB)
        assert state.status is not SessionStatus.TERMINAL

    async def test_generate_before_start(self, service):
        with pytest.raises(NotFoundError):
            await service.generate_profile("u1")


@pytest.mark.asyncio
class TestDiscovery:
    async def test_pool_excludes_onboarding_decisions(self, service):
        view = await _finish_onboarding(service, "u1")
        session = await service.session("u1", DISC)
        decided = set(view.state.remaining)
        assert decided.isdisjoint(session.state.remaining)
        assert "x1" not in session.state.remaining

    async def test_pool_excludes_shortlisted(self, service):
        await service.toggle_shortlist("u1", "v2")
        session = await service.session("u1", DISC)
        assert "v2" not in session.state.remaining

    async def test_like_nudges_existing_profile(self, service):
        await service.swipe("u1", DISC, "v1", Decision.LIKE)
        profile = await service.refine_profile("u1")
        assert profile.like_count == 1

        result = await service.swipe("u1", DISC, "v3", Decision.LIKE)
        assert result.profile_updated
        nudged = await service.get_profile("u1")
        assert nudged.like_count == 2
        assert nudged.vector != profile.vector

    async def test_no_nudge_without_profile(self, service):
        result = await service.swipe("u1", DISC, "v1", Decision.LIKE)
        assert not result.profile_updated

    async def test_no_nudge_for_unembedded_venue(self, service):
        await service.swipe("u1", DISC, "v1", Decision.LIKE)
        await service.refine_profile("u1")
        result = await service.swipe("u1", DISC, "v6", Decision.LIKE)
        assert not result.profile_updated

    async def test_skip_does_not_nudge(self, service):
        await service.swipe("u1", DISC, "v1", Decision.LIKE)
        await service.refine_profile("u1")
        result = await service.swipe("u1", DISC, "v2", Decision.SKIP)
        assert not result.profile_updated

    async def test_live_updates_disabled(self, service_factory):
        service = service_factory(live_profile_updates=False)
        await service.swipe("u1", DISC, "v1", Decision.LIKE)
        await service.refine_profile("u1")
        result = await service.swipe("u1", DISC, "v3", Decision.LIKE)
        assert not result.profile_updated

    async def test_swipe_rejects_undo_decision(self, service):
        with pytest.raises(ValueError):
            await service.swipe("u1", DISC, "v1", Decision.UNDO)

    async def test_refine_uses_all_live_decisions(self, service):
        await _finish_onboarding(service, "u1", likes=())
        await service.generate_profile("u1")
        session = await service.session("u1", DISC)
        target = session.state.remaining[0]
        await service.swipe("u1", DISC, target, Decision.LIKE)

        profile = await service.refine_profile("u1")
        assert profile.like_count == 1

    async def test_refine_ignores_undone_likes(self, service):
        await service.swipe("u1", DISC, "v1", Decision.LIKE)
        await service.swipe("u1", DISC, "v3", Decision.LIKE)
        await service.undo("u1", DISC)
        profile = await service.refine_profile("u1")
        assert profile.like_count == 1

    async def test_refine_skips_unembedded_likes(self, service):
        await service.swipe("u1", DISC, "v6", Decision.LIKE)
        profile = await service.refine_profile("u1")
        assert profile.is_undetermined

    async def test_discovery_view_ranked_by_taste(self, service):
        await service.swipe("u1", DISC, "v1", Decision.LIKE)
        await service.refine_profile("u1")
        view = await service.session("u1", DISC, limit=3)
        assert view.upcoming[0].venue.venue_id == "v3"
        assert view.upcoming[0].taste_score == pytest.approx(0.8)


@pytest.mark.asyncio
class TestCatalog:
    async def test_search_by_taste(self, service):
        await service.swipe("u1", DISC, "v1", Decision.LIKE)
        await service.refine_profile("u1")
        page = await service.search("u1", VenueFilter(), SortMode.TASTE_SCORE, PageRequest(limit=2))
        assert [r.venue.venue_id for r in page.items] == ["v1", "v3"]
        assert page.total == 6

    async def test_venue_detail(self, service):
        await service.toggle_shortlist("u1", "v4")
        detail = await service.venue_detail("u1", "v4")
        assert detail.shortlisted
        assert detail.ranked.taste_score is None

        with pytest.raises(NotFoundError):
            await service.venue_detail("u1", "ghost")

    async def test_get_profile_missing(self, service):
        with pytest.raises(NotFoundError):
            await service.get_profile("u1")

    async def test_toggle_snapshots_current_profile(self, service):
        await service.swipe("u1", DISC, "v1", Decision.LIKE)
        await service.refine_profile("u1")
        result = await service.toggle_shortlist("u1", "v3", now=NOW)
        assert result.entry.taste_score_snapshot == pytest.approx(0.8)

        page = await service.shortlist("u1", SortMode.DATE_SAVED, VenueFilter(wedding_only=False), PageRequest())
        assert [r.venue.venue_id for r in page.items] == ["v3"]
