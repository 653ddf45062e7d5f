"""
Tests for services.discovery.swipes.engine and swipes.log

Covers:
  1. onboarding walks the fixed seed list
  2. a venue gets at most one live decision per user
  3. undo reverts the latest decision of its own session and is logged
  4. exhausted is a state; undo reopens it
  5. a completed session rejects further swipes
  6. concurrent swipes for one user serialise into one log
  7. PgSwipeLog SQL wiring
"""

import asyncio
from datetime import datetime, timezone

import pytest

from services.discovery.errors import DecisionConflictError, NotFoundError, SessionClosedError
from services.discovery.swipes.engine import SessionStatus, SwipeFeedbackEngine
from services.discovery.swipes.log import InMemorySwipeLog, PgSwipeLog, SessionMeta, replay
from services.discovery.types import Decision, SessionContext, SwipeEvent

ONB = SessionContext.ONBOARDING
DISC = SessionContext.DISCOVERY
NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _engine(catalog=("a", "b", "c", "d")):
    async def candidates(user_id):
        return list(catalog)

    log = InMemorySwipeLog()
    return SwipeFeedbackEngine(log, candidates), log


@pytest.mark.asyncio
class TestOnboarding:
    async def test_start_presents_seeds(self):
        engine, _ = _engine()
        state = await engine.start_onboarding("u1", ["s1", "s2", "s3"])
        assert state.status is SessionStatus.ACTIVE
        assert state.remaining == ["s1", "s2", "s3"]

    async def test_restart_keeps_original_seeds(self):
        engine, _ = _engine()
        await engine.start_onboarding("u1", ["s1", "s2"])
        await engine.like("u1", ONB, "s1")
        state = await engine.start_onboarding("u1", ["z9"])
        assert state.remaining == ["s2"]
        assert state.liked == ["s1"]

    async def test_duplicate_seeds_collapsed(self):
        engine, _ = _engine()
        state = await engine.start_onboarding("u1", ["s1", "s1", "s2"])
        assert state.remaining == ["s1", "s2"]

    async def test_swipe_before_start(self):
        engine, _ = _engine()
        with pytest.raises(NotFoundError):
            await engine.like("u1", ONB, "s1")

    async def test_non_seed_rejected(self):
        engine, _ = _engine()
        await engine.start_onboarding("u1", ["s1"])
        with pytest.raises(NotFoundError):
            await engine.like("u1", ONB, "other")

    async def test_exhausted_then_undo_reopens(self):
        engine, _ = _engine()
        await engine.start_onboarding("u1", ["s1", "s2"])
        await engine.like("u1", ONB, "s1")
        state = await engine.skip("u1", ONB, "s2")
        assert state.status is SessionStatus.EXHAUSTED
        assert state.remaining == []

        state = await engine.undo("u1", ONB)
        assert state.status is SessionStatus.ACTIVE
        assert state.remaining == ["s2"]
        assert state.reverted.venue_id == "s2"

    async def test_complete_is_terminal(self):
        engine, _ = _engine()
        await engine.start_onboarding("u1", ["s1", "s2"])
        await engine.like("u1", ONB, "s1")
        state = await engine.complete("u1", ONB)
        assert state.status is SessionStatus.TERMINAL

        with pytest.raises(SessionClosedError):
            await engine.like("u1", ONB, "s2")
        with pytest.raises(SessionClosedError):
            await engine.undo("u1", ONB)

    async def test_complete_is_idempotent(self):
        engine, log = _engine()
        await engine.start_onboarding("u1", ["s1"])
        await engine.complete("u1", ONB, now=NOW)
        await engine.complete("u1", ONB)
        meta = await log.get_session("u1", ONB)
        assert meta.completed_at == NOW


@pytest.mark.asyncio
class TestDecisions:
    async def test_at_most_one_live_decision(self):
        engine, _ = _engine()
        await engine.like("u1", DISC, "a")
        with pytest.raises(DecisionConflictError) as exc_info:
            await engine.skip("u1", DISC, "a")
        assert exc_info.value.existing == "like"

    async def test_redecide_after_undo(self):
        engine, _ = _engine()
        await engine.like("u1", DISC, "a")
        await engine.undo("u1", DISC)
        state = await engine.skip("u1", DISC, "a")
        assert state.skipped == ["a"]
        assert state.liked == []

    async def test_onboarding_decision_blocks_discovery(self):
        engine, _ = _engine(catalog=("s1", "a"))
        await engine.start_onboarding("u1", ["s1"])
        await engine.like("u1", ONB, "s1")
        with pytest.raises(DecisionConflictError):
            await engine.like("u1", DISC, "s1")
        state = await engine.state("u1", DISC)
        assert state.remaining == ["a"]

    async def test_discovery_unknown_candidate(self):
        engine, _ = _engine()
        with pytest.raises(NotFoundError):
            await engine.like("u1", DISC, "zz")

    async def test_discovery_exhausted(self):
        engine, _ = _engine(catalog=("a",))
        state = await engine.like("u1", DISC, "a")
        assert state.status is SessionStatus.EXHAUSTED

    async def test_users_isolated(self):
        engine, _ = _engine()
        await engine.like("u1", DISC, "a")
        state = await engine.like("u2", DISC, "a")
        assert state.liked == ["a"]


@pytest.mark.asyncio
class TestUndo:
    async def test_empty_log_is_noop(self):
        engine, log = _engine()
        state = await engine.undo("u1", DISC)
        assert state.reverted is None
        assert await log.load("u1", DISC) == []

    async def test_undo_chain_walks_back(self):
        engine, _ = _engine()
        await engine.like("u1", DISC, "a")
        await engine.skip("u1", DISC, "b")
        await engine.like("u1", DISC, "c")

        assert (await engine.undo("u1", DISC)).reverted.venue_id == "c"
        assert (await engine.undo("u1", DISC)).reverted.venue_id == "b"
        state = await engine.undo("u1", DISC)
        assert state.reverted.venue_id == "a"
        assert state.live == {}
        assert (await engine.undo("u1", DISC)).reverted is None

    async def test_undo_scoped_to_session(self):
        engine, _ = _engine(catalog=("a", "b"))
        await engine.start_onboarding("u1", ["s1"])
        await engine.like("u1", DISC, "a")
        await engine.like("u1", ONB, "s1")

        state = await engine.undo("u1", DISC)
        assert state.reverted.venue_id == "a"
        onboarding = await engine.state("u1", ONB)
        assert onboarding.liked == ["s1"]

    async def test_history_marks_undone(self):
        engine, _ = _engine()
        await engine.like("u1", DISC, "a", now=NOW)
        await engine.skip("u1", DISC, "b", now=NOW)
        await engine.undo("u1", DISC, now=NOW)

        history = await engine.history("u1", DISC)
        assert [(e.event.sequence, e.event.decision, e.undone) for e in history] == [
            (1, Decision.LIKE, False),
            (2, Decision.SKIP, True),
            (3, Decision.UNDO, False),
        ]
        assert history[2].event.target_sequence == 2

    async def test_live_decisions_merge_contexts(self):
        engine, _ = _engine(catalog=("a", "b"))
        await engine.start_onboarding("u1", ["s1"])
        await engine.like("u1", ONB, "s1")
        await engine.skip("u1", DISC, "b")
        assert await engine.live_decisions("u1") == {"s1": Decision.LIKE, "b": Decision.SKIP}


@pytest.mark.asyncio
class TestConcurrency:
    async def test_parallel_swipes_single_ordered_log(self):
        engine, log = _engine(catalog=tuple("abcdefgh"))
        await asyncio.gather(*(engine.like("u1", DISC, v) for v in "abcdefgh"))
        events = await log.load("u1", DISC)
        assert [e.sequence for e in events] == list(range(1, 9))
        assert sorted(e.venue_id for e in events) == list("abcdefgh")

    async def test_parallel_same_venue_one_wins(self):
        engine, log = _engine()
        results = await asyncio.gather(
            engine.like("u1", DISC, "a"),
            engine.skip("u1", DISC, "a"),
            return_exceptions=True,
        )
        assert sum(isinstance(r, DecisionConflictError) for r in results) == 1
        assert len(await log.load("u1", DISC)) == 1


class TestReplay:
    def _ev(self, seq, venue, decision, target=None):
        return SwipeEvent("u1", DISC, seq, venue, decision, NOW, target)

    def test_undo_without_match_is_corrupt(self):
        with pytest.raises(ValueError):
            replay([self._ev(1, "a", Decision.LIKE), self._ev(2, "b", Decision.UNDO, target=5)])

    def test_live_view(self):
        view = replay([
            self._ev(1, "a", Decision.LIKE),
            self._ev(2, "b", Decision.SKIP),
            self._ev(3, "b", Decision.UNDO, target=2),
        ])
        assert set(view.live) == {"a"}
        assert view.undone == {2}


@pytest.mark.asyncio
class TestInMemorySwipeLog:
    async def test_rejects_out_of_order_append(self):
        log = InMemorySwipeLog()
        await log.append(SwipeEvent("u1", DISC, 2, "a", Decision.LIKE, NOW))
        with pytest.raises(ValueError):
            await log.append(SwipeEvent("u1", DISC, 2, "b", Decision.LIKE, NOW))


@pytest.mark.asyncio
class TestPgSwipeLog:
    async def test_load_maps_rows(self, pg):
        pool, conn = pg
        conn.fetch.return_value = [{
            "user_id": "u1", "session_context": "discovery", "sequence": 1,
            "venue_id": "a", "decision": "like", "timestamp": NOW, "target_sequence": None,
        }]
        events = await PgSwipeLog(pool).load("u1", DISC)
        assert events == [SwipeEvent("u1", DISC, 1, "a", Decision.LIKE, NOW)]
        assert conn.fetch.call_args.args[1:] == ("u1", "discovery")

    async def test_append_passes_enum_values(self, pg):
        pool, conn = pg
        await PgSwipeLog(pool).append(SwipeEvent("u1", DISC, 4, "a", Decision.UNDO, NOW, 3))
        args = conn.execute.call_args.args
        assert "INSERT INTO swipe_events" in args[0]
        assert args[1:] == ("u1", "discovery", 4, "a", "undo", NOW, 3)

    async def test_session_roundtrip(self, pg):
        pool, conn = pg
        conn.fetchrow.return_value = None
        log = PgSwipeLog(pool)
        assert await log.get_session("u1", ONB) is None

        await log.save_session(SessionMeta("u1", ONB, ["s1"], NOW))
        args = conn.execute.call_args.args
        assert "ON CONFLICT (user_id, session_context)" in args[0]
        assert args[1:] == ("u1", "onboarding", ["s1"], NOW, None)
