"""
SwipeFeedbackEngine: per (user, session context) swipe state machine.

States:
  active     candidates remain, like/skip/undo accepted
  exhausted  no candidates left (data, not an error); undo may reopen
  terminal   session completed; like/skip/undo rejected

Events:
  like(venue) / skip(venue)  append a decision
  undo()                     append a marker reverting the latest live
                             decision of THIS session; no-op on an empty log

Candidate sets:
  onboarding  the fixed seed list minus venues already decided
  discovery   catalog (minus shortlisted, supplied by the caller) minus
              venues with a live decision in either context

Every operation for one (user, context) runs under a keyed lock so the
append order of the log is the causal order of the swipes.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from services.discovery.errors import DecisionConflictError, NotFoundError, SessionClosedError
from services.discovery.locks import KeyedLock
from services.discovery.swipes.log import Replay, SessionMeta, SwipeLogRepository, replay
from services.discovery.types import Decision, SessionContext, SwipeEvent

logger = logging.getLogger(__name__)

# (user_id) -> venue ids eligible for the discovery feed before swipe exclusion
CandidateSource = Callable[[str], Awaitable[Iterable[str]]]


class SessionStatus(str, Enum):
    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    TERMINAL = "terminal"


@dataclass
class SessionState:
    user_id: str
    context: SessionContext
    status: SessionStatus
    remaining: list[str]
    live: dict[str, Decision]
    event_count: int
    reverted: SwipeEvent | None = None

    @property
    def liked(self) -> list[str]:
        return [v for v, d in self.live.items() if d is Decision.LIKE]

    @property
    def skipped(self) -> list[str]:
        return [v for v, d in self.live.items() if d is Decision.SKIP]


@dataclass
class LogEntry:
    """Audit-trail row: the event plus whether a later undo reverted it."""

    event: SwipeEvent
    undone: bool = False


@dataclass
class _Loaded:
    meta: SessionMeta | None
    events: list[SwipeEvent] = field(default_factory=list)
    view: Replay = field(default_factory=Replay)


class SwipeFeedbackEngine:
    def __init__(self, log: SwipeLogRepository, discovery_candidates: CandidateSource) -> None:
        self._log = log
        self._discovery_candidates = discovery_candidates
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_onboarding(
        self,
        user_id: str,
        seed_venue_ids: list[str],
        now: datetime | None = None,
    ) -> SessionState:
        """
        Open the onboarding session with a fixed seed list. Re-starting an
        open session resumes it with its original seeds.
        """
        ctx = SessionContext.ONBOARDING
        async with self._locks.hold((user_id, ctx)):
            meta = await self._log.get_session(user_id, ctx)
            if meta is None or meta.seed_venue_ids is None:
                seeds = list(dict.fromkeys(seed_venue_ids))
                meta = SessionMeta(
                    user_id=user_id,
                    context=ctx,
                    seed_venue_ids=seeds,
                    started_at=now or datetime.now(timezone.utc),
                )
                await self._log.save_session(meta)
                logger.info("Onboarding started for user %s with %d seeds", user_id, len(seeds))
            loaded = await self._load(user_id, ctx, meta)
            return await self._state(user_id, ctx, loaded)

    async def complete(
        self,
        user_id: str,
        context: SessionContext,
        now: datetime | None = None,
    ) -> SessionState:
        async with self._locks.hold((user_id, context)):
            meta = await self._require_session(user_id, context)
            if not meta.closed:
                meta.completed_at = now or datetime.now(timezone.utc)
                await self._log.save_session(meta)
                logger.info("%s session completed for user %s", context.value, user_id)
            loaded = await self._load(user_id, context, meta)
            return await self._state(user_id, context, loaded)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def like(self, user_id: str, context: SessionContext, venue_id: str,
                   now: datetime | None = None) -> SessionState:
        return await self._decide(user_id, context, venue_id, Decision.LIKE, now)

    async def skip(self, user_id: str, context: SessionContext, venue_id: str,
                   now: datetime | None = None) -> SessionState:
        return await self._decide(user_id, context, venue_id, Decision.SKIP, now)

    async def undo(
        self,
        user_id: str,
        context: SessionContext,
        now: datetime | None = None,
    ) -> SessionState:
        """Revert the latest live decision of this session. Empty log: no-op."""
        async with self._locks.hold((user_id, context)):
            meta = await self._require_session(user_id, context)
            if meta.closed:
                raise SessionClosedError(user_id, context.value)

            loaded = await self._load(user_id, context, meta)
            if not loaded.view.stack:
                return await self._state(user_id, context, loaded)

            target = loaded.view.stack[-1]
            marker = SwipeEvent(
                user_id=user_id,
                context=context,
                sequence=self._next_sequence(loaded.events),
                venue_id=target.venue_id,
                decision=Decision.UNDO,
                timestamp=now or datetime.now(timezone.utc),
                target_sequence=target.sequence,
            )
            await self._log.append(marker)
            loaded.events.append(marker)
            loaded.view = replay(loaded.events)

            logger.debug("undo %s/%s seq=%d venue=%s", user_id, context.value,
                         target.sequence, target.venue_id)
            state = await self._state(user_id, context, loaded)
            state.reverted = target
            return state

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def state(self, user_id: str, context: SessionContext) -> SessionState:
        meta = await self._require_session(user_id, context)
        loaded = await self._load(user_id, context, meta)
        return await self._state(user_id, context, loaded)

    async def history(self, user_id: str, context: SessionContext) -> list[LogEntry]:
        events = await self._log.load(user_id, context)
        view = replay(events)
        return [LogEntry(event=ev, undone=ev.sequence in view.undone) for ev in events]

    async def live_decisions(
        self,
        user_id: str,
        contexts: Iterable[SessionContext] = (SessionContext.ONBOARDING, SessionContext.DISCOVERY),
    ) -> dict[str, Decision]:
        """venue_id -> live decision, merged over the given contexts."""
        merged: dict[str, Decision] = {}
        for ctx in contexts:
            view = replay(await self._log.load(user_id, ctx))
            for venue_id, ev in view.live.items():
                merged[venue_id] = ev.decision
        return merged

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _decide(
        self,
        user_id: str,
        context: SessionContext,
        venue_id: str,
        decision: Decision,
        now: datetime | None,
    ) -> SessionState:
        async with self._locks.hold((user_id, context)):
            meta = await self._require_session(user_id, context)
            if meta.closed:
                raise SessionClosedError(user_id, context.value)

            loaded = await self._load(user_id, context, meta)
            existing = loaded.view.live.get(venue_id)
            if existing is not None:
                raise DecisionConflictError(venue_id, existing.decision.value)

            if context is SessionContext.DISCOVERY:
                elsewhere = replay(await self._log.load(user_id, SessionContext.ONBOARDING))
                if venue_id in elsewhere.live:
                    raise DecisionConflictError(venue_id, elsewhere.live[venue_id].decision.value)

            remaining = await self._remaining(user_id, context, loaded)
            if venue_id not in remaining:
                kind = "seed venue" if context is SessionContext.ONBOARDING else "candidate venue"
                raise NotFoundError(kind, venue_id)

            event = SwipeEvent(
                user_id=user_id,
                context=context,
                sequence=self._next_sequence(loaded.events),
                venue_id=venue_id,
                decision=decision,
                timestamp=now or datetime.now(timezone.utc),
            )
            await self._log.append(event)
            loaded.events.append(event)
            loaded.view = replay(loaded.events)
            return await self._state(user_id, context, loaded)

    async def _require_session(self, user_id: str, context: SessionContext) -> SessionMeta:
        meta = await self._log.get_session(user_id, context)
        if meta is not None:
            return meta
        if context is SessionContext.ONBOARDING:
            raise NotFoundError("onboarding session", user_id)
        # Discovery sessions open implicitly on first use
        return SessionMeta(user_id=user_id, context=context)

    async def _load(self, user_id: str, context: SessionContext, meta: SessionMeta | None) -> _Loaded:
        events = await self._log.load(user_id, context)
        return _Loaded(meta=meta, events=events, view=replay(events))

    async def _remaining(self, user_id: str, context: SessionContext, loaded: _Loaded) -> list[str]:
        if context is SessionContext.ONBOARDING:
            seeds = (loaded.meta.seed_venue_ids if loaded.meta else None) or []
            return [v for v in seeds if v not in loaded.view.live]

        pool = set(await self._discovery_candidates(user_id))
        decided = set(loaded.view.live)
        decided |= set(replay(await self._log.load(user_id, SessionContext.ONBOARDING)).live)
        return sorted(pool - decided)

    async def _state(self, user_id: str, context: SessionContext, loaded: _Loaded) -> SessionState:
        remaining = await self._remaining(user_id, context, loaded)
        if loaded.meta is not None and loaded.meta.closed:
            status = SessionStatus.TERMINAL
        elif not remaining:
            status = SessionStatus.EXHAUSTED
        else:
            status = SessionStatus.ACTIVE
        return SessionState(
            user_id=user_id,
            context=context,
            status=status,
            remaining=remaining,
            live={v: ev.decision for v, ev in loaded.view.live.items()},
            event_count=len(loaded.events),
        )

    @staticmethod
    def _next_sequence(events: list[SwipeEvent]) -> int:
        return events[-1].sequence + 1 if events else 1
