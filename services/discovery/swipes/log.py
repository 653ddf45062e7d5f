"""
Append-only swipe decision log, one per (user, session context).

Events are never updated or deleted. An undo is itself an event that names
the sequence it reverts; the "current decision" view is derived by
replaying the log (see replay()).

Session metadata (onboarding seed list, completion) lives alongside the log
in swipe_sessions.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from services.discovery.types import Decision, SessionContext, SwipeEvent

logger = logging.getLogger(__name__)


@dataclass
class SessionMeta:
    user_id: str
    context: SessionContext
    seed_venue_ids: list[str] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def closed(self) -> bool:
        return self.completed_at is not None


@dataclass
class Replay:
    """Derived view of a log."""

    live: dict[str, SwipeEvent] = field(default_factory=dict)
    """venue_id -> the live (non-undone) like/skip event."""

    stack: list[SwipeEvent] = field(default_factory=list)
    """Live decisions in append order. The last one is what undo reverts."""

    undone: set[int] = field(default_factory=set)
    """Sequences of like/skip events that were reverted."""


def replay(events: list[SwipeEvent]) -> Replay:
    view = Replay()
    for ev in events:
        if ev.decision is Decision.UNDO:
            if not view.stack or view.stack[-1].sequence != ev.target_sequence:
                # Only the latest live decision can be the target of an undo
                logger.error(
                    "Corrupt swipe log for %s/%s: undo seq=%s targets %s",
                    ev.user_id, ev.context.value, ev.sequence, ev.target_sequence,
                )
                raise ValueError(f"undo at sequence {ev.sequence} has no matching decision")
            reverted = view.stack.pop()
            view.live.pop(reverted.venue_id, None)
            view.undone.add(reverted.sequence)
        else:
            view.stack.append(ev)
            view.live[ev.venue_id] = ev
    return view


class SwipeLogRepository(ABC):
    @abstractmethod
    async def load(self, user_id: str, context: SessionContext) -> list[SwipeEvent]:
        """All events for the session, ascending by sequence."""

    @abstractmethod
    async def append(self, event: SwipeEvent) -> None:
        ...

    @abstractmethod
    async def get_session(self, user_id: str, context: SessionContext) -> SessionMeta | None:
        ...

    @abstractmethod
    async def save_session(self, meta: SessionMeta) -> None:
        ...


class InMemorySwipeLog(SwipeLogRepository):
    def __init__(self) -> None:
        self._events: dict[tuple[str, SessionContext], list[SwipeEvent]] = {}
        self._sessions: dict[tuple[str, SessionContext], SessionMeta] = {}

    async def load(self, user_id: str, context: SessionContext) -> list[SwipeEvent]:
        return list(self._events.get((user_id, context), []))

    async def append(self, event: SwipeEvent) -> None:
        log = self._events.setdefault((event.user_id, event.context), [])
        if log and log[-1].sequence >= event.sequence:
            raise ValueError(
                f"out-of-order append: seq {event.sequence} after {log[-1].sequence}"
            )
        log.append(event)

    async def get_session(self, user_id: str, context: SessionContext) -> SessionMeta | None:
        meta = self._sessions.get((user_id, context))
        if meta is None:
            return None
        return SessionMeta(
            user_id=meta.user_id,
            context=meta.context,
            seed_venue_ids=list(meta.seed_venue_ids) if meta.seed_venue_ids is not None else None,
            started_at=meta.started_at,
            completed_at=meta.completed_at,
        )

    async def save_session(self, meta: SessionMeta) -> None:
        self._sessions[(meta.user_id, meta.context)] = meta


# ---------------------------------------------------------------------------
# Postgres
# ---------------------------------------------------------------------------

_LOAD_SQL = """
SELECT user_id, session_context, sequence, venue_id, decision, "timestamp", target_sequence
FROM swipe_events
WHERE user_id = $1 AND session_context = $2
ORDER BY sequence ASC
"""

# UNIQUE (user_id, session_context, sequence) rejects a racing writer from
# another process instead of interleaving the log.
_APPEND_SQL = """
INSERT INTO swipe_events
    (user_id, session_context, sequence, venue_id, decision, "timestamp", target_sequence)
VALUES ($1, $2, $3, $4, $5, $6, $7)
"""

_GET_SESSION_SQL = """
SELECT user_id, session_context, seed_venue_ids, started_at, completed_at
FROM swipe_sessions
WHERE user_id = $1 AND session_context = $2
"""

_UPSERT_SESSION_SQL = """
INSERT INTO swipe_sessions (user_id, session_context, seed_venue_ids, started_at, completed_at)
VALUES ($1, $2, $3, $4, $5)
ON CONFLICT (user_id, session_context) DO UPDATE
SET seed_venue_ids = EXCLUDED.seed_venue_ids,
    started_at = EXCLUDED.started_at,
    completed_at = EXCLUDED.completed_at
"""


class PgSwipeLog(SwipeLogRepository):
    def __init__(self, pool) -> None:
        self._pool = pool

    async def load(self, user_id: str, context: SessionContext) -> list[SwipeEvent]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_LOAD_SQL, user_id, context.value)
        return [
            SwipeEvent(
                user_id=row["user_id"],
                context=SessionContext(row["session_context"]),
                sequence=row["sequence"],
                venue_id=row["venue_id"],
                decision=Decision(row["decision"]),
                timestamp=row["timestamp"],
                target_sequence=row["target_sequence"],
            )
            for row in rows
        ]

    async def append(self, event: SwipeEvent) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                _APPEND_SQL,
                event.user_id,
                event.context.value,
                event.sequence,
                event.venue_id,
                event.decision.value,
                event.timestamp,
                event.target_sequence,
            )

    async def get_session(self, user_id: str, context: SessionContext) -> SessionMeta | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(_GET_SESSION_SQL, user_id, context.value)
        if row is None:
            return None
        seeds = row["seed_venue_ids"]
        return SessionMeta(
            user_id=row["user_id"],
            context=SessionContext(row["session_context"]),
            seed_venue_ids=list(seeds) if seeds is not None else None,
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )

    async def save_session(self, meta: SessionMeta) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                _UPSERT_SESSION_SQL,
                meta.user_id,
                meta.context.value,
                meta.seed_venue_ids,
                meta.started_at,
                meta.completed_at,
            )
