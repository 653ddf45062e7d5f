"""
Error taxonomy for the discovery core.

Exhaustion of a swipe session is a state, not an error, and undo on an empty
history is a no-op, so neither has an exception here.
"""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base class for all discovery core errors."""

    code = "DISCOVERY_ERROR"


class NotFoundError(DiscoveryError):
    """Unknown tile, venue, session or profile id. Never retried."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")


class DimensionMismatchError(DiscoveryError):
    """Embedding dimension inconsistency. Indicates a data-integrity bug."""

    code = "DATA_INTEGRITY"

    def __init__(self, expected: int, actual: int, entity_id: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        self.entity_id = entity_id
        where = f" for {entity_id}" if entity_id else ""
        super().__init__(f"expected dimension {expected}, got {actual}{where}")


class FetchFailure(DiscoveryError):
    """An external crawl fetch failed or timed out for one tile."""

    code = "FETCH_FAILURE"

    def __init__(self, tile_key: str, reason: str, timed_out: bool = False) -> None:
        self.tile_key = tile_key
        self.reason = reason
        self.timed_out = timed_out
        super().__init__(f"tile {tile_key} failed: {reason}")


class DecisionConflictError(DiscoveryError):
    """A venue already holds a live decision in this session context."""

    code = "CONFLICT"

    def __init__(self, venue_id: str, existing: str) -> None:
        self.venue_id = venue_id
        self.existing = existing
        super().__init__(f"venue {venue_id} already has a live '{existing}' decision")


class SessionClosedError(DiscoveryError):
    """Swipe or undo attempted on a completed session."""

    code = "CONFLICT"

    def __init__(self, user_id: str, context: str) -> None:
        self.user_id = user_id
        self.context = context
        super().__init__(f"{context} session for user {user_id} is closed")


class InsufficientSwipesError(DiscoveryError):
    """Profile generation requested before the onboarding like minimum."""

    code = "CONFLICT"

    def __init__(self, user_id: str, likes: int, required: int) -> None:
        self.user_id = user_id
        self.likes = likes
        self.required = required
        super().__init__(f"user {user_id} has {likes} onboarding likes, {required} required")
