"""
Storage for the one active TasteProfile per user.

replace() is atomic with respect to readers:
  - in memory, the profile is an immutable object swapped in one assignment
  - in Postgres, vector, confidence and words are written by one upsert
    statement, so no reader sees a new vector with a stale confidence
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from services.discovery.errors import NotFoundError
from services.discovery.types import TasteProfile


class ProfileStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> TasteProfile | None:
        ...

    @abstractmethod
    async def replace(self, profile: TasteProfile) -> TasteProfile:
        ...

    async def require(self, user_id: str) -> TasteProfile:
        profile = await self.get(user_id)
        if profile is None:
            raise NotFoundError("taste profile", user_id)
        return profile


class InMemoryProfileStore(ProfileStore):
    def __init__(self) -> None:
        self._profiles: dict[str, TasteProfile] = {}

    async def get(self, user_id: str) -> TasteProfile | None:
        return self._profiles.get(user_id)

    async def replace(self, profile: TasteProfile) -> TasteProfile:
        self._profiles[profile.user_id] = profile
        return profile


_GET_SQL = """
SELECT user_id, embedding_vector, confidence, descriptive_words,
       generated_at, swipe_count, like_count
FROM taste_profiles
WHERE user_id = $1
"""

_UPSERT_SQL = """
INSERT INTO taste_profiles
    (user_id, embedding_vector, confidence, descriptive_words, generated_at, swipe_count, like_count)
VALUES ($1, $2, $3, $4, $5, $6, $7)
ON CONFLICT (user_id) DO UPDATE
SET embedding_vector = EXCLUDED.embedding_vector,
    confidence = EXCLUDED.confidence,
    descriptive_words = EXCLUDED.descriptive_words,
    generated_at = EXCLUDED.generated_at,
    swipe_count = EXCLUDED.swipe_count,
    like_count = EXCLUDED.like_count
"""


class PgProfileStore(ProfileStore):
    def __init__(self, pool) -> None:
        self._pool = pool

    async def get(self, user_id: str) -> TasteProfile | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(_GET_SQL, user_id)
        if row is None:
            return None
        return TasteProfile(
            user_id=row["user_id"],
            vector=tuple(float(x) for x in row["embedding_vector"]),
            confidence=float(row["confidence"]),
            descriptive_words=tuple(row["descriptive_words"] or ()),
            generated_at=row["generated_at"],
            swipe_count=row["swipe_count"],
            like_count=row["like_count"],
        )

    async def replace(self, profile: TasteProfile) -> TasteProfile:
        async with self._pool.acquire() as conn:
            await conn.execute(
                _UPSERT_SQL,
                profile.user_id,
                list(profile.vector),
                profile.confidence,
                list(profile.descriptive_words),
                profile.generated_at,
                profile.swipe_count,
                profile.like_count,
            )
        return profile
