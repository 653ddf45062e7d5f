"""Tests for services.discovery.taste.profiles."""

from datetime import datetime, timezone

import pytest

from services.discovery.errors import NotFoundError
from services.discovery.taste.profiles import InMemoryProfileStore, PgProfileStore
from services.discovery.types import TasteProfile

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _profile(**overrides):
    base = dict(
        user_id="u1",
        vector=(1.0, 0.0),
        confidence=0.5,
        descriptive_words=("Estate",),
        generated_at=NOW,
        swipe_count=3,
        like_count=2,
    )
    base.update(overrides)
    return TasteProfile(**base)


@pytest.mark.asyncio
class TestInMemoryProfileStore:
    async def test_require_missing(self):
        with pytest.raises(NotFoundError):
            await InMemoryProfileStore().require("u1")

    async def test_replace_swaps_whole_profile(self):
        store = InMemoryProfileStore()
        await store.replace(_profile())
        newer = _profile(vector=(0.0, 1.0), confidence=0.9, like_count=5)
        await store.replace(newer)
        assert await store.require("u1") is newer


@pytest.mark.asyncio
class TestPgProfileStore:
    async def test_get_maps_row(self, pg):
        pool, conn = pg
        conn.fetchrow.return_value = {
            "user_id": "u1",
            "embedding_vector": [1, 0],
            "confidence": 0.5,
            "descriptive_words": ["Estate"],
            "generated_at": NOW,
            "swipe_count": 3,
            "like_count": 2,
        }
        assert await PgProfileStore(pool).get("u1") == _profile()

    async def test_get_missing(self, pg):
        pool, conn = pg
        conn.fetchrow.return_value = None
        assert await PgProfileStore(pool).get("u1") is None

    async def test_replace_single_upsert(self, pg):
        pool, conn = pg
        await PgProfileStore(pool).replace(_profile())
        conn.execute.assert_called_once()
        sql, *args = conn.execute.call_args.args
        assert "ON CONFLICT (user_id) DO UPDATE" in sql
        assert args == ["u1", [1.0, 0.0], 0.5, ["Estate"], NOW, 3, 2]
