"""
Tests for services.discovery.crawl.ledger

Covers:
  1. absent vs collected-with-zero-elements
  2. idempotent record, last writer wins on re-collection
  3. freshness window
  4. concurrent writes to one key leave a single consistent record
  5. PgTileLedger SQL wiring
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from services.discovery.crawl.ledger import (
    InMemoryTileLedger,
    PgTileLedger,
    TileRecord,
    is_fresh,
)

KEY = "0.0000,0.0000,0.0005,0.0005"
NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
class TestInMemoryTileLedger:
    async def test_lookup_absent(self):
        ledger = InMemoryTileLedger()
        assert await ledger.lookup(KEY) is None

    async def test_zero_elements_is_a_record(self):
        ledger = InMemoryTileLedger()
        await ledger.record(KEY, 0, NOW)
        rec = await ledger.lookup(KEY)
        assert rec is not None
        assert rec.element_count == 0
        assert is_fresh(rec, NOW)

    async def test_record_is_idempotent(self):
        ledger = InMemoryTileLedger()
        await ledger.record(KEY, 7, NOW)
        await ledger.record(KEY, 7, NOW)
        assert len(ledger) == 1
        assert await ledger.lookup(KEY) == TileRecord(KEY, NOW, 7)

    async def test_recollection_replaces(self):
        ledger = InMemoryTileLedger()
        await ledger.record(KEY, 7, NOW)
        later = NOW + timedelta(days=40)
        await ledger.record(KEY, 3, later)
        assert await ledger.lookup(KEY) == TileRecord(KEY, later, 3)

    async def test_negative_count_rejected(self):
        ledger = InMemoryTileLedger()
        with pytest.raises(ValueError):
            await ledger.record(KEY, -1, NOW)
        assert len(ledger) == 0

    async def test_naive_timestamp_treated_as_utc(self):
        ledger = InMemoryTileLedger()
        rec = await ledger.record(KEY, 1, datetime(2026, 3, 1))
        assert rec.collected_at == NOW

    async def test_concurrent_writes_single_record(self):
        ledger = InMemoryTileLedger()
        await asyncio.gather(*(ledger.record(KEY, n, NOW) for n in range(20)))
        assert len(ledger) == 1
        assert (await ledger.lookup(KEY)).element_count in range(20)

    async def test_lookup_many_and_summary(self):
        ledger = InMemoryTileLedger()
        await ledger.record("a", 2, NOW)
        await ledger.record("b", 0, NOW)
        found = await ledger.lookup_many(["a", "b", "c"])
        assert set(found) == {"a", "b"}
        summary = await ledger.summary()
        assert (summary.tiles, summary.elements) == (2, 2)


class TestIsFresh:
    def test_absent_is_not_fresh(self):
        assert not is_fresh(None, NOW)

    def test_uncollected_is_not_fresh(self):
        assert not is_fresh(TileRecord(KEY, None, 0), NOW)

    def test_within_window(self):
        rec = TileRecord(KEY, NOW - timedelta(days=29), 4)
        assert is_fresh(rec, NOW)

    def test_stale(self):
        rec = TileRecord(KEY, NOW - timedelta(days=31), 4)
        assert not is_fresh(rec, NOW)
        assert is_fresh(rec, NOW, staleness=timedelta(days=60))


@pytest.mark.asyncio
class TestPgTileLedger:
    async def test_record_single_upsert(self, pg):
        pool, conn = pg
        conn.fetchrow.return_value = {"tile_key": KEY, "collected_at": NOW, "element_count": 5}
        rec = await PgTileLedger(pool).record(KEY, 5, NOW)

        sql, *args = conn.fetchrow.call_args.args
        assert "ON CONFLICT (tile_key) DO UPDATE" in sql
        assert args == [KEY, NOW, 5]
        assert rec == TileRecord(KEY, NOW, 5)

    async def test_lookup_missing(self, pg):
        pool, conn = pg
        conn.fetchrow.return_value = None
        assert await PgTileLedger(pool).lookup(KEY) is None

    async def test_lookup_many_batches(self, pg):
        pool, conn = pg
        conn.fetch.return_value = [{"tile_key": KEY, "collected_at": NOW, "element_count": 0}]
        found = await PgTileLedger(pool).lookup_many([KEY, "other"])
        assert found == {KEY: TileRecord(KEY, NOW, 0)}
        assert conn.fetch.call_args.args[1] == [KEY, "other"]

    async def test_lookup_many_empty_skips_query(self, pg):
        pool, conn = pg
        assert await PgTileLedger(pool).lookup_many([]) == {}
        conn.fetch.assert_not_called()

    async def test_summary(self, pg):
        pool, conn = pg
        conn.fetchrow.return_value = {"tiles": 3, "elements": 12}
        summary = await PgTileLedger(pool).summary()
        assert (summary.tiles, summary.elements) == (3, 12)
