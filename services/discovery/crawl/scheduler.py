"""
CrawlScheduler: decide which tiles of a region still need collecting, fetch
them through a bounded worker pool, and write results back to the ledger.

Flow per run:
  1. decompose(region, tile_size)       grid tiles with canonical keys
  2. ledger.lookup_many(keys)           fresh tiles are skipped
  3. fetch(tile) per pending tile       concurrent, Semaphore-bounded,
                                        each under asyncio.wait_for(timeout)
  4. on_collected(tile, elements)       venue ingestion hook (optional)
  5. ledger.record(key, len(elements))  only after 3 and 4 succeed

A failed or timed-out tile never blocks the others. It lands in
report.failed as a FetchFailure and is NOT recorded, so the next run picks it
up again. A ledger write that fails is reported the same way.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import sentry_sdk

from services.discovery.crawl.ledger import DEFAULT_STALENESS, TileLedger, TileRecord, is_fresh
from services.discovery.crawl.tiles import BBox, Tile, decompose
from services.discovery.errors import FetchFailure

logger = logging.getLogger(__name__)

FetchFn = Callable[[Tile], Awaitable[Sequence[Any]]]
CollectedHook = Callable[[Tile, Sequence[Any]], Awaitable[None]]

DEFAULT_CONCURRENCY = 2
DEFAULT_ALERT_THRESHOLD = 3


@dataclass
class CrawlPlan:
    """Result of the dedup check for one region."""

    tiles: list[Tile]
    pending: list[Tile]
    fresh: list[Tile]

    @property
    def pending_keys(self) -> list[str]:
        return [t.key for t in self.pending]


@dataclass
class TileOutcome:
    tile: Tile
    element_count: int
    collected_at: datetime


@dataclass
class CrawlReport:
    """Everything a run did. Nothing is silently dropped."""

    total: int = 0
    skipped: list[Tile] = field(default_factory=list)
    collected: list[TileOutcome] = field(default_factory=list)
    failed: list[FetchFailure] = field(default_factory=list)

    @property
    def elements(self) -> int:
        return sum(o.element_count for o in self.collected)

    @property
    def failed_keys(self) -> list[str]:
        return [f.tile_key for f in self.failed]


class CrawlScheduler:
    def __init__(
        self,
        ledger: TileLedger,
        *,
        staleness: timedelta = DEFAULT_STALENESS,
        concurrency: int = DEFAULT_CONCURRENCY,
        delay_s: float = 0.0,
        alert_threshold: int = DEFAULT_ALERT_THRESHOLD,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._ledger = ledger
        self._staleness = staleness
        self._concurrency = concurrency
        self._delay_s = delay_s
        self._alert_threshold = alert_threshold

    async def plan(
        self,
        region: BBox,
        tile_size_deg: float,
        now: datetime | None = None,
    ) -> CrawlPlan:
        now = now or datetime.now(timezone.utc)
        tiles = decompose(region, tile_size_deg)
        records = await self._ledger.lookup_many(t.key for t in tiles)

        pending: list[Tile] = []
        fresh: list[Tile] = []
        for tile in tiles:
            if is_fresh(records.get(tile.key), now, self._staleness):
                fresh.append(tile)
            else:
                pending.append(tile)

        logger.info(
            "crawl plan: %d total tiles, %d fresh, %d need collection",
            len(tiles), len(fresh), len(pending),
        )
        return CrawlPlan(tiles=tiles, pending=pending, fresh=fresh)

    async def complete(
        self,
        tile: Tile,
        element_count: int,
        collected_at: datetime | None = None,
    ) -> TileRecord:
        """Write back a tile that was fetched outside run()."""
        return await self._ledger.record(
            tile.key, element_count, collected_at or datetime.now(timezone.utc)
        )

    async def run(
        self,
        region: BBox,
        tile_size_deg: float,
        fetch: FetchFn,
        *,
        timeout_s: float,
        on_collected: CollectedHook | None = None,
        now: datetime | None = None,
    ) -> CrawlReport:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")

        plan = await self.plan(region, tile_size_deg, now)
        report = CrawlReport(total=len(plan.tiles), skipped=list(plan.fresh))
        if not plan.pending:
            logger.info("crawl: nothing to do")
            return report

        semaphore = asyncio.Semaphore(self._concurrency)
        results = await asyncio.gather(
            *(
                self._collect_tile(semaphore, tile, fetch, timeout_s, on_collected)
                for tile in plan.pending
            )
        )

        # gather preserves input order, so the report is deterministic
        for result in results:
            if isinstance(result, FetchFailure):
                report.failed.append(result)
            else:
                report.collected.append(result)

        logger.info(
            "crawl: collected=%d failed=%d skipped=%d elements=%d",
            len(report.collected), len(report.failed), len(report.skipped), report.elements,
        )
        self._check_alert(report)
        return report

    async def _collect_tile(
        self,
        semaphore: asyncio.Semaphore,
        tile: Tile,
        fetch: FetchFn,
        timeout_s: float,
        on_collected: CollectedHook | None,
    ) -> TileOutcome | FetchFailure:
        async with semaphore:
            try:
                elements = await asyncio.wait_for(fetch(tile), timeout=timeout_s)
                if on_collected is not None:
                    await on_collected(tile, elements)
            except asyncio.TimeoutError:
                logger.warning("tile %s timed out after %.1fs", tile.key, timeout_s)
                return FetchFailure(tile.key, f"timed out after {timeout_s}s", timed_out=True)
            except FetchFailure as exc:
                logger.warning("tile %s failed: %s", tile.key, exc.reason)
                return exc
            except Exception as exc:
                logger.warning("tile %s failed: %s", tile.key, str(exc)[:200])
                return FetchFailure(tile.key, str(exc)[:200] or type(exc).__name__)

            collected_at = datetime.now(timezone.utc)
            try:
                await self._ledger.record(tile.key, len(elements), collected_at)
            except Exception as exc:
                # Venues are already ingested; the tile stays pending for the next run
                logger.error("tile %s: ledger write failed: %s", tile.key, str(exc)[:200])
                return FetchFailure(tile.key, f"ledger write failed: {str(exc)[:200] or type(exc).__name__}")

            if self._delay_s > 0:
                await asyncio.sleep(self._delay_s)

        return TileOutcome(tile=tile, element_count=len(elements), collected_at=collected_at)

    def _check_alert(self, report: CrawlReport) -> None:
        if len(report.failed) < self._alert_threshold:
            return
        msg = (
            f"crawl: {len(report.failed)}/{report.total} tiles failed "
            f"(first: {', '.join(report.failed_keys[:3])})"
        )
        logger.warning(msg)
        sentry_sdk.capture_message(msg, level="warning")
