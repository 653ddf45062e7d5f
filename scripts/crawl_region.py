#!/usr/bin/env python3
"""
Crawl a region of OpenStreetMap for wedding-relevant venues.

The region is split into tiles; tiles collected within the staleness window
are skipped, so re-running after a partial failure only fetches what is
missing. Each collected tile's elements are upserted into venues by osm_id.

Usage:
    PYTHONPATH=. python3 scripts/crawl_region.py "-123.2,45.3,-122.4,45.7"
    PYTHONPATH=. python3 scripts/crawl_region.py "<bbox>" --tile-size 0.02 --dry-run
"""

import argparse
import asyncio
import logging
import sys
import time
from datetime import timedelta

logger = logging.getLogger("crawl_region")


def make_ingest_hook(venues):
    """on_collected hook: normalise Overpass elements and upsert them."""
    from services.discovery.crawl.overpass import elements_to_venues

    async def _ingest(tile, elements) -> None:
        records = elements_to_venues(list(elements))
        written = await venues.upsert_crawled(records)
        logger.info("tile %s: %d elements, %d venues upserted", tile.key, len(elements), written)

    return _ingest


async def run(args: argparse.Namespace) -> int:
    from services.discovery.config import settings
    from services.discovery.crawl.ledger import PgTileLedger
    from services.discovery.crawl.overpass import OverpassFetcher
    from services.discovery.crawl.scheduler import CrawlScheduler
    from services.discovery.crawl.tiles import parse_bbox
    from services.discovery.db.engine import create_schema, standalone_pool
    from services.discovery.db.venues import PgVenueRepository

    region = parse_bbox(args.bbox)
    tile_size = args.tile_size or settings.crawl_tile_size_deg

    if args.init_schema:
        await create_schema()
        logger.info("Schema ensured")

    async with standalone_pool() as pool:
        ledger = PgTileLedger(pool)
        scheduler = CrawlScheduler(
            ledger,
            staleness=timedelta(days=settings.crawl_staleness_days),
            concurrency=args.concurrency or settings.crawl_concurrency,
            delay_s=settings.crawl_delay_s,
            alert_threshold=settings.crawl_alert_threshold,
        )

        plan = await scheduler.plan(region, tile_size)
        logger.info(
            "Region %s: %d tiles, %d fresh, %d to collect",
            args.bbox, len(plan.tiles), len(plan.fresh), len(plan.pending),
        )
        if args.dry_run:
            for tile in plan.pending:
                print(tile.key)
            return 0

        t0 = time.monotonic()
        async with OverpassFetcher(settings.overpass_endpoints) as fetcher:
            report = await scheduler.run(
                region,
                tile_size,
                fetcher.fetch,
                timeout_s=settings.crawl_fetch_timeout_s,
                on_collected=make_ingest_hook(PgVenueRepository(pool)),
            )

        summary = await ledger.summary()
        logger.info(
            "Done in %.0fs: collected=%d skipped=%d failed=%d elements=%d (ledger: %d tiles, %d elements)",
            time.monotonic() - t0,
            len(report.collected), len(report.skipped), len(report.failed), report.elements,
            summary.tiles, summary.elements,
        )
        for failure in report.failed:
            logger.warning("FAILED %s: %s", failure.tile_key, failure.reason)
        return 1 if report.failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Tile-deduplicated Overpass crawl of a bbox region")
    parser.add_argument("bbox", help='Region as "minLon,minLat,maxLon,maxLat"')
    parser.add_argument("--tile-size", type=float, default=None, help="Tile size in degrees")
    parser.add_argument("--concurrency", type=int, default=None, help="Parallel tile fetches")
    parser.add_argument("--dry-run", action="store_true", help="List pending tiles and exit")
    parser.add_argument("--init-schema", action="store_true", help="Create missing tables first")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    try:
        sys.exit(asyncio.run(run(args)))
    except ValueError as exc:
        parser.error(str(exc))


if __name__ == "__main__":
    main()
