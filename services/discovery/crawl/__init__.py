"""Tile-based crawl deduplication: geometry, ledger, scheduler, Overpass fetch."""

from services.discovery.crawl.ledger import (
    InMemoryTileLedger,
    PgTileLedger,
    TileLedger,
    TileRecord,
    is_fresh,
)
from services.discovery.crawl.scheduler import CrawlPlan, CrawlReport, CrawlScheduler
from services.discovery.crawl.tiles import BBox, Tile, decompose, parse_bbox, tile_key

__all__ = [
    "BBox",
    "CrawlPlan",
    "CrawlReport",
    "CrawlScheduler",
    "InMemoryTileLedger",
    "PgTileLedger",
    "Tile",
    "TileLedger",
    "TileRecord",
    "decompose",
    "is_fresh",
    "parse_bbox",
    "tile_key",
]
