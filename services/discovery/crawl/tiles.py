"""
Tile geometry for crawl deduplication.

A tile is a quantized geographic bounding box. All arithmetic happens on an
integer grid of 1e-4 degree units so that tile keys are exact and repeated
decompositions of the same region always produce the same keys.

The grid is anchored at (0, 0), not at the requested region's corner: a tile
that appears in two different crawl regions has the same key in both, which
lets the ledger recognise it. Tiles on the edge of a region are clipped for
fetching but keep the key of their full, unclipped extent.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

# Four decimal places of quantization
UNITS_PER_DEGREE = 10_000

# Guards float noise when converting degrees to grid units
_EPS = 1e-6


@dataclass(frozen=True)
class BBox:
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def __post_init__(self) -> None:
        if not (self.min_lon < self.max_lon) or not (self.min_lat < self.max_lat):
            raise ValueError(
                "Invalid bbox: must satisfy min_lon < max_lon and min_lat < max_lat"
            )

    def intersection(self, other: "BBox") -> "BBox":
        return BBox(
            min_lon=max(self.min_lon, other.min_lon),
            min_lat=max(self.min_lat, other.min_lat),
            max_lon=min(self.max_lon, other.max_lon),
            max_lat=min(self.max_lat, other.max_lat),
        )

    def to_overpass(self) -> str:
        """Overpass bbox order is (south, west, north, east)."""
        return f"({self.min_lat},{self.min_lon},{self.max_lat},{self.max_lon})"


@dataclass(frozen=True)
class Tile:
    """One grid cell. ``bbox`` is the full cell, ``fetch_bbox`` the clipped one."""

    key: str
    bbox: BBox
    fetch_bbox: BBox


def parse_bbox(raw: str) -> BBox:
    """Parse ``"minLon,minLat,maxLon,maxLat"``."""
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 4:
        raise ValueError('Invalid bbox. Expected "minLon,minLat,maxLon,maxLat" as numbers.')
    try:
        min_lon, min_lat, max_lon, max_lat = (float(p) for p in parts)
    except ValueError as exc:
        raise ValueError('Invalid bbox. Expected "minLon,minLat,maxLon,maxLat" as numbers.') from exc
    if not (-180.0 <= min_lon and max_lon <= 180.0):
        raise ValueError("Invalid bbox: longitude out of range")
    if not (-90.0 <= min_lat and max_lat <= 90.0):
        raise ValueError("Invalid bbox: latitude out of range")
    return BBox(min_lon, min_lat, max_lon, max_lat)


def _fmt(units: int) -> str:
    sign = "-" if units < 0 else ""
    whole, frac = divmod(abs(units), UNITS_PER_DEGREE)
    return f"{sign}{whole}.{frac:04d}"


def tile_key(bbox: BBox) -> str:
    """Canonical ``minLon,minLat,maxLon,maxLat`` key, 4 decimals each."""
    return ",".join(
        _fmt(round(v * UNITS_PER_DEGREE))
        for v in (bbox.min_lon, bbox.min_lat, bbox.max_lon, bbox.max_lat)
    )


def tile_size_units(tile_size_deg: float) -> int:
    """Tile edge in grid units. Must be a positive multiple of 0.0001 degrees."""
    if tile_size_deg <= 0:
        raise ValueError("tile_size_deg must be > 0")
    units = round(tile_size_deg * UNITS_PER_DEGREE)
    if units < 1 or abs(units - tile_size_deg * UNITS_PER_DEGREE) > _EPS * UNITS_PER_DEGREE:
        raise ValueError(
            f"tile_size_deg must be a multiple of {1 / UNITS_PER_DEGREE} degrees, got {tile_size_deg}"
        )
    return units


def _cell_range(lo_deg: float, hi_deg: float, size: int) -> range:
    lo = math.floor(lo_deg * UNITS_PER_DEGREE + _EPS)
    hi = math.ceil(hi_deg * UNITS_PER_DEGREE - _EPS)
    first = lo // size
    last = -(-hi // size)  # ceil division
    return range(first, last)


def decompose(region: BBox, tile_size_deg: float) -> list[Tile]:
    """
    Split a region into non-overlapping grid tiles, row by row (south to north,
    west to east). Deterministic for identical inputs.
    """
    size = tile_size_units(tile_size_deg)
    tiles: list[Tile] = []
    for row in _cell_range(region.min_lat, region.max_lat, size):
        for col in _cell_range(region.min_lon, region.max_lon, size):
            full = BBox(
                min_lon=col * size / UNITS_PER_DEGREE,
                min_lat=row * size / UNITS_PER_DEGREE,
                max_lon=(col + 1) * size / UNITS_PER_DEGREE,
                max_lat=(row + 1) * size / UNITS_PER_DEGREE,
            )
            key = ",".join(
                _fmt(u)
                for u in (col * size, row * size, (col + 1) * size, (row + 1) * size)
            )
            tiles.append(Tile(key=key, bbox=full, fetch_bbox=full.intersection(region)))
    return tiles
