"""Factories and mocks shared by the discovery tests."""

from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import numpy as np

from services.discovery.types import PricingTier, Venue

DIM = 8


def axis(i: int, dim: int = DIM, scale: float = 1.0) -> list[float]:
    """Vector along axis i."""
    v = [0.0] * dim
    v[i] = scale
    return v


def blend(weights: dict[int, float], dim: int = DIM) -> list[float]:
    v = np.zeros(dim)
    for i, w in weights.items():
        v[i] = w
    return v.tolist()


def make_venue(venue_id: str, **overrides: Any) -> Venue:
    base = {
        "venue_id": venue_id,
        "name": f"Venue {venue_id}",
        "lat": 45.5,
        "lng": -122.6,
        "pricing_tier": PricingTier.MEDIUM,
        "is_wedding_venue": True,
    }
    base.update(overrides)
    return Venue(**base)


def make_pool(conn: AsyncMock | None = None) -> tuple[MagicMock, AsyncMock]:
    """Build a minimal asyncpg pool mock.

    The pool's acquire() is used as an async context manager that yields a
    single connection; conn.transaction() is a no-op async context manager.
    """
    conn = conn or AsyncMock()

    @asynccontextmanager
    async def _transaction():
        yield

    conn.transaction = MagicMock(side_effect=lambda: _transaction())

    pool = MagicMock()

    @asynccontextmanager
    async def _acquire():
        yield conn

    pool.acquire = _acquire
    return pool, conn


def catalog_venues() -> list[Venue]:
    """Six wedding venues plus one non-wedding venue; v6 has no embedding."""
    return [
        make_venue("v1", name="Oak Estate", is_estate=True, pricing_tier=PricingTier.LUXURY),
        make_venue("v2", name="Birch Barn", pricing_tier=PricingTier.LOW),
        make_venue("v3", name="Cedar Manor", is_historic=True, pricing_tier=PricingTier.HIGH),
        make_venue("v4", name="Dogwood Lodge", has_lodging=True, lodging_capacity=40),
        make_venue("v5", name="elm vineyard", pricing_tier=None),
        make_venue("v6", name="Fir Garden", pricing_tier=PricingTier.LOW),
        make_venue("x1", name="Hardware Store", is_wedding_venue=False),
    ]


def catalog_vectors() -> dict[str, list[float]]:
    return {
        "v1": axis(0),
        "v2": axis(1),
        "v3": blend({0: 0.8, 2: 0.6}),
        "v4": axis(3),
        "v5": blend({1: 0.6, 4: 0.8}),
        "x1": axis(5),
    }
