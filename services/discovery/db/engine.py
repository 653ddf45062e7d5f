"""
Database handles: asyncpg pool for the repositories, SA engine for DDL.

NullPool on the SA engine because it is only used for short-lived schema
work; request traffic goes through the asyncpg pool.
"""

from contextlib import asynccontextmanager

import asyncpg
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from services.discovery.config import settings
from services.discovery.db.models import Base


def create_engine() -> AsyncEngine:
    url = settings.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return create_async_engine(
        url,
        poolclass=NullPool,
        echo=settings.debug and settings.environment == "development",
    )


async def create_pool() -> asyncpg.Pool:
    return await asyncpg.create_pool(
        settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=30,
    )


async def create_schema(engine: AsyncEngine | None = None) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    owned = engine is None
    engine = engine or create_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        if owned:
            await engine.dispose()


@asynccontextmanager
async def standalone_pool():
    """
    For standalone scripts (crawl_region.py, embed_venues.py) that run outside FastAPI.
    Closes the pool on exit so short runs do not leak connections.
    """
    pool = await create_pool()
    try:
        yield pool
    finally:
        await pool.close()
