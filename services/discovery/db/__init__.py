"""
Persistence for the discovery service.

asyncpg repositories for the hot paths, SQLAlchemy models for the schema.
"""

from services.discovery.db.embeddings import (
    InMemoryVenueEmbeddingRepository,
    PgVenueEmbeddingRepository,
    VenueEmbeddingRepository,
)
from services.discovery.db.engine import create_engine, create_pool, create_schema, standalone_pool
from services.discovery.db.models import Base
from services.discovery.db.venues import InMemoryVenueRepository, PgVenueRepository, VenueRepository

__all__ = [
    "Base",
    "InMemoryVenueEmbeddingRepository",
    "InMemoryVenueRepository",
    "PgVenueEmbeddingRepository",
    "PgVenueRepository",
    "VenueEmbeddingRepository",
    "VenueRepository",
    "create_engine",
    "create_pool",
    "create_schema",
    "standalone_pool",
]
