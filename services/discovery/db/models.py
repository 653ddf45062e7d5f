"""
SQLAlchemy DeclarativeBase models for the discovery schema.

Runtime queries go through asyncpg with raw SQL (see the Pg* repositories);
these models own the DDL (create_schema) and document column names and
constraints in one place. Keep them in step with the SQL constants.
"""

import uuid as _uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

PricingTierEnum = Enum("low", "medium", "high", "luxury", "unknown", name="pricing_tier_enum")
SessionContextEnum = Enum("onboarding", "discovery", name="swipe_session_context")
DecisionEnum = Enum("like", "skip", "undo", name="swipe_decision")


def _uuid_str() -> str:
    return str(_uuid.uuid4())


class Base(DeclarativeBase):
    pass


class CollectedTile(Base):
    """Crawl ledger. element_count = 0 is a collected tile, not a missing one."""

    __tablename__ = "collected_tiles"

    tile_key: Mapped[str] = mapped_column(String, primary_key=True)
    collected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    element_count: Mapped[int] = mapped_column(Integer, default=0)


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    wedding_date: Mapped[Optional[datetime]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Venue(Base):
    __tablename__ = "venues"

    venue_id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    osm_id: Mapped[Optional[str]] = mapped_column(String, unique=True, nullable=True)
    name: Mapped[str] = mapped_column(String)
    lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    website_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    osm_metadata: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    pricing_tier: Mapped[str] = mapped_column(PricingTierEnum, default="unknown")
    is_wedding_venue: Mapped[bool] = mapped_column(Boolean, default=False)
    is_estate: Mapped[bool] = mapped_column(Boolean, default=False)
    is_historic: Mapped[bool] = mapped_column(Boolean, default=False)
    has_lodging: Mapped[bool] = mapped_column(Boolean, default=False)
    lodging_capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    raw_markdown: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_crawled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class VenueEmbedding(Base):
    __tablename__ = "venue_embeddings"

    venue_id: Mapped[str] = mapped_column(
        String, ForeignKey("venues.venue_id", ondelete="CASCADE"), primary_key=True
    )
    embedding_vector: Mapped[list[float]] = mapped_column(ARRAY(Float))
    model: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class TasteProfile(Base):
    """One row per user, rewritten whole on every regeneration."""

    __tablename__ = "taste_profiles"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True
    )
    embedding_vector: Mapped[list[float]] = mapped_column(ARRAY(Float))
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    descriptive_words: Mapped[list[str]] = mapped_column(ARRAY(String), default=list)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    swipe_count: Mapped[int] = mapped_column(Integer, default=0)
    like_count: Mapped[int] = mapped_column(Integer, default=0)


class SwipeEvent(Base):
    """Append-only. Undo is a new row pointing at target_sequence; rows are never updated."""

    __tablename__ = "swipe_events"
    __table_args__ = (UniqueConstraint("user_id", "session_context", "sequence"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.user_id", ondelete="CASCADE"), index=True)
    session_context: Mapped[str] = mapped_column(SessionContextEnum)
    sequence: Mapped[int] = mapped_column(Integer)
    venue_id: Mapped[str] = mapped_column(String, ForeignKey("venues.venue_id", ondelete="CASCADE"))
    decision: Mapped[str] = mapped_column(DecisionEnum)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    target_sequence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class SwipeSession(Base):
    __tablename__ = "swipe_sessions"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True
    )
    session_context: Mapped[str] = mapped_column(SessionContextEnum, primary_key=True)
    seed_venue_ids: Mapped[Optional[list[str]]] = mapped_column(ARRAY(String), nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ShortlistEntry(Base):
    __tablename__ = "shortlist"
    __table_args__ = (UniqueConstraint("user_id", "venue_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.user_id", ondelete="CASCADE"), index=True)
    venue_id: Mapped[str] = mapped_column(String, ForeignKey("venues.venue_id", ondelete="CASCADE"))
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    taste_score_snapshot: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
