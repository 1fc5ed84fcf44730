"""SQLAlchemy ORM models for persistent cache tables.

Zone geometries live in the PostGIS ``opportunity_zones`` table, which is
created by migration and queried with raw SQL (see
``oppzone.spatial.store``); it has no ORM row here.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from oppzone.db.base import Base


def _jsonb() -> type:
    """Return JSONB for Postgres, plain JSON for SQLite."""
    return JSON().with_variant(PG_JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Zone snapshots
# ---------------------------------------------------------------------------


class ZoneSnapshotRow(Base):
    __tablename__ = "zone_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    data_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    feature_count: Mapped[int] = mapped_column(Integer, nullable=False)
    loaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    next_refresh_due: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    features: Mapped[list] = mapped_column(_jsonb(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_zone_snapshots_created_at", "created_at"),
    )


# ---------------------------------------------------------------------------
# Geocoding cache
# ---------------------------------------------------------------------------


class GeocodeCacheRow(Base):
    __tablename__ = "geocoding_cache"

    normalized_address: Mapped[str] = mapped_column(String(512), primary_key=True)
    latitude: Mapped[float] = mapped_column(Float, default=0.0)
    longitude: Mapped[float] = mapped_column(Float, default=0.0)
    display_name: Mapped[str] = mapped_column(Text, default="")
    not_found: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_geocoding_cache_expires_at", "expires_at"),
    )
