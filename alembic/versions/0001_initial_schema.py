"""Initial schema: zone snapshot and geocoding cache tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # -- Zone snapshots --
    op.create_table(
        "zone_snapshots",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("data_hash", sa.String(64), nullable=False),
        sa.Column("feature_count", sa.Integer, nullable=False),
        sa.Column("loaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("next_refresh_due", sa.DateTime(timezone=True), nullable=False),
        sa.Column("features", _json(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_zone_snapshots_created_at", "zone_snapshots", ["created_at"])

    # -- Geocoding cache --
    op.create_table(
        "geocoding_cache",
        sa.Column("normalized_address", sa.String(512), primary_key=True),
        sa.Column("latitude", sa.Float, server_default="0"),
        sa.Column("longitude", sa.Float, server_default="0"),
        sa.Column("display_name", sa.Text, server_default=""),
        sa.Column("not_found", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_geocoding_cache_expires_at", "geocoding_cache", ["expires_at"])


def downgrade() -> None:
    op.drop_table("geocoding_cache")
    op.drop_table("zone_snapshots")
