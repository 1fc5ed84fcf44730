"""PostGIS opportunity_zones table and fast point lookup function.

Skipped on databases other than PostgreSQL; the service then runs on
snapshot matching only.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0002"
down_revision: str | None = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_CHECK_POINT_FUNCTION = """
CREATE OR REPLACE FUNCTION check_point_in_opportunity_zone_fast(lat double precision, lon double precision)
RETURNS TABLE (geoid text)
LANGUAGE sql STABLE AS $$
    SELECT oz.geoid::text
    FROM opportunity_zones oz
    WHERE oz.bbox && ST_SetSRID(ST_MakePoint(lon, lat), 4326)
      AND ST_Contains(
            COALESCE(oz.simplified_geom, oz.original_geom),
            ST_SetSRID(ST_MakePoint(lon, lat), 4326)
          )
    ORDER BY oz.geoid
    LIMIT 1
$$
"""


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name != "postgresql":
        return

    op.execute(sa.text("CREATE EXTENSION IF NOT EXISTS postgis"))
    op.execute(
        sa.text(
            """
            CREATE TABLE IF NOT EXISTS opportunity_zones (
                geoid VARCHAR(20) PRIMARY KEY,
                state VARCHAR(64),
                county VARCHAR(128),
                original_geom geometry(Geometry, 4326) NOT NULL,
                simplified_geom geometry(Geometry, 4326),
                bbox geometry(Geometry, 4326),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )
    )
    op.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS ix_opportunity_zones_original_geom "
        "ON opportunity_zones USING GIST (original_geom)"
    ))
    op.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS ix_opportunity_zones_simplified_geom "
        "ON opportunity_zones USING GIST (simplified_geom)"
    ))
    op.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS ix_opportunity_zones_bbox "
        "ON opportunity_zones USING GIST (bbox)"
    ))
    op.execute(sa.text(_CHECK_POINT_FUNCTION))


def downgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name != "postgresql":
        return
    op.execute(sa.text("DROP FUNCTION IF EXISTS check_point_in_opportunity_zone_fast(double precision, double precision)"))
    op.execute(sa.text("DROP TABLE IF EXISTS opportunity_zones"))
