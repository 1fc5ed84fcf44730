"""Geometry store protocol and the PostGIS implementation.

The ``opportunity_zones`` table and the ``check_point_in_opportunity_zone_fast``
function are created by the alembic migration. Queries use raw SQL since
the geometry columns have no ORM mapping.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel
from sqlalchemy import Text, bindparam, text
from sqlalchemy.dialects.postgresql import ARRAY

from oppzone.core.types import Bounds
from oppzone.db.engine import DatabaseManager
from oppzone.zones.models import ZoneFeature

logger = logging.getLogger(__name__)


class ZoneShape(BaseModel):
    """A renderable zone geometry with its labels."""

    geoid: str
    geometry: dict[str, Any]
    state: str = ""
    county: str = ""

    @classmethod
    def from_feature(cls, feature: ZoneFeature, detailed: bool) -> ZoneShape:
        return cls(
            geoid=feature.geoid,
            geometry=feature.geometry(detailed),
            state=feature.state,
            county=feature.county,
        )

    def to_geojson(self) -> dict[str, Any]:
        """GeoJSON Feature; the id is mirrored under every key consumers read."""
        return {
            "type": "Feature",
            "properties": {
                "geoid": self.geoid,
                "GEOID": self.geoid,
                "CENSUSTRAC": self.geoid,
                "id": self.geoid,
                "name": self.geoid,
                "state": self.state or "Unknown",
                "county": self.county or "Unknown",
            },
            "geometry": self.geometry,
        }


@runtime_checkable
class GeometryStore(Protocol):
    """Queryable zone geometry storage with a spatial point-in-polygon function."""

    async def has_spatial_index(self) -> bool: ...

    async def find_zone(self, lat: float, lon: float) -> str | None: ...

    async def shapes_in_bounds(self, bounds: Bounds, *, detailed: bool) -> list[ZoneShape]: ...

    async def shapes_by_ids(self, geoids: Sequence[str]) -> list[ZoneShape]: ...


_AVAILABILITY_SQL = text(
    "SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'postgis') AS available"
)

_FIND_ZONE_SQL = text(
    "SELECT geoid FROM check_point_in_opportunity_zone_fast(:lat, :lon)"
)

_BOUNDS_SQL = {
    detailed: text(
        f"""
        SELECT geoid, state, county, ST_AsGeoJSON({column}) AS geometry
        FROM opportunity_zones
        WHERE bbox && ST_MakeEnvelope(:west, :south, :east, :north, 4326)
          AND ST_Intersects(original_geom, ST_MakeEnvelope(:west, :south, :east, :north, 4326))
        ORDER BY geoid
        """
    )
    for detailed, column in (
        (True, "original_geom"),
        (False, "COALESCE(simplified_geom, original_geom)"),
    )
}

_BY_IDS_SQL = text(
    """
    SELECT geoid, state, county,
           ST_AsGeoJSON(COALESCE(simplified_geom, original_geom)) AS geometry
    FROM opportunity_zones
    WHERE geoid = ANY(:geoids)
    ORDER BY geoid
    """
).bindparams(bindparam("geoids", type_=ARRAY(Text)))

_UPSERT_SQL = text(
    """
    INSERT INTO opportunity_zones
        (geoid, state, county, original_geom, simplified_geom, bbox, updated_at)
    VALUES (
        :geoid, :state, :county,
        ST_SetSRID(ST_GeomFromGeoJSON(:geometry), 4326),
        ST_SimplifyPreserveTopology(ST_SetSRID(ST_GeomFromGeoJSON(:geometry), 4326), :tolerance),
        ST_Envelope(ST_SetSRID(ST_GeomFromGeoJSON(:geometry), 4326)),
        NOW()
    )
    ON CONFLICT (geoid) DO UPDATE SET
        state = EXCLUDED.state,
        county = EXCLUDED.county,
        original_geom = EXCLUDED.original_geom,
        simplified_geom = EXCLUDED.simplified_geom,
        bbox = EXCLUDED.bbox,
        updated_at = NOW()
    """
)

_STATS_SQL = text(
    """
    SELECT COUNT(*) AS total_zones,
           COALESCE(AVG(ST_NPoints(original_geom)), 0) AS avg_original_vertices,
           COALESCE(AVG(ST_NPoints(simplified_geom)), 0) AS avg_simplified_vertices
    FROM opportunity_zones
    """
)


def _row_to_shape(row: Any) -> ZoneShape:
    geometry = row.geometry
    if isinstance(geometry, str):
        geometry = json.loads(geometry)
    if not isinstance(geometry, dict):
        raise ValueError(f"Malformed geometry for zone {row.geoid!r}")
    return ZoneShape(
        geoid=row.geoid,
        geometry=geometry,
        state=row.state or "",
        county=row.county or "",
    )


class PostgisGeometryStore:
    """PostGIS-backed zone geometry store."""

    def __init__(self, db: DatabaseManager, simplify_tolerance: float = 0.001) -> None:
        self._db = db
        self._tolerance = simplify_tolerance

    async def has_spatial_index(self) -> bool:
        if self._db.dialect != "postgresql":
            return False
        async with self._db.session() as db:
            result = await db.execute(_AVAILABILITY_SQL)
            return bool(result.scalar())

    async def find_zone(self, lat: float, lon: float) -> str | None:
        async with self._db.session() as db:
            result = await db.execute(_FIND_ZONE_SQL, {"lat": lat, "lon": lon})
            geoid = result.scalar()
        if geoid is not None and not isinstance(geoid, str):
            raise ValueError(f"Unexpected geoid value from spatial index: {geoid!r}")
        return geoid or None

    async def shapes_in_bounds(self, bounds: Bounds, *, detailed: bool) -> list[ZoneShape]:
        async with self._db.session() as db:
            result = await db.execute(_BOUNDS_SQL[detailed], bounds.model_dump())
            return [_row_to_shape(row) for row in result]

    async def shapes_by_ids(self, geoids: Sequence[str]) -> list[ZoneShape]:
        async with self._db.session() as db:
            result = await db.execute(_BY_IDS_SQL, {"geoids": list(geoids)})
            return [_row_to_shape(row) for row in result]

    async def store_features(self, features: Sequence[ZoneFeature], batch_size: int = 100) -> int:
        """Upsert features, computing simplified geometry and bbox in the database."""
        stored = 0
        total_batches = (len(features) + batch_size - 1) // batch_size
        for start in range(0, len(features), batch_size):
            batch = features[start:start + batch_size]
            params = [
                {
                    "geoid": f.geoid,
                    "state": f.state,
                    "county": f.county,
                    "geometry": json.dumps(f.original_geometry),
                    "tolerance": self._tolerance,
                }
                for f in batch
            ]
            async with self._db.session() as db:
                await db.execute(_UPSERT_SQL, params)
                await db.commit()
            stored += len(batch)
            logger.info(
                "Stored batch %d/%d (%d/%d features)",
                start // batch_size + 1, total_batches, stored, len(features),
            )
        return stored

    async def get_optimization_stats(self) -> dict[str, Any]:
        async with self._db.session() as db:
            row = (await db.execute(_STATS_SQL)).one()
        original = float(row.avg_original_vertices)
        simplified = float(row.avg_simplified_vertices)
        ratio = (1 - simplified / original) * 100 if original else 0.0
        return {
            "totalZones": int(row.total_zones),
            "avgOriginalVertices": round(original, 1),
            "avgSimplifiedVertices": round(simplified, 1),
            "compressionRatio": round(ratio, 1),
        }
