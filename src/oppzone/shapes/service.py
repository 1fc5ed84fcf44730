"""Viewport and batch-by-ID shape retrieval.

Shapes come from the PostGIS store while its index is available and from
the current cache snapshot otherwise. Low zoom levels get simplified
geometry to bound payload size; zoom at or above the detail threshold
gets full-resolution geometry.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable, Sequence

from oppzone.core.config import SpatialConfig
from oppzone.core.result import Err, Ok, Result, ServiceError, validation_error
from oppzone.core.types import Bounds, FeatureCollection
from oppzone.shapes.contiguity import MAX_FEATURES, RENDER_HINTS, ContiguityAnalyzer
from oppzone.spatial.matcher import SpatialMatcher
from oppzone.spatial.store import ZoneShape
from oppzone.zones.cache import ZoneCacheManager
from oppzone.zones.geometry import geometry_intersects_bbox

logger = logging.getLogger(__name__)

MIN_ZOOM = 1
MAX_ZOOM = 20


def clamp_zoom(zoom: int) -> int:
    return max(MIN_ZOOM, min(MAX_ZOOM, zoom))


class ShapeQueryService:
    """Returns renderable FeatureCollections for a viewport or an ID list."""

    def __init__(
        self,
        matcher: SpatialMatcher,
        cache: ZoneCacheManager,
        analyzer: ContiguityAnalyzer | None = None,
        config: SpatialConfig | None = None,
    ) -> None:
        self._matcher = matcher
        self._cache = cache
        self._analyzer = analyzer or ContiguityAnalyzer()
        self._config = config or SpatialConfig()

    def uses_full_detail(self, zoom: int) -> bool:
        return clamp_zoom(zoom) >= self._config.detail_zoom_threshold

    # -- viewport ------------------------------------------------------------

    async def get_shapes_in_bounds(
        self, bounds: Bounds, zoom: int | None = None
    ) -> Result[FeatureCollection, ServiceError]:
        if zoom is None:
            zoom = self._config.default_zoom
        if isinstance(zoom, bool) or not isinstance(zoom, int):
            return validation_error("Zoom must be an integer", zoom=repr(zoom))
        values = (bounds.north, bounds.south, bounds.east, bounds.west)
        if not all(math.isfinite(v) for v in values):
            return validation_error("Invalid bounds: all bounds must be finite numbers")
        if not bounds.is_valid():
            return validation_error(
                "Invalid bounds: north must be > south and east must be > west",
                bounds=bounds.model_dump(),
            )

        started = time.monotonic()
        zoom = clamp_zoom(zoom)
        detailed = self.uses_full_detail(zoom)
        store = self._matcher.store
        shapes, source = await self._query(
            lambda: store.shapes_in_bounds(bounds, detailed=detailed),
            lambda: self._snapshot_in_bounds(bounds, detailed),
        )

        features = [s.to_geojson() for s in shapes]
        metadata: dict[str, Any] = {
            "bounds": bounds.model_dump(),
            "zoomLevel": zoom,
            "detail": "full" if detailed else "simplified",
            "source": source,
            "shapeCount": len(features),
        }
        if len(features) <= MAX_FEATURES:
            features, contiguity = self._colorize(features)
        else:
            # Too many shapes for pairwise adjacency; render them uncolored.
            features = [self._plain(f) for f in features]
            contiguity = None
        metadata["contiguity"] = contiguity
        metadata["colors"] = self._analyzer.palette
        metadata["queryTime"] = round((time.monotonic() - started) * 1000, 2)
        return Ok(FeatureCollection(features=features, metadata=metadata))

    def _snapshot_in_bounds(self, bounds: Bounds, detailed: bool) -> list[ZoneShape]:
        snapshot = self._cache.get_snapshot()
        box = (bounds.west, bounds.south, bounds.east, bounds.north)
        matches = [
            ZoneShape.from_feature(f, detailed)
            for f in snapshot.features
            if geometry_intersects_bbox(f.original_geometry, box, f.bbox)
        ]
        return sorted(matches, key=lambda s: s.geoid)

    # -- batch ---------------------------------------------------------------

    async def get_shapes_by_zone_ids(
        self, zone_ids: Sequence[Any]
    ) -> Result[FeatureCollection, ServiceError]:
        error = self._validate_ids(zone_ids)
        if error is not None:
            return error

        started = time.monotonic()
        wanted = list(dict.fromkeys(z.strip() for z in zone_ids))
        store = self._matcher.store
        shapes, source = await self._query(
            lambda: store.shapes_by_ids(wanted),
            lambda: self._snapshot_by_ids(wanted),
        )

        features, contiguity = self._colorize([s.to_geojson() for s in shapes])
        metadata = {
            "requestedZones": len(zone_ids),
            "foundZones": len(features),
            "shapeCount": len(features),
            "source": source,
            "contiguity": contiguity,
            "colors": self._analyzer.palette,
            "queryTime": round((time.monotonic() - started) * 1000, 2),
        }
        return Ok(FeatureCollection(features=features, metadata=metadata))

    def _validate_ids(self, zone_ids: Any) -> Err[ServiceError] | None:
        limit = self._config.max_batch_ids
        if not isinstance(zone_ids, (list, tuple)):
            return validation_error("zone_ids must be an array of strings")
        if not 1 <= len(zone_ids) <= limit:
            return validation_error(
                f"zone_ids must contain between 1 and {limit} IDs", count=len(zone_ids)
            )
        for position, zone_id in enumerate(zone_ids):
            if not isinstance(zone_id, str):
                return validation_error("zone_ids must contain only strings", position=position)
            if not zone_id.strip():
                return validation_error("zone_ids must not contain empty IDs", position=position)
        return None

    def _snapshot_by_ids(self, geoids: list[str]) -> list[ZoneShape]:
        snapshot = self._cache.get_snapshot()
        found = [snapshot.get(g) for g in sorted(geoids)]
        return [ZoneShape.from_feature(f, detailed=False) for f in found if f is not None]

    # -- helpers -------------------------------------------------------------

    async def _query(
        self,
        from_store: Callable[[], Awaitable[list[ZoneShape]]],
        from_snapshot: Callable[[], list[ZoneShape]],
    ) -> tuple[list[ZoneShape], str]:
        if self._matcher.store is not None and await self._matcher.is_index_available():
            try:
                shapes = await asyncio.wait_for(
                    from_store(), timeout=self._config.query_timeout_seconds
                )
            except Exception as exc:
                logger.warning("Shape query against spatial index failed, using snapshot: %s", exc)
            else:
                return shapes, "index"
        return from_snapshot(), "snapshot"

    def _colorize(
        self, features: list[dict[str, Any]]
    ) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        features = sorted(features, key=lambda f: f["properties"]["geoid"])
        colored, stats = self._analyzer.analyze(features)
        return colored, stats.to_dict()

    def _plain(self, feature: dict[str, Any]) -> dict[str, Any]:
        return {
            **feature,
            "properties": {
                **feature["properties"],
                "color": self._analyzer.palette[0],
                **RENDER_HINTS,
            },
        }
