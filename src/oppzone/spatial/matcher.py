"""Point-in-zone matching with graceful degradation.

The PostGIS fast path is used while the spatial extension is known to be
present. Any failure on that path degrades the single call to a linear
ray-casting scan over the current cache snapshot; the caller always gets
an answer labelled with the method that produced it.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum

from pydantic import BaseModel

from oppzone.core.config import SpatialConfig
from oppzone.spatial.store import GeometryStore
from oppzone.zones.cache import ZoneCacheManager
from oppzone.zones.models import CacheSnapshot

logger = logging.getLogger(__name__)


class MatchMethod(StrEnum):
    INDEX = "index"
    FALLBACK = "fallback"


class MatchResult(BaseModel):
    is_in_zone: bool
    zone_id: str | None = None
    method: MatchMethod


def match_snapshot(snapshot: CacheSnapshot, lat: float, lon: float) -> MatchResult:
    feature = snapshot.find_containing(lat, lon)
    return MatchResult(
        is_in_zone=feature is not None,
        zone_id=feature.geoid if feature is not None else None,
        method=MatchMethod.FALLBACK,
    )


class SpatialMatcher:
    """Answers "is this point inside an Opportunity Zone?".

    Index availability is checked once and memoized until
    ``reset_availability()`` is called; an unavailable index is not
    checked again automatically.
    """

    def __init__(
        self,
        cache: ZoneCacheManager,
        store: GeometryStore | None = None,
        config: SpatialConfig | None = None,
    ) -> None:
        self._cache = cache
        self._store = store
        self._config = config or SpatialConfig()
        self._index_available: bool | None = None

    @property
    def store(self) -> GeometryStore | None:
        return self._store

    async def is_index_available(self) -> bool:
        if self._index_available is not None:
            return self._index_available
        if self._store is None:
            self._index_available = False
            return False

        try:
            available = await asyncio.wait_for(
                self._store.has_spatial_index(), timeout=self._config.query_timeout_seconds
            )
        except Exception as exc:
            logger.error("Failed to check spatial index availability: %s", exc)
            available = False

        if available:
            logger.info("PostGIS spatial index is available")
        else:
            logger.warning("PostGIS spatial index unavailable; using in-memory matching")
        self._index_available = bool(available)
        return self._index_available

    def reset_availability(self) -> None:
        """Forget the memoized availability so the next call checks again."""
        logger.info("Resetting spatial index availability")
        self._index_available = None

    async def check_point(self, lat: float, lon: float) -> MatchResult:
        if self._store is not None and await self.is_index_available():
            try:
                zone_id = await asyncio.wait_for(
                    self._store.find_zone(lat, lon), timeout=self._config.query_timeout_seconds
                )
            except Exception as exc:
                logger.warning(
                    "Spatial index query failed for (%s, %s), falling back: %s", lat, lon, exc
                )
            else:
                return MatchResult(
                    is_in_zone=zone_id is not None,
                    zone_id=zone_id,
                    method=MatchMethod.INDEX,
                )

        return match_snapshot(self._cache.get_snapshot(), lat, lon)
