"""FastAPI application for the Opportunity Zone lookup service.

Wires the zone cache, spatial matcher, shape query service and geocoding
cache onto ``app.state`` and runs the cache lifecycle in the lifespan
handler.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from oppzone import __version__
from oppzone.core.config import Settings
from oppzone.db.engine import DatabaseManager
from oppzone.geocoding.cache import GeocodingCache
from oppzone.geocoding.client import create_geocoder
from oppzone.geocoding.store import InMemoryGeocodeStore
from oppzone.repositories.postgres.geocoding import PostgresGeocodeRepository
from oppzone.repositories.postgres.snapshots import PostgresSnapshotRepository
from oppzone.shapes.service import ShapeQueryService
from oppzone.spatial.matcher import SpatialMatcher
from oppzone.spatial.store import PostgisGeometryStore
from oppzone.web.zones_router import router as zones_router
from oppzone.zones.cache import ZoneCacheManager
from oppzone.zones.source import HttpDatasetSource

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    zone_cache: ZoneCacheManager | None = None,
    matcher: SpatialMatcher | None = None,
    shape_service: ShapeQueryService | None = None,
    geocoding_cache: GeocodingCache | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Uses the factory pattern so tests can create isolated app instances
    with fake collaborators. Any service not supplied is built from
    ``settings``; with no database URL configured the app runs on
    in-memory stores and snapshot matching only.
    """
    if settings is None:
        settings = Settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db = DatabaseManager.from_config(settings.database)

    if zone_cache is None:
        zone_cache = ZoneCacheManager(
            HttpDatasetSource(settings.zones),
            settings.zones,
            repository=PostgresSnapshotRepository(db) if db is not None else None,
        )

    if matcher is None:
        store = (
            PostgisGeometryStore(db, settings.zones.simplify_tolerance)
            if db is not None
            else None
        )
        matcher = SpatialMatcher(zone_cache, store, settings.spatial)

    if shape_service is None:
        shape_service = ShapeQueryService(matcher, zone_cache, config=settings.spatial)

    if geocoding_cache is None:
        geocode_store = (
            PostgresGeocodeRepository(db) if db is not None else InMemoryGeocodeStore()
        )
        geocoding_cache = GeocodingCache(
            create_geocoder(settings.geocoding), geocode_store, settings.geocoding
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting opportunity zone service (%s)", settings.environment)
        await zone_cache.init()
        try:
            yield
        finally:
            await zone_cache.shutdown()
            await geocoding_cache.close()
            if db is not None:
                await db.close()
            logger.info("Opportunity zone service stopped")

    app = FastAPI(
        title="Opportunity Zone Lookup",
        description="Opportunity Zone point checks, shapes and geocoding",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag", "Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining",
                        "X-RateLimit-Reset", "RateLimit-Limit", "RateLimit-Remaining",
                        "RateLimit-Reset"],
    )

    app.state.settings = settings
    app.state.db = db
    app.state.zone_cache = zone_cache
    app.state.matcher = matcher
    app.state.shape_service = shape_service
    app.state.geocoding_cache = geocoding_cache

    app.include_router(zones_router)

    return app
