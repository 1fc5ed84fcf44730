"""Application configuration loaded from environment and config files."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class ZoneCacheConfig(BaseSettings):
    """Zone dataset cache and refresh scheduling."""

    model_config = {"env_prefix": "OPPZONE_ZONES_"}

    data_url: str = "https://pub-757ceba6f52a4399beb76c4667a53f08.r2.dev/oz-all.geojson"
    refresh_interval_seconds: int = 24 * 60 * 60
    refresh_check_interval_seconds: int = 5 * 60
    load_timeout_seconds: int = 300
    simplify_tolerance: float = 0.001


class SpatialConfig(BaseSettings):
    """Spatial index and shape query configuration."""

    model_config = {"env_prefix": "OPPZONE_SPATIAL_"}

    query_timeout_seconds: float = 5.0
    detail_zoom_threshold: int = 12
    default_zoom: int = 12
    max_batch_ids: int = 50


class GeocodingConfig(BaseSettings):
    """Upstream geocoder and geocode cache configuration."""

    model_config = {"env_prefix": "OPPZONE_GEOCODING_"}

    provider: str = "maps_co"
    base_url: str = "https://geocode.maps.co"
    api_key: str | None = None
    timeout_seconds: float = 10.0
    cache_ttl_seconds: int = 30 * 24 * 60 * 60
    user_agent: str = "Opportunity Zone Locator"


class DatabaseConfig(BaseSettings):
    """Database connection configuration.

    An empty ``url`` runs without a database: in-memory stores and
    snapshot fallback matching only.
    """

    model_config = {"env_prefix": "OPPZONE_DB_"}

    url: str = ""
    echo: bool = False
    pool_size: int = 5


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "OPPZONE_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    zones: ZoneCacheConfig = Field(default_factory=ZoneCacheConfig)
    spatial: SpatialConfig = Field(default_factory=SpatialConfig)
    geocoding: GeocodingConfig = Field(default_factory=GeocodingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
