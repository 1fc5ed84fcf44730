"""Address geocoding behind a TTL cache with negative-result caching."""

from oppzone.geocoding.cache import GeocodingCache
from oppzone.geocoding.client import (
    Geocoder,
    GeocoderError,
    GeocoderRateLimitError,
    MapsCoGeocoder,
    create_geocoder,
)
from oppzone.geocoding.models import CacheStats, GeocodeCacheEntry, GeocodeResult
from oppzone.geocoding.store import InMemoryGeocodeStore

__all__ = [
    "CacheStats",
    "GeocodeCacheEntry",
    "GeocodeResult",
    "Geocoder",
    "GeocoderError",
    "GeocoderRateLimitError",
    "GeocodingCache",
    "InMemoryGeocodeStore",
    "MapsCoGeocoder",
    "create_geocoder",
]
