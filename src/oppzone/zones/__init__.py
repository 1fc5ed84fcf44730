"""Zone dataset: feature models, geometry helpers, and the versioned snapshot cache."""

from oppzone.zones.cache import RefreshError, ZoneCacheManager
from oppzone.zones.models import CacheSnapshot, ZoneFeature
from oppzone.zones.source import DatasetError, DatasetSource, HttpDatasetSource, parse_features

__all__ = [
    "CacheSnapshot",
    "DatasetError",
    "DatasetSource",
    "HttpDatasetSource",
    "RefreshError",
    "ZoneCacheManager",
    "ZoneFeature",
    "parse_features",
]
