"""Point-in-zone matching against a PostGIS index with in-memory fallback."""

from oppzone.spatial.matcher import MatchMethod, MatchResult, SpatialMatcher
from oppzone.spatial.store import GeometryStore, PostgisGeometryStore, ZoneShape

__all__ = [
    "GeometryStore",
    "MatchMethod",
    "MatchResult",
    "PostgisGeometryStore",
    "SpatialMatcher",
    "ZoneShape",
]
