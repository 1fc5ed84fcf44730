"""Viewport and batch shape queries with contiguity-based coloring."""

from oppzone.shapes.contiguity import ZONE_COLORS, ContiguityAnalyzer, ContiguityGroup, ContiguityStats
from oppzone.shapes.service import ShapeQueryService

__all__ = [
    "ZONE_COLORS",
    "ContiguityAnalyzer",
    "ContiguityGroup",
    "ContiguityStats",
    "ShapeQueryService",
]
