"""Contiguity analysis for zone shapes.

Zones that share a boundary are grouped and given the same render color,
so a run of adjacent tracts reads as one area on the map. Two features
are adjacent when at least two of their ring vertices coincide within
``COORDINATE_PRECISION`` on both axes; one shared vertex is only a
touching corner.

Pairwise comparison is quadratic in the feature count and is only meant
for batches of at most ``MAX_FEATURES``. Vertices of each feature are
bucketed on a tolerance-sized grid so one pair costs linear time in
their vertex counts.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from oppzone.zones.geometry import BBox, bbox_intersects, compute_bbox, iter_rings

COORDINATE_PRECISION = 0.000001  # ~0.1 m
MAX_FEATURES = 50

ZONE_COLORS = [
    "#FF6B6B",  # red
    "#4ECDC4",  # teal
    "#45B7D1",  # blue
    "#96CEB4",  # green
    "#FECA57",  # yellow
    "#DDA0DD",  # plum
    "#FF8C69",  # salmon
    "#98D8C8",  # mint
    "#F7DC6F",  # light yellow
    "#BB8FCE",  # light purple
    "#85C1E9",  # light blue
    "#82E0AA",  # light green
]

RENDER_HINTS = {"fillOpacity": 0.3, "strokeOpacity": 0.8, "strokeWeight": 2}


@dataclass
class ContiguityGroup:
    """A connected set of adjacent zones sharing one color."""

    members: set[str]
    assigned_color: str


@dataclass
class ContiguityStats:
    total_zones: int = 0
    contiguous_groups: int = 0
    largest_group_size: int = 0
    average_group_size: float = 0.0
    isolated_zones: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalZones": self.total_zones,
            "contiguousGroups": self.contiguous_groups,
            "largestGroupSize": self.largest_group_size,
            "averageGroupSize": self.average_group_size,
            "isolatedZones": self.isolated_zones,
        }


@dataclass
class _VertexIndex:
    bbox: BBox
    vertices: list[tuple[float, float]]
    grid: dict[tuple[int, int], list[tuple[float, float]]] = field(default_factory=dict)


def _geoid(feature: dict[str, Any]) -> str:
    return str(feature.get("properties", {}).get("geoid", ""))


class ContiguityAnalyzer:
    """Groups adjacent polygon features and assigns each group a color.

    Groups are discovered in input order, so colors are only stable across
    requests when callers pass features in a stable order.
    """

    def __init__(
        self,
        palette: Sequence[str] = ZONE_COLORS,
        tolerance: float = COORDINATE_PRECISION,
    ) -> None:
        if not palette:
            raise ValueError("Color palette must not be empty")
        self._palette = list(palette)
        self._tolerance = tolerance

    @property
    def palette(self) -> list[str]:
        return list(self._palette)

    # -- public API ----------------------------------------------------------

    def find_groups(self, features: Sequence[dict[str, Any]]) -> list[list[int]]:
        """Connected components as lists of feature indices, in input order."""
        graph = self._build_graph(features)
        visited = [False] * len(features)
        components: list[list[int]] = []
        for start in range(len(features)):
            if visited[start]:
                continue
            component: list[int] = []
            stack = [start]
            while stack:
                node = stack.pop()
                if visited[node]:
                    continue
                visited[node] = True
                component.append(node)
                stack.extend(n for n in graph[node] if not visited[n])
            components.append(component)
        return components

    def group(self, features: Sequence[dict[str, Any]]) -> list[ContiguityGroup]:
        return [
            ContiguityGroup(
                members={_geoid(features[i]) for i in component},
                assigned_color=self._palette[n % len(self._palette)],
            )
            for n, component in enumerate(self.find_groups(features))
        ]

    def assign_colors(self, features: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        """Return copies of the features with ``color`` and render hints set.

        Geometry objects are shared with the input, never modified.
        """
        return self._colored(features, self.find_groups(features))

    def get_contiguity_stats(self, features: Sequence[dict[str, Any]]) -> ContiguityStats:
        return self._stats(features, self.find_groups(features))

    def analyze(
        self, features: Sequence[dict[str, Any]]
    ) -> tuple[list[dict[str, Any]], ContiguityStats]:
        """Colored features and their stats from a single grouping pass."""
        components = self.find_groups(features)
        return self._colored(features, components), self._stats(features, components)

    def _colored(
        self, features: Sequence[dict[str, Any]], components: list[list[int]]
    ) -> list[dict[str, Any]]:
        colors: dict[int, str] = {}
        for n, component in enumerate(components):
            color = self._palette[n % len(self._palette)]
            for index in component:
                colors[index] = color

        return [
            {
                **feature,
                "properties": {
                    **feature.get("properties", {}),
                    "color": colors.get(i, self._palette[0]),
                    **RENDER_HINTS,
                },
            }
            for i, feature in enumerate(features)
        ]

    @staticmethod
    def _stats(
        features: Sequence[dict[str, Any]], components: list[list[int]]
    ) -> ContiguityStats:
        sizes = [len(c) for c in components]
        return ContiguityStats(
            total_zones=len(features),
            contiguous_groups=len(sizes),
            largest_group_size=max(sizes, default=0),
            average_group_size=sum(sizes) / len(sizes) if sizes else 0.0,
            isolated_zones=sum(1 for s in sizes if s == 1),
        )

    # -- adjacency -----------------------------------------------------------

    def _build_graph(self, features: Sequence[dict[str, Any]]) -> list[list[int]]:
        indexes = [self._index(f.get("geometry")) for f in features]
        graph: list[list[int]] = [[] for _ in features]
        for i in range(len(features)):
            for j in range(i + 1, len(features)):
                if self._adjacent(indexes[i], indexes[j]):
                    graph[i].append(j)
                    graph[j].append(i)
        return graph

    def _index(self, geometry: dict[str, Any] | None) -> _VertexIndex:
        vertices: list[tuple[float, float]] = []
        if geometry and geometry.get("type") in ("Polygon", "MultiPolygon"):
            for ring in iter_rings(geometry):
                points = [(float(p[0]), float(p[1])) for p in ring]
                # A closed ring repeats its first vertex; count it once.
                if len(points) > 1 and points[0] == points[-1]:
                    points.pop()
                vertices.extend(points)
        if not vertices:
            return _VertexIndex(bbox=(math.inf, math.inf, -math.inf, -math.inf), vertices=[])

        index = _VertexIndex(bbox=compute_bbox(geometry), vertices=vertices)
        for x, y in vertices:
            index.grid.setdefault(self._cell(x, y), []).append((x, y))
        return index

    def _cell(self, x: float, y: float) -> tuple[int, int]:
        return (math.floor(x / self._tolerance), math.floor(y / self._tolerance))

    def _adjacent(self, a: _VertexIndex, b: _VertexIndex) -> bool:
        tol = self._tolerance
        expanded = (a.bbox[0] - tol, a.bbox[1] - tol, a.bbox[2] + tol, a.bbox[3] + tol)
        if not a.vertices or not b.vertices or not bbox_intersects(expanded, b.bbox):
            return False

        shared = 0
        for x, y in a.vertices:
            cx, cy = self._cell(x, y)
            for dx in (-1, 0, 1):
                for dy in (-1, 0, 1):
                    for bx, by in b.grid.get((cx + dx, cy + dy), ()):
                        if abs(x - bx) <= tol and abs(y - by) <= tol:
                            shared += 1
                            if shared >= 2:
                                return True
        return False
