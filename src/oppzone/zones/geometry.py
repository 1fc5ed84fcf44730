"""Planar geometry helpers for GeoJSON Polygon and MultiPolygon shapes.

Coordinates are ``[lon, lat]`` positions in WGS84 degrees and are treated
as planar. Point-in-polygon uses even-odd ray casting; a point exactly on
an edge may land on either side.
"""

from __future__ import annotations

import math
from typing import Any, Iterator, Sequence

Position = Sequence[float]
Ring = Sequence[Position]
BBox = tuple[float, float, float, float]  # (min_lon, min_lat, max_lon, max_lat)

SUPPORTED_TYPES = ("Polygon", "MultiPolygon")


def is_supported(geometry: Any) -> bool:
    return (
        isinstance(geometry, dict)
        and geometry.get("type") in SUPPORTED_TYPES
        and isinstance(geometry.get("coordinates"), list)
    )


def iter_polygons(geometry: dict[str, Any]) -> Iterator[Sequence[Ring]]:
    """Yield each polygon (a list of rings, outer first) of a geometry."""
    if geometry["type"] == "Polygon":
        yield geometry["coordinates"]
    elif geometry["type"] == "MultiPolygon":
        yield from geometry["coordinates"]


def iter_rings(geometry: dict[str, Any]) -> Iterator[Ring]:
    for polygon in iter_polygons(geometry):
        yield from polygon


def compute_bbox(geometry: dict[str, Any]) -> BBox:
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for ring in iter_rings(geometry):
        for position in ring:
            x, y = position[0], position[1]
            min_x = min(min_x, x)
            min_y = min(min_y, y)
            max_x = max(max_x, x)
            max_y = max(max_y, y)
    return (min_x, min_y, max_x, max_y)


def bbox_contains(bbox: BBox, lon: float, lat: float) -> bool:
    return bbox[0] <= lon <= bbox[2] and bbox[1] <= lat <= bbox[3]


def bbox_intersects(a: BBox, b: BBox) -> bool:
    return a[0] <= b[2] and b[0] <= a[2] and a[1] <= b[3] and b[1] <= a[3]


def count_vertices(geometry: dict[str, Any]) -> int:
    return sum(len(ring) for ring in iter_rings(geometry))


# ---------------------------------------------------------------------------
# Point in polygon
# ---------------------------------------------------------------------------


def point_in_ring(lon: float, lat: float, ring: Ring) -> bool:
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > lat) != (yj > lat):
            crossing = (xj - xi) * (lat - yi) / (yj - yi) + xi
            if lon < crossing:
                inside = not inside
        j = i
    return inside


def point_in_polygon(lon: float, lat: float, rings: Sequence[Ring]) -> bool:
    """Inside the outer ring and outside every hole."""
    if not rings or not point_in_ring(lon, lat, rings[0]):
        return False
    return not any(point_in_ring(lon, lat, hole) for hole in rings[1:])


def point_in_geometry(lon: float, lat: float, geometry: dict[str, Any]) -> bool:
    return any(point_in_polygon(lon, lat, polygon) for polygon in iter_polygons(geometry))


# ---------------------------------------------------------------------------
# Rectangle intersection
# ---------------------------------------------------------------------------


def _orientation(p: Position, q: Position, r: Position) -> float:
    return (q[0] - p[0]) * (r[1] - p[1]) - (q[1] - p[1]) * (r[0] - p[0])


def _on_segment(p: Position, q: Position, r: Position) -> bool:
    return min(p[0], r[0]) <= q[0] <= max(p[0], r[0]) and min(p[1], r[1]) <= q[1] <= max(p[1], r[1])


def segments_intersect(p1: Position, p2: Position, q1: Position, q2: Position) -> bool:
    d1 = _orientation(q1, q2, p1)
    d2 = _orientation(q1, q2, p2)
    d3 = _orientation(p1, p2, q1)
    d4 = _orientation(p1, p2, q2)
    if ((d1 > 0 and d2 < 0) or (d1 < 0 and d2 > 0)) and ((d3 > 0 and d4 < 0) or (d3 < 0 and d4 > 0)):
        return True
    if d1 == 0 and _on_segment(q1, p1, q2):
        return True
    if d2 == 0 and _on_segment(q1, p2, q2):
        return True
    if d3 == 0 and _on_segment(p1, q1, p2):
        return True
    if d4 == 0 and _on_segment(p1, q2, p2):
        return True
    return False


def geometry_intersects_bbox(geometry: dict[str, Any], bbox: BBox, geometry_bbox: BBox | None = None) -> bool:
    """Exact intersection test between a polygonal geometry and a rectangle."""
    if geometry_bbox is None:
        geometry_bbox = compute_bbox(geometry)
    if not bbox_intersects(geometry_bbox, bbox):
        return False

    min_x, min_y, max_x, max_y = bbox
    for ring in iter_rings(geometry):
        if any(bbox_contains(bbox, p[0], p[1]) for p in ring):
            return True

    corners = [(min_x, min_y), (max_x, min_y), (max_x, max_y), (min_x, max_y)]
    if any(point_in_geometry(x, y, geometry) for x, y in corners):
        return True

    edges = list(zip(corners, corners[1:] + corners[:1]))
    for ring in iter_rings(geometry):
        for a, b in zip(ring, ring[1:]):
            for c, d in edges:
                if segments_intersect(a, b, c, d):
                    return True
    return False


# ---------------------------------------------------------------------------
# Simplification
# ---------------------------------------------------------------------------


def _segment_distance(p: Position, a: Position, b: Position) -> float:
    dx, dy = b[0] - a[0], b[1] - a[1]
    if dx == 0 and dy == 0:
        return math.hypot(p[0] - a[0], p[1] - a[1])
    t = ((p[0] - a[0]) * dx + (p[1] - a[1]) * dy) / (dx * dx + dy * dy)
    t = max(0.0, min(1.0, t))
    return math.hypot(p[0] - (a[0] + t * dx), p[1] - (a[1] + t * dy))


def simplify_ring(ring: Ring, tolerance: float) -> list[list[float]]:
    """Douglas-Peucker over one ring, iteratively.

    Rings that would collapse below four positions are returned unchanged.
    """
    points = [list(p) for p in ring]
    if tolerance <= 0 or len(points) <= 4:
        return points

    keep = [False] * len(points)
    keep[0] = keep[-1] = True
    stack = [(0, len(points) - 1)]
    while stack:
        start, end = stack.pop()
        max_distance = 0.0
        index = start
        for i in range(start + 1, end):
            distance = _segment_distance(points[i], points[start], points[end])
            if distance > max_distance:
                index, max_distance = i, distance
        if max_distance > tolerance:
            keep[index] = True
            stack.append((start, index))
            stack.append((index, end))

    simplified = [p for p, kept in zip(points, keep) if kept]
    if len(simplified) < 4:
        return points
    return simplified


def simplify_geometry(geometry: dict[str, Any], tolerance: float) -> dict[str, Any]:
    if geometry["type"] == "Polygon":
        coordinates: list[Any] = [simplify_ring(r, tolerance) for r in geometry["coordinates"]]
    else:
        coordinates = [
            [simplify_ring(r, tolerance) for r in polygon]
            for polygon in geometry["coordinates"]
        ]
    return {"type": geometry["type"], "coordinates": coordinates}
