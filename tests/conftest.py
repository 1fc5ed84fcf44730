"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

import pytest

from oppzone.core.config import GeocodingConfig
from oppzone.core.types import Bounds
from oppzone.geocoding.client import Geocoder
from oppzone.geocoding.models import GeocodeResult
from oppzone.spatial.store import ZoneShape
from oppzone.zones.cache import ZoneCacheManager
from oppzone.zones.geometry import geometry_intersects_bbox


def square(x: float, y: float, size: float = 1.0) -> dict[str, Any]:
    """A closed axis-aligned square Polygon with its lower-left corner at (x, y)."""
    return {
        "type": "Polygon",
        "coordinates": [
            [[x, y], [x + size, y], [x + size, y + size], [x, y + size], [x, y]],
        ],
    }


def zone(geoid: str, geometry: dict[str, Any], **properties: Any) -> dict[str, Any]:
    return {
        "type": "Feature",
        "properties": {"GEOID": geoid, **properties},
        "geometry": geometry,
    }


def payload(*features: dict[str, Any]) -> dict[str, Any]:
    return {"type": "FeatureCollection", "features": list(features)}


def default_payload() -> dict[str, Any]:
    """Zone A at (0,0)-(1,1) and zone B sharing A's east edge."""
    return payload(
        zone("A", square(0, 0), STATE="California", COUNTY="Los Angeles"),
        zone("B", square(1, 0), STATE="California", COUNTY="Los Angeles"),
    )


class MutableClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeDatasetSource:
    """Returns a fixed payload; counts fetches; can be slowed down or broken."""

    def __init__(self, data: dict[str, Any] | None = None, delay: float = 0.0) -> None:
        self.data = data if data is not None else default_payload()
        self.delay = delay
        self.error: Exception | None = None
        self.fetch_count = 0
        self.closed = False

    async def fetch(self) -> dict[str, Any]:
        self.fetch_count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.data

    async def close(self) -> None:
        self.closed = True


class FakeGeometryStore:
    """In-memory GeometryStore with switchable availability and failures."""

    def __init__(self, shapes: Sequence[ZoneShape] = (), available: bool = True) -> None:
        self.shapes = {s.geoid: s for s in shapes}
        self.available = available
        self.fail_queries = False
        self.availability_checks = 0
        self.query_count = 0

    async def has_spatial_index(self) -> bool:
        self.availability_checks += 1
        return self.available

    async def find_zone(self, lat: float, lon: float) -> str | None:
        self.query_count += 1
        if self.fail_queries:
            raise RuntimeError("connection reset")
        for shape in sorted(self.shapes.values(), key=lambda s: s.geoid):
            box = (lon, lat, lon, lat)
            if geometry_intersects_bbox(shape.geometry, box):
                return shape.geoid
        return None

    async def shapes_in_bounds(self, bounds: Bounds, *, detailed: bool) -> list[ZoneShape]:
        self.query_count += 1
        if self.fail_queries:
            raise RuntimeError("connection reset")
        box = (bounds.west, bounds.south, bounds.east, bounds.north)
        return [
            s for s in sorted(self.shapes.values(), key=lambda s: s.geoid)
            if geometry_intersects_bbox(s.geometry, box)
        ]

    async def shapes_by_ids(self, geoids: Sequence[str]) -> list[ZoneShape]:
        self.query_count += 1
        if self.fail_queries:
            raise RuntimeError("connection reset")
        return [self.shapes[g] for g in sorted(geoids) if g in self.shapes]


class FakeGeocoder(Geocoder):
    """Answers from a dict keyed by the address as passed; counts upstream calls."""

    def __init__(
        self,
        results: dict[str, GeocodeResult | None] | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__(GeocodingConfig(api_key="test-key"))
        self.results = results or {}
        self.delay = delay
        self.error: Exception | None = None
        self.calls: list[str] = []
        self.closed = False

    async def geocode(self, address: str) -> GeocodeResult | None:
        self.calls.append(address)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.results.get(address)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def source() -> FakeDatasetSource:
    return FakeDatasetSource()


@pytest.fixture
async def loaded_cache(source: FakeDatasetSource, clock: MutableClock) -> ZoneCacheManager:
    manager = ZoneCacheManager(source, clock=clock)
    result = await manager.force_refresh()
    assert result.ok
    return manager
