"""API tests for the opportunity zone router."""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from oppzone.core.config import Settings
from oppzone.core.types import RateLimitState
from oppzone.geocoding.cache import GeocodingCache
from oppzone.geocoding.client import GeocoderRateLimitError
from oppzone.geocoding.models import GeocodeResult
from oppzone.web.app import create_app
from oppzone.zones.cache import ZoneCacheManager
from oppzone.zones.source import DatasetError

from conftest import FakeDatasetSource, FakeGeocoder, payload, zone

ADDRESS = "1600 Pennsylvania Ave NW, Washington, DC 20500"
PREFIX = "/api/opportunity-zones"


@pytest.fixture
def source() -> FakeDatasetSource:
    return FakeDatasetSource()


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder(
        {ADDRESS: GeocodeResult(latitude=38.8977, longitude=-77.0365, display_name="White House")}
    )


@pytest.fixture
def client(source, geocoder) -> TestClient:
    zone_cache = ZoneCacheManager(source)
    asyncio.run(zone_cache.force_refresh())
    app = create_app(
        settings=Settings(),
        zone_cache=zone_cache,
        geocoding_cache=GeocodingCache(geocoder),
    )
    return TestClient(app)


class TestCheck:
    def test_point_in_zone(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/check", params={"lat": 0.5, "lon": 0.5})
        assert resp.status_code == 200
        data = resp.json()
        assert data["isInOpportunityZone"] is True
        assert data["opportunityZoneId"] == "A"
        assert data["metadata"]["method"] == "fallback"
        assert data["metadata"]["version"] == 1
        assert data["metadata"]["featureCount"] == 2
        assert resp.headers["ETag"] == '"0.5,0.5-1"'

    def test_point_outside(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/check", params={"lat": 40.0, "lon": -100.0})
        assert resp.status_code == 200
        assert resp.json()["isInOpportunityZone"] is False
        assert resp.json()["opportunityZoneId"] is None

    def test_not_modified(self, client: TestClient) -> None:
        resp = client.get(
            f"{PREFIX}/check",
            params={"lat": 0.5, "lon": 0.5},
            headers={"If-None-Match": '"0.5,0.5-1"'},
        )
        assert resp.status_code == 304

    def test_missing_params(self, client: TestClient) -> None:
        assert client.get(f"{PREFIX}/check", params={"lat": 0.5}).status_code == 400

    def test_invalid_numbers(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/check", params={"lat": "abc", "lon": 0.5})
        assert resp.status_code == 400

    def test_out_of_range(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/check", params={"lat": 91, "lon": 0})
        assert resp.status_code == 400


class TestGeocode:
    def test_geocode(self, client: TestClient) -> None:
        resp = client.post(f"{PREFIX}/geocode", json={"address": ADDRESS})
        assert resp.status_code == 200
        data = resp.json()
        assert data["latitude"] == 38.8977
        assert data["displayName"] == "White House"

    def test_not_found(self, client: TestClient) -> None:
        resp = client.post(f"{PREFIX}/geocode", json={"address": "999 Nowhere Ln"})
        assert resp.status_code == 404
        assert resp.json()["kind"] == "not_found"

    def test_empty_address(self, client: TestClient) -> None:
        assert client.post(f"{PREFIX}/geocode", json={"address": ""}).status_code == 400
        assert client.post(f"{PREFIX}/geocode", json={}).status_code == 400

    def test_rate_limited(self, client: TestClient, geocoder: FakeGeocoder) -> None:
        geocoder.error = GeocoderRateLimitError(
            "rate limited", RateLimitState(retry_after="30", limit="100", remaining="0")
        )
        resp = client.post(f"{PREFIX}/geocode", json={"address": ADDRESS})
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "30"
        assert resp.headers["X-RateLimit-Limit"] == "100"
        assert resp.headers["RateLimit-Remaining"] == "0"
        assert resp.json()["retryAfter"] == "30"


class TestShapes:
    def test_viewport(self, client: TestClient) -> None:
        resp = client.get(
            f"{PREFIX}/shapes",
            params={"north": 0.8, "south": 0.2, "east": 0.8, "west": 0.2, "zoom": 14},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["type"] == "FeatureCollection"
        assert [f["properties"]["geoid"] for f in data["features"]] == ["A"]
        assert data["metadata"]["zoomLevel"] == 14

    def test_viewport_inverted_bounds(self, client: TestClient) -> None:
        resp = client.get(
            f"{PREFIX}/shapes",
            params={"north": 34.0, "south": 34.1, "east": -118.0, "west": -118.3},
        )
        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation"

    def test_batch(self, client: TestClient) -> None:
        resp = client.post(f"{PREFIX}/shapes", json={"zone_ids": ["A", "MISSING"]})
        assert resp.status_code == 200
        data = resp.json()
        assert len(data["features"]) == 1
        assert data["metadata"]["foundZones"] == 1

    def test_batch_validation(self, client: TestClient) -> None:
        assert client.post(f"{PREFIX}/shapes", json={"zone_ids": []}).status_code == 400
        assert client.post(f"{PREFIX}/shapes", json={}).status_code == 400
        too_many = [f"Z{i}" for i in range(51)]
        assert client.post(f"{PREFIX}/shapes", json={"zone_ids": too_many}).status_code == 400


class TestStatusAndRefresh:
    def test_status(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["cache"]["isAvailable"] is True
        assert data["cache"]["version"] == 1
        assert data["spatialIndex"]["available"] is False

    def test_refresh(self, client: TestClient, source: FakeDatasetSource) -> None:
        resp = client.post(f"{PREFIX}/refresh")
        assert resp.status_code == 200
        assert resp.json()["metrics"]["version"] == 1
        assert source.fetch_count == 2

    def test_refresh_failure(self, client: TestClient, source: FakeDatasetSource) -> None:
        source.error = DatasetError("Dataset request returned HTTP 503")
        resp = client.post(f"{PREFIX}/refresh")
        assert resp.status_code == 503
        assert resp.json()["kind"] == "refresh_failure"
        assert client.get(f"{PREFIX}/status").json()["cache"]["version"] == 1

    def test_refresh_with_malformed_geometry(
        self, client: TestClient, source: FakeDatasetSource
    ) -> None:
        source.data = payload(zone("X", {"type": "Polygon", "coordinates": [[[1]]]}))
        resp = client.post(f"{PREFIX}/refresh")
        assert resp.status_code == 503
        assert resp.json()["kind"] == "refresh_failure"

    def test_health(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


def test_lifespan_loads_and_shuts_down(geocoder) -> None:
    source = FakeDatasetSource()
    app = create_app(
        settings=Settings(),
        zone_cache=ZoneCacheManager(source),
        geocoding_cache=GeocodingCache(geocoder),
    )
    with TestClient(app) as client:
        resp = client.get(f"{PREFIX}/status")
        assert resp.json()["cache"]["version"] == 1
    assert source.closed
    assert geocoder.closed
