"""Tests for the HTTP dataset source and feature normalization."""

from __future__ import annotations

import httpx
import pytest

from oppzone.core.config import ZoneCacheConfig
from oppzone.zones.source import DatasetError, HttpDatasetSource, dataset_hash, parse_features

from conftest import default_payload, payload, square, zone

DATA_URL = "https://data.example.test/oz-all.geojson"


def _config() -> ZoneCacheConfig:
    return ZoneCacheConfig(data_url=DATA_URL)


class TestHttpDatasetSource:
    async def test_fetch(self, httpx_mock):
        httpx_mock.add_response(url=DATA_URL, method="GET", json=default_payload())
        source = HttpDatasetSource(_config())
        try:
            data = await source.fetch()
        finally:
            await source.close()
        assert len(data["features"]) == 2
        assert httpx_mock.get_request().headers["Cache-Control"] == "no-cache"

    async def test_http_error_status(self, httpx_mock):
        httpx_mock.add_response(url=DATA_URL, status_code=503)
        source = HttpDatasetSource(_config())
        try:
            with pytest.raises(DatasetError, match="HTTP 503"):
                await source.fetch()
        finally:
            await source.close()

    async def test_timeout(self, httpx_mock):
        httpx_mock.add_exception(httpx.ReadTimeout("slow"), url=DATA_URL)
        source = HttpDatasetSource(_config())
        try:
            with pytest.raises(DatasetError, match="timed out"):
                await source.fetch()
        finally:
            await source.close()

    async def test_invalid_json(self, httpx_mock):
        httpx_mock.add_response(url=DATA_URL, text="<html>not json</html>")
        source = HttpDatasetSource(_config())
        try:
            with pytest.raises(DatasetError, match="not valid JSON"):
                await source.fetch()
        finally:
            await source.close()


class TestParseFeatures:
    def test_reads_ids_state_and_county(self):
        features = parse_features(default_payload())
        assert [f.geoid for f in features] == ["A", "B"]
        assert features[0].state == "California"
        assert features[0].county == "Los Angeles"
        assert features[0].bbox == (0, 0, 1, 1)

    def test_alternate_id_keys(self):
        data = payload(
            {"type": "Feature", "properties": {"CENSUSTRAC": "06037"}, "geometry": square(0, 0)},
            {"type": "Feature", "properties": {"geoid": "06038"}, "geometry": square(2, 2)},
        )
        assert [f.geoid for f in parse_features(data)] == ["06037", "06038"]

    def test_skips_unusable_features(self):
        data = payload(
            zone("A", square(0, 0)),
            zone("P", {"type": "Point", "coordinates": [0, 0]}),
            {"type": "Feature", "properties": {}, "geometry": square(1, 1)},
        )
        assert [f.geoid for f in parse_features(data)] == ["A"]

    def test_skips_malformed_coordinates(self):
        data = payload(
            zone("A", square(0, 0)),
            zone("SHORT", {"type": "Polygon", "coordinates": [[[1]]]}),
            zone("TEXT", {"type": "Polygon", "coordinates": [[["a", "b"], ["c", "d"]]]}),
            zone("FLAT", {"type": "Polygon", "coordinates": [1, 2]}),
            zone("EMPTY", {"type": "MultiPolygon", "coordinates": []}),
        )
        assert [f.geoid for f in parse_features(data)] == ["A"]

    def test_only_malformed_features_rejected(self):
        with pytest.raises(DatasetError, match="no usable"):
            parse_features(payload(zone("X", {"type": "Polygon", "coordinates": [[[1]]]})))

    def test_duplicate_ids_keep_first(self):
        data = payload(zone("A", square(0, 0)), zone("A", square(5, 5)))
        features = parse_features(data)
        assert len(features) == 1
        assert features[0].bbox == (0, 0, 1, 1)

    def test_uses_source_simplified_geometry(self):
        simplified = square(0, 0)
        raw = zone("A", square(0, 0))
        raw["simplified_geometry"] = simplified
        features = parse_features(payload(raw))
        assert features[0].simplified_geometry == simplified

    def test_empty_dataset_rejected(self):
        with pytest.raises(DatasetError, match="no features"):
            parse_features(payload())

    def test_only_unusable_features_rejected(self):
        with pytest.raises(DatasetError, match="no usable"):
            parse_features(payload(zone("P", {"type": "Point", "coordinates": [0, 0]})))

    def test_malformed_payload_rejected(self):
        with pytest.raises(DatasetError):
            parse_features({"type": "FeatureCollection"})
        with pytest.raises(DatasetError):
            parse_features([])


class TestDatasetHash:
    def test_stable_for_same_content(self):
        assert dataset_hash(parse_features(default_payload())) == dataset_hash(
            parse_features(default_payload())
        )

    def test_changes_with_content(self):
        other = payload(zone("A", square(0, 0)), zone("B", square(1, 0.5)))
        assert dataset_hash(parse_features(default_payload())) != dataset_hash(
            parse_features(other)
        )
