"""Bulk zone dataset source and GeoJSON normalization."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from oppzone.core.config import ZoneCacheConfig
from oppzone.zones.geometry import count_vertices, is_supported, simplify_geometry
from oppzone.zones.models import ZoneFeature

logger = logging.getLogger(__name__)

_ID_KEYS = ("GEOID", "CENSUSTRAC", "geoid")
_STATE_KEYS = ("STATE", "STATE_NAME", "state")
_COUNTY_KEYS = ("COUNTY", "COUNTY_NAME", "county")


class DatasetError(Exception):
    """The dataset could not be fetched or did not contain usable features."""


@runtime_checkable
class DatasetSource(Protocol):
    """A single fetchable resource returning the full zone FeatureCollection."""

    async def fetch(self) -> dict[str, Any]: ...


class HttpDatasetSource:
    """Fetches the bulk GeoJSON dataset over HTTP."""

    def __init__(
        self,
        config: ZoneCacheConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.load_timeout_seconds),
            headers={"Cache-Control": "no-cache"},
        )

    async def fetch(self) -> dict[str, Any]:
        url = self._config.data_url
        logger.info("Fetching opportunity zone dataset from %s", url)
        try:
            resp = await self._http.get(url)
        except httpx.TimeoutException as exc:
            raise DatasetError(
                f"Dataset request timed out after {self._config.load_timeout_seconds}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise DatasetError(f"Dataset request failed: {exc}") from exc

        if resp.status_code != 200:
            raise DatasetError(f"Dataset request returned HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise DatasetError("Dataset response is not valid JSON") from exc

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()


def _first(properties: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = properties.get(key)
        if value not in (None, ""):
            return str(value)
    return ""


def parse_features(payload: Any, simplify_tolerance: float = 0.001) -> list[ZoneFeature]:
    """Normalize a GeoJSON FeatureCollection into ZoneFeatures.

    Features without a tract id, with non-polygonal geometry, or whose
    coordinates are not numeric positions are skipped;
    duplicate ids keep the first occurrence. Raises DatasetError when the
    payload is malformed or yields no usable features.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("features"), list):
        raise DatasetError("Invalid GeoJSON format: missing features array")
    if not payload["features"]:
        raise DatasetError("Dataset contains no features")

    features: list[ZoneFeature] = []
    seen: set[str] = set()
    skipped = 0
    for raw in payload["features"]:
        if not isinstance(raw, dict):
            skipped += 1
            continue
        properties = raw.get("properties") or {}
        geoid = _first(properties, _ID_KEYS)
        geometry = raw.get("geometry")
        if not geoid or not is_supported(geometry):
            skipped += 1
            continue
        if geoid in seen:
            logger.warning("Duplicate zone %s in dataset; keeping first occurrence", geoid)
            continue

        simplified = raw.get("simplified_geometry")
        try:
            if not count_vertices(geometry):
                raise ValueError("geometry has no positions")
            if not is_supported(simplified):
                simplified = simplify_geometry(geometry, simplify_tolerance)
            feature = ZoneFeature(
                geoid=geoid,
                original_geometry={"type": geometry["type"], "coordinates": geometry["coordinates"]},
                simplified_geometry=simplified,
                state=_first(properties, _STATE_KEYS),
                county=_first(properties, _COUNTY_KEYS),
            )
        except (TypeError, IndexError, ValueError) as exc:
            logger.warning("Skipping zone %s with malformed geometry: %s", geoid, exc)
            skipped += 1
            continue
        seen.add(geoid)
        features.append(feature)

    if skipped:
        logger.warning("Skipped %d dataset features without an id or usable polygon geometry", skipped)
    if not features:
        raise DatasetError("Dataset contains no usable zone features")
    return features


def dataset_hash(features: list[ZoneFeature]) -> str:
    """SHA-256 over the normalized feature content, in dataset order."""
    digest = hashlib.sha256()
    for feature in features:
        record = {
            "geoid": feature.geoid,
            "geometry": feature.original_geometry,
            "state": feature.state,
            "county": feature.county,
        }
        digest.update(json.dumps(record, sort_keys=True, separators=(",", ":")).encode())
        digest.update(b"\n")
    return digest.hexdigest()
