"""Zone feature and snapshot models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from oppzone.zones.geometry import BBox, bbox_contains, compute_bbox, point_in_geometry

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ZoneFeature(BaseModel):
    """One Opportunity Zone census tract.

    Immutable once loaded into a snapshot; a refresh replaces features
    wholesale rather than editing them.
    """

    model_config = ConfigDict(frozen=True)

    geoid: str
    original_geometry: dict[str, Any]
    simplified_geometry: dict[str, Any]
    state: str = ""
    county: str = ""
    bbox: BBox

    @model_validator(mode="before")
    @classmethod
    def _fill_bbox(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("bbox") is None and "original_geometry" in data:
            data = {**data, "bbox": compute_bbox(data["original_geometry"])}
        return data

    def geometry(self, detailed: bool = True) -> dict[str, Any]:
        return self.original_geometry if detailed else self.simplified_geometry

    def contains(self, lat: float, lon: float) -> bool:
        if not bbox_contains(self.bbox, lon, lat):
            return False
        return point_in_geometry(lon, lat, self.original_geometry)

    def to_record(self) -> dict[str, Any]:
        return {
            "geoid": self.geoid,
            "original_geometry": self.original_geometry,
            "simplified_geometry": self.simplified_geometry,
            "state": self.state,
            "county": self.county,
        }


@dataclass(frozen=True)
class CacheSnapshot:
    """One complete, immutable generation of the zone dataset.

    ``version`` and ``data_hash`` move together: a refresh that fetches
    byte-identical content keeps both and only advances the timestamps.
    """

    features: tuple[ZoneFeature, ...]
    version: int
    data_hash: str
    loaded_at: datetime
    next_refresh_due: datetime
    _by_geoid: dict[str, ZoneFeature] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: dict[str, ZoneFeature] = {}
        for feature in self.features:
            if feature.geoid in index:
                raise ValueError(f"Duplicate geoid {feature.geoid!r} in snapshot")
            index[feature.geoid] = feature
        object.__setattr__(self, "_by_geoid", index)

    @classmethod
    def empty(cls) -> CacheSnapshot:
        return cls(features=(), version=0, data_hash="", loaded_at=_EPOCH, next_refresh_due=_EPOCH)

    @property
    def feature_count(self) -> int:
        return len(self.features)

    @property
    def is_empty(self) -> bool:
        return not self.features

    def get(self, geoid: str) -> ZoneFeature | None:
        return self._by_geoid.get(geoid)

    def find_containing(self, lat: float, lon: float) -> ZoneFeature | None:
        """First feature in snapshot order whose geometry contains the point."""
        for feature in self.features:
            if feature.contains(lat, lon):
                return feature
        return None
