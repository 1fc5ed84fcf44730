"""Geocoding data models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class GeocodeResult(BaseModel):
    latitude: float
    longitude: float
    display_name: str


class GeocodeCacheEntry(BaseModel):
    """A cached geocoder answer, positive or negative.

    When ``not_found`` is True the coordinates carry no meaning. An entry
    past ``expires_at`` is never served, even while still stored.
    """

    normalized_address: str
    latitude: float = 0.0
    longitude: float = 0.0
    display_name: str = ""
    not_found: bool = False
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_result(self) -> GeocodeResult:
        return GeocodeResult(
            latitude=self.latitude,
            longitude=self.longitude,
            display_name=self.display_name,
        )


class CacheStats(BaseModel):
    total_cached: int = 0
    expired_entries: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"totalCached": self.total_cached, "expiredEntries": self.expired_entries}
