"""In-memory geocode cache store for development and tests."""

from __future__ import annotations

from datetime import datetime

from oppzone.geocoding.models import GeocodeCacheEntry


class InMemoryGeocodeStore:
    """Dict-backed geocode cache entries; last writer wins."""

    def __init__(self) -> None:
        self._entries: dict[str, GeocodeCacheEntry] = {}

    async def get(self, normalized_address: str) -> GeocodeCacheEntry | None:
        return self._entries.get(normalized_address)

    async def put(self, entry: GeocodeCacheEntry) -> None:
        self._entries[entry.normalized_address] = entry

    async def delete_expired(self, now: datetime) -> int:
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def count(self, *, expired_before: datetime | None = None) -> int:
        if expired_before is None:
            return len(self._entries)
        return sum(1 for e in self._entries.values() if e.is_expired(expired_before))
