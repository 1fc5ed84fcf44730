"""Protocol definitions for repository interfaces.

In-memory and Postgres implementations satisfy the same async interface,
so services take either without knowing which backs them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from oppzone.geocoding.models import GeocodeCacheEntry
from oppzone.zones.models import CacheSnapshot


@runtime_checkable
class SnapshotRepository(Protocol):
    """Protocol for persisting the latest zone snapshot across restarts."""

    async def save(self, snapshot: CacheSnapshot) -> None: ...

    async def load_latest(self) -> CacheSnapshot | None: ...


@runtime_checkable
class GeocodeRepository(Protocol):
    """Protocol for geocode cache entry storage.

    ``put`` is last-writer-wins on key collision.
    """

    async def get(self, normalized_address: str) -> GeocodeCacheEntry | None: ...

    async def put(self, entry: GeocodeCacheEntry) -> None: ...

    async def delete_expired(self, now: datetime) -> int: ...

    async def count(self, *, expired_before: datetime | None = None) -> int: ...
