"""Geocoding with a persistent TTL cache.

Both hits and misses are cached: a provider "no match" is stored as a
negative entry so repeated lookups of an unknown address never reach the
upstream again until the entry expires. Rate-limit responses are never
cached and never retried here; the caller decides when to retry.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from oppzone.core.config import GeocodingConfig
from oppzone.core.result import Err, ErrorKind, Ok, Result, ServiceError, validation_error
from oppzone.geocoding.client import Geocoder, GeocoderError, GeocoderRateLimitError
from oppzone.geocoding.models import CacheStats, GeocodeCacheEntry, GeocodeResult
from oppzone.geocoding.store import InMemoryGeocodeStore

if TYPE_CHECKING:
    from oppzone.repositories.protocols import GeocodeRepository

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeocodingCache:
    """Address-to-coordinate lookups backed by a TTL cache.

    Concurrent lookups of the same normalized address share a single
    upstream request.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        store: GeocodeRepository | None = None,
        config: GeocodingConfig | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._geocoder = geocoder
        self._store = store if store is not None else InMemoryGeocodeStore()
        self._config = config or GeocodingConfig()
        self._clock = clock
        self._pending: dict[str, asyncio.Task[Result[GeocodeResult, ServiceError]]] = {}

    @staticmethod
    def normalize_address(address: str) -> str:
        return _WHITESPACE.sub(" ", address.strip()).lower()

    async def geocode_address(self, address: str) -> Result[GeocodeResult, ServiceError]:
        if not isinstance(address, str) or not address.strip():
            return validation_error("Address is required")

        key = self.normalize_address(address)
        task = self._pending.get(key)
        if task is None:
            cached = await self._read(key)
            if cached is not None:
                return self._from_entry(cached, address)
            # Another caller may have started the lookup while we were reading.
            task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._lookup(key, address.strip()))
            self._pending[key] = task
            task.add_done_callback(lambda _t, k=key: self._pending.pop(k, None))
        return await asyncio.shield(task)

    def _from_entry(
        self, entry: GeocodeCacheEntry, address: str
    ) -> Result[GeocodeResult, ServiceError]:
        logger.debug("Geocode cache hit for %r", entry.normalized_address)
        if entry.not_found:
            return self._not_found(address)
        return Ok(entry.to_result())

    async def _read(self, key: str) -> GeocodeCacheEntry | None:
        try:
            entry = await self._store.get(key)
        except Exception as exc:
            logger.error("Geocode cache read failed for %r, treating as miss: %s", key, exc)
            return None
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry

    async def _lookup(self, key: str, address: str) -> Result[GeocodeResult, ServiceError]:
        # A lookup that finished between our read and now has already
        # written its entry.
        cached = await self._read(key)
        if cached is not None:
            return self._from_entry(cached, address)

        timeout = self._config.timeout_seconds
        try:
            result = await asyncio.wait_for(self._geocoder.geocode(address), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("Geocoding timed out after %ss for %r", timeout, address)
            return Err(
                ServiceError(
                    kind=ErrorKind.UPSTREAM,
                    message=f"Geocoding request timed out after {timeout} seconds",
                )
            )
        except GeocoderRateLimitError as exc:
            return Err(
                ServiceError(
                    kind=ErrorKind.RATE_LIMITED,
                    message="Geocoding rate limit exceeded. Please try again later.",
                    rate_limit=exc.rate_limit,
                )
            )
        except GeocoderError as exc:
            logger.error("Geocoding failed for %r: %s", address, exc)
            return Err(ServiceError(kind=ErrorKind.UPSTREAM, message=str(exc)))

        now = self._clock()
        entry = GeocodeCacheEntry(
            normalized_address=key,
            created_at=now,
            expires_at=now + timedelta(seconds=self._config.cache_ttl_seconds),
            not_found=result is None,
        )
        if result is not None:
            entry = entry.model_copy(
                update={
                    "latitude": result.latitude,
                    "longitude": result.longitude,
                    "display_name": result.display_name,
                }
            )
        await self._write(entry)

        if result is None:
            return self._not_found(address)
        return Ok(result)

    async def _write(self, entry: GeocodeCacheEntry) -> None:
        try:
            await self._store.put(entry)
        except Exception as exc:
            logger.error("Failed to cache geocode result for %r: %s", entry.normalized_address, exc)

    @staticmethod
    def _not_found(address: str) -> Err[ServiceError]:
        return Err(
            ServiceError(
                kind=ErrorKind.NOT_FOUND,
                message="Address not found",
                details={"address": address},
            )
        )

    async def get_cache_stats(self) -> CacheStats:
        now = self._clock()
        total = await self._store.count()
        expired = await self._store.count(expired_before=now)
        return CacheStats(total_cached=total, expired_entries=expired)

    async def clear_expired(self) -> int:
        """Delete expired entries; returns how many were removed."""
        removed = await self._store.delete_expired(self._clock())
        if removed:
            logger.info("Cleared %d expired geocode cache entries", removed)
        return removed

    async def close(self) -> None:
        await self._geocoder.close()
