"""Versioned in-memory cache of the zone dataset.

The manager holds exactly one current ``CacheSnapshot`` and swaps it
wholesale on a successful refresh. Readers call ``get_snapshot()`` and
keep the reference for the duration of one operation; nothing ever edits
a published snapshot.

Refresh is single-flight: concurrent ``force_refresh()`` callers await
one shared task. The check-and-set of the in-flight task runs without an
intervening ``await``, so it is atomic on the event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable

import httpx

from oppzone.core.config import ZoneCacheConfig
from oppzone.core.result import Err, ErrorKind, Ok, Result, ServiceError
from oppzone.zones.models import CacheSnapshot
from oppzone.zones.source import DatasetError, DatasetSource, dataset_hash, parse_features

if TYPE_CHECKING:
    from oppzone.repositories.protocols import SnapshotRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshError(Exception):
    """A dataset refresh failed; the previous snapshot stays current."""


class ZoneCacheManager:
    """Owns the current zone snapshot and its refresh schedule.

    Usage::

        manager = ZoneCacheManager(HttpDatasetSource(config), config)
        await manager.init()
        snapshot = manager.get_snapshot()
        ...
        await manager.shutdown()
    """

    def __init__(
        self,
        source: DatasetSource,
        config: ZoneCacheConfig | None = None,
        *,
        repository: SnapshotRepository | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._config = config or ZoneCacheConfig()
        self._repository = repository
        self._clock = clock
        self._snapshot = CacheSnapshot.empty()
        self._inflight: asyncio.Task[CacheSnapshot] | None = None
        self._scheduler: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._fetch_count = 0
        self._last_error: str | None = None

    # -- reads ---------------------------------------------------------------

    def get_snapshot(self) -> CacheSnapshot:
        """Return the latest successfully loaded snapshot. Never blocks."""
        return self._snapshot

    @property
    def is_available(self) -> bool:
        return not self._snapshot.is_empty

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None

    @property
    def fetch_count(self) -> int:
        """Number of upstream dataset fetches issued so far."""
        return self._fetch_count

    def get_metrics(self) -> dict[str, Any]:
        snapshot = self._snapshot
        loaded = not snapshot.is_empty
        return {
            "isAvailable": loaded,
            "isRefreshing": self.is_refreshing,
            "lastUpdated": snapshot.loaded_at.isoformat() if loaded else None,
            "nextRefreshDue": snapshot.next_refresh_due.isoformat() if loaded else None,
            "featureCount": snapshot.feature_count,
            "version": snapshot.version,
            "dataHash": snapshot.data_hash or None,
            "lastError": self._last_error,
        }

    # -- refresh -------------------------------------------------------------

    async def force_refresh(self) -> Result[CacheSnapshot, ServiceError]:
        """Reload the dataset now, joining any refresh already in flight."""
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._run_refresh())
        task = self._inflight
        try:
            snapshot = await asyncio.shield(task)
        except RefreshError as exc:
            return Err(
                ServiceError(
                    kind=ErrorKind.REFRESH_FAILURE,
                    message=str(exc),
                    details={"version": self._snapshot.version},
                )
            )
        return Ok(snapshot)

    async def _run_refresh(self) -> CacheSnapshot:
        try:
            return await self._refresh()
        finally:
            self._inflight = None

    async def _refresh(self) -> CacheSnapshot:
        logger.info("Refreshing opportunity zone data")
        started = time.monotonic()
        self._fetch_count += 1
        try:
            payload = await asyncio.wait_for(
                self._source.fetch(), timeout=self._config.load_timeout_seconds
            )
            features = parse_features(payload, self._config.simplify_tolerance)
        except asyncio.TimeoutError as exc:
            self._last_error = f"Dataset load timed out after {self._config.load_timeout_seconds}s"
            logger.error("Refresh failed: %s", self._last_error)
            raise RefreshError(self._last_error) from exc
        except (DatasetError, httpx.HTTPError, ValueError, TypeError, IndexError, KeyError) as exc:
            self._last_error = str(exc) or exc.__class__.__name__
            logger.error("Refresh failed: %s", self._last_error)
            raise RefreshError(self._last_error) from exc

        current = self._snapshot
        data_hash = dataset_hash(features)
        now = self._clock()
        next_due = now + timedelta(seconds=self._config.refresh_interval_seconds)

        if data_hash == current.data_hash:
            logger.info("Dataset unchanged (version %d); updating timestamps", current.version)
            snapshot = CacheSnapshot(
                features=current.features,
                version=current.version,
                data_hash=current.data_hash,
                loaded_at=now,
                next_refresh_due=next_due,
            )
        else:
            snapshot = CacheSnapshot(
                features=tuple(features),
                version=current.version + 1,
                data_hash=data_hash,
                loaded_at=now,
                next_refresh_due=next_due,
            )

        self._snapshot = snapshot
        self._last_error = None
        logger.info(
            "Refresh complete: version %d, %d features in %.0fms",
            snapshot.version,
            snapshot.feature_count,
            (time.monotonic() - started) * 1000,
        )
        await self._persist(snapshot)
        return snapshot

    async def _persist(self, snapshot: CacheSnapshot) -> None:
        if self._repository is None:
            return
        try:
            await self._repository.save(snapshot)
        except Exception as exc:
            logger.error("Failed to persist zone snapshot v%d: %s", snapshot.version, exc)

    async def _load_persisted(self) -> CacheSnapshot | None:
        if self._repository is None:
            return None
        try:
            return await asyncio.wait_for(
                self._repository.load_latest(), timeout=self._config.load_timeout_seconds
            )
        except Exception as exc:
            logger.error("Failed to load persisted zone snapshot: %s", exc)
            return None

    # -- lifecycle -----------------------------------------------------------

    async def init(self, *, start_scheduler: bool = True) -> None:
        """Warm the cache and start the refresh scheduler.

        A persisted snapshot is served immediately; a stale one is
        refreshed in the background. With nothing persisted the first
        refresh is awaited here, and a failure leaves the cache empty
        until the scheduler retries.
        """
        persisted = await self._load_persisted()
        if persisted is not None and not persisted.is_empty:
            self._snapshot = persisted
            logger.info(
                "Loaded persisted zone snapshot v%d (%d features)",
                persisted.version,
                persisted.feature_count,
            )
            if self._clock() >= persisted.next_refresh_due:
                logger.info("Persisted snapshot is past its refresh time; refreshing in background")
                self._spawn(self.force_refresh())
        else:
            result = await self.force_refresh()
            if isinstance(result, Err):
                logger.warning("Initial zone load failed: %s", result.error.message)

        if start_scheduler:
            self.start_scheduler()

    def start_scheduler(self) -> None:
        if self._scheduler is None or self._scheduler.done():
            self._scheduler = asyncio.ensure_future(self._schedule_loop())

    async def _schedule_loop(self) -> None:
        interval = self._config.refresh_check_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh_if_due()
            except Exception:
                logger.exception("Scheduled zone refresh crashed; will retry in %ds", interval)

    async def refresh_if_due(self) -> bool:
        """Refresh when the snapshot is empty or past ``next_refresh_due``.

        Returns True when a refresh ran and succeeded.
        """
        snapshot = self._snapshot
        if not snapshot.is_empty and self._clock() < snapshot.next_refresh_due:
            return False
        result = await self.force_refresh()
        if isinstance(result, Err):
            logger.warning(
                "Scheduled refresh failed, retrying in %ds: %s",
                self._config.refresh_check_interval_seconds,
                result.error.message,
            )
            return False
        return True

    def _spawn(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def shutdown(self) -> None:
        tasks = list(self._background)
        if self._scheduler is not None:
            tasks.append(self._scheduler)
            self._scheduler = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        close = getattr(self._source, "close", None)
        if close is not None:
            await close()
