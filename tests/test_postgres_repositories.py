"""Tests for the Postgres geocode and snapshot repositories with SQLite async."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from oppzone.db.base import Base
from oppzone.db.engine import DatabaseManager
from oppzone.geocoding.cache import GeocodingCache
from oppzone.geocoding.models import GeocodeCacheEntry, GeocodeResult
from oppzone.repositories.postgres.geocoding import PostgresGeocodeRepository
from oppzone.repositories.postgres.snapshots import PostgresSnapshotRepository
from oppzone.repositories.protocols import GeocodeRepository, SnapshotRepository
from oppzone.zones.cache import ZoneCacheManager

import oppzone.db.models  # noqa: F401

from conftest import FakeDatasetSource, FakeGeocoder, payload, square, zone

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
async def db():
    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    async with manager.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield manager
    await manager.close()


def _entry(address: str, *, days: int = 30, **fields) -> GeocodeCacheEntry:
    return GeocodeCacheEntry(
        normalized_address=address,
        created_at=NOW,
        expires_at=NOW + timedelta(days=days),
        **fields,
    )


class TestGeocodeRepository:
    @pytest.fixture
    def repo(self, db) -> PostgresGeocodeRepository:
        return PostgresGeocodeRepository(db)

    def test_satisfies_protocol(self, repo):
        assert isinstance(repo, GeocodeRepository)

    async def test_put_and_get(self, repo):
        await repo.put(_entry("1 main st", latitude=1.5, longitude=-2.5, display_name="Main"))
        found = await repo.get("1 main st")
        assert found is not None
        assert (found.latitude, found.longitude) == (1.5, -2.5)
        assert found.display_name == "Main"
        assert found.expires_at == NOW + timedelta(days=30)
        assert found.expires_at.tzinfo is not None

    async def test_get_missing(self, repo):
        assert await repo.get("nowhere") is None

    async def test_last_writer_wins(self, repo):
        await repo.put(_entry("1 main st", not_found=True))
        await repo.put(_entry("1 main st", latitude=3.0, longitude=4.0))
        found = await repo.get("1 main st")
        assert not found.not_found
        assert found.latitude == 3.0
        assert await repo.count() == 1

    async def test_delete_expired_and_count(self, repo):
        await repo.put(_entry("old", days=1))
        await repo.put(_entry("new", days=60))
        later = NOW + timedelta(days=2)

        assert await repo.count(expired_before=later) == 1
        assert await repo.delete_expired(later) == 1
        assert await repo.count() == 1
        assert await repo.get("old") is None

    async def test_backs_geocoding_cache(self, repo):
        address = "1600 Pennsylvania Ave NW, Washington, DC 20500"
        geocoder = FakeGeocoder({address: GeocodeResult(latitude=1, longitude=2, display_name="WH")})
        cache = GeocodingCache(geocoder, repo, clock=lambda: NOW)

        await cache.geocode_address(address)
        result = await cache.geocode_address(address)

        assert result.value.latitude == 1
        assert len(geocoder.calls) == 1


class TestSnapshotRepository:
    @pytest.fixture
    def repo(self, db) -> PostgresSnapshotRepository:
        return PostgresSnapshotRepository(db)

    def test_satisfies_protocol(self, repo):
        assert isinstance(repo, SnapshotRepository)

    async def test_load_when_empty(self, repo):
        assert await repo.load_latest() is None

    async def test_round_trip(self, repo, clock):
        manager = ZoneCacheManager(FakeDatasetSource(), repository=repo, clock=clock)
        saved = (await manager.force_refresh()).value

        loaded = await repo.load_latest()

        assert loaded.version == saved.version
        assert loaded.data_hash == saved.data_hash
        assert loaded.loaded_at == saved.loaded_at
        assert loaded.next_refresh_due == saved.next_refresh_due
        assert [f.geoid for f in loaded.features] == ["A", "B"]
        assert loaded.get("A").contains(0.5, 0.5)

    async def test_keeps_only_latest(self, repo, clock):
        source = FakeDatasetSource()
        manager = ZoneCacheManager(source, repository=repo, clock=clock)
        await manager.force_refresh()
        source.data = payload(zone("C", square(4, 4)))
        await manager.force_refresh()

        loaded = await repo.load_latest()

        assert loaded.version == 2
        assert [f.geoid for f in loaded.features] == ["C"]

    async def test_warm_start_from_database(self, repo, clock):
        first = ZoneCacheManager(FakeDatasetSource(), repository=repo, clock=clock)
        await first.force_refresh()

        source = FakeDatasetSource()
        restarted = ZoneCacheManager(source, repository=repo, clock=clock)
        await restarted.init(start_scheduler=False)

        assert restarted.get_snapshot().version == 1
        assert source.fetch_count == 0
