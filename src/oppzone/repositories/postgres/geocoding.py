"""PostgreSQL geocode cache repository."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, func, select

from oppzone.db.engine import DatabaseManager
from oppzone.db.models import GeocodeCacheRow
from oppzone.geocoding.models import GeocodeCacheEntry


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PostgresGeocodeRepository:
    """Postgres-backed geocode cache storage; last writer wins per address."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get(self, normalized_address: str) -> GeocodeCacheEntry | None:
        async with self._db.session() as db:
            row = await db.get(GeocodeCacheRow, normalized_address)
            if row is None:
                return None
            return GeocodeCacheEntry(
                normalized_address=row.normalized_address,
                latitude=row.latitude,
                longitude=row.longitude,
                display_name=row.display_name or "",
                not_found=row.not_found,
                created_at=_aware(row.created_at),
                expires_at=_aware(row.expires_at),
            )

    async def put(self, entry: GeocodeCacheEntry) -> None:
        row = GeocodeCacheRow(
            normalized_address=entry.normalized_address,
            latitude=entry.latitude,
            longitude=entry.longitude,
            display_name=entry.display_name,
            not_found=entry.not_found,
            created_at=entry.created_at,
            expires_at=entry.expires_at,
        )
        async with self._db.session() as db:
            await db.merge(row)
            await db.commit()

    async def delete_expired(self, now: datetime) -> int:
        async with self._db.session() as db:
            result = await db.execute(
                delete(GeocodeCacheRow).where(GeocodeCacheRow.expires_at <= now)
            )
            await db.commit()
            return result.rowcount or 0

    async def count(self, *, expired_before: datetime | None = None) -> int:
        stmt = select(func.count()).select_from(GeocodeCacheRow)
        if expired_before is not None:
            stmt = stmt.where(GeocodeCacheRow.expires_at <= expired_before)
        async with self._db.session() as db:
            result = await db.execute(stmt)
            return int(result.scalar_one())
