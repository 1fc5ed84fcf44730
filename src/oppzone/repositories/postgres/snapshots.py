"""PostgreSQL zone snapshot repository.

Only the most recent snapshot is kept; saving a new one replaces the rest.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select

from oppzone.db.engine import DatabaseManager
from oppzone.db.models import ZoneSnapshotRow
from oppzone.zones.models import CacheSnapshot, ZoneFeature


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PostgresSnapshotRepository:
    """Postgres-backed storage for the latest zone snapshot."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def save(self, snapshot: CacheSnapshot) -> None:
        row = ZoneSnapshotRow(
            version=snapshot.version,
            data_hash=snapshot.data_hash,
            feature_count=snapshot.feature_count,
            loaded_at=snapshot.loaded_at,
            next_refresh_due=snapshot.next_refresh_due,
            features=[f.to_record() for f in snapshot.features],
            created_at=datetime.now(timezone.utc),
        )
        async with self._db.session() as db:
            await db.execute(delete(ZoneSnapshotRow))
            db.add(row)
            await db.commit()

    async def load_latest(self) -> CacheSnapshot | None:
        async with self._db.session() as db:
            result = await db.execute(
                select(ZoneSnapshotRow)
                .order_by(ZoneSnapshotRow.created_at.desc(), ZoneSnapshotRow.id.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
        if row is None:
            return None
        return CacheSnapshot(
            features=tuple(ZoneFeature(**record) for record in row.features),
            version=row.version,
            data_hash=row.data_hash,
            loaded_at=_aware(row.loaded_at),
            next_refresh_due=_aware(row.next_refresh_due),
        )
