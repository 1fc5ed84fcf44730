#!/usr/bin/env python3
"""Seed the PostGIS opportunity_zones table from the bulk zone dataset.

Usage:
    # Apply migrations first:
    alembic upgrade head

    # Verify the database has PostGIS and the lookup function:
    OPPZONE_DB_URL=postgresql+asyncpg://... python3 scripts/seed_zones.py --setup-check

    # Fetch the dataset and upsert every zone:
    OPPZONE_DB_URL=postgresql+asyncpg://... python3 scripts/seed_zones.py

    # Seed from a local GeoJSON file instead of the configured URL:
    python3 scripts/seed_zones.py --file data/oz-all.geojson
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Ensure the project source is importable when running the script directly.
_project_root = Path(__file__).resolve().parent.parent
_src = _project_root / "src"
if str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from oppzone.core.config import Settings
from oppzone.db.engine import DatabaseManager
from oppzone.spatial.store import PostgisGeometryStore
from oppzone.zones.source import DatasetError, HttpDatasetSource, parse_features

# Sample points that should resolve through the fast lookup function.
_SETUP_PROBES = [
    (40.7128, -74.0060),
    (34.0522, -118.2437),
    (41.8781, -87.6298),
]


async def setup_check(store: PostgisGeometryStore) -> bool:
    if not await store.has_spatial_index():
        print("PostGIS extension is not installed.")
        print("   Run: CREATE EXTENSION IF NOT EXISTS postgis;  (or `alembic upgrade head`)")
        return False
    print("PostGIS extension available")

    stats = await store.get_optimization_stats()
    print(f"   {stats['totalZones']} zones stored")
    for lat, lon in _SETUP_PROBES:
        geoid = await store.find_zone(lat, lon)
        print(f"   ({lat}, {lon}) -> {geoid or 'not in a zone'}")
    return True


async def seed(store: PostgisGeometryStore, settings: Settings, path: Path | None) -> int:
    if path is not None:
        print(f"Reading dataset from {path}...")
        payload = json.loads(path.read_text())
    else:
        source = HttpDatasetSource(settings.zones)
        try:
            print(f"Downloading dataset from {settings.zones.data_url}...")
            payload = await source.fetch()
        finally:
            await source.close()

    features = parse_features(payload, settings.zones.simplify_tolerance)
    print(f"Parsed {len(features)} zone features; storing...")
    stored = await store.store_features(features)

    stats = await store.get_optimization_stats()
    print(f"\nDone! Stored {stored} zones.")
    print(f"   Average vertices: {stats['avgOriginalVertices']} -> {stats['avgSimplifiedVertices']}")
    print(f"   Compression: {stats['compressionRatio']}%")
    return stored


async def run(args: argparse.Namespace) -> int:
    settings = Settings()
    db = DatabaseManager.from_config(settings.database)
    if db is None:
        print("OPPZONE_DB_URL is not set.")
        return 1

    store = PostgisGeometryStore(db, settings.zones.simplify_tolerance)
    try:
        if args.setup_check:
            return 0 if await setup_check(store) else 1
        if not await store.has_spatial_index():
            print("PostGIS extension is not installed; run with --setup-check for details.")
            return 1
        await seed(store, settings, args.file)
        return 0
    except DatasetError as exc:
        print(f"Dataset error: {exc}")
        return 1
    finally:
        await db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed opportunity zones into PostGIS")
    parser.add_argument(
        "--setup-check",
        action="store_true",
        help="Only verify PostGIS and the lookup function, then exit",
    )
    parser.add_argument(
        "--file",
        type=Path,
        default=None,
        help="Read the GeoJSON dataset from a local file instead of the configured URL",
    )
    sys.exit(asyncio.run(run(parser.parse_args())))


if __name__ == "__main__":
    main()
