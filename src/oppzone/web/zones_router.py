"""FastAPI router for opportunity zone endpoints."""

from __future__ import annotations

import math
import time
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from oppzone.core.result import Err, ErrorKind, ServiceError
from oppzone.core.types import Bounds, HealthStatus

router = APIRouter(prefix="/api/opportunity-zones")

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.DEGRADED_SERVICE: 503,
    ErrorKind.REFRESH_FAILURE: 503,
    ErrorKind.UPSTREAM: 502,
}


def error_response(error: ServiceError) -> JSONResponse:
    """Render a ServiceError with the status and headers its kind maps to."""
    body: dict[str, Any] = {"error": error.message, "kind": error.kind.value}
    if error.details:
        body["details"] = error.details
    headers: dict[str, str] = {}
    if error.rate_limit is not None:
        headers = error.rate_limit.to_headers()
        if error.rate_limit.retry_after is not None:
            body["retryAfter"] = error.rate_limit.retry_after
    return JSONResponse(body, status_code=_STATUS_BY_KIND[error.kind], headers=headers)


def _service(request: Request, name: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name} not available")
    return service


def _parse_coordinate(value: str | None, name: str) -> float:
    try:
        parsed = float(value) if value is not None else math.nan
    except ValueError:
        parsed = math.nan
    if not math.isfinite(parsed):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid coordinates: {name} must be a valid number",
        )
    return parsed


@router.get("/check")
async def check_point(
    request: Request,
    response: Response,
    lat: str | None = None,
    lon: str | None = None,
) -> Any:
    """Report whether a coordinate falls inside an Opportunity Zone."""
    if lat is None or lon is None:
        raise HTTPException(status_code=400, detail="Missing required parameters: lat and lon")
    latitude = _parse_coordinate(lat, "lat")
    longitude = _parse_coordinate(lon, "lon")
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise HTTPException(
            status_code=400,
            detail="Invalid coordinates: lat must be between -90 and 90, "
            "lon must be between -180 and 180",
        )

    zone_cache = _service(request, "zone_cache")
    matcher = _service(request, "matcher")

    snapshot = zone_cache.get_snapshot()
    etag = f'"{latitude},{longitude}-{snapshot.version}"'
    if request.headers.get("if-none-match") == etag:
        return Response(status_code=304, headers={"ETag": etag})

    started = time.monotonic()
    result = await matcher.check_point(latitude, longitude)
    response.headers["ETag"] = etag
    return {
        "coordinates": {"latitude": latitude, "longitude": longitude},
        "isInOpportunityZone": result.is_in_zone,
        "opportunityZoneId": result.zone_id,
        "metadata": {
            "method": result.method.value,
            "queryTime": round((time.monotonic() - started) * 1000, 2),
            "version": snapshot.version,
            "lastUpdated": snapshot.loaded_at.isoformat() if not snapshot.is_empty else None,
            "nextRefreshDue": (
                snapshot.next_refresh_due.isoformat() if not snapshot.is_empty else None
            ),
            "featureCount": snapshot.feature_count,
        },
    }


@router.post("/geocode")
async def geocode(request: Request, body: dict[str, Any] = Body(...)) -> Any:
    """Resolve an address to coordinates through the geocode cache."""
    geocoding_cache = _service(request, "geocoding_cache")
    address = body.get("address")
    if not isinstance(address, str):
        raise HTTPException(status_code=400, detail="Address is required")

    result = await geocoding_cache.geocode_address(address)
    if isinstance(result, Err):
        return error_response(result.error)
    return {
        "address": address,
        "latitude": result.value.latitude,
        "longitude": result.value.longitude,
        "displayName": result.value.display_name,
    }


@router.get("/shapes")
async def shapes_in_viewport(
    request: Request,
    north: float,
    south: float,
    east: float,
    west: float,
    zoom: int | None = None,
) -> Any:
    """Zone shapes intersecting a map viewport."""
    shape_service = _service(request, "shape_service")
    result = await shape_service.get_shapes_in_bounds(
        Bounds(north=north, south=south, east=east, west=west), zoom
    )
    if isinstance(result, Err):
        return error_response(result.error)
    return result.value.model_dump()


@router.post("/shapes")
async def shapes_by_ids(request: Request, body: dict[str, Any] = Body(...)) -> Any:
    """Zone shapes for an explicit list of zone ids."""
    shape_service = _service(request, "shape_service")
    result = await shape_service.get_shapes_by_zone_ids(body.get("zone_ids"))
    if isinstance(result, Err):
        return error_response(result.error)
    return result.value.model_dump()


@router.get("/status")
async def status(request: Request) -> dict[str, Any]:
    """Cache and spatial index status."""
    zone_cache = _service(request, "zone_cache")
    matcher = _service(request, "matcher")
    return {
        "cache": zone_cache.get_metrics(),
        "spatialIndex": {"available": await matcher.is_index_available()},
    }


@router.post("/refresh")
async def refresh(request: Request) -> Any:
    """Reload the zone dataset now."""
    zone_cache = _service(request, "zone_cache")
    result = await zone_cache.force_refresh()
    if isinstance(result, Err):
        return error_response(result.error)
    return {"success": True, "metrics": zone_cache.get_metrics()}


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Liveness of the zone cache and, when configured, the database."""
    zone_cache = _service(request, "zone_cache")
    checks = [
        HealthStatus(
            service="zone_cache",
            healthy=zone_cache.is_available,
            details={"version": zone_cache.get_snapshot().version},
        )
    ]

    db = getattr(request.app.state, "db", None)
    if db is not None:
        started = time.monotonic()
        try:
            healthy = await db.ping()
            details: dict[str, Any] = {}
        except Exception as exc:
            healthy = False
            details = {"error": str(exc)}
        checks.append(
            HealthStatus(
                service="database",
                healthy=healthy,
                latency_ms=round((time.monotonic() - started) * 1000, 2),
                details=details,
            )
        )

    return {
        "status": "healthy" if all(c.healthy for c in checks) else "degraded",
        "service": "oppzone",
        "checks": [c.model_dump() for c in checks],
    }
