"""Core type definitions shared across all modules."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    """Health check response for any service."""

    service: str
    healthy: bool
    latency_ms: float | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class Bounds(BaseModel):
    """A map viewport in WGS84 degrees."""

    north: float
    south: float
    east: float
    west: float

    def is_valid(self) -> bool:
        return self.north > self.south and self.east > self.west


class RateLimitState(BaseModel):
    """Upstream rate-limit headers captured from a 429 response.

    Values are kept as the raw header strings so they can be relayed
    verbatim to clients.
    """

    limit: str | None = None
    remaining: str | None = None
    reset_at: str | None = None
    retry_after: str | None = None

    def to_headers(self) -> dict[str, str]:
        """Render as both the ``X-RateLimit-*`` and ``RateLimit-*`` header families."""
        headers: dict[str, str] = {}
        if self.retry_after is not None:
            headers["Retry-After"] = self.retry_after
        for name, value in (
            ("Limit", self.limit),
            ("Remaining", self.remaining),
            ("Reset", self.reset_at),
        ):
            if value is not None:
                headers[f"X-RateLimit-{name}"] = value
                headers[f"RateLimit-{name}"] = value
        return headers


class FeatureCollection(BaseModel):
    """GeoJSON FeatureCollection with a free-form metadata block."""

    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
