"""Upstream geocoder interface and the geocode.maps.co provider."""

from __future__ import annotations

import abc
import logging

import httpx

from oppzone.core.config import GeocodingConfig
from oppzone.core.types import RateLimitState
from oppzone.geocoding.models import GeocodeResult

logger = logging.getLogger(__name__)


class GeocoderError(Exception):
    """The upstream geocoder failed or returned an unusable response."""


class GeocoderRateLimitError(GeocoderError):
    """The upstream geocoder answered HTTP 429."""

    def __init__(self, message: str, rate_limit: RateLimitState) -> None:
        super().__init__(message)
        self.rate_limit = rate_limit

    @classmethod
    def from_response(cls, resp: httpx.Response) -> GeocoderRateLimitError:
        headers = resp.headers
        state = RateLimitState(
            retry_after=headers.get("Retry-After"),
            limit=headers.get("X-RateLimit-Limit") or headers.get("RateLimit-Limit"),
            remaining=headers.get("X-RateLimit-Remaining") or headers.get("RateLimit-Remaining"),
            reset_at=headers.get("X-RateLimit-Reset") or headers.get("RateLimit-Reset"),
        )
        return cls(f"Geocoding rate limited: HTTP {resp.status_code}", state)


class Geocoder(abc.ABC):
    """Abstract base class for geocoding providers."""

    def __init__(self, config: GeocodingConfig) -> None:
        self.config = config

    @abc.abstractmethod
    async def geocode(self, address: str) -> GeocodeResult | None:
        """Resolve an address; None when the provider has no match.

        Raises:
            GeocoderRateLimitError: On upstream HTTP 429.
            GeocoderError: On any other upstream failure.
        """

    async def close(self) -> None:
        """Clean up resources. Override if the provider holds connections."""


def sanitize_display_name(display_name: str | None, fallback: str) -> str:
    """Drop the trailing postcode and country components of a display name."""
    if not display_name:
        return fallback
    parts = display_name.split(",")
    if len(parts) > 2:
        return ",".join(parts[:-2]).strip()
    return display_name


class MapsCoGeocoder(Geocoder):
    """Talks to the geocode.maps.co ``/search`` endpoint."""

    def __init__(self, config: GeocodingConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config)
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.timeout_seconds),
            headers={"User-Agent": config.user_agent},
        )

    async def geocode(self, address: str) -> GeocodeResult | None:
        if not self.config.api_key:
            raise GeocoderError("Geocoding API key not configured")

        logger.info("Geocoding address: %s", address)
        try:
            resp = await self._http.get(
                "/search", params={"q": address, "api_key": self.config.api_key}
            )
        except httpx.TimeoutException as exc:
            raise GeocoderError(
                f"Geocoding request timed out after {self.config.timeout_seconds} seconds"
            ) from exc
        except httpx.HTTPError as exc:
            raise GeocoderError(f"Geocoding request failed: {exc}") from exc

        if resp.status_code == 429:
            error = GeocoderRateLimitError.from_response(resp)
            logger.warning("%s (retry after %s)", error, error.rate_limit.retry_after)
            raise error
        if resp.status_code >= 400:
            logger.error("Geocoding failed: HTTP %d", resp.status_code)
            raise GeocoderError(f"Geocoding API error: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise GeocoderError("Geocoding response is not valid JSON") from exc

        if not isinstance(data, list) or not data:
            logger.warning("No geocoding results found for address")
            return None

        first = data[0]
        if not isinstance(first, dict):
            raise GeocoderError("Invalid geocoding response")
        if not first.get("lat") or not first.get("lon"):
            raise GeocoderError("Invalid geocoding response: missing coordinates")
        try:
            latitude, longitude = float(first["lat"]), float(first["lon"])
        except (TypeError, ValueError) as exc:
            raise GeocoderError("Invalid geocoding response: bad coordinates") from exc

        result = GeocodeResult(
            latitude=latitude,
            longitude=longitude,
            display_name=sanitize_display_name(first.get("display_name"), address),
        )
        logger.info("Geocoded %r to %s, %s", address, latitude, longitude)
        return result

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()


GEOCODER_REGISTRY: dict[str, type[Geocoder]] = {
    "maps_co": MapsCoGeocoder,
}


def create_geocoder(config: GeocodingConfig) -> Geocoder:
    """Factory: select and instantiate a geocoder based on config.provider."""

    provider = config.provider.lower()
    if provider not in GEOCODER_REGISTRY:
        available = ", ".join(sorted(GEOCODER_REGISTRY))
        raise ValueError(
            f"Unknown geocoding provider {config.provider!r}. "
            f"Available: {available}"
        )
    return GEOCODER_REGISTRY[provider](config)
