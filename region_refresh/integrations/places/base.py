"""
Shared plumbing for external place-search providers.

Provides the ``PlaceProvider`` interface the refresh service depends on,
the ``PlacesProviderError`` exception, an httpx GET helper with
exponential-backoff retry, and (de)serialisation of ``Location`` objects for
the places cache.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

import httpx

from region_refresh.services.geoService import Location, LocationSource, Position

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_INITIAL_BACKOFF_SECONDS = 0.25  # doubles each retry: 0.25, 0.5
_REQUEST_TIMEOUT_SECONDS = 10.0


# ---------------------------------------------------------------------------
# Custom exception
# ---------------------------------------------------------------------------


class PlacesProviderError(Exception):
    """Raised when a place provider request fails after all retries or
    returns a payload that cannot be used."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status: str | None = None,
        raw: Any = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status = status
        self.raw = raw


# ---------------------------------------------------------------------------
# Provider interface
# ---------------------------------------------------------------------------


class PlaceProvider(Protocol):
    """An external "search near point" source of locations."""

    name: str

    async def search_near(self, position: Position, limit: int) -> list[Location]:
        ...


# ---------------------------------------------------------------------------
# HTTP helper
# ---------------------------------------------------------------------------


async def request_with_retry(
    client: httpx.AsyncClient,
    url: str,
    params: dict[str, Any],
    *,
    provider: str,
    headers: Optional[dict[str, str]] = None,
) -> Any:
    """Execute a GET request with exponential-backoff retry logic.

    Retries on transient HTTP errors (5xx, timeouts, connection errors).
    Does *not* retry on 4xx -- those are surfaced immediately.

    Returns:
        Parsed JSON response.

    Raises:
        PlacesProviderError: After all retries are exhausted, on a 4xx
            response, or when the body is not JSON.
    """
    last_exception: Exception | None = None
    backoff = _INITIAL_BACKOFF_SECONDS

    for attempt in range(1, _MAX_RETRIES + 1):
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=_REQUEST_TIMEOUT_SECONDS,
            )

            if 400 <= response.status_code < 500:
                raise PlacesProviderError(
                    f"{provider} client error: HTTP {response.status_code}",
                    provider=provider,
                    status=str(response.status_code),
                    raw=response.text,
                )

            if response.status_code >= 500:
                last_exception = PlacesProviderError(
                    f"{provider} server error: HTTP {response.status_code}",
                    provider=provider,
                    status=str(response.status_code),
                    raw=response.text,
                )
                logger.warning(
                    "%s server error on attempt %d/%d: HTTP %d",
                    provider,
                    attempt,
                    _MAX_RETRIES,
                    response.status_code,
                )
                if attempt < _MAX_RETRIES:
                    await asyncio.sleep(backoff)
                    backoff *= 2
                continue

            try:
                return response.json()
            except ValueError as exc:
                raise PlacesProviderError(
                    f"{provider} returned a non-JSON body",
                    provider=provider,
                    raw=response.text,
                ) from exc

        except (httpx.TimeoutException, httpx.ConnectError) as exc:
            last_exception = exc
            logger.warning(
                "%s transport error on attempt %d/%d: %s",
                provider,
                attempt,
                _MAX_RETRIES,
                exc,
            )
            if attempt < _MAX_RETRIES:
                await asyncio.sleep(backoff)
                backoff *= 2

    raise PlacesProviderError(
        f"{provider} request failed after {_MAX_RETRIES} attempts",
        provider=provider,
        raw=str(last_exception),
    )


# ---------------------------------------------------------------------------
# Cache serialisation
# ---------------------------------------------------------------------------


def location_to_dict(location: Location) -> dict[str, Any]:
    return {
        "id": location.id,
        "network_id": location.network_id,
        "name": location.name,
        "latitude": location.latitude,
        "longitude": location.longitude,
        "radius_meters": location.radius_meters,
        "source": location.source.value,
        "notes": location.notes,
        "categories": list(location.categories),
    }


def location_from_dict(data: dict[str, Any]) -> Location:
    return Location(
        id=data["id"],
        network_id=data.get("network_id"),
        name=data["name"],
        latitude=float(data["latitude"]),
        longitude=float(data["longitude"]),
        radius_meters=float(data["radius_meters"]),
        source=LocationSource(data["source"]),
        notes=data.get("notes"),
        categories=tuple(data.get("categories") or ()),
    )
