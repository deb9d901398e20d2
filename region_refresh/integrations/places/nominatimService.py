"""
Nominatim (OpenStreetMap) place search
======================================

First external provider.  Runs a bounded free-text search inside a box of
``places_search_radius_km`` around the device and maps results to
``Location`` objects with no network id and an estimated radius.

Usage policy requires an identifying User-Agent and at most one request
per second from a single client, hence the shared rate limiter and cache.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from region_refresh.core.config import Settings, settings as default_settings
from region_refresh.integrations.places.base import (
    PlacesProviderError,
    request_with_retry,
)
from region_refresh.integrations.places.placesCache import PlacesCache
from region_refresh.integrations.places.rateLimiter import SlidingWindowRateLimiter
from region_refresh.services.geoService import (
    Location,
    LocationSource,
    Position,
    bounding_box,
    crosses_antimeridian,
    is_valid_coordinate,
)
from region_refresh.services.locationMerger import estimate_radius

logger = logging.getLogger(__name__)

PROVIDER_NAME = "nominatim"


class NominatimService:
    """``PlaceProvider`` backed by the Nominatim ``/search`` endpoint."""

    name = PROVIDER_NAME

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        cache: Optional[PlacesCache] = None,
        limiter: Optional[SlidingWindowRateLimiter] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config or default_settings
        self._cache = cache or PlacesCache()
        self._limiter = limiter or SlidingWindowRateLimiter(
            self._config.places_rate_limit_per_min
        )
        self._client = client

    async def search_near(self, position: Position, limit: int) -> list[Location]:
        """Search for places around ``position``.

        Returns an empty list when the provider is disabled or rate limited.

        Raises:
            PlacesProviderError: When the upstream request fails.
        """
        if not self._config.nominatim_enabled:
            return []

        query = self._config.places_search_query
        cache_key = PlacesCache.make_key(
            PROVIDER_NAME, query, position.latitude, position.longitude, limit
        )
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return cached

        if not self._limiter.is_allowed("global"):
            logger.warning("Nominatim rate limit exceeded, returning empty results")
            return []

        box = bounding_box(
            position.latitude, position.longitude, self._config.places_search_radius_km
        )
        params: dict[str, Any] = {
            "q": query,
            "format": "jsonv2",
            "limit": limit,
            "addressdetails": 1,
            "extratags": 1,
        }
        # A viewbox cannot wrap the antimeridian; search unbounded there
        if not crosses_antimeridian(box):
            min_lat, min_lon, max_lat, max_lon = box
            params["bounded"] = 1
            params["viewbox"] = f"{min_lon},{max_lat},{max_lon},{min_lat}"
        headers = {"User-Agent": self._config.nominatim_user_agent}
        url = f"{self._config.nominatim_base_url.rstrip('/')}/search"

        if self._client is not None:
            data = await request_with_retry(
                self._client, url, params, provider=PROVIDER_NAME, headers=headers
            )
        else:
            async with httpx.AsyncClient() as client:
                data = await request_with_retry(
                    client, url, params, provider=PROVIDER_NAME, headers=headers
                )

        if not isinstance(data, list):
            raise PlacesProviderError(
                "Nominatim search returned an unexpected payload",
                provider=PROVIDER_NAME,
                raw=data,
            )

        results = [loc for loc in (_parse_item(item) for item in data) if loc is not None]
        await self._cache.set(cache_key, results, self._config.places_cache_ttl_seconds)
        return results


def _parse_item(item: dict[str, Any]) -> Optional[Location]:
    """Map one Nominatim result to a ``Location``; None if unusable."""
    try:
        lat = float(item["lat"])
        lon = float(item["lon"])
    except (KeyError, TypeError, ValueError):
        return None
    if not is_valid_coordinate(lat, lon):
        return None

    display_name: str = item.get("display_name") or ""
    name = item.get("name") or display_name.split(",")[0].strip() or display_name
    if not name:
        return None

    extratags = item.get("extratags") or {}
    categories = tuple(
        c
        for c in (
            item.get("type"),
            item.get("category") or item.get("class"),
            extratags.get("brand"),
            extratags.get("operator"),
        )
        if c
    )

    return Location(
        id=f"nominatim:{item.get('place_id')}",
        network_id=None,
        name=name,
        latitude=lat,
        longitude=lon,
        radius_meters=estimate_radius(categories),
        source=LocationSource.NOMINATIM,
        notes=display_name or None,
        categories=categories,
    )
