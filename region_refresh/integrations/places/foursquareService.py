"""
Foursquare Places search
========================

Second external provider.  Queries the Places API ``/places/search`` with
an ``ll`` + ``radius`` circle around the device.  Skipped entirely (empty
result) when no API key is configured.
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
    is_valid_coordinate,
)
from region_refresh.services.locationMerger import estimate_radius

logger = logging.getLogger(__name__)

PROVIDER_NAME = "foursquare"

_BASE_URL = "https://api.foursquare.com/v3/places/search"

# Foursquare caps the search radius at 100 km.
_MAX_RADIUS_METERS = 100_000


class FoursquareService:
    """``PlaceProvider`` backed by the Foursquare Places API."""

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
            self._config.foursquare_rate_limit_per_min
        )
        self._client = client

    async def search_near(self, position: Position, limit: int) -> list[Location]:
        """Search for places around ``position``.

        Raises:
            PlacesProviderError: When the upstream request fails.
        """
        api_key = self._config.foursquare_api_key
        if not api_key:
            return []

        query = self._config.places_search_query
        cache_key = PlacesCache.make_key(
            PROVIDER_NAME, query, position.latitude, position.longitude, limit
        )
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return cached

        if not self._limiter.is_allowed(api_key):
            logger.warning("Foursquare rate limit exceeded, returning empty results")
            return []

        radius_m = min(
            int(self._config.places_search_radius_km * 1000), _MAX_RADIUS_METERS
        )
        params: dict[str, Any] = {
            "ll": f"{position.latitude},{position.longitude}",
            "radius": radius_m,
            "limit": limit,
            "fields": "fsq_id,name,geocodes,location,categories,chains",
        }
        if query:
            params["query"] = query
        headers = {"Authorization": api_key, "Accept": "application/json"}

        if self._client is not None:
            data = await request_with_retry(
                self._client, _BASE_URL, params, provider=PROVIDER_NAME, headers=headers
            )
        else:
            async with httpx.AsyncClient() as client:
                data = await request_with_retry(
                    client, _BASE_URL, params, provider=PROVIDER_NAME, headers=headers
                )

        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise PlacesProviderError(
                "Foursquare search returned an unexpected payload",
                provider=PROVIDER_NAME,
                raw=data,
            )

        results = [
            loc for loc in (_parse_item(item) for item in data["results"]) if loc is not None
        ]
        await self._cache.set(cache_key, results, self._config.places_cache_ttl_seconds)
        return results


def _parse_item(item: dict[str, Any]) -> Optional[Location]:
    """Map one Foursquare result to a ``Location``; None without coordinates."""
    main = ((item.get("geocodes") or {}).get("main")) or {}
    lat = main.get("latitude")
    lon = main.get("longitude")
    if not is_valid_coordinate(lat, lon) or not item.get("name"):
        return None

    location_info = item.get("location") or {}
    categories = tuple(
        cat["name"] for cat in (item.get("categories") or []) if cat.get("name")
    )

    return Location(
        id=f"foursquare:{item.get('fsq_id')}",
        network_id=None,
        name=item["name"],
        latitude=float(lat),
        longitude=float(lon),
        radius_meters=estimate_radius(categories),
        source=LocationSource.FOURSQUARE,
        notes=location_info.get("formatted_address") or location_info.get("address"),
        categories=categories,
    )
