"""
External place-search integration package
=========================================

Public API for the place providers consulted by the region refresh
service alongside the curated catalog.

Typical usage::

    from region_refresh.integrations.places import (
        build_place_providers,
        NominatimService,
        FoursquareService,
        PlacesCache,
        PlacesProviderError,
    )
"""

from __future__ import annotations

from typing import Optional

from region_refresh.core.config import Settings, settings as default_settings
from region_refresh.integrations.places.base import (
    PlaceProvider,
    PlacesProviderError,
    location_from_dict,
    location_to_dict,
    request_with_retry,
)
from region_refresh.integrations.places.foursquareService import FoursquareService
from region_refresh.integrations.places.nominatimService import NominatimService
from region_refresh.integrations.places.placesCache import CacheEntry, PlacesCache
from region_refresh.integrations.places.rateLimiter import SlidingWindowRateLimiter


def build_place_providers(
    config: Optional[Settings] = None,
    cache: Optional[PlacesCache] = None,
) -> list[PlaceProvider]:
    """Instantiate the configured providers in merge-priority order,
    sharing one cache."""
    config = config or default_settings
    cache = cache or PlacesCache.from_url(config.redis_url)
    return [
        NominatimService(config, cache=cache),
        FoursquareService(config, cache=cache),
    ]


__all__ = [
    # base
    "PlaceProvider",
    "PlacesProviderError",
    "request_with_retry",
    "location_to_dict",
    "location_from_dict",
    # providers
    "NominatimService",
    "FoursquareService",
    "build_place_providers",
    # cache / limiter
    "CacheEntry",
    "PlacesCache",
    "SlidingWindowRateLimiter",
]
