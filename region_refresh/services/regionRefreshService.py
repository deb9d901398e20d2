"""
Region Refresh Service
======================

Produces the bounded, prioritised list of regions a device should monitor.

Pipeline for one call:

  1. Validate the position and ``max_count`` (no I/O before this).
  2. Fetch the nearest catalog locations (``max_count`` x prefetch
     multiplier) and, concurrently, every external provider's results.
     Each provider call has its own timeout; a provider that fails or
     times out contributes an empty list and a warning log.  A catalog
     failure is fatal.
  3. Merge and deduplicate across sources.
  4. Rank by priority tier then distance and truncate to ``max_count``.
  5. Attach the cache policy (refresh distance, TTL) and server time.

The service keeps no state between calls; the only shared collaborators
are the read-only catalog and the provider objects.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Optional

from region_refresh.algorithms.regionRanking import (
    PRIORITY_OTHER,
    RankedRegion,
    RefreshResult,
    rank_regions,
    validate_max_count,
)
from region_refresh.core.config import Settings, settings as default_settings
from region_refresh.integrations.places.base import PlaceProvider
from region_refresh.services.geoService import (
    Location,
    Position,
    haversine_distance,
    validate_position,
)
from region_refresh.services.locationCatalog import LocationCatalog
from region_refresh.services.locationMerger import MergePolicy, merge_locations

logger = logging.getLogger(__name__)


class RegionRefreshService:
    """Merge -> rank -> truncate orchestration for region refresh."""

    def __init__(
        self,
        catalog: LocationCatalog,
        providers: Sequence[PlaceProvider] = (),
        *,
        config: Optional[Settings] = None,
        policy: Optional[MergePolicy] = None,
    ) -> None:
        self._catalog = catalog
        self._providers = tuple(providers)
        self._config = config or default_settings
        self._policy = policy or MergePolicy.from_settings(self._config)

    @property
    def ceiling(self) -> int:
        return self._config.region_capacity_ceiling

    async def refresh(
        self,
        position: Position,
        preferred_network_ids: Iterable[str] = (),
        max_count: Optional[int] = None,
    ) -> RefreshResult:
        """Compute the regions to monitor around ``position``.

        Args:
            position: Current device position.
            preferred_network_ids: Networks the user holds cards for.
            max_count: Number of regions wanted; defaults to the ceiling.

        Returns:
            RefreshResult with at most ``max_count`` regions.

        Raises:
            InvalidPositionError: If the position is out of range.
            InvalidMaxCountError: If ``max_count`` is outside ``[1, ceiling]``.
            CatalogUnavailableError: If the catalog query fails.
        """
        validate_position(position.latitude, position.longitude)
        count = self.ceiling if max_count is None else max_count
        validate_max_count(count, self.ceiling)
        preferred = frozenset(preferred_network_ids)

        fetch_limit = count * self._config.catalog_prefetch_multiplier

        # Catalog errors propagate out of gather; provider errors never do.
        catalog_locations, *provider_results = await asyncio.gather(
            self._catalog.nearest(position, fetch_limit),
            *(
                self._search_provider(provider, position, fetch_limit)
                for provider in self._providers
            ),
        )

        merged = merge_locations(catalog_locations, *provider_results, policy=self._policy)
        regions = rank_regions(
            position,
            merged,
            preferred,
            count,
            ceiling=self.ceiling,
        )

        logger.info(
            "Region refresh at (%.5f,%.5f): catalog=%d providers=%s merged=%d returned=%d",
            position.latitude,
            position.longitude,
            len(catalog_locations),
            [len(r) for r in provider_results],
            len(merged),
            len(regions),
        )

        return RefreshResult(
            regions=tuple(regions),
            refresh_after_distance_meters=self._config.refresh_after_distance_meters,
            cache_ttl_seconds=self._config.cache_ttl_seconds,
            server_time=datetime.now(timezone.utc),
        )

    async def nearby(self, position: Position, limit: int = 20) -> list[RankedRegion]:
        """Catalog-only nearby listing, nearest first, no tiering.

        Raises:
            InvalidPositionError: If the position is out of range.
            CatalogUnavailableError: If the catalog query fails.
        """
        validate_position(position.latitude, position.longitude)
        locations = await self._catalog.nearest(position, limit)
        return [
            RankedRegion(
                location=location,
                distance_meters=haversine_distance(
                    position.latitude,
                    position.longitude,
                    location.latitude,
                    location.longitude,
                ),
                priority_tier=PRIORITY_OTHER,
            )
            for location in locations
        ]

    async def _search_provider(
        self,
        provider: PlaceProvider,
        position: Position,
        limit: int,
    ) -> list[Location]:
        """Run one provider with a timeout; any failure yields ``[]``."""
        name = getattr(provider, "name", type(provider).__name__)
        try:
            return list(
                await asyncio.wait_for(
                    provider.search_near(position, limit),
                    timeout=self._config.provider_timeout_seconds,
                )
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Place provider %s timed out after %.1fs; continuing without it",
                name,
                self._config.provider_timeout_seconds,
            )
        except Exception as exc:
            logger.warning(
                "Place provider %s failed: %s; continuing without it",
                name,
                exc,
                exc_info=True,
            )
        return []
