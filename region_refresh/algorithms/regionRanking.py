"""
Region Ranking Algorithm
========================

Orders deduplicated candidate locations for geofence monitoring and
truncates them to the device region capacity.

Sort keys:

  1. Priority tier  -- 1 for locations of a network the user is affiliated
     with, 2 for everything else.  Tier always outranks distance.
  2. Distance       -- haversine metres from the reference position,
     closest first.

The algorithm is deterministic: ``list.sort`` is stable, so locations at
exactly the same distance within a tier keep their merge order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from region_refresh.services.geoService import (
    Location,
    LocationSource,
    Position,
    haversine_distance,
    validate_position,
)

PRIORITY_PREFERRED: int = 1
PRIORITY_OTHER: int = 2

# iOS allows an app to monitor at most 20 circular regions at once.
DEFAULT_CAPACITY_CEILING: int = 20


class InvalidMaxCountError(ValueError):
    """Raised when the requested region count is outside ``[1, ceiling]``."""

    def __init__(self, max_count: int, ceiling: int) -> None:
        self.max_count = max_count
        self.ceiling = ceiling
        super().__init__(
            f"max_count must be between 1 and {ceiling}, got {max_count}."
        )


@dataclass(frozen=True)
class RankedRegion:
    """A location with the fields computed for one refresh."""

    location: Location
    distance_meters: float
    priority_tier: int

    @property
    def id(self) -> str:
        return self.location.id

    @property
    def network_id(self) -> Optional[str]:
        return self.location.network_id

    @property
    def name(self) -> str:
        return self.location.name

    @property
    def latitude(self) -> float:
        return self.location.latitude

    @property
    def longitude(self) -> float:
        return self.location.longitude

    @property
    def radius_meters(self) -> float:
        return self.location.radius_meters

    @property
    def source(self) -> LocationSource:
        return self.location.source

    @property
    def notes(self) -> Optional[str]:
        return self.location.notes


@dataclass(frozen=True)
class RefreshResult:
    """Bounded, ordered region list plus the cache policy that came with it."""

    regions: tuple[RankedRegion, ...]
    refresh_after_distance_meters: float
    cache_ttl_seconds: int
    server_time: datetime

    @property
    def region_ids(self) -> list[str]:
        return [region.id for region in self.regions]


def validate_max_count(max_count: int, ceiling: int = DEFAULT_CAPACITY_CEILING) -> int:
    """Return ``max_count`` if it is within ``[1, ceiling]``.

    Raises:
        InvalidMaxCountError: Otherwise.
    """
    if isinstance(max_count, bool) or not isinstance(max_count, int):
        raise InvalidMaxCountError(max_count, ceiling)
    if max_count < 1 or max_count > ceiling:
        raise InvalidMaxCountError(max_count, ceiling)
    return max_count


def priority_tier(location: Location, preferred_network_ids: frozenset[str]) -> int:
    """Tier 1 if the location belongs to a preferred network, else tier 2."""
    if location.network_id is not None and location.network_id in preferred_network_ids:
        return PRIORITY_PREFERRED
    return PRIORITY_OTHER


def rank_regions(
    position: Position,
    locations: Sequence[Location],
    preferred_network_ids: Iterable[str] = (),
    max_count: int = DEFAULT_CAPACITY_CEILING,
    *,
    ceiling: int = DEFAULT_CAPACITY_CEILING,
) -> list[RankedRegion]:
    """Rank locations by priority tier then distance and keep the top
    ``max_count``.

    Args:
        position: Reference position (usually the device fix).
        locations: Deduplicated candidate locations, in merge order.
        preferred_network_ids: Networks the user holds cards for.
        max_count: Number of regions to keep.
        ceiling: Platform monitoring ceiling ``max_count`` may not exceed.

    Returns:
        At most ``max_count`` RankedRegion objects, tier 1 before tier 2,
        nearest first within a tier.

    Raises:
        InvalidPositionError: If the position is out of range.
        InvalidMaxCountError: If ``max_count`` is outside ``[1, ceiling]``.
    """
    validate_position(position.latitude, position.longitude)
    validate_max_count(max_count, ceiling)

    preferred = frozenset(preferred_network_ids)

    ranked: list[RankedRegion] = [
        RankedRegion(
            location=location,
            distance_meters=haversine_distance(
                position.latitude,
                position.longitude,
                location.latitude,
                location.longitude,
            ),
            priority_tier=priority_tier(location, preferred),
        )
        for location in locations
    ]

    # Stable: equal (tier, distance) keeps merge order
    ranked.sort(key=lambda r: (r.priority_tier, r.distance_meters))

    return ranked[:max_count]
