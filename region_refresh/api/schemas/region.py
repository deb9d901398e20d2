"""
Pydantic v2 schemas for the Region Refresh API
===============================================

Request and response bodies for ``POST /region-refresh`` and
``GET /locations/nearby``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from region_refresh.algorithms.regionRanking import RankedRegion, RefreshResult


# ---------------------------------------------------------------------------
# Region refresh
# ---------------------------------------------------------------------------

class RegionRefreshRequest(BaseModel):
    """Request body for a region refresh."""

    latitude: float = Field(ge=-90, le=90, description="Device latitude")
    longitude: float = Field(ge=-180, le=180, description="Device longitude")
    accuracy: Optional[float] = Field(
        default=None,
        ge=0,
        description="Horizontal accuracy of the fix in metres",
    )
    max_count: Optional[int] = Field(
        default=None,
        ge=1,
        description="Number of regions wanted (defaults to the capacity ceiling)",
    )
    preferred_network_ids: list[str] = Field(
        default_factory=list,
        description="Networks the user holds cards for; ranked first",
    )


class RegionOut(BaseModel):
    """A single region the device should monitor."""

    id: str
    network_id: Optional[str] = None
    name: str
    latitude: float
    longitude: float
    radius_meters: float
    priority_tier: int = Field(description="1 = preferred network, 2 = other")
    distance_meters: float = Field(description="Haversine distance from the request position")
    source: str
    notes: Optional[str] = None

    @classmethod
    def from_ranked(cls, region: RankedRegion) -> "RegionOut":
        return cls(
            id=region.id,
            network_id=region.network_id,
            name=region.name,
            latitude=region.latitude,
            longitude=region.longitude,
            radius_meters=region.radius_meters,
            priority_tier=region.priority_tier,
            distance_meters=round(region.distance_meters, 1),
            source=region.source.value,
            notes=region.notes,
        )


class RegionRefreshResponse(BaseModel):
    """Ordered regions plus cache policy for the client."""

    regions: list[RegionOut]
    refresh_after_distance_meters: float = Field(
        description="Refresh again once the device moves farther than this"
    )
    cache_ttl_seconds: int = Field(
        description="Refresh again once this many seconds have elapsed"
    )
    server_time: datetime

    @classmethod
    def from_result(cls, result: RefreshResult) -> "RegionRefreshResponse":
        return cls(
            regions=[RegionOut.from_ranked(r) for r in result.regions],
            refresh_after_distance_meters=result.refresh_after_distance_meters,
            cache_ttl_seconds=result.cache_ttl_seconds,
            server_time=result.server_time,
        )


# ---------------------------------------------------------------------------
# Nearby listing
# ---------------------------------------------------------------------------

class NearbyLocationsResponse(BaseModel):
    """Catalog locations near a point, nearest first."""

    total: int
    locations: list[RegionOut]
