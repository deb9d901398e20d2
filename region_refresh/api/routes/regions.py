"""
Region Refresh API Routes
=========================

Routes:
  POST /api/v1/region-refresh     -- Regions the device should monitor now
  GET  /api/v1/locations/nearby   -- Catalog locations near a point
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from region_refresh.algorithms.regionRanking import InvalidMaxCountError
from region_refresh.api.deps import RefreshService
from region_refresh.api.schemas.region import (
    NearbyLocationsResponse,
    RegionOut,
    RegionRefreshRequest,
    RegionRefreshResponse,
)
from region_refresh.services.geoService import InvalidPositionError, Position
from region_refresh.services.locationCatalog import CatalogUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Regions"])


# ---------------------------------------------------------------------------
# POST /api/v1/region-refresh
# ---------------------------------------------------------------------------

@router.post(
    "/region-refresh",
    response_model=RegionRefreshResponse,
    summary="Get the regions a device should monitor",
    description=(
        "Merges curated catalog locations with external place search "
        "results, removes duplicates, ranks preferred networks first and "
        "then by distance, and truncates to the device capacity ceiling. "
        "The response carries the movement distance and TTL after which "
        "the client should refresh again."
    ),
)
async def region_refresh(
    body: RegionRefreshRequest,
    service: RefreshService,
) -> RegionRefreshResponse:
    position = Position(
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy=body.accuracy,
    )
    try:
        result = await service.refresh(
            position,
            preferred_network_ids=body.preferred_network_ids,
            max_count=body.max_count,
        )
    except (InvalidPositionError, InvalidMaxCountError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )
    except CatalogUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        )

    return RegionRefreshResponse.from_result(result)


# ---------------------------------------------------------------------------
# GET /api/v1/locations/nearby
# ---------------------------------------------------------------------------

@router.get(
    "/locations/nearby",
    response_model=NearbyLocationsResponse,
    summary="List catalog locations near a point",
)
async def nearby_locations(
    service: RefreshService,
    latitude: float = Query(ge=-90, le=90),
    longitude: float = Query(ge=-180, le=180),
    limit: int = Query(default=20, ge=1, le=100),
) -> NearbyLocationsResponse:
    try:
        regions = await service.nearby(Position(latitude, longitude), limit)
    except InvalidPositionError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )
    except CatalogUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        )

    return NearbyLocationsResponse(
        total=len(regions),
        locations=[RegionOut.from_ranked(r) for r in regions],
    )
