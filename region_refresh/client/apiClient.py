"""
Region refresh HTTP client
==========================

Device-side wrapper around ``POST /api/v1/region-refresh``.  Parses the
response with the same pydantic schema the server emits and converts it
back into a ``RefreshResult`` for the region monitor.

Every failure (transport error, non-2xx status, malformed body) is raised
as ``RegionRefreshError``; the monitor treats that as a failed refresh and
keeps its last good watched set.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from region_refresh.algorithms.regionRanking import RankedRegion, RefreshResult
from region_refresh.api.schemas.region import RegionOut, RegionRefreshResponse
from region_refresh.services.geoService import Location, LocationSource, Position

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT_SECONDS = 15.0
_REFRESH_PATH = "/api/v1/region-refresh"


class RegionRefreshError(Exception):
    """Raised when a region refresh call cannot produce a result."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _to_ranked(region: RegionOut) -> RankedRegion:
    try:
        source = LocationSource(region.source)
    except ValueError:
        source = LocationSource.SEARCH
    return RankedRegion(
        location=Location(
            id=region.id,
            network_id=region.network_id,
            name=region.name,
            latitude=region.latitude,
            longitude=region.longitude,
            radius_meters=region.radius_meters,
            source=source,
            notes=region.notes,
        ),
        distance_meters=region.distance_meters,
        priority_tier=region.priority_tier,
    )


def parse_refresh_response(data: Any) -> RefreshResult:
    """Convert a decoded JSON body into a ``RefreshResult``.

    Raises:
        RegionRefreshError: If the body does not match the response schema.
    """
    try:
        body = RegionRefreshResponse.model_validate(data)
    except ValidationError as exc:
        raise RegionRefreshError(f"Malformed region refresh response: {exc}") from exc

    return RefreshResult(
        regions=tuple(_to_ranked(r) for r in body.regions),
        refresh_after_distance_meters=body.refresh_after_distance_meters,
        cache_ttl_seconds=body.cache_ttl_seconds,
        server_time=body.server_time,
    )


class RegionRefreshClient:
    """Async client for the region refresh endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[dict[str, str]] = None,
        timeout: float = _REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._headers = headers or {}
        self._timeout = timeout

    async def refresh(
        self,
        position: Position,
        preferred_network_ids: Iterable[str] = (),
        max_count: Optional[int] = None,
    ) -> RefreshResult:
        """Request a fresh region list for ``position``.

        Raises:
            RegionRefreshError: On any transport, HTTP, or parsing failure.
        """
        payload: dict[str, Any] = {
            "latitude": position.latitude,
            "longitude": position.longitude,
            "preferred_network_ids": sorted(set(preferred_network_ids)),
        }
        if position.accuracy is not None:
            payload["accuracy"] = position.accuracy
        if max_count is not None:
            payload["max_count"] = max_count

        url = f"{self._base_url}{_REFRESH_PATH}"
        try:
            if self._client is not None:
                response = await self._client.post(
                    url, json=payload, headers=self._headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        url, json=payload, headers=self._headers, timeout=self._timeout
                    )
        except httpx.HTTPError as exc:
            raise RegionRefreshError(f"Region refresh request failed: {exc}") from exc

        if response.status_code >= 400:
            raise RegionRefreshError(
                f"Region refresh returned HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise RegionRefreshError("Region refresh returned a non-JSON body") from exc

        result = parse_refresh_response(data)
        logger.debug(
            "Region refresh at (%.5f,%.5f) returned %d region(s)",
            position.latitude,
            position.longitude,
            len(result.regions),
        )
        return result
