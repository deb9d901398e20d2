"""
Location Catalog Service
========================

Read-only access to the curated location catalog for the refresh path.

``SqlLocationCatalog.nearest`` answers "the N nearest active locations to a
point": a bounding-box filter on the indexed latitude/longitude columns
and an approximate distance ordering with a LIMIT keep the SQL bounded,
then the candidates are filtered and ordered exactly by haversine distance
in Python.  Any database failure is raised as ``CatalogUnavailableError``
because the catalog is the authoritative source and there is no fallback.
"""

from __future__ import annotations

import logging
import math
from typing import Protocol

from sqlalchemy import Float, case, cast, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from region_refresh.models.location import CatalogLocation
from region_refresh.services.geoService import (
    Location,
    LocationSource,
    Position,
    bounding_box,
    crosses_antimeridian,
    haversine_distance,
)

logger = logging.getLogger(__name__)

# Rows fetched per requested location before the exact haversine re-sort
CANDIDATE_OVERSAMPLE = 2


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class CatalogUnavailableError(Exception):
    """Raised when the location catalog cannot be queried."""

    def __init__(self, message: str = "Location catalog is unavailable.") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class LocationCatalog(Protocol):
    """Anything that can return the nearest catalog locations to a point."""

    async def nearest(self, position: Position, limit: int) -> list[Location]:
        ...


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

def catalog_location_id(row: CatalogLocation) -> str:
    """Stable public identifier for a catalog row."""
    return f"catalog:{row.id}"


def to_location(row: CatalogLocation) -> Location:
    """Convert an ORM row into an immutable ``Location``."""
    return Location(
        id=catalog_location_id(row),
        network_id=row.network_id,
        name=row.name,
        latitude=float(row.latitude),
        longitude=float(row.longitude),
        radius_meters=float(row.radius_meters),
        source=LocationSource.CATALOG,
        notes=row.notes or row.address,
    )


class SqlLocationCatalog:
    """Catalog backed by the ``catalog_locations`` table."""

    def __init__(self, db: AsyncSession, search_radius_km: float = 50.0) -> None:
        self._db = db
        self._search_radius_km = search_radius_km

    async def nearest(self, position: Position, limit: int) -> list[Location]:
        """Return up to ``limit`` active locations within the search radius,
        nearest first.

        Raises:
            CatalogUnavailableError: On any database error.
        """
        if limit <= 0:
            return []

        box = bounding_box(position.latitude, position.longitude, self._search_radius_km)
        min_lat, min_lon, max_lat, max_lon = box
        wraps = crosses_antimeridian(box)

        if wraps:
            in_longitude = or_(
                CatalogLocation.longitude >= min_lon,
                CatalogLocation.longitude <= max_lon,
            )
        else:
            in_longitude = CatalogLocation.longitude.between(min_lon, max_lon)

        stmt = (
            select(CatalogLocation)
            .where(
                CatalogLocation.is_active.is_(True),
                CatalogLocation.latitude.between(min_lat, max_lat),
                in_longitude,
            )
            .order_by(_approximate_distance(position, wraps), CatalogLocation.id)
            .limit(limit * CANDIDATE_OVERSAMPLE)
        )

        try:
            rows = (await self._db.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            logger.error("Catalog query failed: %s", exc, exc_info=True)
            raise CatalogUnavailableError() from exc

        radius_m = self._search_radius_km * 1000.0
        candidates: list[tuple[float, Location]] = []
        for row in rows:
            location = to_location(row)
            distance = haversine_distance(
                position.latitude, position.longitude, location.latitude, location.longitude
            )
            if distance <= radius_m:
                candidates.append((distance, location))
        candidates.sort(key=lambda item: (item[0], item[1].id))

        logger.debug(
            "Catalog returned %d of %d candidate(s) near (%.5f,%.5f)",
            min(limit, len(candidates)),
            len(rows),
            position.latitude,
            position.longitude,
        )
        return [location for _, location in candidates[:limit]]


def _approximate_distance(position: Position, wraps: bool):
    """Squared equirectangular distance in degrees, as a SQL expression.

    Good enough to pick the nearest candidates in the database; the exact
    haversine order is applied afterwards.  When the search box wraps the
    antimeridian, rows on the far side are shifted by 360 degrees.
    """
    latitude = cast(CatalogLocation.latitude, Float)
    longitude = cast(CatalogLocation.longitude, Float)
    if wraps and position.longitude >= 0:
        longitude = case((longitude < 0, longitude + 360.0), else_=longitude)
    elif wraps:
        longitude = case((longitude > 0, longitude - 360.0), else_=longitude)

    cos_lat = math.cos(math.radians(position.latitude))
    dlat = latitude - position.latitude
    dlon = (longitude - position.longitude) * cos_lat
    return dlat * dlat + dlon * dlon
