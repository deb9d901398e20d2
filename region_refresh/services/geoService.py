"""
Geo Service
===========

Geographic primitives shared by the catalog, the place providers, the
ranking engine and the client monitor.

Uses the haversine formula for great-circle distance between two points
on Earth's surface.  All distances are in **metres** because geofence
radii and refresh thresholds are expressed in metres.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Optional

# Earth's mean radius in metres
EARTH_RADIUS_M: float = 6_371_000.0

# Metres per degree of latitude on the same sphere as haversine_distance
METERS_PER_DEGREE: float = EARTH_RADIUS_M * math.pi / 180.0


class InvalidPositionError(ValueError):
    """Raised when a latitude/longitude pair is outside the valid range."""

    def __init__(self, latitude: float, longitude: float) -> None:
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(
            f"Invalid position ({latitude}, {longitude}): latitude must be in "
            f"[-90, 90] and longitude in [-180, 180]."
        )


class LocationSource(str, enum.Enum):
    """Where a location came from.  Order of declaration is the default
    merge priority (first wins)."""

    CATALOG = "catalog"
    NOMINATIM = "nominatim"
    FOURSQUARE = "foursquare"
    SEARCH = "search"


@dataclass(frozen=True)
class Position:
    """A device position as reported by the client."""

    latitude: float
    longitude: float
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class Location:
    """A physical place that can be watched as a geofence.

    Produced by a single source and never mutated afterwards.
    """

    id: str
    network_id: Optional[str]
    name: str
    latitude: float
    longitude: float
    radius_meters: float
    source: LocationSource
    notes: Optional[str] = None
    categories: tuple[str, ...] = field(default=(), compare=False)


def is_valid_coordinate(latitude: object, longitude: object) -> bool:
    """Return True if both values are finite numbers within WGS84 range."""
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        return False
    if not isinstance(latitude, (int, float)) or not isinstance(longitude, (int, float)):
        return False
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def validate_position(latitude: float, longitude: float) -> Position:
    """Validate a coordinate pair and return it as a ``Position``.

    Raises:
        InvalidPositionError: If either coordinate is out of range or not
            a finite number.
    """
    if not is_valid_coordinate(latitude, longitude):
        raise InvalidPositionError(latitude, longitude)
    return Position(latitude=float(latitude), longitude=float(longitude))


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate the great-circle distance between two points using the
    haversine formula.

    Args:
        lat1: Latitude of point 1 in decimal degrees.
        lon1: Longitude of point 1 in decimal degrees.
        lat2: Latitude of point 2 in decimal degrees.
        lon2: Longitude of point 2 in decimal degrees.

    Returns:
        Distance in metres.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def distance_between(a: Position, b: Position) -> float:
    """Haversine distance in metres between two positions."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def bounding_box(
    latitude: float,
    longitude: float,
    radius_km: float,
) -> tuple[float, float, float, float]:
    """Return ``(min_lat, min_lon, max_lat, max_lon)`` enclosing a circle.

    Used as a cheap index-friendly pre-filter before exact haversine
    ordering.  The longitude span is widened with ``1/cos(lat)``.

    Longitudes wrap at the antimeridian: when the circle crosses it,
    ``min_lon > max_lon`` and the box covers ``lon >= min_lon`` OR
    ``lon <= max_lon`` (see ``crosses_antimeridian``).  A circle that
    reaches a pole covers every longitude.
    """
    radius_m = radius_km * 1000.0
    dlat = radius_m / METERS_PER_DEGREE
    min_lat = latitude - dlat
    max_lat = latitude + dlat
    if min_lat <= -90.0 or max_lat >= 90.0:
        return (max(-90.0, min_lat), -180.0, min(90.0, max_lat), 180.0)

    # Widest parallel inside the box sets the longitude span
    widest = max(abs(min_lat), abs(max_lat))
    dlon = radius_m / (METERS_PER_DEGREE * math.cos(math.radians(widest)))
    if dlon >= 180.0:
        return (min_lat, -180.0, max_lat, 180.0)

    return (
        min_lat,
        _wrap_longitude(longitude - dlon),
        max_lat,
        _wrap_longitude(longitude + dlon),
    )


def crosses_antimeridian(box: tuple[float, float, float, float]) -> bool:
    """True if a ``bounding_box`` result wraps across longitude +/-180."""
    return box[1] > box[3]


def _wrap_longitude(longitude: float) -> float:
    if longitude > 180.0:
        return longitude - 360.0
    if longitude < -180.0:
        return longitude + 360.0
    return longitude
