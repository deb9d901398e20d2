"""
Multi-Source Location Merger
============================

Combines candidate locations from the curated catalog and the external
place providers into one list with near-duplicate entries collapsed.

Two entries are the same physical place when they share a composite key:

  - latitude and longitude rounded to ``coordinate_precision`` decimal
    places (3 places is roughly 111 m at the equator), and
  - the normalised name (lower-cased, punctuation stripped, whitespace
    collapsed).

On a collision the entry from the higher-priority source replaces the
other.  Precision and source order are a ``MergePolicy`` injected by the
caller; the defaults come from settings.

The output does not depend on input order: it is sorted by source rank,
then id, before being returned.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Optional

from region_refresh.core.config import Settings, settings as default_settings
from region_refresh.services.geoService import (
    Location,
    LocationSource,
    is_valid_coordinate,
)

logger = logging.getLogger(__name__)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_COORDINATE_PRECISION: int = 3
DEFAULT_SOURCE_PRIORITY: tuple[LocationSource, ...] = (
    LocationSource.CATALOG,
    LocationSource.NOMINATIM,
    LocationSource.FOURSQUARE,
    LocationSource.SEARCH,
)

# Radius estimates for provider results, which carry categories but no
# curated radius.  First matching keyword wins.
DEFAULT_RADIUS_METERS: float = 100.0
_RADIUS_BY_CATEGORY: tuple[tuple[tuple[str, ...], float], ...] = (
    (("supermarket", "grocery"), 80.0),
    (("library",), 50.0),
    (("theme", "park"), 2000.0),
    (("mall", "shopping"), 150.0),
)

DedupKey = tuple[float, float, str]


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MergePolicy:
    """Tunable dedup policy: bucket precision and source priority order."""

    coordinate_precision: int = DEFAULT_COORDINATE_PRECISION
    source_priority: tuple[LocationSource, ...] = DEFAULT_SOURCE_PRIORITY

    def __post_init__(self) -> None:
        if self.coordinate_precision < 0:
            raise ValueError(
                f"coordinate_precision must be >= 0, got {self.coordinate_precision}"
            )
        if len(set(self.source_priority)) != len(self.source_priority):
            raise ValueError(
                f"source_priority contains duplicates: {self.source_priority}"
            )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "MergePolicy":
        """Build the policy from ``dedup_coordinate_precision`` and
        ``source_priority`` settings."""
        config = config or default_settings
        return cls(
            coordinate_precision=config.dedup_coordinate_precision,
            source_priority=tuple(LocationSource(s) for s in config.source_priority),
        )

    def source_rank(self, source: LocationSource) -> int:
        """Lower is better.  Sources missing from the policy rank last."""
        try:
            return self.source_priority.index(source)
        except ValueError:
            return len(self.source_priority)


# ---------------------------------------------------------------------------
# Key helpers
# ---------------------------------------------------------------------------


def normalize_name(name: str) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""
    lowered = (name or "").lower()
    stripped = _PUNCTUATION_RE.sub("", lowered)
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def dedup_key(location: Location, precision: int = DEFAULT_COORDINATE_PRECISION) -> DedupKey:
    """Composite bucket key for duplicate detection."""
    return (
        round(location.latitude, precision),
        round(location.longitude, precision),
        normalize_name(location.name),
    )


def estimate_radius(categories: Iterable[str]) -> float:
    """Estimate a geofence radius in metres from provider place categories."""
    lowered = [c.lower() for c in categories if c]
    for keywords, radius in _RADIUS_BY_CATEGORY:
        if any(keyword in category for category in lowered for keyword in keywords):
            return radius
    return DEFAULT_RADIUS_METERS


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_locations(
    *sources: Sequence[Location],
    policy: Optional[MergePolicy] = None,
) -> list[Location]:
    """Merge location lists from several sources into one deduplicated list.

    Args:
        *sources: One list per data source.  Lists may contain entries of
            any source; the entry's own ``source`` decides its priority.
        policy: Dedup policy.  Defaults to ``MergePolicy()``.

    Returns:
        Deduplicated locations sorted by (source rank, id).  Calling this
        again on its own output returns an equal list.
    """
    policy = policy or MergePolicy()
    winners: dict[DedupKey, Location] = {}
    dropped = 0

    for source_list in sources:
        for location in source_list:
            if not is_valid_coordinate(location.latitude, location.longitude):
                dropped += 1
                continue

            key = dedup_key(location, policy.coordinate_precision)
            existing = winners.get(key)
            if existing is None or _outranks(location, existing, policy):
                winners[key] = location

    if dropped:
        logger.debug("Dropped %d location(s) without valid coordinates", dropped)

    return sorted(
        winners.values(),
        key=lambda loc: (
            policy.source_rank(loc.source),
            loc.id,
            dedup_key(loc, policy.coordinate_precision),
        ),
    )


def _outranks(candidate: Location, existing: Location, policy: MergePolicy) -> bool:
    """True if ``candidate`` should replace ``existing`` for the same key.

    Equal source ranks fall back to the smaller id so the winner does not
    depend on which list was read first.
    """
    candidate_rank = policy.source_rank(candidate.source)
    existing_rank = policy.source_rank(existing.source)
    if candidate_rank != existing_rank:
        return candidate_rank < existing_rank
    return candidate.id < existing.id
