"""
Client Region Monitor
=====================

Device-side state machine that keeps the OS-level geofence set in sync
with the server's region refresh results without ever exceeding the
platform's capacity ceiling.

State machine overview::

    idle --(first fix)--> refreshing --(success)--> watching
    watching --(moved > refresh distance | TTL elapsed)--> refreshing
    refreshing --(failure)--> watching   (previous set kept; idle if none)
    (any state) --(stop)--> idle         (all OS regions released)

Only one refresh is ever in flight.  Fixes that arrive meanwhile are kept
as the latest position and evaluated once the call completes.  A result
that arrives after ``stop()`` is discarded.

Reconciliation is a set difference between the currently registered ids
and the new result: shared ids are untouched, stale ids are released
first, then new ids are registered while below capacity.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional, Protocol

from region_refresh.algorithms.regionRanking import (
    DEFAULT_CAPACITY_CEILING,
    RankedRegion,
    RefreshResult,
)
from region_refresh.client.apiClient import RegionRefreshError
from region_refresh.services.geoService import Position, distance_between

logger = logging.getLogger(__name__)

RefreshFetcher = Callable[[Position, frozenset[str], int], Awaitable[RefreshResult]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MonitorState(str, enum.Enum):
    IDLE = "idle"
    WATCHING = "watching"
    REFRESHING = "refreshing"


class RegionCapacityError(RuntimeError):
    """Raised by a registry asked to hold more regions than it can."""


# ---------------------------------------------------------------------------
# OS region registry
# ---------------------------------------------------------------------------

class RegionRegistry(Protocol):
    """The device's geofence API (CoreLocation, Android GeofencingClient)."""

    capacity: int

    def monitored_ids(self) -> set[str]:
        ...

    def start_monitoring(self, region: RankedRegion) -> None:
        ...

    def stop_monitoring(self, region_id: str) -> None:
        ...


class InMemoryRegionRegistry:
    """Registry that records regions in a dict and enforces ``capacity``.

    Used by the walk simulator and tests; ``peak`` records the largest
    number of regions ever held at once.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY_CEILING) -> None:
        self.capacity = capacity
        self.regions: dict[str, RankedRegion] = {}
        self.peak = 0
        self.started: list[str] = []
        self.stopped: list[str] = []

    def monitored_ids(self) -> set[str]:
        return set(self.regions)

    def start_monitoring(self, region: RankedRegion) -> None:
        if region.id not in self.regions and len(self.regions) >= self.capacity:
            raise RegionCapacityError(
                f"Cannot monitor {region.id}: {self.capacity} regions already active"
            )
        self.regions[region.id] = region
        self.started.append(region.id)
        self.peak = max(self.peak, len(self.regions))

    def stop_monitoring(self, region_id: str) -> None:
        if self.regions.pop(region_id, None) is not None:
            self.stopped.append(region_id)


# ---------------------------------------------------------------------------
# Watched set
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WatchedSet:
    """Regions currently registered plus the refresh they came from."""

    regions: tuple[RankedRegion, ...]
    anchor: Position
    refreshed_at: datetime
    refresh_after_distance_meters: float
    cache_ttl_seconds: int

    @property
    def region_ids(self) -> frozenset[str]:
        return frozenset(r.id for r in self.regions)

    def __len__(self) -> int:
        return len(self.regions)

    def distance_from_anchor(self, position: Position) -> float:
        return distance_between(self.anchor, position)

    def is_expired(self, now: datetime) -> bool:
        return (now - self.refreshed_at).total_seconds() > self.cache_ttl_seconds


# ---------------------------------------------------------------------------
# Monitor
# ---------------------------------------------------------------------------

class RegionMonitor:
    """Single-owner state machine driving region refreshes for one device."""

    def __init__(
        self,
        fetch: RefreshFetcher,
        registry: RegionRegistry,
        *,
        capacity: Optional[int] = None,
        preferred_networks: Callable[[], Iterable[str]] = lambda: (),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fetch = fetch
        self._registry = registry
        self._capacity = min(
            capacity or registry.capacity,
            registry.capacity,
        )
        self._preferred_networks = preferred_networks
        self._clock = clock

        self._state = MonitorState.IDLE
        self._active = False
        self._watched: Optional[WatchedSet] = None
        self._latest_position: Optional[Position] = None
        self._inflight: Optional[asyncio.Task[None]] = None
        self._generation = 0
        self._reconcile_lock = asyncio.Lock()

    # -- Read-only views ---------------------------------------------------

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def watched(self) -> Optional[WatchedSet]:
        return self._watched

    @property
    def latest_position(self) -> Optional[Position]:
        return self._latest_position

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_active(self) -> bool:
        return self._active

    # -- Lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Begin accepting position fixes.  Stays idle until the first fix."""
        self._active = True
        logger.info("Region monitor started (capacity=%d)", self._capacity)

    async def stop(self) -> None:
        """Release every OS region and return to idle.

        An in-flight refresh is not awaited; its result is discarded when
        it arrives.
        """
        self._active = False
        self._generation += 1
        self._inflight = None

        async with self._reconcile_lock:
            released = sorted(self._registry.monitored_ids())
            for region_id in released:
                self._registry.stop_monitoring(region_id)
            self._watched = None
            self._latest_position = None
            self._state = MonitorState.IDLE

        logger.info("Region monitor stopped; released %d region(s)", len(released))

    # -- Triggers ----------------------------------------------------------

    def should_refresh(self, position: Position, now: Optional[datetime] = None) -> bool:
        """True when there is no watched set, the device moved farther than
        the refresh distance, or the watched set's TTL elapsed."""
        watched = self._watched
        if watched is None:
            return True
        if watched.distance_from_anchor(position) > watched.refresh_after_distance_meters:
            return True
        return watched.is_expired(now or self._clock())

    async def update_position(self, position: Position) -> bool:
        """Record a new fix and start a refresh if one is warranted.

        Returns:
            True if this call started a refresh.
        """
        if not self._active:
            return False

        self._latest_position = position

        if self._state is MonitorState.REFRESHING:
            # Coalesced into the in-flight call
            return False
        if not self.should_refresh(position):
            return False

        self._begin_refresh(position)
        return True

    async def force_refresh(self) -> bool:
        """Refresh now with the latest fix, regardless of the triggers."""
        if not self._active or self._latest_position is None:
            return False
        if self._state is MonitorState.REFRESHING:
            return False
        self._begin_refresh(self._latest_position)
        return True

    async def wait_for_refresh(self) -> None:
        """Wait until no refresh is in flight."""
        while self._inflight is not None:
            await asyncio.shield(self._inflight)

    # -- Internals ---------------------------------------------------------

    def _begin_refresh(self, position: Position) -> None:
        self._state = MonitorState.REFRESHING
        self._inflight = asyncio.create_task(
            self._run_refresh(position, self._generation)
        )

    async def _run_refresh(self, position: Position, generation: int) -> None:
        try:
            while True:
                try:
                    preferred = frozenset(self._preferred_networks())
                    result = await self._fetch(position, preferred, self._capacity)
                except RegionRefreshError as exc:
                    self._on_refresh_failed(generation, exc)
                    return
                except Exception as exc:
                    logger.error("Unexpected region refresh failure: %s", exc, exc_info=True)
                    self._on_refresh_failed(generation, exc)
                    return

                async with self._reconcile_lock:
                    # stop() may have run while the call or the lock was pending
                    if generation != self._generation:
                        logger.info("Discarding region refresh result that arrived after stop")
                        return
                    try:
                        self._reconcile(result, position)
                    except Exception as exc:
                        logger.error("Region reconciliation failed: %s", exc, exc_info=True)
                        self._prune_watched()
                        self._on_refresh_failed(generation, exc)
                        return
                    self._state = MonitorState.WATCHING

                latest = self._latest_position
                if latest is None or latest == position or not self.should_refresh(latest):
                    return

                # Moved far enough while the call was in flight
                position = latest
                self._state = MonitorState.REFRESHING
        finally:
            if generation == self._generation:
                self._inflight = None

    def _on_refresh_failed(self, generation: int, exc: Exception) -> None:
        if generation != self._generation:
            return
        logger.warning(
            "Region refresh failed; keeping %d previously watched region(s): %s",
            len(self._watched) if self._watched else 0,
            exc,
        )
        self._state = MonitorState.WATCHING if self._watched else MonitorState.IDLE

    def _prune_watched(self) -> None:
        """Drop watched regions the registry no longer reports after a
        partial reconcile.  The next reconcile diffs against the registry
        itself, so regions left registered are picked up there."""
        if self._watched is None:
            return
        try:
            monitored = self._registry.monitored_ids()
        except Exception as exc:
            logger.warning("Could not read monitored regions; forgetting watched set: %s", exc)
            self._watched = None
            return
        regions = tuple(r for r in self._watched.regions if r.id in monitored)
        self._watched = replace(self._watched, regions=regions) if regions else None

    def _reconcile(self, result: RefreshResult, anchor: Position) -> None:
        """Swap the OS region set to match ``result`` without exceeding
        capacity at any point."""
        desired: list[RankedRegion] = []
        seen: set[str] = set()
        for region in result.regions:
            if region.id in seen:
                continue
            seen.add(region.id)
            desired.append(region)
            if len(desired) >= self._capacity:
                break

        current = self._registry.monitored_ids()
        to_release = sorted(current - seen)
        to_add = [r for r in desired if r.id not in current]

        for region_id in to_release:
            self._registry.stop_monitoring(region_id)

        active = len(current) - len(to_release)
        for region in to_add:
            if active >= self._capacity:
                logger.warning(
                    "Region capacity %d reached; skipping %s", self._capacity, region.id
                )
                continue
            self._registry.start_monitoring(region)
            active += 1

        monitored = self._registry.monitored_ids()
        self._watched = WatchedSet(
            regions=tuple(r for r in desired if r.id in monitored),
            anchor=anchor,
            refreshed_at=self._clock(),
            refresh_after_distance_meters=result.refresh_after_distance_meters,
            cache_ttl_seconds=result.cache_ttl_seconds,
        )

        logger.info(
            "Reconciled regions: kept=%d released=%d added=%d",
            len(desired) - len(to_add),
            len(to_release),
            len(to_add),
        )
