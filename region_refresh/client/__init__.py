"""
Region Refresh client package
=============================

Device-side pieces: the HTTP client for ``POST /region-refresh`` and the
``RegionMonitor`` state machine that reconciles OS geofences.

Typical usage::

    from region_refresh.client import (
        InMemoryRegionRegistry,
        RegionMonitor,
        RegionRefreshClient,
    )

    api = RegionRefreshClient("http://localhost:8000")
    monitor = RegionMonitor(api.refresh, InMemoryRegionRegistry(capacity=20))
    monitor.start()
    await monitor.update_position(Position(40.7128, -74.0060))
"""

from region_refresh.client.apiClient import (
    RegionRefreshClient,
    RegionRefreshError,
    parse_refresh_response,
)
from region_refresh.client.regionMonitor import (
    InMemoryRegionRegistry,
    MonitorState,
    RegionCapacityError,
    RegionMonitor,
    RegionRegistry,
    WatchedSet,
)

__all__ = [
    "InMemoryRegionRegistry",
    "MonitorState",
    "RegionCapacityError",
    "RegionMonitor",
    "RegionRefreshClient",
    "RegionRefreshError",
    "RegionRegistry",
    "WatchedSet",
    "parse_refresh_response",
]
