#!/usr/bin/env python3
"""
Simulate a device walking across town with a region monitor attached.

Usage:
    python3 scripts/simulate_walk.py [start_lat start_lon end_lat end_lon]

The script:
  1. Starts a ``RegionMonitor`` backed by an in-memory OS registry.
  2. Moves the device in a straight line from start to end over
     ``NUM_STEPS`` fixes, one every ``STEP_INTERVAL_S`` seconds.
  3. Prints each refresh and the regions added and released, so the
     distance trigger and capacity bound can be watched live.

The server URL comes from ``REGION_API_URL`` (default
http://localhost:8000); preferred networks from ``PREFERRED_NETWORKS``
(comma separated).
"""

import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from region_refresh.client import (  # noqa: E402
    InMemoryRegionRegistry,
    RegionMonitor,
    RegionRefreshClient,
)
from region_refresh.services.geoService import Position  # noqa: E402

# ─── Config ──────────────────────────────────────────────────────────────────

NUM_STEPS = 30
STEP_INTERVAL_S = 1.0
DEFAULT_ROUTE = (40.7128, -74.0060, 40.7580, -73.9855)  # Lower Manhattan -> Times Square


# ─── Helpers ─────────────────────────────────────────────────────────────────

def interpolate(start: tuple[float, float], end: tuple[float, float], t: float):
    """Linear interpolation between two (lat, lng) points."""
    return (
        start[0] + (end[0] - start[0]) * t,
        start[1] + (end[1] - start[1]) * t,
    )


class PrintingRegistry(InMemoryRegionRegistry):
    def start_monitoring(self, region) -> None:
        super().start_monitoring(region)
        print(f"   + {region.name} ({region.distance_meters:.0f} m, tier {region.priority_tier})")

    def stop_monitoring(self, region_id: str) -> None:
        super().stop_monitoring(region_id)
        print(f"   - {region_id}")


# ─── Main ────────────────────────────────────────────────────────────────────

async def main():
    if len(sys.argv) == 5:
        route = tuple(float(v) for v in sys.argv[1:5])
    else:
        route = DEFAULT_ROUTE
    start, end = (route[0], route[1]), (route[2], route[3])

    base_url = os.getenv("REGION_API_URL", "http://localhost:8000")
    preferred = {n.strip() for n in os.getenv("PREFERRED_NETWORKS", "").split(",") if n.strip()}

    api = RegionRefreshClient(base_url)
    registry = PrintingRegistry(capacity=20)
    monitor = RegionMonitor(api.refresh, registry, preferred_networks=lambda: preferred)
    monitor.start()

    print(f"Walking {start} -> {end} in {NUM_STEPS} steps against {base_url}")

    for step in range(NUM_STEPS + 1):
        lat, lng = interpolate(start, end, step / NUM_STEPS)
        started = await monitor.update_position(Position(lat, lng))
        if started:
            print(f"[{step:02d}] ({lat:.5f}, {lng:.5f}) refreshing...")
            await monitor.wait_for_refresh()
            print(f"     state={monitor.state.value} watched={len(registry.regions)}")
        await asyncio.sleep(STEP_INTERVAL_S)

    await monitor.stop()
    print(f"Done. Peak concurrent regions: {registry.peak}")


if __name__ == "__main__":
    asyncio.run(main())
