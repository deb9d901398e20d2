"""
Places result cache
===================

Caches provider search results keyed by provider, query, rounded position
and limit, so repeated refreshes from the same neighbourhood do not hit
rate-limited external APIs.

Two backends:

  - **Redis** (``settings.redis_url`` set): ``SETEX`` with the TTL; shared
    across workers.
  - **In-process**: a bounded ``OrderedDict`` of ``CacheEntry`` records,
    each carrying its own ``expires_at`` timestamp.  Expired entries are
    dropped on read and by ``cleanup()``.

Redis errors are logged and the call falls back to the in-process store,
so a cache outage never fails a provider lookup.
"""

from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Final, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from region_refresh.integrations.places.base import (
    location_from_dict,
    location_to_dict,
)
from region_refresh.services.geoService import Location

logger = logging.getLogger(__name__)

_CACHE_MAX_SIZE: Final[int] = 1000
_KEY_PREFIX: Final[str] = "regions:places"


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with an absolute expiry time (clock seconds)."""

    value: tuple[Location, ...]
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class PlacesCache:
    """TTL cache for provider results with optional Redis backing."""

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        max_size: int = _CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis_client
        self._max_size = max_size
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()

    @classmethod
    def from_url(cls, redis_url: str) -> "PlacesCache":
        """Redis-backed cache when a URL is configured, in-process otherwise."""
        if not redis_url:
            return cls()
        return cls(redis_client=aioredis.from_url(redis_url, decode_responses=True))

    @staticmethod
    def make_key(
        provider: str,
        query: str,
        latitude: float,
        longitude: float,
        limit: int,
    ) -> str:
        # 3 decimal places keeps nearby fixes on the same entry
        return (
            f"{_KEY_PREFIX}:{provider}:{query.lower()}:"
            f"{latitude:.3f}:{longitude:.3f}:{limit}"
        )

    async def get(self, key: str) -> Optional[list[Location]]:
        if self._redis is not None:
            try:
                raw = await self._redis.get(key)
            except RedisError as exc:
                logger.warning("Places cache get failed for %s: %s", key, exc)
            else:
                if raw is None:
                    return None
                return [location_from_dict(item) for item in json.loads(raw)]

        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._store[key]
            return None
        self._store.move_to_end(key)
        return list(entry.value)

    async def set(self, key: str, locations: list[Location], ttl_seconds: int) -> None:
        if self._redis is not None:
            payload: list[dict[str, Any]] = [location_to_dict(loc) for loc in locations]
            try:
                await self._redis.setex(key, ttl_seconds, json.dumps(payload))
                return
            except RedisError as exc:
                logger.warning("Places cache set failed for %s: %s", key, exc)

        if key in self._store:
            self._store.move_to_end(key)
        elif len(self._store) >= self._max_size:
            self._store.popitem(last=False)  # evict oldest
        self._store[key] = CacheEntry(
            value=tuple(locations),
            expires_at=self._clock() + ttl_seconds,
        )

    async def delete(self, key: str) -> None:
        if self._redis is not None:
            try:
                await self._redis.delete(key)
            except RedisError as exc:
                logger.warning("Places cache delete failed for %s: %s", key, exc)
        self._store.pop(key, None)

    def cleanup(self) -> int:
        """Remove expired in-process entries.  Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            del self._store[key]
        return len(expired)

    def clear(self) -> None:
        self._store.clear()

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()

    @property
    def size(self) -> int:
        return len(self._store)
