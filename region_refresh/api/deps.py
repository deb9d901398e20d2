"""
Shared FastAPI dependencies for the region refresh backend.

Provides the async database session dependency, the process-wide place
providers (so their rate limiters and cache are shared across requests),
and the per-request ``RegionRefreshService``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from region_refresh.core.config import settings
from region_refresh.integrations.places import (
    PlaceProvider,
    PlacesCache,
    build_place_providers,
)
from region_refresh.services.locationCatalog import SqlLocationCatalog
from region_refresh.services.regionRefreshService import RegionRefreshService

# ---------------------------------------------------------------------------
# Async engine & session factory
# ---------------------------------------------------------------------------
# The engine is created once at module import time.  The session factory
# produces lightweight ``AsyncSession`` instances that are scoped to a single
# request via the ``get_db`` dependency below.
# ---------------------------------------------------------------------------

engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session that is closed after the request.

    The refresh path only reads, so nothing is committed here.
    """
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


DBSession = Annotated[AsyncSession, Depends(get_db)]


# ---------------------------------------------------------------------------
# Place providers (process-wide)
# ---------------------------------------------------------------------------

_places_cache: Optional[PlacesCache] = None
_place_providers: Optional[list[PlaceProvider]] = None


def get_places_cache() -> PlacesCache:
    """Return the shared places cache (Redis when configured)."""
    global _places_cache
    if _places_cache is None:
        _places_cache = PlacesCache.from_url(settings.redis_url)
    return _places_cache


def get_place_providers() -> list[PlaceProvider]:
    """Return the shared provider list, building it on first use."""
    global _place_providers
    if _place_providers is None:
        _place_providers = build_place_providers(settings, cache=get_places_cache())
    return _place_providers


PlaceProviders = Annotated[list[PlaceProvider], Depends(get_place_providers)]


# ---------------------------------------------------------------------------
# Region refresh service
# ---------------------------------------------------------------------------

def get_region_refresh_service(
    db: DBSession,
    providers: PlaceProviders,
) -> RegionRefreshService:
    """Build a refresh service bound to this request's DB session."""
    catalog = SqlLocationCatalog(db, search_radius_km=settings.catalog_search_radius_km)
    return RegionRefreshService(catalog, providers, config=settings)


RefreshService = Annotated[RegionRefreshService, Depends(get_region_refresh_service)]
