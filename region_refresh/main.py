"""Region Refresh API -- Main Application Entry Point

Creates the FastAPI application, configures logging and CORS middleware,
and registers the API route modules under the /api/v1 prefix.

Run with::

    uvicorn region_refresh.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from region_refresh.core.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Startup:
      - Build the shared place providers (cache + rate limiters).

    Shutdown:
      - Close the places cache Redis client and dispose of the DB engine.
    """
    from region_refresh.api.deps import engine, get_place_providers, get_places_cache

    providers = get_place_providers()
    logger.info(
        "Region refresh API starting with providers: %s",
        [getattr(p, "name", type(p).__name__) for p in providers],
    )

    yield

    await get_places_cache().close()
    await engine.dispose()


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health():
    """Lightweight health check for load balancers and readiness probes."""
    return {"status": "ok", "version": settings.app_version}


# ---------------------------------------------------------------------------
# Register API route modules
# ---------------------------------------------------------------------------

from region_refresh.api.routes import regions  # noqa: E402

app.include_router(regions.router, prefix=settings.api_v1_prefix)
