"""
E2E test fixtures for the region refresh backend.

Provides:
- An async SQLite database (in-memory) created fresh for each test
- Pre-populated catalog seed data: two networks and their branches
- An in-process FastAPI test app with the region routes registered
- httpx AsyncClient wired via ASGI transport (no network needed)

External place providers are replaced through the ``get_place_providers``
dependency so the full route -> service -> DB flow is exercised offline.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from factories import (
    ACME_MARKET_ID,
    ACME_OUTLET_ID,
    CLOSED_BRANCH_ID,
    GROCERY_NETWORK_ID,
    LIBRARY_NETWORK_ID,
    MISSION_BRANCH_ID,
    NYC_BRANCH_ID,
    SF,
    offset_north,
)
from region_refresh.models import Base, CatalogLocation, Network
from region_refresh.services.geoService import Position

# ---------------------------------------------------------------------------
# Async engine + session (in-memory SQLite)
# ---------------------------------------------------------------------------

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def _test_engine():
    """One in-memory database per test; StaticPool keeps it on a single
    connection."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)

    # SQLite does not enforce foreign keys by default
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_fk(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(_test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=_test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


def _branch(
    location_id: uuid.UUID,
    network_id: str,
    name: str,
    meters_north: float,
    *,
    radius: int = 100,
    is_active: bool = True,
    origin=SF,
) -> CatalogLocation:
    point = offset_north(origin, meters_north)
    return CatalogLocation(
        id=location_id,
        network_id=network_id,
        name=name,
        address=f"{name} street address",
        latitude=Decimal(f"{point.latitude:.7f}"),
        longitude=Decimal(f"{point.longitude:.7f}"),
        radius_meters=radius,
        is_active=is_active,
    )


async def _seed_data(db: AsyncSession) -> None:
    db.add_all(
        [
            Network(id=LIBRARY_NETWORK_ID, name="San Francisco Public Library", category="library"),
            Network(id=GROCERY_NETWORK_ID, name="Acme Markets", category="grocery"),
        ]
    )
    await db.flush()

    db.add_all(
        [
            _branch(MISSION_BRANCH_ID, LIBRARY_NETWORK_ID, "Mission Branch Library", 50, radius=50),
            _branch(ACME_MARKET_ID, GROCERY_NETWORK_ID, "Acme Market Valencia", 400, radius=80),
            _branch(ACME_OUTLET_ID, GROCERY_NETWORK_ID, "Acme Outlet", 5000, radius=80),
            _branch(CLOSED_BRANCH_ID, LIBRARY_NETWORK_ID, "Closed Branch", 10, is_active=False),
            _branch(
                NYC_BRANCH_ID,
                LIBRARY_NETWORK_ID,
                "Far Away Branch",
                0,
                origin=Position(40.7128, -74.0060),
            ),
        ]
    )
    await db.commit()


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """A database session with seed data already inserted."""
    await _seed_data(db_session)
    return db_session


# ---------------------------------------------------------------------------
# FastAPI test application
# ---------------------------------------------------------------------------


def _create_test_app(db_session_override: AsyncSession, providers: list):
    """Build a FastAPI app with the region routes registered and the DB and
    provider dependencies overridden."""
    from fastapi import FastAPI

    from region_refresh.api.deps import get_db, get_place_providers
    from region_refresh.api.routes.regions import router as regions_router

    app = FastAPI(title="Region Refresh Test")

    async def _override_get_db():
        yield db_session_override

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_place_providers] = lambda: providers

    app.include_router(regions_router, prefix="/api/v1")

    return app


@pytest.fixture
def place_providers() -> list:
    """Providers used by the test app.  Tests append fakes to this list."""
    return []


@pytest_asyncio.fixture
async def test_app(seeded_db: AsyncSession, place_providers: list):
    return _create_test_app(seeded_db, place_providers)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the test app via ASGI transport."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
