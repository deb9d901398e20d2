"""
E2E tests for the region refresh and nearby-locations endpoints.

Runs the real route -> service -> SQL catalog path against the seeded
in-memory database, with external providers swapped for fakes.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from factories import (
    ACME_MARKET_ID,
    ACME_OUTLET_ID,
    CLOSED_BRANCH_ID,
    MISSION_BRANCH_ID,
    NYC_BRANCH_ID,
    SF,
    FakeCatalog,
    StaticProvider,
    make_location,
)
from region_refresh.services.geoService import LocationSource

REFRESH_URL = "/api/v1/region-refresh"


def _payload(**overrides):
    body = {"latitude": SF.latitude, "longitude": SF.longitude}
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_refresh_returns_nearest_catalog_regions(client: AsyncClient):
    response = await client.post(REFRESH_URL, json=_payload(max_count=2))
    assert response.status_code == 200
    data = response.json()

    assert [r["id"] for r in data["regions"]] == [
        f"catalog:{MISSION_BRANCH_ID}",
        f"catalog:{ACME_MARKET_ID}",
    ]
    first = data["regions"][0]
    assert first["network_id"] == "sfpl"
    assert first["radius_meters"] == 50
    assert first["priority_tier"] == 2
    assert first["source"] == "catalog"
    assert first["distance_meters"] == pytest.approx(50.0, abs=0.5)

    assert data["refresh_after_distance_meters"] == 500.0
    assert data["cache_ttl_seconds"] == 21600
    assert "server_time" in data


@pytest.mark.asyncio
async def test_refresh_excludes_inactive_and_distant(client: AsyncClient):
    response = await client.post(REFRESH_URL, json=_payload())
    ids = [r["id"] for r in response.json()["regions"]]
    assert ids == [
        f"catalog:{MISSION_BRANCH_ID}",
        f"catalog:{ACME_MARKET_ID}",
        f"catalog:{ACME_OUTLET_ID}",
    ]
    assert f"catalog:{CLOSED_BRANCH_ID}" not in ids
    assert f"catalog:{NYC_BRANCH_ID}" not in ids


@pytest.mark.asyncio
async def test_preferred_network_ranks_first(client: AsyncClient):
    response = await client.post(
        REFRESH_URL, json=_payload(preferred_network_ids=["acme"])
    )
    regions = response.json()["regions"]
    assert [r["id"] for r in regions] == [
        f"catalog:{ACME_MARKET_ID}",
        f"catalog:{ACME_OUTLET_ID}",
        f"catalog:{MISSION_BRANCH_ID}",
    ]
    assert [r["priority_tier"] for r in regions] == [1, 1, 2]


@pytest.mark.asyncio
async def test_provider_results_are_merged_and_deduplicated(client: AsyncClient, place_providers):
    place_providers.append(
        StaticProvider(
            "nominatim",
            [
                make_location(
                    "nominatim:1", 52, name="Mission Branch Library", source=LocationSource.NOMINATIM
                ),
                make_location(
                    "nominatim:2", 250, name="Valencia Grocery", source=LocationSource.NOMINATIM
                ),
            ],
        )
    )
    response = await client.post(REFRESH_URL, json=_payload())
    assert response.status_code == 200
    ids = [r["id"] for r in response.json()["regions"]]
    assert ids[:3] == [f"catalog:{MISSION_BRANCH_ID}", "nominatim:2", f"catalog:{ACME_MARKET_ID}"]
    assert "nominatim:1" not in ids


@pytest.mark.asyncio
async def test_failing_provider_does_not_fail_request(client: AsyncClient, place_providers):
    place_providers.append(StaticProvider("broken", [], error=RuntimeError("upstream down")))
    response = await client.post(REFRESH_URL, json=_payload(max_count=1))
    assert response.status_code == 200
    assert len(response.json()["regions"]) == 1


@pytest.mark.asyncio
async def test_repeated_calls_are_identical(client: AsyncClient):
    first = await client.post(REFRESH_URL, json=_payload(preferred_network_ids=["sfpl"]))
    second = await client.post(REFRESH_URL, json=_payload(preferred_network_ids=["sfpl"]))
    assert first.json()["regions"] == second.json()["regions"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"latitude": 95.0},
        {"longitude": -181.0},
        {"max_count": 0},
        {"max_count": 21},
        {"accuracy": -1.0},
    ],
)
async def test_invalid_input_returns_422(client: AsyncClient, overrides):
    response = await client.post(REFRESH_URL, json=_payload(**overrides))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_missing_position_returns_422(client: AsyncClient):
    response = await client.post(REFRESH_URL, json={"max_count": 5})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_catalog_unavailable_returns_503(test_app):
    from region_refresh.api.deps import get_region_refresh_service
    from region_refresh.services.regionRefreshService import RegionRefreshService

    test_app.dependency_overrides[get_region_refresh_service] = lambda: RegionRefreshService(
        FakeCatalog([], fail=True)
    )
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        refresh = await ac.post(REFRESH_URL, json=_payload())
        nearby = await ac.get(
            "/api/v1/locations/nearby",
            params={"latitude": SF.latitude, "longitude": SF.longitude},
        )

    assert refresh.status_code == 503
    assert nearby.status_code == 503


# ---------------------------------------------------------------------------
# GET /locations/nearby
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_nearby_lists_catalog_locations(client: AsyncClient, place_providers):
    place_providers.append(StaticProvider("nominatim", [make_location("nominatim:9", 1)]))
    response = await client.get(
        "/api/v1/locations/nearby",
        params={"latitude": SF.latitude, "longitude": SF.longitude, "limit": 2},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert [loc["id"] for loc in data["locations"]] == [
        f"catalog:{MISSION_BRANCH_ID}",
        f"catalog:{ACME_MARKET_ID}",
    ]
    assert data["locations"][0]["notes"] == "Mission Branch Library street address"


@pytest.mark.asyncio
async def test_nearby_validates_query(client: AsyncClient):
    response = await client.get(
        "/api/v1/locations/nearby", params={"latitude": 91, "longitude": 0}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_health():
    from region_refresh.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
