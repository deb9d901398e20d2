"""
Shared pytest fixtures for region refresh unit tests.

Provides a settings object with test-friendly timeouts and a reference
position.  Builders and fakes live in ``factories``.  Nothing here touches
a real database or network.
"""

import pytest

from factories import SF
from region_refresh.core.config import Settings
from region_refresh.services.geoService import Position


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        redis_url="",
        provider_timeout_seconds=0.2,
        foursquare_api_key="",
        nominatim_enabled=True,
    )


@pytest.fixture
def sf_position() -> Position:
    return SF
