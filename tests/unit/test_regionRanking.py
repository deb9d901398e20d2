"""
Unit tests for the region ranking algorithm and distance primitives.

Covers haversine distance, coordinate validation, priority tiering, the
capacity bound on ``max_count`` and the tier-then-distance ordering.
"""

import math

import pytest

from factories import SF, make_location, offset_north
from region_refresh.algorithms.regionRanking import (
    PRIORITY_OTHER,
    PRIORITY_PREFERRED,
    InvalidMaxCountError,
    priority_tier,
    rank_regions,
    validate_max_count,
)
from region_refresh.services.geoService import (
    EARTH_RADIUS_M,
    InvalidPositionError,
    Position,
    bounding_box,
    crosses_antimeridian,
    haversine_distance,
    is_valid_coordinate,
    validate_position,
)


# ---------------------------------------------------------------------------
# Distance primitives
# ---------------------------------------------------------------------------


class TestHaversineDistance:

    def test_same_point_is_zero(self):
        assert haversine_distance(37.7749, -122.4194, 37.7749, -122.4194) == 0.0

    def test_san_francisco_to_los_angeles(self):
        d = haversine_distance(37.7749, -122.4194, 34.0522, -118.2437)
        assert 555_000 < d < 565_000

    def test_one_degree_latitude(self):
        d = haversine_distance(0.0, 0.0, 1.0, 0.0)
        assert d == pytest.approx(6_371_000 * math.pi / 180, rel=1e-9)

    def test_symmetric(self):
        a = haversine_distance(40.7128, -74.0060, 51.5074, -0.1278)
        b = haversine_distance(51.5074, -0.1278, 40.7128, -74.0060)
        assert a == pytest.approx(b)

    def test_offset_helper_is_exact(self):
        p = offset_north(SF, 400.0)
        assert haversine_distance(SF.latitude, SF.longitude, p.latitude, p.longitude) == (
            pytest.approx(400.0, abs=1e-6)
        )


class TestCoordinateValidation:

    @pytest.mark.parametrize(
        "lat,lon",
        [(0, 0), (90, 180), (-90, -180), (37.7749, -122.4194)],
    )
    def test_valid(self, lat, lon):
        assert is_valid_coordinate(lat, lon) is True
        assert validate_position(lat, lon) == Position(float(lat), float(lon))

    @pytest.mark.parametrize(
        "lat,lon",
        [
            (90.0001, 0),
            (-91, 0),
            (0, 180.5),
            (0, -181),
            (float("nan"), 0),
            (0, float("inf")),
            (True, 0),
            ("37.0", "-122.0"),
            (None, None),
        ],
    )
    def test_invalid(self, lat, lon):
        assert is_valid_coordinate(lat, lon) is False
        with pytest.raises(InvalidPositionError):
            validate_position(lat, lon)


class TestBoundingBox:

    def test_contains_radius(self):
        min_lat, min_lon, max_lat, max_lon = bounding_box(37.7749, -122.4194, 1.0)
        north = offset_north(SF, 999.0)
        assert min_lat < SF.latitude < max_lat
        assert north.latitude < max_lat
        assert min_lon < SF.longitude < max_lon

    def test_contains_radius_east_west(self):
        min_lat, min_lon, max_lat, max_lon = bounding_box(SF.latitude, SF.longitude, 1.0)
        dlon = math.degrees(999.0 / (EARTH_RADIUS_M * math.cos(math.radians(SF.latitude))))
        assert min_lon < SF.longitude - dlon
        assert SF.longitude + dlon < max_lon

    def test_reaching_a_pole_covers_every_longitude(self):
        min_lat, min_lon, max_lat, max_lon = bounding_box(89.99, 179.99, 50.0)
        assert max_lat == 90.0
        assert (min_lon, max_lon) == (-180.0, 180.0)

    def test_wraps_across_antimeridian(self):
        box = bounding_box(-17.5, 179.99, 5.0)
        min_lat, min_lon, max_lat, max_lon = box
        assert crosses_antimeridian(box)
        assert 179.9 < min_lon < 180.0
        assert -180.0 < max_lon < -179.9
        # 2 km east, on the far side of the antimeridian
        far_side = -179.99
        assert far_side >= min_lon or far_side <= max_lon
        assert haversine_distance(-17.5, 179.99, -17.5, far_side) < 5000.0

    def test_ordinary_box_does_not_wrap(self):
        assert not crosses_antimeridian(bounding_box(SF.latitude, SF.longitude, 50.0))


# ---------------------------------------------------------------------------
# max_count and tiers
# ---------------------------------------------------------------------------


class TestValidateMaxCount:

    def test_within_range(self):
        assert validate_max_count(1, 20) == 1
        assert validate_max_count(20, 20) == 20

    @pytest.mark.parametrize("value", [0, -1, 21, 100])
    def test_out_of_range(self, value):
        with pytest.raises(InvalidMaxCountError) as exc_info:
            validate_max_count(value, 20)
        assert exc_info.value.ceiling == 20

    @pytest.mark.parametrize("value", [True, 2.0, "5", None])
    def test_non_integer(self, value):
        with pytest.raises(InvalidMaxCountError):
            validate_max_count(value, 20)


class TestPriorityTier:

    def test_preferred_network(self):
        loc = make_location("a", network_id="lib-1")
        assert priority_tier(loc, frozenset({"lib-1"})) == PRIORITY_PREFERRED

    def test_other_network(self):
        loc = make_location("a", network_id="lib-2")
        assert priority_tier(loc, frozenset({"lib-1"})) == PRIORITY_OTHER

    def test_no_network_is_never_preferred(self):
        loc = make_location("a", network_id=None)
        assert priority_tier(loc, frozenset({"lib-1"})) == PRIORITY_OTHER


# ---------------------------------------------------------------------------
# rank_regions
# ---------------------------------------------------------------------------


class TestRankRegions:

    def test_nearest_two_of_three(self):
        locations = [
            make_location("far", 5000),
            make_location("near", 50),
            make_location("mid", 400),
        ]
        result = rank_regions(SF, locations, (), 2)
        assert [r.id for r in result] == ["near", "mid"]
        assert result[0].distance_meters == pytest.approx(50.0, abs=1e-6)
        assert result[1].distance_meters == pytest.approx(400.0, abs=1e-6)

    def test_preferred_before_closer(self):
        locations = [
            make_location("close-other", 80, network_id="grocer"),
            make_location("far-preferred", 300, network_id="library"),
        ]
        result = rank_regions(SF, locations, {"library"}, 20)
        assert [r.id for r in result] == ["far-preferred", "close-other"]
        assert [r.priority_tier for r in result] == [PRIORITY_PREFERRED, PRIORITY_OTHER]

    def test_length_never_exceeds_max_count(self):
        locations = [make_location(f"loc-{i}", i * 10) for i in range(50)]
        for max_count in (1, 5, 20):
            assert len(rank_regions(SF, locations, (), max_count)) == max_count

    def test_fewer_candidates_than_max_count(self):
        locations = [make_location("a", 10), make_location("b", 20)]
        assert len(rank_regions(SF, locations, (), 20)) == 2

    def test_empty_input(self):
        assert rank_regions(SF, [], (), 20) == []

    def test_sorted_by_tier_then_distance(self):
        locations = [
            make_location(f"loc-{i}", (i * 137) % 2000, network_id="pref" if i % 3 == 0 else None)
            for i in range(30)
        ]
        result = rank_regions(SF, locations, {"pref"}, 20)
        keys = [(r.priority_tier, r.distance_meters) for r in result]
        assert keys == sorted(keys)

    def test_equal_distance_keeps_input_order(self):
        locations = [make_location("b", 100), make_location("a", 100)]
        result = rank_regions(SF, locations, (), 20)
        assert [r.id for r in result] == ["b", "a"]

    def test_deterministic(self):
        locations = [make_location(f"loc-{i}", (i * 71) % 900) for i in range(25)]
        first = rank_regions(SF, locations, {"x"}, 10)
        second = rank_regions(SF, locations, {"x"}, 10)
        assert first == second

    def test_rejects_max_count_above_ceiling(self):
        with pytest.raises(InvalidMaxCountError):
            rank_regions(SF, [make_location("a")], (), 21)

    def test_custom_ceiling(self):
        locations = [make_location(f"loc-{i}", i) for i in range(10)]
        assert len(rank_regions(SF, locations, (), 4, ceiling=4)) == 4
        with pytest.raises(InvalidMaxCountError):
            rank_regions(SF, locations, (), 5, ceiling=4)

    def test_rejects_invalid_position(self):
        with pytest.raises(InvalidPositionError):
            rank_regions(Position(95.0, 0.0), [make_location("a")], (), 5)
