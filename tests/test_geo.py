from __future__ import annotations

import math

import pytest

from plaquer.models import Coordinate
from plaquer.services.geo import (
    bounds,
    distance_km,
    format_distance,
    is_valid_coordinate,
    midpoint,
    parse_coordinate,
    route_length_km,
    viewport_bounds,
)

LONDON = Coordinate(lat=51.5074, lon=-0.1278)
NORTH = Coordinate(lat=51.5174, lon=-0.1278)
PARIS = Coordinate(lat=48.8566, lon=2.3522)


def test_distance_to_self_is_zero():
    assert distance_km(LONDON, LONDON) == 0.0


def test_distance_is_symmetric():
    assert distance_km(LONDON, PARIS) == pytest.approx(distance_km(PARIS, LONDON))


def test_hundredth_of_a_degree_north_is_about_1_11_km():
    assert distance_km(LONDON, NORTH) == pytest.approx(1.11, abs=0.01)


def test_london_to_paris():
    assert distance_km(LONDON, PARIS) == pytest.approx(343.5, abs=1.0)


def test_antipodal_distance_is_half_circumference():
    d = distance_km(Coordinate(lat=0, lon=0), Coordinate(lat=0, lon=180))
    assert d == pytest.approx(math.pi * 6371, rel=1e-9)


@pytest.mark.parametrize(
    "lat, lon, valid",
    [
        (51.5, -0.1, True),
        ("51.5", "-0.1", True),
        (90, 180, True),
        (90.0001, 0, False),
        (0, -180.5, False),
        (None, 0, False),
        ("abc", 0, False),
        (float("nan"), 0, False),
        ("", "", False),
    ],
)
def test_coordinate_validation(lat, lon, valid):
    assert is_valid_coordinate(lat, lon) is valid
    assert (parse_coordinate(lat, lon) is not None) is valid


def test_route_length_sums_consecutive_pairs(marker_factory):
    a = marker_factory(1, 51.5074, -0.1278)
    b = marker_factory(2, 51.5174, -0.1278)
    c = marker_factory(3, 51.5274, -0.1278)
    assert route_length_km([a, b, c]) == pytest.approx(2 * distance_km(LONDON, NORTH), rel=1e-6)


def test_route_length_needs_two_valid_points(marker_factory):
    assert route_length_km([]) == 0.0
    assert route_length_km([marker_factory(1)]) == 0.0
    assert route_length_km([marker_factory(1), marker_factory(2, None, None)]) == 0.0


def test_route_length_skips_invalid_points(marker_factory):
    a = marker_factory(1, 51.5074, -0.1278)
    broken = marker_factory(2, "x", "y")
    b = marker_factory(3, 51.5174, -0.1278)
    assert route_length_km([a, broken, b]) == pytest.approx(distance_km(LONDON, NORTH))


def test_bounds(marker_factory):
    box = bounds([marker_factory(1, 51.5, -0.2), marker_factory(2, 51.6, -0.1), marker_factory(3, None, None)])
    assert box == {"south": 51.5, "west": -0.2, "north": 51.6, "east": -0.1}
    assert bounds([marker_factory(4, None, None)]) is None


def test_midpoint_is_equidistant():
    m = midpoint(LONDON, PARIS)
    assert distance_km(LONDON, m) == pytest.approx(distance_km(m, PARIS), rel=1e-6)


def test_viewport_bounds_shrink_with_zoom():
    wide = viewport_bounds(LONDON, 10)
    narrow = viewport_bounds(LONDON, 14)
    assert wide["north"] - wide["south"] > narrow["north"] - narrow["south"]
    assert narrow["south"] < LONDON.lat < narrow["north"]


def test_format_distance():
    assert format_distance(1.234) == "1.2 km"
    assert format_distance(1.609344, imperial=True) == "1.0 mi"
