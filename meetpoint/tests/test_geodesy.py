from __future__ import annotations

import pytest

from meetpoint import geodesy
from meetpoint.models import Coordinate

from .conftest import TRAVELER_A, TRAVELER_B


def test_distance_is_symmetric():
    assert geodesy.distance_km(TRAVELER_A, TRAVELER_B) == pytest.approx(geodesy.distance_km(TRAVELER_B, TRAVELER_A))


def test_distance_to_self_is_zero():
    assert geodesy.distance_m(TRAVELER_A, TRAVELER_A) == 0


def test_distance_one_degree_of_latitude():
    d = geodesy.distance_km(Coordinate(0.0, 0.0), Coordinate(0.0, 1.0))
    assert d == pytest.approx(111.19, abs=0.01)


def test_centroid_of_beijing_travelers():
    c = geodesy.centroid([TRAVELER_A, TRAVELER_B])
    assert c.lng == pytest.approx(116.443467)
    assert c.lat == pytest.approx(39.906594)
    assert geodesy.distance_km(TRAVELER_A, c) == pytest.approx(1.44, abs=0.01)
    assert geodesy.distance_km(TRAVELER_B, c) == pytest.approx(1.44, abs=0.01)


def test_centroid_empty_uses_default():
    default = Coordinate(lng=116.397428, lat=39.90923)
    assert geodesy.centroid([], default=default) == default


def test_centroid_empty_without_default_raises():
    with pytest.raises(ValueError):
        geodesy.centroid([])


def test_weighted_centroid_pulls_toward_heavy_point():
    c = geodesy.weighted_centroid([Coordinate(0.0, 0.0), Coordinate(3.0, 0.0)], [1.0, 2.0])
    assert c.lng == pytest.approx(2.0)
    assert c.lat == pytest.approx(0.0)


def test_weighted_centroid_length_mismatch():
    with pytest.raises(ValueError):
        geodesy.weighted_centroid([Coordinate(0.0, 0.0)], [1.0, 1.0])


def test_interpolate():
    start, end = Coordinate(10.0, 20.0), Coordinate(20.0, 40.0)
    point = geodesy.interpolate(start, end, 0.3)
    assert point.lng == pytest.approx(13.0)
    assert point.lat == pytest.approx(26.0)


def test_blend_is_a_weighted_mean():
    origin, target = Coordinate(10.0, 20.0), Coordinate(20.0, 40.0)
    mixed = geodesy.blend(origin, target, 0.3)
    assert mixed.lng == pytest.approx(0.7 * 10.0 + 0.3 * 20.0)
    assert mixed.lat == pytest.approx(0.7 * 20.0 + 0.3 * 40.0)
    assert geodesy.blend(origin, target, 0.0) == origin
    assert geodesy.blend(origin, target, 1.0) == target
    with pytest.raises(ValueError):
        geodesy.blend(origin, target, 1.5)


def test_path_length_matches_haversine_for_short_segment():
    length = geodesy.path_length_m([TRAVELER_A, TRAVELER_B])
    assert length == pytest.approx(geodesy.distance_m(TRAVELER_A, TRAVELER_B), rel=0.01)


def test_min_distance_of_empty_set_is_infinite():
    assert geodesy.min_distance_m(TRAVELER_A, []) == float('inf')
