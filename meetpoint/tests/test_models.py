from __future__ import annotations

import math

import pytest

from meetpoint.models import Coordinate, RouteCost, Strategy, TransitSegment, TravelMode


def test_coordinate_from_dict_accepts_lon_alias():
    assert Coordinate.from_dict({'lon': 116.4, 'lat': 39.9}) == Coordinate(116.4, 39.9)


@pytest.mark.parametrize('payload', [
    {'lng': 181, 'lat': 0},
    {'lng': 0, 'lat': -91},
    {'lng': math.nan, 'lat': 0},
    {'lng': 'east', 'lat': 0},
    {'lat': 10},
    [116.4, 39.9],
])
def test_coordinate_from_dict_rejects_invalid(payload):
    with pytest.raises(ValueError):
        Coordinate.from_dict(payload)


def test_travel_mode_parse():
    assert TravelMode.parse('Transit') is TravelMode.TRANSIT
    with pytest.raises(ValueError):
        TravelMode.parse('teleport')


def test_strategy_defaults_to_balanced():
    assert Strategy.parse(None) is Strategy.BALANCED
    assert Strategy.parse('fair') is Strategy.FAIR
    with pytest.raises(ValueError):
        Strategy.parse('cheapest')


def test_route_cost_serialisation_includes_segments_and_walking_distance():
    cost = RouteCost(
        duration=30,
        distance=9000,
        mode=TravelMode.TRANSIT,
        segments=(
            TransitSegment(type='walk', duration=5, distance=400, instruction='Walk to station'),
            TransitSegment(type='subway', duration=20, distance=8000, line_name='Line 1', station_count=6),
            TransitSegment(type='walk', duration=5, distance=600),
        ),
    )
    data = cost.to_dict(include_path=False)
    assert data['walking_distance'] == 1000
    assert data['segments'][1]['line_name'] == 'Line 1'
    assert 'path' not in data
    assert 'fallback_reason' not in data
