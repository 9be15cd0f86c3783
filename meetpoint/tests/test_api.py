from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from meetpoint.app import create_app
from meetpoint.models import TravelMode

from .conftest import TRAVELER_A, TRAVELER_B, FakeBackend, place


def _traveler(traveler_id, coordinate, mode='driving'):
    return {
        'id': traveler_id,
        'name': traveler_id.upper(),
        'coordinate': {'lng': coordinate.lng, 'lat': coordinate.lat},
        'mode': mode,
    }


TRAVELERS = [_traveler('a', TRAVELER_A), _traveler('b', TRAVELER_B)]
OFFICE = {'id': 'office', 'name': 'Office', 'coordinate': {'lng': 116.50, 'lat': 39.95}}


@pytest.fixture
def client(settings):
    return create_app(settings=settings).test_client()


@pytest.fixture
def backend():
    backend = FakeBackend(places={'cafe': [place('c1', 'Cafe One', 116.4435, 39.9070)]})
    yield backend
    backend.cleanup()


@pytest.fixture
def maps_client(settings, backend):
    return create_app(settings=settings, backend=backend).test_client()


# ── Health ───────────────────────────────────────────────────────────────


def test_health_check(client):
    resp = client.get('/')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['status'] == 'healthy'
    assert body['google_maps_configured'] is False
    assert 'X-Process-Time-ms' in resp.headers


def test_unknown_endpoint(client):
    resp = client.get('/api/nothing')
    assert resp.status_code == 404
    assert resp.get_json()['success'] is False


# ── Calculate ────────────────────────────────────────────────────────────


def test_calculate_without_api_key_uses_estimates(client):
    resp = client.post('/api/calculate', json={'travelers': TRAVELERS})
    assert resp.status_code == 200
    assert 'X-Compute-Time-ms' in resp.headers
    data = resp.get_json()['data']
    assert data['best_plan']['candidate']['id'] == 'plan-0'
    assert [r['duration'] for r in data['best_plan']['routes']] == [12, 12]
    assert data['best_plan']['routes'][0]['source'] == 'estimate'
    assert len(data['alternatives']) == 2
    assert data['strategy'] == 'balanced'
    assert data['candidate_source'] == 'geometric'


def test_calculate_with_destination(client):
    resp = client.post('/api/calculate', json={
        'travelers': TRAVELERS,
        'scenario_mode': 'destination',
        'destination': OFFICE,
        'strategy': 'fair',
    })
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['destinations'][0]['id'] == 'office'
    assert data['best_plan']['destination_routes'][0]['mode'] == TravelMode.TRANSIT.value
    assert data['strategy'] == 'fair'


def test_meetup_mode_ignores_destinations(client):
    resp = client.post('/api/calculate', json={
        'travelers': TRAVELERS,
        'scenario_mode': 'meetup',
        'destinations': [OFFICE],
    })
    assert resp.status_code == 200
    assert resp.get_json()['data']['destinations'] == []


def test_travelers_without_location_are_dropped(client):
    resp = client.post('/api/calculate', json={
        'travelers': [TRAVELERS[0], {'id': 'c', 'name': 'C', 'location': None}],
    })
    assert resp.status_code == 400
    assert '2 travelers' in resp.get_json()['error']


def test_nested_location_payload_is_accepted(client):
    travelers = [
        {'id': 'a', 'name': 'A', 'location': {'name': 'Home', 'coordinate': {'lng': TRAVELER_A.lng, 'lat': TRAVELER_A.lat}}},
        {'id': 'b', 'name': 'B', 'location': {'coordinate': {'lng': TRAVELER_B.lng, 'lat': TRAVELER_B.lat}}, 'transport_mode': 'walking'},
    ]
    resp = client.post('/api/calculate', json={'travelers': travelers})
    assert resp.status_code == 200
    routes = resp.get_json()['data']['best_plan']['routes']
    assert routes[1]['mode'] == 'walking'


@pytest.mark.parametrize('payload', [
    None,
    {'travelers': 'everyone'},
    {'travelers': [TRAVELERS[0]]},
    {'travelers': TRAVELERS, 'strategy': 'cheapest'},
    {'travelers': TRAVELERS, 'scenario_mode': 'destination'},
    {'travelers': TRAVELERS, 'scenario_mode': 'party'},
    {'travelers': TRAVELERS, 'candidate_source': 'random'},
    {'travelers': TRAVELERS, 'candidate_source': ['places']},
    {'travelers': TRAVELERS, 'city': ['beijing']},
    {'travelers': TRAVELERS, 'candidate_source': 'places', 'poi_types': [{'x': 1}]},
    {'travelers': TRAVELERS, 'poi_types': 'cafe'},
    {'travelers': [TRAVELERS[0], _traveler('b', TRAVELER_B, mode='teleport')]},
    {'travelers': [TRAVELERS[0], {'id': 'b', 'coordinate': {'lng': 500, 'lat': 0}}]},
])
def test_calculate_rejects_bad_requests(client, payload):
    resp = client.post('/api/calculate', json=payload)
    assert resp.status_code == 400
    body = resp.get_json()
    assert body['success'] is False
    assert body['error']


def test_place_search_requires_api_key(client):
    resp = client.post('/api/calculate', json={'travelers': TRAVELERS, 'candidate_source': 'places'})
    assert resp.status_code == 503


def test_calculate_with_place_search(maps_client):
    resp = maps_client.post('/api/calculate', json={
        'travelers': TRAVELERS,
        'candidate_source': 'places',
        'poi_types': ['cafe'],
    })
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['best_plan']['candidate']['name'] == 'Cafe One'
    assert data['best_plan']['candidate']['rating'] == 4.5
    assert data['best_plan']['routes'][0]['source'] == 'api'


def test_empty_place_search_is_not_found(maps_client):
    resp = maps_client.post('/api/calculate', json={
        'travelers': TRAVELERS,
        'candidate_source': 'places',
        'poi_types': ['parking'],
    })
    assert resp.status_code == 404


def test_unexpected_errors_do_not_leak_details(settings):
    finder = MagicMock()
    finder.provider.backend = None
    finder.find_meeting_points.side_effect = RuntimeError('database password is hunter2')
    client = create_app(settings=settings, finder=finder).test_client()
    resp = client.post('/api/calculate', json={'travelers': TRAVELERS})
    assert resp.status_code == 500
    assert 'hunter2' not in resp.get_data(as_text=True)
    assert resp.get_json()['success'] is False


# ── Route / POI / geocode ────────────────────────────────────────────────


def test_route_estimate(client):
    resp = client.get('/api/route', query_string={
        'origin_lng': TRAVELER_A.lng, 'origin_lat': TRAVELER_A.lat,
        'dest_lng': TRAVELER_B.lng, 'dest_lat': TRAVELER_B.lat,
        'mode': 'transit',
    })
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['mode'] == 'transit'
    assert data['source'] == 'estimate'
    assert data['fallback_reason']


def test_route_from_backend(maps_client, backend):
    resp = maps_client.get('/api/route', query_string={
        'origin_lng': TRAVELER_A.lng, 'origin_lat': TRAVELER_A.lat,
        'dest_lng': TRAVELER_B.lng, 'dest_lat': TRAVELER_B.lat,
        'city': 'beijing',
    })
    assert resp.status_code == 200
    assert resp.get_json()['data']['source'] == 'api'
    assert backend.route_calls[0][3] == 'beijing'


@pytest.mark.parametrize('query', [
    {'origin_lng': 116.4, 'origin_lat': 39.9, 'dest_lng': 116.5},
    {'origin_lng': 'x', 'origin_lat': 39.9, 'dest_lng': 116.5, 'dest_lat': 39.9},
    {'origin_lng': 116.4, 'origin_lat': 95, 'dest_lng': 116.5, 'dest_lat': 39.9},
    {'origin_lng': 116.4, 'origin_lat': 39.9, 'dest_lng': 116.5, 'dest_lat': 39.9, 'mode': 'boat'},
])
def test_route_rejects_bad_parameters(client, query):
    assert client.get('/api/route', query_string=query).status_code == 400


def test_search_poi(maps_client, backend):
    resp = maps_client.get('/api/search-poi', query_string={'lng': 116.4435, 'lat': 39.9065, 'radius': 1500, 'types': 'cafe'})
    assert resp.status_code == 200
    places = resp.get_json()['data']
    assert places[0]['id'] == 'c1'
    assert backend.place_calls[0][1:] == (1500, 'cafe')


def test_search_poi_validation(client, maps_client):
    assert client.get('/api/search-poi', query_string={'lng': 116.4, 'lat': 39.9}).status_code == 503
    assert maps_client.get('/api/search-poi', query_string={'lng': 116.4}).status_code == 400
    assert maps_client.get('/api/search-poi', query_string={'lng': 116.4, 'lat': 39.9, 'radius': 50}).status_code == 400


def test_geocode(settings):
    backend = MagicMock()
    backend.geocode_address.return_value = {'formatted_address': 'Beijing', 'lng': 116.4, 'lat': 39.9}
    client = create_app(settings=settings, backend=backend).test_client()
    resp = client.post('/api/geocode', json={'address': 'Beijing'})
    assert resp.status_code == 200
    assert resp.get_json()['data']['lat'] == 39.9
    assert client.post('/api/geocode', json={}).status_code == 400
    backend.geocode_address.return_value = None
    assert client.post('/api/geocode', json={'address': 'Atlantis'}).status_code == 404


def test_geocode_without_api_key(client):
    assert client.post('/api/geocode', json={'address': 'Beijing'}).status_code == 503


# ── Cache ────────────────────────────────────────────────────────────────


def test_cache_stats_and_clear(client):
    client.post('/api/calculate', json={'travelers': TRAVELERS})
    stats = client.get('/api/cache/stats').get_json()['data']
    assert stats['cache']['size'] > 0
    assert stats['fallbacks'] > 0
    client.post('/api/calculate', json={'travelers': TRAVELERS})
    assert client.get('/api/cache/stats').get_json()['data']['cache']['hits'] > 0

    cleared = client.post('/api/cache/clear').get_json()['data']
    assert cleared['size'] == 0
