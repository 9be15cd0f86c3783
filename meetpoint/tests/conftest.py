from __future__ import annotations

import threading
import time

import pytest

from meetpoint import geodesy
from meetpoint.config import Settings
from meetpoint.errors import RouteLookupError
from meetpoint.maps_service import RoutingBackend
from meetpoint.models import Coordinate, Destination, RouteCost, TravelMode, TravelPoint

# Two travelers in central Beijing
TRAVELER_A = Coordinate(lng=116.427115, lat=39.903536)
TRAVELER_B = Coordinate(lng=116.459819, lat=39.909652)


class FakeBackend(RoutingBackend):
    """Answers every route with 3 minutes per km; places come from a dict keyed by place type"""

    def __init__(self, places=None, minutes_per_km=3.0, max_workers=4):
        super().__init__(max_workers=max_workers)
        self.places = places or {}
        self.minutes_per_km = minutes_per_km
        self.route_calls = []
        self.place_calls = []
        self._lock = threading.Lock()

    def get_route(self, origin, destination, mode, city=None):
        with self._lock:
            self.route_calls.append((origin, destination, mode, city))
        km = geodesy.distance_km(origin, destination)
        return RouteCost(
            duration=int(round(km * self.minutes_per_km)),
            distance=int(round(km * 1000)),
            mode=mode,
            path=(origin, destination),
        )

    def find_places_nearby(self, location, radius=1000, place_type="point_of_interest"):
        with self._lock:
            self.place_calls.append((location, radius, place_type))
        return list(self.places.get(place_type, []))


class FailingBackend(RoutingBackend):
    def __init__(self):
        super().__init__(max_workers=2)
        self.route_calls = 0

    def get_route(self, origin, destination, mode, city=None):
        self.route_calls += 1
        raise RouteLookupError("upstream unavailable")

    def find_places_nearby(self, location, radius=1000, place_type="point_of_interest"):
        raise RouteLookupError("upstream unavailable")


class SlowBackend(FakeBackend):
    def __init__(self, delay=0.5, max_workers=4):
        super().__init__(max_workers=max_workers)
        self.delay = delay

    def get_route(self, origin, destination, mode, city=None):
        time.sleep(self.delay)
        return super().get_route(origin, destination, mode, city)


class GarbageBackend(FakeBackend):
    """Returns something that is not a RouteCost"""

    def get_route(self, origin, destination, mode, city=None):
        return {'duration': 'soon'}


def place(place_id, name, lng, lat, **extra):
    data = {
        'place_id': place_id,
        'name': name,
        'lng': lng,
        'lat': lat,
        'formatted_address': f"{name} street",
        'rating': 4.5,
        'types': ['cafe', 'food'],
        'price_level': 2,
    }
    data.update(extra)
    return data


@pytest.fixture
def travelers():
    return [
        TravelPoint(id='a', name='Ann', coordinate=TRAVELER_A, mode=TravelMode.DRIVING),
        TravelPoint(id='b', name='Bo', coordinate=TRAVELER_B, mode=TravelMode.DRIVING),
    ]


@pytest.fixture
def destination():
    return Destination(id='office', name='Office', coordinate=Coordinate(lng=116.50, lat=39.95))


@pytest.fixture
def fake_backend():
    backend = FakeBackend()
    yield backend
    backend.cleanup()


@pytest.fixture
def failing_backend():
    backend = FailingBackend()
    yield backend
    backend.cleanup()


@pytest.fixture
def settings():
    return Settings(api_key=None, log_file=None)
