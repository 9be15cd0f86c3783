import asyncio
import concurrent.futures
import datetime as _dt
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import googlemaps
from googlemaps.convert import decode_polyline
from googlemaps.exceptions import ApiError, Timeout, TransportError

from .config import PLACEHOLDER_API_KEY
from .errors import RouteLookupError
from .geodesy import path_length_m
from .models import Coordinate, RouteCost, TransitSegment, TravelMode

logger = logging.getLogger(__name__)


# --- Module-level constants ---
GOOGLE_MODES = {
    TravelMode.DRIVING: 'driving',
    TravelMode.WALKING: 'walking',
    TravelMode.CYCLING: 'bicycling',
    TravelMode.TRANSIT: 'transit',
}
# Google transit vehicle types -> segment type
VEHICLE_SEGMENT_TYPES = {
    'SUBWAY': 'subway',
    'METRO_RAIL': 'subway',
    'MONORAIL': 'subway',
    'TRAM': 'subway',
    'RAIL': 'rail',
    'HEAVY_RAIL': 'rail',
    'COMMUTER_TRAIN': 'rail',
    'HIGH_SPEED_TRAIN': 'rail',
    'LONG_DISTANCE_TRAIN': 'rail',
    'SHARE_TAXI': 'taxi',
}
SUBWAY_DEFAULT_COLOR = '#0078D7'
BUS_DEFAULT_COLOR = '#67A53B'
MAX_PLACES_PER_SEARCH = 20
UPSTREAM_ERRORS = (ApiError, TransportError, Timeout)

_TAG_RE = re.compile(r'<[^>]+>')


class RoutingBackend(ABC):
    """External routing / place search provider.

    Blocking calls run on a bounded worker pool; the pool size caps how many
    requests are in flight against the upstream API at once.
    """

    def __init__(self, max_workers: int = 10):
        self.max_workers = max_workers
        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)

    def cleanup(self):
        """Clean up resources"""
        if hasattr(self, 'executor'):
            self.executor.shutdown(wait=True)

    @abstractmethod
    def get_route(self, origin: Coordinate, destination: Coordinate, mode: TravelMode, city: Optional[str] = None) -> RouteCost:
        """Resolve one route; raise RouteLookupError on any failure"""

    @abstractmethod
    def find_places_nearby(self, location: Coordinate, radius: int = 1000, place_type: str = "point_of_interest") -> List[Dict]:
        """Places around a location as dicts with name, lat, lng and metadata"""

    # Async wrapper methods for parallel execution
    async def find_places_nearby_async(self, location: Coordinate, radius: int = 1000, place_type: str = "point_of_interest") -> List[Dict]:
        """Async wrapper for find_places_nearby"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, self.find_places_nearby, location, radius, place_type)


class GoogleMapsService(RoutingBackend):
    """Service for interacting with Google Maps APIs"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client=None,
        max_workers: int = 10,
        timeout: Optional[float] = None,
        queries_per_second: int = 10,
    ):
        if client is None:
            if not api_key or api_key == PLACEHOLDER_API_KEY:
                raise ValueError("Valid Google Maps API key is required")
            client = googlemaps.Client(key=api_key, timeout=timeout, queries_per_second=queries_per_second)
        self.client = client
        super().__init__(max_workers=max_workers)

    def geocode_address(self, address: str) -> Optional[Dict]:
        """
        Geocode an address using Google Maps Geocoding API
        Returns formatted address and coordinates
        """
        try:
            result = self.client.geocode(address)
        except UPSTREAM_ERRORS as e:
            logger.warning(f"Geocoding error for '{address}': {e!r}")
            return None
        if not result:
            return None
        location = result[0]
        return {
            'formatted_address': location['formatted_address'],
            'lng': location['geometry']['location']['lng'],
            'lat': location['geometry']['location']['lat'],
        }

    def get_route(self, origin: Coordinate, destination: Coordinate, mode: TravelMode, city: Optional[str] = None) -> RouteCost:
        """
        Fastest route between two points for one travel mode.
        `city` only partitions the cache upstream of this call; Google resolves
        the transit network from the coordinates themselves.
        """
        google_mode = GOOGLE_MODES.get(mode)
        if google_mode is None:
            raise RouteLookupError(f"Unsupported travel mode: {mode}")

        departure_time = _dt.datetime.now() if mode in (TravelMode.DRIVING, TravelMode.TRANSIT) else None
        try:
            directions_result = self.client.directions(
                origin=origin.to_latlng(),
                destination=destination.to_latlng(),
                mode=google_mode,
                departure_time=departure_time,
                alternatives=False,
            )
        except UPSTREAM_ERRORS as e:
            raise RouteLookupError(f"{google_mode} directions failed: {e!r}") from e

        if not directions_result:
            raise RouteLookupError(f"No {google_mode} route found")

        try:
            return self._parse_route(directions_result[0], mode)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise RouteLookupError(f"Malformed {google_mode} directions response: {e!r}") from e

    def _parse_route(self, route: Dict, mode: TravelMode) -> RouteCost:
        legs = route['legs']
        if not legs:
            raise ValueError("route has no legs")

        total_seconds = 0
        total_distance = 0
        segments: List[TransitSegment] = []
        for leg in legs:
            # duration_in_traffic is only present for driving with a departure time
            duration = leg.get('duration_in_traffic') or leg['duration']
            total_seconds += duration['value']
            total_distance += leg.get('distance', {}).get('value', 0)
            if mode == TravelMode.TRANSIT:
                for step in leg.get('steps', []):
                    segment = self._parse_transit_step(step)
                    if segment is not None:
                        segments.append(segment)

        points = route.get('overview_polyline', {}).get('points')
        path = tuple(Coordinate(lng=p['lng'], lat=p['lat']) for p in decode_polyline(points)) if points else ()

        if total_distance == 0 and len(path) > 1:
            total_distance = path_length_m(path)
        if total_seconds < 0 or total_distance < 0:
            raise ValueError(f"negative route cost: {total_seconds}s / {total_distance}m")

        return RouteCost(
            duration=int(round(total_seconds / 60)),
            distance=int(round(total_distance)),
            mode=mode,
            path=path,
            segments=tuple(segments),
            source='api',
        )

    @staticmethod
    def _parse_transit_step(step: Dict) -> Optional[TransitSegment]:
        """Turn one Directions step of a transit itinerary into a segment"""
        travel_mode = step.get('travel_mode')
        duration = int(round(step.get('duration', {}).get('value', 0) / 60))
        distance = int(step.get('distance', {}).get('value', 0))

        if travel_mode == 'WALKING':
            instruction = _TAG_RE.sub('', step.get('html_instructions') or '').strip()
            return TransitSegment(type='walk', duration=duration, distance=distance, instruction=instruction or 'Walk')

        if travel_mode == 'TRANSIT':
            details = step.get('transit_details') or {}
            line = details.get('line') or {}
            vehicle = (line.get('vehicle') or {}).get('type', 'BUS')
            segment_type = VEHICLE_SEGMENT_TYPES.get(vehicle, 'bus')
            num_stops = details.get('num_stops')
            default_color = BUS_DEFAULT_COLOR if segment_type == 'bus' else SUBWAY_DEFAULT_COLOR
            return TransitSegment(
                type=segment_type,
                duration=duration,
                distance=distance,
                line_name=line.get('short_name') or line.get('name'),
                start_station=(details.get('departure_stop') or {}).get('name'),
                end_station=(details.get('arrival_stop') or {}).get('name'),
                station_count=num_stops + 1 if num_stops is not None else None,
                color=line.get('color') or default_color,
            )

        if travel_mode == 'DRIVING':
            return TransitSegment(type='taxi', duration=duration, distance=distance, instruction='Taxi')

        return None

    def find_places_nearby(self, location: Coordinate, radius: int = 1000, place_type: str = "point_of_interest") -> List[Dict]:
        """
        Find places nearby a given location
        """
        try:
            places_result = self.client.places_nearby(
                location=location.to_latlng(),
                radius=radius,
                type=place_type
            )
        except UPSTREAM_ERRORS as e:
            logger.warning(f"Places search error ({place_type} within {radius}m): {e!r}")
            return []

        places = []
        for place in places_result.get('results', [])[:MAX_PLACES_PER_SEARCH]:
            geometry = place.get('geometry', {}).get('location', {})
            places.append({
                'name': place.get('name'),
                'formatted_address': place.get('vicinity', ''),
                'lat': geometry.get('lat'),
                'lng': geometry.get('lng'),
                'rating': place.get('rating'),
                'types': place.get('types', []),
                'price_level': place.get('price_level'),
                'place_id': place.get('place_id'),
            })
        return places
