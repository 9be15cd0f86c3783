"""
Candidate meeting points.

Two interchangeable sources feed the same evaluation pipeline: a purely
geometric generator around the (destination weighted) centroid, and a place
search around a destination-biased search center.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from . import geodesy
from .errors import InvalidRequestError, ServiceNotConfiguredError
from .models import CandidatePoint, Coordinate, Destination, TravelPoint

logger = logging.getLogger(__name__)


# --- Module-level constants ---
DESTINATION_WEIGHT = 2.0
DESTINATION_RATIOS = (0.3, 0.5, 0.7)
TRAVELER_RATIO = 0.3
# E, W, N, S, NE, NW, SE, SW around the weighted centroid (degrees)
GRID_OFFSETS = (
    (0.01, 0.0),
    (-0.01, 0.0),
    (0.0, 0.01),
    (0.0, -0.01),
    (0.007, 0.007),
    (-0.007, 0.007),
    (0.007, -0.007),
    (-0.007, -0.007),
)
SEARCH_CENTER_DESTINATION_BLEND = 0.3

# Place categories understood by the place search variant
POI_TYPE_CODES = {
    'restaurant': 'restaurant',
    'cafe': 'cafe',
    'subway': 'subway_station',
    'mall': 'shopping_mall',
    'parking': 'parking',
}
DEFAULT_POI_TYPES = ('cafe', 'restaurant')


def weighted_search_center(travelers: Sequence[TravelPoint], destinations: Sequence[Destination]) -> Coordinate:
    """Centroid of travelers and destinations, destinations counting double"""
    points = [t.coordinate for t in travelers] + [d.coordinate for d in destinations]
    weights = [1.0] * len(travelers) + [DESTINATION_WEIGHT] * len(destinations)
    return geodesy.weighted_centroid(points, weights)


def generate_candidate_points(
    travelers: Sequence[TravelPoint],
    destinations: Sequence[Destination] = (),
) -> List[Coordinate]:
    """Ordered candidate coordinates for a group of travelers.

    Order matters: callers truncate the list before route evaluation, so the
    most promising points (centroids, destination-ward interpolations) come
    first and the local grid comes last.
    """
    if not travelers:
        return []

    traveler_coords = [t.coordinate for t in travelers]
    destination_coords = [d.coordinate for d in destinations]

    center = weighted_search_center(travelers, destinations)
    candidates: List[Coordinate] = [center]

    if destination_coords:
        candidates.append(geodesy.centroid(traveler_coords))

    for dest in destination_coords:
        for ratio in DESTINATION_RATIOS:
            candidates.append(geodesy.interpolate(center, dest, ratio))

    for coord in traveler_coords:
        candidates.append(geodesy.interpolate(center, coord, TRAVELER_RATIO))

    for dlng, dlat in GRID_OFFSETS:
        candidates.append(geodesy.offset(center, dlng, dlat))

    return candidates


class CandidateSource(ABC):
    """Produces the candidate points evaluated for one request"""

    name = 'abstract'

    @abstractmethod
    def search_center(self, travelers: Sequence[TravelPoint], destinations: Sequence[Destination]) -> Coordinate:
        pass

    @abstractmethod
    async def candidates_async(
        self,
        travelers: Sequence[TravelPoint],
        destinations: Sequence[Destination],
    ) -> List[CandidatePoint]:
        pass


class GeometricCandidateSource(CandidateSource):
    name = 'geometric'

    def search_center(self, travelers, destinations) -> Coordinate:
        return weighted_search_center(travelers, destinations)

    async def candidates_async(self, travelers, destinations) -> List[CandidatePoint]:
        return [
            CandidatePoint(id=f"plan-{i}", name=f"Meeting point {i + 1}", coordinate=coord)
            for i, coord in enumerate(generate_candidate_points(travelers, destinations))
        ]


class PlaceSearchCandidateSource(CandidateSource):
    """Candidates are real places found near a destination-biased center"""

    name = 'places'

    def __init__(
        self,
        backend,
        radius: int = 2000,
        poi_types: Optional[Sequence[str]] = None,
        default_center: Optional[Coordinate] = None,
    ):
        self.backend = backend
        self.radius = radius
        self.poi_types = list(poi_types) if poi_types else list(DEFAULT_POI_TYPES)
        self.default_center = default_center

    def search_center(self, travelers, destinations) -> Coordinate:
        center = geodesy.centroid([t.coordinate for t in travelers], default=self.default_center)
        if destinations:
            dest_center = geodesy.centroid([d.coordinate for d in destinations])
            center = geodesy.blend(center, dest_center, SEARCH_CENTER_DESTINATION_BLEND)
        return center

    def place_types(self) -> List[str]:
        types = []
        for poi_type in self.poi_types:
            code = POI_TYPE_CODES.get(poi_type)
            if code and code not in types:
                types.append(code)
        return types or [POI_TYPE_CODES[t] for t in DEFAULT_POI_TYPES]

    async def candidates_async(self, travelers, destinations) -> List[CandidatePoint]:
        return await self.search_async(self.search_center(travelers, destinations))

    def search(self, center: Coordinate) -> List[CandidatePoint]:
        """Blocking place search around `center`"""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(self.search_async(center))
        finally:
            loop.close()

    async def search_async(self, center: Coordinate) -> List[CandidatePoint]:
        """Places of every configured category, nearest first, one entry per place id"""
        place_types = self.place_types()

        tasks = [
            self.backend.find_places_nearby_async(center, radius=self.radius, place_type=place_type)
            for place_type in place_types
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        seen = set()
        candidates: List[CandidatePoint] = []
        for place_type, places in zip(place_types, results):
            if isinstance(places, Exception):
                logger.warning(f"Place search for '{place_type}' failed: {places!r}")
                continue
            for place in places:
                candidate = self._to_candidate(place, center)
                if candidate is None or candidate.id in seen:
                    continue
                seen.add(candidate.id)
                candidates.append(candidate)

        candidates.sort(key=lambda c: c.distance_from_center)
        logger.info(f"Place search around ({center.lng:.6f}, {center.lat:.6f}) returned {len(candidates)} candidates")
        return candidates

    @staticmethod
    def _to_candidate(place: Dict, center: Coordinate) -> Optional[CandidatePoint]:
        try:
            coord = Coordinate(lng=float(place['lng']), lat=float(place['lat'])).validate()
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Skipping place with invalid location: {place.get('name')!r}")
            return None

        place_id = place.get('place_id') or f"{coord.lng:.6f},{coord.lat:.6f}"
        rating = place.get('rating')
        return CandidatePoint(
            id=str(place_id),
            name=place.get('name') or 'Unnamed place',
            coordinate=coord,
            address=place.get('formatted_address') or '',
            rating=float(rating) if rating is not None else None,
            cost=place.get('price_level'),
            tags=tuple(dict.fromkeys(place.get('types') or [])),
            distance_from_center=int(round(geodesy.distance_m(center, coord))),
        )


def make_candidate_source(
    name: Optional[str],
    backend=None,
    radius: int = 2000,
    poi_types: Optional[Sequence[str]] = None,
    default_center: Optional[Coordinate] = None,
) -> CandidateSource:
    """Candidate source by name ('geometric' or 'places')"""
    if name is not None and not isinstance(name, str):
        raise InvalidRequestError("candidate_source must be a string")
    name = (name or GeometricCandidateSource.name).lower()
    if name == GeometricCandidateSource.name:
        return GeometricCandidateSource()
    if name == PlaceSearchCandidateSource.name:
        if backend is None:
            raise ServiceNotConfiguredError("Place search requires a configured Google Maps API key")
        unknown = [t for t in (poi_types or []) if not isinstance(t, str) or t not in POI_TYPE_CODES]
        if unknown:
            allowed = ', '.join(POI_TYPE_CODES)
            raise InvalidRequestError(f"Unknown POI types {unknown} (expected any of: {allowed})")
        return PlaceSearchCandidateSource(backend, radius=radius, poi_types=poi_types, default_center=default_center)
    raise InvalidRequestError(f"Unknown candidate source '{name}' (expected 'geometric' or 'places')")
