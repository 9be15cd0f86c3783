"""
Request-scoped value objects shared by the meeting point pipeline.

Coordinates are stored as (lng, lat) like the routing provider's wire format.
All route distances are meters and all durations are minutes.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple


class TravelMode(str, Enum):
    DRIVING = 'driving'
    TRANSIT = 'transit'
    WALKING = 'walking'
    CYCLING = 'cycling'

    @classmethod
    def parse(cls, value) -> 'TravelMode':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            allowed = ', '.join(m.value for m in cls)
            raise ValueError(f"Unknown travel mode '{value}' (expected one of: {allowed})")


class Strategy(str, Enum):
    FAIR = 'fair'
    EFFICIENT = 'efficient'
    BALANCED = 'balanced'

    @classmethod
    def parse(cls, value) -> 'Strategy':
        if value is None:
            return cls.BALANCED
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            allowed = ', '.join(s.value for s in cls)
            raise ValueError(f"Unknown strategy '{value}' (expected one of: {allowed})")


@dataclass(frozen=True)
class Coordinate:
    lng: float
    lat: float

    def validate(self) -> 'Coordinate':
        """Raise ValueError unless both axes are finite and in range"""
        if not (math.isfinite(self.lng) and math.isfinite(self.lat)):
            raise ValueError(f"Coordinate must be finite, got ({self.lng}, {self.lat})")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"Longitude {self.lng} is outside [-180, 180]")
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude {self.lat} is outside [-90, 90]")
        return self

    @classmethod
    def from_dict(cls, data: Dict) -> 'Coordinate':
        """Build a validated coordinate from {'lng', 'lat'} (or 'lon') payloads"""
        if not isinstance(data, dict):
            raise ValueError("Coordinate must be an object with lng and lat")
        lng = data.get('lng', data.get('lon'))
        lat = data.get('lat')
        if lng is None or lat is None:
            raise ValueError("Coordinate must have lng and lat properties")
        try:
            coord = cls(lng=float(lng), lat=float(lat))
        except (TypeError, ValueError):
            raise ValueError(f"Coordinate values must be numbers, got lng={lng!r} lat={lat!r}")
        return coord.validate()

    def to_latlng(self) -> Tuple[float, float]:
        return (self.lat, self.lng)

    def to_dict(self) -> Dict:
        return {'lng': self.lng, 'lat': self.lat}


@dataclass(frozen=True)
class TravelPoint:
    id: str
    name: str
    coordinate: Coordinate
    mode: TravelMode = TravelMode.DRIVING


@dataclass(frozen=True)
class Destination:
    id: str
    name: str
    coordinate: Coordinate

    def to_dict(self) -> Dict:
        return {'id': self.id, 'name': self.name, 'coordinate': self.coordinate.to_dict()}


@dataclass(frozen=True)
class TransitSegment:
    """One leg of a public transport itinerary, kept for display only"""
    type: str  # walk | bus | subway | rail | taxi
    duration: int
    distance: int
    line_name: Optional[str] = None
    start_station: Optional[str] = None
    end_station: Optional[str] = None
    station_count: Optional[int] = None
    color: Optional[str] = None
    instruction: Optional[str] = None

    def to_dict(self) -> Dict:
        out = {'type': self.type, 'duration': self.duration, 'distance': self.distance}
        for key in ('line_name', 'start_station', 'end_station', 'station_count', 'color', 'instruction'):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass(frozen=True)
class RouteCost:
    duration: float
    distance: int
    mode: TravelMode
    path: Tuple[Coordinate, ...] = ()
    segments: Tuple[TransitSegment, ...] = ()
    source: str = 'api'  # api | estimate
    fallback_reason: Optional[str] = None

    @property
    def is_estimate(self) -> bool:
        return self.source == 'estimate'

    @property
    def walking_distance(self) -> int:
        return sum(s.distance for s in self.segments if s.type == 'walk')

    def to_dict(self, include_path: bool = True) -> Dict:
        out = {
            'duration': self.duration,
            'distance': self.distance,
            'mode': self.mode.value,
            'source': self.source,
        }
        if self.fallback_reason:
            out['fallback_reason'] = self.fallback_reason
        if self.segments:
            out['segments'] = [s.to_dict() for s in self.segments]
            out['walking_distance'] = self.walking_distance
        if include_path:
            out['path'] = [c.to_dict() for c in self.path]
        return out


@dataclass(frozen=True)
class CandidatePoint:
    id: str
    name: str
    coordinate: Coordinate
    address: str = ''
    rating: Optional[float] = None
    cost: Optional[int] = None
    tags: Tuple[str, ...] = ()
    distance_from_center: Optional[int] = None

    def to_dict(self) -> Dict:
        out = {
            'id': self.id,
            'name': self.name,
            'coordinate': self.coordinate.to_dict(),
            'address': self.address,
        }
        if self.rating is not None:
            out['rating'] = self.rating
        if self.cost is not None:
            out['cost'] = self.cost
        if self.tags:
            out['tags'] = list(self.tags)
        if self.distance_from_center is not None:
            out['distance_from_center'] = self.distance_from_center
        return out


@dataclass(frozen=True)
class TravelerRoute:
    traveler_id: str
    traveler_name: str
    cost: RouteCost

    def to_dict(self) -> Dict:
        return {'traveler_id': self.traveler_id, 'traveler_name': self.traveler_name, **self.cost.to_dict()}


@dataclass(frozen=True)
class DestinationRoute:
    destination_id: str
    destination_name: str
    cost: RouteCost

    def to_dict(self) -> Dict:
        return {'destination_id': self.destination_id, 'destination_name': self.destination_name, **self.cost.to_dict()}


@dataclass
class EvaluatedPlan:
    candidate: CandidatePoint
    routes: List[TravelerRoute]
    destination_routes: List[DestinationRoute] = field(default_factory=list)
    avg_duration: float = 0.0
    min_duration: float = 0.0
    max_duration: float = 0.0
    duration_spread: float = 0.0
    total_duration: float = 0.0
    avg_destination_duration: float = 0.0
    score: float = 0.0

    @property
    def coordinate(self) -> Coordinate:
        return self.candidate.coordinate

    @property
    def durations(self) -> List[float]:
        return [r.cost.duration for r in self.routes]

    def with_score(self, score: float) -> 'EvaluatedPlan':
        return replace(self, score=score)

    def to_dict(self) -> Dict:
        return {
            'candidate': self.candidate.to_dict(),
            'routes': [r.to_dict() for r in self.routes],
            'destination_routes': [r.to_dict() for r in self.destination_routes],
            'avg_duration': round(self.avg_duration, 1),
            'min_duration': self.min_duration,
            'max_duration': self.max_duration,
            'duration_spread': self.duration_spread,
            'total_duration': self.total_duration,
            'avg_destination_duration': round(self.avg_destination_duration, 1),
            'score': round(self.score, 3),
        }


@dataclass
class RankedResult:
    best: EvaluatedPlan
    alternatives: List[EvaluatedPlan] = field(default_factory=list)

    @property
    def plans(self) -> List[EvaluatedPlan]:
        return [self.best, *self.alternatives]


@dataclass
class MeetingResult:
    ranked: RankedResult
    search_center: Coordinate
    strategy: Strategy
    destinations: List[Destination] = field(default_factory=list)
    candidate_source: str = 'geometric'
    candidates_evaluated: int = 0

    @property
    def best_plan(self) -> EvaluatedPlan:
        return self.ranked.best

    @property
    def alternatives(self) -> List[EvaluatedPlan]:
        return self.ranked.alternatives

    def to_dict(self) -> Dict:
        return {
            'best_plan': self.best_plan.to_dict(),
            'alternatives': [p.to_dict() for p in self.alternatives],
            'search_center': self.search_center.to_dict(),
            'strategy': self.strategy.value,
            'destinations': [d.to_dict() for d in self.destinations],
            'candidate_source': self.candidate_source,
            'candidates_evaluated': self.candidates_evaluated,
        }
