import math
from typing import List, Optional, Sequence

from geopy.distance import geodesic

from .models import Coordinate


EARTH_RADIUS_KM = 6371.0


def distance_km(p1: Coordinate, p2: Coordinate) -> float:
    """Haversine great-circle distance in kilometers"""
    lat1, lng1 = math.radians(p1.lat), math.radians(p1.lng)
    lat2, lng2 = math.radians(p2.lat), math.radians(p2.lng)
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_m(p1: Coordinate, p2: Coordinate) -> float:
    """Haversine great-circle distance in meters"""
    return distance_km(p1, p2) * 1000.0


def centroid(points: Sequence[Coordinate], default: Optional[Coordinate] = None) -> Coordinate:
    """Arithmetic mean of longitudes and latitudes.

    An empty input returns `default` (the configured city center); without a
    default it is an error.
    """
    if not points:
        if default is None:
            raise ValueError("centroid of an empty point set needs a default")
        return default
    return Coordinate(
        lng=sum(p.lng for p in points) / len(points),
        lat=sum(p.lat for p in points) / len(points),
    )


def weighted_centroid(points: Sequence[Coordinate], weights: Sequence[float]) -> Coordinate:
    if len(points) != len(weights):
        raise ValueError("points and weights must have the same length")
    total = float(sum(weights))
    if not points or total <= 0:
        raise ValueError("weighted centroid needs at least one point with positive weight")
    return Coordinate(
        lng=sum(p.lng * w for p, w in zip(points, weights)) / total,
        lat=sum(p.lat * w for p, w in zip(points, weights)) / total,
    )


def interpolate(start: Coordinate, end: Coordinate, ratio: float) -> Coordinate:
    """Point at `ratio` of the way from start to end (planar in degrees)"""
    return Coordinate(
        lng=start.lng + (end.lng - start.lng) * ratio,
        lat=start.lat + (end.lat - start.lat) * ratio,
    )


def blend(origin: Coordinate, target: Coordinate, target_weight: float) -> Coordinate:
    """Weighted mean of two points, `target` weighted by `target_weight` and origin by the rest"""
    if not 0.0 <= target_weight <= 1.0:
        raise ValueError(f"blend weight must be within [0, 1], got {target_weight}")
    return weighted_centroid([origin, target], [1.0 - target_weight, target_weight])


def offset(point: Coordinate, dlng: float, dlat: float) -> Coordinate:
    return Coordinate(lng=point.lng + dlng, lat=point.lat + dlat)


def path_length_m(path: Sequence[Coordinate]) -> float:
    """Geodesic length of a polyline in meters"""
    total = 0.0
    for a, b in zip(path, path[1:]):
        total += geodesic(a.to_latlng(), b.to_latlng()).meters
    return total


def min_distance_m(point: Coordinate, others: List[Coordinate]) -> float:
    if not others:
        return float('inf')
    return min(distance_m(point, o) for o in others)
