# trailtrace/services/geo.py
"""
Small spherical-geometry helpers shared by the routing stages.
"""
import math
from typing import Sequence

from trailtrace.models.geometry import GeoPoint
from trailtrace.models.routing import RouteCandidate

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """
    Compute great-circle distance between two points (lat/lng in degrees), in metres.
    """
    lat1 = math.radians(a.lat)
    lon1 = math.radians(a.lng)
    lat2 = math.radians(b.lat)
    lon2 = math.radians(b.lng)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_m(a, b) / 1000.0


def path_length_m(points: Sequence[GeoPoint]) -> float:
    return sum(haversine_m(p, q) for p, q in zip(points[:-1], points[1:]))


def bearing_deg(a: GeoPoint, b: GeoPoint) -> float:
    """
    Initial compass bearing from a to b: 0 = north, 90 = east, range [0, 360).
    """
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlon = math.radians(b.lng - a.lng)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)

    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def bearing_difference_deg(first: float, second: float) -> float:
    """
    Absolute difference between two bearings, folded into [0, 180].
    """
    diff = abs(second - first) % 360.0
    if diff > 180.0:
        diff = 360.0 - diff
    return diff


def straight_line_candidate(origin: GeoPoint, destination: GeoPoint) -> RouteCandidate:
    """
    Synthetic two-point candidate used whenever the oracle cannot answer.
    """
    return RouteCandidate(
        coordinates=[origin, destination],
        distance_m=haversine_m(origin, destination),
        synthetic=True,
    )
