# trailtrace/models/routing.py

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from trailtrace.models.geometry import GeographicBounds, GeoPoint, PlanarPoint

# Fallback map centre when a route has no coordinates (Los Angeles)
DEFAULT_CENTER = GeoPoint(lat=34.0522, lng=-118.2437)


class RouteProfile(str, Enum):
    """
    Travel mode passed through to the routing oracle.
    """
    WALKING = "walking"
    CYCLING = "cycling"
    DRIVING = "driving"


class RoadSegment(BaseModel):
    """
    One named stretch of road inside a candidate (an OSRM step or a run
    of graph edges sharing the same name/ref/class).
    """
    distance_m: float = 0.0
    name: str = ""
    ref: str = ""
    road_class: str = ""


class RouteCandidate(BaseModel):
    """
    One oracle-returned geometry for an origin/destination pair.

    `synthetic` marks the straight-line stand-in used when the oracle fails.
    """
    coordinates: List[GeoPoint]
    distance_m: float = 0.0
    duration_s: float = 0.0
    segments: List[RoadSegment] = []
    synthetic: bool = False


class RouteStyle(BaseModel):
    color: str = "#3b82f6"
    weight: int = 5
    opacity: float = 0.8


class Route(BaseModel):
    """
    Final artifact handed to the map renderer.

    A route is valid when it has at least 2 points (GeoPoint already
    enforces coordinate ranges).
    """
    id: str = Field(default_factory=lambda: f"route-{int(time.time() * 1000)}")
    name: Optional[str] = None
    coordinates: List[GeoPoint]
    style: RouteStyle = RouteStyle()

    def is_valid(self) -> bool:
        return len(self.coordinates) >= 2

    def center(self) -> GeoPoint:
        if not self.coordinates:
            return DEFAULT_CENTER
        n = len(self.coordinates)
        return GeoPoint(
            lat=sum(c.lat for c in self.coordinates) / n,
            lng=sum(c.lng for c in self.coordinates) / n,
        )


# ---------------------------------------------------------------------- #
# Request / response bodies
# ---------------------------------------------------------------------- #


class RouteRequest(BaseModel):
    """
    Request body for the /route endpoint.
    """
    origin: GeoPoint
    destination: GeoPoint
    profile: RouteProfile = RouteProfile.WALKING
    prefer_straight: bool = True
    avoid_restricted_roads: bool = True


class CandidateScoreModel(BaseModel):
    straightness: float
    restricted_distance_m: float
    restricted_segments: int
    restricted_multiplier: float
    score: float


class RouteResponse(BaseModel):
    """
    Response for the /route endpoint.

    `fallback` is true when the oracle failed and the geometry is a
    straight line between origin and destination.
    """
    distance_m: float
    duration_s: float
    coordinates: List[GeoPoint]
    candidates_considered: int
    score: Optional[CandidateScoreModel] = None
    fallback: bool = False
    warnings: List[str] = []


class SnapRequest(BaseModel):
    points: List[GeoPoint] = Field(..., min_length=1)
    profile: RouteProfile = RouteProfile.WALKING


class SnapResponse(BaseModel):
    points: List[GeoPoint]


class SynthesisOptions(BaseModel):
    """
    Configuration surface of one synthesis call.
    """
    profile: RouteProfile = RouteProfile.WALKING
    preserve_shape: bool = True
    avoid_restricted_roads: bool = True
    optimize_order: bool = False
    snap_waypoints: bool = False
    min_points: int = Field(4, ge=2)
    max_points: int = Field(25, ge=2)
    preserve_curves: bool = True


class SynthesisRequest(BaseModel):
    """
    Request body for the /route/synthesize endpoint.

    Exactly one of `bounds` (bounded-fit projection) or `anchor`
    (anchored projection) must be given.
    """
    trace: List[PlanarPoint] = Field(..., min_length=2)
    canvas_width: float = Field(..., gt=0)
    canvas_height: float = Field(..., gt=0)
    bounds: Optional[GeographicBounds] = None
    anchor: Optional[GeoPoint] = None
    scale: Optional[float] = Field(None, gt=0)
    padding: float = Field(0.1, ge=0.0, lt=0.5)
    options: SynthesisOptions = SynthesisOptions()
    name: Optional[str] = None


class SynthesisResponse(BaseModel):
    route: Route
    waypoints: List[GeoPoint]
    stage: str
    warnings: List[str] = []
