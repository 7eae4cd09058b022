# tests/conftest.py
import asyncio
import os
import sys
from typing import List, Sequence

import pytest

# Add the project root directory to sys.path so that "import trailtrace" works
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from trailtrace.models.geometry import GeoPoint  # noqa: E402
from trailtrace.models.routing import RouteCandidate, RouteProfile  # noqa: E402
from trailtrace.services.geo import haversine_m, path_length_m  # noqa: E402
from trailtrace.services.oracle import OracleUnavailableError  # noqa: E402
from trailtrace.services.road_client import RoadRoutingClient  # noqa: E402
from trailtrace.services.snap_cache import SnapCache  # noqa: E402


class StraightLineOracle:
    """
    Answers every route with the waypoints themselves and every snap
    with the point itself (shifted by `snap_offset` degrees of latitude).
    """

    def __init__(self, snap_offset: float = 0.0) -> None:
        self.snap_offset = snap_offset
        self.nearest_calls: List[GeoPoint] = []
        self.route_calls: List[List[GeoPoint]] = []

    async def nearest(self, point: GeoPoint, profile: RouteProfile) -> GeoPoint:
        self.nearest_calls.append(point)
        return GeoPoint(lat=point.lat + self.snap_offset, lng=point.lng)

    async def route(self, waypoints, profile, alternatives=0, steps=False, simplified=False):
        self.route_calls.append(list(waypoints))
        return [RouteCandidate(coordinates=list(waypoints), distance_m=path_length_m(waypoints))]

    async def aclose(self) -> None:
        pass


class FailingOracle:
    def __init__(self) -> None:
        self.nearest_calls = 0
        self.route_calls = 0

    async def nearest(self, point, profile):
        self.nearest_calls += 1
        raise OracleUnavailableError("connection refused")

    async def route(self, waypoints, profile, alternatives=0, steps=False, simplified=False):
        self.route_calls += 1
        raise OracleUnavailableError("connection refused")

    async def aclose(self) -> None:
        pass


class ScriptedOracle(StraightLineOracle):
    """
    Route calls consume `outcomes` in order: True answers with a straight
    line, False fails. Once exhausted every call succeeds.
    """

    def __init__(self, outcomes: Sequence[bool]) -> None:
        super().__init__()
        self.outcomes = list(outcomes)

    async def route(self, waypoints, profile, alternatives=0, steps=False, simplified=False):
        ok = self.outcomes.pop(0) if self.outcomes else True
        if not ok:
            self.route_calls.append(list(waypoints))
            raise OracleUnavailableError("scripted failure")
        return await super().route(waypoints, profile, alternatives, steps, simplified)


class DenseLineOracle(StraightLineOracle):
    """
    Like StraightLineOracle but every leg comes back sampled roughly every
    `spacing_m` metres, the way real road geometry arrives.
    """

    def __init__(self, spacing_m: float = 20.0) -> None:
        super().__init__()
        self.spacing_m = spacing_m

    async def route(self, waypoints, profile, alternatives=0, steps=False, simplified=False):
        self.route_calls.append(list(waypoints))
        coords = densify(waypoints, self.spacing_m)
        return [RouteCandidate(coordinates=coords, distance_m=path_length_m(coords))]


def densify(points: Sequence[GeoPoint], spacing_m: float = 20.0) -> List[GeoPoint]:
    """
    Linearly interpolate each leg of `points` at about `spacing_m` metres.
    """
    result = [points[0]]
    for a, b in zip(points[:-1], points[1:]):
        steps = max(1, int(haversine_m(a, b) // spacing_m))
        for i in range(1, steps + 1):
            t = i / steps
            result.append(GeoPoint(lat=a.lat + (b.lat - a.lat) * t, lng=a.lng + (b.lng - a.lng) * t))
    return result


class SlowOracle(StraightLineOracle):
    async def nearest(self, point, profile):
        await asyncio.sleep(1.0)
        return await super().nearest(point, profile)

    async def route(self, waypoints, profile, alternatives=0, steps=False, simplified=False):
        await asyncio.sleep(1.0)
        return await super().route(waypoints, profile, alternatives, steps, simplified)


def make_client(oracle, **kwargs) -> RoadRoutingClient:
    """
    Client with its own cache and no pauses between calls.
    """
    kwargs.setdefault("cache", SnapCache())
    kwargs.setdefault("batch_delay_s", 0.0)
    return RoadRoutingClient(oracle, **kwargs)


@pytest.fixture
def straight_oracle() -> StraightLineOracle:
    return StraightLineOracle()


@pytest.fixture
def failing_oracle() -> FailingOracle:
    return FailingOracle()


@pytest.fixture
def la_points() -> List[GeoPoint]:
    """
    Six waypoints heading east across Los Angeles with a gentle zigzag.
    """
    return [
        GeoPoint(lat=34.0 + (0.005 if i % 2 else 0.0), lng=-118.30 + i * 0.01)
        for i in range(6)
    ]
