# trailtrace/services/oracle.py
"""
The narrow interface every road-routing backend implements.

Implementations raise the OracleError family for anything that is not a
usable answer; RoadRoutingClient is the only caller that turns those
errors into fallbacks.
"""
from typing import List, Protocol, Sequence, runtime_checkable

from trailtrace.models.geometry import GeoPoint
from trailtrace.models.routing import RouteCandidate, RouteProfile


class OracleError(Exception):
    """Base class for routing-oracle failures."""


class OracleUnavailableError(OracleError):
    """Transport failure, timeout or non-success status."""


class RateLimitedError(OracleUnavailableError):
    """The oracle explicitly asked us to slow down (HTTP 429)."""


class MalformedResponseError(OracleError):
    """A success status whose body lacks the expected fields."""


@runtime_checkable
class RoutingOracle(Protocol):
    async def nearest(self, point: GeoPoint, profile: RouteProfile) -> GeoPoint:
        """
        Closest point on the routable network.
        """
        ...

    async def route(
        self,
        waypoints: Sequence[GeoPoint],
        profile: RouteProfile,
        alternatives: int = 0,
        steps: bool = False,
        simplified: bool = False,
    ) -> List[RouteCandidate]:
        """
        One or more candidate geometries visiting `waypoints` in order.
        """
        ...

    async def aclose(self) -> None:
        ...
