# trailtrace/services/osrm_oracle.py
from typing import Any, Dict, List, Optional, Sequence

import httpx

from trailtrace.core.logger import logger
from trailtrace.models.geometry import GeoPoint
from trailtrace.models.routing import RoadSegment, RouteCandidate, RouteProfile
from trailtrace.services.oracle import (
    MalformedResponseError,
    OracleUnavailableError,
    RateLimitedError,
)


def format_coordinates(points: Sequence[GeoPoint]) -> str:
    """
    Convert points to OSRM's 'lng,lat;lng,lat;...' path format.
    """
    return ";".join(f"{p.lng},{p.lat}" for p in points)


def _to_geopoint(location: Any) -> GeoPoint:
    # OSRM returns [lng, lat]
    try:
        return GeoPoint(lat=float(location[1]), lng=float(location[0]))
    except (TypeError, ValueError, IndexError) as exc:
        raise MalformedResponseError(f"Invalid OSRM location: {location!r}") from exc


class OSRMOracle:
    """
    Routing oracle backed by an OSRM HTTP server.

    Sole responsibility: talk to OSRM and normalise its JSON into
    GeoPoint / RouteCandidate. Every failure is raised as an OracleError.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not base_url:
            raise ValueError("OSRM base URL not set.")

        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        logger.info(f"OSRMOracle initialised for {self.base_url} (timeout={timeout_s:.1f}s)")

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def nearest(self, point: GeoPoint, profile: RouteProfile) -> GeoPoint:
        url = f"{self.base_url}/nearest/v1/{profile.value}/{point.lng},{point.lat}"
        data = await self._get_json(url, params={"number": "1"})

        waypoints = data.get("waypoints")
        if not isinstance(waypoints, list) or not waypoints:
            raise MalformedResponseError("OSRM nearest response has no waypoints")

        location = waypoints[0].get("location") if isinstance(waypoints[0], dict) else None
        if location is None:
            raise MalformedResponseError("OSRM nearest waypoint has no location")
        return _to_geopoint(location)

    async def route(
        self,
        waypoints: Sequence[GeoPoint],
        profile: RouteProfile,
        alternatives: int = 0,
        steps: bool = False,
        simplified: bool = False,
    ) -> List[RouteCandidate]:
        if len(waypoints) < 2:
            raise ValueError("At least two waypoints are required to compute a route.")

        url = f"{self.base_url}/route/v1/{profile.value}/{format_coordinates(waypoints)}"
        params = {
            "overview": "simplified" if simplified else "full",
            "geometries": "geojson",
            "steps": "true" if steps else "false",
        }
        if alternatives > 0:
            params["alternatives"] = str(alternatives)

        data = await self._get_json(url, params=params)

        routes = data.get("routes")
        if not isinstance(routes, list) or not routes:
            raise MalformedResponseError("OSRM route response has no routes")

        try:
            candidates = [self._parse_route(r) for r in routes]
        except (TypeError, ValueError, AttributeError) as exc:
            raise MalformedResponseError(f"Unparseable OSRM route: {exc}") from exc
        logger.debug(
            f"OSRM returned {len(candidates)} candidate(s) for {len(waypoints)} waypoints"
        )
        return candidates

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    async def _get_json(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise OracleUnavailableError(f"OSRM request timed out: {url}") from exc
        except httpx.HTTPError as exc:
            raise OracleUnavailableError(f"OSRM request failed: {exc}") from exc

        if response.status_code == 429:
            raise RateLimitedError("OSRM rate limit reached")
        if response.status_code != 200:
            raise OracleUnavailableError(
                f"OSRM API error ({response.status_code}): {response.reason_phrase}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError("OSRM returned a non-JSON body") from exc

        if not isinstance(data, dict):
            raise MalformedResponseError("OSRM returned an unexpected JSON document")
        if data.get("code") == "TooManyRequests":
            raise RateLimitedError(data.get("message", "OSRM rate limit reached"))
        if data.get("code") != "Ok":
            raise MalformedResponseError(
                f"OSRM error: {data.get('code')} {data.get('message', 'Unknown error')}"
            )
        return data

    def _parse_route(self, route: Any) -> RouteCandidate:
        if not isinstance(route, dict):
            raise MalformedResponseError("OSRM route entry is not an object")

        geometry = route.get("geometry")
        if (
            not isinstance(geometry, dict)
            or geometry.get("type") != "LineString"
            or not isinstance(geometry.get("coordinates"), list)
        ):
            raise MalformedResponseError("OSRM route has no GeoJSON LineString geometry")

        coordinates = [_to_geopoint(c) for c in geometry["coordinates"]]

        segments: List[RoadSegment] = []
        for leg in route.get("legs") or []:
            for step in (leg or {}).get("steps") or []:
                segments.append(self._parse_step(step))

        try:
            distance_m = float(route.get("distance") or 0.0)
            duration_s = float(route.get("duration") or 0.0)
        except (TypeError, ValueError) as exc:
            raise MalformedResponseError("OSRM route distance/duration is not numeric") from exc

        return RouteCandidate(
            coordinates=coordinates,
            distance_m=distance_m,
            duration_s=duration_s,
            segments=segments,
        )

    @staticmethod
    def _parse_step(step: Dict[str, Any]) -> RoadSegment:
        # Road classes live on the intersections of a step, e.g. ["motorway", "toll"]
        classes: List[str] = []
        for intersection in step.get("intersections") or []:
            for cls in (intersection or {}).get("classes") or []:
                if cls not in classes:
                    classes.append(cls)

        return RoadSegment(
            distance_m=float(step.get("distance") or 0.0),
            name=str(step.get("name") or ""),
            ref=str(step.get("ref") or ""),
            road_class=",".join(classes),
        )
