# trailtrace/services/road_client.py
import asyncio
from typing import List, Optional, Sequence

from trailtrace.core.logger import logger
from trailtrace.models.geometry import GeoPoint
from trailtrace.models.routing import RouteCandidate, RouteProfile
from trailtrace.services.geo import haversine_m, straight_line_candidate
from trailtrace.services.oracle import OracleError, RateLimitedError, RoutingOracle
from trailtrace.services.snap_cache import SnapCache, snap_cache


class RoadRoutingClient:
    """
    Failure-tolerant front for a RoutingOracle.

    Every oracle call gets a bounded wait. Timeouts, oracle errors and
    malformed answers never escape: they are logged as warnings and turned
    into the documented fallback (the original point, a straight line, or
    None from the try_* methods so callers can count failures).
    """

    def __init__(
        self,
        oracle: RoutingOracle,
        cache: Optional[SnapCache] = None,
        timeout_s: float = 10.0,
        close_enough_m: float = 10.0,
        batch_size: int = 10,
        batch_delay_s: float = 0.05,
    ) -> None:
        self.oracle = oracle
        self.cache = cache if cache is not None else snap_cache
        self.timeout_s = timeout_s
        self.close_enough_m = close_enough_m
        self.batch_size = max(1, batch_size)
        self.batch_delay_s = batch_delay_s

    # ------------------------------------------------------------------ #
    # Snapping
    # ------------------------------------------------------------------ #

    async def nearest(self, point: GeoPoint, profile: RouteProfile) -> GeoPoint:
        """
        Snap a point to the road network, or return it unchanged on failure.

        A snap within close_enough_m of the input returns the input itself,
        so points already on a road do not jitter.
        """
        snapped = self.cache.get(point, profile)
        if snapped is None:
            try:
                snapped = await asyncio.wait_for(
                    self.oracle.nearest(point, profile), timeout=self.timeout_s
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Nearest-road lookup timed out after {self.timeout_s:.1f}s, "
                    f"keeping ({point.lat:.6f}, {point.lng:.6f})"
                )
                return point
            except RateLimitedError:
                logger.warning("Routing oracle rate limit reached, returning original coordinate")
                return point
            except OracleError as exc:
                logger.warning(f"Nearest-road lookup failed ({exc}), returning original coordinate")
                return point

            self.cache.put(point, profile, snapped)
        else:
            logger.debug(f"Snap cache hit for ({point.lat:.6f}, {point.lng:.6f})")

        if haversine_m(point, snapped) < self.close_enough_m:
            return point
        return snapped

    async def snap_many(self, points: Sequence[GeoPoint], profile: RouteProfile) -> List[GeoPoint]:
        """
        Snap points in parallel batches of batch_size with a short pause
        between batches. Output order matches input order.
        """
        results: List[GeoPoint] = []

        for start in range(0, len(points), self.batch_size):
            batch = points[start:start + self.batch_size]
            results.extend(await asyncio.gather(*(self.nearest(p, profile) for p in batch)))

            if start + self.batch_size < len(points) and self.batch_delay_s > 0:
                await asyncio.sleep(self.batch_delay_s)

        return results

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #

    async def try_route(
        self,
        waypoints: Sequence[GeoPoint],
        profile: RouteProfile,
        alternatives: int = 0,
        steps: bool = False,
        simplified: bool = False,
    ) -> Optional[List[RouteCandidate]]:
        """
        Ask the oracle for candidates; None when it cannot answer.
        """
        try:
            candidates = await asyncio.wait_for(
                self.oracle.route(
                    waypoints,
                    profile,
                    alternatives=alternatives,
                    steps=steps,
                    simplified=simplified,
                ),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Routing oracle timed out after {self.timeout_s:.1f}s")
            return None
        except RateLimitedError:
            logger.warning("Routing oracle rate limit reached")
            return None
        except OracleError as exc:
            logger.warning(f"Routing oracle failed: {exc}")
            return None

        usable = [c for c in candidates if len(c.coordinates) >= 2]
        if not usable:
            logger.warning("Routing oracle returned no usable geometry")
            return None
        return usable

    async def route(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        profile: RouteProfile,
        alternatives: int = 0,
        steps: bool = False,
    ) -> List[RouteCandidate]:
        """
        Candidates between two points; a single straight-line candidate on failure.
        """
        candidates = await self.try_route(
            [origin, destination],
            profile,
            alternatives=alternatives,
            steps=steps,
            simplified=alternatives > 0,
        )
        if candidates is None:
            return [straight_line_candidate(origin, destination)]
        return candidates

    async def road_distance_km(
        self, origin: GeoPoint, destination: GeoPoint, profile: RouteProfile
    ) -> Optional[float]:
        candidates = await self.try_route([origin, destination], profile)
        if candidates is None:
            return None
        return candidates[0].distance_m / 1000.0
