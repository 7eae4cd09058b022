# trailtrace/services/tour_optimizer.py
import asyncio
from typing import Callable, List, Optional, Sequence

import networkx as nx

from trailtrace.core.errors import SynthesisCancelled
from trailtrace.core.logger import logger
from trailtrace.models.geometry import GeoPoint
from trailtrace.models.routing import RouteProfile
from trailtrace.services.geo import haversine_km
from trailtrace.services.road_client import RoadRoutingClient


class PairwiseDistanceCache:
    """
    Symmetric road distances (km) between waypoint indices.

    Backed by an undirected networkx graph: one edge per measured pair.
    Lives for a single optimisation call.
    """

    def __init__(self, size: int) -> None:
        self.graph = nx.Graph()
        self.graph.add_nodes_from(range(size))

    def get(self, i: int, j: int) -> Optional[float]:
        if i == j:
            return 0.0
        data = self.graph.get_edge_data(i, j)
        return None if data is None else data["km"]

    def put(self, i: int, j: int, km: float, source: str) -> None:
        self.graph.add_edge(i, j, km=km, source=source)

    def __len__(self) -> int:
        return self.graph.number_of_edges()


class WaypointTourOptimizer:
    """
    Reorders waypoints to cut obviously wasteful back-and-forth travel.

    Greedy nearest-neighbour construction from waypoint 0 over road
    distances. This is a heuristic: the resulting order is not guaranteed
    to be the shortest tour, only a permutation of the input that is
    usually much better than a poor drawing order.

    Cost: one oracle call per unordered pair, issued sequentially with a
    small pause between calls.
    """

    def __init__(self, client: RoadRoutingClient, call_delay_s: float = 0.01) -> None:
        self.client = client
        self.call_delay_s = call_delay_s

    async def build_distance_cache(
        self,
        points: Sequence[GeoPoint],
        profile: RouteProfile,
        is_cancelled: Callable[[], bool] = lambda: False,
    ) -> PairwiseDistanceCache:
        cache = PairwiseDistanceCache(len(points))
        calls = 0

        for i in range(len(points)):
            for j in range(i + 1, len(points)):
                if cache.get(i, j) is not None:
                    continue
                if is_cancelled():
                    raise SynthesisCancelled("optimizing")

                if calls and self.call_delay_s > 0:
                    await asyncio.sleep(self.call_delay_s)
                calls += 1

                km = await self.client.road_distance_km(points[i], points[j], profile)
                if km is None:
                    cache.put(i, j, haversine_km(points[i], points[j]), source="straight")
                else:
                    cache.put(i, j, km, source="road")

        fallbacks = sum(1 for _, _, s in cache.graph.edges(data="source") if s == "straight")
        logger.info(
            f"Distance matrix for {len(points)} waypoints: {calls} oracle calls, "
            f"{fallbacks} straight-line fallbacks"
        )
        return cache

    @staticmethod
    def nearest_neighbour_order(size: int, cache: PairwiseDistanceCache) -> List[int]:
        """
        Visit order starting at index 0, always moving to the closest
        unvisited index (ties go to the lower index).
        """
        if size == 0:
            return []

        order = [0]
        unvisited = set(range(1, size))
        current = 0

        def distance_from_current(i: int) -> tuple:
            km = cache.get(current, i)
            return (float("inf") if km is None else km, i)

        while unvisited:
            nearest = min(unvisited, key=distance_from_current)
            order.append(nearest)
            unvisited.remove(nearest)
            current = nearest

        return order

    async def optimize(
        self,
        points: Sequence[GeoPoint],
        profile: RouteProfile,
        is_cancelled: Callable[[], bool] = lambda: False,
    ) -> List[GeoPoint]:
        """
        Return `points` permuted into the discovered visiting order.
        Fewer than 3 points are returned unchanged.
        """
        if len(points) < 3:
            return list(points)

        cache = await self.build_distance_cache(points, profile, is_cancelled)
        order = self.nearest_neighbour_order(len(points), cache)
        logger.debug(f"Waypoint visiting order: {order}")
        return [points[i] for i in order]
