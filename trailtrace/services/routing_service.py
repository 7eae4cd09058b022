# trailtrace/services/routing_service.py

from time import perf_counter
from typing import List

from trailtrace.core.logger import logger
from trailtrace.models.routing import (
    CandidateScoreModel,
    RouteRequest,
    RouteResponse,
    SnapRequest,
    SnapResponse,
)
from trailtrace.services.candidate_selector import CandidateSelector
from trailtrace.services.geo import path_length_m
from trailtrace.services.post_processor import RoutePostProcessor
from trailtrace.services.road_client import RoadRoutingClient


class RoutingService:
    """
    High-level point-to-point routing service:
    - asks the oracle for alternative candidates
    - scores them (straightness, distance, restricted roads)
    - cleans the chosen geometry of loops and backtracks
    """

    def __init__(
        self,
        client: RoadRoutingClient,
        selector: CandidateSelector | None = None,
        post_processor: RoutePostProcessor | None = None,
        alternatives: int = 3,
    ) -> None:
        self.client = client
        self.selector = selector or CandidateSelector()
        self.post_processor = post_processor or RoutePostProcessor()
        self.alternatives = alternatives
        logger.info("RoutingService initialised.")

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def compute_route(self, request: RouteRequest) -> RouteResponse:
        """
        Main entry point for the /route endpoint.

        1. Fetch candidates (straight line if the oracle is unavailable).
        2. Pick the best-scored candidate.
        3. Remove redundant loops and backtracks from its geometry.
        """
        t0 = perf_counter()
        origin = request.origin
        destination = request.destination

        logger.info(
            f"Received routing request from ({origin.lat:.6f}, {origin.lng:.6f}) -> "
            f"({destination.lat:.6f}, {destination.lng:.6f}) [{request.profile.value}]"
        )

        candidates = await self.client.route(
            origin,
            destination,
            request.profile,
            alternatives=self.alternatives if request.prefer_straight else 0,
            steps=request.avoid_restricted_roads,
        )
        t1 = perf_counter()
        logger.info(f"Oracle returned {len(candidates)} candidate(s) in {(t1 - t0) * 1000.0:.2f} ms")

        # Client.route always returns at least one usable candidate
        chosen, score = self.selector.select(
            candidates,
            origin,
            destination,
            prefer_straight=request.prefer_straight,
            avoid_restricted_roads=request.avoid_restricted_roads,
        )
        coords = self.post_processor.clean_geometry(chosen.coordinates)

        warnings: List[str] = []
        if chosen.synthetic:
            warnings.append("Routing oracle unavailable; straight line returned.")
        if request.avoid_restricted_roads and score.restricted_distance_m > 0:
            warnings.append(
                f"Route uses {score.restricted_distance_m:.0f} m of restricted roads "
                f"across {score.restricted_segments} stretch(es)."
            )

        distance_m = chosen.distance_m or path_length_m(coords)
        logger.info(
            f"Route summary: distance={distance_m:.1f} m, duration={chosen.duration_s:.1f} s, "
            f"score={score.score:.3f}"
        )

        return RouteResponse(
            distance_m=distance_m,
            duration_s=chosen.duration_s,
            coordinates=coords,
            candidates_considered=len(candidates),
            score=CandidateScoreModel(
                straightness=score.straightness,
                restricted_distance_m=score.restricted_distance_m,
                restricted_segments=score.restricted_segments,
                restricted_multiplier=score.restricted_multiplier,
                score=score.score,
            ),
            fallback=chosen.synthetic,
            warnings=warnings,
        )

    async def snap(self, request: SnapRequest) -> SnapResponse:
        t0 = perf_counter()
        snapped = await self.client.snap_many(request.points, request.profile)
        logger.info(
            f"Snapped {len(snapped)} point(s) in {(perf_counter() - t0) * 1000.0:.2f} ms"
        )
        return SnapResponse(points=snapped)
