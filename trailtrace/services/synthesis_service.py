# trailtrace/services/synthesis_service.py

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter
from typing import Callable, List, Optional, Sequence, Tuple

from trailtrace.core.errors import InvalidInputError, SynthesisCancelled
from trailtrace.core.logger import logger
from trailtrace.models.geometry import GeographicBounds, GeoPoint, PlanarPoint
from trailtrace.models.routing import Route, RouteProfile, RouteStyle, SynthesisOptions
from trailtrace.services.candidate_selector import CandidateSelector
from trailtrace.services.post_processor import RoutePostProcessor, points_close
from trailtrace.services.projector import (
    DEFAULT_ANCHOR_SCALE,
    project_from_anchor,
    project_to_bounds,
)
from trailtrace.services.road_client import RoadRoutingClient
from trailtrace.services.simplifier import PlanarSimplifier, is_closed_path
from trailtrace.services.tour_optimizer import WaypointTourOptimizer

DRAWN_ROUTE_NAME = "Drawn Route"
DRAWN_ROUTE_COLOR = "#f97316"


class SynthesisStage(str, Enum):
    IDLE = "idle"
    SIMPLIFYING = "simplifying"
    PROJECTING = "projecting"
    OPTIMIZING = "optimizing"
    ROUTING_SEGMENTS = "routing_segments"
    POST_PROCESSING = "post_processing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SynthesisProgress:
    """
    Stage of one synthesis call; the cancel check runs on every transition.
    """
    is_cancelled: Callable[[], bool] = lambda: False
    stage: SynthesisStage = SynthesisStage.IDLE

    @classmethod
    def for_event(cls, cancel_event: Optional[asyncio.Event]) -> "SynthesisProgress":
        if cancel_event is None:
            return cls()
        return cls(is_cancelled=cancel_event.is_set)

    def enter(self, stage: SynthesisStage) -> None:
        if self.is_cancelled():
            raise SynthesisCancelled(stage.value)
        logger.debug(f"Synthesis stage: {self.stage.value} -> {stage.value}")
        self.stage = stage


@dataclass
class RoadAlignment:
    coordinates: List[GeoPoint]
    stage: SynthesisStage
    warnings: List[str] = field(default_factory=list)


@dataclass
class SynthesisResult:
    route: Route
    waypoints: List[GeoPoint]
    stage: SynthesisStage
    warnings: List[str] = field(default_factory=list)


class SynthesisService:
    """
    Freehand trace -> road-following route.

    trace -> simplify -> project -> [snap] -> [reorder] -> route each edge
    (or one multi-waypoint call) -> concatenate -> post-process.

    Oracle trouble never fails a synthesis: edges fall back to straight
    lines and a dead oracle yields the projected waypoints themselves.
    Only invalid input raises (InvalidInputError), and a set cancel event
    raises SynthesisCancelled instead of returning a partial route.
    """

    def __init__(
        self,
        client: RoadRoutingClient,
        simplifier: Optional[PlanarSimplifier] = None,
        selector: Optional[CandidateSelector] = None,
        post_processor: Optional[RoutePostProcessor] = None,
        optimizer: Optional[WaypointTourOptimizer] = None,
        segment_delay_s: float = 0.05,
        max_consecutive_failures: int = 3,
        alternatives: int = 3,
        closed_path_threshold_px: float = 20.0,
    ) -> None:
        self.client = client
        self.simplifier = simplifier or PlanarSimplifier()
        self.selector = selector or CandidateSelector()
        self.post_processor = post_processor or RoutePostProcessor()
        self.optimizer = optimizer or WaypointTourOptimizer(client)
        self.segment_delay_s = segment_delay_s
        self.max_consecutive_failures = max_consecutive_failures
        self.alternatives = alternatives
        self.closed_path_threshold_px = closed_path_threshold_px

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def synthesize(
        self,
        trace: Sequence[PlanarPoint],
        bounds: Optional[GeographicBounds] = None,
        anchor: Optional[GeoPoint] = None,
        scale: Optional[float] = None,
        padding: float = 0.1,
        canvas_width: Optional[float] = None,
        canvas_height: Optional[float] = None,
        options: Optional[SynthesisOptions] = None,
        name: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SynthesisResult:
        """
        Main entry point for the /route/synthesize endpoint.

        1. Simplify the trace to waypoints.
        2. Project them (bounded-fit with `bounds`, anchored with `anchor`).
        3. Optionally snap the waypoints to roads.
        4. Align to roads (see snap_to_roads).
        """
        options = options or SynthesisOptions()
        self._validate(trace, bounds, anchor, canvas_width, canvas_height)
        progress = SynthesisProgress.for_event(cancel_event)
        t0 = perf_counter()

        # 1) Simplify
        progress.enter(SynthesisStage.SIMPLIFYING)
        planar = self.simplifier.select_waypoints(
            trace,
            min_points=options.min_points,
            max_points=options.max_points,
            preserve_curves=options.preserve_curves,
        )
        closed = is_closed_path(trace, self.closed_path_threshold_px)
        logger.info(
            f"Simplified trace of {len(trace)} points to {len(planar)} waypoints "
            f"(closed={closed})"
        )

        # 2) Project
        progress.enter(SynthesisStage.PROJECTING)
        if bounds is not None:
            waypoints = project_to_bounds(planar, bounds, padding)
        else:
            waypoints = project_from_anchor(planar, anchor, scale or DEFAULT_ANCHOR_SCALE)

        # 3) Optional snapping of the waypoints themselves
        if options.snap_waypoints:
            t_snap0 = perf_counter()
            waypoints = await self.client.snap_many(waypoints, options.profile)
            logger.info(
                f"Snapped {len(waypoints)} waypoints in "
                f"{(perf_counter() - t_snap0) * 1000.0:.2f} ms"
            )

        # 4) Roads
        alignment = await self.snap_to_roads(
            waypoints,
            profile=options.profile,
            preserve_shape=options.preserve_shape,
            avoid_restricted_roads=options.avoid_restricted_roads,
            optimize_order=options.optimize_order,
            closed=closed,
            progress=progress,
        )

        route = Route(
            name=name or DRAWN_ROUTE_NAME,
            coordinates=alignment.coordinates,
            style=RouteStyle(color=DRAWN_ROUTE_COLOR),
        )
        logger.info(
            f"Route synthesis finished with {len(route.coordinates)} points in "
            f"{(perf_counter() - t0) * 1000.0:.2f} ms ({len(alignment.warnings)} warnings)"
        )
        return SynthesisResult(
            route=route,
            waypoints=list(waypoints),
            stage=alignment.stage,
            warnings=alignment.warnings,
        )

    async def snap_to_roads(
        self,
        waypoints: Sequence[GeoPoint],
        profile: RouteProfile = RouteProfile.WALKING,
        preserve_shape: bool = True,
        avoid_restricted_roads: bool = True,
        optimize_order: bool = False,
        closed: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
        progress: Optional[SynthesisProgress] = None,
    ) -> RoadAlignment:
        """
        Turn ordered waypoints into a road-following polyline.

        With fewer than 2 waypoints the input is returned unmodified.
        """
        progress = progress or SynthesisProgress.for_event(cancel_event)

        if len(waypoints) < 2:
            progress.stage = SynthesisStage.FAILED
            logger.warning(
                f"Cannot route {len(waypoints)} waypoint(s); returning input unmodified"
            )
            return RoadAlignment(list(waypoints), progress.stage, ["Fewer than 2 usable waypoints"])

        points = list(waypoints)
        # Decided before the repeated start is dropped: [A, B, A] still closes back to A
        close_loop = closed and len(points) > 2
        # A closed drawing that repeats its start is re-closed by the wraparound edge
        if close_loop and points_close(
            points[0], points[-1], self.post_processor.tuning.duplicate_epsilon_deg
        ):
            points.pop()

        if optimize_order and len(points) > 2:
            progress.enter(SynthesisStage.OPTIMIZING)
            t_opt0 = perf_counter()
            points = await self.optimizer.optimize(points, profile, progress.is_cancelled)
            logger.info(
                f"Waypoint order optimised in {(perf_counter() - t_opt0) * 1000.0:.2f} ms"
            )

        progress.enter(SynthesisStage.ROUTING_SEGMENTS)
        if preserve_shape:
            concatenated, warnings = await self._route_edges(
                points, profile, avoid_restricted_roads, close_loop, progress.is_cancelled
            )
        else:
            concatenated, warnings = await self._route_whole(
                points, profile, avoid_restricted_roads, close_loop
            )

        progress.enter(SynthesisStage.POST_PROCESSING)
        cleaned = self.post_processor.clean(concatenated)

        progress.enter(SynthesisStage.DONE)
        logger.info(
            f"Road alignment: {len(points)} waypoints -> {len(concatenated)} routed points "
            f"-> {len(cleaned)} after cleanup"
        )
        return RoadAlignment(cleaned, progress.stage, warnings)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    async def _route_edges(
        self,
        points: List[GeoPoint],
        profile: RouteProfile,
        avoid_restricted_roads: bool,
        close_loop: bool,
        is_cancelled: Callable[[], bool],
    ) -> Tuple[List[GeoPoint], List[str]]:
        """
        Route edge by edge (plus the wraparound edge for closed shapes) and
        concatenate, skipping the join point shared by consecutive edges.

        After max_consecutive_failures failed edges in a row the oracle is
        no longer asked and the remaining edges become straight lines.
        """
        edges = list(zip(points[:-1], points[1:]))
        if close_loop:
            edges.append((points[-1], points[0]))

        epsilon = self.post_processor.tuning.duplicate_epsilon_deg
        concatenated: List[GeoPoint] = [points[0]]
        warnings: List[str] = []
        consecutive_failures = 0
        exhausted = False

        for index, (start, end) in enumerate(edges):
            if is_cancelled():
                raise SynthesisCancelled(SynthesisStage.ROUTING_SEGMENTS.value)

            if points_close(start, end, epsilon):
                continue

            geometry = [start, end]
            if not exhausted:
                candidates = await self.client.try_route(
                    [start, end],
                    profile,
                    alternatives=self.alternatives,
                    steps=avoid_restricted_roads,
                    simplified=True,
                )
                if candidates is None:
                    consecutive_failures += 1
                    if consecutive_failures >= self.max_consecutive_failures:
                        exhausted = True
                        message = (
                            f"{consecutive_failures} consecutive routing failures; "
                            f"remaining {len(edges) - index - 1} edge(s) drawn as straight lines"
                        )
                        logger.warning(message)
                        warnings.append(message)
                else:
                    consecutive_failures = 0
                    best = self.selector.select(
                        candidates,
                        start,
                        end,
                        prefer_straight=True,
                        avoid_restricted_roads=avoid_restricted_roads,
                    )
                    if best is not None:
                        geometry = self.post_processor.clean_geometry(best[0].coordinates)

            concatenated.extend(geometry[1:])

            if index < len(edges) - 1 and not exhausted and self.segment_delay_s > 0:
                await asyncio.sleep(self.segment_delay_s)

        return concatenated, warnings

    async def _route_whole(
        self,
        points: List[GeoPoint],
        profile: RouteProfile,
        avoid_restricted_roads: bool,
        close_loop: bool,
    ) -> Tuple[List[GeoPoint], List[str]]:
        """
        One multi-waypoint oracle call; the best candidate is used as-is.
        """
        stops = points + [points[0]] if close_loop else points
        candidates = await self.client.try_route(
            stops,
            profile,
            alternatives=self.alternatives,
            steps=avoid_restricted_roads,
            simplified=True,
        )
        if candidates is None:
            message = "Routing oracle unavailable; returning waypoints as straight lines"
            logger.warning(message)
            return list(stops), [message]

        best = self.selector.select(
            candidates,
            stops[0],
            stops[-1],
            prefer_straight=True,
            avoid_restricted_roads=avoid_restricted_roads,
        )
        if best is None:
            return list(stops), ["Routing oracle returned no usable geometry"]
        return list(best[0].coordinates), []

    @staticmethod
    def _validate(
        trace: Sequence[PlanarPoint],
        bounds: Optional[GeographicBounds],
        anchor: Optional[GeoPoint],
        canvas_width: Optional[float],
        canvas_height: Optional[float],
    ) -> None:
        if len(trace) < 2:
            raise InvalidInputError("Please draw a route with at least 2 points")
        if (bounds is None) == (anchor is None):
            raise InvalidInputError("Provide exactly one of bounds or anchor")
        for label, value in (("canvas_width", canvas_width), ("canvas_height", canvas_height)):
            if value is not None and value <= 0:
                raise InvalidInputError(f"{label} must be positive, got {value}")
