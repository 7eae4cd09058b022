# trailtrace/services/factory.py
"""
Builds the service graph from Settings.
"""
from trailtrace.core.config import Settings
from trailtrace.core.logger import logger
from trailtrace.services.candidate_selector import CandidateSelector
from trailtrace.services.graph_manager import GraphManager
from trailtrace.services.oracle import RoutingOracle
from trailtrace.services.osrm_oracle import OSRMOracle
from trailtrace.services.post_processor import RoutePostProcessor
from trailtrace.services.road_client import RoadRoutingClient
from trailtrace.services.routing_service import RoutingService
from trailtrace.services.simplifier import PlanarSimplifier
from trailtrace.services.snap_cache import snap_cache
from trailtrace.services.synthesis_service import SynthesisService
from trailtrace.services.tour_optimizer import WaypointTourOptimizer


def build_oracle(settings: Settings) -> RoutingOracle:
    backend = settings.ROUTING_BACKEND.lower()
    if backend == "osrm":
        return OSRMOracle(settings.OSRM_BASE_URL, timeout_s=settings.ORACLE_TIMEOUT_S)
    if backend == "osmnx":
        return GraphManager()
    raise ValueError(f"Unknown ROUTING_BACKEND: {settings.ROUTING_BACKEND!r}")


def build_client(oracle: RoutingOracle, settings: Settings) -> RoadRoutingClient:
    snap_cache.capacity = settings.SNAP_CACHE_SIZE
    snap_cache.precision = settings.SNAP.cache_precision
    return RoadRoutingClient(
        oracle,
        cache=snap_cache,
        timeout_s=settings.ORACLE_TIMEOUT_S,
        close_enough_m=settings.SNAP.close_enough_m,
        batch_size=settings.SNAP_BATCH_SIZE,
        batch_delay_s=settings.SNAP_BATCH_DELAY_S,
    )


def build_routing_service(client: RoadRoutingClient, settings: Settings) -> RoutingService:
    return RoutingService(
        client,
        selector=CandidateSelector(settings.SELECTION),
        post_processor=RoutePostProcessor(settings.CLEANUP),
        alternatives=settings.ROUTE_ALTERNATIVES,
    )


def build_synthesis_service(client: RoadRoutingClient, settings: Settings) -> SynthesisService:
    logger.info(
        f"Synthesis service using {type(client.oracle).__name__} "
        f"(max {settings.MAX_CONSECUTIVE_FAILURES} consecutive failures)"
    )
    return SynthesisService(
        client,
        simplifier=PlanarSimplifier(settings.SIMPLIFIER),
        selector=CandidateSelector(settings.SELECTION),
        post_processor=RoutePostProcessor(settings.CLEANUP),
        optimizer=WaypointTourOptimizer(client, call_delay_s=settings.MATRIX_CALL_DELAY_S),
        segment_delay_s=settings.SEGMENT_DELAY_S,
        max_consecutive_failures=settings.MAX_CONSECUTIVE_FAILURES,
        alternatives=settings.ROUTE_ALTERNATIVES,
        closed_path_threshold_px=settings.SIMPLIFIER.closed_path_threshold_px,
    )
