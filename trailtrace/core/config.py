# trailtrace/core/config.py
from typing import List

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class SimplifierTuning(BaseModel):
    """
    Thresholds used when reducing a freehand trace to waypoints (pixels/degrees).
    """
    min_distance_px: float = 8.0
    curvature_threshold_deg: float = 30.0
    tolerance_fraction: float = 0.01
    strong_tolerance_fraction: float = 0.015
    closed_path_threshold_px: float = 20.0


class SelectionTuning(BaseModel):
    """
    Weights for scoring oracle candidates against each other.

    A restricted road is matched either by its class or by the name/ref
    indicators below.
    """
    restricted_km_penalty: float = 0.5
    restricted_segment_penalty: float = 0.1
    penalty_floor: float = 0.2
    restricted_classes: List[str] = ["motorway", "motorway_link", "trunk", "trunk_link"]
    restricted_indicators: List[str] = [
        "highway",
        "freeway",
        "interstate",
        "i-",
        "us-",
        "state route",
        "sr-",
        "parkway",
        "expressway",
        "turnpike",
    ]


class CleanupTuning(BaseModel):
    """
    Heuristic thresholds of the route post-processor.

    progress_tolerance and backtrack_tolerance_deg have no derivation
    behind them; treat them as tunable.
    """
    duplicate_epsilon_deg: float = 1e-5
    loop_granularity_deg: float = 0.001
    progress_tolerance: float = 0.05
    backtrack_tolerance_deg: float = 20.0


class SnapTuning(BaseModel):
    close_enough_m: float = 10.0
    cache_precision: int = 5


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables (.env file).

    Nested tuning values can be overridden with a double underscore,
    e.g. CLEANUP__BACKTRACK_TOLERANCE_DEG=25.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    APP_NAME: str = "TrailTrace Route Synthesis API"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Road-routing oracle: "osrm" (HTTP service) or "osmnx" (local OSM graph)
    ROUTING_BACKEND: str = "osrm"
    OSRM_BASE_URL: str = "https://router.project-osrm.org"
    ORACLE_TIMEOUT_S: float = 10.0

    # Rate limiting and caching
    SNAP_CACHE_SIZE: int = 1000
    SNAP_BATCH_SIZE: int = 10
    SNAP_BATCH_DELAY_S: float = 0.05
    SEGMENT_DELAY_S: float = 0.05
    MATRIX_CALL_DELAY_S: float = 0.01
    MAX_CONSECUTIVE_FAILURES: int = 3
    ROUTE_ALTERNATIVES: int = 3

    SIMPLIFIER: SimplifierTuning = SimplifierTuning()
    SELECTION: SelectionTuning = SelectionTuning()
    CLEANUP: CleanupTuning = CleanupTuning()
    SNAP: SnapTuning = SnapTuning()


settings = Settings()
