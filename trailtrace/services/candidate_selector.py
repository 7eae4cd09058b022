# trailtrace/services/candidate_selector.py
import re
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from trailtrace.core.config import SelectionTuning
from trailtrace.models.geometry import GeoPoint
from trailtrace.models.routing import RoadSegment, RouteCandidate
from trailtrace.services.geo import haversine_m, path_length_m

# Interstate (I-5, I10) and US highway (US-101, US 101) references
_INTERSTATE = re.compile(r"^i-?\d+")
_US_HIGHWAY = re.compile(r"^us[- ]?\d+")


@dataclass(frozen=True)
class CandidateScore:
    straightness: float
    restricted_distance_m: float
    restricted_segments: int
    restricted_multiplier: float
    score: float


def straightness_ratio(coordinates: Sequence[GeoPoint], origin: GeoPoint, destination: GeoPoint) -> float:
    """
    Straight-line distance over path length, in (0, 1]; 1 is perfectly straight.
    """
    if len(coordinates) < 2:
        return 0.0

    straight = haversine_m(origin, destination)
    if straight == 0:
        return 1.0

    travelled = path_length_m(coordinates)
    if travelled == 0:
        return 1.0
    return min(1.0, straight / travelled)


class CandidateSelector:
    """
    Picks the best of several oracle candidates for one origin/destination.

    score = straightness * (1 + 1 / (distance_km + 1)) * restricted multiplier

    The highest score wins and ties keep the oracle's earlier candidate.
    """

    def __init__(self, tuning: Optional[SelectionTuning] = None) -> None:
        self.tuning = tuning or SelectionTuning()

    # ------------------------------------------------------------------ #
    # Restricted-road detection
    # ------------------------------------------------------------------ #

    def is_restricted(self, segment: RoadSegment) -> bool:
        classes = [c.strip().lower() for c in re.split(r"[;,]", segment.road_class) if c.strip()]
        if any(c in self.tuning.restricted_classes for c in classes):
            return True

        name = segment.name.lower().strip()
        ref = segment.ref.lower().strip()
        for text in (name, ref):
            if _INTERSTATE.match(text) or _US_HIGHWAY.match(text):
                return True

        combined = f"{name} {ref}"
        if any(t in combined for t in self.tuning.restricted_classes):
            return True
        return any(indicator in combined for indicator in self.tuning.restricted_indicators)

    def restricted_exposure(self, candidate: RouteCandidate) -> Tuple[float, int]:
        """
        Total restricted distance (m) and the number of separate restricted
        stretches (consecutive restricted segments count once).
        """
        distance_m = 0.0
        count = 0
        inside = False

        for segment in candidate.segments:
            if self.is_restricted(segment):
                distance_m += segment.distance_m
                if not inside:
                    count += 1
                    inside = True
            else:
                inside = False

        return distance_m, count

    def restricted_multiplier(self, distance_m: float, count: int) -> float:
        """
        Map exposure to a multiplier in [penalty_floor, 1.0].
        """
        if distance_m <= 0 and count == 0:
            return 1.0

        distance_factor = max(0.0, 1.0 - (distance_m / 1000.0) * self.tuning.restricted_km_penalty)
        segment_factor = max(0.0, 1.0 - count * self.tuning.restricted_segment_penalty)
        return max(self.tuning.penalty_floor, distance_factor * segment_factor)

    # ------------------------------------------------------------------ #
    # Scoring
    # ------------------------------------------------------------------ #

    def score(
        self,
        candidate: RouteCandidate,
        origin: GeoPoint,
        destination: GeoPoint,
        prefer_straight: bool = True,
        avoid_restricted_roads: bool = True,
    ) -> CandidateScore:
        straightness = straightness_ratio(candidate.coordinates, origin, destination)

        restricted_m, restricted_count = self.restricted_exposure(candidate)
        multiplier = (
            self.restricted_multiplier(restricted_m, restricted_count)
            if avoid_restricted_roads
            else 1.0
        )

        if prefer_straight:
            distance_m = candidate.distance_m or path_length_m(candidate.coordinates)
            value = straightness * (1.0 + 1.0 / (distance_m / 1000.0 + 1.0)) * multiplier
        else:
            value = multiplier

        return CandidateScore(
            straightness=straightness,
            restricted_distance_m=restricted_m,
            restricted_segments=restricted_count,
            restricted_multiplier=multiplier,
            score=value,
        )

    def select(
        self,
        candidates: Sequence[RouteCandidate],
        origin: GeoPoint,
        destination: GeoPoint,
        prefer_straight: bool = True,
        avoid_restricted_roads: bool = True,
    ) -> Optional[Tuple[RouteCandidate, CandidateScore]]:
        """
        Best usable candidate and its score, or None when none has geometry.

        Candidates are never filtered out for restricted exposure, so a
        non-empty usable set always yields a route.
        """
        best: Optional[Tuple[RouteCandidate, CandidateScore]] = None

        for candidate in candidates:
            if len(candidate.coordinates) < 2:
                continue
            scored = self.score(
                candidate, origin, destination, prefer_straight, avoid_restricted_roads
            )
            if best is None or scored.score > best[1].score:
                best = (candidate, scored)

        return best
