# trailtrace/services/simplifier.py
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

from trailtrace.core.config import SimplifierTuning
from trailtrace.core.errors import InvalidInputError
from trailtrace.core.logger import logger
from trailtrace.models.geometry import PlanarPoint


@dataclass(frozen=True)
class BoundingBox:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center_x(self) -> float:
        return self.min_x + self.width / 2.0

    @property
    def center_y(self) -> float:
        return self.min_y + self.height / 2.0

    @property
    def diagonal(self) -> float:
        return math.hypot(self.width, self.height)


def bounding_box(points: Sequence[PlanarPoint]) -> BoundingBox:
    if not points:
        raise InvalidInputError("Cannot calculate bounding box of an empty trace")

    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return BoundingBox(min(xs), min(ys), max(xs), max(ys))


def _distance(a: PlanarPoint, b: PlanarPoint) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def perpendicular_distance(point: PlanarPoint, start: PlanarPoint, end: PlanarPoint) -> float:
    """
    Distance from `point` to the segment start-end (clamped to the segment).
    """
    c = end.x - start.x
    d = end.y - start.y
    len_sq = c * c + d * d

    if len_sq == 0:
        return _distance(point, start)

    t = ((point.x - start.x) * c + (point.y - start.y) * d) / len_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(point.x - (start.x + t * c), point.y - (start.y + t * d))


def is_closed_path(points: Sequence[PlanarPoint], threshold: float = 20.0) -> bool:
    """
    A trace is closed when it has at least 3 points and its ends nearly touch.
    """
    if len(points) < 3:
        return False
    return _distance(points[0], points[-1]) < threshold


# ---------------------------------------------------------------------- #
# Index-level building blocks
# ---------------------------------------------------------------------- #


def _douglas_peucker_indices(points: Sequence[PlanarPoint], tolerance: float) -> List[int]:
    """
    Iterative endpoint-fit simplification; returns the kept indices in order.
    """
    n = len(points)
    if n <= 2:
        return list(range(n))

    keep = [False] * n
    keep[0] = keep[n - 1] = True
    stack = [(0, n - 1)]

    while stack:
        first, last = stack.pop()
        max_dist = 0.0
        max_index = first
        for i in range(first + 1, last):
            dist = perpendicular_distance(points[i], points[first], points[last])
            if dist > max_dist:
                max_dist = dist
                max_index = i

        if max_dist > tolerance:
            keep[max_index] = True
            stack.append((first, max_index))
            stack.append((max_index, last))

    return [i for i, kept in enumerate(keep) if kept]


def _even_indices(n: int, count: int) -> List[int]:
    if n <= count:
        return list(range(n))
    if count <= 2:
        return [0, n - 1]

    step = (n - 1) / (count - 1)
    return [int(round(i * step)) for i in range(count)]


def _fill_evenly(n: int, selected: Set[int], target: int) -> List[int]:
    """
    Add evenly spaced unselected indices until `target` indices are selected.
    """
    chosen = set(selected)
    remaining = [i for i in range(n) if i not in chosen]
    need = min(target - len(chosen), len(remaining))

    if need > 0:
        step = len(remaining) / need
        for k in range(need):
            chosen.add(remaining[int(k * step + step / 2.0)])

    return sorted(chosen)


def _interior_angle(prev: PlanarPoint, curr: PlanarPoint, nxt: PlanarPoint) -> float:
    """
    Angle at `curr` between the segments to its neighbours, in degrees.
    180 means perfectly straight; a degenerate segment counts as straight.
    """
    v1x, v1y = prev.x - curr.x, prev.y - curr.y
    v2x, v2y = nxt.x - curr.x, nxt.y - curr.y
    mag1 = math.hypot(v1x, v1y)
    mag2 = math.hypot(v2x, v2y)

    if mag1 == 0 or mag2 == 0:
        return 180.0

    cos_angle = max(-1.0, min(1.0, (v1x * v2x + v1y * v2y) / (mag1 * mag2)))
    return math.degrees(math.acos(cos_angle))


# ---------------------------------------------------------------------- #
# Public helpers
# ---------------------------------------------------------------------- #


def simplify_points(points: Sequence[PlanarPoint], tolerance: float = 2.0) -> List[PlanarPoint]:
    return [points[i] for i in _douglas_peucker_indices(points, tolerance)]


def evenly_sample(points: Sequence[PlanarPoint], count: int) -> List[PlanarPoint]:
    return [points[i] for i in _even_indices(len(points), count)]


def distance_filter(points: Sequence[PlanarPoint], min_distance: float) -> List[PlanarPoint]:
    """
    Drop points closer than `min_distance` to the last kept point.
    The first and last points are always kept.
    """
    if len(points) <= 2:
        return list(points)

    filtered = [points[0]]
    for point in points[1:-1]:
        if _distance(point, filtered[-1]) >= min_distance:
            filtered.append(point)
    filtered.append(points[-1])
    return filtered


def curvature_scores(points: Sequence[PlanarPoint]) -> List[float]:
    """
    Turning angle at every point (0 for the endpoints and straight runs).
    """
    scores = [0.0] * len(points)
    for i in range(1, len(points) - 1):
        scores[i] = 180.0 - _interior_angle(points[i - 1], points[i], points[i + 1])
    return scores


class PlanarSimplifier:
    """
    Reduces a dense freehand trace to a compact, ordered set of waypoints.

    Pipeline:
    - distance filter (drop jitter closer than min_distance_px)
    - endpoint-fit simplification when the filtered trace already fits
    - otherwise curvature-ranked selection (preserve_curves) or a stronger
      simplification plus even resampling
    """

    def __init__(self, tuning: Optional[SimplifierTuning] = None) -> None:
        self.tuning = tuning or SimplifierTuning()

    def select_waypoints(
        self,
        points: Sequence[PlanarPoint],
        min_points: int = 4,
        max_points: int = 25,
        preserve_curves: bool = True,
    ) -> List[PlanarPoint]:
        if len(points) < 2:
            raise InvalidInputError("A trace needs at least 2 points")
        if min_points < 2 or min_points > max_points:
            raise InvalidInputError(
                f"Invalid waypoint budget: min_points={min_points}, max_points={max_points}"
            )

        if len(points) <= min_points:
            return list(points)

        filtered = distance_filter(points, self.tuning.min_distance_px)
        diagonal = bounding_box(filtered).diagonal

        if len(filtered) <= max_points:
            tolerance = max(1.0, diagonal * self.tuning.tolerance_fraction)
            indices = _douglas_peucker_indices(filtered, tolerance)
        elif preserve_curves:
            indices = self._curvature_indices(filtered, max_points)
        else:
            tolerance = max(1.5, diagonal * self.tuning.strong_tolerance_fraction)
            indices = _douglas_peucker_indices(filtered, tolerance)
            if len(indices) > max_points:
                indices = [indices[i] for i in _even_indices(len(indices), max_points)]

        if len(indices) < min_points:
            if len(filtered) < min_points:
                # Everything collapsed under the distance filter
                return evenly_sample(points, min_points)
            indices = _fill_evenly(len(filtered), set(indices), min_points)

        result = [filtered[i] for i in indices]
        logger.debug(
            f"Simplified trace {len(points)} -> {len(filtered)} filtered -> "
            f"{len(result)} waypoints (preserve_curves={preserve_curves})"
        )
        return result

    def _curvature_indices(self, points: Sequence[PlanarPoint], max_points: int) -> List[int]:
        """
        Keep both ends plus the sharpest turns, then back-fill evenly.
        """
        scores = curvature_scores(points)
        last = len(points) - 1

        sharp = [
            i for i in range(1, last) if scores[i] > self.tuning.curvature_threshold_deg
        ]
        sharp.sort(key=lambda i: scores[i], reverse=True)

        selected = {0, last}
        for i in sharp[: max(0, max_points - 2)]:
            selected.add(i)

        return _fill_evenly(len(points), selected, max_points)
