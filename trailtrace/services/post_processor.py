# trailtrace/services/post_processor.py
from typing import Dict, List, Optional, Sequence, Tuple

from trailtrace.core.config import CleanupTuning
from trailtrace.core.logger import logger
from trailtrace.models.geometry import GeoPoint
from trailtrace.services.geo import bearing_deg, bearing_difference_deg, haversine_m

CellKey = Tuple[int, int]


def coordinate_key(point: GeoPoint, granularity: float) -> CellKey:
    return (round(point.lat / granularity), round(point.lng / granularity))


def points_close(a: GeoPoint, b: GeoPoint, threshold: float) -> bool:
    return abs(a.lat - b.lat) < threshold and abs(a.lng - b.lng) < threshold


# ---------------------------------------------------------------------- #
# Pass 1: duplicate collapse
# ---------------------------------------------------------------------- #


def collapse_duplicates(points: Sequence[GeoPoint], epsilon: float = 1e-5) -> List[GeoPoint]:
    """
    Drop points within `epsilon` degrees (both axes) of the previous kept point.

    The exact final input point always ends the output: if it would be
    dropped, the trailing kept points it is close to give way to it.
    """
    if len(points) < 2:
        return list(points)

    last = points[-1]
    result: List[GeoPoint] = [points[0]]
    for point in points[1:]:
        if not points_close(point, result[-1], epsilon):
            result.append(point)

    if result[-1] != last:
        while len(result) > 1 and points_close(result[-1], last, epsilon):
            result.pop()
        result.append(last)
    return result


# ---------------------------------------------------------------------- #
# Pass 2: redundant-loop merge
# ---------------------------------------------------------------------- #


class LoopMergeFold:
    """
    Fold over a point sequence carrying the result buffer and a map of
    grid cell -> last index of that cell in the buffer.

    Each step either appends the point, or truncates the buffer back to an
    earlier visit of the same cell when the detour made no real progress
    toward `destination`, or drops an immediate A -> B -> A bounce.
    """

    def __init__(
        self,
        destination: GeoPoint,
        granularity: float = 0.001,
        progress_tolerance: float = 0.05,
    ) -> None:
        self.destination = destination
        self.granularity = granularity
        self.progress_tolerance = progress_tolerance
        self.result: List[GeoPoint] = []
        self.last_index: Dict[CellKey, int] = {}
        self.merged_loops = 0

    def step(self, point: GeoPoint) -> None:
        key = coordinate_key(point, self.granularity)

        # A -> B -> A: drop B and do not add A again
        if len(self.result) >= 2 and points_close(point, self.result[-2], self.granularity):
            removed = self.result.pop()
            removed_key = coordinate_key(removed, self.granularity)
            if self.last_index.get(removed_key) == len(self.result):
                self._reindex(removed_key)
            self.last_index[coordinate_key(self.result[-1], self.granularity)] = len(self.result) - 1
            self.merged_loops += 1
            return

        if key in self.last_index:
            previous = self.last_index[key]
            # Never fold back onto the destination itself (closed routes start there)
            if points_close(self.result[previous], self.destination, self.granularity):
                self._append(point, key)
                return

            dist_at_loop_start = haversine_m(self.result[previous], self.destination)
            dist_at_loop_end = haversine_m(point, self.destination)

            if dist_at_loop_end >= dist_at_loop_start * (1.0 - self.progress_tolerance):
                del self.result[previous + 1:]
                self._rebuild()
                self.last_index[key] = previous
                self.merged_loops += 1
                return

        self._append(point, key)

    def _append(self, point: GeoPoint, key: CellKey) -> None:
        self.result.append(point)
        self.last_index[key] = len(self.result) - 1

    def finish(self, final_point: GeoPoint) -> List[GeoPoint]:
        if self.result[-1] != final_point:
            # A last point that merely lands near the final one is replaced by it
            if len(self.result) > 1 and points_close(self.result[-1], final_point, self.granularity):
                self.result[-1] = final_point
            else:
                self.result.append(final_point)
        return self.result

    def _rebuild(self) -> None:
        self.last_index = {
            coordinate_key(p, self.granularity): i for i, p in enumerate(self.result)
        }

    def _reindex(self, key: CellKey) -> None:
        for i in range(len(self.result) - 1, -1, -1):
            if coordinate_key(self.result[i], self.granularity) == key:
                self.last_index[key] = i
                return
        self.last_index.pop(key, None)


def merge_redundant_loops(
    points: Sequence[GeoPoint],
    granularity: float = 0.001,
    progress_tolerance: float = 0.05,
) -> List[GeoPoint]:
    """
    Remove "there and back" loops (default grid ~111 m).
    """
    if len(points) < 3:
        return list(points)

    fold = LoopMergeFold(points[-1], granularity, progress_tolerance)
    for point in points:
        fold.step(point)
    result = fold.finish(points[-1])

    if fold.merged_loops:
        logger.debug(f"Merged {fold.merged_loops} redundant loop(s): {len(points)} -> {len(result)} points")
    return result


# ---------------------------------------------------------------------- #
# Pass 3: backtrack removal
# ---------------------------------------------------------------------- #


def remove_backtracks(points: Sequence[GeoPoint], tolerance_deg: float = 20.0) -> List[GeoPoint]:
    """
    Drop interior points whose incoming and outgoing bearings differ by
    180 +/- tolerance_deg (the path doubles back on itself there).
    """
    if len(points) < 3:
        return list(points)

    result = [points[0]]
    for prev, current, nxt in zip(points[:-2], points[1:-1], points[2:]):
        if prev == current or current == nxt:
            result.append(current)
            continue

        diff = bearing_difference_deg(bearing_deg(prev, current), bearing_deg(current, nxt))
        if diff >= 180.0 - tolerance_deg:
            continue
        result.append(current)

    result.append(points[-1])
    return result


# ---------------------------------------------------------------------- #
# Pipeline
# ---------------------------------------------------------------------- #


class RoutePostProcessor:
    """
    Applies duplicate collapse, loop merge and backtrack removal in order.

    A pass that would leave fewer than 2 points, or collapse the route onto
    a single location, is skipped.
    """

    def __init__(self, tuning: Optional[CleanupTuning] = None) -> None:
        self.tuning = tuning or CleanupTuning()

    def clean(self, points: Sequence[GeoPoint]) -> List[GeoPoint]:
        current = list(points)
        if len(current) < 2:
            return current

        current = self._guarded(
            current, collapse_duplicates(current, self.tuning.duplicate_epsilon_deg)
        )
        current = self.clean_geometry(current)

        logger.debug(f"Post-processed route: {len(points)} -> {len(current)} points")
        return current

    def clean_geometry(self, points: Sequence[GeoPoint]) -> List[GeoPoint]:
        """
        Loop merge + backtrack removal; also used on a single edge's geometry.
        """
        current = list(points)
        current = self._guarded(
            current,
            merge_redundant_loops(
                current,
                self.tuning.loop_granularity_deg,
                self.tuning.progress_tolerance,
            ),
        )
        current = self._guarded(
            current, remove_backtracks(current, self.tuning.backtrack_tolerance_deg)
        )
        return current

    @staticmethod
    def _guarded(before: List[GeoPoint], after: List[GeoPoint]) -> List[GeoPoint]:
        if len(after) < 2 or all(p == after[0] for p in after):
            return before
        return after
