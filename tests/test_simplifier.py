# tests/test_simplifier.py
import math

import pytest

from trailtrace.core.errors import InvalidInputError
from trailtrace.models.geometry import PlanarPoint
from trailtrace.services.simplifier import (
    PlanarSimplifier,
    bounding_box,
    distance_filter,
    is_closed_path,
    perpendicular_distance,
    simplify_points,
)


def circle(n: int, radius: float = 100.0):
    return [
        PlanarPoint(
            x=200 + radius * math.cos(2 * math.pi * i / n),
            y=200 + radius * math.sin(2 * math.pi * i / n),
        )
        for i in range(n)
    ]


def three_sided_square():
    """
    Right along the top, down the right side, left along the bottom;
    10 px between points, hard corners at (400, 0) and (400, 400).
    """
    top = [PlanarPoint(x=x, y=0) for x in range(0, 401, 10)]
    right = [PlanarPoint(x=400, y=y) for y in range(10, 401, 10)]
    bottom = [PlanarPoint(x=x, y=400) for x in range(390, -1, -10)]
    return top + right + bottom


def test_bounding_box_and_diagonal():
    box = bounding_box([PlanarPoint(x=0, y=0), PlanarPoint(x=30, y=40)])
    assert box.width == 30
    assert box.height == 40
    assert box.center_x == 15
    assert box.center_y == 20
    assert box.diagonal == pytest.approx(50.0)


def test_perpendicular_distance_is_clamped_to_segment():
    start, end = PlanarPoint(x=0, y=0), PlanarPoint(x=10, y=0)
    assert perpendicular_distance(PlanarPoint(x=5, y=3), start, end) == pytest.approx(3.0)
    assert perpendicular_distance(PlanarPoint(x=13, y=4), start, end) == pytest.approx(5.0)
    assert perpendicular_distance(PlanarPoint(x=3, y=4), start, start) == pytest.approx(5.0)


def test_is_closed_path():
    assert is_closed_path(circle(30) + [circle(30)[0]])
    assert not is_closed_path(three_sided_square())
    # Two points are never a closed shape
    assert not is_closed_path([PlanarPoint(x=0, y=0), PlanarPoint(x=1, y=1)])


def test_simplify_collinear_keeps_endpoints_only():
    line = [PlanarPoint(x=i, y=2 * i) for i in range(50)]
    assert simplify_points(line, tolerance=0.5) == [line[0], line[-1]]


def test_distance_filter_keeps_first_and_last():
    jitter = [PlanarPoint(x=i * 0.5, y=0) for i in range(10)]
    filtered = distance_filter(jitter, min_distance=8.0)
    assert filtered == [jitter[0], jitter[-1]]


def test_rejects_short_trace_and_bad_budget():
    simplifier = PlanarSimplifier()
    with pytest.raises(InvalidInputError):
        simplifier.select_waypoints([PlanarPoint(x=0, y=0)])
    with pytest.raises(InvalidInputError):
        simplifier.select_waypoints(circle(50), min_points=10, max_points=5)


def test_small_trace_returned_unchanged():
    points = circle(4)
    assert PlanarSimplifier().select_waypoints(points, min_points=4) == points


@pytest.mark.parametrize("preserve_curves", [True, False])
def test_dense_trace_respects_budget_and_endpoints(preserve_curves):
    trace = circle(200)
    result = PlanarSimplifier().select_waypoints(
        trace, min_points=4, max_points=25, preserve_curves=preserve_curves
    )

    assert 4 <= len(result) <= 25
    assert result[0] == trace[0]
    assert result[-1] == trace[-1]
    # Order of the original trace is preserved
    positions = [trace.index(p) for p in result]
    assert positions == sorted(positions)


def test_curvature_selection_keeps_sharp_corners():
    trace = three_sided_square()
    result = PlanarSimplifier().select_waypoints(trace, min_points=4, max_points=8)

    assert len(result) == 8
    assert PlanarPoint(x=400, y=0) in result
    assert PlanarPoint(x=400, y=400) in result


def test_collapsed_trace_is_resampled_to_min_points():
    # Everything lies within the distance filter radius
    trace = [PlanarPoint(x=i * 0.1, y=0) for i in range(20)]
    result = PlanarSimplifier().select_waypoints(trace, min_points=4, max_points=25)
    assert len(result) == 4
    assert result[0] == trace[0]
    assert result[-1] == trace[-1]
