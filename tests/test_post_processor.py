# tests/test_post_processor.py
from conftest import densify

from trailtrace.models.geometry import GeoPoint
from trailtrace.services.post_processor import (
    RoutePostProcessor,
    collapse_duplicates,
    merge_redundant_loops,
    remove_backtracks,
)

A = GeoPoint(lat=34.00, lng=-118.30)
B = GeoPoint(lat=34.00, lng=-118.29)
C = GeoPoint(lat=34.01, lng=-118.29)
D = GeoPoint(lat=34.01, lng=-118.28)
E = GeoPoint(lat=34.00, lng=-118.27)


def test_collapse_duplicates_is_idempotent():
    noisy = [A, GeoPoint(lat=A.lat + 1e-6, lng=A.lng), B, B, C]
    once = collapse_duplicates(noisy)
    assert once == [A, B, C]
    assert collapse_duplicates(once) == once


def test_collapse_duplicates_keeps_exact_final_point():
    near_c = GeoPoint(lat=C.lat + 1e-6, lng=C.lng)
    assert collapse_duplicates([A, B, C, near_c]) == [A, B, near_c]


def test_collapse_is_idempotent_when_final_point_collapses():
    # The last point sits between two earlier kept points
    drift = [GeoPoint(lat=34.0 + offset, lng=-118.30) for offset in (0.0, 5e-5, 6.5e-5, 5.6e-5)]
    once = collapse_duplicates(drift)

    assert once == [drift[0], drift[3]]
    assert collapse_duplicates(once) == once


def test_there_and_back_is_removed():
    assert remove_backtracks([A, B, A]) == [A, A]


def test_backtracks_keep_endpoints_and_gentle_turns():
    path = [A, B, C, D]
    assert remove_backtracks(path) == path


def test_immediate_bounce_is_merged():
    back_at_b = GeoPoint(lat=34.00, lng=-118.2901)
    assert merge_redundant_loops([A, B, C, back_at_b, E]) == [A, B, E]


def test_loop_without_progress_is_truncated():
    back_at_b = GeoPoint(lat=34.00, lng=-118.2901)
    assert merge_redundant_loops([A, B, C, D, back_at_b, E]) == [A, B, E]


def test_loop_with_progress_is_kept():
    # Returns to the second point's cell, noticeably closer to the destination
    path = [
        GeoPoint(lat=34.0000, lng=-118.2900),
        GeoPoint(lat=34.0000, lng=-118.2800),
        GeoPoint(lat=34.0050, lng=-118.2800),
        GeoPoint(lat=34.0050, lng=-118.2790),
        GeoPoint(lat=34.0002, lng=-118.2796),
        GeoPoint(lat=34.0000, lng=-118.2780),
    ]
    assert merge_redundant_loops(path) == path


def test_closed_route_survives_cleanup():
    square = [A, B, C, GeoPoint(lat=34.01, lng=-118.30), A]
    cleaned = RoutePostProcessor().clean(square)

    assert cleaned == square
    assert cleaned[0] == cleaned[-1]


def test_cleanup_never_drops_below_two_points():
    assert RoutePostProcessor().clean([A, A]) == [A, A]
    assert RoutePostProcessor().clean([A]) == [A]


def test_post_processing_is_idempotent():
    processor = RoutePostProcessor()
    messy = [A, A, B, C, D, GeoPoint(lat=34.00, lng=-118.2901), E]
    once = processor.clean(messy)
    assert processor.clean(once) == once


def test_dense_closed_route_survives_cleanup():
    corner = GeoPoint(lat=34.01, lng=-118.30)
    dense_square = densify([A, B, C, corner, A])
    cleaned = RoutePostProcessor().clean(dense_square)

    assert cleaned[0] == A
    assert cleaned[-1] == A
    assert len(cleaned) > 8
    # Every corner of the square is still visited
    for vertex in (B, C, corner):
        assert any(abs(p.lat - vertex.lat) < 0.003 and abs(p.lng - vertex.lng) < 0.003 for p in cleaned)
