# tests/test_projector.py
import math

import pytest

from trailtrace.core.errors import InvalidInputError
from trailtrace.models.geometry import GeographicBounds, GeoPoint, PlanarPoint
from trailtrace.services.projector import project_from_anchor, project_to_bounds

BOUNDS = GeographicBounds(north=34.15, south=33.95, east=-118.15, west=-118.45)


def square(size: float = 100.0):
    return [
        PlanarPoint(x=0, y=0),
        PlanarPoint(x=size, y=0),
        PlanarPoint(x=size, y=size),
        PlanarPoint(x=0, y=size),
    ]


def test_bounds_center_defaults_to_midpoint():
    assert BOUNDS.center.lat == pytest.approx(34.05)
    assert BOUNDS.center.lng == pytest.approx(-118.30)


def test_bounds_reject_inverted_box():
    with pytest.raises(ValueError):
        GeographicBounds(north=33.0, south=34.0, east=-118.0, west=-119.0)


def test_projection_stays_inside_padded_bounds():
    projected = project_to_bounds(square(), BOUNDS, padding=0.1)

    lat_margin = BOUNDS.lat_span * 0.1
    lng_margin = BOUNDS.lng_span * 0.1
    for p in projected:
        assert BOUNDS.south + lat_margin - 1e-9 <= p.lat <= BOUNDS.north - lat_margin + 1e-9
        assert BOUNDS.west + lng_margin - 1e-9 <= p.lng <= BOUNDS.east - lng_margin + 1e-9


def test_projection_preserves_aspect_ratio_and_center():
    projected = project_to_bounds(square(), BOUNDS)

    lats = [p.lat for p in projected]
    lngs = [p.lng for p in projected]
    # The bounds are wider than tall; the square must stay square in degrees
    assert max(lats) - min(lats) == pytest.approx(max(lngs) - min(lngs))
    assert (max(lats) + min(lats)) / 2 == pytest.approx(BOUNDS.center.lat)
    assert (max(lngs) + min(lngs)) / 2 == pytest.approx(BOUNDS.center.lng)


def test_projection_inverts_screen_y():
    top, _, _, bottom = project_to_bounds(square(), BOUNDS)
    assert top.lat > bottom.lat


def test_projection_of_a_single_spot_lands_on_center():
    projected = project_to_bounds([PlanarPoint(x=5, y=5)] * 3, BOUNDS)
    assert projected == [BOUNDS.center] * 3


def test_projection_rejects_bad_padding():
    with pytest.raises(InvalidInputError):
        project_to_bounds(square(), BOUNDS, padding=0.5)


def test_anchor_places_first_point_and_corrects_longitude():
    anchor = GeoPoint(lat=60.0, lng=10.0)
    scale = 1e-4
    first, right, _, below = project_from_anchor(square(), anchor, scale)

    assert first == anchor
    # cos(60deg) = 0.5, so horizontal offsets double in longitude
    assert right.lng - anchor.lng == pytest.approx(100 * scale / math.cos(math.radians(60)))
    assert right.lat == pytest.approx(anchor.lat)
    assert below.lat == pytest.approx(anchor.lat - 100 * scale)


def test_anchor_wraps_longitude_across_antimeridian():
    anchor = GeoPoint(lat=0.0, lng=179.99)
    projected = project_from_anchor([PlanarPoint(x=0, y=0), PlanarPoint(x=1000, y=0)], anchor, 1e-4)
    assert projected[1].lng == pytest.approx(-179.91)


def test_anchor_rejects_poles_and_bad_scale():
    with pytest.raises(InvalidInputError):
        project_from_anchor(square(), GeoPoint(lat=90.0, lng=0.0))
    with pytest.raises(InvalidInputError):
        project_from_anchor(square(), GeoPoint(lat=0.0, lng=0.0), scale=0)
