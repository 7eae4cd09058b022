# tests/test_candidate_selector.py
import pytest

from trailtrace.models.geometry import GeoPoint
from trailtrace.models.routing import RoadSegment, RouteCandidate
from trailtrace.services.candidate_selector import CandidateSelector, straightness_ratio
from trailtrace.services.geo import path_length_m

ORIGIN = GeoPoint(lat=34.00, lng=-118.30)
DESTINATION = GeoPoint(lat=34.00, lng=-118.28)
DETOUR = GeoPoint(lat=34.01, lng=-118.29)


def candidate(coords, segments=()):
    return RouteCandidate(
        coordinates=list(coords),
        distance_m=path_length_m(coords),
        segments=list(segments),
    )


@pytest.fixture
def selector() -> CandidateSelector:
    return CandidateSelector()


def test_straightness_ratio():
    assert straightness_ratio([ORIGIN, DESTINATION], ORIGIN, DESTINATION) == pytest.approx(1.0)
    assert straightness_ratio([ORIGIN, DETOUR, DESTINATION], ORIGIN, DESTINATION) < 0.9
    assert straightness_ratio([ORIGIN], ORIGIN, DESTINATION) == 0.0


@pytest.mark.parametrize(
    "segment, restricted",
    [
        (RoadSegment(road_class="motorway"), True),
        (RoadSegment(road_class="toll,motorway_link"), True),
        (RoadSegment(name="I-5"), True),
        (RoadSegment(ref="I10"), True),
        (RoadSegment(ref="US 101"), True),
        (RoadSegment(name="Pacific Coast Highway"), True),
        (RoadSegment(name="Arroyo Seco Parkway"), True),
        (RoadSegment(name="Main Street", road_class="residential"), False),
        (RoadSegment(name="Sunset Boulevard", ref="", road_class="primary"), False),
    ],
)
def test_is_restricted(selector, segment, restricted):
    assert selector.is_restricted(segment) is restricted


def test_restricted_exposure_counts_stretches(selector):
    route = candidate(
        [ORIGIN, DESTINATION],
        [
            RoadSegment(distance_m=500, road_class="motorway"),
            RoadSegment(distance_m=200, road_class="motorway_link"),
            RoadSegment(distance_m=100, road_class="residential"),
            RoadSegment(distance_m=300, road_class="trunk"),
        ],
    )
    assert selector.restricted_exposure(route) == (1000.0, 2)


def test_restricted_multiplier(selector):
    assert selector.restricted_multiplier(0.0, 0) == 1.0
    assert selector.restricted_multiplier(1000.0, 1) == pytest.approx(0.5 * 0.9)
    # Never below the floor, even for extreme exposure
    assert selector.restricted_multiplier(50_000.0, 20) == pytest.approx(0.2)


def test_select_prefers_straighter_candidate(selector):
    straight = candidate([ORIGIN, DESTINATION])
    bent = candidate([ORIGIN, DETOUR, DESTINATION])

    chosen, score = selector.select([bent, straight], ORIGIN, DESTINATION)
    assert chosen is straight
    assert score.straightness == pytest.approx(1.0)


def test_select_avoids_restricted_roads(selector):
    highway = candidate([ORIGIN, DESTINATION], [RoadSegment(distance_m=1800, name="I-10")])
    local = candidate([ORIGIN, DETOUR, DESTINATION], [RoadSegment(distance_m=2500, name="Main Street")])

    chosen, score = selector.select([highway, local], ORIGIN, DESTINATION)
    assert chosen is local
    assert score.restricted_segments == 0

    # Without avoidance the straight highway wins
    chosen, _ = selector.select([highway, local], ORIGIN, DESTINATION, avoid_restricted_roads=False)
    assert chosen is highway


def test_restricted_candidate_still_returned_when_alone(selector):
    highway = candidate([ORIGIN, DESTINATION], [RoadSegment(distance_m=1800, road_class="motorway")])
    chosen, score = selector.select([highway], ORIGIN, DESTINATION)
    assert chosen is highway
    assert score.restricted_multiplier < 1.0


def test_ties_keep_first_candidate(selector):
    first = candidate([ORIGIN, DESTINATION])
    second = candidate([ORIGIN, DESTINATION])
    chosen, _ = selector.select([first, second], ORIGIN, DESTINATION)
    assert chosen is first


def test_select_without_geometry_returns_none(selector):
    assert selector.select([RouteCandidate(coordinates=[ORIGIN])], ORIGIN, DESTINATION) is None
    assert selector.select([], ORIGIN, DESTINATION) is None
