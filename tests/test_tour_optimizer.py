# tests/test_tour_optimizer.py
import asyncio

import pytest

from conftest import FailingOracle, StraightLineOracle, make_client

from trailtrace.core.errors import SynthesisCancelled
from trailtrace.models.geometry import GeoPoint
from trailtrace.models.routing import RouteProfile
from trailtrace.services.tour_optimizer import PairwiseDistanceCache, WaypointTourOptimizer

# Drawn out of order along one street: 0, 3, 1, 2
SCRAMBLED = [
    GeoPoint(lat=34.0, lng=-118.30),
    GeoPoint(lat=34.0, lng=-118.27),
    GeoPoint(lat=34.0, lng=-118.29),
    GeoPoint(lat=34.0, lng=-118.28),
]


def test_distance_cache_is_symmetric():
    cache = PairwiseDistanceCache(3)
    cache.put(0, 2, 1.5, source="road")
    assert cache.get(2, 0) == 1.5
    assert cache.get(1, 1) == 0.0
    assert cache.get(0, 1) is None
    assert len(cache) == 1


def test_nearest_neighbour_order_breaks_ties_by_index():
    cache = PairwiseDistanceCache(3)
    cache.put(0, 1, 1.0, source="road")
    cache.put(0, 2, 1.0, source="road")
    cache.put(1, 2, 1.0, source="road")
    assert WaypointTourOptimizer.nearest_neighbour_order(3, cache) == [0, 1, 2]


@pytest.mark.parametrize("oracle_cls", [StraightLineOracle, FailingOracle])
def test_optimize_reorders_waypoints(oracle_cls):
    optimizer = WaypointTourOptimizer(make_client(oracle_cls()), call_delay_s=0.0)
    ordered = asyncio.run(optimizer.optimize(SCRAMBLED, RouteProfile.WALKING))

    assert ordered == [SCRAMBLED[0], SCRAMBLED[2], SCRAMBLED[3], SCRAMBLED[1]]
    # Always a permutation of the input
    assert sorted(ordered, key=lambda p: p.lng) == sorted(SCRAMBLED, key=lambda p: p.lng)


def test_one_oracle_call_per_pair(straight_oracle):
    optimizer = WaypointTourOptimizer(make_client(straight_oracle), call_delay_s=0.0)
    asyncio.run(optimizer.optimize(SCRAMBLED, RouteProfile.WALKING))
    assert len(straight_oracle.route_calls) == 6


def test_two_points_are_returned_unchanged(straight_oracle):
    optimizer = WaypointTourOptimizer(make_client(straight_oracle))
    pair = SCRAMBLED[:2]
    assert asyncio.run(optimizer.optimize(pair, RouteProfile.WALKING)) == pair
    assert straight_oracle.route_calls == []


def test_cancellation_stops_matrix_build(straight_oracle):
    optimizer = WaypointTourOptimizer(make_client(straight_oracle), call_delay_s=0.0)
    with pytest.raises(SynthesisCancelled):
        asyncio.run(optimizer.optimize(SCRAMBLED, RouteProfile.WALKING, is_cancelled=lambda: True))
    assert straight_oracle.route_calls == []
