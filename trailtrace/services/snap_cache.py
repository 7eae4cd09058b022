# trailtrace/services/snap_cache.py
from collections import OrderedDict
from typing import Optional, Tuple

from trailtrace.models.geometry import GeoPoint
from trailtrace.models.routing import RouteProfile

SnapKey = Tuple[str, float, float]


class SnapCache:
    """
    Process-wide, bounded map of (profile, rounded coordinate) -> snapped point.

    Oldest entries are evicted first once `capacity` is exceeded. Every
    operation completes without awaiting, so concurrent coroutines never
    wait on each other. Purely an optimisation: clear() is always safe.
    """

    def __init__(self, capacity: int = 1000, precision: int = 5) -> None:
        self.capacity = capacity
        # 5 decimal places ~ 1 m
        self.precision = precision
        self._entries: "OrderedDict[SnapKey, GeoPoint]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def key(self, point: GeoPoint, profile: RouteProfile) -> SnapKey:
        return (profile.value, round(point.lat, self.precision), round(point.lng, self.precision))

    def get(self, point: GeoPoint, profile: RouteProfile) -> Optional[GeoPoint]:
        snapped = self._entries.get(self.key(point, profile))
        if snapped is None:
            self.misses += 1
        else:
            self.hits += 1
        return snapped

    def put(self, point: GeoPoint, profile: RouteProfile, snapped: GeoPoint) -> None:
        self._entries[self.key(point, profile)] = snapped
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# Shared by every RoadRoutingClient that is not given its own cache
snap_cache = SnapCache()
