# trailtrace/services/projector.py
import math
from typing import List, Sequence

from trailtrace.core.errors import InvalidInputError
from trailtrace.core.logger import logger
from trailtrace.models.geometry import GeographicBounds, GeoPoint, PlanarPoint
from trailtrace.services.simplifier import bounding_box

# Degrees per pixel for anchored projection: a 400 px canvas spans ~4.9 km
DEFAULT_ANCHOR_SCALE = 1.1e-4


def _clamp_lat(lat: float) -> float:
    return max(-90.0, min(90.0, lat))


def _wrap_lng(lng: float) -> float:
    if -180.0 <= lng <= 180.0:
        return lng
    return ((lng + 180.0) % 360.0) - 180.0


def project_to_bounds(
    points: Sequence[PlanarPoint],
    bounds: GeographicBounds,
    padding: float = 0.1,
) -> List[GeoPoint]:
    """
    Fit the drawing into `bounds`, keeping its aspect ratio.

    - One uniform scale (min of both axes) so the shape fits the padded box.
    - The drawing's own centre is mapped onto the bounds centre.
    - Screen y grows downward, latitude grows upward, so y is inverted.
    """
    if not points:
        return []
    if not 0.0 <= padding < 0.5:
        raise InvalidInputError(f"padding must be in [0, 0.5), got {padding}")

    box = bounding_box(points)
    padded_lat = bounds.lat_span * (1.0 - 2.0 * padding)
    padded_lng = bounds.lng_span * (1.0 - 2.0 * padding)

    axis_scales = []
    if box.width > 0:
        axis_scales.append(padded_lng / box.width)
    if box.height > 0:
        axis_scales.append(padded_lat / box.height)
    # A single repeated point has no extent; everything lands on the centre
    scale = min(axis_scales) if axis_scales else 0.0

    center = bounds.center
    projected = [
        GeoPoint(
            lat=center.lat - (p.y - box.center_y) * scale,
            lng=center.lng + (p.x - box.center_x) * scale,
        )
        for p in points
    ]

    logger.debug(
        f"Projected {len(points)} points into bounds with scale={scale:.3e} deg/px "
        f"(drawing {box.width:.1f}x{box.height:.1f} px)"
    )
    return projected


def project_from_anchor(
    points: Sequence[PlanarPoint],
    anchor: GeoPoint,
    scale: float = DEFAULT_ANCHOR_SCALE,
) -> List[GeoPoint]:
    """
    Place the first trace point on `anchor` and every other point by its
    pixel offset from the first, at `scale` degrees per pixel.

    Longitude offsets are divided by cos(latitude) so the shape is not
    squashed away from the equator.
    """
    if not points:
        return []
    if scale <= 0:
        raise InvalidInputError(f"scale must be positive, got {scale}")

    cos_lat = math.cos(math.radians(anchor.lat))
    if abs(cos_lat) < 1e-9:
        raise InvalidInputError("Anchored projection is undefined at the poles")

    first = points[0]
    return [
        GeoPoint(
            lat=_clamp_lat(anchor.lat - (p.y - first.y) * scale),
            lng=_wrap_lng(anchor.lng + (p.x - first.x) * scale / cos_lat),
        )
        for p in points
    ]
