# trailtrace/models/geometry.py

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PlanarPoint(BaseModel):
    """
    Pixel-space point from the drawing surface (y grows downward).
    """
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class GeoPoint(BaseModel):
    """
    WGS84 coordinate in degrees.

    Frozen so points can be used as dict keys and compared as multisets.
    """
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class GeographicBounds(BaseModel):
    """
    Target region for bounded-fit projection.

    When center is omitted it defaults to the middle of the box.
    """
    north: float = Field(..., ge=-90.0, le=90.0)
    south: float = Field(..., ge=-90.0, le=90.0)
    east: float = Field(..., ge=-180.0, le=180.0)
    west: float = Field(..., ge=-180.0, le=180.0)
    center: Optional[GeoPoint] = None

    @model_validator(mode="after")
    def _check_box(self) -> "GeographicBounds":
        if not self.north > self.south:
            raise ValueError("north must be greater than south")
        if not self.east > self.west:
            raise ValueError("east must be greater than west")

        if self.center is None:
            self.center = GeoPoint(
                lat=(self.north + self.south) / 2.0,
                lng=(self.east + self.west) / 2.0,
            )
        elif not (
            self.south <= self.center.lat <= self.north
            and self.west <= self.center.lng <= self.east
        ):
            raise ValueError("center must lie inside the bounds")
        return self

    @property
    def lat_span(self) -> float:
        return self.north - self.south

    @property
    def lng_span(self) -> float:
        return self.east - self.west

    def contains(self, point: GeoPoint) -> bool:
        return self.south <= point.lat <= self.north and self.west <= point.lng <= self.east
