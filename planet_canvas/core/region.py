"""Drawing region calculation.

A stamp drawn at a given zoom covers a geographic rectangle around its center.
Latitude is clamped at the poles; longitude wraps at the antimeridian, so a
rectangle may come back with long_min > long_max.
"""

import math
from typing import List, NamedTuple

from ..config import STAMP_SETTINGS, CANVAS_SETTINGS
from .projection import GeoCoordinate, normalize_longitude


class GeoBounds(NamedTuple):
    """Geographic rectangle. long_min > long_max means it crosses the antimeridian."""
    lat_min: float
    lat_max: float
    long_min: float
    long_max: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.long_min > self.long_max

    @property
    def long_span(self) -> float:
        """Eastward extent in degrees, 0 to 360."""
        if self.crosses_antimeridian:
            return self.long_max + 360.0 - self.long_min
        return self.long_max - self.long_min

    @property
    def lat_span(self) -> float:
        return self.lat_max - self.lat_min

    def split(self) -> List["GeoBounds"]:
        """Split at the antimeridian into rectangles with long_min <= long_max."""
        if not self.crosses_antimeridian:
            return [self]
        return [
            GeoBounds(self.lat_min, self.lat_max, self.long_min, 180.0),
            GeoBounds(self.lat_min, self.lat_max, -180.0, self.long_max),
        ]

    def contains(self, coord: GeoCoordinate) -> bool:
        if not (self.lat_min <= coord.latitude <= self.lat_max):
            return False
        return any(
            b.long_min <= coord.longitude <= b.long_max for b in self.split()
        )


def calculate_drawing_bounds(
    center: GeoCoordinate,
    zoom_level: float,
    base_span: float = None,
) -> GeoBounds:
    """
    Calculate the geographic bounds covered by a drawing.

    Args:
        center: Drawing center
        zoom_level: 1 = far (widest), 10 = close
        base_span: Angular span at zoom 1 in degrees

    Returns:
        GeoBounds with latitude clamped to [-90, 90] and longitude
        normalized to [-180, 180]
    """
    if base_span is None:
        base_span = STAMP_SETTINGS["base_span_degrees"]
    zoom_level = max(zoom_level, 1e-6)
    span = base_span / zoom_level

    lat_span = span
    # Longitude degrees shrink towards the poles
    cos_lat = max(
        STAMP_SETTINGS["min_cos_latitude"],
        abs(math.cos(math.radians(center.latitude))),
    )
    long_span = span / cos_lat

    lat_min = max(-90.0, center.latitude - lat_span / 2)
    lat_max = min(90.0, center.latitude + lat_span / 2)

    if long_span >= 360.0:
        return GeoBounds(lat_min, lat_max, -180.0, 180.0)

    long_min = normalize_longitude(center.longitude - long_span / 2)
    long_max = normalize_longitude(center.longitude + long_span / 2)

    return GeoBounds(lat_min, lat_max, long_min, long_max)


def drawing_canvas_size(zoom_level: float) -> int:
    """
    Recommended drawing canvas edge in pixels for a zoom level.

    Zoom 1 (far): 256px, zoom 10 (close): 1024px.
    """
    min_size = CANVAS_SETTINGS["min_size"]
    max_size = CANVAS_SETTINGS["max_size"]
    min_zoom = STAMP_SETTINGS["min_zoom"]
    max_zoom = STAMP_SETTINGS["max_zoom"]

    size = min_size + (max_size - min_size) * (zoom_level - min_zoom) / (max_zoom - min_zoom)
    return int(round(min(max_size, max(min_size, size))))
