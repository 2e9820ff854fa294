"""Geospatial helper functions.

Distances use an equirectangular projection anchored at an origin point: one
degree of latitude is a fixed number of meters and longitude is scaled by the
cosine of the origin latitude. There is no great-circle correction, which is
accurate enough for service areas of a few kilometers.
"""

from __future__ import annotations

import math
from typing import Sequence

from shapely.geometry import Point, Polygon

from ..models.domain import GeoPoint

METERS_PER_DEGREE = 111_320.0


def _meters_per_degree_lng(origin: GeoPoint) -> float:
    return METERS_PER_DEGREE * math.cos(math.radians(origin.latitude))


def offset_to_point(origin: GeoPoint, east_m: float, north_m: float) -> GeoPoint:
    """Convert a metric offset from ``origin`` into a coordinate."""

    return GeoPoint(
        latitude=origin.latitude + north_m / METERS_PER_DEGREE,
        longitude=origin.longitude + east_m / _meters_per_degree_lng(origin),
    )


def point_to_offset(origin: GeoPoint, point: GeoPoint) -> tuple[float, float]:
    """Return the (east, north) offset in meters of ``point`` from ``origin``."""

    east = (point.longitude - origin.longitude) * _meters_per_degree_lng(origin)
    north = (point.latitude - origin.latitude) * METERS_PER_DEGREE
    return east, north


def planar_distance_m(origin: GeoPoint, point: GeoPoint) -> float:
    """Distance in meters between two points under the local projection."""

    return math.hypot(*point_to_offset(origin, point))


def point_in_polygon(point: GeoPoint, vertices: Sequence[GeoPoint]) -> bool:
    """Return True if the point lies inside or on the boundary of the polygon."""

    if len(vertices) < 3:
        return False
    polygon = Polygon([(vertex.longitude, vertex.latitude) for vertex in vertices])
    return polygon.covers(Point(point.longitude, point.latitude))
