"""Coordinate conversion utilities.

Converts between geographic coordinates (latitude/longitude), points on a
sphere (y-up, as used by the 3D globe) and normalized texture coordinates of
the equirectangular world texture.
"""

import math
from typing import NamedTuple

from ..config import EARTH_RADIUS_KM


class GeoCoordinate(NamedTuple):
    """Geographic coordinate in degrees."""
    latitude: float
    longitude: float


class UVCoordinate(NamedTuple):
    """Normalized texture coordinate, (0, 0) = top-left = north-west."""
    u: float
    v: float


class SpherePoint(NamedTuple):
    """Cartesian point on a sphere. y is the polar axis (north = +y)."""
    x: float
    y: float
    z: float


def normalize_longitude(longitude: float) -> float:
    """Wrap a longitude into the [-180, 180] range."""
    if -180.0 <= longitude <= 180.0:
        return longitude
    wrapped = math.fmod(longitude + 180.0, 360.0)
    if wrapped < 0:
        wrapped += 360.0
    return wrapped - 180.0


def geo_to_sphere(coord: GeoCoordinate, radius: float) -> SpherePoint:
    """
    Convert latitude/longitude to 3D Cartesian coordinates.

    Args:
        coord: Geographic coordinate in degrees
        radius: Sphere radius

    Returns:
        SpherePoint; (0, 0) maps to (0, 0, radius)
    """
    lat_rad = math.radians(coord.latitude)
    long_rad = math.radians(coord.longitude)

    x = radius * math.cos(lat_rad) * math.sin(long_rad)
    y = radius * math.sin(lat_rad)
    z = radius * math.cos(lat_rad) * math.cos(long_rad)

    return SpherePoint(x=x, y=y, z=z)


def sphere_to_geo(point: SpherePoint, radius: float) -> GeoCoordinate:
    """
    Convert 3D Cartesian coordinates back to latitude/longitude.

    Args:
        point: Point on (or near) the sphere
        radius: Sphere radius

    Returns:
        GeoCoordinate in degrees
    """
    nx = point.x / radius
    ny = point.y / radius
    nz = point.z / radius

    # Clamp absorbs floating-point overshoot past the poles
    latitude = math.degrees(math.asin(max(-1.0, min(1.0, ny))))
    # Azimuth measured from +z towards +x
    longitude = math.degrees(math.atan2(nx, nz))

    return GeoCoordinate(latitude=latitude, longitude=longitude)


def geo_to_uv(coord: GeoCoordinate) -> UVCoordinate:
    """
    Convert latitude/longitude to texture coordinates.

    u = 0 is longitude -180, u = 1 is +180.
    v = 0 is the north pole, v = 1 is the south pole.
    """
    u = (coord.longitude + 180.0) / 360.0
    v = (90.0 - coord.latitude) / 180.0
    return UVCoordinate(u=u, v=v)


def uv_to_geo(uv: UVCoordinate) -> GeoCoordinate:
    """Inverse of geo_to_uv."""
    longitude = uv.u * 360.0 - 180.0
    latitude = 90.0 - uv.v * 180.0
    return GeoCoordinate(latitude=latitude, longitude=longitude)


def haversine_distance(a: GeoCoordinate, b: GeoCoordinate) -> float:
    """
    Great-circle distance between two points.

    Returns:
        Distance in kilometers
    """
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_long = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_long / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c
