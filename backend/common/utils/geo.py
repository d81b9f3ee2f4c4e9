"""Distances on the earth's surface, in meters."""

from math import atan2, cos, radians, sin, sqrt
from typing import Tuple

EARTH_RADIUS_METERS = 6371000
METERS_PER_DEGREE_LAT = 111000.0


def calculate_distance(lat1, lon1, lat2, lon2) -> float:
    """Great-circle (haversine) distance between two points. Accepts floats or Decimals."""
    phi1, phi2 = radians(float(lat1)), radians(float(lat2))
    d_phi = phi2 - phi1
    d_lambda = radians(float(lon2) - float(lon1))

    h = sin(d_phi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * atan2(sqrt(h), sqrt(1 - h))


def bounding_box(lat, lon, radius_meters: float) -> Tuple[float, float, float, float]:
    """
    (min_lat, max_lat, min_lon, max_lon) of a square around the point that
    contains the whole circle. Meant as an indexed prefilter; callers still
    check the exact distance.
    """
    lat, lon = float(lat), float(lon)
    d_lat = radius_meters / METERS_PER_DEGREE_LAT
    # longitude degrees shrink towards the poles
    d_lon = radius_meters / (METERS_PER_DEGREE_LAT * max(abs(cos(radians(lat))), 0.01))
    return lat - d_lat, lat + d_lat, lon - d_lon, lon + d_lon


def within_radius(lat1, lon1, lat2, lon2, radius_meters: float) -> bool:
    if None in (lat1, lon1, lat2, lon2):
        return False
    return calculate_distance(lat1, lon1, lat2, lon2) <= float(radius_meters)
