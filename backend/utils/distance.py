"""
Distance calculation utilities with memoization for performance optimization.
"""
import math
from functools import lru_cache
from typing import Tuple

# Earth's mean radius in meters
EARTH_RADIUS_M = 6371000.0

# Flat-earth scale factor for one degree of latitude
METERS_PER_DEGREE_LAT = 111320.0


@lru_cache(maxsize=10000)
def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth using the Haversine formula.

    This function is memoized using LRU cache to improve performance for repeated calculations
    with the same coordinate pairs. Shelter ranking recomputes the same origin/shelter pairs
    on every request, so hits are common.

    Args:
        lat1: Latitude of the first point in decimal degrees (-90 to 90)
        lon1: Longitude of the first point in decimal degrees (-180 to 180)
        lat2: Latitude of the second point in decimal degrees (-90 to 90)
        lon2: Longitude of the second point in decimal degrees (-180 to 180)

    Returns:
        Distance between the two points in meters

    Examples:
        >>> # Pohang city hall to Yeongil bay beach
        >>> round(haversine_distance(36.0190, 129.3435, 36.0560, 129.3780), -2)
        5200.0

        >>> # Same point (should be 0)
        >>> haversine_distance(36.0190, 129.3435, 36.0190, 129.3435)
        0.0

    Note:
        - Uses the Earth's mean radius (6,371,000 m)
        - Does NOT validate coordinates - caller is responsible for validation
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)

    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def meters_per_degree(lat: float) -> Tuple[float, float]:
    """
    Local flat-earth scale factors at a latitude.

    Only meaningful for small extents (a few kilometers) away from the poles:
    hazard-ring fallbacks, burned-cell sizing and the local projection used for
    nearest-point queries.

    Returns:
        (meters per degree of latitude, meters per degree of longitude)
    """
    per_degree_lon = METERS_PER_DEGREE_LAT * math.cos(math.radians(lat))
    return METERS_PER_DEGREE_LAT, per_degree_lon


def destination_point(lat: float, lon: float, bearing_deg: float, distance_m: float) -> Tuple[float, float]:
    """
    Point reached by travelling distance_m from (lat, lon) along a great circle.

    Args:
        lat: Start latitude in decimal degrees
        lon: Start longitude in decimal degrees
        bearing_deg: Initial bearing, clockwise from north
        distance_m: Distance to travel in meters

    Returns:
        (latitude, longitude) of the destination, longitude wrapped to [-180, 180]
    """
    angular = distance_m / EARTH_RADIUS_M
    bearing = math.radians(bearing_deg)
    lat1 = math.radians(lat)
    lon1 = math.radians(lon)

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular) +
        math.cos(lat1) * math.sin(angular) * math.cos(bearing)
    )
    lon2 = lon1 + math.atan2(
        math.sin(bearing) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2)
    )

    lon2_deg = (math.degrees(lon2) + 540) % 360 - 180
    return math.degrees(lat2), lon2_deg


def clear_distance_cache() -> None:
    """
    Clear the haversine_distance LRU cache.

    Useful for testing or when memory usage is a concern.
    """
    haversine_distance.cache_clear()


def get_cache_info() -> dict:
    """
    Get information about the haversine_distance cache.

    Returns:
        Dictionary with cache statistics including hits, misses, and current size
    """
    info = haversine_distance.cache_info()
    return {
        'hits': info.hits,
        'misses': info.misses,
        'maxsize': info.maxsize,
        'currsize': info.currsize
    }
