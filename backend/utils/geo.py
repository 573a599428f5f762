"""
Geospatial utilities for the shelter guide.
Includes the Coordinate value type, coordinate validation, distance
calculations, and coercion of loosely-typed provider coordinates.
"""
import math
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from utils.distance import haversine_distance as _haversine_distance
from utils.errors import InvalidArgument


@dataclass(frozen=True)
class Coordinate:
    """Immutable WGS84 coordinate in decimal degrees."""
    lat: float
    lon: float

    def to_dict(self) -> dict:
        return {'lat': self.lat, 'lon': self.lon}

    def to_lon_lat(self) -> List[float]:
        """GeoJSON order."""
        return [self.lon, self.lat]


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two Coordinates; 0 for identical points."""
    return _haversine_distance(a.lat, a.lon, b.lat, b.lon)


def is_valid_coordinates(latitude: float, longitude: float) -> bool:
    """
    Validate geographic coordinates, including edge cases at equator and prime meridian.

    Edge Cases Handled:
        - Equator (latitude = 0): Valid
        - Prime Meridian (longitude = 0): Valid
        - Poles (latitude = ±90): Valid endpoints
        - International Date Line (longitude = ±180): Valid

    Args:
        latitude: Latitude value (-90 to 90)
        longitude: Longitude value (-180 to 180)

    Returns:
        True if coordinates are valid, False otherwise

    Examples:
        >>> is_valid_coordinates(36.0805, 129.4040)
        True
        >>> is_valid_coordinates(0, 0)
        True
        >>> is_valid_coordinates(91, 0)
        False
        >>> is_valid_coordinates(0, float('nan'))
        False
    """
    try:
        lat = float(latitude)
        lon = float(longitude)

        if math.isnan(lat) or math.isnan(lon) or math.isinf(lat) or math.isinf(lon):
            return False

        return -90 <= lat <= 90 and -180 <= lon <= 180
    except (TypeError, ValueError):
        return False


def make_coordinate(latitude: Any, longitude: Any) -> Coordinate:
    """
    Build a validated Coordinate from raw values (strings allowed).

    Raises:
        InvalidArgument: If either value is non-numeric or out of range
    """
    if not is_valid_coordinates(latitude, longitude):
        raise InvalidArgument(f"Invalid coordinates: ({latitude}, {longitude})")
    return Coordinate(float(latitude), float(longitude))


# ---------------------------------------------------------------------------
# Coordinate extraction strategies
#
# Providers disagree on coordinate shape: {lat, lon}, {lat, lng},
# {latitude, longitude}, GeoJSON [lon, lat] pairs and Point geometries.
# Each strategy returns raw (lat, lon) or None when its shape does not match.
# ---------------------------------------------------------------------------

def _from_lat_lon_keys(raw: Any):
    if isinstance(raw, dict) and 'lat' in raw and 'lon' in raw:
        return raw['lat'], raw['lon']
    return None


def _from_lat_lng_keys(raw: Any):
    if isinstance(raw, dict) and 'lat' in raw and 'lng' in raw:
        return raw['lat'], raw['lng']
    return None


def _from_latitude_longitude_keys(raw: Any):
    if isinstance(raw, dict) and 'latitude' in raw and 'longitude' in raw:
        return raw['latitude'], raw['longitude']
    return None


def _from_geojson_point(raw: Any):
    if isinstance(raw, dict) and raw.get('type') == 'Point':
        return _from_lon_lat_pair(raw.get('coordinates'))
    return None


def _from_lon_lat_pair(raw: Any):
    if isinstance(raw, (list, tuple)) and len(raw) >= 2 and not isinstance(raw[0], (list, tuple, dict)):
        return raw[1], raw[0]
    return None


COORDINATE_STRATEGIES: Sequence[Callable[[Any], Optional[tuple]]] = (
    _from_lat_lon_keys,
    _from_lat_lng_keys,
    _from_latitude_longitude_keys,
    _from_geojson_point,
    _from_lon_lat_pair,
)


def coerce_coordinate(raw: Any) -> Coordinate:
    """
    Normalize a loosely-typed coordinate into a Coordinate.

    Sequences are always read as GeoJSON [lon, lat]; mappings by key name.

    Examples:
        >>> coerce_coordinate({'lat': '36.08', 'lng': '129.40'})
        Coordinate(lat=36.08, lon=129.4)
        >>> coerce_coordinate([129.40, 36.08])
        Coordinate(lat=36.08, lon=129.4)

    Raises:
        InvalidArgument: If no strategy recognises the shape or values are out of range
    """
    if isinstance(raw, Coordinate):
        return raw

    for strategy in COORDINATE_STRATEGIES:
        pair = strategy(raw)
        if pair is not None:
            return make_coordinate(pair[0], pair[1])

    raise InvalidArgument(f"Unrecognised coordinate shape: {raw!r}")
