"""
Validation utilities for request parameters.

Provides centralized validation logic for:
- Coordinate ranges (latitude/longitude)
- Hazard creation requests
- Direction requests and travel modes
- Query-string flags and limits

Validators return (value, error_message) tuples so the Flask layer can turn a
failure into a 400 response without exceptions crossing the request boundary.
"""
from typing import Any, Dict, Optional, Tuple

from utils.geo import Coordinate, is_valid_coordinates

# Original predict/run defaults (Seoul city hall, 1.8 km)
DEFAULT_HAZARD_CENTER = {'lat': 37.5665, 'lon': 126.9780}
DEFAULT_HAZARD_RADIUS_M = 1800.0

TRAVEL_MODES = ('walk', 'drive')


class CoordinateValidator:
    """Validator for geographic coordinates."""

    @staticmethod
    def validate_coordinates(lat: float, lon: float) -> bool:
        """
        Validate latitude and longitude ranges.

        Examples:
            >>> CoordinateValidator.validate_coordinates(36.0805, 129.4040)
            True
            >>> CoordinateValidator.validate_coordinates(91, 0)
            False
        """
        return is_valid_coordinates(lat, lon)

    @staticmethod
    def parse_pair(lat: Any, lon: Any, label: str = 'coordinates') -> Tuple[Optional[Coordinate], Optional[str]]:
        """
        Parse a raw lat/lon pair (query strings or JSON numbers) into a Coordinate.

        Returns:
            (Coordinate, None) on success, (None, error_message) otherwise
        """
        if lat is None or lon is None or lat == '' or lon == '':
            return None, f'{label}: lat and lon are required'

        try:
            lat_value = float(lat)
            lon_value = float(lon)
        except (TypeError, ValueError):
            return None, f'{label}: lat and lon must be valid numbers'

        if not is_valid_coordinates(lat_value, lon_value):
            return None, (f'{label}: Latitude must be between -90 and 90, '
                          'Longitude must be between -180 and 180')

        return Coordinate(lat_value, lon_value), None


class RequestValidator:
    """Validators for the hazard, shelter and direction request bodies."""

    @staticmethod
    def parse_bool(value: Any, default: bool = True) -> bool:
        """
        Parse a query-string flag. Only the literal 'true' (any case) is truthy,
        matching how the map client sends excludeHazard.
        """
        if value is None or value == '':
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() == 'true'

    @staticmethod
    def parse_positive_int(value: Any, default: int, name: str, maximum: int = 100) -> Tuple[Optional[int], Optional[str]]:
        """
        Parse a positive integer parameter such as k or limit.

        Examples:
            >>> RequestValidator.parse_positive_int('5', 10, 'k')
            (5, None)
            >>> RequestValidator.parse_positive_int('0', 10, 'k')
            (None, 'k must be between 1 and 100')
        """
        if value is None or value == '':
            return default, None
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return None, f'{name} must be a number'
        if not (1 <= parsed <= maximum):
            return None, f'{name} must be between 1 and {maximum}'
        return parsed, None

    @staticmethod
    def validate_travel_mode(mode: str) -> bool:
        """
        Examples:
            >>> RequestValidator.validate_travel_mode('walk')
            True
            >>> RequestValidator.validate_travel_mode('bike')
            False
        """
        return mode in TRAVEL_MODES

    @staticmethod
    def validate_hazard_request(data: Optional[Dict]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
        """
        Validate a predict/run body: {center: {lat, lon}, radiusM, steps?}.

        Missing center and radius fall back to the defaults the map client
        relied on. steps is passed through unclamped; the hazard service
        clamps it.

        Returns:
            ({'center': Coordinate, 'radius_m': float, 'steps': int|None}, None)
            or (None, error_message)
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            return None, 'Request body must be a JSON object'

        center_raw = data.get('center') or DEFAULT_HAZARD_CENTER
        if not isinstance(center_raw, dict):
            return None, 'center must be an object with lat and lon'

        center, error = CoordinateValidator.parse_pair(
            center_raw.get('lat'), center_raw.get('lon'), 'center'
        )
        if error:
            return None, error

        try:
            radius_m = float(data.get('radiusM', DEFAULT_HAZARD_RADIUS_M))
        except (TypeError, ValueError):
            return None, 'radiusM must be a positive number'
        if not radius_m > 0 or radius_m == float('inf'):
            return None, 'radiusM must be a positive number'

        steps = data.get('steps')
        if steps is not None:
            try:
                steps = int(steps)
            except (TypeError, ValueError, OverflowError):
                return None, 'steps must be an integer'

        return {'center': center, 'radius_m': radius_m, 'steps': steps}, None

    @staticmethod
    def validate_direction_request(data: Optional[Dict]) -> Tuple[Optional[Dict[str, Coordinate]], Optional[str]]:
        """
        Validate a directions body: {startLat, startLng, endLat, endLng}.

        Returns:
            ({'start': Coordinate, 'end': Coordinate}, None) or (None, error_message)
        """
        if not data:
            return None, 'Request body is required'
        if not isinstance(data, dict):
            return None, 'Request body must be a JSON object'

        required = ['startLat', 'startLng', 'endLat', 'endLng']
        missing = [field for field in required if data.get(field) in (None, '')]
        if missing:
            return None, f'Missing required fields: {", ".join(missing)}'

        start, error = CoordinateValidator.parse_pair(data['startLat'], data['startLng'], 'start')
        if error:
            return None, error

        end, error = CoordinateValidator.parse_pair(data['endLat'], data['endLng'], 'end')
        if error:
            return None, error

        return {'start': start, 'end': end}, None
