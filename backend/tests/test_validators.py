"""
Tests for validation utilities
"""
import pytest
from utils.geo import Coordinate
from utils.validators import (
    CoordinateValidator,
    DEFAULT_HAZARD_CENTER,
    DEFAULT_HAZARD_RADIUS_M,
    RequestValidator,
)


class TestCoordinateValidator:
    """Test suite for CoordinateValidator"""

    def test_valid_coordinates(self):
        assert CoordinateValidator.validate_coordinates(36.0805, 129.4040) is True
        assert CoordinateValidator.validate_coordinates(0, 0) is True
        assert CoordinateValidator.validate_coordinates(90, 180) is True

    def test_invalid_coordinates(self):
        assert CoordinateValidator.validate_coordinates(91, 0) is False
        assert CoordinateValidator.validate_coordinates(0, 181) is False
        assert CoordinateValidator.validate_coordinates("invalid", 0) is False
        assert CoordinateValidator.validate_coordinates(None, 0) is False

    def test_parse_pair_from_query_strings(self):
        point, error = CoordinateValidator.parse_pair('36.0805', '129.4040')
        assert error is None
        assert point == Coordinate(36.0805, 129.4040)

    def test_parse_pair_missing(self):
        point, error = CoordinateValidator.parse_pair(None, '129.4')
        assert point is None
        assert 'required' in error

    def test_parse_pair_not_numeric(self):
        point, error = CoordinateValidator.parse_pair('abc', '129.4', 'start')
        assert point is None
        assert error.startswith('start:')

    def test_parse_pair_out_of_range(self):
        point, error = CoordinateValidator.parse_pair('95', '129.4')
        assert point is None
        assert 'Latitude' in error


class TestRequestValidator:
    """Test suite for request body and query validation"""

    @pytest.mark.parametrize('value,expected', [
        (None, True), ('', True), ('true', True), ('TRUE', True),
        ('false', False), ('1', False), ('yes', False), (False, False),
    ])
    def test_parse_bool(self, value, expected):
        assert RequestValidator.parse_bool(value, default=True) is expected

    def test_parse_positive_int(self):
        assert RequestValidator.parse_positive_int(None, 10, 'k') == (10, None)
        assert RequestValidator.parse_positive_int('3', 10, 'k') == (3, None)
        assert RequestValidator.parse_positive_int('0', 10, 'k') == (None, 'k must be between 1 and 100')
        assert RequestValidator.parse_positive_int('101', 10, 'k') == (None, 'k must be between 1 and 100')
        assert RequestValidator.parse_positive_int('x', 10, 'k') == (None, 'k must be a number')

    def test_travel_modes(self):
        assert RequestValidator.validate_travel_mode('walk') is True
        assert RequestValidator.validate_travel_mode('drive') is True
        assert RequestValidator.validate_travel_mode('bike') is False

    def test_hazard_request_defaults(self):
        params, error = RequestValidator.validate_hazard_request(None)
        assert error is None
        assert params['center'] == Coordinate(DEFAULT_HAZARD_CENTER['lat'], DEFAULT_HAZARD_CENTER['lon'])
        assert params['radius_m'] == DEFAULT_HAZARD_RADIUS_M
        assert params['steps'] is None

    def test_hazard_request_explicit(self):
        params, error = RequestValidator.validate_hazard_request({
            'center': {'lat': 36.08, 'lon': 129.40}, 'radiusM': '500', 'steps': 32
        })
        assert error is None
        assert params['radius_m'] == 500.0
        assert params['steps'] == 32

    @pytest.mark.parametrize('radius', [0, -10, 'wide', float('nan'), float('inf')])
    def test_hazard_request_bad_radius(self, radius):
        params, error = RequestValidator.validate_hazard_request({
            'center': {'lat': 36.08, 'lon': 129.40}, 'radiusM': radius
        })
        assert params is None
        assert 'radiusM' in error

    def test_hazard_request_bad_center(self):
        params, error = RequestValidator.validate_hazard_request({'center': [129.4, 36.08]})
        assert params is None
        assert 'center' in error

    @pytest.mark.parametrize('body', [[1, 2], [], 'center', 5])
    def test_hazard_request_non_object_body(self, body):
        params, error = RequestValidator.validate_hazard_request(body)
        assert params is None
        assert error == 'Request body must be a JSON object'

    def test_hazard_request_infinite_steps(self):
        params, error = RequestValidator.validate_hazard_request({'steps': float('inf')})
        assert params is None
        assert error == 'steps must be an integer'

    def test_direction_request(self):
        params, error = RequestValidator.validate_direction_request({
            'startLat': 36.0805, 'startLng': 129.4040, 'endLat': 36.0645, 'endLng': 129.3775
        })
        assert error is None
        assert params['start'] == Coordinate(36.0805, 129.4040)
        assert params['end'] == Coordinate(36.0645, 129.3775)

    def test_direction_request_non_object_body(self):
        params, error = RequestValidator.validate_direction_request([36.08, 129.40, 36.06, 129.37])
        assert params is None
        assert error == 'Request body must be a JSON object'

    def test_direction_request_missing_fields(self):
        params, error = RequestValidator.validate_direction_request({'startLat': 36.08, 'startLng': 129.40})
        assert params is None
        assert error == 'Missing required fields: endLat, endLng'

    def test_direction_request_zero_is_not_missing(self):
        params, error = RequestValidator.validate_direction_request({
            'startLat': 0, 'startLng': 0, 'endLat': 0.01, 'endLng': 0.01
        })
        assert error is None
        assert params['start'] == Coordinate(0.0, 0.0)
