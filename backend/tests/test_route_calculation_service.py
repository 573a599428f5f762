"""
Tests for RouteCalculationService: provider routes, fallback, and caching
"""
import pytest
from unittest.mock import Mock

from services.cache_manager import RouteCache
from services.route_calculation_service import RouteCalculationService, route_cache_key
from services.tmap_routing_service import TmapRoutingService
from utils.errors import InvalidArgument, NoRouteFound, ProviderUnavailable
from utils.geo import Coordinate


TMAP_PAYLOAD = {
    'type': 'FeatureCollection',
    'features': [
        {'type': 'Feature', 'geometry': {'type': 'Point', 'coordinates': [129.4040, 36.0805]},
         'properties': {'index': 0, 'pointType': 'SP', 'description': 'Depart'}},
        {'type': 'Feature', 'geometry': {'type': 'LineString',
                                         'coordinates': [[129.4040, 36.0805], [129.3900, 36.0700], [129.3775, 36.0645]]},
         'properties': {'index': 1, 'distance': 3100, 'time': 2400}},
        {'type': 'Feature', 'geometry': {'type': 'Point', 'coordinates': [129.3775, 36.0645]},
         'properties': {'index': 2, 'pointType': 'EP', 'description': 'Arrive'}},
    ],
}


class TestRouteCalculationService:
    """Test cases for the route surface"""

    @pytest.fixture
    def provider(self):
        provider = Mock(spec=TmapRoutingService)
        provider.is_enabled.return_value = True
        provider.fetch_route.return_value = TMAP_PAYLOAD
        return provider

    @pytest.fixture
    def service(self, provider):
        return RouteCalculationService(provider, RouteCache())

    def test_provider_route(self, service, provider, pohang_origin, pohang_shelter):
        route = service.calculate_route('walk', pohang_origin, pohang_shelter)

        assert route.provider == 'tmap'
        assert route.is_estimated is False
        assert route.summary.distance_m == 3100
        provider.fetch_route.assert_called_once_with('walk', pohang_origin, pohang_shelter)

    def test_cached_route_is_same_object(self, service, provider, pohang_origin, pohang_shelter):
        first = service.calculate_route('walk', pohang_origin, pohang_shelter)
        second = service.calculate_route('walk', pohang_origin, pohang_shelter)

        assert first is second
        assert provider.fetch_route.call_count == 1
        assert service.cache_stats()['hits'] == 1

    def test_cache_key_rounds_to_six_decimals(self, service, provider, pohang_origin, pohang_shelter):
        nudged = Coordinate(pohang_origin.lat + 1e-8, pohang_origin.lon - 1e-8)
        first = service.calculate_route('walk', pohang_origin, pohang_shelter)
        second = service.calculate_route('walk', nudged, pohang_shelter)
        assert first is second

    def test_mode_is_part_of_key(self, service, provider, pohang_origin, pohang_shelter):
        service.calculate_route('walk', pohang_origin, pohang_shelter)
        service.calculate_route('drive', pohang_origin, pohang_shelter)
        assert provider.fetch_route.call_count == 2

    def test_route_cache_key(self):
        key = route_cache_key('drive', Coordinate(36.12345678, 129.1), Coordinate(36.0, 129.98765432))
        assert key == ('drive', (36.123457, 129.1), (36.0, 129.987654))

    def test_provider_unavailable_falls_back(self, service, provider, pohang_origin, pohang_shelter):
        provider.fetch_route.side_effect = ProviderUnavailable('tmap', 'timeout')

        route = service.calculate_route('walk', pohang_origin, pohang_shelter)

        assert route.is_estimated is True
        assert route.provider == 'estimate'
        assert route.notice
        assert route.summary.distance_m > 0
        assert route.summary.duration_s > 0
        assert len(route.coordinates) >= 2

    def test_estimated_route_is_cached(self, service, provider, pohang_origin, pohang_shelter):
        provider.fetch_route.side_effect = ProviderUnavailable('tmap', 'timeout')
        first = service.calculate_route('drive', pohang_origin, pohang_shelter)
        second = service.calculate_route('drive', pohang_origin, pohang_shelter)
        assert first is second
        assert provider.fetch_route.call_count == 1

    def test_unusable_payload_falls_back(self, service, provider, pohang_origin, pohang_shelter):
        provider.fetch_route.return_value = {'features': []}
        route = service.calculate_route('walk', pohang_origin, pohang_shelter)
        assert route.is_estimated is True

    def test_without_provider(self, pohang_origin, pohang_shelter):
        service = RouteCalculationService(None)
        route = service.calculate_route('walk', pohang_origin, pohang_shelter)
        assert route.is_estimated is True
        assert route.summary.distance_m > 0

    def test_unknown_mode(self, service, pohang_origin, pohang_shelter):
        with pytest.raises(InvalidArgument):
            service.calculate_route('bike', pohang_origin, pohang_shelter)

    def test_invalid_coordinate(self, service, pohang_shelter):
        with pytest.raises(InvalidArgument):
            service.calculate_route('walk', Coordinate(100, 0), pohang_shelter)

    def test_same_start_and_end(self, service, provider, pohang_origin):
        provider.fetch_route.side_effect = ProviderUnavailable('tmap', 'timeout')
        with pytest.raises(NoRouteFound):
            service.calculate_route('walk', pohang_origin, pohang_origin)
        # failure is not cached
        assert service.cache_stats()['entries'] == 0

    def test_clear_cache(self, service, provider, pohang_origin, pohang_shelter):
        service.calculate_route('walk', pohang_origin, pohang_shelter)
        service.clear_cache()
        service.calculate_route('walk', pohang_origin, pohang_shelter)
        assert provider.fetch_route.call_count == 2
