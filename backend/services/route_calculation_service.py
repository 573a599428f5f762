"""
Route Calculation Service for Shelter Navigation

Produces a usable walking or driving Route between two points.

Features:
- TMAP turn-by-turn routing normalized into one canonical Route
- Locally estimated route whenever the provider is unavailable or its payload
  cannot be normalized, flagged with is_estimated and a notice
- Process-lifetime cache keyed by coordinates rounded to 6 decimals and the
  travel mode, with at most one computation in flight per key
"""

import logging
from typing import Any, Dict, Optional, Tuple

from services.cache_manager import RouteCache
from services.route_normalizer import Route, build_estimated_route, normalize_route
from services.tmap_routing_service import TmapRoutingService
from utils.errors import InvalidArgument, NoRouteFound, ProviderUnavailable
from utils.geo import Coordinate, is_valid_coordinates
from utils.validators import TRAVEL_MODES

logger = logging.getLogger(__name__)

# ~11 cm; requests closer than this share a cache entry
CACHE_KEY_PRECISION = 6

CacheKey = Tuple[str, Tuple[float, float], Tuple[float, float]]


def route_cache_key(travel_mode: str, start: Coordinate, end: Coordinate) -> CacheKey:
    return (
        travel_mode,
        (round(start.lat, CACHE_KEY_PRECISION), round(start.lon, CACHE_KEY_PRECISION)),
        (round(end.lat, CACHE_KEY_PRECISION), round(end.lon, CACHE_KEY_PRECISION)),
    )


class RouteCalculationService:
    """
    Route surface used by the directions endpoints.

    Always returns a Route (real or estimated) unless even the estimate is
    impossible, in which case NoRouteFound propagates.
    """

    def __init__(self, routing_service: Optional[TmapRoutingService] = None, cache: Optional[RouteCache] = None):
        """
        Args:
            routing_service: Provider client; None means every route is estimated
            cache: Route cache, a fresh one when omitted
        """
        self.routing_service = routing_service
        self.cache = cache if cache is not None else RouteCache()

        if self.routing_service and self.routing_service.is_enabled():
            logger.info("RouteCalculationService initialized with TMAP routing")
        else:
            logger.info("RouteCalculationService initialized with estimated routes only")

    def calculate_route(self, travel_mode: str, start: Coordinate, end: Coordinate) -> Route:
        """
        Route from start to end for the given travel mode.

        Args:
            travel_mode: 'walk' or 'drive'
            start: Origin
            end: Destination (usually a shelter)

        Returns:
            Route; the same object for repeated identical requests

        Raises:
            InvalidArgument: Unknown travel mode or invalid coordinates
            NoRouteFound: start and end coincide, so no route can be drawn
        """
        if travel_mode not in TRAVEL_MODES:
            raise InvalidArgument(f"travel_mode must be one of {', '.join(TRAVEL_MODES)}, got {travel_mode!r}")
        for label, point in (('start', start), ('end', end)):
            if point is None or not is_valid_coordinates(point.lat, point.lon):
                raise InvalidArgument(f"Invalid {label} coordinate: {point}")

        key = route_cache_key(travel_mode, start, end)
        return self.cache.get_or_compute(key, lambda: self._compute_route(travel_mode, start, end))

    def _compute_route(self, travel_mode: str, start: Coordinate, end: Coordinate) -> Route:
        if self.routing_service is None:
            return build_estimated_route(start, end, travel_mode)

        try:
            payload = self.routing_service.fetch_route(travel_mode, start, end)
        except ProviderUnavailable as e:
            logger.warning(f"Routing provider unavailable ({e.reason}); using estimated {travel_mode} route")
            return build_estimated_route(start, end, travel_mode)

        try:
            return normalize_route(payload, travel_mode, provider='tmap')
        except NoRouteFound as e:
            logger.warning(f"Provider route could not be normalized ({e}); using estimated {travel_mode} route")
            return build_estimated_route(start, end, travel_mode)

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()
