"""
TMAP Routing Service for Shelter Navigation

Turn-by-turn walking and driving directions from the SK Open API (TMAP).

Features:
- Pedestrian and car route requests in WGS84 coordinates
- Real-time traffic applied to driving routes
- Every failure (missing key, timeout, transport error, non-2xx, non-JSON
  body) surfaces as ProviderUnavailable so callers can fall back

The raw GeoJSON payload is returned as-is; services.route_normalizer turns it
into a Route.
"""

import logging
import os
from typing import Any, Dict, Optional

import requests

from utils.errors import InvalidArgument, ProviderUnavailable
from utils.geo import Coordinate
from utils.secure_logging import describe_coordinate, mask_secret, redact_pii

logger = logging.getLogger(__name__)


class TmapRoutingService:
    """Client for the TMAP pedestrian and car routing endpoints."""

    TMAP_BASE_URL = "https://apis.openapi.sk.com"
    TMAP_TIMEOUT_SECONDS = 10

    # Travel mode -> endpoint path
    ENDPOINTS = {
        'walk': '/tmap/routes/pedestrian',
        'drive': '/tmap/routes',
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        """
        Args:
            api_key: TMAP app key. If None, reads from TMAP_API_KEY env variable
            base_url: API host, defaults to the public SK Open API host
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or os.getenv('TMAP_API_KEY')
        self.base_url = (base_url or self.TMAP_BASE_URL).rstrip('/')
        self.timeout = timeout or self.TMAP_TIMEOUT_SECONDS

        if not self.api_key:
            logger.warning("TMAP_API_KEY not provided - routes will be estimated locally")
        else:
            logger.info(f"TMAP Routing Service initialized (key {mask_secret(self.api_key)})")

    def is_enabled(self) -> bool:
        """Check if TMAP routing is available (API key configured)."""
        return bool(self.api_key)

    def _build_request_body(self, travel_mode: str, start: Coordinate, end: Coordinate) -> Dict[str, Any]:
        body = {
            'startX': start.lon,
            'startY': start.lat,
            'endX': end.lon,
            'endY': end.lat,
            'reqCoordType': 'WGS84GEO',
            'resCoordType': 'WGS84GEO',
            'searchOption': '0',  # recommended route
        }
        if travel_mode == 'walk':
            # pedestrian API requires place names
            body['startName'] = 'start'
            body['endName'] = 'end'
        else:
            body['trafficInfo'] = 'Y'
        return body

    def fetch_route(self, travel_mode: str, start: Coordinate, end: Coordinate) -> Dict[str, Any]:
        """
        Request a route and return the provider's raw JSON payload.

        Args:
            travel_mode: 'walk' or 'drive'
            start: Origin
            end: Destination

        Returns:
            TMAP GeoJSON FeatureCollection

        Raises:
            InvalidArgument: Unknown travel mode
            ProviderUnavailable: Key missing, timeout, transport failure,
                non-success status or non-JSON body
        """
        endpoint = self.ENDPOINTS.get(travel_mode)
        if endpoint is None:
            raise InvalidArgument(f"Unknown travel mode: {travel_mode!r}")

        if not self.api_key:
            raise ProviderUnavailable('tmap', 'TMAP_API_KEY not configured')

        logger.info(
            f"Requesting TMAP {travel_mode} route from "
            f"{describe_coordinate(start.lat, start.lon)} to {describe_coordinate(end.lat, end.lon)}"
        )

        try:
            response = requests.post(
                f"{self.base_url}{endpoint}",
                json=self._build_request_body(travel_mode, start, end),
                headers={
                    'Accept': 'application/json',
                    'Content-Type': 'application/json',
                    'appKey': self.api_key
                },
                params={'version': '1'},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.Timeout:
            logger.error("TMAP API request timed out")
            raise ProviderUnavailable('tmap', 'timeout')
        except requests.exceptions.RequestException as e:
            status = getattr(getattr(e, 'response', None), 'status_code', None)
            logger.error(redact_pii(f"TMAP API request failed (status {status}): {e}"))
            raise ProviderUnavailable('tmap', f"status {status}" if status else type(e).__name__)

        try:
            return response.json()
        except ValueError:
            logger.error(redact_pii(f"TMAP API returned non-JSON body: {response.text[:200]}"))
            raise ProviderUnavailable('tmap', 'response was not JSON')
