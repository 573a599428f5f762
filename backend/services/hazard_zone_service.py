"""
Hazard Zone Service for Wildfire Shelter Guidance

Builds the polygon approximating the current danger area and answers
point queries against it.

Features:
- Circular hazard polygon from a centre and radius (16-256 vertices)
- Point containment (boundary points count as inside)
- Great-circle distance from a point to the polygon edge
- Coarse risk tier (none/low/medium/high) for "am I safe" queries
- HazardZoneStore: the single "latest hazard" reference, replaced atomically

Polygons are held in GeoJSON axis order (x = lon, y = lat) for shapely.
Rings that cross the antimeridian or enclose a pole are not supported.
"""

import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cached_property
from typing import Any, Dict, Optional, Tuple

from shapely.geometry import LineString, Point, Polygon

from utils.distance import destination_point, meters_per_degree
from utils.errors import InvalidArgument
from utils.geo import Coordinate, distance_meters, is_valid_coordinates

logger = logging.getLogger(__name__)

MIN_VERTICES = 16
MAX_VERTICES = 256
DEFAULT_VERTICES = 64

# Outside the zone but closer than this to its edge is "medium" risk
MEDIUM_RISK_DISTANCE_M = 300.0

RISK_TIERS = ('none', 'low', 'medium', 'high')


@dataclass(frozen=True)
class HazardZone:
    """Immutable hazard polygon. boundary is a closed ring (last == first)."""
    centroid: Coordinate
    radius_m: float
    boundary: Tuple[Coordinate, ...]
    vertex_count: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @cached_property
    def polygon(self) -> Polygon:
        return Polygon([(c.lon, c.lat) for c in self.boundary])

    def to_geojson(self) -> Dict[str, Any]:
        """FeatureCollection with a single Polygon feature, as the map widget expects."""
        return {
            'type': 'FeatureCollection',
            'features': [{
                'type': 'Feature',
                'properties': {
                    'radiusM': self.radius_m,
                    'steps': self.vertex_count
                },
                'geometry': {
                    'type': 'Polygon',
                    'coordinates': [[c.to_lon_lat() for c in self.boundary]]
                }
            }]
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'centroid': self.centroid.to_dict(),
            'radiusM': self.radius_m,
            'steps': self.vertex_count,
            'createdAt': self.created_at.isoformat(),
            'boundary': [c.to_dict() for c in self.boundary]
        }


@dataclass(frozen=True)
class RiskAssessment:
    in_hazard: bool
    distance_to_edge_m: Optional[float]
    tier: str

    def to_dict(self) -> Dict[str, Any]:
        distance = None
        if self.distance_to_edge_m is not None:
            distance = int(round(self.distance_to_edge_m))
        return {
            'inHazard': self.in_hazard,
            'distanceToEdgeM': distance,
            'tier': self.tier
        }


def clamp_vertex_count(vertex_count: Optional[int]) -> int:
    """Clamp a requested vertex count to [16, 256]; None means the default."""
    if vertex_count is None:
        return DEFAULT_VERTICES
    return max(MIN_VERTICES, min(MAX_VERTICES, int(vertex_count)))


def create_hazard_zone(
    centroid: Coordinate,
    radius_m: float,
    vertex_count: Optional[int] = DEFAULT_VERTICES
) -> HazardZone:
    """
    Generate a hazard polygon around centroid.

    Vertices are great-circle destination points at radius_m, evenly spaced
    by bearing starting due north and going clockwise.

    Args:
        centroid: Centre of the danger area
        radius_m: Radius in meters (must be > 0)
        vertex_count: Number of distinct vertices, clamped to [16, 256]

    Returns:
        HazardZone whose boundary holds vertex_count + 1 points

    Raises:
        InvalidArgument: If centroid is out of range or radius_m <= 0
    """
    if centroid is None or not is_valid_coordinates(centroid.lat, centroid.lon):
        raise InvalidArgument(f"Invalid hazard centroid: {centroid}")

    try:
        radius_m = float(radius_m)
    except (TypeError, ValueError):
        raise InvalidArgument(f"radius_m must be a number, got {radius_m!r}")
    if not math.isfinite(radius_m) or radius_m <= 0:
        raise InvalidArgument(f"radius_m must be positive, got {radius_m}")

    steps = clamp_vertex_count(vertex_count)

    vertices = []
    for i in range(steps):
        bearing = 360.0 * i / steps
        lat, lon = destination_point(centroid.lat, centroid.lon, bearing, radius_m)
        vertices.append(Coordinate(lat, lon))
    vertices.append(vertices[0])

    logger.debug(f"Built hazard ring with {steps} vertices, radius {radius_m:.0f}m")
    return HazardZone(
        centroid=centroid,
        radius_m=radius_m,
        boundary=tuple(vertices),
        vertex_count=steps
    )


def contains(zone: HazardZone, point: Coordinate) -> bool:
    """
    Point-in-polygon test against the hazard boundary.

    Uses shapely's covers(), so a point lying exactly on the boundary counts
    as inside. Staying on the conservative side keeps boundary shelters out of
    "safe" results.
    """
    return zone.polygon.covers(Point(point.lon, point.lat))


def distance_to_boundary_m(zone: HazardZone, point: Coordinate) -> float:
    """
    Minimum distance in meters from point to the nearest segment of the boundary.

    The ring is projected into a local equirectangular frame (meters) centred
    on point, the nearest point on the ring is found there, and the
    great-circle distance to that nearest point is returned. This is not
    |distance(point, centroid) - radius|: the boundary is a polygon.
    """
    per_lat, per_lon = meters_per_degree(point.lat)

    def _offset_lon(lon: float) -> float:
        return ((lon - point.lon + 540.0) % 360.0) - 180.0

    ring = LineString([
        (_offset_lon(c.lon) * per_lon, (c.lat - point.lat) * per_lat)
        for c in zone.boundary
    ])
    origin = Point(0.0, 0.0)
    nearest = ring.interpolate(ring.project(origin))

    nearest_coord = Coordinate(
        point.lat + nearest.y / per_lat,
        point.lon + nearest.x / per_lon
    )
    return max(0.0, distance_meters(point, nearest_coord))


def classify_risk(zone: Optional[HazardZone], point: Coordinate) -> RiskAssessment:
    """
    Coarse risk classification of a point against the current hazard.

    - No zone: not in hazard, no distance, tier "none"
    - Inside (or on) the boundary: tier "high"
    - Outside within 300 m of the edge: tier "medium"
    - Otherwise: tier "low"
    """
    if zone is None:
        return RiskAssessment(in_hazard=False, distance_to_edge_m=None, tier='none')

    inside = contains(zone, point)
    distance = distance_to_boundary_m(zone, point)

    if inside:
        tier = 'high'
    elif distance < MEDIUM_RISK_DISTANCE_M:
        tier = 'medium'
    else:
        tier = 'low'

    return RiskAssessment(in_hazard=inside, distance_to_edge_m=distance, tier=tier)


class HazardZoneStore:
    """
    Owner of the process-wide "latest hazard" reference.

    Writers replace the whole HazardZone; readers get whichever complete
    value was current when they asked. No history is kept.
    """

    def __init__(self, initial: Optional[HazardZone] = None):
        self._lock = threading.Lock()
        self._zone = initial

    def get(self) -> Optional[HazardZone]:
        return self._zone

    def replace(self, zone: HazardZone) -> Optional[HazardZone]:
        """Swap in a new zone, returning the one it replaced."""
        with self._lock:
            previous = self._zone
            self._zone = zone
        return previous

    def clear(self) -> None:
        with self._lock:
            self._zone = None


class HazardZoneService:
    """
    Hazard operations bound to a HazardZoneStore, used by the HTTP layer and
    the shelter ranking service.
    """

    def __init__(self, store: Optional[HazardZoneStore] = None, default_vertices: int = DEFAULT_VERTICES):
        self.store = store or HazardZoneStore()
        self.default_vertices = clamp_vertex_count(default_vertices)

    def create_hazard(
        self,
        center: Coordinate,
        radius_m: float,
        steps: Optional[int] = None
    ) -> HazardZone:
        """Build a new hazard zone and make it the latest one."""
        zone = create_hazard_zone(center, radius_m, steps if steps is not None else self.default_vertices)
        self.store.replace(zone)
        logger.info(f"Hazard zone replaced: radius {zone.radius_m:.0f}m, {zone.vertex_count} vertices")
        return zone

    def latest(self) -> Optional[HazardZone]:
        return self.store.get()

    def classify_point(self, point: Coordinate) -> RiskAssessment:
        return classify_risk(self.store.get(), point)

    def is_in_hazard(self, point: Coordinate) -> bool:
        zone = self.store.get()
        return zone is not None and contains(zone, point)
