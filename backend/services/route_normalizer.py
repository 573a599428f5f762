"""
Route Normalizer for Shelter Navigation

Turns a routing provider's segmented payload into one canonical Route, and
builds the estimated (dummy) route used when the provider is unavailable.

Features:
- Segment extraction strategies for TMAP-style GeoJSON features and a generic
  "segments" list, both normalized from [lon, lat] at the boundary
- Segments re-ordered by their reported sequence index before stitching
- Consecutive duplicate coordinates collapsed; later revisits preserved
- start/end steps guaranteed, synthesized from the totals when missing
- Human-readable distance/duration text
- Curved estimated route (cubic Bézier) with road factor and mode speed

Routes are frozen once built; callers share them through the route cache.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from utils.distance import meters_per_degree
from utils.errors import InvalidArgument, NoRouteFound
from utils.geo import Coordinate, coerce_coordinate, distance_meters

logger = logging.getLogger(__name__)

STEP_KINDS = ('start', 'waypoint', 'end')

# Estimated route parameters per travel mode
TRAVEL_PROFILES = {
    'walk': {
        'road_factor': 1.4,        # footpaths and alleys wind more
        'speed_m_per_min': 70.0,   # ~4.2 km/h
        'curve_segments': 15,
        'depart_instruction': 'Start walking',
    },
    'drive': {
        'road_factor': 1.3,
        'speed_m_per_min': 400.0,  # ~24 km/h, urban
        'curve_segments': 12,
        'depart_instruction': 'Start driving',
    },
}

# Bézier control points sit this fraction of the span off the straight line
CURVE_OFFSET_RATIO = 0.15

ESTIMATED_ROUTE_NOTICE = (
    'Estimated route: the routing service is unavailable, '
    'so the path, distance and time are approximate.'
)


@dataclass(frozen=True)
class Step:
    index: int
    instruction: str
    distance_m: float
    duration_s: float
    coordinate: Coordinate
    kind: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step': self.index,
            'instruction': self.instruction,
            'distance': self.distance_m,
            'duration': self.duration_s,
            'coordinate': self.coordinate.to_lon_lat(),
            'type': self.kind
        }


@dataclass(frozen=True)
class RouteSummary:
    distance_m: float
    duration_s: float
    distance_text: str
    duration_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'distance': int(_round_half_up(self.distance_m)),
            'duration': int(_round_half_up(self.duration_s)),
            'distanceText': self.distance_text,
            'durationText': self.duration_text
        }


@dataclass(frozen=True)
class RouteBounds:
    southwest: Coordinate
    northeast: Coordinate

    def to_dict(self) -> Dict[str, Any]:
        return {
            'southwest': self.southwest.to_lon_lat(),
            'northeast': self.northeast.to_lon_lat()
        }


@dataclass(frozen=True)
class Route:
    coordinates: Tuple[Coordinate, ...]
    steps: Tuple[Step, ...]
    summary: RouteSummary
    bounds: Optional[RouteBounds]
    travel_mode: str
    provider: str
    is_estimated: bool = False
    notice: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary.to_dict(),
            'steps': [step.to_dict() for step in self.steps],
            'coordinates': [c.to_lon_lat() for c in self.coordinates],
            'bounds': self.bounds.to_dict() if self.bounds else None,
            'travelMode': self.travel_mode,
            'provider': self.provider,
            'isEstimated': self.is_estimated,
            'notice': self.notice
        }


@dataclass(frozen=True)
class RouteSegment:
    """One provider path segment after coordinate normalization."""
    index: float
    geometry: str  # 'line' | 'point'
    coordinates: Tuple[Coordinate, ...]
    distance_m: float = 0.0
    duration_s: float = 0.0
    kind: Optional[str] = None
    instruction: str = ''


def _round_half_up(value: float) -> float:
    return math.floor(value + 0.5)


def _number(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def format_distance(meters: float) -> str:
    """
    Examples:
        >>> format_distance(850.4)
        '850m'
        >>> format_distance(1234)
        '1.2km'
    """
    if meters >= 1000:
        return f"{meters / 1000:.1f}km"
    return f"{int(_round_half_up(meters))}m"


def format_duration(seconds: float) -> str:
    """
    Minutes, switching to hours and minutes from 60 minutes.

    Examples:
        >>> format_duration(725)
        '12 min'
        >>> format_duration(3900)
        '1 h 5 min'
        >>> format_duration(7200)
        '2 h'
    """
    minutes = int(_round_half_up(seconds / 60))
    if minutes >= 60:
        hours, remainder = divmod(minutes, 60)
        return f"{hours} h {remainder} min" if remainder else f"{hours} h"
    return f"{minutes} min"


# ---------------------------------------------------------------------------
# Segment extraction strategies
# ---------------------------------------------------------------------------

def _point_kind(point_type: Any) -> Optional[str]:
    """Map provider point tags: TMAP pedestrian SP/EP/GP/PPn, car S/E/N/B..."""
    if point_type is None or point_type == '':
        return None
    tag = str(point_type).strip().upper()
    if tag in ('SP', 'S', 'START'):
        return 'start'
    if tag in ('EP', 'E', 'END'):
        return 'end'
    return 'waypoint'


def _coerce_line(raw_coordinates: Any) -> Tuple[Coordinate, ...]:
    if not isinstance(raw_coordinates, (list, tuple)):
        raise InvalidArgument(f"Line coordinates must be a list, got {type(raw_coordinates).__name__}")
    return tuple(coerce_coordinate(c) for c in raw_coordinates)


def _segments_from_features(payload: Dict[str, Any]) -> Optional[List[RouteSegment]]:
    features = payload.get('features')
    if not isinstance(features, list):
        return None

    segments = []
    for position, feature in enumerate(features):
        if not isinstance(feature, dict):
            logger.warning(f"Skipping route feature {position}: not an object")
            continue

        props = feature.get('properties') or {}
        geometry = feature.get('geometry') or {}
        geometry_type = geometry.get('type')
        index = _number(
            props.get('index', props.get('pointIndex', props.get('lineIndex'))),
            default=position
        )

        try:
            if geometry_type == 'LineString':
                segments.append(RouteSegment(
                    index=index,
                    geometry='line',
                    coordinates=_coerce_line(geometry.get('coordinates')),
                    distance_m=_number(props.get('distance')),
                    duration_s=_number(props.get('time')),
                ))
            elif geometry_type == 'Point':
                segments.append(RouteSegment(
                    index=index,
                    geometry='point',
                    coordinates=(coerce_coordinate(geometry.get('coordinates')),),
                    distance_m=_number(props.get('distance')),
                    duration_s=_number(props.get('time')),
                    kind=_point_kind(props.get('pointType')),
                    instruction=str(props.get('description') or ''),
                ))
            else:
                logger.warning(f"Skipping route feature {position}: unsupported geometry {geometry_type!r}")
        except InvalidArgument as e:
            logger.warning(f"Skipping route feature {position}: {e}")

    return segments


def _segments_from_segment_list(payload: Dict[str, Any]) -> Optional[List[RouteSegment]]:
    raw_segments = payload.get('segments')
    if not isinstance(raw_segments, list):
        return None

    segments = []
    for position, raw in enumerate(raw_segments):
        if not isinstance(raw, dict):
            logger.warning(f"Skipping route segment {position}: not an object")
            continue

        segment_type = str(raw.get('type', '')).lower()
        index = _number(raw.get('index'), default=position)

        try:
            if segment_type == 'line':
                coordinates = _coerce_line(raw.get('coordinates'))
                kind = None
            elif segment_type == 'point':
                raw_point = raw.get('coordinate', raw.get('coordinates'))
                coordinates = (coerce_coordinate(raw_point),)
                kind = raw.get('kind') if raw.get('kind') in STEP_KINDS else _point_kind(raw.get('kind'))
            else:
                logger.warning(f"Skipping route segment {position}: unknown type {segment_type!r}")
                continue
        except InvalidArgument as e:
            logger.warning(f"Skipping route segment {position}: {e}")
            continue

        segments.append(RouteSegment(
            index=index,
            geometry=segment_type,
            coordinates=coordinates,
            distance_m=_number(raw.get('distance')),
            duration_s=_number(raw.get('duration')),
            kind=kind,
            instruction=str(raw.get('instruction') or ''),
        ))

    return segments


SEGMENT_STRATEGIES: Sequence[Callable[[Dict[str, Any]], Optional[List[RouteSegment]]]] = (
    _segments_from_features,
    _segments_from_segment_list,
)


def extract_segments(payload: Any) -> List[RouteSegment]:
    """
    Run the segment strategies in order; the first one that recognises the
    payload wins.

    Raises:
        NoRouteFound: If no strategy recognises the payload
    """
    if isinstance(payload, dict):
        for strategy in SEGMENT_STRATEGIES:
            segments = strategy(payload)
            if segments is not None:
                return segments

    raise NoRouteFound("Routing payload has no recognisable segments")


# ---------------------------------------------------------------------------
# Canonical route assembly
# ---------------------------------------------------------------------------

def dedupe_consecutive(coordinates: Sequence[Coordinate]) -> List[Coordinate]:
    """Drop a coordinate only when it equals the one right before it."""
    result: List[Coordinate] = []
    for coordinate in coordinates:
        if result and result[-1] == coordinate:
            continue
        result.append(coordinate)
    return result


def compute_bounds(coordinates: Sequence[Coordinate]) -> Optional[RouteBounds]:
    if not coordinates:
        return None
    lats = [c.lat for c in coordinates]
    lons = [c.lon for c in coordinates]
    return RouteBounds(
        southwest=Coordinate(min(lats), min(lons)),
        northeast=Coordinate(max(lats), max(lons))
    )


def _finalize_steps(
    steps: List[Step],
    coordinates: Sequence[Coordinate],
    total_distance: float,
    total_duration: float
) -> Tuple[Step, ...]:
    """Guarantee steps[0] is start and steps[-1] is end, then re-index from 0."""
    first, last = coordinates[0], coordinates[-1]

    if not steps:
        steps = [
            Step(0, 'Depart', 0.0, 0.0, first, 'start'),
            Step(1, 'Arrive at destination', total_distance, total_duration, last, 'end'),
        ]
    else:
        # start/end tags are only meaningful at the ends
        steps = [
            Step(s.index, s.instruction, s.distance_m, s.duration_s, s.coordinate,
                 'waypoint' if 0 < i < len(steps) - 1 and s.kind != 'waypoint' else s.kind)
            for i, s in enumerate(steps)
        ]
        if steps[0].kind != 'start':
            steps.insert(0, Step(0, 'Depart', 0.0, 0.0, first, 'start'))
        if steps[-1].kind != 'end':
            steps.append(Step(0, 'Arrive at destination', total_distance, total_duration, last, 'end'))

    return tuple(
        Step(i, s.instruction, s.distance_m, s.duration_s, s.coordinate, s.kind)
        for i, s in enumerate(steps)
    )


def build_route(
    coordinates: Sequence[Coordinate],
    steps: List[Step],
    total_distance: float,
    total_duration: float,
    travel_mode: str,
    provider: str,
    is_estimated: bool = False,
    notice: Optional[str] = None
) -> Route:
    """
    Assemble a Route from an ordered coordinate buffer and collected steps.

    Raises:
        NoRouteFound: If fewer than two distinct consecutive coordinates remain
    """
    coordinates = dedupe_consecutive(coordinates)
    if len(coordinates) < 2:
        raise NoRouteFound(f"Route has {len(coordinates)} distinct coordinates; at least 2 are required")

    total_distance = max(0.0, total_distance)
    total_duration = max(0.0, total_duration)

    return Route(
        coordinates=tuple(coordinates),
        steps=_finalize_steps(steps, coordinates, total_distance, total_duration),
        summary=RouteSummary(
            distance_m=total_distance,
            duration_s=total_duration,
            distance_text=format_distance(total_distance),
            duration_text=format_duration(total_duration)
        ),
        bounds=compute_bounds(coordinates),
        travel_mode=travel_mode,
        provider=provider,
        is_estimated=is_estimated,
        notice=notice
    )


def normalize_route(payload: Any, travel_mode: str, provider: str = 'tmap') -> Route:
    """
    Normalize a raw provider payload into a canonical Route.

    1. Sort segments by their reported sequence index (stable)
    2. Line segments append coordinates and add to the distance/duration totals;
       tagged point segments become steps
    3. Collapse consecutive duplicate coordinates
    4. Synthesize start/end steps when the payload has none
    5. Bounds from min/max lat/lon
    6. Distance and duration text from the totals

    Raises:
        NoRouteFound: Unrecognised payload or no usable line coordinates
    """
    segments = sorted(extract_segments(payload), key=lambda s: s.index)

    buffer: List[Coordinate] = []
    steps: List[Step] = []
    total_distance = 0.0
    total_duration = 0.0

    for segment in segments:
        if segment.geometry == 'line':
            buffer.extend(segment.coordinates)
            total_distance += segment.distance_m
            total_duration += segment.duration_s
        elif segment.kind or segment.instruction:
            steps.append(Step(
                index=len(steps),
                instruction=segment.instruction,
                distance_m=segment.distance_m,
                duration_s=segment.duration_s,
                coordinate=segment.coordinates[0],
                kind=segment.kind or 'waypoint'
            ))

    if not buffer:
        raise NoRouteFound(f"{provider} payload contained no line coordinates")

    route = build_route(buffer, steps, total_distance, total_duration, travel_mode, provider)
    logger.debug(
        f"Normalized {len(segments)} {provider} segments into {len(route.coordinates)} "
        f"coordinates and {len(route.steps)} steps"
    )
    return route


# ---------------------------------------------------------------------------
# Estimated route
# ---------------------------------------------------------------------------

def _bezier_point(t: float, p0, p1, p2, p3) -> Tuple[float, float]:
    u = 1 - t
    a = u ** 3
    b = 3 * u ** 2 * t
    c = 3 * u * t ** 2
    d = t ** 3
    return (
        a * p0[0] + b * p1[0] + c * p2[0] + d * p3[0],
        a * p0[1] + b * p1[1] + c * p2[1] + d * p3[1],
    )


def curved_path(start: Coordinate, end: Coordinate, segments: int) -> List[Coordinate]:
    """
    Sample a cubic Bézier from start to end whose control points sit at one
    and two thirds of the way, pushed to opposite sides of the straight line.

    Offsets are computed in a local meter frame so the curve keeps its shape
    at any latitude.
    """
    per_lat, per_lon = meters_per_degree((start.lat + end.lat) / 2)
    dx = (end.lon - start.lon) * per_lon
    dy = (end.lat - start.lat) * per_lat
    length = math.hypot(dx, dy)

    if length == 0:
        return [start, end]

    # perpendicular to (dx, dy), CURVE_OFFSET_RATIO of its length
    ox = -dy * CURVE_OFFSET_RATIO
    oy = dx * CURVE_OFFSET_RATIO

    p0 = (0.0, 0.0)
    p1 = (dx / 3 + ox, dy / 3 + oy)
    p2 = (2 * dx / 3 - ox, 2 * dy / 3 - oy)
    p3 = (dx, dy)

    points = [start]
    for i in range(1, segments):
        x, y = _bezier_point(i / segments, p0, p1, p2, p3)
        points.append(Coordinate(start.lat + y / per_lat, start.lon + x / per_lon))
    points.append(end)
    return points


def build_estimated_route(
    start: Coordinate,
    end: Coordinate,
    travel_mode: str,
    destination_name: Optional[str] = None
) -> Route:
    """
    Locally estimated route for when the routing provider cannot answer.

    distance = straight-line distance × road factor
    duration = distance ÷ mode speed

    Raises:
        InvalidArgument: Unknown travel mode
        NoRouteFound: start and end are the same point
    """
    profile = TRAVEL_PROFILES.get(travel_mode)
    if profile is None:
        raise InvalidArgument(f"Unknown travel mode: {travel_mode!r}")

    straight_m = distance_meters(start, end)
    if straight_m == 0:
        raise NoRouteFound("Start and destination are the same point")

    road_distance = straight_m * profile['road_factor']
    duration_s = road_distance / profile['speed_m_per_min'] * 60

    coordinates = curved_path(start, end, profile['curve_segments'])
    middle = coordinates[len(coordinates) // 2]
    target = destination_name or 'the shelter'

    steps = [
        Step(0, profile['depart_instruction'], 0.0, 0.0, coordinates[0], 'start'),
        Step(1, f"Continue toward {target}", road_distance / 2, duration_s / 2, middle, 'waypoint'),
        Step(2, f"Arrive at {target}", road_distance, duration_s, coordinates[-1], 'end'),
    ]

    logger.info(f"Built estimated {travel_mode} route: {road_distance:.0f}m, {duration_s:.0f}s")
    return build_route(
        coordinates, steps, road_distance, duration_s, travel_mode,
        provider='estimate', is_estimated=True, notice=ESTIMATED_ROUTE_NOTICE
    )
