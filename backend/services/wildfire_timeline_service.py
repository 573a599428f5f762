"""
Wildfire Timeline Service
Loads a time-ordered wildfire spread simulation and drives its playback.

Input is either a JSON array of frame records or NDJSON (one frame per line).
Frame record fields:
  - time_minutes: Minutes since ignition
  - burned_coordinates: [{lat, lon, row, col}, ...] burned grid cells
  - ignition_point: {lat, lon}
  - total_burned_pixels: Burned cell count reported by the simulator
  - metadata: Free-form simulator parameters, passed through untouched
"""
import json
import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from utils.distance import meters_per_degree
from utils.errors import InvalidArgument, MalformedExternalRecord, NoFramesParsed
from utils.geo import Coordinate, is_valid_coordinates

logger = logging.getLogger(__name__)

# Rendered cell half-width bounds (meters)
DEFAULT_CELL_HALF_M = 25.0
MIN_CELL_HALF_M = 10.0
MAX_CELL_HALF_M = 100.0

DEFAULT_PLAYBACK_INTERVAL_MS = 1000

IDLE = 'idle'
PLAYING = 'playing'
PAUSED = 'paused'


@dataclass(frozen=True)
class BurnedCell:
    lat: float
    lon: float
    row: Optional[int] = None
    col: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'lat': self.lat, 'lon': self.lon, 'row': self.row, 'col': self.col}


@dataclass(frozen=True)
class WildfireFrame:
    time_minutes: float
    burned_cells: Tuple[BurnedCell, ...]
    ignition_point: Optional[Coordinate] = None
    total_burned: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def summary(self) -> Dict[str, Any]:
        return {
            'timeMinutes': self.time_minutes,
            'burnedCount': len(self.burned_cells),
            'totalBurned': self.total_burned,
            'ignition': self.ignition_point.to_dict() if self.ignition_point else None
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.summary()
        data.update({
            'burned': [cell.to_dict() for cell in self.burned_cells],
            'cellHalfM': estimate_cell_size(self.burned_cells),
            'metadata': self.metadata
        })
        return data

    def to_geojson(self) -> Dict[str, Any]:
        """Burned cells as square Polygon features sized from the grid spacing."""
        half_m = estimate_cell_size(self.burned_cells)
        features = []
        for cell in self.burned_cells:
            ring = [c.to_lon_lat() for c in cell_square(cell.lat, cell.lon, half_m)]
            ring.append(ring[0])
            features.append({
                'type': 'Feature',
                'geometry': {'type': 'Polygon', 'coordinates': [ring]},
                'properties': {'row': cell.row, 'col': cell.col}
            })
        return {'type': 'FeatureCollection', 'features': features}


@dataclass(frozen=True)
class WildfireTimeline:
    """Frames sorted ascending by time; equal times keep source order."""
    frames: Tuple[WildfireFrame, ...]

    def __len__(self) -> int:
        return len(self.frames)

    def frame(self, index: int) -> WildfireFrame:
        return self.frames[index]

    def time_range(self) -> Tuple[float, float]:
        return self.frames[0].time_minutes, self.frames[-1].time_minutes


# ---------------------------------------------------------------------------
# Frame normalization
# ---------------------------------------------------------------------------

def _finite(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _grid_index(value: Any) -> Optional[int]:
    number = _finite(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def _burned_cell(raw: Any) -> Optional[BurnedCell]:
    """A cell with finite, non-zero, in-range lat and lon; None otherwise."""
    if not isinstance(raw, dict):
        return None
    lat = _finite(raw.get('lat'))
    lon = _finite(raw.get('lon'))
    if not lat or not lon or not is_valid_coordinates(lat, lon):
        return None
    return BurnedCell(lat=lat, lon=lon, row=_grid_index(raw.get('row')), col=_grid_index(raw.get('col')))


def _ignition_point(raw: Any) -> Optional[Coordinate]:
    if not isinstance(raw, dict):
        return None
    lat = _finite(raw.get('lat'))
    lon = _finite(raw.get('lon'))
    if not lat or not lon or not is_valid_coordinates(lat, lon):
        return None
    return Coordinate(lat, lon)


def normalize_frame(raw: Any) -> Optional[WildfireFrame]:
    """
    Normalize one frame record.

    Returns:
        WildfireFrame, or None when no burned cell survives filtering

    Raises:
        MalformedExternalRecord: If the record is not an object
    """
    if not isinstance(raw, dict):
        raise MalformedExternalRecord(f"Wildfire frame must be an object, got {type(raw).__name__}", raw)

    time_minutes = _finite(raw.get('time_minutes')) or 0.0

    raw_cells = raw.get('burned_coordinates') or []
    if not isinstance(raw_cells, list):
        raw_cells = []
    cells = tuple(cell for cell in (_burned_cell(c) for c in raw_cells) if cell is not None)
    if not cells:
        logger.debug(f"Dropping wildfire frame at {time_minutes} min: no burned cells")
        return None

    total = _finite(raw.get('total_burned_pixels'))
    metadata = raw.get('metadata')

    return WildfireFrame(
        time_minutes=max(0.0, time_minutes),
        burned_cells=cells,
        ignition_point=_ignition_point(raw.get('ignition_point')),
        total_burned=int(total) if total and total > 0 else len(cells),
        metadata=metadata if isinstance(metadata, dict) else {}
    )


def _parse_ndjson(text: str) -> List[Any]:
    records = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping wildfire NDJSON line {line_number}: {e}")
    return records


def parse_frame_records(text: Union[str, bytes]) -> List[Any]:
    """
    Split raw text into frame records: a JSON array first, else NDJSON.

    A lone JSON object parses as a one-line NDJSON stream.
    """
    if isinstance(text, bytes):
        text = text.decode('utf-8-sig')
    text = text.lstrip('\ufeff')

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return _parse_ndjson(text)

    if isinstance(data, list):
        return data
    return [data]


def load_timeline(source: Union[str, bytes, Sequence[Any]]) -> WildfireTimeline:
    """
    Build a WildfireTimeline from text (JSON array or NDJSON) or parsed records.

    Records that are not objects are logged and skipped; frames without any
    valid burned cell are dropped.

    Raises:
        NoFramesParsed: If no frame survives normalization
    """
    if isinstance(source, (str, bytes)):
        records = parse_frame_records(source)
    elif isinstance(source, (list, tuple)):
        records = list(source)
    else:
        raise InvalidArgument(f"Unsupported wildfire source type: {type(source).__name__}")

    frames = []
    for index, raw in enumerate(records):
        try:
            frame = normalize_frame(raw)
        except MalformedExternalRecord as e:
            logger.warning(f"Skipping wildfire record {index}: {e}")
            continue
        if frame is not None:
            frames.append(frame)

    if not frames:
        raise NoFramesParsed(f"No usable wildfire frames in {len(records)} records")

    frames.sort(key=lambda f: f.time_minutes)
    timeline = WildfireTimeline(frames=tuple(frames))

    start, end = timeline.time_range()
    logger.info(f"Loaded wildfire timeline: {len(timeline)} frames, {start:g}-{end:g} min")
    return timeline


def load_timeline_file(path: str) -> WildfireTimeline:
    """Read a JSON array or NDJSON file and load it."""
    with open(path, encoding='utf-8-sig') as f:
        text = f.read()
    logger.info(f"Read wildfire data file {path} ({len(text)} chars)")
    return load_timeline(text)


# ---------------------------------------------------------------------------
# Cell geometry
# ---------------------------------------------------------------------------

def _min_positive_gap(values: Sequence[float]) -> Optional[float]:
    ordered = sorted(set(values))
    gaps = [b - a for a, b in zip(ordered, ordered[1:])]
    return min(gaps) if gaps else None


def estimate_cell_size(cells: Sequence[BurnedCell]) -> float:
    """
    Half-width in meters of one rendered cell, from the smallest non-zero
    latitude and longitude spacing between cells.

    Clamped to [10, 100]; 25 when there are fewer than two cells or the cells
    do not vary in both axes.
    """
    if len(cells) < 2:
        return DEFAULT_CELL_HALF_M

    min_lat_gap = _min_positive_gap([c.lat for c in cells])
    min_lon_gap = _min_positive_gap([c.lon for c in cells])
    if min_lat_gap is None or min_lon_gap is None:
        return DEFAULT_CELL_HALF_M

    mean_lat = sum(c.lat for c in cells) / len(cells)
    per_lat, per_lon = meters_per_degree(mean_lat)
    half = min(min_lat_gap / 2 * per_lat, min_lon_gap / 2 * per_lon)

    return max(MIN_CELL_HALF_M, min(MAX_CELL_HALF_M, half))


def cell_square(lat: float, lon: float, half_m: float = DEFAULT_CELL_HALF_M) -> List[Coordinate]:
    """Corners of the square cell centred on (lat, lon): SW, SE, NE, NW."""
    per_lat, per_lon = meters_per_degree(lat)
    d_lat = half_m / per_lat
    d_lon = half_m / per_lon
    return [
        Coordinate(lat - d_lat, lon - d_lon),
        Coordinate(lat - d_lat, lon + d_lon),
        Coordinate(lat + d_lat, lon + d_lon),
        Coordinate(lat + d_lat, lon - d_lon),
    ]


# ---------------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------------

class WildfirePlayback:
    """
    Playback cursor over a WildfireTimeline.

    States: idle (initial, cursor at 0), playing, paused. While playing, a
    background thread advances one frame per interval; reaching the last
    frame pauses playback (no looping). seek() clamps and keeps the state.
    All cursor changes happen under one lock; listeners are called outside it.
    """

    def __init__(
        self,
        timeline: WildfireTimeline,
        interval_ms: int = DEFAULT_PLAYBACK_INTERVAL_MS,
        on_frame: Optional[Callable[[Dict[str, Any]], None]] = None
    ):
        if not timeline.frames:
            raise NoFramesParsed("Cannot play an empty wildfire timeline")
        if interval_ms is None or interval_ms <= 0:
            raise InvalidArgument(f"interval_ms must be positive, got {interval_ms}")

        self.timeline = timeline
        self.interval_ms = interval_ms
        self.on_frame = on_frame

        self._cond = threading.Condition()
        self._state = IDLE
        self._index = 0
        self._generation = 0
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def last_index(self) -> int:
        return len(self.timeline) - 1

    def _snapshot_locked(self) -> Dict[str, Any]:
        frame = self.timeline.frame(self._index)
        return {
            'index': self._index,
            'state': self._state,
            'frameCount': len(self.timeline),
            'intervalMs': self.interval_ms,
            'frame': frame.summary()
        }

    def snapshot(self) -> Dict[str, Any]:
        with self._cond:
            return self._snapshot_locked()

    def _notify(self, snapshot: Dict[str, Any]) -> None:
        if self.on_frame is None:
            return
        try:
            self.on_frame(snapshot)
        except Exception as e:
            logger.error(f"Wildfire frame listener failed: {e}", exc_info=True)

    def play(self) -> Dict[str, Any]:
        """idle/paused -> playing. At the last frame, goes straight to paused."""
        with self._cond:
            if self._state == PLAYING:
                return self._snapshot_locked()

            if self._index >= self.last_index:
                self._state = PAUSED
                return self._snapshot_locked()

            self._state = PLAYING
            self._generation += 1
            generation = self._generation
            self._cond.notify_all()

            self._thread = threading.Thread(
                target=self._run,
                args=(generation,),
                name=f"wildfire-playback-{generation}",
                daemon=True
            )
            self._thread.start()
            snapshot = self._snapshot_locked()

        logger.info(f"Wildfire playback started at frame {snapshot['index']}")
        return snapshot

    def pause(self) -> Dict[str, Any]:
        """playing -> paused; no effect in other states."""
        with self._cond:
            if self._state == PLAYING:
                self._state = PAUSED
                self._cond.notify_all()
            return self._snapshot_locked()

    def seek(self, index: int) -> Dict[str, Any]:
        """Move the cursor, clamped to [0, last]. The state is unchanged."""
        try:
            index = int(index)
        except (TypeError, ValueError):
            raise InvalidArgument(f"Frame index must be an integer, got {index!r}")

        with self._cond:
            self._index = max(0, min(self.last_index, index))
            snapshot = self._snapshot_locked()

        self._notify(snapshot)
        return snapshot

    def _advance_locked(self) -> bool:
        """Step forward one frame; pauses at the last one. False when nothing moved."""
        if self._index >= self.last_index:
            if self._state == PLAYING:
                self._state = PAUSED
            return False

        self._index += 1
        if self._index >= self.last_index and self._state == PLAYING:
            self._state = PAUSED
        return True

    def advance(self) -> Dict[str, Any]:
        """Step one frame forward, as the playback timer does."""
        with self._cond:
            moved = self._advance_locked()
            snapshot = self._snapshot_locked()

        if moved:
            self._notify(snapshot)
        return snapshot

    def _run(self, generation: int) -> None:
        interval_s = self.interval_ms / 1000.0
        while True:
            with self._cond:
                self._cond.wait(interval_s)
                if self._generation != generation or self._state != PLAYING:
                    return
                moved = self._advance_locked()
                snapshot = self._snapshot_locked()

            if moved:
                self._notify(snapshot)
            if snapshot['state'] != PLAYING:
                return

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the playback thread to stop (after pause or the last frame)."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)


class WildfireTimelineService:
    """Holds the loaded timeline and its playback controller."""

    def __init__(self, interval_ms: int = DEFAULT_PLAYBACK_INTERVAL_MS):
        if interval_ms is None or interval_ms <= 0:
            raise InvalidArgument(f"interval_ms must be positive, got {interval_ms}")
        self.interval_ms = interval_ms
        self._lock = threading.Lock()
        self._timeline: Optional[WildfireTimeline] = None
        self._playback: Optional[WildfirePlayback] = None

    def load(self, source: Union[str, bytes, Sequence[Any]]) -> WildfireTimeline:
        """Replace the current timeline; any running playback is paused."""
        timeline = load_timeline(source)
        self._install(timeline)
        return timeline

    def load_file(self, path: str) -> WildfireTimeline:
        timeline = load_timeline_file(path)
        self._install(timeline)
        return timeline

    def _install(self, timeline: WildfireTimeline) -> None:
        playback = WildfirePlayback(timeline, self.interval_ms)
        with self._lock:
            previous = self._playback
            self._timeline = timeline
            self._playback = playback
        if previous is not None:
            previous.pause()

    def is_loaded(self) -> bool:
        return self._timeline is not None

    @property
    def timeline(self) -> WildfireTimeline:
        timeline = self._timeline
        if timeline is None:
            raise NoFramesParsed("No wildfire timeline loaded")
        return timeline

    @property
    def playback(self) -> WildfirePlayback:
        playback = self._playback
        if playback is None:
            raise NoFramesParsed("No wildfire timeline loaded")
        return playback

    def frame_summaries(self) -> List[Dict[str, Any]]:
        return [
            dict(frame.summary(), index=i)
            for i, frame in enumerate(self.timeline.frames)
        ]
