"""
Shelter Data Service
Loads the static shelter catalog and fetches evacuation places from the
Pohang city public data API (data.go.kr), normalizing every record into a
Shelter at the ingestion boundary.

API Reference: https://www.data.go.kr/tcs/dss/selectApiDataDetailView.do?publicDataPk=5020000
Field Schema (Pohang evacuation place list):
  - spm_row: Row identifier
  - shlt_nm: Facility name
  - addr: Road address
  - la, lo: Latitude / longitude (strings)
  - aceptnc_co: Capacity (persons)
  - ar: Area (m²)
  - shlt_ctgry_nm: Facility category
  - msfrtn_ctgry_nm: Disaster type the facility serves
"""
import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from utils.errors import InvalidArgument, MalformedExternalRecord, ProviderUnavailable
from utils.geo import Coordinate, coerce_coordinate, make_coordinate
from utils.secure_logging import mask_secret, redact_pii, safe_log_dict

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'data', 'shelters.json'
)


@dataclass(frozen=True)
class Shelter:
    """Catalog or provider shelter. Request-scoped fields live on RankedShelter."""
    id: str
    name: str
    location: Coordinate
    address: str = ''
    capacity_text: str = ''
    area_text: str = ''
    category: str = ''
    disaster_type: str = ''
    source: str = 'catalog'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'latitude': self.location.lat,
            'longitude': self.location.lon,
            'address': self.address,
            'capacity': self.capacity_text,
            'area': self.area_text,
            'category': self.category,
            'disasterType': self.disaster_type,
            'source': self.source
        }


def _text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


# ---------------------------------------------------------------------------
# Record extraction strategies
#
# Each strategy inspects one raw record and returns a Shelter, None when the
# record is not in its shape, or raises MalformedExternalRecord when the shape
# matches but the content is unusable.
# ---------------------------------------------------------------------------

def _from_pohang_item(raw: Dict[str, Any], index: int, source: str) -> Optional[Shelter]:
    if 'shlt_nm' not in raw and not ('la' in raw and 'lo' in raw):
        return None

    try:
        location = make_coordinate(raw.get('la'), raw.get('lo'))
    except InvalidArgument:
        raise MalformedExternalRecord(
            f"Pohang shelter {raw.get('shlt_nm')!r} has no usable la/lo", raw
        )

    return Shelter(
        id=_text(raw.get('spm_row')) or f"pohang_{index}",
        name=_text(raw.get('shlt_nm')) or 'Unnamed shelter',
        location=location,
        address=_text(raw.get('addr')),
        capacity_text=_text(raw.get('aceptnc_co')),
        area_text=_text(raw.get('ar')),
        category=_text(raw.get('shlt_ctgry_nm')),
        disaster_type=_text(raw.get('msfrtn_ctgry_nm')),
        source=source
    )


def _from_geojson_feature(raw: Dict[str, Any], index: int, source: str) -> Optional[Shelter]:
    if raw.get('type') != 'Feature':
        return None

    props = raw.get('properties') or {}
    try:
        location = coerce_coordinate(raw.get('geometry'))
    except InvalidArgument:
        raise MalformedExternalRecord(f"Shelter feature {index} has no Point geometry", raw)

    return Shelter(
        id=_text(props.get('id')) or f"{source}_{index}",
        name=_text(props.get('name')) or 'Unnamed shelter',
        location=location,
        address=_text(props.get('address')),
        capacity_text=_text(props.get('capacity')),
        area_text=_text(props.get('area')),
        category=_text(props.get('type') or props.get('category')),
        disaster_type=_text(props.get('disasterType')),
        source=source
    )


def _from_flat_record(raw: Dict[str, Any], index: int, source: str) -> Optional[Shelter]:
    if 'name' not in raw:
        return None

    try:
        location = coerce_coordinate(raw.get('location', raw))
    except InvalidArgument:
        raise MalformedExternalRecord(f"Shelter {raw.get('name')!r} has no usable coordinates", raw)

    return Shelter(
        id=_text(raw.get('id')) or f"{source}_{index}",
        name=_text(raw.get('name')),
        location=location,
        address=_text(raw.get('address')),
        capacity_text=_text(raw.get('capacity')),
        area_text=_text(raw.get('area')),
        category=_text(raw.get('type') or raw.get('category')),
        disaster_type=_text(raw.get('disasterType')),
        source=source
    )


SHELTER_STRATEGIES: Sequence[Callable[[Dict[str, Any], int, str], Optional[Shelter]]] = (
    _from_pohang_item,
    _from_geojson_feature,
    _from_flat_record,
)


def normalize_shelter_record(raw: Any, index: int, source: str) -> Shelter:
    """
    Run the extraction strategies in order against one raw record.

    Raises:
        MalformedExternalRecord: If the record is not a mapping or no strategy can read it
    """
    if not isinstance(raw, dict):
        raise MalformedExternalRecord(f"Shelter record {index} is not an object", raw)

    for strategy in SHELTER_STRATEGIES:
        shelter = strategy(raw, index, source)
        if shelter is not None:
            return shelter

    raise MalformedExternalRecord(f"Shelter record {index} matches no known shape", raw)


def parse_shelter_records(records: Sequence[Any], source: str) -> List[Shelter]:
    """
    Normalize a batch of raw records, skipping (and logging) malformed ones.

    Returns:
        Shelters in input order
    """
    shelters = []
    for index, raw in enumerate(records):
        try:
            shelters.append(normalize_shelter_record(raw, index, source))
        except MalformedExternalRecord as e:
            logger.warning(f"Skipping malformed {source} shelter record: {e}")
            continue

    skipped = len(records) - len(shelters)
    if skipped:
        logger.info(f"{source}: parsed {len(shelters)} shelters, skipped {skipped}")
    return shelters


def extract_shelter_items(payload: Any) -> List[Any]:
    """
    Find the list of shelter records inside a provider payload.

    Tolerated shapes:
        {"body": {"items": {"item": [...] | {...}}}}
        {"response": {"body": {"items": {"item": ...}}}}
        {"type": "FeatureCollection", "features": [...]}
        {"shelters": [...]} / {"items": [...]}
        [...]
    """
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []

    if payload.get('type') == 'FeatureCollection':
        return list(payload.get('features') or [])

    body = payload.get('body')
    if body is None and isinstance(payload.get('response'), dict):
        body = payload['response'].get('body')
    if isinstance(body, dict):
        items = body.get('items')
        if isinstance(items, dict):
            item = items.get('item')
            if isinstance(item, list):
                return item
            if isinstance(item, dict):
                return [item]
            return []
        if isinstance(items, list):
            return items
        return []

    for key in ('shelters', 'items'):
        if isinstance(payload.get(key), list):
            return payload[key]

    return []


class ShelterDataService:
    """Static shelter catalog plus the Pohang public shelter API."""

    # Pohang city evacuation place list
    BASE_URL = "https://apis.data.go.kr/5020000/pohangShuntPlaceList"

    # Rows requested per call (the city publishes fewer than this)
    PAGE_SIZE = 100

    TIMEOUT_SECONDS = 15

    def __init__(
        self,
        catalog_path: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        """
        Args:
            catalog_path: JSON file with the static shelter catalog
            api_key: Decoded data.go.kr service key. If None, reads POHANG_API_KEY
            timeout: Provider timeout in seconds
        """
        self.catalog_path = catalog_path or DEFAULT_CATALOG_PATH
        self.api_key = api_key or os.getenv('POHANG_API_KEY')
        self.timeout = timeout or self.TIMEOUT_SECONDS
        self._catalog: Optional[List[Shelter]] = None
        self._catalog_lock = threading.Lock()

        if not self.api_key:
            logger.warning("POHANG_API_KEY not provided - public shelter lookup will be unavailable")
        else:
            logger.info(f"Pohang shelter provider configured (key {mask_secret(self.api_key)})")

    def is_provider_enabled(self) -> bool:
        return bool(self.api_key)

    def load_catalog(self) -> List[Shelter]:
        """
        Load the static catalog once and keep it for the process lifetime.

        Returns:
            Shelters in file order (ties in ranking follow this order)
        """
        if self._catalog is not None:
            return self._catalog

        with self._catalog_lock:
            if self._catalog is None:
                self._catalog = self._read_catalog_file()
        return self._catalog

    def _read_catalog_file(self) -> List[Shelter]:
        try:
            with open(self.catalog_path, encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.error(f"Shelter catalog not found: {self.catalog_path}")
            return []
        except json.JSONDecodeError as e:
            logger.error(f"Shelter catalog is not valid JSON ({self.catalog_path}): {e}")
            return []

        shelters = parse_shelter_records(extract_shelter_items(data), source='catalog')
        logger.info(f"Loaded {len(shelters)} shelters from catalog")
        return shelters

    def categories(self) -> List[Dict[str, Any]]:
        """Category names with shelter counts, in first-seen catalog order."""
        counts: Dict[str, int] = {}
        for shelter in self.load_catalog():
            counts[shelter.category] = counts.get(shelter.category, 0) + 1
        return [{'type': category, 'count': count} for category, count in counts.items()]

    def fetch_public_shelters(self) -> List[Shelter]:
        """
        Fetch and normalize the Pohang evacuation place list.

        Returns:
            Shelters in provider order

        Raises:
            ProviderUnavailable: Missing key, timeout, transport error, non-success
                status, or a body that is not JSON
            MalformedExternalRecord: Records were returned but none could be normalized
        """
        if not self.api_key:
            raise ProviderUnavailable('pohang', 'POHANG_API_KEY not configured')

        # serviceKey must be the decoded key; requests encodes it exactly once
        params = {
            'serviceKey': self.api_key,
            'pageNo': '1',
            'numOfRows': str(self.PAGE_SIZE),
            'type': 'json'
        }
        logger.info(f"Pohang: requesting shelters {safe_log_dict(params)}")

        try:
            response = requests.get(
                self.BASE_URL,
                params=params,
                headers={'Accept': 'application/json'},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.Timeout:
            logger.error("Pohang shelter API request timed out")
            raise ProviderUnavailable('pohang', 'timeout')
        except requests.exceptions.RequestException as e:
            status = getattr(getattr(e, 'response', None), 'status_code', None)
            logger.error(redact_pii(f"Pohang shelter API request failed (status {status}): {e}"))
            raise ProviderUnavailable('pohang', f"status {status}" if status else type(e).__name__)

        try:
            payload = response.json()
        except ValueError:
            logger.error(redact_pii(f"Pohang shelter API returned non-JSON body: {response.text[:200]}"))
            raise ProviderUnavailable('pohang', 'response was not JSON')

        items = extract_shelter_items(payload)
        logger.info(f"Pohang: received {len(items)} shelter records")

        shelters = parse_shelter_records(items, source='pohang')
        if items and not shelters:
            raise MalformedExternalRecord(f"None of {len(items)} Pohang shelter records could be normalized")

        return shelters
