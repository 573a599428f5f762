"""
Shelter Ranking Service for Wildfire Shelter Guidance
Orders candidate shelters by distance from the user, optionally dropping
shelters that lie inside the current hazard zone.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from services.hazard_zone_service import HazardZone, HazardZoneService, contains
from services.route_normalizer import format_distance
from services.shelter_data_service import Shelter, ShelterDataService
from utils.errors import InvalidArgument
from utils.geo import Coordinate, distance_meters

logger = logging.getLogger(__name__)

DEFAULT_MAX_SHELTERS_RETURNED = 10
MAX_SHELTERS_RETURNED = 100

# Provider shelters farther than this from the origin are dropped
PUBLIC_MAX_DISTANCE_M = 50000.0
DEFAULT_PUBLIC_SHELTERS_RETURNED = 20


@dataclass(frozen=True)
class RankedShelter:
    """A shelter with the request-scoped fields computed for one origin."""
    shelter: Shelter
    distance_m: float
    in_hazard: bool

    def to_dict(self) -> Dict[str, Any]:
        data = self.shelter.to_dict()
        data.update({
            'distanceM': int(round(self.distance_m)),
            'distanceText': format_distance(self.distance_m),
            'inHazard': self.in_hazard
        })
        return data


def rank_shelters(
    shelters: Iterable[Shelter],
    origin: Coordinate,
    zone: Optional[HazardZone] = None,
    exclude_hazard: bool = True,
    limit: int = DEFAULT_MAX_SHELTERS_RETURNED,
    category: Optional[str] = None,
    max_distance_m: Optional[float] = None
) -> List[RankedShelter]:
    """
    Rank shelters by great-circle distance from origin.

    Args:
        shelters: Candidate shelters; their order breaks distance ties
        origin: User location
        zone: Current hazard zone, or None when no hazard is active
        exclude_hazard: Drop shelters inside (or on the edge of) the zone
        limit: Maximum number of results
        category: Only keep shelters of this category
        max_distance_m: Only keep shelters within this distance

    Returns:
        Up to limit RankedShelters, nearest first. Empty when nothing qualifies.

    Raises:
        InvalidArgument: If limit is not positive
    """
    if limit is None or limit <= 0:
        raise InvalidArgument(f"limit must be positive, got {limit}")

    ranked = []
    for shelter in shelters:
        if category and shelter.category != category:
            continue

        distance = distance_meters(origin, shelter.location)
        if max_distance_m is not None and distance > max_distance_m:
            continue

        in_hazard = zone is not None and contains(zone, shelter.location)
        if exclude_hazard and in_hazard:
            continue

        ranked.append(RankedShelter(shelter=shelter, distance_m=distance, in_hazard=in_hazard))

    # sorted() is stable, so equal distances keep input order
    ranked = sorted(ranked, key=lambda r: r.distance_m)
    return ranked[:limit]


class ShelterRankingService:
    """
    Nearest-shelter queries over the catalog and the public provider,
    filtered against the latest hazard zone.
    """

    def __init__(self, data_service: ShelterDataService, hazard_service: HazardZoneService):
        """
        Args:
            data_service: Source of catalog and provider shelters
            hazard_service: Holder of the latest hazard zone
        """
        self.data_service = data_service
        self.hazard_service = hazard_service

    def nearby(
        self,
        origin: Coordinate,
        limit: int = DEFAULT_MAX_SHELTERS_RETURNED,
        category: Optional[str] = None,
        exclude_hazard: bool = True
    ) -> List[RankedShelter]:
        """Nearest catalog shelters, skipping hazard ones unless exclude_hazard is False."""
        zone = self.hazard_service.latest()
        results = rank_shelters(
            self.data_service.load_catalog(),
            origin,
            zone=zone,
            exclude_hazard=exclude_hazard,
            limit=limit,
            category=category
        )
        logger.info(
            f"Ranked {len(results)} catalog shelters "
            f"(hazard {'active' if zone else 'none'}, category={category or 'any'})"
        )
        return results

    def rank_public(
        self,
        origin: Coordinate,
        limit: int = DEFAULT_PUBLIC_SHELTERS_RETURNED,
        exclude_hazard: bool = False
    ) -> List[RankedShelter]:
        """
        Nearest shelters from the public provider, within 50 km of the origin.

        Raises:
            ProviderUnavailable: Propagated from the data service
            MalformedExternalRecord: Propagated from the data service
        """
        shelters = self.data_service.fetch_public_shelters()
        return rank_shelters(
            shelters,
            origin,
            zone=self.hazard_service.latest(),
            exclude_hazard=exclude_hazard,
            limit=limit,
            max_distance_m=PUBLIC_MAX_DISTANCE_M
        )

    def categories(self) -> List[Dict[str, Any]]:
        return self.data_service.categories()
