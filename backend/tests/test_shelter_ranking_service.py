"""
Tests for shelter ranking against the hazard zone
"""
import pytest
from unittest.mock import Mock

from services.hazard_zone_service import HazardZoneService, create_hazard_zone
from services.shelter_data_service import Shelter, ShelterDataService
from services.shelter_ranking_service import ShelterRankingService, rank_shelters
from utils.errors import InvalidArgument, ProviderUnavailable
from utils.geo import Coordinate


def make_shelter(shelter_id, lat, lon, category='실내구호소'):
    return Shelter(id=shelter_id, name=f"Shelter {shelter_id}", location=Coordinate(lat, lon), category=category)


ORIGIN = Coordinate(36.0805, 129.4040)


@pytest.fixture
def shelters():
    return [
        make_shelter('far', 36.0190, 129.3435),
        make_shelter('near', 36.0800, 129.4050),
        make_shelter('mid', 36.0645, 129.3775, category='옥외대피장소'),
        make_shelter('mid-twin', 36.0645, 129.3775, category='옥외대피장소'),
    ]


class TestRankShelters:
    """Pure ranking function"""

    def test_sorted_by_distance(self, shelters):
        ranked = rank_shelters(shelters, ORIGIN)
        distances = [r.distance_m for r in ranked]
        assert distances == sorted(distances)
        assert ranked[0].shelter.id == 'near'

    def test_ties_keep_input_order(self, shelters):
        ranked = rank_shelters(shelters, ORIGIN)
        ids = [r.shelter.id for r in ranked]
        assert ids.index('mid') + 1 == ids.index('mid-twin')

    def test_limit(self, shelters):
        assert len(rank_shelters(shelters, ORIGIN, limit=2)) == 2
        assert len(rank_shelters(shelters, ORIGIN, limit=50)) == 4

    @pytest.mark.parametrize('limit', [0, -3])
    def test_non_positive_limit(self, shelters, limit):
        with pytest.raises(InvalidArgument):
            rank_shelters(shelters, ORIGIN, limit=limit)

    def test_excludes_hazard_shelters(self, shelters):
        zone = create_hazard_zone(ORIGIN, 500)
        ranked = rank_shelters(shelters, ORIGIN, zone=zone)
        assert 'near' not in [r.shelter.id for r in ranked]
        assert all(not r.in_hazard for r in ranked)

    def test_keeps_hazard_shelters_when_asked(self, shelters):
        zone = create_hazard_zone(ORIGIN, 500)
        ranked = rank_shelters(shelters, ORIGIN, zone=zone, exclude_hazard=False)
        near = next(r for r in ranked if r.shelter.id == 'near')
        assert near.in_hazard is True
        assert len(ranked) == 4

    def test_no_zone_marks_nothing(self, shelters):
        assert all(r.in_hazard is False for r in rank_shelters(shelters, ORIGIN))

    def test_everything_in_hazard_gives_empty_list(self, shelters):
        zone = create_hazard_zone(ORIGIN, 20000)
        assert rank_shelters(shelters, ORIGIN, zone=zone) == []

    def test_category_filter(self, shelters):
        ranked = rank_shelters(shelters, ORIGIN, category='옥외대피장소')
        assert {r.shelter.id for r in ranked} == {'mid', 'mid-twin'}

    def test_max_distance(self, shelters):
        ranked = rank_shelters(shelters, ORIGIN, max_distance_m=4000)
        assert 'far' not in [r.shelter.id for r in ranked]

    def test_empty_input(self):
        assert rank_shelters([], ORIGIN) == []

    def test_catalog_is_not_mutated(self, shelters):
        before = list(shelters)
        rank_shelters(shelters, ORIGIN, zone=create_hazard_zone(ORIGIN, 500))
        assert shelters == before

    def test_to_dict(self, shelters):
        data = rank_shelters(shelters, ORIGIN, limit=1)[0].to_dict()
        assert data['id'] == 'near'
        assert data['inHazard'] is False
        assert isinstance(data['distanceM'], int)
        assert data['distanceText'].endswith('m')


class TestShelterRankingService:
    @pytest.fixture
    def hazard_service(self):
        return HazardZoneService()

    @pytest.fixture
    def data_service(self, shelters):
        service = Mock(spec=ShelterDataService)
        service.load_catalog.return_value = shelters
        service.categories.return_value = [{'type': '실내구호소', 'count': 2}]
        return service

    @pytest.fixture
    def ranking_service(self, data_service, hazard_service):
        return ShelterRankingService(data_service, hazard_service)

    def test_nearby_without_hazard(self, ranking_service):
        results = ranking_service.nearby(ORIGIN, limit=3)
        assert [r.shelter.id for r in results] == ['near', 'mid', 'mid-twin']

    def test_nearby_uses_latest_hazard(self, ranking_service, hazard_service):
        hazard_service.create_hazard(ORIGIN, 500)
        results = ranking_service.nearby(ORIGIN)
        assert 'near' not in [r.shelter.id for r in results]

        results = ranking_service.nearby(ORIGIN, exclude_hazard=False)
        assert results[0].shelter.id == 'near'
        assert results[0].in_hazard is True

    def test_rank_public(self, ranking_service, data_service, shelters):
        data_service.fetch_public_shelters.return_value = shelters[:2]
        results = ranking_service.rank_public(ORIGIN, limit=5)
        assert [r.shelter.id for r in results] == ['near', 'far']

    def test_rank_public_drops_shelters_beyond_50km(self, ranking_service, data_service):
        seoul = make_shelter('seoul', 37.5665, 126.9780)
        data_service.fetch_public_shelters.return_value = [seoul]
        assert ranking_service.rank_public(ORIGIN) == []

        data_service.fetch_public_shelters.return_value = [seoul, make_shelter('near', 36.0800, 129.4050)]
        assert [r.shelter.id for r in ranking_service.rank_public(ORIGIN)] == ['near']

    def test_rank_public_propagates_provider_failure(self, ranking_service, data_service):
        data_service.fetch_public_shelters.side_effect = ProviderUnavailable('pohang', 'timeout')
        with pytest.raises(ProviderUnavailable):
            ranking_service.rank_public(ORIGIN)

    def test_categories(self, ranking_service):
        assert ranking_service.categories() == [{'type': '실내구호소', 'count': 2}]
