"""
Tests for route normalization and the estimated route
"""
import pytest

from services.route_normalizer import (
    ESTIMATED_ROUTE_NOTICE,
    build_estimated_route,
    curved_path,
    dedupe_consecutive,
    extract_segments,
    format_distance,
    format_duration,
    normalize_route,
)
from utils.errors import InvalidArgument, NoRouteFound
from utils.geo import Coordinate, distance_meters


def point_feature(index, lon, lat, point_type, description=''):
    return {
        'type': 'Feature',
        'geometry': {'type': 'Point', 'coordinates': [lon, lat]},
        'properties': {'index': index, 'pointType': point_type, 'description': description},
    }


def line_feature(index, coordinates, distance, time):
    return {
        'type': 'Feature',
        'geometry': {'type': 'LineString', 'coordinates': coordinates},
        'properties': {'index': index, 'distance': distance, 'time': time},
    }


@pytest.fixture
def tmap_payload():
    """Pedestrian route in TMAP shape: start, two lines, one turn, end"""
    return {
        'type': 'FeatureCollection',
        'features': [
            point_feature(0, 129.4040, 36.0805, 'SP', 'Head south-west'),
            line_feature(1, [[129.4040, 36.0805], [129.4000, 36.0780]], 450, 330),
            point_feature(2, 129.4000, 36.0780, 'GP', 'Turn right'),
            line_feature(3, [[129.4000, 36.0780], [129.3900, 36.0700], [129.3775, 36.0645]], 1600, 1150),
            point_feature(4, 129.3775, 36.0645, 'EP', 'Arrive'),
        ],
    }


class TestFormatting:
    @pytest.mark.parametrize('meters,expected', [
        (0, '0m'), (850.4, '850m'), (999.4, '999m'), (1000, '1.0km'), (1234, '1.2km'), (15780, '15.8km'),
    ])
    def test_format_distance(self, meters, expected):
        assert format_distance(meters) == expected

    @pytest.mark.parametrize('seconds,expected', [
        (0, '0 min'), (725, '12 min'), (90, '2 min'), (3570, '1 h'),
        (3900, '1 h 5 min'), (7200, '2 h'),
    ])
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected


class TestNormalizeRoute:
    """Canonical route from provider segments"""

    def test_basic_tmap_route(self, tmap_payload):
        route = normalize_route(tmap_payload, 'walk')

        assert route.provider == 'tmap'
        assert route.travel_mode == 'walk'
        assert route.is_estimated is False
        assert route.summary.distance_m == 2050
        assert route.summary.duration_s == 1480
        assert route.summary.distance_text == '2.0km'
        assert route.summary.duration_text == '25 min'

    def test_coordinates_are_deduplicated(self, tmap_payload):
        route = normalize_route(tmap_payload, 'walk')
        assert route.coordinates == (
            Coordinate(36.0805, 129.4040),
            Coordinate(36.0780, 129.4000),
            Coordinate(36.0700, 129.3900),
            Coordinate(36.0645, 129.3775),
        )

    def test_steps(self, tmap_payload):
        route = normalize_route(tmap_payload, 'walk')
        assert [s.kind for s in route.steps] == ['start', 'waypoint', 'end']
        assert [s.index for s in route.steps] == [0, 1, 2]
        assert route.steps[1].instruction == 'Turn right'
        assert route.steps[0].coordinate == Coordinate(36.0805, 129.4040)

    def test_bounds(self, tmap_payload):
        route = normalize_route(tmap_payload, 'walk')
        assert route.bounds.southwest == Coordinate(36.0645, 129.3775)
        assert route.bounds.northeast == Coordinate(36.0805, 129.4040)

    def test_out_of_order_segments(self, tmap_payload):
        """Segments arriving out of order are stitched by their index"""
        in_order = normalize_route(tmap_payload, 'walk')
        shuffled = dict(tmap_payload, features=list(reversed(tmap_payload['features'])))
        route = normalize_route(shuffled, 'walk')
        assert route.coordinates == in_order.coordinates
        assert [s.kind for s in route.steps] == ['start', 'waypoint', 'end']

    def test_revisited_coordinate_is_kept(self):
        """Only consecutive duplicates collapse; loops back stay"""
        payload = {'segments': [
            {'index': 0, 'type': 'line', 'coordinates': [[129.0, 36.0], [129.0, 36.0], [129.1, 36.0]]},
            {'index': 1, 'type': 'line', 'coordinates': [[129.1, 36.0], [129.0, 36.0]]},
        ]}
        route = normalize_route(payload, 'drive')
        assert route.coordinates == (
            Coordinate(36.0, 129.0), Coordinate(36.0, 129.1), Coordinate(36.0, 129.0),
        )

    def test_generic_segments(self):
        payload = {'segments': [
            {'index': 2, 'type': 'point', 'coordinates': [129.2, 36.2], 'kind': 'end', 'instruction': 'Arrive'},
            {'index': 1, 'type': 'line', 'coordinates': [{'lat': 36.1, 'lng': 129.1}, [129.2, 36.2]],
             'distance': 300, 'duration': 200},
            {'index': 0, 'type': 'line', 'coordinates': [[129.0, 36.0], [129.1, 36.1]], 'distance': 700, 'duration': 500},
        ]}
        route = normalize_route(payload, 'drive', provider='test')
        assert route.summary.distance_m == 1000
        assert route.summary.duration_s == 700
        assert route.coordinates[0] == Coordinate(36.0, 129.0)
        assert route.coordinates[-1] == Coordinate(36.2, 129.2)
        # start synthesized, provider end kept
        assert [s.kind for s in route.steps] == ['start', 'end']
        assert route.steps[-1].instruction == 'Arrive'

    def test_steps_synthesized_without_points(self):
        payload = {'segments': [
            {'index': 0, 'type': 'line', 'coordinates': [[129.0, 36.0], [129.1, 36.1]], 'distance': 500, 'duration': 60},
        ]}
        route = normalize_route(payload, 'walk')
        assert [s.kind for s in route.steps] == ['start', 'end']
        assert route.steps[0].coordinate == route.coordinates[0]
        assert route.steps[-1].coordinate == route.coordinates[-1]
        assert route.steps[-1].distance_m == 500

    def test_interior_start_becomes_waypoint(self, tmap_payload):
        tmap_payload['features'][2]['properties']['pointType'] = 'SP'
        route = normalize_route(tmap_payload, 'walk')
        assert [s.kind for s in route.steps] == ['start', 'waypoint', 'end']

    def test_bad_feature_is_skipped(self, tmap_payload):
        tmap_payload['features'].append(line_feature(5, [[999, 999]], 10, 10))
        tmap_payload['features'].append('not a feature')
        route = normalize_route(tmap_payload, 'walk')
        assert route.summary.distance_m == 2050

    def test_points_only_is_no_route(self):
        payload = {'features': [point_feature(0, 129.4, 36.08, 'SP'), point_feature(1, 129.5, 36.09, 'EP')]}
        with pytest.raises(NoRouteFound):
            normalize_route(payload, 'walk')

    @pytest.mark.parametrize('payload', [None, [], {}, {'routes': []}, 'features'])
    def test_unrecognised_payload(self, payload):
        with pytest.raises(NoRouteFound):
            normalize_route(payload, 'walk')

    def test_empty_features(self):
        with pytest.raises(NoRouteFound):
            normalize_route({'features': []}, 'walk')

    def test_single_distinct_coordinate(self):
        payload = {'segments': [{'index': 0, 'type': 'line', 'coordinates': [[129.0, 36.0], [129.0, 36.0]]}]}
        with pytest.raises(NoRouteFound):
            normalize_route(payload, 'walk')

    def test_to_dict(self, tmap_payload):
        data = normalize_route(tmap_payload, 'walk').to_dict()
        assert data['summary']['distance'] == 2050
        assert data['summary']['durationText'] == '25 min'
        assert data['coordinates'][0] == [129.4040, 36.0805]
        assert data['steps'][0]['type'] == 'start'
        assert data['isEstimated'] is False
        assert data['notice'] is None

    def test_extract_segments_index_fallback(self):
        payload = {'features': [
            {'geometry': {'type': 'Point', 'coordinates': [129.0, 36.0]}, 'properties': {'pointIndex': 3}},
            {'geometry': {'type': 'LineString', 'coordinates': [[129.0, 36.0]]}, 'properties': {}},
        ]}
        segments = extract_segments(payload)
        assert [s.index for s in segments] == [3, 1]


class TestDedupe:
    def test_consecutive_only(self):
        a, b = Coordinate(1, 1), Coordinate(2, 2)
        assert dedupe_consecutive([a, a, b, b, a]) == [a, b, a]

    def test_empty(self):
        assert dedupe_consecutive([]) == []


class TestEstimatedRoute:
    """Locally estimated route"""

    def test_walk_route(self, pohang_origin, pohang_shelter):
        route = build_estimated_route(pohang_origin, pohang_shelter, 'walk')
        straight = distance_meters(pohang_origin, pohang_shelter)

        assert route.is_estimated is True
        assert route.provider == 'estimate'
        assert route.notice == ESTIMATED_ROUTE_NOTICE
        assert route.summary.distance_m == pytest.approx(straight * 1.4)
        assert route.summary.duration_s == pytest.approx(straight * 1.4 / 70 * 60)
        assert len(route.coordinates) == 16
        assert route.coordinates[0] == pohang_origin
        assert route.coordinates[-1] == pohang_shelter

    def test_drive_route(self, pohang_origin, pohang_shelter):
        route = build_estimated_route(pohang_origin, pohang_shelter, 'drive')
        straight = distance_meters(pohang_origin, pohang_shelter)
        assert route.summary.distance_m == pytest.approx(straight * 1.3)
        assert route.summary.duration_s == pytest.approx(straight * 1.3 / 400 * 60)
        assert len(route.coordinates) == 13

    def test_steps(self, pohang_origin, pohang_shelter):
        route = build_estimated_route(pohang_origin, pohang_shelter, 'walk', destination_name='포항정보고등학교')
        assert [s.kind for s in route.steps] == ['start', 'waypoint', 'end']
        assert route.steps[-1].distance_m == route.summary.distance_m
        assert '포항정보고등학교' in route.steps[-1].instruction

    def test_path_is_curved(self, pohang_origin, pohang_shelter):
        path = curved_path(pohang_origin, pohang_shelter, 15)
        straight = distance_meters(pohang_origin, pohang_shelter)
        length = sum(distance_meters(a, b) for a, b in zip(path, path[1:]))
        assert length > straight
        assert length < straight * 1.4

    def test_deterministic(self, pohang_origin, pohang_shelter):
        assert build_estimated_route(pohang_origin, pohang_shelter, 'walk') == \
            build_estimated_route(pohang_origin, pohang_shelter, 'walk')

    def test_same_point(self, pohang_origin):
        with pytest.raises(NoRouteFound):
            build_estimated_route(pohang_origin, pohang_origin, 'walk')

    def test_unknown_mode(self, pohang_origin, pohang_shelter):
        with pytest.raises(InvalidArgument):
            build_estimated_route(pohang_origin, pohang_shelter, 'bike')
