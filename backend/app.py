from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os
import logging
import threading
from dotenv import load_dotenv
from config import get_config
from services.hazard_zone_service import HazardZoneService, HazardZoneStore
from services.shelter_data_service import ShelterDataService
from services.shelter_ranking_service import DEFAULT_PUBLIC_SHELTERS_RETURNED, ShelterRankingService
from services.tmap_routing_service import TmapRoutingService
from services.route_calculation_service import RouteCalculationService
from services.cache_manager import RouteCache
from services.wildfire_timeline_service import WildfireTimelineService
from utils.errors import (
    InvalidArgument, MalformedExternalRecord, NoFramesParsed, ProviderUnavailable, ShelterGuideError
)
from utils.secure_logging import describe_coordinate
from utils.validators import CoordinateValidator, RequestValidator, TRAVEL_MODES

load_dotenv()

app = Flask(__name__)
app.config.from_object(get_config())

logging.basicConfig(
    level=getattr(logging, app.config['LOG_LEVEL'], logging.INFO),
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
)
logger = logging.getLogger(__name__)

# CORS Configuration - Environment-aware origin restriction
if os.getenv('FLASK_ENV') == 'production':
    # Production: Only allow explicitly configured frontend URL
    FRONTEND_URL = os.getenv('FRONTEND_URL')
    if not FRONTEND_URL:
        raise ValueError("FRONTEND_URL must be set in production environment")
    ALLOWED_ORIGINS = [FRONTEND_URL]
else:
    ALLOWED_ORIGINS = app.config['CORS_ORIGINS'] + [
        'http://127.0.0.1:3000',
        'http://localhost:5173'
    ]

# Remove empty strings
ALLOWED_ORIGINS = [origin.strip() for origin in ALLOWED_ORIGINS if origin.strip()]

CORS(app, origins=ALLOWED_ORIGINS)

# Security Headers Middleware
@app.after_request
def set_security_headers(response):
    """
    Add security headers to all responses.

    - HSTS: Forces HTTPS (only in production)
    - X-Frame-Options: Prevents clickjacking
    - X-Content-Type-Options: Prevents MIME sniffing
    - Referrer-Policy: Controls referrer information leakage
    - Permissions-Policy: Location is the only browser API the map client needs
    """
    if os.getenv('FLASK_ENV') == 'production':
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    response.headers['Permissions-Policy'] = 'geolocation=(self), camera=(), microphone=(), payment=()'

    return response

# Rate Limiting Configuration
# Set RATE_LIMIT_STORAGE_URI (e.g. redis://host:6379) to share limits across workers
limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=["2000 per day", "300 per hour"],
    storage_uri=app.config['RATELIMIT_STORAGE_URI']
)

# Initialize services
hazard_store = HazardZoneStore()
hazard_service = HazardZoneService(hazard_store, default_vertices=app.config['HAZARD_DEFAULT_VERTICES'])
shelter_data_service = ShelterDataService(
    catalog_path=app.config['SHELTER_CATALOG_PATH'],
    api_key=app.config['POHANG_API_KEY'],
    timeout=app.config['SHELTER_PROVIDER_TIMEOUT_SECONDS']
)
ranking_service = ShelterRankingService(shelter_data_service, hazard_service)

routing_service = None
if app.config['TMAP_API_KEY']:
    routing_service = TmapRoutingService(
        api_key=app.config['TMAP_API_KEY'],
        base_url=app.config['TMAP_BASE_URL'],
        timeout=app.config['ROUTE_PROVIDER_TIMEOUT_SECONDS']
    )
route_service = RouteCalculationService(routing_service, RouteCache())
wildfire_service = WildfireTimelineService(interval_ms=app.config['PLAYBACK_INTERVAL_MS'])


def _load_wildfire_data(path):
    """Start-up load of the wildfire simulation file; failures are logged only."""
    try:
        timeline = wildfire_service.load_file(path)
        logger.info(f"Wildfire data ready: {len(timeline)} frames from {path}")
    except (ShelterGuideError, OSError) as e:
        logger.error(f"Wildfire data could not be loaded from {path}: {e}")


if app.config['WILDFIRE_DATA_PATH']:
    threading.Thread(
        target=_load_wildfire_data,
        args=(app.config['WILDFIRE_DATA_PATH'],),
        name='wildfire-loader',
        daemon=True
    ).start()


def error_response(error):
    """JSON body and status code for a classified service error."""
    return jsonify(error.to_dict()), error.status_code


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.route('/api/health', methods=['GET'])
@app.route('/healthz', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({
        'status': 'healthy',
        'service': 'shelter-guide-api',
        'routing': 'tmap' if routing_service else 'estimate',
        'hazardActive': hazard_service.latest() is not None,
        'wildfireLoaded': wildfire_service.is_loaded()
    })


# ---------------------------------------------------------------------------
# Hazards
# ---------------------------------------------------------------------------

@app.route('/api/hazards/predict/run', methods=['POST'])
@limiter.limit("30 per minute")
def run_hazard_prediction():
    """
    Create the hazard zone and make it the latest one.

    Body:
        center (object): {lat, lon}, defaults to (37.5665, 126.9780)
        radiusM (float): Radius in meters, defaults to 1800
        steps (int): Polygon vertices, clamped to 16-256

    Returns:
        200: {ok, meta, geojson}
        400: Invalid parameters
    """
    try:
        params, error = RequestValidator.validate_hazard_request(request.get_json(silent=True))
        if error:
            return jsonify({'error': error}), 400

        zone = hazard_service.create_hazard(params['center'], params['radius_m'], params['steps'])

        return jsonify({
            'ok': True,
            'meta': {
                'createdAt': zone.created_at.isoformat(),
                'center': zone.centroid.to_dict(),
                'radiusM': zone.radius_m,
                'steps': zone.vertex_count
            },
            'geojson': zone.to_geojson()
        }), 200

    except InvalidArgument as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error in run_hazard_prediction: {e}", exc_info=True)
        return jsonify({'error': 'Failed to create hazard zone'}), 500


@app.route('/api/hazards/latest', methods=['GET'])
def get_latest_hazard():
    """Latest hazard polygon as GeoJSON, or null when none has been created."""
    zone = hazard_service.latest()
    if zone is None:
        return jsonify({'geojson': None, 'meta': None}), 200

    return jsonify({
        'geojson': zone.to_geojson(),
        'meta': {
            'createdAt': zone.created_at.isoformat(),
            'center': zone.centroid.to_dict(),
            'radiusM': zone.radius_m,
            'steps': zone.vertex_count
        }
    }), 200


@app.route('/api/hazards/check', methods=['GET'])
@limiter.limit("120 per minute")
def check_hazard():
    """
    Classify a point against the latest hazard zone.

    Query Parameters:
        lat (float): Latitude (required)
        lon (float): Longitude (required)

    Returns:
        200: {inHazard, distanceToEdgeM, tier}
        400: Missing or invalid coordinates
    """
    try:
        point, error = CoordinateValidator.parse_pair(request.args.get('lat'), request.args.get('lon'))
        if error:
            return jsonify({'error': error}), 400

        return jsonify(hazard_service.classify_point(point).to_dict()), 200

    except Exception as e:
        logger.error(f"Error in check_hazard: {e}", exc_info=True)
        return jsonify({'error': 'Failed to classify location'}), 500


# ---------------------------------------------------------------------------
# Shelters
# ---------------------------------------------------------------------------

@app.route('/api/shelters/categories', methods=['GET'])
def get_shelter_categories():
    """Shelter categories in the catalog with their counts."""
    try:
        return jsonify({'categories': ranking_service.categories()}), 200
    except Exception as e:
        logger.error(f"Error in get_shelter_categories: {e}", exc_info=True)
        return jsonify({'error': 'Failed to load shelter categories'}), 500


@app.route('/api/shelters/nearby', methods=['GET'])
@limiter.limit("200 per hour")  # Frequently accessed during evacuations
def get_nearby_shelters():
    """
    Nearest catalog shelters, excluding those inside the hazard zone.

    Query Parameters:
        lat (float): User latitude (required)
        lon (float): User longitude (required)
        k (int): Maximum number of shelters, 1-100 (default 10)
        category (str): Shelter category filter (optional)
        excludeHazard (str): 'true' to drop hazard shelters (default true)

    Returns:
        200: {from, items} sorted by distance
        400: Invalid parameters
        500: Server error
    """
    try:
        origin, error = CoordinateValidator.parse_pair(request.args.get('lat'), request.args.get('lon'))
        if error:
            return jsonify({'error': error}), 400

        k, error = RequestValidator.parse_positive_int(request.args.get('k'), 10, 'k')
        if error:
            return jsonify({'error': error}), 400

        category = request.args.get('category') or None
        exclude_hazard = RequestValidator.parse_bool(request.args.get('excludeHazard'), default=True)

        results = ranking_service.nearby(origin, limit=k, category=category, exclude_hazard=exclude_hazard)

        return jsonify({
            'from': origin.to_dict(),
            'items': [r.to_dict() for r in results]
        }), 200

    except InvalidArgument as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error in get_nearby_shelters: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch nearby shelters'}), 500


@app.route('/api/shelters/public', methods=['GET'])
@limiter.limit("60 per hour")  # Each call hits the public data API
def get_public_shelters():
    """
    Shelters from the Pohang public data API ranked by distance.

    Query Parameters:
        lat (float): User latitude (required)
        lng (float): User longitude (required)
        limit (int): Maximum number of shelters, 1-100 (default 20)

    Returns:
        200: {success, degraded, shelters, message?}; degraded results are empty
        400: Invalid parameters
    """
    try:
        origin, error = CoordinateValidator.parse_pair(request.args.get('lat'), request.args.get('lng'))
        if error:
            return jsonify({'error': error}), 400

        limit, error = RequestValidator.parse_positive_int(
            request.args.get('limit'), DEFAULT_PUBLIC_SHELTERS_RETURNED, 'limit'
        )
        if error:
            return jsonify({'error': error}), 400

        try:
            results = ranking_service.rank_public(origin, limit=limit)
        except (ProviderUnavailable, MalformedExternalRecord) as e:
            logger.warning(f"Public shelters unavailable for {describe_coordinate(origin.lat, origin.lon)}: {e}")
            return jsonify({
                'success': False,
                'degraded': True,
                'message': 'Public shelter data is temporarily unavailable. Showing no results.',
                'shelters': []
            }), 200

        return jsonify({
            'success': True,
            'degraded': False,
            'total': len(results),
            'shelters': [r.to_dict() for r in results]
        }), 200

    except Exception as e:
        logger.error(f"Error in get_public_shelters: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch public shelters'}), 500


# ---------------------------------------------------------------------------
# Directions
# ---------------------------------------------------------------------------

@app.route('/api/directions/<travel_mode>', methods=['POST'])
@limiter.limit("60 per minute")
def get_directions(travel_mode):
    """
    Walking or driving route to a shelter.

    Body:
        startLat, startLng, endLat, endLng (float): Required

    Returns:
        200: {success, type, data: Route}; data.isEstimated marks a local estimate
        400: Invalid travel mode or coordinates
        404: No route could be drawn (start and end coincide)
    """
    if not RequestValidator.validate_travel_mode(travel_mode):
        return jsonify({'error': f"Unknown travel mode '{travel_mode}'", 'supported': list(TRAVEL_MODES)}), 400

    try:
        params, error = RequestValidator.validate_direction_request(request.get_json(silent=True))
        if error:
            return jsonify({'error': error}), 400

        route = route_service.calculate_route(travel_mode, params['start'], params['end'])

        return jsonify({
            'success': True,
            'type': travel_mode,
            'data': route.to_dict()
        }), 200

    except ShelterGuideError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error in get_directions: {e}", exc_info=True)
        return jsonify({'error': 'Failed to calculate route', 'type': travel_mode}), 500


# ---------------------------------------------------------------------------
# Wildfire timeline
# ---------------------------------------------------------------------------

@app.route('/api/wildfire/load', methods=['POST'])
@limiter.limit("10 per minute")
def load_wildfire():
    """
    Replace the wildfire timeline.

    Body: a JSON array of frame records, {"frames": [...]}, or NDJSON text.

    Returns:
        200: {frameCount, timeRange}
        422: No usable frames
    """
    try:
        data = request.get_json(silent=True)
        if isinstance(data, dict) and isinstance(data.get('frames'), list):
            source = data['frames']
        elif isinstance(data, list):
            source = data
        else:
            source = request.get_data(as_text=True)

        timeline = wildfire_service.load(source)
        start, end = timeline.time_range()

        return jsonify({'frameCount': len(timeline), 'timeRange': [start, end]}), 200

    except ShelterGuideError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error in load_wildfire: {e}", exc_info=True)
        return jsonify({'error': 'Failed to load wildfire data'}), 500


@app.route('/api/wildfire/frames', methods=['GET'])
def get_wildfire_frames():
    """Frame summaries; ?detail=true includes burned cells."""
    try:
        if RequestValidator.parse_bool(request.args.get('detail'), default=False):
            frames = [
                dict(frame.to_dict(), index=i)
                for i, frame in enumerate(wildfire_service.timeline.frames)
            ]
        else:
            frames = wildfire_service.frame_summaries()
        return jsonify({'frames': frames}), 200

    except NoFramesParsed as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error in get_wildfire_frames: {e}", exc_info=True)
        return jsonify({'error': 'Failed to list wildfire frames'}), 500


@app.route('/api/wildfire/frames/<int:index>/geojson', methods=['GET'])
def get_wildfire_frame_geojson(index):
    """Burned cells of one frame as GeoJSON squares for the map overlay."""
    try:
        timeline = wildfire_service.timeline
        if index >= len(timeline):
            return jsonify({'error': f"Frame index must be between 0 and {len(timeline) - 1}"}), 404
        return jsonify(timeline.frame(index).to_geojson()), 200

    except NoFramesParsed as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error in get_wildfire_frame_geojson: {e}", exc_info=True)
        return jsonify({'error': 'Failed to render wildfire frame'}), 500


@app.route('/api/wildfire/playback', methods=['GET', 'POST'])
def wildfire_playback():
    """
    Playback cursor.

    GET returns the snapshot. POST body {action: play|pause|seek, index?}.

    Returns:
        200: {index, state, frameCount, intervalMs, frame}
        400: Unknown action or bad index
        422: No timeline loaded
    """
    try:
        playback = wildfire_service.playback
        if request.method == 'GET':
            return jsonify(playback.snapshot()), 200

        data = request.get_json(silent=True) or {}
        action = data.get('action')

        if action == 'play':
            snapshot = playback.play()
        elif action == 'pause':
            snapshot = playback.pause()
        elif action == 'seek':
            if 'index' not in data:
                return jsonify({'error': 'index is required for seek'}), 400
            snapshot = playback.seek(data['index'])
        else:
            return jsonify({'error': "action must be one of: play, pause, seek"}), 400

        return jsonify(snapshot), 200

    except ShelterGuideError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error in wildfire_playback: {e}", exc_info=True)
        return jsonify({'error': 'Failed to update playback'}), 500


# Error Handlers

@app.errorhandler(ShelterGuideError)
def handle_classified_error(error):
    return error_response(error)


@app.errorhandler(413)
def request_entity_too_large(error):
    """
    Handle requests that exceed MAX_CONTENT_LENGTH.

    Returns:
        413: Payload too large error
    """
    return jsonify({
        'error': 'Request payload too large',
        'max_size': '10 MB',
        'message': 'Wildfire data files larger than 10 MB should be loaded with WILDFIRE_DATA_PATH.'
    }), 413


@app.errorhandler(400)
def bad_request(error):
    """
    Handle malformed requests.

    Returns:
        400: Bad request error
    """
    return jsonify({
        'error': 'Bad request',
        'message': str(error)
    }), 400


if __name__ == '__main__':
    # Use environment variable to control debug mode (defaults to False for production)
    debug_mode = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    app.run(debug=debug_mode, host='0.0.0.0', port=5001)
