from flask import Flask, request, jsonify, g
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
import logging
import json
from time import perf_counter
from typing import Dict, List, Optional

from .candidates import PlaceSearchCandidateSource, make_candidate_source
from .config import Settings, load_settings
from .errors import InvalidRequestError, MeetPointError, ServiceNotConfiguredError
from .finder import MeetingPointFinder
from .maps_service import GoogleMapsService
from .models import Coordinate, Destination, Strategy, TravelMode, TravelPoint

logger = logging.getLogger(__name__)

SCENARIO_MEETUP = 'meetup'
SCENARIO_DESTINATION = 'destination'
MIN_SEARCH_RADIUS_M = 100
MAX_SEARCH_RADIUS_M = 10000


def configure_logging(settings: Settings) -> None:
    handlers = [logging.StreamHandler()]
    if settings.log_file:
        handlers.insert(0, logging.FileHandler(settings.log_file))
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def create_maps_service(settings: Settings) -> Optional[GoogleMapsService]:
    """Google Maps backend, or None when no usable API key is configured"""
    logger.info(f"API Key found: {'Yes' if settings.has_api_key else 'No'}")
    if not settings.has_api_key:
        logger.warning("GOOGLE_MAPS_API_KEY not configured; routes will be estimated and place search is disabled")
        return None
    try:
        logger.info("Initializing Google Maps service...")
        service = GoogleMapsService(
            settings.api_key,
            max_workers=settings.route_max_workers,
            timeout=settings.route_lookup_timeout_s,
            queries_per_second=settings.route_queries_per_second,
        )
    except ValueError as e:
        logger.error(f"Error initializing Google Maps service: {e}")
        return None
    logger.info("Google Maps service initialized successfully")
    return service


# --- Request parsing ---
def _parse_coordinate(raw, label: str) -> Coordinate:
    try:
        return Coordinate.from_dict(raw)
    except ValueError as e:
        raise InvalidRequestError(f"{label}: {e}")


def _raw_coordinate(item: Dict):
    """Coordinate payload of a traveler/destination, either flat or nested under 'location'"""
    if item.get('coordinate') is not None:
        return item['coordinate']
    location = item.get('location')
    if isinstance(location, dict):
        return location.get('coordinate', location if 'lat' in location else None)
    return None


def parse_travelers(raw) -> List[TravelPoint]:
    """Travelers with a location; entries without one are dropped"""
    if not isinstance(raw, list):
        raise InvalidRequestError("travelers must be a list")
    travelers = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise InvalidRequestError(f"travelers[{i}] must be an object")
        raw_coord = _raw_coordinate(item)
        if raw_coord is None:
            logger.info(f"Dropping traveler {item.get('id', i)!r} without a location")
            continue
        name = str(item.get('name') or f"Traveler {i + 1}")
        try:
            mode = TravelMode.parse(item.get('mode') or item.get('transport_mode') or TravelMode.DRIVING)
        except ValueError as e:
            raise InvalidRequestError(f"travelers[{i}]: {e}")
        travelers.append(TravelPoint(
            id=str(item.get('id', i)),
            name=name,
            coordinate=_parse_coordinate(raw_coord, f"travelers[{i}]"),
            mode=mode,
        ))
    return travelers


def parse_destinations(data: Dict) -> List[Destination]:
    raw = data.get('destinations')
    if raw is None:
        raw = [data['destination']] if data.get('destination') else []
    if not isinstance(raw, list):
        raise InvalidRequestError("destinations must be a list")
    destinations = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise InvalidRequestError(f"destinations[{i}] must be an object")
        raw_coord = _raw_coordinate(item)
        if raw_coord is None:
            raise InvalidRequestError(f"destinations[{i}] has no location")
        destinations.append(Destination(
            id=str(item.get('id', f"destination-{i}")),
            name=str(item.get('name') or f"Destination {i + 1}"),
            coordinate=_parse_coordinate(raw_coord, f"destinations[{i}]"),
        ))
    return destinations


def _query_float(name: str) -> float:
    raw = request.args.get(name)
    if raw is None or raw == '':
        raise InvalidRequestError(f"Missing required parameter: {name}")
    try:
        return float(raw)
    except ValueError:
        raise InvalidRequestError(f"Parameter {name} must be a number, got {raw!r}")


def _query_coordinate(lng_name: str, lat_name: str) -> Coordinate:
    coord = Coordinate(lng=_query_float(lng_name), lat=_query_float(lat_name))
    try:
        return coord.validate()
    except ValueError as e:
        raise InvalidRequestError(str(e))


def create_app(
    settings: Optional[Settings] = None,
    backend=None,
    finder: Optional[MeetingPointFinder] = None,
) -> Flask:
    settings = settings or load_settings()
    configure_logging(settings)
    if backend is None and finder is None:
        backend = create_maps_service(settings)
    if finder is None:
        finder = MeetingPointFinder.from_settings(settings, backend)
    else:
        backend = finder.provider.backend

    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes
    app.config['MEETPOINT_SETTINGS'] = settings
    app.extensions['meetpoint'] = finder

    # Per-request timing: record start time and log duration on completion
    @app.before_request
    def _start_timer():
        g._start_time = perf_counter()

    @app.after_request
    def _log_request_duration(response):
        start = getattr(g, '_start_time', None)
        if start is not None:
            duration_ms = (perf_counter() - start) * 1000.0
            # Include response time header for easy debugging/measurement
            response.headers['X-Process-Time-ms'] = f"{duration_ms:.1f}"
            logger.info(
                "request completed: method=%s path=%s status=%s duration_ms=%.1f remote_addr=%s",
                request.method,
                request.full_path if request.query_string else request.path,
                response.status_code,
                duration_ms,
                request.remote_addr,
            )
        return response

    @app.route('/', methods=['GET'])
    def health_check():
        """Health check endpoint"""
        return jsonify({
            'message': 'Meeting point API is running!',
            'endpoints': {
                'calculate': '/api/calculate',
                'route': '/api/route',
                'search_poi': '/api/search-poi',
                'geocode': '/api/geocode',
                'cache_stats': '/api/cache/stats',
                'cache_clear': '/api/cache/clear',
                'health': '/'
            },
            'google_maps_configured': backend is not None,
            'status': 'healthy'
        })

    @app.route('/api/calculate', methods=['POST'])
    def calculate():
        """
        Rank meeting points for a group
        Expected JSON: {
            "travelers": [{"id": "a", "name": "Ann", "coordinate": {"lng": 116.42, "lat": 39.90}, "mode": "driving"}, ...],
            "destinations": [{"id": "d", "name": "Office", "coordinate": {...}}],  // optional
            "scenario_mode": "meetup" | "destination",  // optional
            "strategy": "fair" | "efficient" | "balanced",  // optional, defaults to balanced
            "candidate_source": "geometric" | "places",  // optional
            "poi_types": ["cafe", "restaurant"],  // optional, places only
            "city": "beijing"  // optional
        }
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise InvalidRequestError("JSON data is required")
        logger.debug(f"Calculate request data: {json.dumps(data)}")

        travelers = parse_travelers(data.get('travelers', data.get('participants', [])))
        if len(travelers) < 2:
            raise InvalidRequestError("At least 2 travelers with a location are required")

        destinations = parse_destinations(data)
        scenario_mode = data.get('scenario_mode') or (SCENARIO_DESTINATION if destinations else SCENARIO_MEETUP)
        if scenario_mode not in (SCENARIO_MEETUP, SCENARIO_DESTINATION):
            raise InvalidRequestError(f"Unknown scenario_mode '{scenario_mode}' (expected 'meetup' or 'destination')")
        if scenario_mode == SCENARIO_DESTINATION and not destinations:
            raise InvalidRequestError("Destination mode requires a destination")
        if scenario_mode == SCENARIO_MEETUP:
            destinations = []

        try:
            strategy = Strategy.parse(data.get('strategy'))
        except ValueError as e:
            raise InvalidRequestError(str(e))

        poi_types = data.get('poi_types')
        if poi_types is not None and not (isinstance(poi_types, list) and all(isinstance(t, str) for t in poi_types)):
            raise InvalidRequestError("poi_types must be a list of strings")
        city = data.get('city')
        if city is not None and not isinstance(city, str):
            raise InvalidRequestError("city must be a string")
        source = make_candidate_source(
            data.get('candidate_source') or settings.candidate_source,
            backend=backend,
            radius=settings.place_search_radius_m,
            poi_types=poi_types,
            default_center=settings.default_center,
        )

        _algo_start = perf_counter()
        result = finder.find_meeting_points(
            travelers,
            destinations,
            strategy=strategy,
            candidate_source=source,
            city=city,
        )
        _compute_ms = (perf_counter() - _algo_start) * 1000.0
        logger.info(
            "Time to find meeting points = %.1f ms (source=%s, strategy=%s)",
            _compute_ms, source.name, strategy.value
        )
        best = result.best_plan
        logger.info(
            f"Best plan {best.candidate.id} at lat={best.coordinate.lat}, lng={best.coordinate.lng} "
            f"(score={best.score:.2f}, max={best.max_duration} min)"
        )

        response = jsonify({'success': True, 'data': result.to_dict()})
        response.headers['X-Compute-Time-ms'] = f"{_compute_ms:.1f}"
        return response

    @app.route('/api/route', methods=['GET'])
    def get_route():
        """
        Travel cost between two points
        Query: origin_lng, origin_lat, dest_lng, dest_lat, mode (default driving), city
        """
        origin = _query_coordinate('origin_lng', 'origin_lat')
        destination = _query_coordinate('dest_lng', 'dest_lat')
        try:
            mode = TravelMode.parse(request.args.get('mode', TravelMode.DRIVING.value))
        except ValueError as e:
            raise InvalidRequestError(str(e))

        cost = finder.provider.cost(origin, destination, mode, request.args.get('city'))
        return jsonify({'success': True, 'data': cost.to_dict()})

    @app.route('/api/search-poi', methods=['GET'])
    def search_poi():
        """
        Places around a location
        Query: lng, lat, radius (default 1000), types (comma separated, e.g. cafe,restaurant)
        """
        center = _query_coordinate('lng', 'lat')
        try:
            radius = int(request.args.get('radius', 1000))
        except ValueError:
            raise InvalidRequestError("radius must be an integer")
        if radius < MIN_SEARCH_RADIUS_M or radius > MAX_SEARCH_RADIUS_M:
            raise InvalidRequestError(f"radius must be between {MIN_SEARCH_RADIUS_M} and {MAX_SEARCH_RADIUS_M} meters")
        types = [t.strip() for t in request.args.get('types', '').split(',') if t.strip()]

        source = make_candidate_source(PlaceSearchCandidateSource.name, backend=backend, radius=radius, poi_types=types)
        places = source.search(center)
        return jsonify({'success': True, 'data': [p.to_dict() for p in places]})

    @app.route('/api/geocode', methods=['POST'])
    def geocode_address():
        """
        Geocode a single address
        Expected JSON: {"address": "Tiananmen Square, Beijing"}
        """
        if backend is None or not hasattr(backend, 'geocode_address'):
            raise ServiceNotConfiguredError("Google Maps API key not configured")

        data = request.get_json(silent=True)
        if not data or not data.get('address'):
            raise InvalidRequestError("Address is required")

        address = data['address']
        logger.info(f"Attempting to geocode address: '{address}'")
        result = backend.geocode_address(address)
        if not result:
            logger.warning(f"Failed to geocode address: '{address}'")
            return jsonify({'success': False, 'error': 'Could not geocode the provided address'}), 404
        return jsonify({'success': True, 'data': result})

    @app.route('/api/cache/stats', methods=['GET'])
    def cache_stats():
        return jsonify({'success': True, 'data': finder.provider.stats()})

    @app.route('/api/cache/clear', methods=['POST'])
    def cache_clear():
        finder.provider.clear_cache()
        logger.info("Route cache cleared")
        return jsonify({'success': True, 'data': finder.provider.stats()['cache']})

    @app.errorhandler(MeetPointError)
    def meetpoint_error(error):
        logger.warning(f"Request rejected ({error.status_code}): {error.message}")
        return jsonify({'success': False, 'error': error.message}), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error):
        if error.code == 404:
            return jsonify({'success': False, 'error': 'Endpoint not found'}), 404
        return jsonify({'success': False, 'error': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        logger.error(
            "request error: method=%s path=%s error=%r",
            request.method, request.path, error, exc_info=error,
        )
        return jsonify({'success': False, 'error': 'Internal server error, please try again later'}), 500

    return app
