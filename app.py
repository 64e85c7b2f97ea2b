from flask import Flask, request, jsonify, g
from flask_cors import CORS
import logging
import sys

from auth_middleware import optional_auth, require_admin
from config import Config
from placesearch import (
    Coordinate,
    ExistenceReconciler,
    FuzzyPlaceMatcher,
    GooglePlacesSearchProvider,
    LocalPlaceSearch,
    MapboxSearchProvider,
    MergeRanker,
    PlacesCache,
    PlaceSearchError,
    PlaceStorage,
    ResultPaginator,
    SearchSession,
    SearchSessionRegistry,
    WhooshPlaceIndex
)

logger = logging.getLogger(__name__)


class SearchStack:
    """Everything the HTTP layer needs, built once per application."""

    def __init__(self, ranker: MergeRanker = None, index: WhooshPlaceIndex = None,
                 storage: PlaceStorage = None, providers: dict = None):
        self.ranker = ranker
        self.index = index
        self.storage = storage
        self.providers = providers or {}


def build_search_stack(config=Config) -> SearchStack:
    """Initialize providers from configuration, disabling the ones that cannot start."""
    cache = PlacesCache(cache_duration=config.CACHE_SECONDS, max_entries=config.CACHE_MAX_ENTRIES)
    matcher = FuzzyPlaceMatcher(threshold_meters=config.FUZZY_MATCH_METERS, language=config.LANGUAGE)

    try:
        index = WhooshPlaceIndex(index_path=config.WHOOSH_INDEX_DIR)
        logger.info(f"Whoosh index ready at {config.WHOOSH_INDEX_DIR} ({index.doc_count()} places)")
    except Exception as e:
        logger.error(f"Error initializing Whoosh index: {str(e)}")
        index = None

    google_provider = None
    if config.GOOGLE_PLACES_API_KEY:
        try:
            google_provider = GooglePlacesSearchProvider(
                api_key=config.GOOGLE_PLACES_API_KEY, language=config.LANGUAGE, cache=cache)
            logger.info("Google Places fill enabled")
        except ValueError as e:
            logger.error(f"Error initializing Google Places provider: {str(e)}")
    else:
        logger.warning("GOOGLE_PLACES_API_KEY not set. Google Places fill disabled.")

    mapbox_provider = None
    if config.MAPBOX_ACCESS_TOKEN:
        mapbox_provider = MapboxSearchProvider(
            access_token=config.MAPBOX_ACCESS_TOKEN,
            language=config.LANGUAGE,
            timeout=config.PROVIDER_TIMEOUT_SECONDS,
            cache=cache
        )
        logger.info("Mapbox search provider initialized successfully")
    else:
        logger.warning("MAPBOX_ACCESS_TOKEN not set. Mapbox provider disabled.")

    storage = PlaceStorage()

    providers = {
        "whoosh": index is not None,
        "mapbox": mapbox_provider is not None,
        "google_places": google_provider is not None,
        "firestore": storage.available
    }

    ranker = None
    if index is not None and mapbox_provider is not None:
        ranker = MergeRanker(
            place_search=LocalPlaceSearch(index, google_provider=google_provider, matcher=matcher),
            map_search=mapbox_provider,
            reconciler=ExistenceReconciler(storage),
            matcher=matcher,
            radius_meters=config.SEARCH_RADIUS_METERS,
            limit=config.SEARCH_LIMIT,
            provider_timeout=config.PROVIDER_TIMEOUT_SECONDS
        )
    else:
        logger.error("Place search is disabled: it needs both the Whoosh index and Mapbox")

    return SearchStack(ranker=ranker, index=index, storage=storage, providers=providers)


def _parse_coordinate(source, config) -> Coordinate:
    """Read latitude/longitude from a mapping, falling back to the configured default location."""
    latitude = source.get('latitude')
    longitude = source.get('longitude')
    if latitude is None and longitude is None:
        return Coordinate(config.DEFAULT_LATITUDE, config.DEFAULT_LONGITUDE)
    if latitude is None or longitude is None:
        raise ValueError("latitude and longitude must be given together")

    coordinate = Coordinate(float(latitude), float(longitude))
    if not (-90 <= coordinate.latitude <= 90 and -180 <= coordinate.longitude <= 180):
        raise ValueError("latitude or longitude out of range")
    return coordinate


def create_app(config=Config, stack: SearchStack = None) -> Flask:
    app = Flask(__name__)
    # Enable CORS for all routes
    CORS(app)

    stack = stack or build_search_stack(config)

    def new_session() -> SearchSession:
        return SearchSession(
            ranker=stack.ranker,
            paginator=ResultPaginator(page_size=config.PAGE_SIZE, load_delay=config.LOAD_MORE_DELAY_SECONDS),
            reference=Coordinate(config.DEFAULT_LATITUDE, config.DEFAULT_LONGITUDE),
            debounce_seconds=config.DEBOUNCE_SECONDS
        )

    sessions = SearchSessionRegistry(new_session, idle_seconds=config.SESSION_IDLE_SECONDS,
                                     max_sessions=config.MAX_SESSIONS)
    app.config['SEARCH_STACK'] = stack
    app.config['SEARCH_SESSIONS'] = sessions

    def search_unavailable():
        return jsonify({"error": "Place search is not available"}), 503

    def session_payload(session: SearchSession) -> dict:
        return {
            "state": session.snapshot().to_dict(),
            "results": [place.to_dict() for place in session.current_results()]
        }

    @app.route('/', methods=['GET'])
    def index():
        """Root endpoint that returns basic API information"""
        return jsonify({
            "name": "Place Search API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": [
                {"path": "/health", "methods": ["GET"], "description": "Health check endpoint"},
                {"path": "/search/places", "methods": ["GET"], "description": "One-shot ranked place search"},
                {"path": "/search/sessions", "methods": ["POST"], "description": "Start a search session"},
                {"path": "/search/sessions/<id>", "methods": ["GET", "DELETE"], "description": "Session state and results, or cancel"},
                {"path": "/search/sessions/<id>/query", "methods": ["POST"], "description": "Submit query text"},
                {"path": "/search/sessions/<id>/more", "methods": ["POST"], "description": "Load the next page"}
            ]
        })

    @app.route('/health', methods=['GET'])
    def health_check():
        health_status = {
            "status": "ok" if stack.ranker is not None else "degraded",
            "providers": stack.providers,
            "sessions": len(sessions),
            "environment": {
                "python_version": sys.version
            }
        }
        return jsonify(health_status), 200

    @app.route('/search/places', methods=['GET'])
    @optional_auth
    def search_places():
        if stack.ranker is None:
            return search_unavailable()

        query = (request.args.get('query') or '').strip()
        if not query:
            return jsonify({"error": "Query parameter is required"}), 400
        try:
            reference = _parse_coordinate(request.args, config)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        try:
            results = stack.ranker.run(query, reference)
        except PlaceSearchError as e:
            logger.warning(f"Search for '{query}' failed: {str(e)}")
            return jsonify({"error": "Search failed, retry", "kind": e.kind.value}), 502
        except Exception as e:
            logger.error(f"Error during place search: {str(e)}", exc_info=True)
            return jsonify({"error": str(e)}), 500

        paginator = ResultPaginator(page_size=config.PAGE_SIZE)
        first_page = paginator.reset(results)
        return jsonify({
            "results": [place.to_dict() for place in first_page],
            "total": len(results)
        })

    @app.route('/search/sessions', methods=['POST'])
    @optional_auth
    def create_session():
        if stack.ranker is None:
            return search_unavailable()
        session_id = sessions.create()
        logger.debug(f"Created search session {session_id} for {(g.user or {}).get('uid', 'anonymous')}")
        return jsonify({"sessionId": session_id}), 201

    @app.route('/search/sessions/<session_id>', methods=['GET'])
    @optional_auth
    def get_session(session_id):
        session = sessions.get(session_id)
        if session is None:
            return jsonify({"error": "Unknown search session"}), 404
        payload = session_payload(session)
        session.acknowledge()
        return jsonify(payload)

    @app.route('/search/sessions/<session_id>/query', methods=['POST'])
    @optional_auth
    def submit_query(session_id):
        session = sessions.get(session_id)
        if session is None:
            return jsonify({"error": "Unknown search session"}), 404

        body = request.get_json(silent=True) or {}
        query = body.get('query')
        if not isinstance(query, str):
            return jsonify({"error": "query must be a string"}), 400
        try:
            reference = None
            if 'latitude' in body or 'longitude' in body:
                reference = _parse_coordinate(body, config)
        except (TypeError, ValueError) as e:
            return jsonify({"error": str(e)}), 400

        session.submit_query(query, reference)
        return jsonify({"state": session.snapshot().to_dict()}), 202

    @app.route('/search/sessions/<session_id>/more', methods=['POST'])
    @optional_auth
    def load_more(session_id):
        session = sessions.get(session_id)
        if session is None:
            return jsonify({"error": "Unknown search session"}), 404
        appended = session.load_more_results()
        return jsonify({
            "appended": [place.to_dict() for place in appended],
            "state": session.snapshot().to_dict()
        })

    @app.route('/search/sessions/<session_id>', methods=['DELETE'])
    @optional_auth
    def cancel_session(session_id):
        if not sessions.close(session_id):
            return jsonify({"error": "Unknown search session"}), 404
        return '', 204

    @app.route('/admin/reindex', methods=['POST'])
    @require_admin
    def reindex_places():
        """Admin endpoint to rebuild the Whoosh index from Firestore"""
        if stack.index is None or stack.storage is None or not stack.storage.available:
            return jsonify({"error": "Index or Firestore is not available"}), 503
        try:
            count = stack.index.rebuild(stack.storage.all_places())
        except Exception as e:
            logger.error(f"Error reindexing places: {str(e)}", exc_info=True)
            return jsonify({"error": str(e)}), 500
        logger.info(f"Manual reindex by {g.user.get('uid')}: {count} places")
        return jsonify({"indexed": count}), 200

    return app


if __name__ == '__main__':
    # Configure logging
    logging.basicConfig(level=logging.DEBUG)
    Config.validate()
    create_app().run(host='0.0.0.0', port=Config.PORT)
