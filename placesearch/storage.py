import os
import json
import logging
import firebase_admin
from firebase_admin import credentials, firestore
from typing import Optional, List, Dict, Any, Iterator

from placesearch.base import PlaceDirectory
from placesearch.errors import ReconciliationUnavailable
from placesearch.geo import Coordinate
from placesearch.place_candidate import PlaceCandidate, PlaceOrigin

logger = logging.getLogger(__name__)

PLACES_COLLECTION = 'places'
# Firestore rejects 'in' filters with more values than this
FIRESTORE_IN_LIMIT = 30


def _chunks(values: List[str], size: int) -> Iterator[List[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _unique(values: List[str]) -> List[str]:
    seen = set()
    unique = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            unique.append(value)
    return unique


def _coordinate_from_data(place_data: Dict[str, Any]) -> Optional[Coordinate]:
    # Handle both new and old coordinate formats
    coordinates = place_data.get('coordinates')
    if coordinates and isinstance(coordinates, dict):
        return Coordinate(float(coordinates.get('latitude', 0.0)), float(coordinates.get('longitude', 0.0)))
    coordinate = place_data.get('coordinate')
    if coordinate is not None and hasattr(coordinate, 'latitude'):
        return Coordinate(float(coordinate.latitude), float(coordinate.longitude))
    return None


def candidate_from_document(doc_id: str, place_data: Dict[str, Any]) -> Optional[PlaceCandidate]:
    """Convert a Firestore place document to a database candidate, or None if it has no location."""
    coordinate = _coordinate_from_data(place_data)
    if coordinate is None:
        logger.warning(f"Place document {doc_id} has no coordinate")
        return None

    return PlaceCandidate(
        origin=PlaceOrigin.DATABASE,
        name=place_data.get('name', ''),
        coordinate=coordinate,
        # Always uppercase ID for consistency
        database_id=doc_id.upper(),
        google_places_id=place_data.get('googlePlacesId'),
        mapbox_id=place_data.get('mapboxId'),
        localized_names=place_data.get('localizedNames'),
        formatted_address=place_data.get('address'),
        categories=place_data.get('categories'),
        photo_urls=place_data.get('photoUrls'),
        exists_in_database=True,
        additional_data={
            'city': place_data.get('city', ''),
            'phone': place_data.get('phone'),
            'website': place_data.get('website')
        }
    )


class PlaceStorage(PlaceDirectory):
    def __init__(self, db=None):
        if db is not None:
            self.db = db
            return

        # Initialize Firestore if not already initialized
        if firebase_admin._apps:
            self.db = firestore.client()
            logger.info("Using existing Firebase instance")
            return

        firebase_creds = os.getenv('FIREBASE_CREDENTIALS')
        if not firebase_creds:
            logger.warning("FIREBASE_CREDENTIALS environment variable not found")
            self.db = None
            return

        try:
            cred = credentials.Certificate(json.loads(firebase_creds))
            firebase_admin.initialize_app(cred)
            self.db = firestore.client()
            logger.info("Firebase initialized successfully")
        except json.JSONDecodeError:
            logger.error("Failed to parse Firebase credentials JSON")
            self.db = None
        except (ValueError, IOError) as e:
            logger.error(f"Failed to initialize Firebase: {str(e)}")
            self.db = None

    @property
    def available(self) -> bool:
        return self.db is not None

    def _places(self):
        if self.db is None:
            raise ReconciliationUnavailable("Firestore database not initialized")
        return self.db.collection(PLACES_COLLECTION)

    def existing_mapbox_ids(self, mapbox_ids: List[str]) -> List[str]:
        requested = _unique(mapbox_ids)
        if not requested:
            return []

        places_ref = self._places()
        found = set()
        try:
            for chunk in _chunks(requested, FIRESTORE_IN_LIMIT):
                docs = places_ref.where('mapboxId', 'in', chunk).select(['mapboxId']).get()
                for doc in docs:
                    found.add((doc.to_dict() or {}).get('mapboxId'))
        except Exception as e:
            raise ReconciliationUnavailable(f"Existence check failed: {str(e)}") from e

        return [mapbox_id for mapbox_id in requested if mapbox_id in found]

    def fetch_by_mapbox_ids(self, mapbox_ids: List[str]) -> List[PlaceCandidate]:
        requested = _unique(mapbox_ids)
        if not requested:
            return []

        places_ref = self._places()
        places = []
        try:
            for chunk in _chunks(requested, FIRESTORE_IN_LIMIT):
                for doc in places_ref.where('mapboxId', 'in', chunk).get():
                    candidate = candidate_from_document(doc.id, doc.to_dict() or {})
                    if candidate is not None:
                        places.append(candidate)
        except Exception as e:
            raise ReconciliationUnavailable(f"Fetch by Mapbox ids failed: {str(e)}") from e

        return places

    def all_places(self) -> Iterator[PlaceCandidate]:
        """Stream every stored place."""
        for doc in self._places().stream():
            candidate = candidate_from_document(doc.id, doc.to_dict() or {})
            if candidate is not None:
                yield candidate
