import logging
import googlemaps
from googlemaps import exceptions as googlemaps_exceptions
from typing import List, Dict, Any, Optional

from placesearch.cache import PlacesCache
from placesearch.errors import ProviderUnavailable
from placesearch.geo import Coordinate, distance_meters
from placesearch.place_candidate import PlaceCandidate, PlaceOrigin

logger = logging.getLogger(__name__)


class GooglePlacesSearchProvider:
    """Google Places text search, used to fill sparse local results."""

    def __init__(self, api_key: str = None, language: str = "en", client: googlemaps.Client = None,
                 cache: PlacesCache = None):
        self.client = client or googlemaps.Client(key=api_key)
        self.language = language
        self.cache = cache or PlacesCache()

    def search(self, query: str, coordinate: Coordinate, radius_meters: float, limit: int) -> List[PlaceCandidate]:
        cached_results = self.cache.get("google", query, coordinate, radius_meters, limit)
        if cached_results is not None:
            logger.debug(f"Returning cached Google results for query: {query}")
            return cached_results

        try:
            response = self.client.places(
                query=query,
                location=(coordinate.latitude, coordinate.longitude),
                radius=int(radius_meters),
                language=self.language
            )
        except (googlemaps_exceptions.ApiError,
                googlemaps_exceptions.TransportError,
                googlemaps_exceptions.Timeout) as e:
            raise ProviderUnavailable(f"Google Places search failed: {str(e)}") from e

        results = []
        for place in response.get("results", []):
            candidate = self._candidate_from_result(place)
            if candidate is None:
                continue
            if distance_meters(coordinate, candidate.coordinate) > radius_meters:
                continue
            results.append(candidate)
            if len(results) >= limit:
                break

        self.cache.set("google", query, coordinate, radius_meters, limit, results)
        return results

    @staticmethod
    def _candidate_from_result(place: Dict[str, Any]) -> Optional[PlaceCandidate]:
        place_id = place.get("place_id")
        location = (place.get("geometry") or {}).get("location") or {}
        if not place_id or "lat" not in location or "lng" not in location:
            return None

        return PlaceCandidate(
            origin=PlaceOrigin.GOOGLE,
            name=place.get("name", ""),
            coordinate=Coordinate(float(location["lat"]), float(location["lng"])),
            google_places_id=place_id,
            formatted_address=place.get("formatted_address"),
            categories=list(place.get("types") or []),
            exists_in_database=False,
            additional_data={"rating": place.get("rating")}
        )
