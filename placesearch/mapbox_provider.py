import logging
import requests
from typing import List, Dict, Any, Optional

from placesearch.base import MapSearchProvider
from placesearch.cache import PlacesCache
from placesearch.errors import ProviderUnavailable
from placesearch.geo import Coordinate, bounding_box, distance_meters
from placesearch.place_candidate import PlaceCandidate, PlaceOrigin

logger = logging.getLogger(__name__)

# The Search Box forward endpoint refuses larger limits
MAPBOX_MAX_LIMIT = 10


class MapboxSearchProvider(MapSearchProvider):
    def __init__(self, access_token: str, language: str = "en", timeout: float = 10,
                 session: requests.Session = None, cache: PlacesCache = None):
        self.access_token = access_token
        self.base_url = "https://api.mapbox.com/search/searchbox/v1"
        self.language = language
        self.timeout = timeout
        self.session = session or requests.Session()
        self.cache = cache or PlacesCache()

    def search(self, query: str, center: Coordinate, radius_meters: float, max_results: int) -> List[PlaceCandidate]:
        cached_results = self.cache.get("mapbox", query, center, radius_meters, max_results)
        if cached_results is not None:
            logger.debug(f"Returning cached Mapbox results for query: {query}")
            return cached_results

        min_lon, min_lat, max_lon, max_lat = bounding_box(center, radius_meters)
        params = {
            "access_token": self.access_token,
            "q": query,
            "limit": min(max_results, MAPBOX_MAX_LIMIT),
            "language": self.language,
            "types": "poi",
            # Mapbox takes longitude first
            "proximity": f"{center.longitude},{center.latitude}",
            "bbox": f"{min_lon},{min_lat},{max_lon},{max_lat}"
        }

        try:
            response = self.session.get(f"{self.base_url}/forward", params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise ProviderUnavailable(f"Mapbox request failed: {str(e)}") from e

        if response.status_code != 200:
            logger.error(f"Mapbox API Error: {response.status_code} {response.text}")
            raise ProviderUnavailable(f"Mapbox returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderUnavailable("Mapbox returned an undecodable body") from e

        results = []
        seen_ids = set()
        for feature in data.get("features", []):
            candidate = self._candidate_from_feature(feature)
            if candidate is None or candidate.mapbox_id in seen_ids:
                continue
            if distance_meters(center, candidate.coordinate) > radius_meters:
                continue
            seen_ids.add(candidate.mapbox_id)
            results.append(candidate)
            if len(results) >= max_results:
                break

        logger.debug(f"Mapbox returned {len(results)} places for query: {query}")
        self.cache.set("mapbox", query, center, radius_meters, max_results, results)
        return results

    def _candidate_from_feature(self, feature: Dict[str, Any]) -> Optional[PlaceCandidate]:
        properties = feature.get("properties") or {}
        mapbox_id = properties.get("mapbox_id")
        if not mapbox_id:
            return None

        coordinate = self._coordinate_from_feature(feature, properties)
        if coordinate is None:
            logger.debug(f"Skipping Mapbox feature without coordinates: {mapbox_id}")
            return None

        metadata = properties.get("metadata") or {}
        context = properties.get("context") or {}
        return PlaceCandidate(
            origin=PlaceOrigin.MAPBOX,
            name=properties.get("name", ""),
            coordinate=coordinate,
            mapbox_id=mapbox_id,
            formatted_address=properties.get("full_address") or properties.get("place_formatted"),
            categories=list(properties.get("poi_category") or []),
            exists_in_database=False,
            additional_data={
                "phone": metadata.get("phone"),
                "website": metadata.get("website"),
                "city": (context.get("place") or {}).get("name", "")
            }
        )

    @staticmethod
    def _coordinate_from_feature(feature: Dict[str, Any], properties: Dict[str, Any]) -> Optional[Coordinate]:
        coordinates = properties.get("coordinates") or {}
        if "latitude" in coordinates and "longitude" in coordinates:
            return Coordinate(float(coordinates["latitude"]), float(coordinates["longitude"]))

        # GeoJSON geometry is [longitude, latitude]
        point = (feature.get("geometry") or {}).get("coordinates") or []
        if len(point) >= 2:
            return Coordinate(float(point[1]), float(point[0]))
        return None
