from abc import ABC, abstractmethod
from typing import List

from placesearch.geo import Coordinate
from placesearch.place_candidate import PlaceCandidate


class PlaceSearchProvider(ABC):
    """Text search over places already known to the local database."""

    @abstractmethod
    def search(self, query: str, coordinate: Coordinate, radius_meters: float, limit: int) -> List[PlaceCandidate]:
        """Search for places matching the query within radius_meters of coordinate."""
        pass


class MapSearchProvider(ABC):
    """Text search against a third-party map provider."""

    @abstractmethod
    def search(self, query: str, center: Coordinate, radius_meters: float, max_results: int) -> List[PlaceCandidate]:
        """Search the provider for places matching the query in the given region."""
        pass


class PlaceDirectory(ABC):
    """Batched lookups of Mapbox places against the local database."""

    @abstractmethod
    def existing_mapbox_ids(self, mapbox_ids: List[str]) -> List[str]:
        """Return the subset of mapbox_ids that are already stored."""
        pass

    @abstractmethod
    def fetch_by_mapbox_ids(self, mapbox_ids: List[str]) -> List[PlaceCandidate]:
        """Return the stored places carrying the given Mapbox ids."""
        pass
