from enum import Enum
from typing import Dict, Any, List, Optional

from placesearch.geo import Coordinate


class PlaceOrigin(Enum):
    DATABASE = "local"
    GOOGLE = "google"
    MAPBOX = "mapbox"


class PlaceCandidate:
    """A place search result, regardless of which source produced it."""

    def __init__(self,
                 origin: PlaceOrigin,
                 name: str,
                 coordinate: Coordinate,
                 database_id: str = None,
                 google_places_id: str = None,
                 mapbox_id: str = None,
                 localized_names: Dict[str, str] = None,
                 formatted_address: str = None,
                 categories: List[str] = None,
                 photo_urls: List[str] = None,
                 exists_in_database: bool = None,
                 additional_data: Dict[str, Any] = None):
        if exists_in_database is None:
            exists_in_database = database_id is not None
        if exists_in_database and not database_id:
            raise ValueError(f"Place '{name}' is marked as stored but has no database id")

        self.origin = origin
        self.name = name
        self.coordinate = coordinate
        self.database_id = database_id
        self.google_places_id = google_places_id
        self.mapbox_id = mapbox_id
        self.localized_names = localized_names or {}
        self.formatted_address = formatted_address
        self.categories = categories or []
        self.photo_urls = photo_urls
        self.exists_in_database = exists_in_database
        self.additional_data = additional_data or {}

    @property
    def identifiers(self) -> List[str]:
        """Every external identifier this candidate carries."""
        return [i for i in (self.database_id, self.google_places_id, self.mapbox_id) if i]

    def display_name(self, language: str = None) -> str:
        if language:
            for code, localized in self.localized_names.items():
                if localized and language.lower().startswith(code.lower()):
                    return localized
        return self.name or next((n for n in self.localized_names.values() if n), "Unknown")

    def to_dict(self) -> dict:
        """Convert the candidate to a regular dictionary (for API responses)."""
        return {
            'source': self.origin.value,
            'name': self.name,
            'localizedNames': self.localized_names,
            'location': {
                'latitude': self.coordinate.latitude,
                'longitude': self.coordinate.longitude
            },
            'dbPlaceId': self.database_id,
            'googlePlacesId': self.google_places_id,
            'mapboxId': self.mapbox_id,
            'formattedAddress': self.formatted_address,
            'categories': self.categories,
            'photoUrls': self.photo_urls,
            'existsInDb': self.exists_in_database,
            'additionalData': self.additional_data
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PlaceCandidate':
        location = data.get('location') or {}
        return cls(
            origin=PlaceOrigin(data.get('source', PlaceOrigin.DATABASE.value)),
            name=data.get('name', ''),
            coordinate=Coordinate(float(location.get('latitude', 0.0)), float(location.get('longitude', 0.0))),
            database_id=data.get('dbPlaceId'),
            google_places_id=data.get('googlePlacesId'),
            mapbox_id=data.get('mapboxId'),
            localized_names=data.get('localizedNames'),
            formatted_address=data.get('formattedAddress'),
            categories=data.get('categories'),
            photo_urls=data.get('photoUrls'),
            exists_in_database=data.get('existsInDb'),
            additional_data=data.get('additionalData')
        )

    def __repr__(self) -> str:
        return (f"PlaceCandidate(origin={self.origin.value!r}, name={self.name!r}, "
                f"database_id={self.database_id!r}, mapbox_id={self.mapbox_id!r})")
