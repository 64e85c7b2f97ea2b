from placesearch.geo import Coordinate, distance_meters
from placesearch.place_candidate import PlaceCandidate, PlaceOrigin
from placesearch.errors import (
    CancellationToken,
    ErrorKind,
    PlaceSearchError,
    ProviderUnavailable,
    ReconciliationUnavailable,
    SearchCancelled,
    SearchFailed
)
from placesearch.base import PlaceSearchProvider, MapSearchProvider, PlaceDirectory
from placesearch.identity_set import IdentitySet
from placesearch.fuzzy_matcher import FuzzyPlaceMatcher, normalize_name
from placesearch.cache import PlacesCache
from placesearch.whoosh_provider import WhooshPlaceIndex, LocalPlaceSearch
from placesearch.mapbox_provider import MapboxSearchProvider
from placesearch.google_provider import GooglePlacesSearchProvider
from placesearch.storage import PlaceStorage
from placesearch.reconciler import ExistenceReconciler
from placesearch.orchestrator import MergeRanker, RankedResultSet
from placesearch.paginator import ResultPaginator
from placesearch.session import SearchSession, SearchSessionRegistry, SessionStatus

__all__ = [
    'Coordinate',
    'distance_meters',
    'PlaceCandidate',
    'PlaceOrigin',
    'CancellationToken',
    'ErrorKind',
    'PlaceSearchError',
    'ProviderUnavailable',
    'ReconciliationUnavailable',
    'SearchCancelled',
    'SearchFailed',
    'PlaceSearchProvider',
    'MapSearchProvider',
    'PlaceDirectory',
    'IdentitySet',
    'FuzzyPlaceMatcher',
    'normalize_name',
    'PlacesCache',
    'WhooshPlaceIndex',
    'LocalPlaceSearch',
    'MapboxSearchProvider',
    'GooglePlacesSearchProvider',
    'PlaceStorage',
    'ExistenceReconciler',
    'MergeRanker',
    'RankedResultSet',
    'ResultPaginator',
    'SearchSession',
    'SearchSessionRegistry',
    'SessionStatus'
]
