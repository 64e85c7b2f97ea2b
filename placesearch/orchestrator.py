import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import List, Optional, Sequence, Iterator

from placesearch.base import PlaceSearchProvider, MapSearchProvider
from placesearch.errors import CancellationToken, ErrorKind, ProviderUnavailable, SearchFailed
from placesearch.fuzzy_matcher import FuzzyPlaceMatcher
from placesearch.geo import Coordinate, distance_meters
from placesearch.identity_set import IdentitySet
from placesearch.place_candidate import PlaceCandidate
from placesearch.reconciler import ExistenceReconciler

logger = logging.getLogger(__name__)


class RankedResultSet:
    """The deduplicated output of one run, nearest place first. Immutable."""

    def __init__(self, places: Sequence[PlaceCandidate], query: str = "",
                 reference: Optional[Coordinate] = None):
        self._places = tuple(places)
        self.query = query
        self.reference = reference

    @property
    def places(self) -> tuple:
        return self._places

    def __len__(self) -> int:
        return len(self._places)

    def __iter__(self) -> Iterator[PlaceCandidate]:
        return iter(self._places)

    def __getitem__(self, index):
        return self._places[index]


class MergeRanker:
    def __init__(self, place_search: PlaceSearchProvider,
                 map_search: MapSearchProvider,
                 reconciler: ExistenceReconciler,
                 matcher: FuzzyPlaceMatcher = None,
                 radius_meters: float = 10000,
                 limit: int = 50,
                 provider_timeout: float = None,
                 max_workers: int = 8):
        self.place_search = place_search
        self.map_search = map_search
        self.reconciler = reconciler
        self.matcher = matcher or FuzzyPlaceMatcher()
        self.radius_meters = radius_meters
        self.limit = limit
        self.provider_timeout = provider_timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="place-search")

    def _collect(self, future, done, source: str) -> Optional[List[PlaceCandidate]]:
        """Result of one provider search, or None when it failed or missed the deadline."""
        if future not in done:
            future.cancel()
            logger.warning(f"{source} search timed out after {self.provider_timeout}s")
            return None
        try:
            return list(future.result())
        except ProviderUnavailable as e:
            logger.warning(f"{source} search unavailable: {str(e)}")
        except Exception as e:
            logger.error(f"{source} search failed: {str(e)}", exc_info=True)
        return None

    def run(self, query: str, reference: Coordinate, token: CancellationToken = None) -> RankedResultSet:
        token = token or CancellationToken()
        token.raise_if_cancelled()
        start_time = time.monotonic()

        # Step 1: both searches at once; either may fail on its own
        local_future = self._executor.submit(
            self.place_search.search, query, reference, self.radius_meters, self.limit)
        mapbox_future = self._executor.submit(
            self.map_search.search, query, reference, self.radius_meters, self.limit)
        # One deadline shared by both searches
        done, _ = wait([local_future, mapbox_future], timeout=self.provider_timeout)
        local_results = self._collect(local_future, done, "Local")
        mapbox_results = self._collect(mapbox_future, done, "Mapbox")

        token.raise_if_cancelled()

        if local_results is None and mapbox_results is None:
            raise SearchFailed("Both place searches failed", kind=ErrorKind.PROVIDER_UNAVAILABLE)
        local_results = local_results or []
        mapbox_results = mapbox_results or []
        logger.debug(f"[{query}] local={len(local_results)} mapbox={len(mapbox_results)}")

        # Step 2: database results are authoritative
        known_ids = IdentitySet()
        accepted_ids = IdentitySet()
        combined: List[PlaceCandidate] = []
        for place in local_results:
            if place.exists_in_database:
                known_ids.insert_candidate(place)
            accepted_ids.insert_candidate(place)
            combined.append(place)

        # Step 3: one batched lookup for every Mapbox id
        canonical = self.reconciler.reconcile([place.mapbox_id for place in mapbox_results])

        token.raise_if_cancelled()

        # Step 4
        for place in mapbox_results:
            stored = canonical.get(place.mapbox_id)
            if stored is not None:
                if not accepted_ids.contains_any(stored):
                    combined.append(stored)
                    accepted_ids.insert_candidate(stored)
                continue

            if known_ids.contains(place.mapbox_id) or accepted_ids.contains(place.mapbox_id):
                logger.debug(f"Skipping Mapbox result already in database: {place.name}")
                continue

            if self.matcher.is_duplicate(place, combined):
                continue

            combined.append(place)
            accepted_ids.insert_candidate(place)

        token.raise_if_cancelled()

        # Step 5: stable sort, so equal distances keep their merge order
        ranked = sorted(combined, key=lambda place: distance_meters(place.coordinate, reference))

        elapsed = time.monotonic() - start_time
        logger.info(f"Search '{query}': {len(ranked)} places in {elapsed:.2f}s")
        return RankedResultSet(ranked, query=query, reference=reference)

    def shutdown(self):
        self._executor.shutdown(wait=False)
