import os
import logging
import threading
import whoosh.index
import whoosh.fields
import whoosh.query
import whoosh.writing
from whoosh.analysis import StandardAnalyzer
from typing import List, Iterable, Dict, Any

from placesearch.base import PlaceSearchProvider
from placesearch.errors import ProviderUnavailable
from placesearch.fuzzy_matcher import FuzzyPlaceMatcher
from placesearch.geo import Coordinate, distance_meters
from placesearch.google_provider import GooglePlacesSearchProvider
from placesearch.identity_set import IdentitySet
from placesearch.place_candidate import PlaceCandidate, PlaceOrigin

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("name", "alt_names")


def place_analyzer():
    # Type-ahead prefixes like "an" (The Ant) and single-character names like "鮨" must survive analysis
    return StandardAnalyzer(stoplist=None, minsize=1)


def place_schema() -> whoosh.fields.Schema:
    return whoosh.fields.Schema(
        place_id=whoosh.fields.ID(stored=True, unique=True),
        name=whoosh.fields.TEXT(stored=True, analyzer=place_analyzer()),
        # Localized names are searchable too, so "ラーメン" finds a place stored as "Ramen Ichiran"
        alt_names=whoosh.fields.TEXT(analyzer=place_analyzer()),
        # Keep these for the response but don't search on them
        localized_names=whoosh.fields.STORED,
        address=whoosh.fields.STORED,
        latitude=whoosh.fields.STORED,
        longitude=whoosh.fields.STORED,
        google_places_id=whoosh.fields.STORED,
        mapbox_id=whoosh.fields.STORED,
        categories=whoosh.fields.STORED,
        photo_urls=whoosh.fields.STORED
    )


class WhooshPlaceIndex:
    """Full-text index mirroring the Firestore places collection."""

    def __init__(self, index_path: str = "whoosh_index"):
        self.index_path = index_path
        self._analyzer = place_analyzer()
        self._write_lock = threading.Lock()
        self._ensure_index()

    def _ensure_index(self):
        if not os.path.exists(self.index_path):
            os.makedirs(self.index_path)
        if not whoosh.index.exists_in(self.index_path):
            logger.debug(f"Creating new Whoosh index at {self.index_path}")
            self.ix = whoosh.index.create_in(self.index_path, place_schema())
        else:
            logger.debug(f"Using existing Whoosh index at {self.index_path}")
            self.ix = whoosh.index.open_dir(self.index_path)

    def _document(self, place: PlaceCandidate) -> Dict[str, Any]:
        return dict(
            place_id=place.database_id,
            name=place.name or "",
            alt_names=" ".join(n for n in place.localized_names.values() if n),
            localized_names=dict(place.localized_names),
            address=place.formatted_address or "",
            latitude=place.coordinate.latitude,
            longitude=place.coordinate.longitude,
            google_places_id=place.google_places_id,
            mapbox_id=place.mapbox_id,
            categories=list(place.categories),
            photo_urls=list(place.photo_urls) if place.photo_urls else None
        )

    def upsert(self, place: PlaceCandidate):
        if not place.database_id:
            raise ValueError(f"Cannot index place '{place.name}' without a database id")
        with self._write_lock:
            with self.ix.writer() as writer:
                writer.update_document(**self._document(place))

    def rebuild(self, places: Iterable[PlaceCandidate]) -> int:
        """Replace the whole index with the given places."""
        count = 0
        with self._write_lock:
            writer = self.ix.writer()
            try:
                for place in places:
                    if not place.database_id or not place.name:
                        logger.warning(f"Skipping place without id or name: {place!r}")
                        continue
                    writer.add_document(**self._document(place))
                    count += 1
            except Exception:
                writer.cancel()
                raise
            writer.commit(mergetype=whoosh.writing.CLEAR)
        logger.info(f"Indexed {count} places in Whoosh")
        return count

    def doc_count(self) -> int:
        return self.ix.doc_count()

    def _build_query(self, query: str):
        tokens = [token.text for token in self._analyzer(query)]
        if not tokens:
            return None
        # Every token must prefix-match one of the name fields
        return whoosh.query.And([
            whoosh.query.Or([whoosh.query.Prefix(field, token) for field in SEARCH_FIELDS])
            for token in tokens
        ])

    def search(self, query: str) -> List[PlaceCandidate]:
        """All places matching the query, most relevant first."""
        q = self._build_query(query)
        if q is None:
            return []

        with self.ix.searcher() as searcher:
            return [self._candidate_from_hit(hit.fields()) for hit in searcher.search(q, limit=None)]

    @staticmethod
    def _candidate_from_hit(fields: Dict[str, Any]) -> PlaceCandidate:
        return PlaceCandidate(
            origin=PlaceOrigin.DATABASE,
            name=fields.get("name", ""),
            coordinate=Coordinate(float(fields.get("latitude") or 0.0), float(fields.get("longitude") or 0.0)),
            database_id=fields["place_id"],
            google_places_id=fields.get("google_places_id"),
            mapbox_id=fields.get("mapbox_id"),
            localized_names=fields.get("localized_names"),
            formatted_address=fields.get("address") or None,
            categories=fields.get("categories"),
            photo_urls=fields.get("photo_urls"),
            exists_in_database=True
        )


class LocalPlaceSearch(PlaceSearchProvider):
    """Database-backed search: the Whoosh index, optionally filled from Google Places."""

    def __init__(self, index: WhooshPlaceIndex,
                 google_provider: GooglePlacesSearchProvider = None,
                 matcher: FuzzyPlaceMatcher = None):
        self.index = index
        self.google_provider = google_provider
        self.matcher = matcher or FuzzyPlaceMatcher()

    def search(self, query: str, coordinate: Coordinate, radius_meters: float, limit: int) -> List[PlaceCandidate]:
        try:
            hits = self.index.search(query)
        except Exception as e:
            raise ProviderUnavailable(f"Local index search failed: {str(e)}") from e

        results = []
        seen_ids = set()
        for place in hits:
            if place.database_id in seen_ids:
                continue
            if distance_meters(coordinate, place.coordinate) > radius_meters:
                continue
            seen_ids.add(place.database_id)
            results.append(place)
            if len(results) >= limit:
                break

        logger.debug(f"Local index returned {len(results)} places for query: {query}")

        if self.google_provider is not None and len(results) < limit:
            results.extend(self._google_fill(query, coordinate, radius_meters, limit - len(results), results))

        return results

    def _google_fill(self, query: str, coordinate: Coordinate, radius_meters: float, remaining: int,
                     local_results: List[PlaceCandidate]) -> List[PlaceCandidate]:
        try:
            google_results = self.google_provider.search(query, coordinate, radius_meters, remaining)
        except ProviderUnavailable as e:
            logger.warning(f"Google fill skipped: {str(e)}")
            return []

        known = IdentitySet()
        for place in local_results:
            known.insert_candidate(place)

        fill = []
        for place in google_results:
            if known.contains(place.google_places_id):
                continue
            if self.matcher.is_duplicate(place, local_results):
                continue
            known.insert(place.google_places_id)
            fill.append(place)
        return fill[:remaining]
