from typing import Iterable, Set

from placesearch.place_candidate import PlaceCandidate


class IdentitySet:
    """Every identifier (database, Google, Mapbox) already represented by known places."""

    def __init__(self, ids: Iterable[str] = None):
        self._ids: Set[str] = set()
        for place_id in ids or []:
            self.insert(place_id)

    def insert(self, place_id: str):
        if place_id:
            self._ids.add(place_id)

    def insert_candidate(self, candidate: PlaceCandidate):
        for place_id in candidate.identifiers:
            self._ids.add(place_id)

    def contains(self, place_id: str) -> bool:
        return bool(place_id) and place_id in self._ids

    def contains_any(self, candidate: PlaceCandidate) -> bool:
        return any(place_id in self._ids for place_id in candidate.identifiers)

    def __contains__(self, place_id) -> bool:
        return self.contains(place_id)

    def __len__(self) -> int:
        return len(self._ids)
