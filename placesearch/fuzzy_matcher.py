import logging
from typing import Iterable, Optional

from placesearch.geo import distance_meters
from placesearch.place_candidate import PlaceCandidate

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_METERS = 50.0


def normalize_name(name: str) -> str:
    """Lowercase, trim and drop internal spaces so 'Ichi Ran ' matches 'ichiran'."""
    if not name:
        return ""
    return name.lower().strip().replace(" ", "")


class FuzzyPlaceMatcher:
    """Detects duplicates that share no identifier by proximity plus normalized name."""

    def __init__(self, threshold_meters: float = DEFAULT_THRESHOLD_METERS, language: str = None):
        self.threshold_meters = threshold_meters
        # Names are compared as displayed in this language
        self.language = language

    def find_duplicate(self, candidate: PlaceCandidate,
                       against: Iterable[PlaceCandidate]) -> Optional[PlaceCandidate]:
        """Return the first place in `against` that duplicates `candidate`, scanning in order."""
        candidate_name = None
        for existing in against:
            if distance_meters(candidate.coordinate, existing.coordinate) >= self.threshold_meters:
                continue
            if candidate_name is None:
                candidate_name = normalize_name(candidate.display_name(self.language))
            if candidate_name == normalize_name(existing.display_name(self.language)):
                return existing
        return None

    def is_duplicate(self, candidate: PlaceCandidate, against: Iterable[PlaceCandidate]) -> bool:
        duplicate = self.find_duplicate(candidate, against)
        if duplicate is not None:
            logger.debug(f"Fuzzy duplicate: {candidate.name!r} matches {duplicate.name!r}")
            return True
        return False
