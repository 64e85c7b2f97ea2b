import logging
from typing import Dict, List

from placesearch.base import PlaceDirectory
from placesearch.errors import ReconciliationUnavailable
from placesearch.place_candidate import PlaceCandidate

logger = logging.getLogger(__name__)


class ExistenceReconciler:
    """Finds which Mapbox results are already stored and returns their canonical records.

    One batched existence check plus one batched fetch, regardless of how many
    ids are passed in. Failures reconcile nothing; the fuzzy matcher still
    catches most of those duplicates later in the pipeline.
    """

    def __init__(self, directory: PlaceDirectory):
        self.directory = directory

    def reconcile(self, mapbox_ids: List[str]) -> Dict[str, PlaceCandidate]:
        requested = [mapbox_id for mapbox_id in mapbox_ids if mapbox_id]
        if not requested:
            return {}

        try:
            existing_ids = self.directory.existing_mapbox_ids(requested)
            logger.debug(f"Found {len(existing_ids)} of {len(requested)} Mapbox ids in the database")
            if not existing_ids:
                return {}

            stored_places = self.directory.fetch_by_mapbox_ids(existing_ids)
        except ReconciliationUnavailable as e:
            logger.warning(f"Reconciliation unavailable, continuing without it: {str(e)}")
            return {}
        except Exception as e:
            logger.error(f"Unexpected reconciliation error: {str(e)}", exc_info=True)
            return {}

        wanted = set(existing_ids)
        canonical = {}
        for place in stored_places:
            if place.mapbox_id not in wanted or not place.exists_in_database:
                continue
            canonical.setdefault(place.mapbox_id, place)

        logger.debug(f"Reconciled {len(canonical)} Mapbox places to database records")
        return canonical
