import logging
import sys

from config import Config
from placesearch import PlaceStorage, WhooshPlaceIndex

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def index_places_from_firestore(index_path: str = None, storage: PlaceStorage = None) -> int:
    """Rebuild the Whoosh index from the Firestore places collection."""
    storage = storage or PlaceStorage()
    if not storage.available:
        raise RuntimeError("Firestore is not configured; set FIREBASE_CREDENTIALS")

    index = WhooshPlaceIndex(index_path=index_path or Config.WHOOSH_INDEX_DIR)
    count = index.rebuild(storage.all_places())
    logger.info(f"Indexing completed: {count} places")
    return count


if __name__ == "__main__":
    try:
        index_places_from_firestore()
    except Exception as e:
        logger.error(f"Error indexing places: {str(e)}", exc_info=True)
        sys.exit(1)
