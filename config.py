import os
from dotenv import load_dotenv

# Load environment variables before the settings below are read
load_dotenv()


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


class Config:
    MAPBOX_ACCESS_TOKEN = os.getenv('MAPBOX_ACCESS_TOKEN')
    GOOGLE_PLACES_API_KEY = os.getenv('GOOGLE_PLACES_API_KEY')
    WHOOSH_INDEX_DIR = os.getenv('WHOOSH_INDEX_DIR', 'whoosh_index')
    LANGUAGE = os.getenv('SEARCH_LANGUAGE', 'en')

    SEARCH_RADIUS_METERS = _float_env('SEARCH_RADIUS_METERS', 10000)
    SEARCH_LIMIT = _int_env('SEARCH_LIMIT', 50)
    PAGE_SIZE = _int_env('PAGE_SIZE', 20)
    DEBOUNCE_SECONDS = _float_env('DEBOUNCE_SECONDS', 0.3)
    LOAD_MORE_DELAY_SECONDS = _float_env('LOAD_MORE_DELAY_SECONDS', 0.3)
    FUZZY_MATCH_METERS = _float_env('FUZZY_MATCH_METERS', 50)
    PROVIDER_TIMEOUT_SECONDS = _float_env('PROVIDER_TIMEOUT_SECONDS', 10)
    CACHE_SECONDS = _int_env('CACHE_SECONDS', 3600)
    CACHE_MAX_ENTRIES = _int_env('CACHE_MAX_ENTRIES', 1000)
    SESSION_IDLE_SECONDS = _float_env('SESSION_IDLE_SECONDS', 1800)
    MAX_SESSIONS = _int_env('MAX_SESSIONS', 10000)

    # Used when a caller does not send its own location (Tokyo)
    DEFAULT_LATITUDE = _float_env('DEFAULT_LATITUDE', 35.6762)
    DEFAULT_LONGITUDE = _float_env('DEFAULT_LONGITUDE', 139.6503)

    PORT = _int_env('PORT', 5000)

    @classmethod
    def validate(cls):
        if not cls.MAPBOX_ACCESS_TOKEN:
            raise ValueError("Missing MAPBOX_ACCESS_TOKEN")
        if not os.path.exists(cls.WHOOSH_INDEX_DIR):
            os.makedirs(cls.WHOOSH_INDEX_DIR)
