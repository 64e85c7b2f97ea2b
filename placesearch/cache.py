import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from placesearch.geo import Coordinate
from placesearch.place_candidate import PlaceCandidate


class PlacesCache:
    def __init__(self, cache_duration: int = 3600, max_entries: int = 1000):  # Default cache duration: 1 hour
        self.cache: Dict[str, Tuple[Tuple[PlaceCandidate, ...], datetime]] = {}
        self.cache_duration = cache_duration
        self.max_entries = max_entries
        self._lock = threading.Lock()

    def _generate_cache_key(self, provider: str, query: str, coordinate: Optional[Coordinate],
                            radius_meters: float, limit: int) -> str:
        """Generate a cache key based on search parameters"""
        if coordinate is not None:
            loc_str = f"{coordinate.latitude:.4f},{coordinate.longitude:.4f}"
        else:
            loc_str = "no-loc"
        return f"{provider}:{query.strip().lower()}:{loc_str}:{radius_meters}:{limit}"

    def get(self, provider: str, query: str, coordinate: Optional[Coordinate],
            radius_meters: float, limit: int) -> Optional[List[PlaceCandidate]]:
        """Get cached results if they exist and are not expired"""
        cache_key = self._generate_cache_key(provider, query, coordinate, radius_meters, limit)
        with self._lock:
            entry = self.cache.get(cache_key)
            if entry is None:
                return None
            results, timestamp = entry
            if datetime.now() - timestamp < timedelta(seconds=self.cache_duration):
                return list(results)
            del self.cache[cache_key]
        return None

    def set(self, provider: str, query: str, coordinate: Optional[Coordinate],
            radius_meters: float, limit: int, results: List[PlaceCandidate]):
        """Cache the results with current timestamp"""
        cache_key = self._generate_cache_key(provider, query, coordinate, radius_meters, limit)
        now = datetime.now()
        with self._lock:
            self._purge_expired(now)
            # Re-inserting moves the key to the end, so the first key is always the oldest write
            self.cache.pop(cache_key, None)
            while self.cache and len(self.cache) >= self.max_entries:
                del self.cache[next(iter(self.cache))]
            self.cache[cache_key] = (tuple(results), now)

    def _purge_expired(self, now: datetime):
        max_age = timedelta(seconds=self.cache_duration)
        expired = [key for key, (_, timestamp) in self.cache.items() if now - timestamp >= max_age]
        for key in expired:
            del self.cache[key]

    def clear(self):
        with self._lock:
            self.cache.clear()
