import logging
import threading
import time
from typing import List

from placesearch.orchestrator import RankedResultSet
from placesearch.place_candidate import PlaceCandidate

logger = logging.getLogger(__name__)


class ResultPaginator:
    """Serves a ranked result set in fixed-size pages.

    ``reset`` fills the first page straight away; every ``load_more`` call
    appends the next slice. Only one load runs at a time; a call made while
    another is in flight, or after the set is exhausted, returns an empty
    list and changes nothing.
    """

    def __init__(self, page_size: int = 20, load_delay: float = 0.0):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self.load_delay = load_delay
        self._results = RankedResultSet(())
        self._emitted_count = 0
        self._generation = 0
        self._loading = False
        self._lock = threading.Lock()

    @property
    def emitted_count(self) -> int:
        return self._emitted_count

    @property
    def total_count(self) -> int:
        return len(self._results)

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def has_more(self) -> bool:
        with self._lock:
            return self._emitted_count < len(self._results)

    def reset(self, results: RankedResultSet) -> List[PlaceCandidate]:
        """Install a new result set and return its first page."""
        with self._lock:
            self._results = results
            self._generation += 1
            self._loading = False
            self._emitted_count = min(self.page_size, len(results))
            logger.debug(f"Page 1: {self._emitted_count}/{len(results)}")
            return list(results[:self._emitted_count])

    def clear(self):
        self.reset(RankedResultSet(()))

    def current_page(self) -> List[PlaceCandidate]:
        with self._lock:
            return list(self._results[:self._emitted_count])

    def load_more(self) -> List[PlaceCandidate]:
        with self._lock:
            if self._loading or self._emitted_count >= len(self._results):
                return []
            self._loading = True
            generation = self._generation

        if self.load_delay > 0:
            time.sleep(self.load_delay)

        with self._lock:
            if generation != self._generation:
                # A new result set was installed while this page was loading
                return []
            start = self._emitted_count
            end = min(start + self.page_size, len(self._results))
            self._emitted_count = end
            self._loading = False
            logger.debug(f"Loaded places {start}-{end} of {len(self._results)}")
            return list(self._results[start:end])
