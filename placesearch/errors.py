import threading
from enum import Enum


class ErrorKind(Enum):
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    RECONCILIATION_UNAVAILABLE = "reconciliation_unavailable"
    CANCELLED = "cancelled"
    INVALID_QUERY = "invalid_query"
    UNEXPECTED = "unexpected"


class PlaceSearchError(RuntimeError):
    kind = ErrorKind.UNEXPECTED

    def __init__(self, message: str = "", kind: ErrorKind = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class ProviderUnavailable(PlaceSearchError):
    """Raised when a search provider fails or times out."""
    kind = ErrorKind.PROVIDER_UNAVAILABLE


class ReconciliationUnavailable(PlaceSearchError):
    """Raised when the existence check or fetch-by-ids call fails."""
    kind = ErrorKind.RECONCILIATION_UNAVAILABLE


class SearchCancelled(PlaceSearchError):
    kind = ErrorKind.CANCELLED


class SearchFailed(PlaceSearchError):
    """Raised when a run cannot produce any result set."""


class CancellationToken:
    """Cooperative cancellation flag shared by a session and the run it started."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise SearchCancelled("Search run was cancelled")
