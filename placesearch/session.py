import itertools
import logging
import threading
import time
import uuid
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from placesearch.errors import CancellationToken, ErrorKind, PlaceSearchError, SearchCancelled
from placesearch.geo import Coordinate
from placesearch.orchestrator import MergeRanker
from placesearch.paginator import ResultPaginator
from placesearch.place_candidate import PlaceCandidate

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED)


class SearchSessionState:
    """Read-only snapshot of a session."""

    def __init__(self, query: str, reference: Coordinate, status: SessionStatus,
                 active_run_id: Optional[int], is_loading: bool, is_loading_more: bool,
                 last_error: Optional[ErrorKind], emitted_count: int, total_count: int):
        self.query = query
        self.reference = reference
        self.status = status
        self.active_run_id = active_run_id
        self.is_loading = is_loading
        self.is_loading_more = is_loading_more
        self.last_error = last_error
        self.emitted_count = emitted_count
        self.total_count = total_count

    def to_dict(self) -> dict:
        return {
            'query': self.query,
            'location': {
                'latitude': self.reference.latitude,
                'longitude': self.reference.longitude
            },
            'status': self.status.value,
            'isLoading': self.is_loading,
            'isLoadingMore': self.is_loading_more,
            'lastError': self.last_error.value if self.last_error else None,
            'displayed': self.emitted_count,
            'total': self.total_count
        }


class SearchSession:
    """Debounces query changes into pipeline runs and installs only the newest result.

    All state is written under one lock. A run carries the id it was started
    with; when it finishes after a newer run has started its result is dropped.
    """

    def __init__(self, ranker: MergeRanker, paginator: ResultPaginator, reference: Coordinate,
                 debounce_seconds: float = 0.3,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer):
        self.ranker = ranker
        self.paginator = paginator
        self.debounce_seconds = debounce_seconds
        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._run_ids = itertools.count(1)

        self._query = ""
        self._reference = reference
        self._status = SessionStatus.IDLE
        self._active_run_id: Optional[int] = None
        self._is_loading = False
        self._last_error: Optional[ErrorKind] = None
        self._timer = None
        self._token: Optional[CancellationToken] = None

    def _cancel_pending(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._token is not None:
            self._token.cancel()
            self._token = None
        self._active_run_id = None
        self._is_loading = False

    def submit_query(self, text: str, reference: Coordinate = None):
        with self._lock:
            self._cancel_pending()
            self._query = text or ""
            if reference is not None:
                self._reference = reference

            if not self._query.strip():
                self.paginator.clear()
                self._last_error = None
                self._status = SessionStatus.IDLE
                return

            self._status = SessionStatus.DEBOUNCING
            token = CancellationToken()
            self._token = token
            timer = self._timer_factory(self.debounce_seconds, self._debounce_fired,
                                        args=(self._query, self._reference, token))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _debounce_fired(self, query: str, reference: Coordinate, token: CancellationToken):
        with self._lock:
            if token.cancelled or token is not self._token or query != self._query:
                return
            self._timer = None
            run_id = next(self._run_ids)
            self._active_run_id = run_id
            self._status = SessionStatus.RUNNING
            self._is_loading = True
            self._last_error = None

        self._execute(run_id, query, reference, token)

    def _execute(self, run_id: int, query: str, reference: Coordinate, token: CancellationToken):
        try:
            results = self.ranker.run(query, reference, token)
        except SearchCancelled:
            logger.debug(f"Run {run_id} for '{query}' cancelled")
            with self._lock:
                if run_id == self._active_run_id:
                    self._cancel_pending()
                    self._status = SessionStatus.CANCELLED
            return
        except PlaceSearchError as e:
            self._finish_failed(run_id, e.kind, str(e))
            return
        except Exception as e:
            logger.error(f"Run {run_id} for '{query}' crashed: {str(e)}", exc_info=True)
            self._finish_failed(run_id, ErrorKind.UNEXPECTED, str(e))
            return

        with self._lock:
            if run_id != self._active_run_id or token.cancelled:
                logger.debug(f"Discarding stale run {run_id} for '{query}'")
                return
            self.paginator.reset(results)
            self._token = None
            self._is_loading = False
            self._status = SessionStatus.COMPLETED

    def _finish_failed(self, run_id: int, kind: ErrorKind, message: str):
        with self._lock:
            if run_id != self._active_run_id:
                logger.debug(f"Ignoring failure of stale run {run_id}: {message}")
                return
            logger.warning(f"Search failed ({kind.value}): {message}")
            self._token = None
            self._is_loading = False
            self._last_error = kind
            self._status = SessionStatus.FAILED

    def cancel(self):
        """Drop any pending or running search, e.g. when the search overlay is dismissed."""
        with self._lock:
            self._cancel_pending()
            self._status = SessionStatus.CANCELLED

    def acknowledge(self):
        """Return a finished session to idle once its outcome has been seen."""
        with self._lock:
            if self._status in TERMINAL_STATUSES:
                self._status = SessionStatus.IDLE

    def current_results(self) -> List[PlaceCandidate]:
        return self.paginator.current_page()

    def load_more_results(self) -> List[PlaceCandidate]:
        return self.paginator.load_more()

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_loading_more(self) -> bool:
        return self.paginator.is_loading

    @property
    def last_error(self) -> Optional[ErrorKind]:
        return self._last_error

    def snapshot(self) -> SearchSessionState:
        with self._lock:
            return SearchSessionState(
                query=self._query,
                reference=self._reference,
                status=self._status,
                active_run_id=self._active_run_id,
                is_loading=self._is_loading,
                is_loading_more=self.paginator.is_loading,
                last_error=self._last_error,
                emitted_count=self.paginator.emitted_count,
                total_count=self.paginator.total_count
            )


class SearchSessionRegistry:
    """One search session per client, addressed by an opaque id.

    Sessions not touched for ``idle_seconds`` are cancelled and dropped, and
    at most ``max_sessions`` are kept (least recently used goes first).
    Eviction runs on ``create`` and ``get``.
    """

    def __init__(self, session_factory: Callable[[], SearchSession],
                 idle_seconds: float = 1800, max_sessions: int = 10000,
                 clock: Callable[[], float] = time.monotonic):
        self._session_factory = session_factory
        self.idle_seconds = idle_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        # session id -> (session, last access); kept in least recently used order
        self._sessions: Dict[str, Tuple[SearchSession, float]] = {}
        self._lock = threading.Lock()

    def _evict(self, now: float, room_for: int = 0) -> List[SearchSession]:
        evicted = []
        for session_id, (session, last_access) in list(self._sessions.items()):
            if now - last_access >= self.idle_seconds:
                del self._sessions[session_id]
                evicted.append(session)
        while self._sessions and len(self._sessions) + room_for > self.max_sessions:
            session_id = next(iter(self._sessions))
            evicted.append(self._sessions.pop(session_id)[0])
        return evicted

    def _cancel_evicted(self, evicted: List[SearchSession]):
        if evicted:
            logger.debug(f"Evicted {len(evicted)} search sessions")
        for session in evicted:
            session.cancel()

    def create(self) -> str:
        session_id = uuid.uuid4().hex
        session = self._session_factory()
        with self._lock:
            now = self._clock()
            evicted = self._evict(now, room_for=1)
            self._sessions[session_id] = (session, now)
        self._cancel_evicted(evicted)
        return session_id

    def get(self, session_id: str) -> Optional[SearchSession]:
        with self._lock:
            now = self._clock()
            evicted = self._evict(now)
            entry = self._sessions.pop(session_id, None)
            if entry is not None:
                self._sessions[session_id] = (entry[0], now)
        self._cancel_evicted(evicted)
        return entry[0] if entry is not None else None

    def close(self, session_id: str) -> bool:
        with self._lock:
            entry = self._sessions.pop(session_id, None)
        if entry is None:
            return False
        entry[0].cancel()
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
