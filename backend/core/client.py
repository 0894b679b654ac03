"""
client.py — Fetch layer for the school records API.

- One typed call per endpoint family (school, subjects, classes, class, student)
- None-valued query params are left out of the URL
- 404 and empty bodies mean "no data" and return None
- Other failures raise AnalyticsFetchError with the upstream message
- One retry on transport errors and 5xx responses
- QueryCache: results keyed by (tab, scope, period, filters), latest key wins,
  bounded and expiring, concurrent callers share one in-flight fetch
"""

import os
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

import httpx
from dotenv import load_dotenv

from core.log import setup_logger

load_dotenv()

logger = setup_logger("schoolboard.client")

UPSTREAM_API_URL = os.getenv("UPSTREAM_API_URL", "http://localhost:8000/api")
UPSTREAM_API_TOKEN = os.getenv("UPSTREAM_API_TOKEN", "").strip()
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "20"))
UPSTREAM_CACHE_SECONDS = float(os.getenv("UPSTREAM_CACHE_SECONDS", "60"))
UPSTREAM_CACHE_SIZE = int(os.getenv("UPSTREAM_CACHE_SIZE", "256"))

ENDPOINTS = {
    "school": "results/metrics/school/performance/",
    "subjects": "results/metrics/school/subjects/",
    "classes": "results/metrics/school/classes/",
    "class": "results/metrics/classes/{class_id}/performance/",
    "student": "results/metrics/students/{student_id}/performance/",
}

ENDPOINT_LABELS = {
    "school": "school performance",
    "subjects": "subject analysis",
    "classes": "class comparison",
    "class": "class performance",
    "student": "student analytics",
}


class AnalyticsFetchError(Exception):
    """Upstream request failed for a reason other than "not found"."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        # Query that produced the error, filled in by the HTTP layer for retries.
        self.query: Optional[Dict[str, Any]] = None


def build_params(params: Dict[str, Any]) -> Dict[str, str]:
    """Drop None/empty values and stringify the rest."""
    return {k: str(v) for k, v in params.items() if v is not None and v != ""}


def _error_message(res: httpx.Response, label: str) -> str:
    try:
        body = res.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        for key in ("detail", "error", "message"):
            if body.get(key):
                return str(body[key])
    return f"Failed to fetch {label}: {res.status_code} {res.reason_phrase}".strip()


def _is_empty(data: Any) -> bool:
    return data is None or (isinstance(data, (dict, list)) and len(data) == 0)


class AnalyticsClient:
    """Synchronous httpx client for the analytics endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
        retries: int = 1,
    ):
        self.base_url = (base_url or UPSTREAM_API_URL).rstrip("/") + "/"
        self.token = UPSTREAM_API_TOKEN if token is None else token
        self.timeout = UPSTREAM_TIMEOUT_SECONDS if timeout is None else timeout
        self.transport = transport
        self.retries = retries

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get(self, path: str, params: Dict[str, Any], label: str) -> Optional[Any]:
        query = build_params(params)
        attempts = self.retries + 1

        with httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers=self._headers(),
        ) as client:
            for attempt in range(1, attempts + 1):
                try:
                    res = client.get(path, params=query)
                except httpx.TransportError as exc:
                    if attempt < attempts:
                        logger.warning("Retrying %s after transport error: %s", label, exc)
                        continue
                    logger.error("Error fetching %s: %s", label, exc)
                    raise AnalyticsFetchError(f"Failed to fetch {label}: {exc}") from exc

                if res.status_code == 404:
                    logger.warning("No %s found for %s", label, query)
                    return None
                if res.status_code >= 500 and attempt < attempts:
                    logger.warning("Retrying %s after HTTP %s", label, res.status_code)
                    continue
                if res.is_error:
                    message = _error_message(res, label)
                    logger.error("Error fetching %s: %s", label, message)
                    raise AnalyticsFetchError(message, status_code=res.status_code)

                try:
                    data = res.json()
                except ValueError as exc:
                    raise AnalyticsFetchError(
                        f"Failed to fetch {label}: invalid JSON", status_code=res.status_code
                    ) from exc
                if _is_empty(data):
                    logger.warning("Empty %s (200 OK) for %s", label, query)
                    return None
                return data
        return None

    # ── Endpoint families ───────────────────────────────────────────

    def fetch(self, tab: str, **options) -> Optional[Any]:
        """Dispatch on the analytics tab name."""
        if tab == "school":
            return self.school_performance(**options)
        if tab == "subjects":
            return self.subject_analysis(**options)
        if tab == "classes":
            return self.class_comparison(**options)
        if tab == "class":
            return self.class_performance(**options)
        if tab == "student":
            return self.student_performance(**options)
        raise ValueError(f"Invalid tab selected: {tab}")

    def school_performance(self, time_scope=None, period_id=None, academic_year_id=None) -> Optional[Any]:
        return self._get(
            ENDPOINTS["school"],
            {"time_scope": time_scope, "period_id": period_id, "academic_year_id": academic_year_id},
            ENDPOINT_LABELS["school"],
        )

    def subject_analysis(
        self,
        time_scope=None,
        period_id=None,
        academic_year_id=None,
        subject_query=None,
        sort_by=None,
        sort_direction=None,
    ) -> Optional[Any]:
        return self._get(
            ENDPOINTS["subjects"],
            {
                "time_scope": time_scope,
                "period_id": period_id,
                "academic_year_id": academic_year_id,
                "subject_query": subject_query,
                "sort_by": sort_by,
                "sort_direction": sort_direction,
            },
            ENDPOINT_LABELS["subjects"],
        )

    def class_comparison(self, time_scope=None, period_id=None, academic_year_id=None) -> Optional[Any]:
        return self._get(
            ENDPOINTS["classes"],
            {"time_scope": time_scope, "period_id": period_id, "academic_year_id": academic_year_id},
            ENDPOINT_LABELS["classes"],
        )

    def class_performance(self, class_id=None, time_scope=None, period_id=None, academic_year_id=None) -> Optional[Any]:
        if not class_id:
            raise ValueError("class_id is required for class performance.")
        return self._get(
            ENDPOINTS["class"].format(class_id=class_id),
            {"time_scope": time_scope, "period_id": period_id, "academic_year_id": academic_year_id},
            ENDPOINT_LABELS["class"],
        )

    def student_performance(
        self,
        student_id=None,
        time_scope="latest",
        academic_year_id=None,
        term_id=None,
        sequence_id=None,
    ) -> Optional[Any]:
        if not student_id:
            raise ValueError("student_id is required for student analytics.")
        params = {
            "time_scope": time_scope,
            "academic_year_id": academic_year_id,
            "term_id": term_id if time_scope in ("term", "sequence") else None,
            "sequence_id": sequence_id if time_scope == "sequence" else None,
            "period_id": (sequence_id or term_id or academic_year_id) if time_scope != "latest" else None,
        }
        return self._get(
            ENDPOINTS["student"].format(student_id=student_id),
            params,
            ENDPOINT_LABELS["student"],
        )


# ── Query cache ─────────────────────────────────────────────────────

def query_key(tab: str, time_scope: Optional[str], period_id: Optional[str], filters: Optional[Dict[str, Any]] = None) -> Tuple:
    """Hashable fetch key: (tab, time scope, period id, sorted filters)."""
    frozen = tuple(sorted((k, v) for k, v in (filters or {}).items() if v not in (None, "")))
    return (tab, time_scope, period_id, frozen)


class _Pending:
    """An in-flight fetch other callers can wait on."""

    def __init__(self):
        self.event = threading.Event()
        self.value: Any = None
        self.error: Optional[BaseException] = None


class QueryCache:
    """
    Thread-safe cached query results with "latest key wins" semantics: a
    result that resolves after a newer key was requested is stored but not
    current.

    - Entries expire after `ttl` seconds and the least recently used ones
      are dropped past `max_entries`
    - None ("no data") is never cached
    - A caller asking for a key that is already being fetched waits for
      that fetch instead of starting another one
    """

    def __init__(
        self,
        ttl: float = UPSTREAM_CACHE_SECONDS,
        max_entries: int = UPSTREAM_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._results: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()
        self._latest: Optional[Hashable] = None
        self._in_flight: Dict[Hashable, _Pending] = {}
        self._lock = threading.Lock()

    @property
    def latest_key(self) -> Optional[Hashable]:
        return self._latest

    def _is_fresh(self, key: Hashable) -> bool:
        entry = self._results.get(key)
        if entry is None:
            return False
        return self.ttl is None or self._clock() - entry[0] < self.ttl

    def _claim(self, key: Hashable, use_cache: bool):
        """Returns (cached, value, pending, owner) under the lock."""
        with self._lock:
            self._latest = key
            if use_cache and self._is_fresh(key):
                self._results.move_to_end(key)
                return True, self._results[key][1], None, False
            pending = self._in_flight.get(key)
            if pending is not None:
                return False, None, pending, False
            pending = self._in_flight[key] = _Pending()
            return False, None, pending, True

    def begin(self, key: Hashable) -> bool:
        """Mark `key` as the one the view wants. Returns True if a fetch is needed."""
        cached, _, _, owner = self._claim(key, use_cache=True)
        return owner and not cached

    def resolve(self, key: Hashable, value: Any) -> bool:
        """Store a result. Returns False when the result was superseded."""
        with self._lock:
            pending = self._in_flight.pop(key, None)
            if value is None:
                self._results.pop(key, None)
            else:
                self._results[key] = (self._clock(), value)
                self._results.move_to_end(key)
                while len(self._results) > self.max_entries:
                    self._results.popitem(last=False)
            current = key == self._latest
        if pending is not None:
            pending.value = value
            pending.event.set()
        if not current:
            logger.info("Ignoring superseded result for %s", key)
        return current

    def fail(self, key: Hashable, error: Optional[BaseException] = None) -> None:
        with self._lock:
            pending = self._in_flight.pop(key, None)
        if pending is not None:
            pending.error = error
            pending.event.set()

    def is_fetching(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._in_flight

    def peek(self, key: Hashable) -> Any:
        """Last stored value for `key`, expired or not."""
        with self._lock:
            entry = self._results.get(key)
        return entry[1] if entry else None

    def invalidate(self, key: Hashable) -> None:
        """Drop a cached result so the next begin() refetches it."""
        with self._lock:
            self._results.pop(key, None)

    def current(self) -> Any:
        if self._latest is None:
            return None
        return self.peek(self._latest)

    def _wait(self, pending: _Pending) -> Any:
        pending.event.wait()
        if pending.error is not None:
            raise pending.error
        return pending.value

    def _run(self, key: Hashable, fetcher) -> Any:
        try:
            value = fetcher()
        except Exception as exc:
            self.fail(key, exc)
            raise
        self.resolve(key, value)
        return value

    def get_or_fetch(self, key: Hashable, fetcher) -> Any:
        """Return the cached value for `key`, calling `fetcher()` on a miss."""
        cached, value, pending, owner = self._claim(key, use_cache=True)
        if cached:
            return value
        if not owner:
            return self._wait(pending)
        return self._run(key, fetcher)

    def refetch(self, key: Hashable, fetcher) -> Any:
        """
        Re-run a query in place. The previous result stays readable through
        peek() while the request is in flight and is kept if it fails.
        """
        _, _, pending, owner = self._claim(key, use_cache=False)
        if not owner:
            return self._wait(pending)
        return self._run(key, fetcher)
