from __future__ import annotations

import time
from collections import deque
from dataclasses import asdict
from threading import Lock
from typing import Deque, Dict, Iterable, List, Set

from .errors import ResourceUnavailable
from .models import MetricsSnapshot, RequestEvent


class MetricsCollector:
    """Thread-safe collector for per-request arbiter metrics.

    Records one RequestEvent per request() call and produces aggregated
    MetricsSnapshot objects over configurable sliding time windows."""

    def __init__(self, maxlen: int = 10000) -> None:
        self._lock = Lock()
        self._events: Deque[tuple[float, RequestEvent]] = deque(maxlen=maxlen)

    def record(self, event: RequestEvent) -> None:
        """Record a request event with the current timestamp."""
        with self._lock:
            self._events.append((time.time(), event))

    def snapshot(self, window_secs: int) -> MetricsSnapshot:
        """Return aggregated metrics for events within the last window_secs seconds."""
        now = time.time()
        cutoff = now - window_secs
        with self._lock:
            events: List[RequestEvent] = [e for ts, e in self._events if ts >= cutoff]
        total = len(events)
        success_count = sum(1 for e in events if e.success)
        cache_hits = sum(1 for e in events if e.from_cache)
        retries_exhausted = sum(1 for e in events if e.error_type == "RetriesExhausted")
        unavailable_types = _subclass_names(ResourceUnavailable)
        unavailable = sum(1 for e in events if e.error_type in unavailable_types)
        fetched = [e for e in events if not e.from_cache]
        avg_latency_ms = (sum(e.latency_ms for e in fetched) / len(fetched)) if fetched else 0.0

        return MetricsSnapshot(
            window_secs=window_secs,
            total_requests=total,
            success_count=success_count,
            cache_hits=cache_hits,
            failure_count=total - success_count,
            retries_exhausted_count=retries_exhausted,
            unavailable_count=unavailable,
            avg_latency_ms=avg_latency_ms,
            timestamp=now,
        )

    def export_json(self) -> List[Dict]:
        """Export all recorded events as a list of dictionaries."""
        with self._lock:
            return [{"timestamp": ts, **asdict(e)} for ts, e in self._events]

    def export_csv_rows(self) -> Iterable[Dict]:
        """Yield recorded events as flat dictionaries suitable for CSV export."""
        with self._lock:
            rows = [{"timestamp": ts, **asdict(e)} for ts, e in self._events]
        yield from rows


def _subclass_names(cls: type) -> Set[str]:
    names = {cls.__name__}
    for sub in cls.__subclasses__():
        names |= _subclass_names(sub)
    return names
