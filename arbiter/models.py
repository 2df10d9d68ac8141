from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, List, Optional


@dataclass(frozen=True)
class ArbiterResult:
    kind: str
    cache_key: str
    data: Any
    from_cache: bool
    latency_ms: int

    @property
    def is_empty(self) -> bool:
        """True when extraction ran but produced nothing."""
        return not self.data


@dataclass(frozen=True)
class RequestEvent:
    kind: str
    success: bool
    from_cache: bool
    latency_ms: int
    error_type: Optional[str]


@dataclass(frozen=True)
class MetricsSnapshot:
    window_secs: int
    total_requests: int
    success_count: int
    cache_hits: int
    failure_count: int
    retries_exhausted_count: int
    unavailable_count: int
    avg_latency_ms: float
    timestamp: float


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float


@dataclass
class AdmissionState:
    """Shared pacing state of the admission gate.

    ``recent`` holds granted timestamps of the rolling window in insertion
    (non-decreasing) order; ``last_request_at`` is None until the first grant."""

    last_request_at: Optional[float] = None
    recent: Deque[float] = field(default_factory=deque)
    granted_total: int = 0


@dataclass(frozen=True)
class RetryAttempt:
    operation_name: str
    attempt_number: int
    error: Optional[BaseException] = None


@dataclass
class Note:
    title: str = ""
    content: str = ""
    author: str = ""
    url: str = ""
    tags: List[str] = field(default_factory=list)
    likes: int = 0
    collects: int = 0
    comments: int = 0


@dataclass
class Comment:
    author: str = ""
    content: str = ""
    likes: int = 0
    time: str = ""
