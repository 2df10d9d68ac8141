from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .backoff import BackoffStrategy
from .base import BaseFetcher
from .browser import PlaywrightLauncher
from .cache import TTLCache
from .config import ArbiterConfig
from .coordinator import SingletonCoordinator
from .errors import (
    ArbiterError,
    ConstructionFailedElsewhere,
    RequestTimedOut,
    ResourceUnavailable,
    RetriesExhausted,
    SessionConstructionError,
)
from .factory import FetcherFactory
from .metrics import MetricsCollector
from .models import ArbiterResult, RequestEvent, RetryAttempt
from .rate_limiter import AdmissionGate, HumanPacer
from .retry import RetryExecutor
from .session import SessionLauncher, SessionManager

logger = logging.getLogger(__name__)

_MISSING = object()


class ResourceArbiter:
    """Single entry point for content requests against the shared session.

    request() runs admission, then the cache lookup, then the retried fetch
    (session lease, navigation, extraction), and stores what it fetched.
    Callers see a result (possibly empty) or one ArbiterError subclass."""

    def __init__(
        self,
        sessions: SessionManager,
        gate: AdmissionGate,
        cache: TTLCache,
        retry: RetryExecutor,
        factory: Optional[FetcherFactory] = None,
        coordinator: Optional[SingletonCoordinator] = None,
        metrics: Optional[MetricsCollector] = None,
        pacer: Optional[HumanPacer] = None,
        max_attempts: int = 3,
        request_timeout: Optional[float] = None,
    ) -> None:
        self._sessions = sessions
        self._gate = gate
        self._cache = cache
        self._retry = retry
        self._factory = factory or FetcherFactory()
        self._coordinator = coordinator or SingletonCoordinator(sessions)
        self._metrics = metrics or MetricsCollector()
        self._pacer = pacer or HumanPacer(scale=0)
        self._max_attempts = max_attempts
        self._timeout = request_timeout
        self._closed = False
        self._shutdown_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls,
        config: ArbiterConfig,
        launcher: Optional[SessionLauncher] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "ResourceArbiter":
        pacer = HumanPacer(
            scale=config.humanize_scale,
            peak_start_hour=config.peak_start_hour,
            peak_end_hour=config.peak_end_hour,
            sleep=sleep,
        )
        if launcher is None:
            launcher = PlaywrightLauncher(config, pacer=pacer)

        sessions = SessionManager(launcher, timeout=config.session_timeout_seconds, clock=clock)
        return cls(
            sessions=sessions,
            gate=AdmissionGate(
                min_interval=config.min_interval_seconds,
                max_per_hour=config.max_requests_per_hour,
                margin=config.hourly_margin_seconds,
                clock=clock,
                sleep=sleep,
            ),
            cache=TTLCache(config.cache_ttl_seconds, max_entries=config.cache_max_entries, clock=clock),
            retry=RetryExecutor(BackoffStrategy(), sleep=sleep),
            factory=FetcherFactory(pacer=pacer, navigation_timeout_ms=config.navigation_timeout_ms),
            coordinator=SingletonCoordinator(sessions, poll_interval=config.coordinator_poll_seconds, sleep=sleep),
            pacer=pacer,
            max_attempts=config.max_retry_attempts,
            request_timeout=config.request_timeout_seconds,
        )

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def cache(self) -> TTLCache:
        return self._cache

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def closed(self) -> bool:
        return self._closed

    async def request(self, kind: str, params: Optional[Dict[str, Any]] = None) -> ArbiterResult:
        """Serve one content request. Unknown kinds and bad params raise ValueError."""
        if self._closed:
            raise ResourceUnavailable("arbiter has been shut down")

        fetcher = self._factory.create_fetcher(kind)
        params = dict(params or {})
        fetcher.validate(params)
        params = fetcher.normalize(params)
        key = fetcher.cache_key(params)

        start = time.monotonic()
        try:
            if self._timeout:
                result = await asyncio.wait_for(self._serve(fetcher, key, params, start), self._timeout)
            else:
                result = await self._serve(fetcher, key, params, start)
        except asyncio.TimeoutError as exc:
            self._record(kind, start, False, False, "RequestTimedOut")
            raise RequestTimedOut(f"{key} did not complete within {self._timeout}s") from exc
        except ArbiterError as exc:
            self._record(kind, start, False, False, type(exc).__name__)
            logger.error("%s failed after %dms: %s", key, _elapsed_ms(start), exc)
            raise

        self._record(kind, start, True, result.from_cache, None)
        logger.info("%s completed in %dms", key, result.latency_ms)
        return result

    async def pace(self) -> None:
        """Humanization delay callers may insert between consecutive requests."""
        await self._pacer.smart_delay()

    async def shutdown(self) -> None:
        """Tear down the session and refuse further requests. Idempotent.

        Callers still waiting for admission fail with ResourceUnavailable."""
        if self._shutdown_task is None:
            self._closed = True
            logger.info("Shutting down resource arbiter")
            self._gate.close()
            self._shutdown_task = asyncio.ensure_future(self._sessions.shutdown())
        await asyncio.shield(self._shutdown_task)

    async def _serve(self, fetcher: BaseFetcher, key: str, params: Dict[str, Any], start: float) -> ArbiterResult:
        await self._gate.await_turn()

        cached = self._cache.get(key, _MISSING)
        if cached is not _MISSING:
            return ArbiterResult(fetcher.kind, key, cached, True, _elapsed_ms(start))

        async def attempt() -> Any:
            session = await self._coordinator.get_or_create()
            return await fetcher.run(session, params)

        try:
            data = await self._retry.run(attempt, fetcher.kind, self._max_attempts, on_failure=self._after_failure)
        except RetriesExhausted as exc:
            if isinstance(exc.last_error, (SessionConstructionError, ConstructionFailedElsewhere)):
                raise ResourceUnavailable(f"browser session unavailable: {exc.last_error}") from exc
            raise

        self._cache.set(key, data)
        return ArbiterResult(fetcher.kind, key, data, False, _elapsed_ms(start))

    async def _after_failure(self, attempt: RetryAttempt) -> None:
        await self._sessions.invalidate_if_dead()

    def _record(self, kind: str, start: float, success: bool, from_cache: bool, error_type: Optional[str]) -> None:
        self._metrics.record(
            RequestEvent(
                kind=kind,
                success=success,
                from_cache=from_cache,
                latency_ms=_elapsed_ms(start),
                error_type=error_type,
            )
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
