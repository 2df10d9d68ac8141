from __future__ import annotations

import asyncio
import logging
import random
import time
from datetime import datetime
from typing import Awaitable, Callable, Optional

from .errors import ResourceUnavailable
from .models import AdmissionState

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]

HOUR_SECONDS = 3600.0


class AdmissionGate:
    """Async admission gate enforcing a minimum interval and an hourly quota.

    Calling await_turn() suspends the current task until the next outbound
    request is allowed. It never rejects while open. The hourly check runs
    first and the interval check after it, so the two waits add up and
    neither bound is violated under bursts. Concurrent callers are granted
    one at a time. close() wakes every waiter with ResourceUnavailable."""

    def __init__(
        self,
        min_interval: float,
        max_per_hour: int,
        window: float = HOUR_SECONDS,
        margin: float = 1.0,
        clock: Clock = time.time,
        sleep: Sleep = asyncio.sleep,
        state: Optional[AdmissionState] = None,
    ) -> None:
        self._min_interval = max(0.0, min_interval)
        self._max_per_hour = max_per_hour
        self._window = window
        self._margin = margin
        self._clock = clock
        self._sleep = sleep
        self._state = state or AdmissionState()
        self._lock = asyncio.Lock()
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        """Release every waiting caller; no further turns are granted."""
        self._closed.set()

    @property
    def state(self) -> AdmissionState:
        return self._state

    def pending_in_window(self) -> int:
        """Number of grants still inside the rolling window."""
        self._prune(self._clock())
        return len(self._state.recent)

    async def await_turn(self) -> None:
        """Suspend until the next request is permitted, then record it."""
        self._raise_if_closed()
        async with self._lock:
            self._raise_if_closed()
            now = self._clock()
            self._prune(now)

            if self._max_per_hour > 0 and len(self._state.recent) >= self._max_per_hour:
                oldest = self._state.recent[0]
                wait = self._window - (now - oldest) + self._margin
                if wait > 0:
                    logger.warning(
                        "Hourly rate limit reached (%d in window). Waiting %ds",
                        len(self._state.recent),
                        int(wait + 0.999),
                    )
                    await self._wait(wait)
                now = self._clock()
                self._prune(now)

            last = self._state.last_request_at
            if last is not None and now - last < self._min_interval:
                wait = self._min_interval - (now - last)
                logger.warning("Rate limiting: waiting %.1fs before next request", wait)
                await self._wait(wait)

            granted = self._clock()
            self._state.last_request_at = granted
            self._state.recent.append(granted)
            self._state.granted_total += 1
            logger.info(
                "Request #%d, %d requests in last hour",
                self._state.granted_total,
                len(self._state.recent),
            )

    async def _wait(self, seconds: float) -> None:
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({sleeper, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, closer):
                if not task.done():
                    task.cancel()
        self._raise_if_closed()
        sleeper.result()

    def _raise_if_closed(self) -> None:
        if self._closed.is_set():
            raise ResourceUnavailable("admission gate closed")

    def _prune(self, now: float) -> None:
        recent = self._state.recent
        while recent and now - recent[0] >= self._window:
            recent.popleft()


class HumanPacer:
    """Optional humanization delays applied by fetchers between page actions.

    Not a hard gate: a scale of 0 disables every delay. During the peak
    window the baseline delay grows from 10s to 15s."""

    def __init__(
        self,
        scale: float = 1.0,
        peak_start_hour: int = 20,
        peak_end_hour: int = 23,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
        hour_fn: Optional[Callable[[], int]] = None,
    ) -> None:
        self._scale = max(0.0, scale)
        self._peak_start = peak_start_hour
        self._peak_end = peak_end_hour
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._hour_fn = hour_fn or (lambda: datetime.now().hour)

    def is_peak_hour(self, hour: int) -> bool:
        if self._peak_start <= self._peak_end:
            return self._peak_start <= hour <= self._peak_end
        # window wraps midnight
        return hour >= self._peak_start or hour <= self._peak_end

    def baseline(self, hour: Optional[int] = None) -> float:
        """Baseline delay in seconds for the given hour, jitter included."""
        if hour is None:
            hour = self._hour_fn()
        base = 15.0 if self.is_peak_hour(hour) else 10.0
        return base + self._rng.uniform(0, 5.0)

    async def smart_delay(self) -> None:
        await self._pause(self.baseline())

    async def random_delay(self, min_seconds: float, max_seconds: float) -> None:
        await self._pause(self._rng.uniform(min_seconds, max_seconds))

    async def _pause(self, seconds: float) -> None:
        if self._scale <= 0:
            return
        await self._sleep(seconds * self._scale)
