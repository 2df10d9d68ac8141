from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple, Type, TypeVar

from .backoff import BackoffStrategy
from .errors import RetriesExhausted, TransientRemoteError
from .models import RetryAttempt

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExecutor:
    """Runs a fallible coroutine factory with bounded exponential backoff.

    Only exceptions matching ``retry_on`` are retried; anything else
    propagates on first occurrence. When every attempt fails the last error
    is wrapped in RetriesExhausted."""

    def __init__(
        self,
        backoff: Optional[BackoffStrategy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retry_on: Tuple[Type[BaseException], ...] = (TransientRemoteError,),
    ) -> None:
        self._backoff = backoff or BackoffStrategy()
        self._sleep = sleep
        self._retry_on = retry_on

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        max_attempts: int = 3,
        on_failure: Optional[Callable[[RetryAttempt], Awaitable[None]]] = None,
    ) -> T:
        """Call operation until it succeeds or max_attempts is reached."""
        max_attempts = max(1, max_attempts)
        attempts: List[RetryAttempt] = []
        for attempt in range(1, max_attempts + 1):
            try:
                return await operation()
            except self._retry_on as exc:
                record = RetryAttempt(operation_name=name, attempt_number=attempt, error=exc)
                attempts.append(record)
                logger.error(
                    "%s attempt %d/%d failed: %s: %s",
                    name, attempt, max_attempts, type(exc).__name__, exc,
                )
                if on_failure is not None:
                    await on_failure(record)
                if attempt == max_attempts:
                    logger.error("%s failed after %d attempts", name, max_attempts)
                    raise RetriesExhausted(name, attempts, exc) from exc

                delay = self._backoff.get_sleep(attempt, type(exc).__name__)
                logger.warning("%s failed, retrying in %ds...", name, int(delay + 0.999))
                await self._sleep(delay)

        raise RetriesExhausted(name, attempts, None)  # pragma: no cover
