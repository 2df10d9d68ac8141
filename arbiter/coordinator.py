from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Protocol, TypeVar

from .errors import ConstructionFailedElsewhere

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InstanceProvider(Protocol[T]):
    def is_ready(self) -> bool:
        ...

    async def acquire(self) -> T:
        ...


class SingletonCoordinator(Generic[T]):
    """Makes concurrently arriving callers share one construction.

    A plain in-flight flag plus a short poll loop: callers arriving while a
    construction runs sleep ``poll_interval`` seconds at a time until the
    flag clears. This relies on asyncio's cooperative scheduling; the flag
    is never touched from another thread. A waiter that finds no ready
    instance after the flag clears raises ConstructionFailedElsewhere and
    leaves the next try to its own retry policy."""

    def __init__(
        self,
        provider: InstanceProvider[T],
        poll_interval: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._constructing = False
        self.constructions = 0

    @property
    def constructing(self) -> bool:
        return self._constructing

    async def get_or_create(self) -> T:
        if self._provider.is_ready():
            return await self._provider.acquire()

        if self._constructing:
            logger.info("Waiting for existing initialization to complete")
            while self._constructing:
                await self._sleep(self._poll_interval)
            if self._provider.is_ready():
                return await self._provider.acquire()
            raise ConstructionFailedElsewhere("concurrent session construction did not produce a session")

        self._constructing = True
        try:
            logger.info("Creating shared browser session")
            instance = await self._provider.acquire()
            self.constructions += 1
            return instance
        finally:
            self._constructing = False
