from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from .errors import ResourceUnavailable, SessionConstructionError

logger = logging.getLogger(__name__)


class SessionState(Enum):
    ABSENT = "absent"
    CREATING = "creating"
    READY = "ready"
    EXPIRED = "expired"
    INVALID = "invalid"


class SessionLauncher(Protocol):
    """Builds, probes and closes the expensive remote resource."""

    async def launch(self) -> Any:
        ...

    async def close(self, handle: Any) -> None:
        ...

    def is_alive(self, handle: Any) -> bool:
        ...


@dataclass
class Session:
    handle: Any
    created_at: float
    last_used_at: float
    probe: Callable[[Any], bool] = field(repr=False, default=lambda handle: True)

    def is_alive(self) -> bool:
        try:
            return bool(self.probe(self.handle))
        except Exception:  # noqa: BLE001
            return False

    @property
    def page(self) -> Any:
        return getattr(self.handle, "page", self.handle)


class SessionManager:
    """Owns the single shared browser session.

    The session is created lazily on first acquire(), leased on every later
    acquire() (refreshing last_used_at), and torn down when it has been idle
    longer than ``timeout`` seconds or its liveness probe fails. Staleness is
    only evaluated on acquisition; there is no background sweep. Concurrent
    construction is prevented upstream by SingletonCoordinator."""

    def __init__(
        self,
        launcher: SessionLauncher,
        timeout: float = 30 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._launcher = launcher
        self._timeout = timeout
        self._clock = clock
        self._session: Optional[Session] = None
        self._state = SessionState.ABSENT
        self._closed = False
        self.constructions = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current(self) -> Optional[Session]:
        return self._session

    @property
    def closed(self) -> bool:
        return self._closed

    def is_ready(self) -> bool:
        """True when acquire() would lease an existing session without suspending."""
        return (
            not self._closed
            and self._session is not None
            and self._state is SessionState.READY
            and self._stale_state(self._session) is None
        )

    async def acquire(self) -> Session:
        """Return the live session, creating it first if needed."""
        if self._closed:
            raise ResourceUnavailable("session manager has been shut down")

        if self._session is not None:
            stale = self._stale_state(self._session)
            if stale is None:
                self._session.last_used_at = self._clock()
                logger.info("Reusing existing browser session")
                return self._session
            self._state = stale
            await self._teardown(f"session {stale.value}")

        return await self._create()

    async def invalidate(self, reason: str = "invalidated") -> None:
        """Drop the current session; the next acquire() builds a new one."""
        if self._session is None:
            return
        self._state = SessionState.INVALID
        await self._teardown(reason)

    async def invalidate_if_dead(self) -> bool:
        """Tear the session down if its liveness probe fails. Returns True if it did."""
        if self._session is not None and not self._session.is_alive():
            await self.invalidate("liveness probe failed")
            return True
        return False

    async def shutdown(self) -> None:
        """Tear down any held session regardless of its age. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        if self._session is not None:
            await self._teardown("shutdown")
        self._state = SessionState.ABSENT

    def _stale_state(self, session: Session) -> Optional[SessionState]:
        idle = self._clock() - session.last_used_at
        if idle > self._timeout:
            logger.info("Browser session expired after %.0fs idle", idle)
            return SessionState.EXPIRED
        if not session.is_alive():
            logger.info("Browser session is no longer connected")
            return SessionState.INVALID
        return None

    async def _create(self) -> Session:
        self._state = SessionState.CREATING
        logger.info("Launching new browser session")
        try:
            handle = await self._launcher.launch()
        except ResourceUnavailable:
            self._state = SessionState.ABSENT
            raise
        except Exception as exc:  # noqa: BLE001
            self._state = SessionState.ABSENT
            raise SessionConstructionError(f"failed to launch browser session: {exc}") from exc

        if self._closed:
            # shutdown arrived while the launch was in flight
            await self._close_handle(handle)
            self._state = SessionState.ABSENT
            raise ResourceUnavailable("session manager has been shut down")

        now = self._clock()
        self._session = Session(
            handle=handle,
            created_at=now,
            last_used_at=now,
            probe=self._launcher.is_alive,
        )
        self._state = SessionState.READY
        self.constructions += 1
        logger.info("Browser session ready (construction #%d)", self.constructions)
        return self._session

    async def _teardown(self, reason: str) -> None:
        session, self._session = self._session, None
        if session is not None:
            logger.info("Tearing down browser session (%s)", reason)
            await self._close_handle(session.handle)
        self._state = SessionState.ABSENT

    async def _close_handle(self, handle: Any) -> None:
        try:
            await self._launcher.close(handle)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error closing browser session: %s: %s", type(exc).__name__, exc)
