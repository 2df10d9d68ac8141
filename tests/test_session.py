"""Tests for the SessionManager class."""

import unittest

from arbiter.errors import NotLoggedIn, ResourceUnavailable, SessionConstructionError
from arbiter.session import SessionManager, SessionState

from fakes import FakeClock, FakeLauncher


class TestSessionLifecycle(unittest.IsolatedAsyncioTestCase):
    """Verify lazy creation, reuse and expiry of the shared session."""

    async def test_session_is_created_lazily(self):
        """Nothing is launched until the first acquire()."""
        launcher = FakeLauncher()
        manager = SessionManager(launcher, timeout=1800, clock=FakeClock())
        self.assertEqual(manager.state, SessionState.ABSENT)
        self.assertFalse(manager.is_ready())
        self.assertEqual(launcher.launches, 0)

        session = await manager.acquire()
        self.assertEqual(manager.state, SessionState.READY)
        self.assertTrue(manager.is_ready())
        self.assertEqual(session.handle.number, 1)

    async def test_acquire_reuses_and_refreshes(self):
        """A second acquire() leases the same session and refreshes last_used_at."""
        clock = FakeClock()
        launcher = FakeLauncher()
        manager = SessionManager(launcher, timeout=1800, clock=clock)
        first = await manager.acquire()
        clock.advance(600)
        second = await manager.acquire()
        self.assertIs(first, second)
        self.assertEqual(second.last_used_at, clock())
        self.assertEqual(launcher.launches, 1)

    async def test_idle_session_expires(self):
        """A session idle longer than the timeout is torn down and rebuilt."""
        clock = FakeClock()
        launcher = FakeLauncher()
        manager = SessionManager(launcher, timeout=1800, clock=clock)
        first = await manager.acquire()
        clock.advance(1801)
        self.assertFalse(manager.is_ready())
        second = await manager.acquire()
        self.assertIsNot(first, second)
        self.assertEqual(launcher.closed, [first.handle])
        self.assertEqual(manager.constructions, 2)

    async def test_dead_session_is_reconstructed(self):
        """When the liveness probe fails the next acquire() builds a new session."""
        launcher = FakeLauncher()
        manager = SessionManager(launcher, timeout=1800, clock=FakeClock())
        first = await manager.acquire()
        launcher.alive = False
        second = await manager.acquire()
        self.assertIsNot(first, second)
        self.assertEqual(launcher.launches, 2)
        self.assertEqual(launcher.closed, [first.handle])

    async def test_probe_exception_counts_as_dead(self):
        """A probe that raises is treated as a dead session."""

        class BrokenProbeLauncher(FakeLauncher):
            def is_alive(self, handle):
                raise RuntimeError("target closed")

        manager = SessionManager(BrokenProbeLauncher(), timeout=1800, clock=FakeClock())
        session = await manager.acquire()
        self.assertFalse(session.is_alive())

    async def test_invalidate_if_dead(self):
        """invalidate_if_dead() only tears down a session whose probe fails."""
        launcher = FakeLauncher()
        manager = SessionManager(launcher, timeout=1800, clock=FakeClock())
        await manager.acquire()
        self.assertFalse(await manager.invalidate_if_dead())
        launcher.alive = False
        self.assertTrue(await manager.invalidate_if_dead())
        self.assertIsNone(manager.current)
        self.assertEqual(manager.state, SessionState.ABSENT)


class TestSessionFailures(unittest.IsolatedAsyncioTestCase):
    """Verify construction and teardown failures."""

    async def test_launch_failure_becomes_construction_error(self):
        """An arbitrary launch failure surfaces as SessionConstructionError."""
        launcher = FakeLauncher(fail_times=1)
        manager = SessionManager(launcher, timeout=1800, clock=FakeClock())
        with self.assertRaises(SessionConstructionError):
            await manager.acquire()
        self.assertEqual(manager.state, SessionState.ABSENT)
        session = await manager.acquire()
        self.assertIsNotNone(session)

    async def test_not_logged_in_propagates(self):
        """A missing login is not wrapped: it is not worth retrying."""
        launcher = FakeLauncher(fail_times=1, error=NotLoggedIn("no cookies"))
        manager = SessionManager(launcher, timeout=1800, clock=FakeClock())
        with self.assertRaises(NotLoggedIn):
            await manager.acquire()

    async def test_teardown_errors_are_swallowed(self):
        """A failing close() does not prevent building the replacement session."""
        launcher = FakeLauncher(close_error=RuntimeError("already gone"))
        manager = SessionManager(launcher, timeout=1800, clock=FakeClock())
        await manager.acquire()
        launcher.alive = False
        session = await manager.acquire()
        self.assertEqual(session.handle.number, 2)


class TestSessionShutdown(unittest.IsolatedAsyncioTestCase):
    """Verify shutdown semantics."""

    async def test_shutdown_is_idempotent(self):
        """Calling shutdown() twice closes the session once."""
        launcher = FakeLauncher()
        manager = SessionManager(launcher, timeout=1800, clock=FakeClock())
        await manager.acquire()
        await manager.shutdown()
        await manager.shutdown()
        self.assertEqual(len(launcher.closed), 1)
        self.assertTrue(manager.closed)
        self.assertEqual(manager.state, SessionState.ABSENT)

    async def test_acquire_after_shutdown_raises(self):
        """No session is handed out once the manager is shut down."""
        manager = SessionManager(FakeLauncher(), timeout=1800, clock=FakeClock())
        await manager.shutdown()
        with self.assertRaises(ResourceUnavailable):
            await manager.acquire()

    async def test_shutdown_without_session(self):
        """Shutting down a manager that never launched does nothing."""
        launcher = FakeLauncher()
        manager = SessionManager(launcher, timeout=1800, clock=FakeClock())
        await manager.shutdown()
        self.assertEqual(launcher.closed, [])


if __name__ == "__main__":
    unittest.main()
