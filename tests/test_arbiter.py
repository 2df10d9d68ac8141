"""End-to-end tests for ResourceArbiter with fake sessions and fetchers."""

import asyncio
import random
import unittest

from arbiter.arbiter import ResourceArbiter
from arbiter.backoff import BackoffStrategy
from arbiter.base import BaseFetcher
from arbiter.cache import TTLCache
from arbiter.config import ArbiterConfig
from arbiter.coordinator import SingletonCoordinator
from arbiter.errors import (
    NavigationError,
    NotLoggedIn,
    RequestTimedOut,
    ResourceUnavailable,
    RetriesExhausted,
)
from arbiter.factory import FetcherFactory
from arbiter.rate_limiter import AdmissionGate
from arbiter.retry import RetryExecutor
from arbiter.session import SessionManager

from fakes import FakeClock, FakeLauncher


class EchoFetcher(BaseFetcher):
    """Returns the params it was called with; can be scripted to fail."""

    kind = "echo"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []
        self.failures = 0
        self.hang = False
        self.on_failure = None

    def validate(self, params):
        if "q" not in params:
            raise ValueError("q is required")

    async def fetch(self, page, params):
        self.calls.append(dict(params))
        if self.hang:
            await asyncio.Event().wait()
        if self.failures:
            self.failures -= 1
            if self.on_failure is not None:
                self.on_failure()
            raise NavigationError("selector timeout")
        return [params["q"]]


class EmptyFetcher(BaseFetcher):
    kind = "empty"

    async def fetch(self, page, params):
        return []


def build_arbiter(clock, launcher=None, max_per_hour=20, min_interval=10, ttl=1800, timeout=None, gate_sleep=None):
    launcher = launcher or FakeLauncher()
    sessions = SessionManager(launcher, timeout=1800, clock=clock)
    arbiter = ResourceArbiter(
        sessions=sessions,
        gate=AdmissionGate(min_interval, max_per_hour, clock=clock, sleep=gate_sleep or clock.sleep),
        cache=TTLCache(ttl, clock=clock),
        retry=RetryExecutor(BackoffStrategy(rng=random.Random(0)), sleep=clock.sleep),
        factory=FetcherFactory(registry={"echo": EchoFetcher, "empty": EmptyFetcher}),
        coordinator=SingletonCoordinator(sessions, sleep=clock.sleep),
        max_attempts=3,
        request_timeout=timeout,
    )
    return arbiter, launcher


def echo_fetcher(arbiter):
    return arbiter._factory.create_fetcher("echo")


class TestRequestFlow(unittest.IsolatedAsyncioTestCase):
    """Verify admission, caching and fetching in request()."""

    async def test_first_request_fetches(self):
        """A cache miss launches the session and fetches."""
        clock = FakeClock()
        arbiter, launcher = build_arbiter(clock)
        result = await arbiter.request("echo", {"q": "cat"})
        self.assertEqual(result.data, ["cat"])
        self.assertFalse(result.from_cache)
        self.assertEqual(result.cache_key, "echo:q=cat")
        self.assertEqual(launcher.launches, 1)

    async def test_cache_ttl_scenario(self):
        """Within the TTL a repeat is served from cache; after it, fetched again."""
        clock = FakeClock()
        arbiter, _ = build_arbiter(clock, ttl=30 * 60)
        await arbiter.request("echo", {"q": "cat"})
        clock.advance(10 * 60)
        cached = await arbiter.request("echo", {"q": "cat"})
        self.assertTrue(cached.from_cache)
        self.assertEqual(cached.data, ["cat"])
        clock.advance(21 * 60)
        fresh = await arbiter.request("echo", {"q": "cat"})
        self.assertFalse(fresh.from_cache)
        self.assertEqual(len(echo_fetcher(arbiter).calls), 2)

    async def test_cache_hits_still_pass_the_gate(self):
        """Every request, cached or not, is admitted by the gate first."""
        clock = FakeClock()
        arbiter, _ = build_arbiter(clock)
        await arbiter.request("echo", {"q": "cat"})
        await arbiter.request("echo", {"q": "cat"})
        self.assertEqual(clock.sleeps, [10])
        self.assertEqual(arbiter._gate.state.granted_total, 2)

    async def test_empty_result_is_cached(self):
        """An empty extraction is a valid, cacheable result."""
        clock = FakeClock()
        arbiter, _ = build_arbiter(clock)
        first = await arbiter.request("empty", {})
        self.assertTrue(first.is_empty)
        second = await arbiter.request("empty", {})
        self.assertTrue(second.from_cache)

    async def test_hourly_quota_scenario(self):
        """With two per hour, the third distinct request waits out the hour."""
        clock = FakeClock()
        arbiter, _ = build_arbiter(clock, max_per_hour=2, min_interval=0)
        start = clock()
        for q in ("a", "b", "c"):
            await arbiter.request("echo", {"q": q})
        self.assertGreaterEqual(arbiter._gate.state.last_request_at - start, 3600)

    async def test_unknown_kind_raises_value_error(self):
        """Unknown kinds are rejected before admission."""
        clock = FakeClock()
        arbiter, launcher = build_arbiter(clock)
        with self.assertRaises(ValueError):
            await arbiter.request("publish_note", {})
        with self.assertRaises(ValueError):
            await arbiter.request("echo", {})
        self.assertEqual(launcher.launches, 0)
        self.assertEqual(arbiter._gate.state.granted_total, 0)


class TestFailureHandling(unittest.IsolatedAsyncioTestCase):
    """Verify retries, session invalidation and error mapping."""

    async def test_transient_failures_are_retried(self):
        """Two navigation failures then success returns the result."""
        clock = FakeClock()
        arbiter, launcher = build_arbiter(clock)
        echo_fetcher(arbiter).failures = 2
        result = await arbiter.request("echo", {"q": "cat"})
        self.assertEqual(result.data, ["cat"])
        self.assertEqual(len(echo_fetcher(arbiter).calls), 3)
        self.assertEqual(launcher.launches, 1)

    async def test_retries_exhausted(self):
        """A persistently failing fetch raises RetriesExhausted and records it."""
        clock = FakeClock()
        arbiter, _ = build_arbiter(clock)
        echo_fetcher(arbiter).failures = 10
        with self.assertRaises(RetriesExhausted) as ctx:
            await arbiter.request("echo", {"q": "cat"})
        self.assertIsInstance(ctx.exception.last_error, NavigationError)
        snap = arbiter.metrics.snapshot(window_secs=60)
        self.assertEqual(snap.retries_exhausted_count, 1)
        self.assertEqual(snap.failure_count, 1)

    async def test_failed_fetch_is_not_cached(self):
        """Only successful fetches populate the cache."""
        clock = FakeClock()
        arbiter, _ = build_arbiter(clock)
        echo_fetcher(arbiter).failures = 3
        with self.assertRaises(RetriesExhausted):
            await arbiter.request("echo", {"q": "cat"})
        self.assertEqual(len(arbiter.cache), 0)

    async def test_dead_session_is_replaced_between_attempts(self):
        """A failure with a dead session triggers reconstruction on the next attempt."""
        clock = FakeClock()
        arbiter, launcher = build_arbiter(clock)
        fetcher = echo_fetcher(arbiter)
        fetcher.failures = 1
        fetcher.on_failure = lambda: setattr(launcher, "alive", False)
        result = await arbiter.request("echo", {"q": "cat"})
        self.assertEqual(result.data, ["cat"])
        self.assertEqual(launcher.launches, 2)
        self.assertEqual(len(launcher.closed), 1)

    async def test_liveness_false_triggers_reconstruction(self):
        """A dead session is rebuilt by the next request."""
        clock = FakeClock()
        arbiter, launcher = build_arbiter(clock)
        await arbiter.request("echo", {"q": "a"})
        launcher.alive = False
        await arbiter.request("echo", {"q": "b"})
        self.assertEqual(launcher.launches, 2)
        self.assertEqual(arbiter.sessions.constructions, 2)

    async def test_construction_failure_becomes_unavailable(self):
        """When every attempt fails to launch the browser, ResourceUnavailable is raised."""
        clock = FakeClock()
        arbiter, launcher = build_arbiter(clock, launcher=FakeLauncher(fail_times=10))
        with self.assertRaises(ResourceUnavailable):
            await arbiter.request("echo", {"q": "cat"})
        self.assertEqual(launcher.launches, 3)

    async def test_not_logged_in_is_not_retried(self):
        """A missing login fails the request on the first attempt."""
        clock = FakeClock()
        launcher = FakeLauncher(fail_times=10, error=NotLoggedIn("no cookies"))
        arbiter, _ = build_arbiter(clock, launcher=launcher)
        with self.assertRaises(NotLoggedIn):
            await arbiter.request("echo", {"q": "cat"})
        self.assertEqual(launcher.launches, 1)
        self.assertEqual(arbiter.metrics.snapshot(window_secs=60).unavailable_count, 1)

    async def test_request_timeout(self):
        """A hanging request is abandoned with RequestTimedOut."""
        clock = FakeClock()
        arbiter, _ = build_arbiter(clock, timeout=0.05)
        echo_fetcher(arbiter).hang = True
        with self.assertRaises(RequestTimedOut):
            await arbiter.request("echo", {"q": "cat"})
        self.assertEqual(arbiter.metrics.snapshot(window_secs=60).unavailable_count, 1)


class TestShutdown(unittest.IsolatedAsyncioTestCase):
    """Verify shutdown of the arbiter."""

    async def test_shutdown_is_idempotent(self):
        """Calling shutdown twice closes the session once."""
        clock = FakeClock()
        arbiter, launcher = build_arbiter(clock)
        await arbiter.request("echo", {"q": "cat"})
        await arbiter.shutdown()
        await arbiter.shutdown()
        self.assertTrue(arbiter.closed)
        self.assertEqual(len(launcher.closed), 1)

    async def test_request_after_shutdown_raises(self):
        """No request is served after shutdown."""
        clock = FakeClock()
        arbiter, _ = build_arbiter(clock)
        await arbiter.shutdown()
        with self.assertRaises(ResourceUnavailable):
            await arbiter.request("echo", {"q": "cat"})

    async def test_shutdown_releases_request_waiting_in_gate(self):
        """A request waiting out the interval fails promptly when the arbiter shuts down."""
        clock = FakeClock()
        arbiter, launcher = build_arbiter(clock, min_interval=3600, gate_sleep=asyncio.sleep)
        await arbiter.request("echo", {"q": "cat"})
        waiter = asyncio.ensure_future(arbiter.request("echo", {"q": "dog"}))
        await asyncio.sleep(0.01)
        self.assertFalse(waiter.done())

        await arbiter.shutdown()
        with self.assertRaises(ResourceUnavailable):
            await asyncio.wait_for(waiter, 1.0)
        self.assertEqual(launcher.launches, 1)
        self.assertEqual(arbiter.metrics.snapshot(window_secs=60).unavailable_count, 1)


class TestFromConfig(unittest.IsolatedAsyncioTestCase):
    """Verify wiring from ArbiterConfig."""

    async def test_from_config_with_fake_launcher(self):
        """from_config wires the configured limits around the given launcher."""
        clock = FakeClock()
        config = ArbiterConfig(min_interval_ms=2000, max_requests_per_hour=5, humanize_scale=0)
        arbiter = ResourceArbiter.from_config(config, launcher=FakeLauncher(), clock=clock, sleep=clock.sleep)
        self.assertFalse(arbiter.closed)
        with self.assertRaises(ValueError):
            await arbiter.request("search_notes", {"keywords": ""})
        await arbiter.shutdown()


if __name__ == "__main__":
    unittest.main()
