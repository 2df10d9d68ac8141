"""RedNote resource arbiter package.

Serializes access to one logged-in browser session on behalf of many
callers: requests are paced, cached, retried and served from a shared,
lazily created session.

Key modules:
    arbiter         -- ResourceArbiter, the request()/shutdown() entry point
    rate_limiter    -- AdmissionGate (interval + hourly quota), HumanPacer
    cache           -- TTLCache and cache key construction
    retry           -- RetryExecutor for bounded retried operations
    backoff         -- BackoffStrategy for exponential retry delays
    session         -- SessionManager lifecycle of the shared session
    coordinator     -- SingletonCoordinator for concurrent first use
    extraction      -- ExtractionPipeline with ordered fallback strategies
    selectors       -- site selectors and the pipelines built on them
    browser         -- PlaywrightLauncher and login detection
    base            -- BaseFetcher abstract class
    fetchers        -- search, note content and note comments fetchers
    factory         -- FetcherFactory for creating fetchers by kind
    config          -- ArbiterConfig loaded from REDNOTE_* variables
    metrics         -- MetricsCollector for runtime statistics
    models          -- request, result, note and comment dataclasses
    storage         -- StorageBase and JsonlStorage for persistence
    errors          -- ArbiterError hierarchy
"""
