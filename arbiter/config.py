from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

ENV_PREFIX = "REDNOTE_"

DEFAULT_COOKIE_PATH = Path.home() / ".mcp" / "rednote" / "cookies.json"

DEFAULT_BROWSER_ARGS: Tuple[str, ...] = (
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--disable-extensions",
    "--no-first-run",
    "--password-store=basic",
    "--use-mock-keychain",
    "--window-size=1920,1080",
)


@dataclass(frozen=True)
class ArbiterConfig:
    """Static configuration, loaded once at process start.

    Durations are given in milliseconds; the ``*_seconds`` properties are
    what the components consume."""

    min_interval_ms: int = 10_000
    max_requests_per_hour: int = 20
    cache_ttl_ms: int = 30 * 60 * 1000
    session_timeout_ms: int = 30 * 60 * 1000
    max_retry_attempts: int = 3

    hourly_margin_ms: int = 1000
    coordinator_poll_ms: int = 100
    cache_max_entries: Optional[int] = None
    request_timeout_ms: Optional[int] = None
    navigation_timeout_ms: int = 30_000

    headless: bool = False
    browser_args: Tuple[str, ...] = field(default=DEFAULT_BROWSER_ARGS)
    cookie_path: Path = DEFAULT_COOKIE_PATH
    home_url: str = "https://www.xiaohongshu.com"

    humanize_scale: float = 1.0
    peak_start_hour: int = 20
    peak_end_hour: int = 23

    log_level: str = "INFO"

    @property
    def min_interval_seconds(self) -> float:
        return self.min_interval_ms / 1000.0

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_ms / 1000.0

    @property
    def session_timeout_seconds(self) -> float:
        return self.session_timeout_ms / 1000.0

    @property
    def hourly_margin_seconds(self) -> float:
        return self.hourly_margin_ms / 1000.0

    @property
    def coordinator_poll_seconds(self) -> float:
        return self.coordinator_poll_ms / 1000.0

    @property
    def request_timeout_seconds(self) -> Optional[float]:
        if self.request_timeout_ms is None:
            return None
        return self.request_timeout_ms / 1000.0

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ArbiterConfig":
        """Build a config from ``REDNOTE_*`` environment variables (and .env)."""
        load_dotenv(env_file)
        defaults = cls()
        return cls(
            min_interval_ms=_env_int("MIN_INTERVAL_MS", defaults.min_interval_ms),
            max_requests_per_hour=_env_int("MAX_REQUESTS_PER_HOUR", defaults.max_requests_per_hour),
            cache_ttl_ms=_env_int("CACHE_TTL_MS", defaults.cache_ttl_ms),
            session_timeout_ms=_env_int("SESSION_TIMEOUT_MS", defaults.session_timeout_ms),
            max_retry_attempts=_env_int("MAX_RETRY_ATTEMPTS", defaults.max_retry_attempts),
            hourly_margin_ms=_env_int("HOURLY_MARGIN_MS", defaults.hourly_margin_ms),
            coordinator_poll_ms=_env_int("COORDINATOR_POLL_MS", defaults.coordinator_poll_ms),
            cache_max_entries=_env_optional_int("CACHE_MAX_ENTRIES"),
            request_timeout_ms=_env_optional_int("REQUEST_TIMEOUT_MS"),
            navigation_timeout_ms=_env_int("NAVIGATION_TIMEOUT_MS", defaults.navigation_timeout_ms),
            headless=_env_bool("HEADLESS", defaults.headless),
            cookie_path=Path(os.getenv(ENV_PREFIX + "COOKIE_PATH", str(defaults.cookie_path))).expanduser(),
            home_url=os.getenv(ENV_PREFIX + "HOME_URL", defaults.home_url),
            humanize_scale=float(os.getenv(ENV_PREFIX + "HUMANIZE_SCALE", str(defaults.humanize_scale))),
            peak_start_hour=_env_int("PEAK_START_HOUR", defaults.peak_start_hour),
            peak_end_hour=_env_int("PEAK_END_HOUR", defaults.peak_end_hour),
            log_level=os.getenv(ENV_PREFIX + "LOG_LEVEL", defaults.log_level).upper(),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return None
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
