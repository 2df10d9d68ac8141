from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from playwright.async_api import Error as PlaywrightError

from .cache import make_cache_key
from .errors import NavigationError
from .rate_limiter import HumanPacer
from .session import Session


class BaseFetcher(ABC):
    """Abstract base class defining the pipeline of one request kind.

    validate() and normalize() run before admission and caching; run() is
    the retried unit of work: it borrows the session's page, navigates,
    snapshots and extracts. Driver errors leave run() as NavigationError so
    the retry layer sees one error family."""

    kind: str = ""

    def __init__(self, pacer: Optional[HumanPacer] = None, navigation_timeout_ms: int = 30_000) -> None:
        self._pacer = pacer or HumanPacer(scale=0)
        self._timeout_ms = navigation_timeout_ms

    def validate(self, params: Dict[str, Any]) -> None:
        """Raise ValueError for malformed parameters."""

    def normalize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return dict(params)

    def cache_key(self, params: Dict[str, Any]) -> str:
        return make_cache_key(self.kind, params)

    async def run(self, session: Session, params: Dict[str, Any]) -> Any:
        try:
            return await self.fetch(session.page, params)
        except PlaywrightError as exc:
            raise NavigationError(f"{self.kind}: {type(exc).__name__}: {exc}") from exc

    @abstractmethod
    async def fetch(self, page: Any, params: Dict[str, Any]) -> Any:
        ...
