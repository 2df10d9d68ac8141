from __future__ import annotations

from typing import Dict, Optional, Type

from .base import BaseFetcher
from .fetchers import NoteCommentsFetcher, NoteContentFetcher, SearchNotesFetcher
from .rate_limiter import HumanPacer

FETCHERS: Dict[str, Type[BaseFetcher]] = {
    SearchNotesFetcher.kind: SearchNotesFetcher,
    NoteContentFetcher.kind: NoteContentFetcher,
    NoteCommentsFetcher.kind: NoteCommentsFetcher,
}


class FetcherFactory:
    """Creates the fetcher of a request kind.

    Fetchers only hold their pipelines and pacing settings, so one instance
    per kind is created and shared by every request."""

    def __init__(
        self,
        pacer: Optional[HumanPacer] = None,
        navigation_timeout_ms: int = 30_000,
        registry: Optional[Dict[str, Type[BaseFetcher]]] = None,
    ) -> None:
        self._pacer = pacer
        self._timeout_ms = navigation_timeout_ms
        self._registry = dict(registry or FETCHERS)
        self._cache: Dict[str, BaseFetcher] = {}

    @property
    def kinds(self):
        return sorted(self._registry)

    def create_fetcher(self, kind: str) -> BaseFetcher:
        if kind in self._cache:
            return self._cache[kind]

        fetcher_cls = self._registry.get(kind)
        if fetcher_cls is None:
            raise ValueError(f"Unknown request kind: {kind}")

        fetcher = fetcher_cls(pacer=self._pacer, navigation_timeout_ms=self._timeout_ms)
        self._cache[kind] = fetcher
        return fetcher
