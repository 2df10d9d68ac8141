from __future__ import annotations

import random
from typing import Optional


class BackoffStrategy:
    """Exponential backoff with additive jitter for retry delays.

    Computes sleep duration as base * 2^attempt plus a uniform jitter in
    [0, jitter_seconds], optionally capped at max_seconds before the jitter
    is added. Attempt numbering starts at 1, so with the defaults the first
    retry waits 2-3s, the second 4-5s."""

    def __init__(
        self,
        base_seconds: float = 1.0,
        jitter_seconds: float = 1.0,
        max_seconds: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._base = base_seconds
        self._jitter = jitter_seconds
        self._max = max_seconds
        self._rng = rng or random.Random()

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Calculate the backoff sleep duration in seconds for a failed attempt."""
        exp = self._base * (2 ** max(attempt, 0))
        if self._max is not None:
            exp = min(self._max, exp)
        return exp + self._rng.uniform(0, self._jitter)
