from __future__ import annotations

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import RetryAttempt


class ArbiterError(Exception):
    """Base class for every error the arbiter surfaces to its callers."""


class TransientRemoteError(ArbiterError):
    """A remote operation failed in a way that is worth retrying."""


class SessionConstructionError(TransientRemoteError):
    """Launching the browser session failed."""


class ConstructionFailedElsewhere(TransientRemoteError):
    """Another caller's session construction finished without a ready session."""


class NavigationError(TransientRemoteError):
    """Navigation, selector wait or page interaction failed."""


class ResourceUnavailable(ArbiterError):
    """The shared session cannot be provided. Not retried by this layer."""


class NotLoggedIn(ResourceUnavailable):
    """The browser session has no logged-in account."""


class RetriesExhausted(ArbiterError):
    """All attempts of a retried operation failed.

    Carries the per-attempt history and the last underlying error."""

    def __init__(
        self,
        operation_name: str,
        attempts: List["RetryAttempt"],
        last_error: Optional[BaseException],
    ) -> None:
        self.operation_name = operation_name
        self.attempts = list(attempts)
        self.last_error = last_error
        super().__init__(
            f"{operation_name} failed after {len(self.attempts)} attempts: "
            f"{type(last_error).__name__}: {last_error}"
        )


class RequestTimedOut(ResourceUnavailable):
    """The caller-level timeout elapsed before the request completed."""
