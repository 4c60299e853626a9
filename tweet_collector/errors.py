"""Collection error hierarchy.

Transient classes (RateLimitError, TransportError, ResourceError) are handled
by the orchestrator with backoff or graceful degradation. AuthExpiredError is
fatal to the rendered-page session that raised it.
"""

from __future__ import annotations

from .constants import DEAD_PAGE_MARKERS


class CollectorError(Exception):
    """Base error for collection operations."""


class ConfigError(CollectorError):
    """Settings are missing or invalid."""


class AuthExpiredError(CollectorError):
    """Credentials were rejected or the session was redirected to login."""


class CredentialsMissingError(AuthExpiredError):
    """No cookies were supplied for the rendered-page session."""


class RateLimitError(CollectorError):
    """Remote source signalled throttling (429)."""

    def __init__(self, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        msg = "Rate limited by remote source"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(msg)


class TransportError(CollectorError):
    """Network failure or non-success HTTP status."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(message)


class RemoteError(CollectorError):
    """A nominally successful response carried an error envelope or bad shape."""


class NotFoundError(CollectorError):
    """Target account could not be resolved to a user id."""


class ValidationError(CollectorError):
    """A raw record is missing its id or has no usable timestamp."""


class ResourceError(CollectorError):
    """Browser page or context became unusable (detached, closed, crashed)."""


class StateTransitionError(CollectorError):
    """Orchestrator was asked to move along an edge the state machine lacks."""


def is_dead_page_error(error: BaseException) -> bool:
    """True when ``error`` means the browser page can no longer be driven."""
    if isinstance(error, ResourceError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in DEAD_PAGE_MARKERS)
