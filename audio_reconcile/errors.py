from __future__ import annotations

from typing import Optional


class CatalogError(Exception):
    """Base class for failures raised while talking to the remote catalog."""

    retryable = False


class TransientNetworkFailure(CatalogError):
    """DNS hiccups, timeouts, dropped connections, 5xx responses."""

    retryable = True


class RateLimited(CatalogError):
    """The catalog asked us to slow down (HTTP 429 / 503 with a hint)."""

    retryable = True

    def __init__(self, message: str = "rate limited", retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class MalformedResponse(CatalogError):
    """A response (or a single item inside it) does not have the expected shape."""


class NoCandidatesFound(CatalogError):
    """The catalog answered but had nothing for the query."""


class CatalogUnavailable(CatalogError):
    """The catalog cannot be reached at all; abort the current entity."""
