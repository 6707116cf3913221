"""Exception hierarchy for hanko."""

from __future__ import annotations

from typing import Optional


class HankoError(Exception):
    """Base class for all hanko errors."""


class ConfigurationError(HankoError):
    """Raised when the configuration is invalid. Always raised before any network call."""


class SourceQueryError(HankoError):
    """A classified failure of a single provider query."""

    kind = "error"
    retryable = False

    def __init__(self, message: str = "", source: Optional[str] = None) -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.source = source


class NotFound(SourceQueryError):
    """The user does not exist on the platform."""

    kind = "not_found"


class NoKeys(SourceQueryError):
    """The user exists but has no usable keys."""

    kind = "no_keys"


class AuthError(SourceQueryError):
    """The credential is missing, invalid or lacks permission."""

    kind = "auth_error"


class BadResponse(SourceQueryError):
    """The platform answered with something we cannot interpret."""

    kind = "bad_response"


class Transient(SourceQueryError):
    """Connection problem, timeout or server-side error."""

    kind = "transient"
    retryable = True


class RateLimited(SourceQueryError):
    """The platform refused the request because of rate limiting."""

    kind = "rate_limited"
    retryable = True

    def __init__(
        self,
        message: str = "",
        source: Optional[str] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, source)
        self.retry_after = retry_after
