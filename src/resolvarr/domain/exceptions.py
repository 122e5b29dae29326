"""Domain exceptions for link resolution."""

from __future__ import annotations


class ResolvarrError(Exception):
    """Base class for all resolution errors."""


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class TransportError(ResolvarrError):
    """A single logical HTTP request could not be completed."""

    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class NetworkError(TransportError):
    """Connection failed, was reset, or redirected too often."""


class RequestTimeout(TransportError):
    """The request exceeded its timeout."""


class ResponseTooLarge(TransportError):
    """The response body grew beyond the configured byte cap."""

    def __init__(self, message: str, *, url: str = "", limit: int = 0) -> None:
        super().__init__(message, url=url)
        self.limit = limit


class RequestCancelled(TransportError):
    """The caller's cancellation signal fired before or during the request."""


# ---------------------------------------------------------------------------
# Challenge bypass
# ---------------------------------------------------------------------------


class ChallengeUnresolved(ResolvarrError):
    """Every bypass strategy was exhausted and the page is still challenged."""


class SolverUnavailable(ResolvarrError):
    """The challenge solver is disabled, overloaded, or its circuit is open."""

    def __init__(self, reason: str = "unavailable", *, retry_after: int = 30) -> None:
        super().__init__(f"challenge solver unavailable: {reason}")
        self.reason = reason
        self.retry_after = retry_after


class LockContention(ResolvarrError):
    """Another process currently holds the challenge lock for a domain."""

    def __init__(self, domain: str) -> None:
        super().__init__(f"challenge lock held for {domain}")
        self.domain = domain


# ---------------------------------------------------------------------------
# Extraction / validation
# ---------------------------------------------------------------------------


class ExtractionNotFound(ResolvarrError):
    """No candidate download link could be discovered on a page."""


class ValidationFailed(ResolvarrError):
    """A candidate URL does not serve partial content."""
