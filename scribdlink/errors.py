"""Exception types raised while resolving a document link."""

from __future__ import annotations


class ResolverError(Exception):
    """Base class for errors raised by scribdlink."""


class InvalidReferenceFormat(ResolverError, ValueError):
    """The input URL is not a recognised document URL."""


class ConfigurationError(ResolverError):
    """Required configuration (e.g. the Browserless API key) is missing."""


class UpstreamError(ResolverError):
    """The remote browser service answered with a non-success status."""

    def __init__(self, status: int, detail: str) -> None:
        self.status = status
        self.detail = detail
        super().__init__(f"Upstream API Error ({status}): {detail}")


class UpstreamTransportError(ResolverError):
    """The remote browser service could not be reached at all."""
