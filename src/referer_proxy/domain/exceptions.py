"""Proxy exceptions."""

from __future__ import annotations


class ProxyError(Exception):
    """Base class for all proxy-related errors."""


class MalformedRequestError(ProxyError):
    """Raised when a receiver sends a request line that cannot be parsed."""


class UpstreamTransportError(ProxyError):
    """Raised when the origin cannot be reached (DNS, connect, timeout).

    Distinct from an origin that answered with an error status, which is
    passed through to the receiver unchanged.
    """

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason
