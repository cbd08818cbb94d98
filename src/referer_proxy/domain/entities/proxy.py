"""Domain entities for the referer-injecting reverse proxy.

Pure value objects — no framework dependencies, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

MANIFEST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ListenerState(str, Enum):
    """Lifecycle of a proxy listener.

    ``stopped -> starting -> ready -> cancelled`` on the happy path,
    ``starting -> failed`` when the bind fails.  ``failed`` and
    ``cancelled`` are terminal for an instance.
    """

    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ListenerState.FAILED, ListenerState.CANCELLED)


@dataclass(frozen=True)
class ProxyConfig:
    """Immutable per-instance proxy settings."""

    referer: str
    upstream_timeout_seconds: float = 15.0
    request_read_timeout_seconds: float = 10.0
    max_request_bytes: int = 65536


@dataclass(frozen=True)
class ProxyAddress:
    """Snapshot of where receivers can reach the proxy."""

    host: str  # LAN IPv4, e.g. "192.168.1.50"
    port: int

    @property
    def authority(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class InboundRequest:
    """A parsed request line from a receiver."""

    method: str
    path: str
    query: str | None = None
    version: str = "HTTP/1.1"


@dataclass(frozen=True)
class UpstreamResult:
    """Origin response as seen by the connection handler."""

    status_code: int
    content_type: str | None = None
    location: str | None = None
    body: bytes = b""

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code <= 399 and bool(self.location)
