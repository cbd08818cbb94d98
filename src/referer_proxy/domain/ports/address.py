"""Port for discovering the LAN address receivers use to reach the proxy."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class LocalAddressPort(Protocol):
    """Returns this host's LAN-reachable IPv4 address.

    Returns None when no non-loopback interface qualifies; callers treat
    that the same as "proxy unavailable".
    """

    def __call__(self) -> str | None: ...
