"""LAN IPv4 discovery.

The proxied URL is handed to a receiver on another device, so
``localhost`` is useless: we need the address of the wired or wireless
adapter facing the local network.
"""

from __future__ import annotations

import ipaddress
import socket
from collections.abc import Sequence

import psutil
import structlog

log = structlog.get_logger(__name__)

# Interface name prefixes for Ethernet / Wi-Fi adapters:
# macOS "en0", Linux "eth0" / "enp3s0" / "wlan0" / "wlp2s0"
DEFAULT_INTERFACE_PREFIXES: tuple[str, ...] = ("en", "eth", "wl")
# Primary adapters, preferred when several candidates exist
DEFAULT_PREFERRED_INTERFACES: tuple[str, ...] = ("en0", "eth0", "wlan0")


def _is_loopback(address: str) -> bool:
    try:
        return ipaddress.IPv4Address(address).is_loopback
    except ValueError:
        return address.startswith("127.")


def local_ipv4_address(
    *,
    prefixes: Sequence[str] = DEFAULT_INTERFACE_PREFIXES,
    preferred: Sequence[str] = DEFAULT_PREFERRED_INTERFACES,
) -> str | None:
    """Return this host's LAN-facing IPv4 address, or ``None``.

    Considers only IPv4 addresses on interfaces whose name starts with
    one of *prefixes*, skipping loopback.  A *preferred* interface wins
    when present; otherwise the first candidate found is returned.
    """
    try:
        interfaces = psutil.net_if_addrs()
    except OSError as exc:
        log.warning("interface_enumeration_failed", error=str(exc))
        return None

    candidates: dict[str, str] = {}
    for name, addrs in interfaces.items():
        if not name.startswith(tuple(prefixes)):
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.address:
                continue
            if _is_loopback(addr.address):
                continue
            candidates.setdefault(name, addr.address)
            break

    if not candidates:
        log.debug("no_lan_address_found", interfaces=sorted(interfaces))
        return None

    for name in preferred:
        if name in candidates:
            return candidates[name]

    first_name = next(iter(candidates))
    return candidates[first_name]
