"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "referer-proxy",
    "environment": "dev",
    "proxy": {
        "referer": "http://play.yoitv.com",
        "bind_host": "0.0.0.0",
        "advertise_host": None,
        "interface_prefixes": ["en", "eth", "wl"],
        "preferred_interfaces": ["en0", "eth0", "wlan0"],
    },
    "http": {
        "timeout_seconds": 15.0,
        "read_timeout_seconds": 10.0,
        "max_request_bytes": 65536,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
}
