"""Referer-injecting HLS reverse proxy (listener, handler, URL codec)."""

from .listener import RefererProxy
from .network import local_ipv4_address
from .url_codec import (
    build_proxied_url,
    rewrite_manifest,
    rewrite_redirect_location,
    target_url,
)

__all__ = [
    "RefererProxy",
    "build_proxied_url",
    "local_ipv4_address",
    "rewrite_manifest",
    "rewrite_redirect_location",
    "target_url",
]
