"""Stream URL construction and proxy fallback for playback callers."""

from __future__ import annotations

from typing import Protocol
from urllib.parse import quote

import structlog

log = structlog.get_logger(__name__)


class _ProxiedUrlSource(Protocol):
    def proxied_url(self, original: str) -> str | None: ...


def _token_param(token: str) -> str:
    # Tokens may carry '+', '/' or '=' which must survive the query string
    return quote(token, safe="")


def live_url(host: str, playpath: str, token: str) -> str:
    """Live HLS URL (uppercase ``.M3U8`` extension).

    >>> live_url("http://live.example.com:9083", "/query/s/abc", "t0k")
    'http://live.example.com:9083/query/s/abc.M3U8?type=live&__cross_domain_user=t0k'
    """
    return f"{host}{playpath}.M3U8?type=live&__cross_domain_user={_token_param(token)}"


def vod_url(host: str, vod_path: str, token: str) -> str:
    """Catch-up/VOD HLS URL (lowercase ``.m3u8`` extension)."""
    return f"{host}{vod_path}.m3u8?type=vod&__cross_domain_user={_token_param(token)}"


def playback_url(proxy: _ProxiedUrlSource | None, url: str) -> str:
    """Return the proxied form of *url*, or *url* itself when proxying is unavailable.

    Local players can send the referer themselves, so the direct URL
    still plays there; only external receivers lose out.
    """
    if proxy is None:
        return url
    proxied = proxy.proxied_url(url)
    if proxied is None:
        log.info("proxy_unavailable_using_direct_url", url=url)
        return url
    return proxied
