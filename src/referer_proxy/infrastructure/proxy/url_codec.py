"""URL mapping between origin URLs and proxied URLs.

A proxied URL embeds the origin authority as its first path segment::

    http://{proxy_host}:{proxy_port}/{origin_host}:{origin_port}{path}?{query}

Relative URLs inside a proxied manifest (``segments/001.ts``) therefore
resolve back through the proxy without any rewriting.  Absolute URLs
inside manifests and in redirect ``Location`` headers are rewritten by
the helpers below.

Everything here is pure: no I/O, no state.
"""

from __future__ import annotations

from enum import Enum, auto
from urllib.parse import SplitResult, urlsplit

_DEFAULT_PORTS = {"https": 443}
_DEFAULT_PORT = 80

_URL_PREFIXES = ("http://", "https://")
# Characters that terminate an absolute URL embedded in a manifest line
_URL_DELIMITERS = frozenset(" \t\r\f\v\"'>")


def _split(url: str) -> SplitResult | None:
    """Parse *url*, rejecting values no HTTP client would accept."""
    if not url or any(ch.isspace() for ch in url):
        return None
    try:
        parts = urlsplit(url)
        # .port raises ValueError for non-numeric / out-of-range ports
        parts.port
    except ValueError:
        return None
    return parts


def _host(parts: SplitResult) -> str:
    # .hostname lowercases; the authority must come back exactly as written
    hostinfo = parts.netloc.rpartition("@")[2]
    if hostinfo.startswith("["):
        return hostinfo[1:].partition("]")[0]
    return hostinfo.partition(":")[0]


def _format_host(host: str) -> str:
    # IPv6 literals need their brackets back once embedded in a path
    return f"[{host}]" if ":" in host else host


def build_proxied_url(original: str, proxy_host: str, proxy_port: int) -> str | None:
    """Wrap an origin URL so it is fetched through the proxy.

    Path and query are copied verbatim (never re-encoded).  Returns
    ``None`` if *original* has no scheme or no host.

    >>> build_proxied_url("http://cdn.example.com/seg.ts?t=1", "10.0.0.1", 5000)
    'http://10.0.0.1:5000/cdn.example.com:80/seg.ts?t=1'
    """
    parts = _split(original)
    if parts is None or not parts.scheme or not parts.hostname:
        return None

    scheme = parts.scheme.lower()
    port = parts.port if parts.port is not None else _DEFAULT_PORTS.get(scheme, _DEFAULT_PORT)
    host = _format_host(_host(parts))

    url = f"http://{proxy_host}:{proxy_port}/{host}:{port}{parts.path}"
    if parts.query:
        url = f"{url}?{parts.query}"
    return url


def target_url(path: str, query: str | None = None) -> str | None:
    """Recover the origin URL from an inbound proxy request path.

    ``/host:port/rest/of/path`` + ``query`` becomes
    ``http://host:port/rest/of/path?query``.  The origin is always
    contacted over plain HTTP.  Returns ``None`` when the path carries
    no authority segment.
    """
    stripped = path[1:] if path.startswith("/") else path
    if not stripped:
        return None

    url = f"http://{stripped}"
    if query:
        url = f"{url}?{query}"

    parts = _split(url)
    if parts is None or not parts.hostname:
        return None
    return url


def split_request_target(raw: str) -> tuple[str, str | None]:
    """Split a request-line target into ``(path, query)`` at the first ``?``."""
    path, sep, query = raw.partition("?")
    return path, (query if sep else None)


class _Scan(Enum):
    LITERAL = auto()
    URL = auto()


def _next_url_start(line: str, pos: int) -> tuple[int, int]:
    """Return ``(index, prefix_length)`` of the earliest URL prefix, or ``(-1, 0)``."""
    best, best_len = -1, 0
    for prefix in _URL_PREFIXES:
        idx = line.find(prefix, pos)
        if idx != -1 and (best == -1 or idx < best):
            best, best_len = idx, len(prefix)
    return best, best_len


def _rewrite_line(line: str, proxy_host: str, proxy_port: int) -> str:
    if "http://" not in line and "https://" not in line:
        return line

    out: list[str] = []
    state = _Scan.LITERAL
    pos = 0
    prefix_len = 0
    while pos < len(line):
        if state is _Scan.LITERAL:
            start, prefix_len = _next_url_start(line, pos)
            if start == -1:
                out.append(line[pos:])
                break
            out.append(line[pos:start])
            pos = start
            state = _Scan.URL
        else:
            end = pos + prefix_len
            while end < len(line) and line[end] not in _URL_DELIMITERS:
                end += 1
            candidate = line[pos:end]
            out.append(build_proxied_url(candidate, proxy_host, proxy_port) or candidate)
            pos = end
            state = _Scan.LITERAL
    return "".join(out)


def rewrite_manifest(body: str, proxy_host: str, proxy_port: int) -> str:
    """Route every absolute ``http(s)://`` URL in an HLS manifest through the proxy.

    Works line by line, so URIs inside tags (``#EXT-X-KEY:URI="..."``)
    are rewritten as well as plain URI lines.  Relative URLs are left
    as-is because they resolve against the proxied manifest URL.
    Trailing-newline presence is preserved.
    """
    return "\n".join(
        _rewrite_line(line, proxy_host, proxy_port) for line in body.split("\n")
    )


def rewrite_redirect_location(
    location: str, proxy_host: str, proxy_port: int
) -> str | None:
    """Rewrite a redirect ``Location`` value, or ``None`` if it is not an absolute URL."""
    return build_proxied_url(location.strip(), proxy_host, proxy_port)
