"""Origin fetches with the referer header injected.

Redirects are never followed here: the connection handler has to see
the ``Location`` header so it can route the next hop through the proxy
as well.
"""

from __future__ import annotations

import httpx
import structlog

from referer_proxy.domain.entities import UpstreamResult
from referer_proxy.domain.exceptions import UpstreamTransportError

log = structlog.get_logger(__name__)


async def fetch_upstream(
    url: str,
    referer: str,
    *,
    timeout: float = 15.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> UpstreamResult:
    """GET *url* once with ``Referer: {referer}``.

    Each call opens its own client, so no connection is shared between
    receiver connections.  Redirect responses come back with their
    ``Location`` and an empty body.

    Raises ``UpstreamTransportError`` on DNS, connect, timeout or
    protocol failures.  HTTP error statuses are *not* raised.
    """
    async with httpx.AsyncClient(
        follow_redirects=False,
        timeout=timeout,
        transport=transport,
    ) as client:
        try:
            resp = await client.get(url, headers={"Referer": referer})
        except httpx.HTTPError as exc:
            log.warning(
                "upstream_fetch_failed",
                url=url,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise UpstreamTransportError(url, str(exc) or type(exc).__name__) from exc

    location = resp.headers.get("location")
    is_redirect = 300 <= resp.status_code <= 399 and bool(location)

    log.debug(
        "upstream_fetched",
        url=url,
        status_code=resp.status_code,
        content_type=resp.headers.get("content-type"),
        redirect=is_redirect,
    )

    return UpstreamResult(
        status_code=resp.status_code,
        content_type=resp.headers.get("content-type"),
        location=location,
        body=b"" if is_redirect else resp.content,
    )
