"""Tests for the upstream fetcher (referer injection, no redirect following)."""

from __future__ import annotations

import httpx
import pytest
import respx

from referer_proxy.domain.exceptions import UpstreamTransportError
from referer_proxy.infrastructure.proxy.upstream import fetch_upstream

REFERER = "http://play.example.com"


class TestFetchUpstream:
    @respx.mock
    @pytest.mark.asyncio()
    async def test_sends_referer_and_returns_body(self) -> None:
        url = "http://cdn.example.com:80/live/index.m3u8?t=1"
        route = respx.get(url).respond(
            200,
            content=b"#EXTM3U\n",
            headers={"Content-Type": "application/vnd.apple.mpegurl"},
        )

        result = await fetch_upstream(url, REFERER)

        assert result.status_code == 200
        assert result.body == b"#EXTM3U\n"
        assert result.content_type == "application/vnd.apple.mpegurl"
        assert result.location is None
        assert route.calls[0].request.headers["referer"] == REFERER

    @respx.mock
    @pytest.mark.asyncio()
    async def test_does_not_follow_redirects(self) -> None:
        url = "http://cdn.example.com:80/a.m3u8"
        respx.get(url).respond(302, headers={"Location": "http://edge.example.com/a.m3u8"})
        followed = respx.get("http://edge.example.com/a.m3u8").respond(200)

        result = await fetch_upstream(url, REFERER)

        assert result.status_code == 302
        assert result.location == "http://edge.example.com/a.m3u8"
        assert result.is_redirect is True
        assert result.body == b""
        assert not followed.called

    @respx.mock
    @pytest.mark.asyncio()
    async def test_error_status_is_returned_not_raised(self) -> None:
        url = "http://cdn.example.com:80/missing.ts"
        respx.get(url).respond(403, content=b"forbidden", headers={"Content-Type": "text/plain"})

        result = await fetch_upstream(url, REFERER)

        assert result.status_code == 403
        assert result.body == b"forbidden"
        assert result.content_type == "text/plain"

    @respx.mock
    @pytest.mark.asyncio()
    async def test_missing_content_type(self) -> None:
        url = "http://cdn.example.com:80/seg.ts"
        respx.get(url).respond(200, content=b"\x47\x00")

        result = await fetch_upstream(url, REFERER)

        assert result.content_type is None
        assert result.body == b"\x47\x00"

    @respx.mock
    @pytest.mark.asyncio()
    async def test_connect_error_raises_transport_error(self) -> None:
        url = "http://cdn.example.com:80/seg.ts"
        respx.get(url).mock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(UpstreamTransportError) as exc_info:
            await fetch_upstream(url, REFERER)

        assert exc_info.value.url == url
        assert "connection refused" in exc_info.value.reason

    @respx.mock
    @pytest.mark.asyncio()
    async def test_timeout_raises_transport_error(self) -> None:
        url = "http://cdn.example.com:80/slow.ts"
        respx.get(url).mock(side_effect=httpx.ReadTimeout("timed out"))

        with pytest.raises(UpstreamTransportError):
            await fetch_upstream(url, REFERER, timeout=0.5)
