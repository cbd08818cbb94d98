"""Shared test fixtures for the referer-proxy test suite."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest

from referer_proxy.domain.entities import ProxyAddress, ProxyConfig, UpstreamResult

REFERER = "http://play.example.com"
LAN_IP = "192.168.1.50"


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def proxy_config() -> ProxyConfig:
    """ProxyConfig with short timeouts so failing tests fail fast."""
    return ProxyConfig(
        referer=REFERER,
        upstream_timeout_seconds=5.0,
        request_read_timeout_seconds=2.0,
    )


@pytest.fixture()
def proxy_address() -> ProxyAddress:
    return ProxyAddress(host=LAN_IP, port=8080)


# ---------------------------------------------------------------------------
# Fake upstream
# ---------------------------------------------------------------------------


@dataclass
class FetchCall:
    url: str
    referer: str
    timeout: float


@dataclass
class FakeFetcher:
    """Stand-in for ``fetch_upstream`` keyed by target URL.

    ``routes`` maps a target URL to an ``UpstreamResult`` or an exception
    to raise; ``delays`` optionally maps a URL to seconds to sleep first.
    Unknown URLs answer 404.
    """

    routes: dict[str, UpstreamResult | Exception] = field(default_factory=dict)
    delays: dict[str, float] = field(default_factory=dict)
    calls: list[FetchCall] = field(default_factory=list)

    async def __call__(
        self, url: str, referer: str, *, timeout: float = 15.0
    ) -> UpstreamResult:
        self.calls.append(FetchCall(url=url, referer=referer, timeout=timeout))
        delay = self.delays.get(url)
        if delay:
            await asyncio.sleep(delay)
        outcome = self.routes.get(url, UpstreamResult(status_code=404, body=b"nope"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture()
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()
