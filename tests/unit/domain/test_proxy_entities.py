"""Tests for proxy domain value objects."""

from __future__ import annotations

import dataclasses

import pytest

from referer_proxy.domain.entities import (
    ListenerState,
    ProxyAddress,
    ProxyConfig,
    UpstreamResult,
)
from referer_proxy.domain.exceptions import ProxyError, UpstreamTransportError


class TestListenerState:
    @pytest.mark.parametrize("state", [ListenerState.FAILED, ListenerState.CANCELLED])
    def test_terminal_states(self, state: ListenerState) -> None:
        assert state.is_terminal is True

    @pytest.mark.parametrize(
        "state",
        [ListenerState.STOPPED, ListenerState.STARTING, ListenerState.READY],
    )
    def test_non_terminal_states(self, state: ListenerState) -> None:
        assert state.is_terminal is False

    def test_values_are_strings(self) -> None:
        assert ListenerState.READY.value == "ready"


class TestProxyConfig:
    def test_is_immutable(self) -> None:
        config = ProxyConfig(referer="http://play.example.com")
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.referer = "http://other.example.com"  # type: ignore[misc]

    def test_defaults(self) -> None:
        config = ProxyConfig(referer="http://play.example.com")
        assert config.max_request_bytes == 65536
        assert config.upstream_timeout_seconds > 0


class TestProxyAddress:
    def test_authority(self) -> None:
        assert ProxyAddress(host="192.168.1.50", port=9234).authority == "192.168.1.50:9234"


class TestUpstreamResult:
    @pytest.mark.parametrize("status", [301, 302, 303, 307, 308])
    def test_redirect_with_location(self, status: int) -> None:
        assert UpstreamResult(status_code=status, location="http://x/y").is_redirect

    def test_redirect_status_without_location_is_not_redirect(self) -> None:
        assert UpstreamResult(status_code=302).is_redirect is False

    def test_ok_with_location_is_not_redirect(self) -> None:
        assert UpstreamResult(status_code=200, location="http://x/y").is_redirect is False


class TestExceptions:
    def test_transport_error_carries_url_and_reason(self) -> None:
        err = UpstreamTransportError("http://h:80/a.ts", "timed out")
        assert isinstance(err, ProxyError)
        assert err.url == "http://h:80/a.ts"
        assert err.reason == "timed out"
        assert "timed out" in str(err)
