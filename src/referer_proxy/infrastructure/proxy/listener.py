"""Local reverse proxy that injects a ``Referer`` header for LAN receivers.

Receivers on another device (casting targets, set-top players) cannot be
told to send custom headers.  They fetch from this proxy instead, and
the proxy adds the header the origin requires before forwarding.

Usage::

    proxy = RefererProxy(ProxyConfig(referer="http://play.example.com"))
    proxy.start()                      # returns immediately
    if proxy.wait_until_ready(5.0):
        url = proxy.proxied_url(stream_url) or stream_url
    ...
    proxy.stop()

When the proxy cannot start (no network permission, no LAN address),
``proxied_url`` returns ``None`` and callers play the direct URL.
"""

from __future__ import annotations

import asyncio
import threading

import structlog

from referer_proxy.domain.entities import ListenerState, ProxyAddress, ProxyConfig
from referer_proxy.domain.ports import LocalAddressPort
from referer_proxy.infrastructure.proxy.connection import ConnectionHandler, Fetcher
from referer_proxy.infrastructure.proxy.network import local_ipv4_address
from referer_proxy.infrastructure.proxy.upstream import fetch_upstream
from referer_proxy.infrastructure.proxy.url_codec import build_proxied_url

log = structlog.get_logger(__name__)

# Grace period for in-flight connections once the listener is stopped
_SHUTDOWN_GRACE_SECONDS = 2.0
_THREAD_JOIN_TIMEOUT = 5.0


class RefererProxy:
    """Listener owning the server socket and its lifecycle.

    Binding and accepting run on a dedicated background thread with its
    own asyncio loop; every accepted connection becomes an independent
    task running a :class:`ConnectionHandler`.

    The published :class:`ProxyAddress` is written once, on the
    ``starting -> ready`` transition, and only read afterwards.

    Parameters:
        config: Referer and timeouts shared read-only by all connections.
        bind_host: Interface to listen on (all interfaces by default).
        local_address: LAN IPv4 discovery, called once when the bind succeeds.
        fetcher: Upstream fetch coroutine (replaceable in tests).
    """

    def __init__(
        self,
        config: ProxyConfig,
        *,
        bind_host: str = "0.0.0.0",
        local_address: LocalAddressPort = local_ipv4_address,
        fetcher: Fetcher = fetch_upstream,
    ) -> None:
        self._config = config
        self._bind_host = bind_host
        self._local_address = local_address
        self._fetcher = fetcher

        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._state = ListenerState.STOPPED
        self._port: int | None = None
        self._address: ProxyAddress | None = None

        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None

    # -- public surface ----------------------------------------------------

    @property
    def config(self) -> ProxyConfig:
        return self._config

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ListenerState.READY

    @property
    def port(self) -> int | None:
        """Bound port while ready, else None."""
        return self._port if self.is_ready else None

    @property
    def address(self) -> ProxyAddress | None:
        """``(lan_ip, port)`` while ready and a LAN address was found."""
        return self._address if self.is_ready else None

    @property
    def local_address(self) -> str | None:
        """LAN IPv4 of this host (published snapshot while ready)."""
        if self.is_ready:
            return self._address.host if self._address else None
        return self._local_address()

    def proxied_url(self, original: str) -> str | None:
        """Map an origin URL onto this proxy.

        Returns None when the proxy is not ready, no LAN address is
        known, or *original* cannot be encoded.  Callers fall back to the
        direct URL in that case.
        """
        address = self.address
        if address is None:
            return None
        if original.lower().startswith("https://"):
            log.debug("proxied_url_downgrades_scheme", url=original)
        return build_proxied_url(original, address.host, address.port)

    def start(self) -> None:
        """Begin listening without blocking the caller.

        No-op unless the listener is still ``stopped``: a second call
        while starting or ready does nothing, and ``failed`` /
        ``cancelled`` are terminal for this instance.
        """
        with self._lock:
            if self._state is not ListenerState.STOPPED:
                if self._state.is_terminal:
                    log.warning("proxy_start_after_shutdown", state=self._state.value)
                else:
                    log.debug("proxy_start_ignored", state=self._state.value)
                return
            self._state = ListenerState.STARTING

        self._thread = threading.Thread(
            target=self._run, name="referer-proxy", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop accepting connections and move to ``cancelled``.

        In-flight connections get a short grace period, then are abandoned.
        """
        with self._lock:
            if self._state not in (ListenerState.STARTING, ListenerState.READY):
                return
            self._state = ListenerState.CANCELLED
            loop, stop_event = self._loop, self._stop_event

        self._settled.set()
        log.info("proxy_stopping", port=self._port)

        if loop is not None and stop_event is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(stop_event.set)
            except RuntimeError:
                # loop closed between the check and the call
                log.debug("proxy_loop_already_closed")

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=_THREAD_JOIN_TIMEOUT)

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until the listener leaves ``starting``; return ``is_ready``."""
        self._settled.wait(timeout)
        return self.is_ready

    def __enter__(self) -> RefererProxy:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    # -- background thread -------------------------------------------------

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._serve())
        except Exception:
            log.exception("proxy_loop_crashed")
            with self._lock:
                if self._state is ListenerState.STARTING:
                    self._state = ListenerState.FAILED
            self._settled.set()
        finally:
            loop.close()

    async def _serve(self) -> None:
        stop_event = asyncio.Event()
        with self._lock:
            self._loop = asyncio.get_running_loop()
            self._stop_event = stop_event

        handler = ConnectionHandler(
            self._config, lambda: self._address, fetcher=self._fetcher
        )

        try:
            server = await asyncio.start_server(handler, host=self._bind_host, port=0)
        except OSError as exc:
            with self._lock:
                if self._state is ListenerState.STARTING:
                    self._state = ListenerState.FAILED
            self._settled.set()
            log.warning("proxy_bind_failed", bind_host=self._bind_host, error=str(exc))
            return

        port = server.sockets[0].getsockname()[1]
        host = self._local_address()

        with self._lock:
            cancelled = self._state is not ListenerState.STARTING
            if not cancelled:
                self._port = port
                self._address = ProxyAddress(host=host, port=port) if host else None
                self._state = ListenerState.READY
        self._settled.set()

        if cancelled:
            server.close()
            return

        if self._address is None:
            log.warning("proxy_ready_without_lan_address", port=port)
        else:
            log.info("proxy_ready", address=self._address.authority)

        await stop_event.wait()
        server.close()
        await self._drain()
        log.info("proxy_stopped", port=port)

    async def _drain(self) -> None:
        current = asyncio.current_task()
        pending = [t for t in asyncio.all_tasks() if t is not current]
        if not pending:
            return
        log.info("proxy_draining", in_flight=len(pending))
        _, still_running = await asyncio.wait(pending, timeout=_SHUTDOWN_GRACE_SECONDS)
        for task in still_running:
            task.cancel()
        if still_running:
            log.warning("proxy_abandoned_connections", count=len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)
