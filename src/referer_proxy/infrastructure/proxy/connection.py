"""Per-connection request handling.

One accepted TCP connection carries exactly one request: read the
request head, decode the origin target from the path, fetch it with the
referer injected, rewrite manifests and redirects so the receiver stays
on the proxy, write one response, close.  Failures never leave the
connection they happened on.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from http import HTTPStatus
from urllib.parse import urlsplit

import structlog

from referer_proxy.domain.entities import (
    DEFAULT_CONTENT_TYPE,
    MANIFEST_CONTENT_TYPE,
    InboundRequest,
    ProxyAddress,
    ProxyConfig,
    UpstreamResult,
)
from referer_proxy.domain.exceptions import (
    MalformedRequestError,
    UpstreamTransportError,
)
from referer_proxy.infrastructure.proxy.upstream import fetch_upstream
from referer_proxy.infrastructure.proxy.url_codec import (
    rewrite_manifest,
    rewrite_redirect_location,
    split_request_target,
    target_url,
)

log = structlog.get_logger(__name__)

Fetcher = Callable[..., Awaitable[UpstreamResult]]
AddressProvider = Callable[[], ProxyAddress | None]

_HEAD_TERMINATORS = (b"\r\n\r\n", b"\n\n")
_READ_CHUNK = 4096


def parse_request_head(data: bytes) -> InboundRequest:
    """Parse the request line of a raw HTTP request head.

    Raises ``MalformedRequestError`` for non-UTF-8 input or a request
    line without at least a method and a target.
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedRequestError("request is not valid UTF-8") from exc

    request_line = text.split("\n", 1)[0].rstrip("\r")
    parts = request_line.split(" ", 2)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise MalformedRequestError(f"bad request line: {request_line!r}")

    path, query = split_request_target(parts[1])
    version = parts[2] if len(parts) > 2 else "HTTP/1.0"
    return InboundRequest(method=parts[0], path=path, query=query, version=version)


def is_manifest(target: str, content_type: str | None) -> bool:
    """True if the response is an HLS playlist (by extension or content type)."""
    if urlsplit(target).path.lower().endswith(".m3u8"):
        return True
    return content_type is not None and "mpegurl" in content_type.lower()


def _reason(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"


def build_response(
    status: int,
    body: bytes = b"",
    *,
    content_type: str | None = None,
    location: str | None = None,
) -> bytes:
    """Serialize a complete HTTP/1.1 response with ``Connection: close``."""
    lines = [f"HTTP/1.1 {status} {_reason(status)}"]
    if location is not None:
        lines.append(f"Location: {location}")
    if content_type is not None:
        lines.append(f"Content-Type: {content_type}")
    lines.append(f"Content-Length: {len(body)}")
    lines.append("Connection: close")
    lines.append("Access-Control-Allow-Origin: *")
    head = "\r\n".join(lines) + "\r\n\r\n"
    return head.encode("latin-1", errors="replace") + body


def error_response(status: int, message: str) -> bytes:
    return build_response(
        status,
        message.encode("utf-8"),
        content_type="text/plain; charset=utf-8",
    )


class ConnectionHandler:
    """Async callable for ``asyncio.start_server``.

    Parameters:
        config: Referer and timeouts (read-only, shared by all connections).
        address_provider: Returns the proxy's published address snapshot,
            used to rewrite URLs back onto the proxy.
        fetcher: Upstream fetch coroutine; defaults to ``fetch_upstream``.
    """

    def __init__(
        self,
        config: ProxyConfig,
        address_provider: AddressProvider,
        *,
        fetcher: Fetcher = fetch_upstream,
    ) -> None:
        self._config = config
        self._address_provider = address_provider
        self._fetcher = fetcher

    async def __call__(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        start = time.perf_counter()
        peer = writer.get_extra_info("peername")
        status_code: int | None = None
        request: InboundRequest | None = None
        try:
            head = await self._read_head(reader)
            if not head:
                return
            try:
                if b"\n" not in head and len(head) < self._config.max_request_bytes:
                    raise MalformedRequestError("request line not terminated")
                request = parse_request_head(head)
            except MalformedRequestError as exc:
                log.info("malformed_request", peer=peer, error=str(exc))
                status_code = 400
                await self._send(writer, error_response(400, "Bad Request"))
                return

            status_code, payload = await self._respond(request)
            await self._send(writer, payload)
        except (ConnectionError, asyncio.IncompleteReadError) as exc:
            log.debug("receiver_disconnected", peer=peer, error=str(exc))
        except Exception:
            log.exception("connection_handler_error", peer=peer)
            status_code = 502
            try:
                await self._send(writer, error_response(502, "Proxy error"))
            except (ConnectionError, OSError) as exc:
                log.debug("error_response_not_sent", peer=peer, error=str(exc))
        finally:
            await self._close(writer)
            if request is not None:
                log.info(
                    "proxy_request",
                    method=request.method,
                    path=request.path,
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
                    peer=peer,
                )

    async def _read_head(self, reader: asyncio.StreamReader) -> bytes:
        """Read until the end of the request head, EOF, timeout or size cap.

        The read timeout is a single deadline for the whole head, so a
        receiver trickling bytes cannot hold the connection open.
        """
        buf = bytearray()
        limit = self._config.max_request_bytes
        try:
            async with asyncio.timeout(self._config.request_read_timeout_seconds):
                while len(buf) < limit:
                    chunk = await reader.read(_READ_CHUNK)
                    if not chunk:
                        break
                    buf.extend(chunk)
                    if any(term in buf for term in _HEAD_TERMINATORS):
                        break
        except TimeoutError:
            log.debug("request_read_timeout", received_bytes=len(buf))
        return bytes(buf[:limit])

    async def _respond(self, request: InboundRequest) -> tuple[int, bytes]:
        target = target_url(request.path, request.query)
        if target is None:
            log.info("unresolvable_target", path=request.path)
            return 400, error_response(400, "Cannot resolve target URL")

        address = self._address_provider()
        if address is None:
            return 502, error_response(502, "Proxy not ready")

        try:
            result = await self._fetcher(
                target,
                self._config.referer,
                timeout=self._config.upstream_timeout_seconds,
            )
        except UpstreamTransportError as exc:
            return 502, error_response(502, f"Bad Gateway: {exc.reason}")

        if result.is_redirect and result.location is not None:
            return result.status_code, self._redirect(
                result.status_code, result.location, address
            )
        return result.status_code, self._passthrough(target, result, address)

    def _redirect(self, status_code: int, location: str, address: ProxyAddress) -> bytes:
        rewritten = rewrite_redirect_location(location, address.host, address.port)
        if rewritten is None:
            log.warning("redirect_not_rewritten", location=location)
            rewritten = location
        return build_response(status_code, location=rewritten)

    def _passthrough(
        self, target: str, result: UpstreamResult, address: ProxyAddress
    ) -> bytes:
        if is_manifest(target, result.content_type):
            try:
                text = result.body.decode("utf-8")
            except UnicodeDecodeError:
                log.warning("manifest_not_utf8", target=target)
            else:
                body = rewrite_manifest(text, address.host, address.port).encode("utf-8")
                return build_response(
                    result.status_code, body, content_type=MANIFEST_CONTENT_TYPE
                )

        return build_response(
            result.status_code,
            result.body,
            content_type=result.content_type or DEFAULT_CONTENT_TYPE,
        )

    @staticmethod
    async def _send(writer: asyncio.StreamWriter, payload: bytes) -> None:
        writer.write(payload)
        await writer.drain()

    @staticmethod
    async def _close(writer: asyncio.StreamWriter) -> None:
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            log.debug("connection_close_failed", error=str(exc))
