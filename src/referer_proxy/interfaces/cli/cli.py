from __future__ import annotations

import argparse
import signal
import sys
import threading
from collections.abc import Iterable
from functools import partial
from pathlib import Path
from typing import Any

import structlog

from referer_proxy.application.stream_urls import playback_url
from referer_proxy.infrastructure.config import AppConfig, load_config
from referer_proxy.infrastructure.logging.setup import configure_logging
from referer_proxy.infrastructure.proxy import RefererProxy, local_ipv4_address

log = structlog.get_logger(__name__)

_READY_TIMEOUT_SECONDS = 5.0


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="referer-proxy",
        description="Serve HLS streams to LAN receivers with a Referer header injected.",
    )

    parser.add_argument(
        "urls",
        nargs="*",
        metavar="URL",
        help="Origin stream URLs to print proxied equivalents for.",
    )

    # Proxy options
    parser.add_argument(
        "--referer",
        default=None,
        help="Referer header value injected upstream.",
    )
    parser.add_argument(
        "--bind-host",
        default=None,
        help="Interface to listen on (default 0.0.0.0).",
    )
    parser.add_argument(
        "--advertise-host",
        default=None,
        help="LAN address to put in proxied URLs (skips interface discovery).",
    )

    # Config wiring flags (no business logic)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file.",
    )
    parser.add_argument(
        "--dotenv",
        default=None,
        help="Path to .env file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )

    return parser.parse_args(argv)


def build_proxy(config: AppConfig) -> RefererProxy:
    """Wire a RefererProxy from validated application config."""
    if config.advertise_host:
        advertise_host = config.advertise_host

        def local_address() -> str | None:
            return advertise_host

    else:
        local_address = partial(
            local_ipv4_address,
            prefixes=tuple(config.interface_prefixes),
            preferred=tuple(config.preferred_interfaces),
        )

    return RefererProxy(
        config.to_proxy_config(),
        bind_host=config.bind_host,
        local_address=local_address,
    )


def start(argv: Iterable[str] | None = None) -> int:
    """
    Process entrypoint.

    Loads config exactly once, starts the proxy, prints proxied URLs and
    serves until SIGINT/SIGTERM.
    """
    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)

    config_path = Path(args.config) if args.config else None
    dotenv_path = Path(args.dotenv) if args.dotenv else None

    cli_overrides: dict[str, Any] = {}
    if args.referer:
        cli_overrides["referer"] = args.referer
    if args.bind_host:
        cli_overrides["bind_host"] = args.bind_host
    if args.advertise_host:
        cli_overrides["advertise_host"] = args.advertise_host
    if args.log_level:
        cli_overrides["log_level"] = args.log_level
    if args.log_format:
        cli_overrides["log_format"] = args.log_format

    config = load_config(
        config_path=config_path,
        dotenv_path=dotenv_path,
        cli_overrides=cli_overrides,
    )

    configure_logging(config)
    log.debug("config_loaded", config=config.to_sectioned_dict())

    proxy = build_proxy(config)
    proxy.start()
    if not proxy.wait_until_ready(_READY_TIMEOUT_SECONDS):
        log.error("proxy_not_ready", state=proxy.state.value)
        proxy.stop()
        return 1

    for url in args.urls:
        print(playback_url(proxy, url), flush=True)

    stop_requested = threading.Event()

    def _request_stop(signum: int, _frame: Any) -> None:
        log.info("shutdown_signal", signal=signal.Signals(signum).name)
        stop_requested.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    log.info("proxy_serving", port=proxy.port, local_address=proxy.local_address)
    stop_requested.wait()
    proxy.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(start())
