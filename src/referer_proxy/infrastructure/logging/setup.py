from __future__ import annotations

import atexit
import copy
import logging
import queue
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Optional

import structlog

from referer_proxy.infrastructure.config.schema import AppConfig

log = structlog.get_logger(__name__)

# httpx/httpcore log every request at INFO/DEBUG; one line per segment is noise
_CHATTY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "asyncio")

_QUEUE_LISTENER: Optional[QueueListener] = None


def _add_record_created_timestamp_utc(
    _: Any, __: Any, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Stamp foreign (stdlib) records with their creation time, not the time the
    background listener gets around to formatting them.

    ProcessorFormatter sets event_dict["_record"] for foreign records.
    """
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        event_dict["timestamp"] = dt.isoformat().replace("+00:00", "Z")
    return event_dict


def _renderer(config: AppConfig) -> structlog.typing.Processor:
    if config.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def build_formatter(config: AppConfig) -> structlog.stdlib.ProcessorFormatter:
    """ProcessorFormatter rendering both structlog and stdlib records."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            _add_record_created_timestamp_utc,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(config),
        ],
    )


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int) -> None:
        super().__init__()
        self._max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self._max_level


class _MinLevelFilter(logging.Filter):
    def __init__(self, min_level: int) -> None:
        super().__init__()
        self._min_level = min_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self._min_level


class _StructlogPreservingQueueHandler(QueueHandler):
    """QueueHandler that keeps structlog event dicts intact."""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # QueueHandler.prepare() would do record.msg = record.getMessage(),
        # which flattens the dict ProcessorFormatter expects.
        return copy.copy(record)


def _stop_async_listener() -> None:
    global _QUEUE_LISTENER
    if _QUEUE_LISTENER is not None:
        try:
            _QUEUE_LISTENER.stop()
        finally:
            _QUEUE_LISTENER = None


def _enable_async_logging(config: AppConfig) -> None:
    """
    Route all stdlib logging through a QueueHandler and emit from a
    QueueListener thread, so connection handlers on the proxy loop never
    block on terminal I/O.

    DEBUG/INFO/WARNING go to stdout, ERROR/CRITICAL to stderr.
    """
    global _QUEUE_LISTENER

    _stop_async_listener()

    formatter = build_formatter(config)

    stdout_handler = logging.StreamHandler(stream=sys.stdout)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(_MaxLevelFilter(logging.WARNING))

    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setFormatter(formatter)
    stderr_handler.addFilter(_MinLevelFilter(logging.ERROR))

    q: queue.Queue[logging.LogRecord] = queue.Queue()  # unbounded; non-dropping

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_StructlogPreservingQueueHandler(q))
    root.setLevel(config.log_level)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(
            max(logging.WARNING, logging.getLevelName(config.log_level))
        )

    _QUEUE_LISTENER = QueueListener(
        q, stdout_handler, stderr_handler, respect_handler_level=True
    )
    _QUEUE_LISTENER.start()
    atexit.register(_stop_async_listener)


def configure_logging(config: AppConfig) -> None:
    """Configure structlog on top of stdlib logging for the whole process."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _enable_async_logging(config)

    log.info(
        "logging_configured", log_format=config.log_format, log_level=config.log_level
    )
