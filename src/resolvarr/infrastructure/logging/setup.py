"""structlog on top of stdlib logging, emitted from a background thread."""

from __future__ import annotations

import atexit
import copy
import logging
import queue
import re
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Optional

import structlog

from resolvarr.infrastructure.config.schema import AppConfig

log = structlog.get_logger(__name__)

# Log every request at INFO; held at WARNING.
_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "hpack")

# Fields that carry clearance cookies or proxy credentials.
_SECRET_KEYS = frozenset(
    {"cookie", "cookies", "cookie_header", "proxy_url", "solver_proxy_url"}
)
_URL_USERINFO = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@", re.IGNORECASE)
_MASK = "***"

_LISTENER: Optional[QueueListener] = None


def _redact_secrets(_: Any, __: Any, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask secret fields and strip userinfo from URLs in string values.

    Transport errors quote the proxy URL verbatim, credentials included.
    """
    for key, value in event_dict.items():
        if key in _SECRET_KEYS and value:
            event_dict[key] = _MASK
        elif isinstance(value, str) and "@" in value:
            event_dict[key] = _URL_USERINFO.sub(rf"\g<scheme>{_MASK}@", value)
    return event_dict


def _record_timestamp(_: Any, __: Any, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Stamp stdlib records with their creation time (UTC, ``Z`` suffix).

    The listener thread formats records later than they were made, so
    TimeStamper would report the wrong moment.
    """
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        event_dict["timestamp"] = created.isoformat().replace("+00:00", "Z")
    return event_dict


def _renderer(config: AppConfig) -> structlog.typing.Processor:
    if config.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


class _KeepEventQueueHandler(QueueHandler):
    # The base prepare() flattens record.msg to a string; ProcessorFormatter
    # needs the event dict.
    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        return copy.copy(record)


class _BelowLevel(logging.Filter):
    def __init__(self, level: int) -> None:
        super().__init__()
        self._level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self._level


def _output_handlers(config: AppConfig) -> tuple[logging.Handler, logging.Handler]:
    """stdout up to WARNING, stderr from ERROR, sharing one formatter."""
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            _record_timestamp,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _redact_secrets,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(config),
        ],
    )
    out = logging.StreamHandler(stream=sys.stdout)
    out.addFilter(_BelowLevel(logging.ERROR))
    err = logging.StreamHandler(stream=sys.stderr)
    err.setLevel(logging.ERROR)
    for handler in (out, err):
        handler.setFormatter(formatter)
    return out, err


def _stop_listener() -> None:
    global _LISTENER
    listener, _LISTENER = _LISTENER, None
    if listener is not None:
        listener.stop()


def _start_listener(config: AppConfig) -> None:
    global _LISTENER

    _stop_listener()
    records: queue.Queue[logging.LogRecord] = queue.Queue()

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_KeepEventQueueHandler(records))
    root.setLevel(config.log_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _LISTENER = QueueListener(
        records, *_output_handlers(config), respect_handler_level=True
    )
    _LISTENER.start()
    atexit.register(_stop_listener)


def configure_logging(config: AppConfig) -> None:
    """Configure structlog and stdlib logging for the whole process.

    Safe to call again; the previous listener is stopped and replaced.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _redact_secrets,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _start_listener(config)
    log.info(
        "logging_configured", log_format=config.log_format, log_level=config.log_level
    )
