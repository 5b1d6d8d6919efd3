"""Structured logging configuration for fanrelay.

Environment variables (used when no Settings object is passed to ``setup_logging``):
    RELAY_LOG_FORMAT  -- ``json`` for structured JSON output, ``text`` for human-readable (default).
    RELAY_LOG_LEVEL   -- Python log level name (default: ``INFO``).
"""

from __future__ import annotations

import logging
import os
import traceback
from typing import Any

# LogRecord attributes promoted to top-level JSON fields when present.
_STRUCTURED_FIELDS = (
    "request_id",
    "path",
    "method",
    "status_code",
    "duration_ms",
    "connection_id",
    "delivered",
    "total_clients",
    "event_type",
)


def _is_json_mode() -> bool:
    """Return True when structured JSON logging is requested."""
    return os.environ.get("RELAY_LOG_FORMAT", "text").lower() == "json"


def _get_log_level() -> int:
    """Return the numeric log level from RELAY_LOG_LEVEL (default INFO)."""
    name = os.environ.get("RELAY_LOG_LEVEL", "INFO").upper()
    numeric = getattr(logging, name, None)
    if not isinstance(numeric, int):
        return logging.INFO
    return numeric


class StructuredJsonFormatter(logging.Formatter):
    """JSON formatter that emits one JSON object per log line.

    Uses ``pythonjsonlogger`` under the hood but makes sure the request and
    relay fields (request_id, path, connection_id, delivered, ...) appear
    when they are present on the LogRecord.
    """

    def __init__(self) -> None:
        super().__init__()
        from pythonjsonlogger.json import JsonFormatter

        self._inner = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        extras: dict[str, Any] = {}
        for key in _STRUCTURED_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                extras[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            extras["traceback"] = traceback.format_exception(*record.exc_info)
            # Keep the inner formatter from appending the traceback as text.
            record.exc_info = None
            record.exc_text = None

        for k, v in extras.items():
            setattr(record, k, v)

        return self._inner.format(record)


def setup_logging(settings: Any = None) -> None:
    """Configure the root logger.

    Format and level come from *settings* when given, otherwise from
    RELAY_LOG_FORMAT and RELAY_LOG_LEVEL.
    """
    if settings is not None:
        json_mode = settings.log_format == "json"
        level = getattr(logging, settings.log_level)
    else:
        json_mode = _is_json_mode()
        level = _get_log_level()
    root = logging.getLogger()
    root.setLevel(level)

    # Remove any existing handlers so we don't double-log during tests.
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(level)

    if json_mode:
        handler.setFormatter(StructuredJsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

    root.addHandler(handler)


def log_startup_info(settings: Any) -> None:
    """Emit a startup log line with the relay configuration."""
    import fanrelay

    logger = logging.getLogger("fanrelay")
    logger.info(
        "fanrelay started on port %d",
        settings.port,
        extra={
            "version": fanrelay.__version__,
            "secret_check": "enabled" if settings.webhook_secret else "disabled",
            "send_timeout": settings.send_timeout,
            "rate_limit_config": settings.rate_limit,
        },
    )
