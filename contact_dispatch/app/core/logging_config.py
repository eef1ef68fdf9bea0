"""
Structured logging configuration.

Provides:
    • One JSON object per line in production
    • Coloured single-line output everywhere else
    • Request-scoped context (request_id, client_ip, endpoint, method)
      set by the middleware and stamped on every record
    • Dispatch fields passed through ``extra=``

Record extras understood by both formatters:

    provider      sendgrid | mailgun | smtp:<host>
    outcome       delivered | delivered_via_fallback | failed | not_configured
    error_code    channel failure code or API error code
    duration_ms   time spent on the request or dispatch
    status_code   HTTP status or SMTP reply code
    endpoint      request path

Usage:
    from contact_dispatch.app.core.logging_config import setup_logging, get_logger

    setup_logging(settings)
    logger = get_logger(__name__)
    logger.warning("Provider failed", extra={"provider": "smtp", "error_code": "auth_failed"})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from contact_dispatch.app.core.config import Settings, get_settings

_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context", default={}
)

EXTRA_FIELDS = (
    "provider", "outcome", "error_code",
    "duration_ms", "status_code", "endpoint",
)

# Shown inline by the console formatter, in this order
_CONSOLE_TAGS = ("provider", "outcome", "error_code")


def set_request_context(**kwargs: Any) -> None:
    """Replace the request-scoped context; call with no arguments to clear it."""
    _request_context.set(kwargs)


def get_request_context() -> Dict[str, Any]:
    return _request_context.get()


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in EXTRA_FIELDS if hasattr(record, key)}


class JSONFormatter(logging.Formatter):
    """Machine-parseable output for the log shipper."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        ctx = get_request_context()
        if ctx:
            entry["request"] = dict(ctx)

        entry.update(_record_extras(record))

        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = {"type": type(exc).__name__, "message": str(exc)}

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL [request] logger: message key=value ...`` with ANSI colour."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        request_id = get_request_context().get("request_id")
        request_tag = f" [{request_id[:8]}]" if request_id else ""

        extras = _record_extras(record)
        tags = "".join(f" {key}={extras[key]}" for key in _CONSOLE_TAGS if key in extras)

        line = (
            f"{color}{self.formatTime(record, '%H:%M:%S')} {record.levelname:8s}{self.RESET}"
            f"{request_tag} {record.name}: {record.getMessage()}{tags}"
        )
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Install a single stdout handler on the root logger."""
    settings = settings or get_settings()
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.is_production else ConsoleFormatter())
    root.handlers.clear()
    root.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
