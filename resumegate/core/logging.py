"""Structured logging configuration for resumegate."""

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

# Context variable for request-scoped data
request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

# Keys whose values are always masked
SENSITIVE_KEYS: Set[str] = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "session_token",
    "token",
    "password",
    "payment_id",
}

# Keys holding e-mail addresses; these keep the domain for abuse triage
EMAIL_KEYS: Set[str] = {"email", "identifier"}

_EMAIL_PATTERN = re.compile(r"^([^@\s]+)@([^@\s]+)$")


def _redact_value(value: Any) -> str:
    """Mask a secret, keeping at most the first and last 3 characters."""
    if not isinstance(value, str):
        return "[REDACTED]"
    if len(value) < 12:
        return "<REDACTED>"
    return f"{value[:3]}***{value[-3:]}"


def mask_email(value: str) -> str:
    """Mask the local part of an e-mail address: ``jane@example.com`` -> ``j***@example.com``."""
    match = _EMAIL_PATTERN.match(value or "")
    if not match:
        return value
    local, domain = match.groups()
    return f"{local[:1]}***@{domain}"


def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact sensitive data from dictionaries and lists."""
    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if key_lower in SENSITIVE_KEYS:
                redacted[key] = _redact_value(value)
            elif "cookie" in key_lower and isinstance(value, str):
                redacted[key] = re.sub(r"=[^;]*", "=<REDACTED>", value)
            elif key_lower in EMAIL_KEYS and isinstance(value, str):
                redacted[key] = mask_email(value)
            else:
                redacted[key] = redact_sensitive_data(value)
        return redacted
    elif isinstance(data, list):
        return [redact_sensitive_data(item) for item in data]
    return data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        ctx = request_context.get()
        if ctx:
            log_data["request_id"] = ctx.get("request_id")
            log_data["path"] = ctx.get("path")

        if hasattr(record, "data") and record.data:
            log_data["data"] = redact_sensitive_data(record.data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console."""
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        ctx = request_context.get()
        request_id = ctx.get("request_id", "-")[:8] if ctx else "-"

        message = f"{timestamp} | {color}{record.levelname:8}{self.RESET} | {request_id} | {record.name} | {record.getMessage()}"

        if hasattr(record, "data") and record.data:
            message += f" | {redact_sensitive_data(record.data)}"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that accepts a ``data`` payload."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Move ``data`` into ``extra`` so formatters can find it."""
        extra = kwargs.get("extra", {})
        if "data" in kwargs:
            extra["data"] = kwargs.pop("data")
        kwargs["extra"] = extra
        return msg, kwargs


_loggers: Dict[str, ContextLogger] = {}


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger."""
    if name not in _loggers:
        logger = logging.getLogger(name)
        _loggers[name] = ContextLogger(logger, {})
    return _loggers[name]


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure application logging."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    if json_output:
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler.setFormatter(ConsoleFormatter())
    root_logger.addHandler(console_handler)

    # File handler (always JSON)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    # Quiet noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
