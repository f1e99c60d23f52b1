"""
Structured JSON logging with request ID tracing.

This module provides:
- JSON-formatted log output for machine parsing
- Request and user IDs propagated via contextvars (async-safe)
- Exception formatting with tracebacks

Usage:
    from dojo.utils.structured_logger import setup_structured_logging, get_logger, set_request_id

    setup_structured_logging()
    set_request_id("abc-123")
    logger = get_logger(__name__)
    logger.info("Payment recorded", extra={"payment_id": 42})
"""

import logging
import json
import sys
from datetime import datetime, timezone
from contextvars import ContextVar
from typing import Optional, Any, Dict


request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
user_id_var: ContextVar[Optional[int]] = ContextVar('user_id', default=None)


def set_request_id(request_id: str) -> None:
    """Set request ID for current context."""
    request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    """Get request ID for current context."""
    return request_id_var.get()


def clear_request_id() -> None:
    """Clear request ID for current context."""
    request_id_var.set(None)


def set_user_id(user_id: Optional[int]) -> None:
    """Set authenticated user ID for current context."""
    user_id_var.set(user_id)


def get_user_id() -> Optional[int]:
    return user_id_var.get()


# Standard LogRecord attributes, everything else on a record came from extra={}
_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName'
}


class JSONFormatter(logging.Formatter):
    """JSON log formatter with request_id and user_id injection.

    {
        "timestamp": "2025-03-01T15:30:00.123456Z",
        "level": "INFO",
        "logger": "module.name",
        "message": "Log message",
        "request_id": "abc-123",
        "user_id": 7,
        "service": "dojo-api",
        ...extra fields...
    }
    """

    def __init__(self, service_name: str = "dojo-api"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": get_request_id(),
            "user_id": get_user_id(),
            "service": self.service_name,
            "source": {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith('_'):
                try:
                    json.dumps(value)
                    extra_fields[key] = value
                except (TypeError, ValueError):
                    extra_fields[key] = str(value)

        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


class PlainFormatter(logging.Formatter):
    """Plain text formatter for development.

    Format: timestamp - logger - level - [request_id] message
    """

    def format(self, record: logging.LogRecord) -> str:
        request_id = get_request_id()
        request_id_str = f"[{request_id}] " if request_id else ""

        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')

        base_message = f"{timestamp} - {record.name} - {record.levelname} - {request_id_str}{record.getMessage()}"

        if record.exc_info:
            base_message += "\n" + self.formatException(record.exc_info)

        return base_message


def setup_structured_logging(
    level: str = "INFO",
    json_output: bool = True,
    service_name: str = "dojo-api"
) -> None:
    """Configure logging for the application.

    Call once at startup, before any logging statements run.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines when True, plain text otherwise
        service_name: Service name to include in log entries
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)

    if json_output:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    else:
        handler.setFormatter(PlainFormatter())

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
