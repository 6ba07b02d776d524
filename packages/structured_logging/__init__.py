"""Structured logging for the Dhan trading console.

Centralized structlog configuration for the API and the trading core:

- every entry is stamped with the service name and, while an HTTP request
  is being served, its request ID, method and path
- Dhan credentials never reach the log output: values under secret keys
  (the ``access-token`` header, ``access_token`` config) are masked
- httpx's own per-request INFO lines are silenced; ``dhan_request`` and
  ``dhan_error_response`` from the Dhan client cover upstream calls
"""

import logging
import sys
from pathlib import Path
from typing import Any, Callable

import structlog
from structlog.types import EventDict, WrappedLogger

from packages.request_context import get_request_id


SERVICE_NAME = "dhan_api"
REDACTED = "***"
SECRET_KEYS = frozenset({"access_token", "access-token", "accesstoken", "authorization", "password"})


def add_request_id(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add request ID to log entries if available."""
    request_id = get_request_id()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in SECRET_KEYS and val else _redact(val)
            for key, val in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def redact_secrets(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask Dhan credentials anywhere in the event, including nested headers."""
    return _redact(event_dict)


def service_stamper(service: str) -> Callable[[WrappedLogger, str, EventDict], EventDict]:
    """Build a processor that tags entries with the service name."""

    def add_service(
        logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return add_service


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_output: bool = True,
    service: str = SERVICE_NAME,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output (in addition to console)
        json_output: If True, output JSON format; if False, use human-readable format
        service: Value of the ``service`` field on every entry
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        stream=sys.stdout,
    )
    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        add_request_id,
        service_stamper(service),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def setup_dev_logging() -> None:
    """Human-readable DEBUG output for local runs."""
    setup_logging(level="DEBUG", json_output=False)


def setup_prod_logging(log_file: str = "logs/dhan_api.log") -> None:
    """JSON output to stdout and a log file."""
    setup_logging(level="INFO", log_file=log_file, json_output=True)


__all__ = [
    "REDACTED",
    "SERVICE_NAME",
    "add_request_id",
    "get_logger",
    "redact_secrets",
    "service_stamper",
    "setup_dev_logging",
    "setup_logging",
    "setup_prod_logging",
]
