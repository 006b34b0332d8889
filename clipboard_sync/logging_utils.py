"""
Structured JSON logging utilities.

Container platforms and log collectors expect one JSON object per line;
the relay and the HTTP server use this when CLIPBOARD_JSON_LOGS is set.
Extra fields that could carry ciphertext, link tokens or derived secrets
are dropped by the formatter even if a caller passes them.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

# Attributes every LogRecord carries; anything else came from `extra=`
_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "taskName", "message",
    }
)

# Bearer capabilities and payloads; never written to a log line
SENSITIVE_FIELDS = frozenset(
    {"ciphertext", "latest_ciphertext", "link_token", "secret", "key", "plaintext"}
)


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


def context_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Extra context attached to a record, minus sensitive fields."""
    return {
        key: _json_safe(value)
        for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS
        and key not in SENSITIVE_FIELDS
        and not key.startswith("_")
    }


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as single-line JSON objects with consistent fields:
    - timestamp: ISO 8601 time the record was created, in UTC
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - Additional context fields from extra dict (e.g. session_code, version),
      except SENSITIVE_FIELDS
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)
        # Context never overrides the fixed fields above
        for key, value in context_fields(record).items():
            log_obj.setdefault(key, value)
        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure structured JSON logging.

    Args:
        level: Logging level (default: INFO)
        logger_name: Specific logger to configure (default: root logger)
        stream: Output stream (default: stdout)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def configure_plain_logging(level: int = logging.INFO) -> None:
    """Configure human-readable logging for local runs."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_sync_logger(name: str) -> logging.Logger:
    """
    Get a logger for clipboard sync components with consistent naming.

    Args:
        name: Component name (e.g., 'ledger', 'relay')

    Returns:
        Logger instance with name 'clipboard_sync.{name}'
    """
    return logging.getLogger(f"clipboard_sync.{name}")


class SessionLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that attaches session context to every record.

    Example:
        >>> log = SessionLoggerAdapter(logger, {"session_code": "AB12C"})
        >>> log.info("Appended version", extra={"version": 3})
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Add extra context to log record."""
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs
