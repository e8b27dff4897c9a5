"""Log formatters for provisioning output.

This module provides the formatters used by the provisioner's loggers:
- JSON output for log shipping from CI runners
- Human-readable text output with context fields appended
- Colorized text output for interactive terminals

Context values whose key names a credential are redacted before they are
rendered, so a stray ``extra={"password": ...}`` never reaches a log sink.

Classes:
    JSONFormatter: Format logs as JSON
    ContextFormatter: Format logs with context fields
    ColorizedFormatter: Format logs with colors (for console)
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

REDACTED = "***"

_SENSITIVE_MARKERS = ("password", "secret", "token")

# Attributes every LogRecord carries; anything else was passed through `extra`.
_RESERVED_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "context",
    }
)


def redact_context(context: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``context`` with credential-like values masked.

    Args:
        context: Context fields attached to a log record

    Returns:
        New dictionary safe to render
    """
    redacted: Dict[str, Any] = {}
    for key, value in context.items():
        lowered = str(key).lower()
        if any(marker in lowered for marker in _SENSITIVE_MARKERS):
            redacted[key] = REDACTED
        elif isinstance(value, dict):
            redacted[key] = redact_context(value)
        else:
            redacted[key] = value
    return redacted


class JSONFormatter(logging.Formatter):
    """Format log records as JSON.

    Each log record includes:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level name
    - logger: Logger name
    - message: Log message
    - context: Context fields (environment, stage, ...)
    - exception: Exception info (if present)

    Example output:
        {
            "timestamp": "2026-10-18T09:12:01.104233+00:00",
            "level": "INFO",
            "logger": "pg_provisioner.provisioning.provisioner",
            "message": "Stage completed: render_templates",
            "context": {"correlation_id": "abc-123", "environment": "dev"}
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context"):
            log_entry["context"] = redact_context(record.context)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class ContextFormatter(logging.Formatter):
    """Format log records with context fields.

    Example output:
        2026-10-18 09:12:01 - INFO - pg_provisioner.cli - Provisioning started [correlation_id=abc-123, environment=dev]
    """

    def __init__(
        self,
        fmt: str = "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt: str = "%Y-%m-%d %H:%M:%S",
    ) -> None:
        """Initialize the formatter.

        Args:
            fmt: Log format string
            datefmt: Date format string
        """
        super().__init__(fmt, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record with context.

        Args:
            record: Log record to format

        Returns:
            Formatted log string
        """
        base_message = super().format(record)

        if hasattr(record, "context") and record.context:
            context = redact_context(record.context)
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            return f"{base_message} [{context_str}]"

        return base_message


class ColorizedFormatter(ContextFormatter):
    """Format log records with ANSI colors for console output.

    Colors:
    - DEBUG: Cyan
    - INFO: Blue
    - WARNING: Yellow
    - ERROR: Red
    - CRITICAL: Red + Bold
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[34m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record with colors.

        Args:
            record: Log record to format

        Returns:
            Formatted log string with ANSI color codes
        """
        color = self.COLORS.get(record.levelname, "")
        message = super().format(record)
        if color:
            return f"{color}{message}{self.RESET}"
        return message
