"""Structured logging with context support.

This module provides the logging front-end used across the provisioner:
- Correlation IDs so every line of one CLI invocation can be grouped
- Context injection (environment, stage, role, ...) through context variables
- Text or JSON output selected once by the CLI
- Integration with Python's standard logging

Classes:
    StructuredLogger: Logger with context support
    LogContext: Context manager for adding temporary context
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import IO, Any, Dict, Literal, Optional

from pg_provisioner.utils.logging.formatters import (
    ColorizedFormatter,
    ContextFormatter,
    JSONFormatter,
)

ROOT_LOGGER_NAME = "pg_provisioner"

_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


class StructuredLogger:
    """Structured logger with context support.

    This class wraps Python's standard logger and merges the active
    :class:`LogContext` fields plus a correlation ID into every record under
    the ``context`` attribute, where the formatters pick them up.

    Attributes:
        name: Logger name
        logger: Underlying Python logger
        correlation_id: Unique ID for this logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Provisioning started")
        >>> with LogContext(environment="dev"):
        ...     logger.info("Rendering templates", extra={"template": "create-database"})
    """

    def __init__(self, name: str, correlation_id: Optional[str] = None) -> None:
        """Initialize the structured logger.

        Args:
            name: Logger name (typically __name__)
            correlation_id: Optional correlation ID (auto-generated if not provided)
        """
        self.name = name
        self.logger = logging.getLogger(name)
        self.correlation_id = correlation_id or str(uuid.uuid4())
        _ensure_default_handler()

    def _get_context(self) -> Dict[str, Any]:
        context = _log_context.get().copy()
        context.setdefault("correlation_id", self.correlation_id)
        return context

    def _log(
        self,
        level: int,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        exc_info: bool = False,
    ) -> None:
        context = self._get_context()
        if extra:
            context.update(extra)
        self.logger.log(level, message, extra={"context": context}, exc_info=exc_info)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log a debug message."""
        self._log(logging.DEBUG, message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log an info message."""
        self._log(logging.INFO, message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log a warning message."""
        self._log(logging.WARNING, message, extra)

    def error(
        self,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        exc_info: bool = False,
    ) -> None:
        """Log an error message.

        Args:
            message: Log message
            extra: Optional extra context
            exc_info: Whether to include exception info
        """
        self._log(logging.ERROR, message, extra, exc_info)

    def exception(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log an exception with traceback.

        This should be called from an exception handler.
        """
        self._log(logging.ERROR, message, extra, exc_info=True)


class LogContext:
    """Context manager for adding temporary log context.

    Context fields added here are included in every log message emitted
    inside the block and removed again on exit.

    Example:
        >>> with LogContext(environment="tst"):
        ...     with LogContext(stage="load_secrets"):
        ...         logger.info("Loading secrets")
        ...         # Log includes: environment=tst, stage=load_secrets
    """

    def __init__(self, **context: Any) -> None:
        """Initialize the log context.

        Args:
            **context: Context fields as keyword arguments
        """
        self.context = context
        self._previous_context: Optional[Dict[str, Any]] = None

    def __enter__(self) -> "LogContext":
        """Enter the context manager."""
        self._previous_context = _log_context.get().copy()
        current_context = _log_context.get().copy()
        current_context.update(self.context)
        _log_context.set(current_context)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> Literal[False]:
        """Exit the context manager, restoring the previous context."""
        if self._previous_context is not None:
            _log_context.set(self._previous_context)
        else:
            _log_context.set({})
        return False


def _ensure_default_handler() -> None:
    """Attach a text handler to the package logger if nothing is configured.

    Library use (tests, embedding) gets readable output without calling
    :func:`configure_logging`; the CLI replaces it with its own choice.
    """
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if package_logger.handlers or logging.getLogger().handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter())
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.INFO)


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    stream: Optional[IO[str]] = None,
) -> None:
    """Configure the package logger once for a CLI run.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        fmt: Output format: ``text``, ``json`` or ``color``. ``text`` upgrades
            to ``color`` when the stream is a TTY.
        stream: Output stream (defaults to stderr so stdout stays clean
            for the run summary)

    Raises:
        ValueError: If the level or format is unknown
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    target = stream or sys.stderr
    formatter: logging.Formatter
    if fmt == "json":
        formatter = JSONFormatter()
    elif fmt == "color" or (fmt == "text" and target.isatty()):
        formatter = ColorizedFormatter()
    elif fmt == "text":
        formatter = ContextFormatter()
    else:
        raise ValueError(
            f"Unknown log format: {fmt}. Must be one of: text, json, color"
        )

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for existing in package_logger.handlers[:]:
        package_logger.removeHandler(existing)

    handler = logging.StreamHandler(target)
    handler.setFormatter(formatter)
    package_logger.addHandler(handler)
    package_logger.setLevel(numeric_level)
    package_logger.propagate = False


def get_logger(name: str, correlation_id: Optional[str] = None) -> StructuredLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)
        correlation_id: Optional correlation ID

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name, correlation_id)


def set_global_context(**context: Any) -> None:
    """Set context included in all log messages of the current run.

    A ``correlation_id`` set here replaces the per-logger IDs, so every
    module logs under the same ID.

    Example:
        >>> set_global_context(correlation_id="8f1c")
    """
    current_context = _log_context.get().copy()
    current_context.update(context)
    _log_context.set(current_context)


def clear_global_context() -> None:
    """Clear global log context."""
    _log_context.set({})
