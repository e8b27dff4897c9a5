"""Structured logging for the provisioner.

This module provides a structured logging system with:
- Correlation IDs for grouping the lines of one provisioning run
- Context injection (environment, stage, role)
- Text, colorized and JSON output formats
- Redaction of credential-like context fields

Classes:
    StructuredLogger: Main logger with context support
    LogContext: Context manager for adding log context
"""

from pg_provisioner.utils.logging.formatters import (
    REDACTED,
    ColorizedFormatter,
    ContextFormatter,
    JSONFormatter,
    redact_context,
)
from pg_provisioner.utils.logging.logger import (
    LogContext,
    StructuredLogger,
    clear_global_context,
    configure_logging,
    get_logger,
    set_global_context,
)

__all__ = [
    "StructuredLogger",
    "LogContext",
    "get_logger",
    "configure_logging",
    "set_global_context",
    "clear_global_context",
    "JSONFormatter",
    "ContextFormatter",
    "ColorizedFormatter",
    "redact_context",
    "REDACTED",
]
