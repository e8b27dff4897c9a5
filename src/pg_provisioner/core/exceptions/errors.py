"""Custom exception classes for the provisioner.

Every exception carries an optional ``step`` naming the provisioning stage
that failed, a context dictionary for diagnostics, and the original error
that caused it. Each class also defines the process exit code the CLI uses
when the error ends a run.

All exceptions inherit from ProvisioningError, so callers can catch every
provisioner-specific failure with a single except clause.
"""

from typing import Any, Dict, Optional

EXIT_USAGE = 1
EXIT_CONFIGURATION = 1
EXIT_EXECUTION = 2
EXIT_VERIFICATION = 3


class ProvisioningError(Exception):
    """Base exception for all provisioner errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context
        original_error: Optional original exception that caused this error
        step: Name of the provisioning stage that failed, when known
        exit_code: Process exit code for this class of failure
    """

    exit_code: int = EXIT_CONFIGURATION

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
        step: Optional[str] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            context: Optional context dictionary
            original_error: Optional original exception
            step: Optional name of the failing stage
        """
        self.message = message
        self.context = context or {}
        self.original_error = original_error
        self.step = step
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        full_message = self.message
        if self.step:
            full_message = f"[{self.step}] {full_message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            full_message = f"{full_message} (Context: {context_str})"
        if self.original_error:
            full_message = f"{full_message} (Caused by: {self.original_error})"
        return full_message

    def with_step(self, step: str) -> "ProvisioningError":
        """Attach the failing stage name unless one is already set.

        Args:
            step: Stage name

        Returns:
            The same exception, for ``raise err.with_step(...)``
        """
        if self.step is None:
            self.step = step
            self.args = (self._build_message(),)
        return self


# =============================================================================
# Usage Errors
# =============================================================================


class UsageError(ProvisioningError):
    """Exception raised for bad or missing command-line arguments."""

    exit_code = EXIT_USAGE


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ProvisioningError):
    """Exception raised for configuration errors.

    This exception is raised when settings or the environment registry
    cannot be loaded or validated, or when a prerequisite tool is missing.
    """

    exit_code = EXIT_CONFIGURATION


class EnvironmentNotFoundError(ConfigurationError):
    """Exception raised when an environment identifier is not registered."""

    def __init__(
        self,
        environment: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
        step: Optional[str] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            environment: Identifier that was looked up
            context: Optional context dictionary
            original_error: Optional original exception
            step: Optional name of the failing stage
        """
        self.environment = environment
        super().__init__(
            f"Unknown environment: {environment!r}", context, original_error, step
        )


class SecretsError(ConfigurationError):
    """Exception raised when the per-environment secret file is missing or invalid."""


# =============================================================================
# Template Errors
# =============================================================================


class TemplateError(ProvisioningError):
    """Base exception for template loading and rendering errors."""

    exit_code = EXIT_CONFIGURATION


class TemplateSyntaxError(TemplateError):
    """Exception raised for malformed conditional directives.

    Attributes:
        line_number: 1-based line of the offending directive
    """

    def __init__(
        self,
        message: str,
        line_number: int,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
        step: Optional[str] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            line_number: 1-based line of the offending directive
            context: Optional context dictionary
            original_error: Optional original exception
            step: Optional name of the failing stage
        """
        self.line_number = line_number
        super().__init__(
            f"{message} at line {line_number}", context, original_error, step
        )


class TemplateRenderError(TemplateError):
    """Exception raised when a template cannot be fully rendered."""


# =============================================================================
# Execution Errors
# =============================================================================


class ExecutionError(ProvisioningError):
    """Base exception for failures of external tools or the file system."""

    exit_code = EXIT_EXECUTION


class SqlExecutionError(ExecutionError):
    """Exception raised when psql exits non-zero or times out."""


class OutputWriteError(ExecutionError):
    """Exception raised when a generated file cannot be written."""


# =============================================================================
# Verification Errors
# =============================================================================


class VerificationError(ProvisioningError):
    """Exception raised when a provisioned role cannot connect."""

    exit_code = EXIT_VERIFICATION
