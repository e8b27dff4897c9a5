"""Custom exception hierarchy for the provisioner.

Exception Hierarchy:
    ProvisioningError (base)
    ├── UsageError
    ├── ConfigurationError
    │   ├── EnvironmentNotFoundError
    │   └── SecretsError
    ├── TemplateError
    │   ├── TemplateSyntaxError
    │   └── TemplateRenderError
    ├── ExecutionError
    │   ├── SqlExecutionError
    │   └── OutputWriteError
    └── VerificationError
"""

from pg_provisioner.core.exceptions.errors import (
    EXIT_CONFIGURATION,
    EXIT_EXECUTION,
    EXIT_USAGE,
    EXIT_VERIFICATION,
    ConfigurationError,
    EnvironmentNotFoundError,
    ExecutionError,
    OutputWriteError,
    ProvisioningError,
    SecretsError,
    SqlExecutionError,
    TemplateError,
    TemplateRenderError,
    TemplateSyntaxError,
    UsageError,
    VerificationError,
)

__all__ = [
    # Base
    "ProvisioningError",
    # Usage
    "UsageError",
    # Configuration
    "ConfigurationError",
    "EnvironmentNotFoundError",
    "SecretsError",
    # Templates
    "TemplateError",
    "TemplateSyntaxError",
    "TemplateRenderError",
    # Execution
    "ExecutionError",
    "SqlExecutionError",
    "OutputWriteError",
    # Verification
    "VerificationError",
    # Exit codes
    "EXIT_USAGE",
    "EXIT_CONFIGURATION",
    "EXIT_EXECUTION",
    "EXIT_VERIFICATION",
]
