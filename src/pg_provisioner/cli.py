"""Command-line entry points.

``provision <env>`` provisions the service database for one environment;
``provision-dependencies <env>`` provisions every registered dependency of
the application (currently PostgreSQL only).

Exit codes: 0 on success or when the operator declines, 1 for usage,
configuration, secret and template errors, 2 when psql or a file write
fails, and 3 when a provisioned role cannot log in.
"""

import argparse
import os
import sys
import uuid
from pathlib import Path
from typing import List, NoReturn, Optional, Sequence

from dotenv import load_dotenv

from pg_provisioner.core.config import (
    VALID_ENVIRONMENTS,
    ConfigLoader,
    ProvisionerSettings,
)
from pg_provisioner.core.exceptions import EXIT_USAGE, ProvisioningError
from pg_provisioner.provisioning import (
    DependencyProvisioner,
    Provisioner,
    ProvisioningResult,
    ProvisioningStatus,
    provision_dependencies,
)
from pg_provisioner.utils.logging import (
    configure_logging,
    get_logger,
    set_global_context,
)

SETTINGS_FILE = "provisioner.yaml"
ENV_PREFIX = "PGPROV_"

logger = get_logger(__name__)


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that exits with the tool's usage exit code."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def build_parser(prog: str, description: str) -> argparse.ArgumentParser:
    """Return the argument parser shared by both commands."""
    parser = _ArgumentParser(prog=prog, description=description)
    parser.add_argument(
        "environment",
        choices=VALID_ENVIRONMENTS,
        help="Environment to provision",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Skip the confirmation prompt",
    )
    parser.add_argument(
        "--config-dir",
        help="Directory with .env.<env> secret files and settings "
        "(default: config)",
    )
    parser.add_argument(
        "--output-dir",
        help="Directory generated files are written to (default: output)",
    )
    parser.add_argument(
        "--registry",
        help="Environment registry YAML replacing the packaged definition",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        default="text",
        choices=["text", "json", "color"],
        help="Log output format (default: text)",
    )
    return parser


def load_settings(args: argparse.Namespace) -> ProvisionerSettings:
    """Load settings for the parsed arguments.

    Raises:
        ConfigurationError: If the settings are invalid
    """
    overrides = {
        "config_dir": args.config_dir,
        "output_dir": args.output_dir,
        "registry_file": args.registry,
    }
    config_dir = args.config_dir or _env_config_dir()
    loader = ConfigLoader(config_dir=config_dir, environment=args.environment)
    return loader.load(
        ProvisionerSettings,
        config_file=SETTINGS_FILE,
        overrides=overrides,
        env_prefix=ENV_PREFIX,
    )


def _env_config_dir() -> str:
    return os.environ.get(f"{ENV_PREFIX}CONFIG_DIR", "config")


def format_summary(result: ProvisioningResult) -> str:
    """Return the operator-facing summary of a provisioning run."""
    if result.status == ProvisioningStatus.CANCELLED:
        return "Provisioning cancelled. No changes were made."
    if result.status == ProvisioningStatus.FAILED:
        return f"Provisioning failed at stage {result.failed_stage}: {result.error}"

    meta = result.metadata
    lines: List[str] = []
    if result.status == ProvisioningStatus.SUCCESS_WITH_WARNINGS:
        failed = ", ".join(v.user for v in result.verifications if not v.success)
        lines.append(
            f"Database provisioning complete with warnings ({failed} could not connect)"
        )
    else:
        lines.append("Database provisioning complete!")
    lines.extend(
        [
            "",
            f"Database: {meta.get('database')}",
            f"Server: {meta.get('host')}:{meta.get('port')}",
            f"Schema: {meta.get('schema')}",
            f"Migration User: {meta.get('migration_user')}",
            f"Application User: {meta.get('application_user')}",
            f"Connection config: {result.output_files.get('connection_config')}",
            "",
            "Next steps:",
            "  1. Update the service configuration with the connection details",
            "  2. Run database migrations using the migration user",
            "  3. Configure the application to use the app user at runtime",
        ]
    )
    return "\n".join(lines)


def _prepare(
    argv: Optional[Sequence[str]], prog: str, description: str
) -> argparse.Namespace:
    parser = build_parser(prog, description)
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, fmt=args.log_format)
    set_global_context(correlation_id=str(uuid.uuid4()))
    load_dotenv(Path.cwd() / ".env")
    return args


def _report_error(error: ProvisioningError) -> int:
    logger.error(str(error))
    print(f"Error: {error}", file=sys.stderr)
    return error.exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run ``provision`` and return the exit code."""
    args = _prepare(
        argv,
        "provision",
        "Provision the service PostgreSQL database for an environment",
    )
    try:
        settings = load_settings(args)
    except ProvisioningError as e:
        return _report_error(e)

    result = Provisioner(settings, assume_yes=args.yes).run(args.environment)
    summary = format_summary(result)
    if result.status == ProvisioningStatus.FAILED:
        print(f"Error: {summary}", file=sys.stderr)
    else:
        print(summary)
    return result.exit_code


def dependencies_main(argv: Optional[Sequence[str]] = None) -> int:
    """Run ``provision-dependencies`` and return the exit code."""
    args = _prepare(
        argv,
        "provision-dependencies",
        "Provision every application dependency for an environment",
    )
    try:
        settings = load_settings(args)
    except ProvisioningError as e:
        return _report_error(e)

    postgres = DependencyProvisioner(
        name="PostgreSQL",
        description="Database with schemas and users",
        provision=Provisioner(settings, assume_yes=args.yes).run,
    )
    try:
        outcome = provision_dependencies(args.environment, [postgres])
    except ProvisioningError as e:
        return _report_error(e)

    for result in outcome.results:
        summary = format_summary(result)
        print(summary, file=sys.stderr if result.error else sys.stdout)

    if not outcome.success:
        return outcome.exit_code

    print("")
    if not outcome.provisioned:
        print(f"No application dependencies were provisioned for {args.environment}.")
        return 0
    print(f"Application dependencies provisioned for {args.environment}.")
    print("Provisioned services:")
    for dependency in outcome.provisioned:
        print(f"  - {dependency.name}: {dependency.description}")
    return 0


def run() -> None:
    """Console entry point for ``provision``."""
    sys.exit(main())


def run_dependencies() -> None:
    """Console entry point for ``provision-dependencies``."""
    sys.exit(dependencies_main())
