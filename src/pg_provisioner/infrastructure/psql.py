"""Execution of rendered SQL files with the psql client.

The rendered documents use psql meta-commands (``\\connect``, ``\\gexec``), so
they are executed by the psql binary rather than through a driver. Each file
runs in its own psql process as the administrative role with
``ON_ERROR_STOP`` set, and the admin password is passed through
``PGPASSWORD`` in the child environment only.
"""

import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from pydantic import SecretStr

from pg_provisioner.core.base.tracking import (
    ExecutionEventTracker,
    emit_tracker_event,
)
from pg_provisioner.core.config.models import EnvironmentConfig
from pg_provisioner.core.exceptions import ConfigurationError, SqlExecutionError
from pg_provisioner.utils.logging import REDACTED, StructuredLogger, get_logger

_STDERR_TAIL_CHARS = 2000


@dataclass(frozen=True)
class SqlExecutionResult:
    """Envelope for one psql invocation."""

    sql_file: Path
    returncode: int
    stdout: str
    stderr: str
    duration_seconds: float


def scrub_secrets(text: str, secrets: Sequence[str]) -> str:
    """Replace every occurrence of the given secret values in ``text``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


class PsqlRunner:
    """Run SQL files against an environment's server with psql.

    Attributes:
        psql_path: psql executable name or path
        timeout_seconds: Upper bound for a single invocation
        maintenance_database: Database the admin connection starts in

    Example:
        >>> runner = PsqlRunner(timeout_seconds=120)
        >>> runner.check_available()
        '/usr/bin/psql'
        >>> runner.execute_file(env, Path("output/dev/01-create-database.sql"), pw)
    """

    def __init__(
        self,
        psql_path: str = "psql",
        timeout_seconds: int = 300,
        maintenance_database: str = "postgres",
        tracker: Optional[ExecutionEventTracker] = None,
    ) -> None:
        """Initialize the runner."""
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.psql_path = psql_path
        self.timeout_seconds = timeout_seconds
        self.maintenance_database = maintenance_database
        self.logger: StructuredLogger = get_logger(__name__)
        self._tracker = tracker

    def check_available(self) -> str:
        """Return the resolved psql executable.

        Raises:
            ConfigurationError: If psql cannot be found
        """
        resolved = shutil.which(self.psql_path)
        if resolved is None:
            raise ConfigurationError(
                "PostgreSQL client (psql) is not installed or not on PATH",
                context={"psql_path": self.psql_path},
            )
        self.logger.debug("Found psql", extra={"path": resolved})
        return resolved

    def build_command(
        self, environment: EnvironmentConfig, sql_file: Union[str, Path]
    ) -> List[str]:
        """Return the psql argument vector for ``sql_file``."""
        return [
            self.psql_path,
            "--no-psqlrc",
            "--no-password",
            "-v",
            "ON_ERROR_STOP=1",
            "-h",
            environment.host,
            "-p",
            str(environment.port),
            "-U",
            environment.admin_user,
            "-d",
            self.maintenance_database,
            "-f",
            str(sql_file),
        ]

    def _child_env(self, admin_password: SecretStr) -> Dict[str, str]:
        env = dict(os.environ)
        env["PGPASSWORD"] = admin_password.get_secret_value()
        # PGPASSWORD is the only credential source; --no-password keeps psql
        # from prompting on the terminal if it is rejected.
        env.pop("PGPASSFILE", None)
        return env

    def execute_file(
        self,
        environment: EnvironmentConfig,
        sql_file: Union[str, Path],
        admin_password: SecretStr,
        redact: Sequence[str] = (),
    ) -> SqlExecutionResult:
        """Execute ``sql_file`` as the environment's admin role.

        Args:
            environment: Target environment
            sql_file: Rendered SQL document
            admin_password: Password of the admin role
            redact: Additional secret values to scrub from captured output

        Returns:
            Result of the invocation

        Raises:
            SqlExecutionError: If psql exits non-zero, times out, or cannot start
        """
        path = Path(sql_file)
        command = self.build_command(environment, path)
        secrets = [admin_password.get_secret_value(), *redact]
        context: Dict[str, object] = {
            "file": str(path),
            "host": environment.host,
            "port": environment.port,
        }

        self.logger.info(f"Executing {path.name}", extra=context)
        started = time.monotonic()
        try:
            completed = subprocess.run(
                command,
                env=self._child_env(admin_password),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise SqlExecutionError(
                f"psql timed out after {self.timeout_seconds}s",
                context=context,
            ) from e
        except OSError as e:
            raise SqlExecutionError(
                "Failed to start psql", context=context, original_error=e
            ) from e

        duration = time.monotonic() - started
        stdout = scrub_secrets(completed.stdout or "", secrets)
        stderr = scrub_secrets(completed.stderr or "", secrets)

        if completed.returncode != 0:
            emit_tracker_event(
                self._tracker,
                self.__class__.__name__,
                "sql_failed",
                {**context, "returncode": completed.returncode},
            )
            raise SqlExecutionError(
                f"psql exited with code {completed.returncode}",
                context={
                    **context,
                    "returncode": completed.returncode,
                    "stderr": stderr.strip()[-_STDERR_TAIL_CHARS:],
                },
            )

        if stderr.strip():
            self.logger.warning(
                "psql reported notices", extra={**context, "stderr": stderr.strip()}
            )
        self.logger.debug("psql output", extra={**context, "stdout": stdout.strip()})
        emit_tracker_event(
            self._tracker,
            self.__class__.__name__,
            "sql_executed",
            {**context, "duration_seconds": round(duration, 3)},
        )
        return SqlExecutionResult(
            sql_file=path,
            returncode=completed.returncode,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=duration,
        )
