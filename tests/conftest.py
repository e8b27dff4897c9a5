"""Pytest configuration and fixtures."""

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest
from pydantic import SecretStr

from pg_provisioner.core.config.models import EnvironmentConfig, ProvisionerSettings
from pg_provisioner.infrastructure.psql import SqlExecutionResult
from pg_provisioner.infrastructure.verification import RoleVerification
from pg_provisioner.registry.environments import EnvironmentRegistry
from pg_provisioner.utils.logging import clear_global_context

SECRET_VALUES = {
    "POSTGRES_ADMIN_PASSWORD": "admin-Secret1",
    "BILLING_MIGRATION_PASSWORD": "migr-Secret2",
    "BILLING_APP_PASSWORD": "app-Secret3",
}


class StubRunner:
    """psql runner double that records executed files."""

    def __init__(self, fail_on: Optional[str] = None, available: bool = True):
        """Initialize the stub."""
        self.fail_on = fail_on
        self.available = available
        self.executed: List[Tuple[str, Path, str]] = []
        self.redacted: List[Sequence[str]] = []

    def check_available(self) -> str:
        """Return a fake psql path or fail like the real runner."""
        from pg_provisioner.core.exceptions import ConfigurationError

        if not self.available:
            raise ConfigurationError("PostgreSQL client (psql) is not installed")
        return "/usr/bin/psql"

    def execute_file(
        self,
        environment: EnvironmentConfig,
        sql_file: Path,
        admin_password: SecretStr,
        redact: Sequence[str] = (),
    ) -> SqlExecutionResult:
        """Record the call and optionally fail."""
        from pg_provisioner.core.exceptions import SqlExecutionError

        self.executed.append(
            (environment.name, Path(sql_file), admin_password.get_secret_value())
        )
        self.redacted.append(tuple(redact))
        if self.fail_on and self.fail_on in Path(sql_file).name:
            raise SqlExecutionError(
                "psql exited with code 3", context={"file": str(sql_file)}
            )
        return SqlExecutionResult(
            sql_file=Path(sql_file),
            returncode=0,
            stdout="",
            stderr="",
            duration_seconds=0.01,
        )


class StubVerifier:
    """Login verifier double; roles listed in ``failing`` cannot connect."""

    def __init__(self, failing: Sequence[str] = ()):
        """Initialize the stub."""
        self.failing = set(failing)
        self.calls: List[Dict[str, str]] = []

    def verify(
        self,
        environment: EnvironmentConfig,
        database: str,
        role: str,
        user: str,
        password: SecretStr,
        expected_schema: str,
    ) -> RoleVerification:
        """Return a canned verification result."""
        self.calls.append(
            {
                "role": role,
                "user": user,
                "database": database,
                "password": password.get_secret_value(),
                "schema": expected_schema,
            }
        )
        if role in self.failing:
            return RoleVerification(
                role=role, user=user, success=False, error="connection refused"
            )
        return RoleVerification(
            role=role, user=user, success=True, schema=expected_schema
        )


class RecordingTracker:
    """Tracker that keeps every event in memory."""

    def __init__(self):
        """Initialize the tracker."""
        self.events: List[Tuple[str, str, Dict[str, object]]] = []

    def record_event(
        self, component: str, event: str, payload: Dict[str, object]
    ) -> None:
        """Record an event."""
        self.events.append((component, event, payload))

    def names(self) -> List[str]:
        """Return event names in order."""
        return [event for _, event, _ in self.events]


@pytest.fixture(autouse=True)
def reset_logging():
    """Restore the package logger and log context after each test."""
    package_logger = logging.getLogger("pg_provisioner")
    handlers = package_logger.handlers[:]
    level = package_logger.level
    propagate = package_logger.propagate
    yield
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate
    clear_global_context()


@pytest.fixture
def settings(tmp_path: Path) -> ProvisionerSettings:
    """Settings pointing config and output into a temporary directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return ProvisionerSettings(
        config_dir=str(config_dir), output_dir=str(tmp_path / "output")
    )


@pytest.fixture
def write_secrets(settings: ProvisionerSettings) -> Callable[..., Path]:
    """Write a secret file for an environment, with optional overrides."""

    def _write(environment: str = "dev", **overrides: Optional[str]) -> Path:
        values = dict(SECRET_VALUES)
        values.update(overrides)
        lines = [f"{key}={value}" for key, value in values.items() if value is not None]
        path = settings.secret_file(environment)
        path.write_text("\n".join(lines) + "\n")
        return path

    return _write


@pytest.fixture
def registry() -> EnvironmentRegistry:
    """The packaged environment registry."""
    return EnvironmentRegistry.default()


@pytest.fixture
def dev_env(registry: EnvironmentRegistry) -> EnvironmentConfig:
    """The dev environment."""
    return registry.lookup("dev")


@pytest.fixture
def tst_env(registry: EnvironmentRegistry) -> EnvironmentConfig:
    """The tst environment."""
    return registry.lookup("tst")


@pytest.fixture
def stub_runner() -> StubRunner:
    """A psql runner double."""
    return StubRunner()


@pytest.fixture
def stub_verifier() -> StubVerifier:
    """A verifier double where every role connects."""
    return StubVerifier()


@pytest.fixture
def tracker() -> RecordingTracker:
    """A recording tracker."""
    return RecordingTracker()


@pytest.fixture
def make_runner() -> Callable[..., StubRunner]:
    """Factory for psql runner doubles (``fail_on``, ``available``)."""
    return StubRunner


@pytest.fixture
def make_verifier() -> Callable[..., StubVerifier]:
    """Factory for verifier doubles (``failing`` roles)."""
    return StubVerifier
