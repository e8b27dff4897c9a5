"""Tests for the psql runner."""

import os
import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest
from pydantic import SecretStr

from pg_provisioner.core.exceptions import ConfigurationError, SqlExecutionError
from pg_provisioner.infrastructure import psql as psql_module
from pg_provisioner.infrastructure.psql import PsqlRunner, scrub_secrets


@pytest.fixture
def fake_run(monkeypatch):
    """Replace subprocess.run and capture its calls."""
    calls = []
    outcome = {"returncode": 0, "stdout": "CREATE ROLE\n", "stderr": ""}

    def _run(command, **kwargs):
        calls.append((command, kwargs))
        if "raise" in outcome:
            raise outcome["raise"]
        return SimpleNamespace(
            returncode=outcome["returncode"],
            stdout=outcome["stdout"],
            stderr=outcome["stderr"],
        )

    monkeypatch.setattr(psql_module.subprocess, "run", _run)
    return SimpleNamespace(calls=calls, outcome=outcome)


def test_build_command(dev_env):
    """Test the psql argument vector."""
    runner = PsqlRunner(maintenance_database="postgres")
    command = runner.build_command(dev_env, Path("/out/dev/01-create-database.sql"))
    assert command == [
        "psql",
        "--no-psqlrc",
        "--no-password",
        "-v",
        "ON_ERROR_STOP=1",
        "-h",
        "localhost",
        "-p",
        "5432",
        "-U",
        "postgres",
        "-d",
        "postgres",
        "-f",
        "/out/dev/01-create-database.sql",
    ]


def test_execute_passes_password_through_child_env(fake_run, dev_env, monkeypatch):
    """Test the admin password only reaches the child environment."""
    monkeypatch.delenv("PGPASSWORD", raising=False)
    runner = PsqlRunner(timeout_seconds=42)

    result = runner.execute_file(dev_env, "/tmp/a.sql", SecretStr("s3cret"))

    command, kwargs = fake_run.calls[0]
    assert command[-1] == "/tmp/a.sql"
    assert kwargs["env"]["PGPASSWORD"] == "s3cret"
    assert kwargs["timeout"] == 42
    assert kwargs["stdin"] is subprocess.DEVNULL
    assert result.returncode == 0
    assert result.sql_file == Path("/tmp/a.sql")
    assert "PGPASSWORD" not in os.environ


def test_nonzero_exit_raises_with_scrubbed_stderr(fake_run, dev_env):
    """Test a failing psql raises with stderr and no secrets."""
    fake_run.outcome.update(
        returncode=3,
        stderr="ERROR: syntax error at PASSWORD 'app-pw' near 's3cret'\n",
    )
    runner = PsqlRunner()

    with pytest.raises(SqlExecutionError) as exc_info:
        runner.execute_file(
            dev_env, "/tmp/b.sql", SecretStr("s3cret"), redact=("app-pw",)
        )

    message = str(exc_info.value)
    assert "code 3" in message
    assert "/tmp/b.sql" in message
    assert "syntax error" in message
    assert "s3cret" not in message
    assert "app-pw" not in message
    assert exc_info.value.exit_code == 2


def test_timeout_raises(fake_run, dev_env):
    """Test a timeout raises SqlExecutionError."""
    fake_run.outcome["raise"] = subprocess.TimeoutExpired(cmd="psql", timeout=5)
    runner = PsqlRunner(timeout_seconds=5)

    with pytest.raises(SqlExecutionError, match="timed out after 5s"):
        runner.execute_file(dev_env, "/tmp/c.sql", SecretStr("pw"))


def test_missing_binary_at_execution_raises(fake_run, dev_env):
    """Test failing to start psql raises SqlExecutionError."""
    fake_run.outcome["raise"] = FileNotFoundError("psql")

    with pytest.raises(SqlExecutionError, match="Failed to start psql"):
        PsqlRunner().execute_file(dev_env, "/tmp/d.sql", SecretStr("pw"))


def test_execute_emits_tracker_event(fake_run, dev_env, tracker):
    """Test successful execution is reported to the tracker."""
    PsqlRunner(tracker=tracker).execute_file(dev_env, "/tmp/e.sql", SecretStr("pw"))
    assert tracker.names() == ["sql_executed"]


def test_check_available(monkeypatch):
    """Test psql resolution on PATH."""
    monkeypatch.setattr(psql_module.shutil, "which", lambda name: f"/usr/bin/{name}")
    assert PsqlRunner().check_available() == "/usr/bin/psql"


def test_check_available_missing(monkeypatch):
    """Test a missing psql is a configuration error."""
    monkeypatch.setattr(psql_module.shutil, "which", lambda name: None)
    with pytest.raises(ConfigurationError, match="psql"):
        PsqlRunner(psql_path="/opt/pg/bin/psql").check_available()


def test_invalid_timeout():
    """Test a non-positive timeout is rejected."""
    with pytest.raises(ValueError):
        PsqlRunner(timeout_seconds=0)


def test_scrub_secrets_ignores_empty_values():
    """Test scrubbing replaces each secret and ignores empty ones."""
    assert scrub_secrets("a b a", ["a", ""]) == "*** b ***"
