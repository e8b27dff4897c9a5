"""Tests for the command-line entry points."""

import json
from pathlib import Path

import pytest
import yaml

from pg_provisioner import cli
from pg_provisioner.core.exceptions import SecretsError, SqlExecutionError
from pg_provisioner.infrastructure.verification import RoleVerification
from pg_provisioner.provisioning import provisioner as provisioner_module
from pg_provisioner.provisioning.provisioner import (
    ProvisioningResult,
    ProvisioningStatus,
)


class _FakeProvisioner:
    """Provisioner double returning a canned result."""

    instances = []
    result = None

    def __init__(self, settings, assume_yes=False):
        self.settings = settings
        self.assume_yes = assume_yes
        self.environments = []
        _FakeProvisioner.instances.append(self)

    def run(self, environment):
        self.environments.append(environment)
        return _FakeProvisioner.result


@pytest.fixture
def fake_provisioner(monkeypatch):
    """Replace the provisioner used by the CLI."""
    _FakeProvisioner.instances = []
    _FakeProvisioner.result = ProvisioningResult(
        status=ProvisioningStatus.SUCCESS,
        environment="dev",
        output_files={"connection_config": Path("output/dev/billing-connections.yaml")},
        metadata={
            "host": "localhost",
            "port": 5432,
            "database": "go-labs-dev",
            "schema": "billing",
            "migration_user": "billing_migration_dev_user",
            "application_user": "billing_app_dev_user",
        },
    )
    monkeypatch.setattr(cli, "Provisioner", _FakeProvisioner)
    return _FakeProvisioner


@pytest.fixture
def config_dir(tmp_path):
    """An empty configuration directory."""
    path = tmp_path / "config"
    path.mkdir()
    return path


def test_missing_environment_is_usage_error(capsys):
    """Test running without an environment exits with code 1."""
    with pytest.raises(SystemExit) as exc_info:
        cli.main([])

    assert exc_info.value.code == 1
    assert "usage: provision" in capsys.readouterr().err


def test_unknown_environment_is_usage_error(capsys):
    """Test an unsupported environment exits with code 1 and lists choices."""
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["staging"])

    assert exc_info.value.code == 1
    err = capsys.readouterr().err
    assert "invalid choice" in err
    assert "dev" in err and "prd" in err


def test_success_summary(fake_provisioner, config_dir, capsys):
    """Test a successful run prints the summary and exits 0."""
    code = cli.main(
        ["dev", "--yes", "--config-dir", str(config_dir), "--output-dir", "out"]
    )

    assert code == 0
    out = capsys.readouterr().out
    assert "Database provisioning complete!" in out
    assert "Database: go-labs-dev" in out
    assert "Server: localhost:5432" in out
    assert "Migration User: billing_migration_dev_user" in out
    assert "Next steps:" in out

    instance = fake_provisioner.instances[0]
    assert instance.assume_yes is True
    assert instance.environments == ["dev"]
    assert instance.settings.config_dir == str(config_dir)
    assert instance.settings.output_dir == "out"


def test_settings_from_config_dir(fake_provisioner, config_dir, monkeypatch):
    """Test settings merge defaults, environment file and PGPROV_ variables."""
    (config_dir / "defaults").mkdir()
    (config_dir / "environments").mkdir()
    (config_dir / "defaults" / "provisioner.yaml").write_text(
        yaml.safe_dump({"service_name": "ledger", "schema_name": "ledger"})
    )
    (config_dir / "environments" / "prd.yaml").write_text(
        yaml.safe_dump({"provisioner": {"sslmode": "require"}})
    )
    monkeypatch.setenv("PGPROV_COMMAND_TIMEOUT_SECONDS", "60")

    cli.main(["prd", "--config-dir", str(config_dir)])

    settings = fake_provisioner.instances[0].settings
    assert settings.service_name == "ledger"
    assert settings.sslmode == "require"
    assert settings.command_timeout_seconds == 60
    assert fake_provisioner.instances[0].assume_yes is False


def test_invalid_settings_exit_1(fake_provisioner, config_dir, capsys):
    """Test invalid settings are reported without running the provisioner."""
    (config_dir / "defaults").mkdir()
    (config_dir / "defaults" / "provisioner.yaml").write_text("schema_name: Bad-Name\n")

    code = cli.main(["dev", "--config-dir", str(config_dir)])

    assert code == 1
    assert fake_provisioner.instances == []
    assert "Error:" in capsys.readouterr().err


def test_cancelled_summary(fake_provisioner, config_dir, capsys):
    """Test a declined run exits 0 with the cancellation message."""
    fake_provisioner.result = ProvisioningResult(
        status=ProvisioningStatus.CANCELLED, environment="tst"
    )

    code = cli.main(["tst", "--config-dir", str(config_dir)])

    assert code == 0
    assert "Provisioning cancelled. No changes were made." in capsys.readouterr().out


def test_failure_reports_stage_and_exit_code(fake_provisioner, config_dir, capsys):
    """Test a failed run prints the failing stage to stderr."""
    error = SecretsError("Required passwords not set").with_step("load_secrets")
    fake_provisioner.result = ProvisioningResult(
        status=ProvisioningStatus.FAILED, environment="dev", error=error
    )

    code = cli.main(["dev", "--config-dir", str(config_dir)])

    assert code == 1
    err = capsys.readouterr().err
    assert "Provisioning failed at stage load_secrets" in err


def test_summary_with_warnings():
    """Test the summary names roles that could not connect."""
    result = ProvisioningResult(
        status=ProvisioningStatus.SUCCESS_WITH_WARNINGS,
        environment="dev",
        verifications=[
            RoleVerification(role="migration", user="m_user", success=True),
            RoleVerification(role="application", user="a_user", success=False),
        ],
    )

    summary = cli.format_summary(result)

    assert "complete with warnings (a_user could not connect)" in summary


def test_dependencies_lists_provisioned_services(fake_provisioner, config_dir, capsys):
    """Test provision-dependencies prints the provisioned services."""
    code = cli.dependencies_main(["qua", "-y", "--config-dir", str(config_dir)])

    assert code == 0
    out = capsys.readouterr().out
    assert "Application dependencies provisioned for qua." in out
    assert "  - PostgreSQL: Database with schemas and users" in out


def test_dependencies_all_declined(fake_provisioner, config_dir, capsys):
    """Test declining every dependency reports that nothing was provisioned."""
    fake_provisioner.result = ProvisioningResult(
        status=ProvisioningStatus.CANCELLED, environment="tst"
    )

    code = cli.dependencies_main(["tst", "--config-dir", str(config_dir)])

    assert code == 0
    out = capsys.readouterr().out
    assert "No application dependencies were provisioned for tst." in out
    assert "Application dependencies provisioned" not in out
    assert "Provisioned services:" not in out

def test_dependencies_failure_exit_code(fake_provisioner, config_dir, capsys):
    """Test provision-dependencies propagates the failing exit code."""
    fake_provisioner.result = ProvisioningResult(
        status=ProvisioningStatus.FAILED,
        environment="qua",
        error=SqlExecutionError("psql exited with code 3").with_step(
            "execute_create_database"
        ),
    )

    code = cli.dependencies_main(["qua", "--config-dir", str(config_dir)])

    assert code == 2
    assert "Provisioned services:" not in capsys.readouterr().out


def test_end_to_end_with_stubbed_database(
    monkeypatch, tmp_path, config_dir, stub_runner, stub_verifier, capsys
):
    """Test the full command with psql and the driver replaced by doubles."""
    (config_dir / ".env.dev").write_text(
        "POSTGRES_ADMIN_PASSWORD=admin-pw\n"
        "BILLING_MIGRATION_PASSWORD=migr-pw\n"
        "BILLING_APP_PASSWORD=app-pw\n"
    )
    monkeypatch.setattr(provisioner_module, "PsqlRunner", lambda **_: stub_runner)
    monkeypatch.setattr(
        provisioner_module, "ConnectionVerifier", lambda **_: stub_verifier
    )
    output_dir = tmp_path / "generated"

    code = cli.main(
        [
            "dev",
            "--yes",
            "--config-dir",
            str(config_dir),
            "--output-dir",
            str(output_dir),
            "--log-level",
            "debug",
        ]
    )

    assert code == 0
    assert len(stub_runner.executed) == 2
    connection_file = output_dir / "dev" / "billing-connections.yaml"
    assert f"Connection config: {connection_file}" in capsys.readouterr().out
    record = yaml.safe_load(connection_file.read_text())
    assert record["migration"]["password"] == "migr-pw"


def test_one_correlation_id_per_invocation(
    monkeypatch, config_dir, stub_runner, stub_verifier, tmp_path, capsys
):
    """Test every log line of one command shares a single correlation ID."""
    (config_dir / ".env.dev").write_text(
        "POSTGRES_ADMIN_PASSWORD=admin-pw\n"
        "BILLING_MIGRATION_PASSWORD=migr-pw\n"
        "BILLING_APP_PASSWORD=app-pw\n"
    )
    monkeypatch.setattr(provisioner_module, "PsqlRunner", lambda **_: stub_runner)
    monkeypatch.setattr(
        provisioner_module, "ConnectionVerifier", lambda **_: stub_verifier
    )

    code = cli.main(
        [
            "dev",
            "--yes",
            "--config-dir",
            str(config_dir),
            "--output-dir",
            str(tmp_path / "generated"),
            "--log-level",
            "debug",
            "--log-format",
            "json",
        ]
    )

    assert code == 0
    entries = [
        json.loads(line)
        for line in capsys.readouterr().err.splitlines()
        if line.startswith("{")
    ]
    assert len({entry["logger"] for entry in entries}) > 1
    assert len({entry["context"]["correlation_id"] for entry in entries}) == 1
