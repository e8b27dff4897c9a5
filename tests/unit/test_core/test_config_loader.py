"""Tests for config loader."""

from pathlib import Path
from typing import Optional

import pytest
from pydantic import BaseModel

from pg_provisioner.core.config.loader import ConfigLoader
from pg_provisioner.core.config.models import ProvisionerSettings
from pg_provisioner.core.exceptions import ConfigurationError


class DummyConfig(BaseModel):
    """Dummy config for testing."""

    key: str
    count: int = 0
    nested: Optional[dict] = None


def _write_yaml(path: Path, content: str) -> None:
    """Write YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


def test_init_invalid_environment_raises():
    """Test init invalid environment raises."""
    with pytest.raises(ValueError):
        ConfigLoader(config_dir="irrelevant", environment="prod")


def test_load_from_defaults_only(tmp_path: Path):
    """Test loading from defaults only."""
    cfg_dir = tmp_path / "config"
    _write_yaml(
        cfg_dir / "defaults" / "test_config.yaml",
        "key: value\nnested:\n  a: 1\n  b: 2\n",
    )

    loader = ConfigLoader(config_dir=cfg_dir, environment="dev")
    cfg = loader.load(DummyConfig, config_file="test_config.yaml", use_env_vars=False)

    assert cfg.key == "value"
    assert cfg.nested == {"a": 1, "b": 2}


def test_environment_file_section_overrides_defaults(tmp_path: Path):
    """Test a named section of the environment file overrides defaults."""
    cfg_dir = tmp_path / "config"
    _write_yaml(
        cfg_dir / "defaults" / "test_config.yaml", "key: default\nnested:\n  a: 1\n"
    )
    _write_yaml(
        cfg_dir / "environments" / "tst.yaml",
        "test_config:\n  key: from_env_file\n  nested:\n    b: 2\n",
    )

    loader = ConfigLoader(config_dir=cfg_dir, environment="tst")
    cfg = loader.load(DummyConfig, config_file="test_config.yaml", use_env_vars=False)

    assert cfg.key == "from_env_file"
    assert cfg.nested == {"a": 1, "b": 2}


def test_environment_file_without_section_merges_all(tmp_path: Path):
    """Test an environment file without a section merges at top level."""
    cfg_dir = tmp_path / "config"
    _write_yaml(cfg_dir / "defaults" / "test_config.yaml", "key: default")
    _write_yaml(cfg_dir / "environments" / "qua.yaml", "count: 3")

    loader = ConfigLoader(config_dir=cfg_dir, environment="qua")
    cfg = loader.load(DummyConfig, config_file="test_config.yaml", use_env_vars=False)

    assert cfg.key == "default"
    assert cfg.count == 3


def test_env_vars_override_files(tmp_path: Path, monkeypatch):
    """Test prefixed environment variables override file values."""
    cfg_dir = tmp_path / "config"
    _write_yaml(cfg_dir / "defaults" / "test_config.yaml", "key: default\ncount: 1")
    monkeypatch.setenv("APP_COUNT", "42")
    monkeypatch.setenv("APP_NESTED", '{"x": 1}')

    loader = ConfigLoader(config_dir=cfg_dir, environment="dev")
    cfg = loader.load(DummyConfig, config_file="test_config.yaml", env_prefix="APP_")

    assert cfg.count == 42
    assert cfg.nested == {"x": 1}


def test_overrides_take_precedence_and_none_is_ignored(tmp_path: Path, monkeypatch):
    """Test explicit overrides win and None overrides are skipped."""
    monkeypatch.setenv("APP_KEY", "from_env")
    loader = ConfigLoader(config_dir=tmp_path, environment="dev")

    cfg = loader.load(
        DummyConfig, overrides={"key": "explicit", "count": None}, env_prefix="APP_"
    )

    assert cfg.key == "explicit"
    assert cfg.count == 0


def test_substitutes_env_var_references(tmp_path: Path, monkeypatch):
    """Test ${VAR} values are substituted from the environment."""
    cfg_dir = tmp_path / "config"
    _write_yaml(cfg_dir / "defaults" / "test_config.yaml", "key: ${TARGET_KEY}")
    monkeypatch.setenv("TARGET_KEY", "resolved")

    loader = ConfigLoader(config_dir=cfg_dir, environment="dev")
    cfg = loader.load(DummyConfig, config_file="test_config.yaml", use_env_vars=False)

    assert cfg.key == "resolved"


def test_unset_env_var_reference_is_kept(tmp_path: Path, monkeypatch):
    """Test an unset ${VAR} reference keeps its literal value."""
    monkeypatch.delenv("MISSING_KEY", raising=False)
    loader = ConfigLoader(config_dir=tmp_path, environment="dev")

    cfg = loader.load(DummyConfig, overrides={"key": "${MISSING_KEY}"})

    assert cfg.key == "${MISSING_KEY}"


def test_validation_error_becomes_configuration_error(tmp_path: Path):
    """Test invalid values raise ConfigurationError."""
    loader = ConfigLoader(config_dir=tmp_path, environment="dev")
    with pytest.raises(ConfigurationError, match="Invalid DummyConfig"):
        loader.load(DummyConfig, overrides={"count": "many"}, use_env_vars=False)


def test_malformed_yaml_raises_configuration_error(tmp_path: Path):
    """Test unparsable YAML raises ConfigurationError."""
    cfg_dir = tmp_path / "config"
    _write_yaml(cfg_dir / "defaults" / "test_config.yaml", "key: [unclosed")

    loader = ConfigLoader(config_dir=cfg_dir, environment="dev")
    with pytest.raises(ConfigurationError, match="Failed to read config file"):
        loader.load(DummyConfig, config_file="test_config.yaml")


def test_non_mapping_yaml_raises_configuration_error(tmp_path: Path):
    """Test a YAML list at top level raises ConfigurationError."""
    cfg_dir = tmp_path / "config"
    _write_yaml(cfg_dir / "defaults" / "test_config.yaml", "- a\n- b\n")

    loader = ConfigLoader(config_dir=cfg_dir, environment="dev")
    with pytest.raises(ConfigurationError, match="mapping"):
        loader.load(DummyConfig, config_file="test_config.yaml")


def test_loads_provisioner_settings(tmp_path: Path, monkeypatch):
    """Test loading the real settings model with the PGPROV_ prefix."""
    cfg_dir = tmp_path / "config"
    _write_yaml(
        cfg_dir / "defaults" / "provisioner.yaml",
        "service_name: billing\npool:\n  max_open_conns: 10\n",
    )
    _write_yaml(
        cfg_dir / "environments" / "prd.yaml",
        "provisioner:\n  sslmode: require\n",
    )
    monkeypatch.setenv("PGPROV_VERIFICATION_FATAL", "false")

    loader = ConfigLoader(config_dir=cfg_dir, environment="prd")
    settings = loader.load(
        ProvisionerSettings,
        config_file="provisioner.yaml",
        overrides={"output_dir": str(tmp_path / "out")},
        env_prefix="PGPROV_",
    )

    assert settings.sslmode == "require"
    assert settings.pool.max_open_conns == 10
    assert settings.pool.max_idle_conns == 5
    assert settings.verification_fatal is False
    assert settings.output_dir == str(tmp_path / "out")
