"""Configuration management for the provisioner.

This module provides type-safe configuration loading and validation using
Pydantic models, loading from YAML files, environment variables and
explicit overrides, plus the per-environment secret file loader.

Classes:
    ConfigLoader: Load and merge configurations from multiple sources

Pydantic Models:
    EnvironmentConfig: Connection and safety parameters of one environment
    ProvisionerSettings: Tool settings
    SecretBundle: Per-environment credentials
"""

from pg_provisioner.core.config.loader import ConfigLoader
from pg_provisioner.core.config.models import (
    VALID_ENVIRONMENTS,
    EnvironmentConfig,
    PoolSettings,
    ProvisionerSettings,
    SecretBundle,
)
from pg_provisioner.core.config.secrets import load_secret_bundle

__all__ = [
    "ConfigLoader",
    "EnvironmentConfig",
    "PoolSettings",
    "ProvisionerSettings",
    "SecretBundle",
    "VALID_ENVIRONMENTS",
    "load_secret_bundle",
]
