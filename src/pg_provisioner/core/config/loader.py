"""Configuration loader with support for multiple sources.

This module loads the provisioner's typed settings and merges them from:
- A defaults YAML file (``<config_dir>/defaults/<file>``)
- An environment-specific YAML file (``<config_dir>/environments/<env>.yaml``)
- Environment variables with a prefix (``PGPROV_...``)
- Explicit overrides (typically command-line options)

Values of the form ``${VAR_NAME}`` are substituted from the process
environment after merging.

Classes:
    ConfigLoader: Load and merge configurations from multiple sources
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

import yaml
from pydantic import BaseModel, ValidationError

from pg_provisioner.core.config.models import VALID_ENVIRONMENTS
from pg_provisioner.core.exceptions import ConfigurationError
from pg_provisioner.utils.logging import StructuredLogger, get_logger

T = TypeVar("T", bound=BaseModel)


class ConfigLoader:
    """Load and merge configurations from multiple sources.

    Configuration priority (highest to lowest):
    1. Explicit overrides passed to load()
    2. Environment variables
    3. Environment-specific config file (e.g., config/environments/prd.yaml)
    4. Default config file (e.g., config/defaults/provisioner.yaml)
    5. Model defaults

    Attributes:
        config_dir: Directory containing configuration files
        environment: Environment being provisioned (dev, tst, qua, prd)

    Example:
        >>> loader = ConfigLoader(config_dir="config", environment="dev")
        >>> settings = loader.load(
        ...     ProvisionerSettings,
        ...     config_file="provisioner.yaml",
        ...     overrides={"output_dir": "/tmp/out"},
        ...     env_prefix="PGPROV_",
        ... )
    """

    def __init__(
        self, config_dir: Union[str, Path] = "config", environment: str = "dev"
    ) -> None:
        """Initialize the configuration loader.

        Args:
            config_dir: Directory containing configuration files
            environment: Environment being provisioned

        Raises:
            ValueError: If environment is invalid
        """
        if environment not in VALID_ENVIRONMENTS:
            raise ValueError(
                f"Invalid environment: {environment}. "
                f"Must be one of: {', '.join(VALID_ENVIRONMENTS)}"
            )

        self.config_dir = Path(config_dir)
        self.environment = environment
        self._logger: StructuredLogger = get_logger(__name__)

        self._logger.debug(
            f"Initialized ConfigLoader: dir={self.config_dir}, env={environment}"
        )

    def load(
        self,
        model_class: Type[T],
        config_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        use_env_vars: bool = True,
        env_prefix: str = "",
    ) -> T:
        """Load configuration from all sources.

        Args:
            model_class: Pydantic model class to instantiate
            config_file: Optional config file name (relative to config_dir)
            overrides: Optional dictionary of override values; ``None`` values
                are ignored so unset CLI options do not mask other sources
            use_env_vars: Whether to load from environment variables
            env_prefix: Prefix for environment variables (e.g., "PGPROV_")

        Returns:
            Instantiated and validated Pydantic model

        Raises:
            ConfigurationError: If a file cannot be parsed or validation fails
        """
        merged_config: Dict[str, Any] = {}

        if config_file:
            default_path = self.config_dir / "defaults" / config_file
            if default_path.exists():
                self._logger.debug(f"Loading defaults from {default_path}")
                merged_config = self._deep_merge(
                    merged_config, self._load_yaml(default_path)
                )

            env_path = self.config_dir / "environments" / f"{self.environment}.yaml"
            if env_path.exists():
                self._logger.debug(f"Loading environment config from {env_path}")
                env_config = self._load_yaml(env_path)
                section = Path(config_file).stem
                if section in env_config and isinstance(env_config[section], dict):
                    env_config = env_config[section]
                merged_config = self._deep_merge(merged_config, env_config)

        if use_env_vars:
            merged_config = self._deep_merge(
                merged_config, self._load_from_env(model_class, env_prefix)
            )

        if overrides:
            explicit = {k: v for k, v in overrides.items() if v is not None}
            self._logger.debug(f"Applying overrides: {sorted(explicit)}")
            merged_config = self._deep_merge(merged_config, explicit)

        merged_config = self._substitute_env_vars(merged_config)

        try:
            return model_class(**merged_config)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid {model_class.__name__}",
                context={"environment": self.environment},
                original_error=e,
            ) from e

    def _load_yaml(self, file_path: Path) -> Dict[str, Any]:
        """Load a YAML mapping from ``file_path``.

        Raises:
            ConfigurationError: If the file is not valid YAML or not a mapping
        """
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                "Failed to read config file",
                context={"path": str(file_path)},
                original_error=e,
            ) from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigurationError(
                f"Expected YAML to parse to a mapping, got {type(config).__name__}",
                context={"path": str(file_path)},
            )
        return config

    def _load_from_env(self, model_class: Type[T], prefix: str = "") -> Dict[str, Any]:
        """Collect ``<PREFIX><FIELD>`` environment variables for the model fields.

        Values are passed through as strings (pydantic coerces scalars);
        values that look like JSON objects or arrays are decoded so nested
        models can be set from one variable.
        """
        config: Dict[str, Any] = {}
        for field_name in model_class.model_fields:
            env_value = os.environ.get(f"{prefix}{field_name.upper()}")
            if env_value is None:
                continue
            if env_value.startswith(("{", "[")):
                try:
                    config[field_name] = json.loads(env_value)
                    continue
                except json.JSONDecodeError:
                    pass
            config[field_name] = env_value
        return config

    def _deep_merge(
        self, base: Dict[str, Any], override: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Recursively merge ``override`` into a copy of ``base``."""
        result = base.copy()
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _substitute_env_vars(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Replace ``${VAR_NAME}`` values with the environment variable value.

        Unset variables keep the original value and log a warning.
        """
        result: Dict[str, Any] = {}
        for key, value in config.items():
            new_value: Any = value
            if isinstance(value, dict):
                new_value = self._substitute_env_vars(value)
            elif (
                isinstance(value, str)
                and value.startswith("${")
                and value.endswith("}")
            ):
                env_var_name = value[2:-1]
                env_value = os.environ.get(env_var_name)
                if env_value is not None:
                    new_value = env_value
                else:
                    self._logger.warning(
                        f"Environment variable {env_var_name} not found, "
                        f"keeping original value: {value}"
                    )
            result[key] = new_value
        return result
