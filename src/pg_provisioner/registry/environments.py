"""Environment registry.

The registry is the closed mapping from an environment identifier to its
connection and safety parameters. The default definition ships with the
package as ``resources/environments.yaml``; operators can point the tool at
another definition file with the same shape.
"""

from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import ValidationError

from pg_provisioner.core.config.models import VALID_ENVIRONMENTS, EnvironmentConfig
from pg_provisioner.core.exceptions import ConfigurationError, EnvironmentNotFoundError
from pg_provisioner.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_REGISTRY_RESOURCE = "environments.yaml"


class EnvironmentRegistry:
    """Closed registry of deployment environments.

    Attributes:
        source: Where the definition was loaded from (for diagnostics)

    Example:
        >>> registry = EnvironmentRegistry.default()
        >>> registry.lookup("tst").allow_drop
        True
    """

    def __init__(
        self, environments: Dict[str, EnvironmentConfig], source: str = "<memory>"
    ) -> None:
        """Initialize the registry.

        Args:
            environments: Mapping of identifier to environment configuration
            source: Description of where the mapping came from

        Raises:
            ConfigurationError: If the mapping is not exactly the supported set
        """
        missing = [env for env in VALID_ENVIRONMENTS if env not in environments]
        unknown = [env for env in environments if env not in VALID_ENVIRONMENTS]
        if missing or unknown:
            raise ConfigurationError(
                "Environment registry must define exactly: "
                f"{', '.join(VALID_ENVIRONMENTS)}",
                context={"source": source, "missing": missing, "unknown": unknown},
            )
        for identifier, config in environments.items():
            if config.name != identifier:
                raise ConfigurationError(
                    f"Registry entry {identifier!r} is named {config.name!r}",
                    context={"source": source},
                )

        self.source = source
        self._environments = dict(environments)

    @classmethod
    def from_mapping(
        cls, data: Any, source: str = "<memory>"
    ) -> "EnvironmentRegistry":
        """Build a registry from a parsed definition document.

        The document must have an ``environments`` mapping whose keys are the
        identifiers and whose values hold the environment attributes.

        Raises:
            ConfigurationError: If the document is malformed
        """
        if not isinstance(data, dict) or not isinstance(
            data.get("environments"), dict
        ):
            raise ConfigurationError(
                "Environment registry must contain an 'environments' mapping",
                context={"source": source},
            )

        environments: Dict[str, EnvironmentConfig] = {}
        for identifier, attributes in data["environments"].items():
            if not isinstance(attributes, dict):
                raise ConfigurationError(
                    f"Registry entry {identifier!r} must be a mapping",
                    context={"source": source},
                )
            try:
                environments[str(identifier)] = EnvironmentConfig(
                    name=str(identifier), **attributes
                )
            except (ValidationError, TypeError) as e:
                raise ConfigurationError(
                    f"Invalid registry entry {identifier!r}",
                    context={"source": source},
                    original_error=e,
                ) from e
        return cls(environments, source=source)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "EnvironmentRegistry":
        """Load a registry definition from a YAML file.

        Raises:
            ConfigurationError: If the file cannot be read or is malformed
        """
        file_path = Path(path)
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                "Failed to read environment registry",
                context={"path": str(file_path)},
                original_error=e,
            ) from e
        return cls.from_mapping(data, source=str(file_path))

    @classmethod
    def default(cls) -> "EnvironmentRegistry":
        """Load the registry definition packaged with the tool."""
        text = (
            resources.files("pg_provisioner.resources")
            .joinpath(DEFAULT_REGISTRY_RESOURCE)
            .read_text(encoding="utf-8")
        )
        return cls.from_mapping(
            yaml.safe_load(text), source="package:environments.yaml"
        )

    def validate(self, identifier: object) -> bool:
        """Return True if ``identifier`` is a registered environment."""
        return isinstance(identifier, str) and identifier in self._environments

    def lookup(self, identifier: str) -> EnvironmentConfig:
        """Return the configuration for ``identifier``.

        Raises:
            EnvironmentNotFoundError: If the identifier is not registered
        """
        if not self.validate(identifier):
            raise EnvironmentNotFoundError(
                str(identifier), context={"valid": ", ".join(self.identifiers())}
            )
        return self._environments[identifier]

    def identifiers(self) -> List[str]:
        """Return the registered identifiers in declaration order."""
        return list(self._environments)

    def __contains__(self, identifier: object) -> bool:
        return self.validate(identifier)

    def __len__(self) -> int:
        return len(self._environments)
