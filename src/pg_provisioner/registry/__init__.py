"""Registry of deployment environments."""

from pg_provisioner.registry.environments import EnvironmentRegistry

__all__ = ["EnvironmentRegistry"]
