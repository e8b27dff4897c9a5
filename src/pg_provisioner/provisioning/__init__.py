"""Provisioning runs for one environment."""

from pg_provisioner.provisioning.dependencies import (
    DependenciesResult,
    DependencyProvisioner,
    provision_dependencies,
)
from pg_provisioner.provisioning.provisioner import (
    Provisioner,
    ProvisioningResult,
    ProvisioningStage,
    ProvisioningStatus,
    confirmation_prompt,
    is_confirmed,
)

__all__ = [
    "DependenciesResult",
    "DependencyProvisioner",
    "Provisioner",
    "ProvisioningResult",
    "ProvisioningStage",
    "ProvisioningStatus",
    "confirmation_prompt",
    "is_confirmed",
    "provision_dependencies",
]
