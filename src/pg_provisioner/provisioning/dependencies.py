"""Provisioning of every service dependency for an environment.

Each dependency (currently PostgreSQL only) registers a callable that
provisions it for one environment and returns a
:class:`~pg_provisioner.provisioning.provisioner.ProvisioningResult`. The
dependencies run in registration order and the first failure stops the run.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from pg_provisioner.core.config.models import VALID_ENVIRONMENTS
from pg_provisioner.core.exceptions import UsageError
from pg_provisioner.provisioning.provisioner import (
    ProvisioningResult,
    ProvisioningStatus,
)
from pg_provisioner.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DependencyProvisioner:
    """A service dependency that can be provisioned for an environment.

    Attributes:
        name: Short name shown to the operator
        description: What gets provisioned
        provision: Callable running the provisioning for an environment
    """

    name: str
    description: str
    provision: Callable[[str], ProvisioningResult]


@dataclass
class DependenciesResult:
    """Outcome of provisioning all dependencies for an environment."""

    environment: str
    results: List[ProvisioningResult] = field(default_factory=list)
    provisioned: List[DependencyProvisioner] = field(default_factory=list)
    failed: Optional[DependencyProvisioner] = None

    @property
    def success(self) -> bool:
        """Whether every dependency completed (or was declined)."""
        return self.failed is None

    @property
    def exit_code(self) -> int:
        """Process exit code: that of the failing dependency, else 0."""
        for result in self.results:
            if result.exit_code:
                return result.exit_code
        return 0


def provision_dependencies(
    environment: str, dependencies: Sequence[DependencyProvisioner]
) -> DependenciesResult:
    """Provision ``dependencies`` for ``environment`` in order.

    Args:
        environment: Environment identifier
        dependencies: Registered dependencies

    Returns:
        Per-dependency results up to the first failure

    Raises:
        UsageError: If the environment identifier is not supported
    """
    if environment not in VALID_ENVIRONMENTS:
        raise UsageError(
            f"Invalid environment: {environment}",
            context={"valid": ", ".join(VALID_ENVIRONMENTS)},
        )

    outcome = DependenciesResult(environment=environment)
    logger.info(f"Starting application dependencies provisioning for {environment}")

    for dependency in dependencies:
        with LogContext(dependency=dependency.name):
            logger.info(f"Configuring {dependency.name} dependencies")
            result = dependency.provision(environment)
            outcome.results.append(result)

            if result.status == ProvisioningStatus.FAILED:
                logger.error(f"{dependency.name} provisioning failed")
                outcome.failed = dependency
                break
            if result.status == ProvisioningStatus.CANCELLED:
                logger.warning(f"{dependency.name} provisioning was cancelled")
                continue
            outcome.provisioned.append(dependency)
            logger.info(f"{dependency.name} dependencies configured")

    return outcome
