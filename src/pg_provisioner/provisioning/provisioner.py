"""Provisioning of a service database for one environment.

This module implements the provisioning run as a strictly sequential stage
machine. Every stage either completes or ends the run: the error is tagged
with the failing stage, reported to the tracker, and returned in the result.
Nothing is retried and partial side effects are not rolled back.

Classes:
    ProvisioningStage: Ordered stages of a run
    ProvisioningStatus: Outcome of a run
    ProvisioningResult: Result of a run
    Provisioner: Runs the stages for one environment
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from pg_provisioner.core.base.tracking import (
    ExecutionEventTracker,
    emit_tracker_event,
)
from pg_provisioner.core.config.models import (
    VALID_ENVIRONMENTS,
    EnvironmentConfig,
    ProvisionerSettings,
    SecretBundle,
)
from pg_provisioner.core.config.secrets import (
    APPLICATION_PASSWORD_KEY,
    MIGRATION_PASSWORD_KEY,
    load_secret_bundle,
)
from pg_provisioner.core.exceptions import (
    ProvisioningError,
    UsageError,
    VerificationError,
)
from pg_provisioner.infrastructure.psql import PsqlRunner
from pg_provisioner.infrastructure.verification import (
    ConnectionVerifier,
    RoleVerification,
)
from pg_provisioner.output.connection_config import (
    build_connection_config,
    ensure_private_dir,
    write_connection_config,
    write_private_file,
)
from pg_provisioner.registry.environments import EnvironmentRegistry
from pg_provisioner.templates.loader import (
    CREATE_DATABASE_TEMPLATE,
    CREATE_USERS_TEMPLATE,
    load_template,
)
from pg_provisioner.templates.renderer import TemplateRenderer
from pg_provisioner.utils.logging import LogContext, StructuredLogger, get_logger

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

T = TypeVar("T")

PromptFunc = Callable[[str], str]
ClockFunc = Callable[[], datetime]


class ProvisioningStage(Enum):
    """Stages of a provisioning run, in execution order."""

    VALIDATE_ARGS = "validate_args"
    LOOKUP_ENV = "lookup_env"
    CHECK_PREREQUISITES = "check_prerequisites"
    LOAD_SECRETS = "load_secrets"
    CONFIRM = "confirm"
    RENDER_TEMPLATES = "render_templates"
    EXECUTE_CREATE_DATABASE = "execute_create_database"
    EXECUTE_CREATE_USERS = "execute_create_users"
    WRITE_CONNECTION_CONFIG = "write_connection_config"
    VERIFY_CONNECTIONS = "verify_connections"
    DONE = "done"


class ProvisioningStatus(Enum):
    """Outcome of a provisioning run."""

    SUCCESS = "success"
    SUCCESS_WITH_WARNINGS = "success_with_warnings"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ProvisioningResult:
    """Result of a provisioning run.

    Attributes:
        status: Outcome of the run
        environment: Environment identifier the run was for
        start_time: When the run started
        end_time: When the run ended
        duration_seconds: Total run time in seconds
        stages_completed: Stages that completed, in order
        stage_metrics: Per-stage metrics (``duration_seconds``)
        output_files: Generated files keyed by kind
        verifications: Login check per role
        error: Error that ended the run, if it failed
        metadata: Names and endpoint of what was provisioned
    """

    status: ProvisioningStatus
    environment: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_seconds: float = 0.0
    stages_completed: List[str] = field(default_factory=list)
    stage_metrics: Dict[str, Dict[str, float]] = field(default_factory=dict)
    output_files: Dict[str, Path] = field(default_factory=dict)
    verifications: List[RoleVerification] = field(default_factory=list)
    error: Optional[ProvisioningError] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Calculate duration if start and end times are provided."""
        if self.start_time and self.end_time:
            self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    @property
    def exit_code(self) -> int:
        """Process exit code for this result."""
        if self.status == ProvisioningStatus.FAILED:
            return self.error.exit_code if self.error else 1
        return 0

    @property
    def failed_stage(self) -> Optional[str]:
        """Stage that ended a failed run."""
        return self.error.step if self.error else None


def is_confirmed(answer: str, environment: EnvironmentConfig) -> bool:
    """Return whether ``answer`` confirms provisioning ``environment``.

    Destructive environments require the identifier itself; others accept
    ``y`` or ``yes`` in any case.
    """
    reply = answer.strip()
    if environment.allow_drop:
        return reply == environment.name
    return reply.lower() in ("y", "yes")


def confirmation_prompt(environment: EnvironmentConfig, database: str) -> str:
    """Return the confirmation prompt shown before any change is made."""
    target = f"{database} on {environment.host}:{environment.port}"
    if environment.allow_drop:
        return (
            f"WARNING: {environment.description} ({environment.name}): "
            f"this will DROP and recreate {target}. All data will be lost.\n"
            f"Type '{environment.name}' to continue: "
        )
    return (
        f"{environment.description} ({environment.name}): provisioning {target}. "
        "Existing databases will NOT be dropped.\n"
        "Continue? [y/N]: "
    )


class Provisioner:
    """Provision the service database, roles and schema for one environment.

    The run executes these stages in order:
        1. Validate the environment argument.
        2. Look up the environment in the registry.
        3. Check that psql is available.
        4. Load the environment's secret file.
        5. Ask the operator to confirm.
        6. Render both SQL templates into the output directory.
        7. Create the database.
        8. Create the roles, schema and grants.
        9. Write the connection configuration.
        10. Verify that both roles can log in.

    Example:
        >>> settings = ProvisionerSettings(output_dir="/tmp/out")
        >>> result = Provisioner(settings, assume_yes=True).run("dev")
        >>> result.status
        <ProvisioningStatus.SUCCESS: 'success'>
    """

    def __init__(
        self,
        settings: ProvisionerSettings,
        registry: Optional[EnvironmentRegistry] = None,
        runner: Optional[PsqlRunner] = None,
        verifier: Optional[ConnectionVerifier] = None,
        prompt: Optional[PromptFunc] = None,
        assume_yes: bool = False,
        clock: Optional[ClockFunc] = None,
        tracker: Optional[ExecutionEventTracker] = None,
    ) -> None:
        """Initialize the provisioner.

        Args:
            settings: Tool settings
            registry: Environment registry; loaded from settings when omitted
            runner: psql runner; built from settings when omitted
            verifier: Login verifier; built from settings when omitted
            prompt: Callable that shows a prompt and returns the operator's
                answer (defaults to :func:`input`)
            assume_yes: Skip the confirmation prompt
            clock: Callable returning the current local time
            tracker: Optional execution event tracker
        """
        self.settings = settings
        self._registry = registry
        self.runner = runner or PsqlRunner(
            psql_path=settings.psql_path,
            timeout_seconds=settings.command_timeout_seconds,
            maintenance_database=settings.maintenance_database,
            tracker=tracker,
        )
        self.verifier = verifier or ConnectionVerifier(
            connect_timeout=settings.connect_timeout_seconds,
            sslmode=settings.sslmode,
        )
        self.prompt: PromptFunc = prompt or input
        self.assume_yes = assume_yes
        self.clock: ClockFunc = clock or datetime.now
        self.renderer = TemplateRenderer(strict=settings.strict_templates)
        self._tracker = tracker
        self.logger: StructuredLogger = get_logger(__name__)
        self._reset("")

    def _reset(self, environment: str) -> None:
        self._environment_id = environment
        self._environment: Optional[EnvironmentConfig] = None
        self._secrets: Optional[SecretBundle] = None
        self._timestamp = ""
        self._current_stage: Optional[ProvisioningStage] = None
        self._stages_completed: List[str] = []
        self._stage_metrics: Dict[str, Dict[str, float]] = {}
        self._output_files: Dict[str, Path] = {}
        self._verifications: List[RoleVerification] = []

    # ------------------------------------------------------------------
    # Derived names
    # ------------------------------------------------------------------
    @property
    def environment(self) -> EnvironmentConfig:
        """Environment being provisioned (available after LOOKUP_ENV)."""
        if self._environment is None:
            raise RuntimeError("Environment has not been looked up yet")
        return self._environment

    @property
    def secrets(self) -> SecretBundle:
        """Secrets of the run (available after LOAD_SECRETS)."""
        if self._secrets is None:
            raise RuntimeError("Secrets have not been loaded yet")
        return self._secrets

    @property
    def output_dir(self) -> Path:
        """Directory the run writes to."""
        return self.settings.environment_output_dir(self._environment_id)

    def template_variables(self) -> Dict[str, str]:
        """Return the token values the SQL templates are rendered with."""
        env = self.environment
        return {
            "ENV": env.name,
            "ENV_DESCRIPTION": env.description,
            "TIMESTAMP": self._timestamp,
            "DATABASE_NAME": self.settings.database_name(env.name),
            "SCHEMA_NAME": self.settings.schema_name,
            "MIGRATION_USER": self.settings.migration_user(env.name),
            "APPLICATION_USER": self.settings.application_user(env.name),
            MIGRATION_PASSWORD_KEY: self.secrets.migration_password.get_secret_value(),
            APPLICATION_PASSWORD_KEY: (
                self.secrets.application_password.get_secret_value()
            ),
        }

    # ------------------------------------------------------------------
    # Run orchestration
    # ------------------------------------------------------------------
    def _emit_event(self, event: str, payload: Dict[str, Any]) -> None:
        base_payload: Dict[str, Any] = {
            "environment": self._environment_id,
            "stage": self._current_stage.value if self._current_stage else None,
        }
        base_payload.update(payload)
        emit_tracker_event(
            tracker=self._tracker,
            component=self.__class__.__name__,
            event=event,
            payload=base_payload,
        )

    def run(self, environment: str) -> ProvisioningResult:
        """Provision ``environment``.

        Args:
            environment: Environment identifier (dev, tst, qua, prd)

        Returns:
            Result of the run; failures are reported through ``status`` and
            ``error`` rather than raised
        """
        self._reset(environment if isinstance(environment, str) else "")
        start_time = datetime.now(timezone.utc)
        self._timestamp = self.clock().strftime(TIMESTAMP_FORMAT)
        self._emit_event("run_start", {"timestamp": start_time.isoformat()})

        with LogContext(environment=self._environment_id or None):
            try:
                self._execute_stage(
                    ProvisioningStage.VALIDATE_ARGS,
                    lambda: self._validate_args(environment),
                )
                self._execute_stage(ProvisioningStage.LOOKUP_ENV, self._lookup_env)
                self._execute_stage(
                    ProvisioningStage.CHECK_PREREQUISITES, self._check_prerequisites
                )
                self._execute_stage(ProvisioningStage.LOAD_SECRETS, self._load_secrets)
                if not self._execute_stage(ProvisioningStage.CONFIRM, self._confirm):
                    self.logger.info("Provisioning cancelled by operator")
                    return self._finish(start_time, ProvisioningStatus.CANCELLED)
                self._execute_stage(
                    ProvisioningStage.RENDER_TEMPLATES, self._render_templates
                )
                self._execute_stage(
                    ProvisioningStage.EXECUTE_CREATE_DATABASE,
                    lambda: self._execute_sql("create_database"),
                )
                self._execute_stage(
                    ProvisioningStage.EXECUTE_CREATE_USERS,
                    lambda: self._execute_sql("create_users"),
                )
                self._execute_stage(
                    ProvisioningStage.WRITE_CONNECTION_CONFIG,
                    self._write_connection_config,
                )
                all_verified = self._execute_stage(
                    ProvisioningStage.VERIFY_CONNECTIONS, self._verify_connections
                )
                self._execute_stage(ProvisioningStage.DONE, lambda: None)
            except ProvisioningError as e:
                self.logger.error(f"Provisioning failed: {e}")
                return self._finish(start_time, ProvisioningStatus.FAILED, error=e)

        status = (
            ProvisioningStatus.SUCCESS
            if all_verified
            else ProvisioningStatus.SUCCESS_WITH_WARNINGS
        )
        self.logger.info(
            f"Provisioning completed for {self._environment_id}",
            extra={"status": status.value},
        )
        return self._finish(start_time, status)

    def _finish(
        self,
        start_time: datetime,
        status: ProvisioningStatus,
        error: Optional[ProvisioningError] = None,
    ) -> ProvisioningResult:
        end_time = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": end_time.isoformat(),
            "status": status.value,
            "stage_metrics": self._stage_metrics,
        }
        if error is not None:
            payload["error"] = str(error)
        self._emit_event("run_end", payload)

        metadata: Dict[str, Any] = {}
        if self._environment is not None:
            name = self._environment.name
            metadata = {
                "host": self._environment.host,
                "port": self._environment.port,
                "database": self.settings.database_name(name),
                "schema": self.settings.schema_name,
                "migration_user": self.settings.migration_user(name),
                "application_user": self.settings.application_user(name),
            }

        return ProvisioningResult(
            status=status,
            environment=self._environment_id,
            start_time=start_time,
            end_time=end_time,
            stages_completed=list(self._stages_completed),
            stage_metrics=dict(self._stage_metrics),
            output_files=dict(self._output_files),
            verifications=list(self._verifications),
            error=error,
            metadata=metadata,
        )

    def _execute_stage(
        self, stage: ProvisioningStage, stage_func: Callable[[], T]
    ) -> T:
        """Execute a single stage, tagging any failure with the stage name."""
        self._current_stage = stage
        self._emit_event(
            "stage_start",
            {"timestamp": datetime.now(timezone.utc).isoformat()},
        )
        stage_start = datetime.now(timezone.utc)

        with LogContext(stage=stage.value):
            self.logger.debug(f"Executing stage: {stage.value}")
            try:
                outcome = stage_func()
            except Exception as e:
                duration = (datetime.now(timezone.utc) - stage_start).total_seconds()
                self._stage_metrics[stage.value] = {"duration_seconds": duration}
                if isinstance(e, ProvisioningError):
                    error = e.with_step(stage.value)
                else:
                    error = ProvisioningError(
                        f"Unexpected error: {e}", original_error=e, step=stage.value
                    )
                    self.logger.exception(f"Stage failed: {stage.value}")
                self._emit_event(
                    "stage_error",
                    {
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                        "error": str(error),
                        "error_type": type(error).__name__,
                        "metrics": self._stage_metrics[stage.value],
                    },
                )
                if error is e:
                    raise
                raise error from e

            duration = (datetime.now(timezone.utc) - stage_start).total_seconds()
            self._stages_completed.append(stage.value)
            self._stage_metrics[stage.value] = {"duration_seconds": duration}
            self.logger.debug(f"Stage completed: {stage.value}")
            self._emit_event(
                "stage_end",
                {
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "metrics": self._stage_metrics[stage.value],
                },
            )
        return outcome

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _validate_args(self, environment: Any) -> None:
        if not isinstance(environment, str) or not environment.strip():
            raise UsageError(
                "Environment argument is required",
                context={"valid": ", ".join(VALID_ENVIRONMENTS)},
            )
        if environment not in VALID_ENVIRONMENTS:
            raise UsageError(
                f"Invalid environment: {environment}",
                context={"valid": ", ".join(VALID_ENVIRONMENTS)},
            )

    def _lookup_env(self) -> None:
        if self._registry is None:
            if self.settings.registry_file:
                self._registry = EnvironmentRegistry.from_yaml(
                    self.settings.registry_file
                )
            else:
                self._registry = EnvironmentRegistry.default()
        self._environment = self._registry.lookup(self._environment_id)
        self.logger.info(
            f"Environment: {self._environment.description}",
            extra={
                "host": self._environment.host,
                "port": self._environment.port,
                "allow_drop": self._environment.allow_drop,
            },
        )

    def _check_prerequisites(self) -> None:
        self.runner.check_available()

    def _load_secrets(self) -> None:
        secret_file = self.settings.secret_file(self._environment_id)
        self.logger.info(f"Loading secrets from {secret_file}")
        self._secrets = load_secret_bundle(secret_file)

    def _confirm(self) -> bool:
        env = self.environment
        database = self.settings.database_name(env.name)
        if env.allow_drop:
            self.logger.warning(
                f"{env.name} database {database} will be DROPPED and recreated"
            )
        else:
            self.logger.info("Existing databases will NOT be dropped")

        if self.assume_yes:
            self.logger.info("Confirmation skipped (--yes)")
            return True

        try:
            answer = self.prompt(confirmation_prompt(env, database))
        except EOFError:
            answer = ""
        return is_confirmed(answer, env)

    def _render_templates(self) -> None:
        env = self.environment
        variables = self.template_variables()
        directory = ensure_private_dir(self.output_dir)
        documents = (
            ("create_database", CREATE_DATABASE_TEMPLATE, "01-create-database.sql"),
            (
                "create_users",
                CREATE_USERS_TEMPLATE,
                f"02-create-{self.settings.service_name}-users.sql",
            ),
        )
        for kind, template_name, file_name in documents:
            template_text = load_template(template_name, self.settings.templates_dir)
            rendered = self.renderer.render(
                template_text, env.name, variables, name=template_name
            )
            path = write_private_file(directory / file_name, rendered)
            self._output_files[kind] = path
            self.logger.info(f"Rendered {file_name}", extra={"path": str(path)})

    def _execute_sql(self, kind: str) -> None:
        secrets = self.secrets
        self.runner.execute_file(
            self.environment,
            self._output_files[kind],
            secrets.admin_password,
            redact=(
                secrets.migration_password.get_secret_value(),
                secrets.application_password.get_secret_value(),
            ),
        )

    def _write_connection_config(self) -> None:
        env = self.environment
        record = build_connection_config(self.settings, env, self.secrets)
        path = write_connection_config(
            self.output_dir / f"{self.settings.service_name}-connections.yaml",
            record,
            env,
            self.settings.service_name,
            self._timestamp,
        )
        self._output_files["connection_config"] = path
        self.logger.info("Wrote connection configuration", extra={"path": str(path)})

    def _verify_connections(self) -> bool:
        env = self.environment
        database = self.settings.database_name(env.name)
        checks = (
            (
                "migration",
                self.settings.migration_user(env.name),
                self.secrets.migration_password,
            ),
            (
                "application",
                self.settings.application_user(env.name),
                self.secrets.application_password,
            ),
        )
        for role, user, password in checks:
            self._verifications.append(
                self.verifier.verify(
                    env, database, role, user, password, self.settings.schema_name
                )
            )

        failed = [v for v in self._verifications if not v.success]
        if not failed:
            return True
        if self.settings.verification_fatal:
            raise VerificationError(
                "Connection verification failed",
                context={"roles": ", ".join(v.user for v in failed)},
            )
        self.logger.warning(
            "Connection verification failed; continuing",
            extra={"roles": [v.user for v in failed]},
        )
        return False
