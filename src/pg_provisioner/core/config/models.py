"""Pydantic models for type-safe configuration.

Models:
    EnvironmentConfig: Connection and safety parameters of one environment
    PoolSettings: Connection pool hints written for the application role
    ProvisionerSettings: Tool settings (paths, naming, timeouts, policies)
    SecretBundle: Per-environment credentials loaded from the secret file
"""

import re
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

VALID_ENVIRONMENTS: Tuple[str, ...] = ("dev", "tst", "qua", "prd")

_SQL_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
_DATABASE_PREFIX_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")
_VALID_SSLMODES = {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}

# Characters that would break out of the SQL string literal a password is
# substituted into.
_FORBIDDEN_PASSWORD_CHARS = ("'", "\\", "\n", "\r")

# Template markup; a rendered document holding these would not render again.
_TEMPLATE_MARKERS = ("{%", "%}", "{{")


class EnvironmentConfig(BaseModel):
    """Connection and safety parameters for one deployment environment.

    Attributes:
        name: Environment identifier (dev, tst, qua, prd)
        host: Database server host
        port: Database server port
        admin_user: Administrative role used to run the provisioning SQL
        allow_drop: Whether provisioning may drop and recreate the database
        description: Human-readable description
    """

    name: str = Field(..., description="Environment identifier")
    host: str = Field(..., description="Database server host")
    port: int = Field(5432, ge=1, le=65535, description="Database server port")
    admin_user: str = Field("postgres", description="Administrative role")
    allow_drop: bool = Field(False, description="Destructive drop allowed")
    description: str = Field("", description="Human-readable description")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate the environment identifier.

        Raises:
            ValueError: If the identifier is not one of the supported environments
        """
        if v not in VALID_ENVIRONMENTS:
            raise ValueError(
                f"Environment must be one of: {', '.join(VALID_ENVIRONMENTS)}"
            )
        return v

    @field_validator("host", "admin_user")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Validate that host and admin user are non-empty."""
        if not v or not v.strip():
            raise ValueError("Value cannot be empty")
        return v.strip()

    model_config = ConfigDict(frozen=True, extra="forbid")


class PoolSettings(BaseModel):
    """Connection pool hints for the application role."""

    max_open_conns: int = Field(25, ge=1, description="Maximum open connections")
    max_idle_conns: int = Field(5, ge=0, description="Maximum idle connections")
    conn_max_lifetime: str = Field("5m", description="Connection lifetime")

    model_config = ConfigDict(extra="forbid")


class ProvisionerSettings(BaseModel):
    """Settings for a provisioning run.

    Names of the database, schema and roles are derived from these settings
    so the SQL templates and the generated connection configuration always
    agree.

    Attributes:
        config_dir: Directory holding the ``.env.<env>`` secret files
        output_dir: Root directory for generated files (one subdirectory per env)
        registry_file: Optional alternative environment registry YAML
        templates_dir: Optional directory overriding the packaged SQL templates
        database_prefix: Database name prefix (database is ``<prefix>-<env>``)
        service_name: Service owning the schema and roles
        schema_name: Schema created for the service
        sslmode: sslmode written to connection URLs and used for verification
        psql_path: psql executable name or path
        maintenance_database: Database psql connects to as the admin role
        command_timeout_seconds: Upper bound for each psql invocation
        connect_timeout_seconds: Upper bound for each verification connection
        verification_fatal: Whether failed role verification fails the run
        strict_templates: Whether unresolved template tokens are errors
        pool: Pool hints written for the application role
    """

    config_dir: str = Field("config", description="Secret file directory")
    output_dir: str = Field("output", description="Generated files directory")
    registry_file: Optional[str] = Field(None, description="Registry YAML override")
    templates_dir: Optional[str] = Field(None, description="SQL templates override")
    database_prefix: str = Field("go-labs", description="Database name prefix")
    service_name: str = Field("billing", description="Service name")
    schema_name: str = Field("billing", description="Service schema")
    sslmode: str = Field("disable", description="libpq sslmode")
    psql_path: str = Field("psql", description="psql executable")
    maintenance_database: str = Field("postgres", description="Admin database")
    command_timeout_seconds: int = Field(300, gt=0, description="psql timeout")
    connect_timeout_seconds: int = Field(10, gt=0, description="Connect timeout")
    verification_fatal: bool = Field(True, description="Fail on verification")
    strict_templates: bool = Field(False, description="Fail on unknown tokens")
    pool: PoolSettings = Field(default_factory=PoolSettings)

    @field_validator("service_name", "schema_name")
    @classmethod
    def validate_sql_identifier(cls, v: str) -> str:
        """Validate names that are used unquoted in SQL.

        Raises:
            ValueError: If the name is not a lowercase SQL identifier
        """
        if not _SQL_IDENTIFIER_RE.match(v):
            raise ValueError(
                f"{v!r} must be a lowercase SQL identifier ([a-z_][a-z0-9_]*)"
            )
        return v

    @field_validator("database_prefix")
    @classmethod
    def validate_database_prefix(cls, v: str) -> str:
        """Validate the database name prefix."""
        if not _DATABASE_PREFIX_RE.match(v):
            raise ValueError(f"{v!r} must match [a-z0-9][a-z0-9-]*")
        return v

    @field_validator("sslmode")
    @classmethod
    def validate_sslmode(cls, v: str) -> str:
        """Validate the libpq sslmode."""
        if v not in _VALID_SSLMODES:
            raise ValueError(f"sslmode must be one of: {sorted(_VALID_SSLMODES)}")
        return v

    def database_name(self, environment: str) -> str:
        """Return the database provisioned for ``environment``."""
        return f"{self.database_prefix}-{environment}"

    def migration_user(self, environment: str) -> str:
        """Return the migration role name for ``environment``."""
        return f"{self.service_name}_migration_{environment}_user"

    def application_user(self, environment: str) -> str:
        """Return the application role name for ``environment``."""
        return f"{self.service_name}_app_{environment}_user"

    def environment_output_dir(self, environment: str) -> Path:
        """Return the output directory scoped to ``environment``."""
        return Path(self.output_dir) / environment

    def secret_file(self, environment: str) -> Path:
        """Return the secret file path for ``environment``."""
        return Path(self.config_dir) / f".env.{environment}"

    model_config = ConfigDict(extra="forbid")


class SecretBundle(BaseModel):
    """Credentials for one provisioning run.

    Values are held as :class:`~pydantic.SecretStr` so they never show up in
    reprs or log output.
    """

    admin_password: SecretStr
    migration_password: SecretStr
    application_password: SecretStr

    @field_validator("admin_password", "migration_password", "application_password")
    @classmethod
    def validate_password(cls, v: SecretStr) -> SecretStr:
        """Validate that a password is usable inside a SQL string literal.

        Raises:
            ValueError: If the password is empty, contains a quote,
                backslash or line break, or contains template markup
        """
        raw = v.get_secret_value()
        if not raw:
            raise ValueError("Password cannot be empty")
        if any(char in raw for char in _FORBIDDEN_PASSWORD_CHARS):
            raise ValueError(
                "Password cannot contain single quotes, backslashes or line breaks"
            )
        if any(marker in raw for marker in _TEMPLATE_MARKERS):
            raise ValueError("Password cannot contain template markup ({%, %} or {{)")
        return v

    model_config = ConfigDict(frozen=True, extra="forbid")
