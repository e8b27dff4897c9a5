"""Login verification for provisioned roles.

Each role connects directly to the new database with psycopg2 and runs
``SELECT current_schema()``. A role passes only if the query returns the
service schema, which also proves the role's search_path was applied.
"""

from dataclasses import dataclass
from typing import Optional

import psycopg2
from pydantic import SecretStr

from pg_provisioner.core.config.models import EnvironmentConfig
from pg_provisioner.infrastructure.psql import scrub_secrets
from pg_provisioner.utils.logging import StructuredLogger, get_logger

CURRENT_SCHEMA_QUERY = "SELECT current_schema();"


@dataclass(frozen=True)
class RoleVerification:
    """Outcome of one role's login check.

    Attributes:
        role: Logical role ("migration" or "application")
        user: Database role name
        success: Whether the role connected and saw the expected schema
        schema: Schema reported by the server, if the query ran
        error: Failure description, if any
    """

    role: str
    user: str
    success: bool
    schema: Optional[str] = None
    error: Optional[str] = None


class ConnectionVerifier:
    """Verify that provisioned roles can log in to their database."""

    def __init__(self, connect_timeout: int = 10, sslmode: str = "disable") -> None:
        """Initialize the verifier.

        Args:
            connect_timeout: Seconds to wait for each connection
            sslmode: libpq sslmode for the connections
        """
        self.connect_timeout = connect_timeout
        self.sslmode = sslmode
        self.logger: StructuredLogger = get_logger(__name__)

    def verify(
        self,
        environment: EnvironmentConfig,
        database: str,
        role: str,
        user: str,
        password: SecretStr,
        expected_schema: str,
    ) -> RoleVerification:
        """Connect as ``user`` and check the current schema.

        Connection and query failures are reported in the result rather than
        raised, so every role is always checked.
        """
        context = {
            "role": role,
            "user": user,
            "database": database,
            "host": environment.host,
        }
        secret = password.get_secret_value()

        try:
            conn = psycopg2.connect(
                host=environment.host,
                port=environment.port,
                dbname=database,
                user=user,
                password=secret,
                connect_timeout=self.connect_timeout,
                sslmode=self.sslmode,
            )
        except psycopg2.Error as e:
            error = scrub_secrets(str(e).strip(), [secret])
            self.logger.error(
                f"{role} user connection failed", extra={**context, "error": error}
            )
            return RoleVerification(role=role, user=user, success=False, error=error)

        try:
            with conn.cursor() as cursor:
                cursor.execute(CURRENT_SCHEMA_QUERY)
                row = cursor.fetchone()
        except psycopg2.Error as e:
            error = scrub_secrets(str(e).strip(), [secret])
            self.logger.error(
                f"{role} user query failed", extra={**context, "error": error}
            )
            return RoleVerification(role=role, user=user, success=False, error=error)
        finally:
            conn.close()

        schema = row[0] if row else None
        if schema != expected_schema:
            error = (
                f"current_schema() returned {schema!r}, "
                f"expected {expected_schema!r}"
            )
            self.logger.error(
                f"{role} user has wrong search_path", extra={**context, "error": error}
            )
            return RoleVerification(
                role=role, user=user, success=False, schema=schema, error=error
            )

        self.logger.info(f"{role} user connection verified", extra=context)
        return RoleVerification(role=role, user=user, success=True, schema=schema)
