"""Clients for the PostgreSQL server: psql execution and login verification."""

from pg_provisioner.infrastructure.psql import (
    PsqlRunner,
    SqlExecutionResult,
    scrub_secrets,
)
from pg_provisioner.infrastructure.verification import (
    ConnectionVerifier,
    RoleVerification,
)

__all__ = [
    "ConnectionVerifier",
    "PsqlRunner",
    "RoleVerification",
    "SqlExecutionResult",
    "scrub_secrets",
]
