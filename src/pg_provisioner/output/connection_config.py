"""Connection configuration written for the consuming service.

The record holds one mapping per role (``migration`` and ``application``)
with discrete connection fields plus a ready-made ``database_url``. It
contains credentials, so it is written with owner-only permissions, as are
the rendered SQL documents.
"""

import os
from pathlib import Path
from typing import Any, Dict, Union
from urllib.parse import quote

import yaml

from pg_provisioner.core.config.models import (
    EnvironmentConfig,
    ProvisionerSettings,
    SecretBundle,
)
from pg_provisioner.core.exceptions import OutputWriteError

PRIVATE_FILE_MODE = 0o600
PRIVATE_DIR_MODE = 0o700


def build_database_url(
    user: str,
    password: str,
    host: str,
    port: int,
    database: str,
    sslmode: str,
    schema: str,
) -> str:
    """Return a ``postgres://`` URL with percent-encoded credentials.

    Example:
        >>> build_database_url(
        ...     "u", "p@ss", "db", 5432, "go-labs-dev", "disable", "billing"
        ... )
        'postgres://u:p%40ss@db:5432/go-labs-dev?sslmode=disable&search_path=billing'
    """
    return (
        f"postgres://{quote(user, safe='')}:{quote(password, safe='')}"
        f"@{host}:{port}/{quote(database, safe='-_.')}"
        f"?sslmode={sslmode}&search_path={schema}"
    )


def build_connection_config(
    settings: ProvisionerSettings,
    environment: EnvironmentConfig,
    secrets: SecretBundle,
) -> Dict[str, Dict[str, Any]]:
    """Build the connection record for ``environment``.

    Returns:
        Mapping with ``migration`` and ``application`` entries
    """
    database = settings.database_name(environment.name)
    roles = (
        (
            "migration",
            settings.migration_user(environment.name),
            secrets.migration_password,
        ),
        (
            "application",
            settings.application_user(environment.name),
            secrets.application_password,
        ),
    )

    record: Dict[str, Dict[str, Any]] = {}
    for role, user, secret in roles:
        password = secret.get_secret_value()
        record[role] = {
            "host": environment.host,
            "port": environment.port,
            "database": database,
            "user": user,
            "password": password,
            "schema": settings.schema_name,
            "sslmode": settings.sslmode,
            "database_url": build_database_url(
                user,
                password,
                environment.host,
                environment.port,
                database,
                settings.sslmode,
                settings.schema_name,
            ),
        }

    record["application"].update(settings.pool.model_dump())
    return record


def ensure_private_dir(path: Union[str, Path]) -> Path:
    """Create ``path`` (and parents) and restrict it to the owner.

    Raises:
        OutputWriteError: If the directory cannot be created
    """
    directory = Path(path)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        os.chmod(directory, PRIVATE_DIR_MODE)
    except OSError as e:
        raise OutputWriteError(
            "Failed to create output directory",
            context={"path": str(directory)},
            original_error=e,
        ) from e
    return directory


def write_private_file(path: Union[str, Path], text: str) -> Path:
    """Write ``text`` to ``path`` readable and writable by the owner only.

    Raises:
        OutputWriteError: If the file cannot be written
    """
    target = Path(path)
    try:
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, PRIVATE_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            # An existing file keeps its old mode through os.open.
            os.fchmod(f.fileno(), PRIVATE_FILE_MODE)
            f.write(text)
    except OSError as e:
        raise OutputWriteError(
            "Failed to write output file",
            context={"path": str(target)},
            original_error=e,
        ) from e
    return target


def render_connection_config(
    record: Dict[str, Dict[str, Any]],
    environment: EnvironmentConfig,
    service_name: str,
    timestamp: str,
) -> str:
    """Return the YAML document for ``record`` with its comment header."""
    header = (
        f"# {service_name.capitalize()} service database connections\n"
        f"# Environment: {environment.name} ({environment.description})\n"
        f"# Generated: {timestamp}\n"
        "# Contains credentials: keep out of version control.\n"
        "\n"
    )
    return header + yaml.safe_dump(record, sort_keys=False, default_flow_style=False)


def write_connection_config(
    path: Union[str, Path],
    record: Dict[str, Dict[str, Any]],
    environment: EnvironmentConfig,
    service_name: str,
    timestamp: str,
) -> Path:
    """Write the connection record to ``path``, replacing any previous one.

    Raises:
        OutputWriteError: If the file cannot be written
    """
    text = render_connection_config(record, environment, service_name, timestamp)
    return write_private_file(path, text)
