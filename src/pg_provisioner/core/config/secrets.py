"""Loading of the per-environment secret file.

Each environment keeps its credentials in ``<config_dir>/.env.<env>``, a
dotenv file copied from ``.env.template`` and never committed. The file is
parsed with python-dotenv without touching ``os.environ``: secrets are handed
to the provisioner as a :class:`SecretBundle` and passed to child processes
explicitly.
"""

from pathlib import Path
from typing import Dict, Optional, Union

from dotenv import dotenv_values
from pydantic import ValidationError

from pg_provisioner.core.config.models import SecretBundle
from pg_provisioner.core.exceptions import SecretsError

ADMIN_PASSWORD_KEY = "POSTGRES_ADMIN_PASSWORD"
MIGRATION_PASSWORD_KEY = "BILLING_MIGRATION_PASSWORD"
APPLICATION_PASSWORD_KEY = "BILLING_APP_PASSWORD"

REQUIRED_KEYS: Dict[str, str] = {
    ADMIN_PASSWORD_KEY: "admin_password",
    MIGRATION_PASSWORD_KEY: "migration_password",
    APPLICATION_PASSWORD_KEY: "application_password",
}


def load_secret_bundle(path: Union[str, Path]) -> SecretBundle:
    """Load and validate the secret file at ``path``.

    Args:
        path: Path of the ``.env.<env>`` file

    Returns:
        Validated secret bundle

    Raises:
        SecretsError: If the file is missing, a required key is missing or
            empty, or a value cannot be used in SQL
    """
    secret_path = Path(path)
    if not secret_path.is_file():
        template = secret_path.parent / ".env.template"
        raise SecretsError(
            f"Environment file not found: {secret_path}. "
            f"Copy {template} to {secret_path} and set the passwords",
            context={"path": str(secret_path)},
        )

    values: Dict[str, Optional[str]] = dotenv_values(secret_path)

    missing = [key for key in REQUIRED_KEYS if not (values.get(key) or "").strip()]
    if missing:
        raise SecretsError(
            f"Required passwords not set in {secret_path}: {', '.join(missing)}",
            context={"path": str(secret_path)},
        )

    try:
        return SecretBundle(
            **{field: values[key] for key, field in REQUIRED_KEYS.items()}
        )
    except ValidationError as e:
        failed_fields = {loc for err in e.errors() for loc in err["loc"]}
        invalid = sorted(
            key for key, field in REQUIRED_KEYS.items() if field in failed_fields
        )
        # The pydantic error would echo the offending value; report key names only.
        raise SecretsError(
            f"Invalid passwords in {secret_path}: {', '.join(invalid)} "
            "(must not contain single quotes, backslashes, line breaks "
            "or template markup such as {%, %} or {{)",
            context={"path": str(secret_path)},
        ) from None
