"""Loading of SQL templates.

Templates ship with the package under ``resources/templates``. A directory
given in the settings (``templates_dir``) takes precedence, so operators can
adjust the SQL without reinstalling the tool.
"""

from importlib import resources
from pathlib import Path
from typing import Optional, Union

from pg_provisioner.core.exceptions import TemplateError

CREATE_DATABASE_TEMPLATE = "create-database.sql.template"
CREATE_USERS_TEMPLATE = "create-service-users.sql.template"

_PACKAGE_TEMPLATES = "pg_provisioner.resources.templates"


def load_template(
    name: str, templates_dir: Optional[Union[str, Path]] = None
) -> str:
    """Return the text of template ``name``.

    Args:
        name: Template file name
        templates_dir: Optional directory searched before the packaged templates

    Raises:
        TemplateError: If the template cannot be found or read
    """
    try:
        if templates_dir is not None:
            override = Path(templates_dir) / name
            if override.is_file():
                return override.read_text(encoding="utf-8")

        packaged = resources.files(_PACKAGE_TEMPLATES).joinpath(name)
        if not packaged.is_file():
            raise TemplateError(
                f"Template not found: {name}",
                context={"templates_dir": str(templates_dir or "<package>")},
            )
        return packaged.read_text(encoding="utf-8")
    except OSError as e:
        raise TemplateError(
            f"Failed to read template: {name}", original_error=e
        ) from e
