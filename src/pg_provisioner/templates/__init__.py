"""SQL template loading and environment-aware rendering."""

from pg_provisioner.templates.loader import (
    CREATE_DATABASE_TEMPLATE,
    CREATE_USERS_TEMPLATE,
    load_template,
)
from pg_provisioner.templates.renderer import (
    ConditionalBlock,
    LiteralLine,
    TemplateRenderer,
    parse_template,
    render,
)

__all__ = [
    "CREATE_DATABASE_TEMPLATE",
    "CREATE_USERS_TEMPLATE",
    "ConditionalBlock",
    "LiteralLine",
    "TemplateRenderer",
    "load_template",
    "parse_template",
    "render",
]
