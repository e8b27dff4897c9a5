"""Generated artifacts: rendered SQL documents and connection configuration."""

from pg_provisioner.output.connection_config import (
    build_connection_config,
    build_database_url,
    ensure_private_dir,
    render_connection_config,
    write_connection_config,
    write_private_file,
)

__all__ = [
    "build_connection_config",
    "build_database_url",
    "ensure_private_dir",
    "render_connection_config",
    "write_connection_config",
    "write_private_file",
]
