"""pg_provisioner.

Provision a service's PostgreSQL database, migration and application roles,
and schema for one deployment environment (dev, tst, qua, prd), then write
the connection configuration the service consumes.
"""

__version__ = "1.0.0"

__all__ = [
    "cli",
    "core",
    "infrastructure",
    "output",
    "provisioning",
    "registry",
    "templates",
    "utils",
]
