"""Allow ``python -m pg_provisioner <env>``."""

from pg_provisioner.cli import main

raise SystemExit(main())
