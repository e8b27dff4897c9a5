"""Pytest configuration for the PostgreSQL environment provisioner."""

import os
import sys
from pathlib import Path
from typing import List


# Ensure 'src' (project source) is on sys.path so tests can import package modules.
# Use parent directory of this file (repo root) to find `src` reliably.
def _add_src_to_syspath() -> None:
    repo_root = Path(__file__).resolve().parent
    src_dir = repo_root / "src"
    if not src_dir.exists():
        return

    src_str = str(src_dir)
    # Drop entries holding a competing 'pg_provisioner' package (e.g. a stale
    # installed copy) so the working tree is always the one under test.
    cleaned: List[str] = []
    for p in sys.path:
        if not p:
            continue
        candidate = os.path.abspath(os.path.join(p, "pg_provisioner"))
        if os.path.isdir(candidate) and candidate != os.path.join(
            os.path.abspath(src_str), "pg_provisioner"
        ):
            continue
        cleaned.append(p)

    cleaned = [p for p in cleaned if p != src_str]
    cleaned.insert(0, src_str)
    sys.path[:] = cleaned


_add_src_to_syspath()
