"""Filesystem locations. Resolved on every call so HOME can be redirected."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

MANIFEST_FILE = "manifest.yaml"
ENV_FILE = ".env.local"
PROJECT_DIR_NAME = ".mycelium"


def home() -> Path:
    return Path.home()


def expand_path(raw: str) -> Path:
    if raw == "~":
        return home()
    if raw.startswith("~/"):
        return home() / raw[2:]
    return Path(os.path.expandvars(raw))


def mycelium_home() -> Path:
    override = os.environ.get("MYCELIUM_HOME")
    if override:
        return expand_path(override)
    return home() / ".mycelium"


def global_dir() -> Path:
    return mycelium_home()


def project_dir(root: Path) -> Path:
    return Path(root) / PROJECT_DIR_NAME


def canonical_dir(section: str) -> Path:
    """Where the source content of a file-backed section lives (e.g. skills)."""
    return mycelium_home() / "global" / section


def machines_dir() -> Path:
    return mycelium_home() / "machines"


def find_project_root(start: Optional[Path] = None) -> Optional[Path]:
    """Nearest ancestor of ``start`` holding a .mycelium/ directory."""
    current = Path(start or Path.cwd()).resolve()
    gdir = global_dir().resolve() if global_dir().exists() else None
    for candidate in (current, *current.parents):
        marker = candidate / PROJECT_DIR_NAME
        if marker.is_dir() and marker.resolve() != gdir:
            return candidate
    return None
