"""Shared fixtures for mycelium tests."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Optional

import pytest
import yaml

from mycelium import manifest as mf

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_home(tmp_path, monkeypatch):
    """Redirect HOME (and so every registry path) into a temp directory."""
    home = tmp_path / "home"
    home.mkdir()
    work = tmp_path / "work"
    work.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("MYCELIUM_HOME", raising=False)
    monkeypatch.setattr(Path, "home", staticmethod(lambda: home))
    # Keep find_project_root away from any real .mycelium/ above the test run.
    monkeypatch.chdir(work)

    return home


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def seed_manifest(
    scope_dir: Path,
    mcps: Optional[dict[str, Any]] = None,
    skills: Optional[dict[str, Any]] = None,
    **sections: Any,
) -> dict[str, Any]:
    """Write manifest.yaml into ``scope_dir``. Returns the manifest dict."""
    manifest = mf.empty_manifest()
    if mcps:
        manifest["mcps"] = mcps
    if skills:
        manifest["skills"] = skills
    for key, value in sections.items():
        manifest[key] = value
    scope_dir.mkdir(parents=True, exist_ok=True)
    (scope_dir / "manifest.yaml").write_text(yaml.safe_dump(manifest, sort_keys=False))
    return manifest


def seed_skill(home: Path, name: str, body: str = "# Skill\n") -> Path:
    """Create a canonical skill directory under ~/.mycelium/global/skills."""
    skill_dir = home / ".mycelium" / "global" / "skills" / name
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(body)
    return skill_dir


def make_args(**overrides: Any) -> argparse.Namespace:
    """Create an argparse.Namespace with sensible test defaults."""
    defaults: dict[str, Any] = {
        "dry_run": False,
        "diff": False,
        "verbose": False,
        "yes": True,
        "project": None,
        "global_scope": False,
        "command": "sync",
    }
    defaults.update(overrides)
    return argparse.Namespace(**defaults)
