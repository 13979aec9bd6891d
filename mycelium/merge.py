"""Combine global, machine and project manifests into one read-only working view."""

from __future__ import annotations

import copy
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from mycelium import manifest as mf
from mycelium import paths


@dataclass
class Conflict:
    name: str
    section: str
    global_value: Any
    project_value: Any

    @property
    def message(self) -> str:
        label = "MCP" if self.section == "mcps" else mf.type_for_section(self.section).capitalize()
        return (
            f'{label} "{self.name}" is defined in both global and project configs '
            "with different settings. Project config will take priority."
        )


@dataclass
class MergedConfig:
    """Derived view. Rebuilt on every merge, never saved."""
    sections: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    sources: dict[str, dict[str, str]] = field(default_factory=dict)
    conflicts: list[Conflict] = field(default_factory=list)
    taken_over_plugins: dict[str, Any] = field(default_factory=dict)

    def items(self, section: str) -> dict[str, dict[str, Any]]:
        return self.sections.get(section, {})

    def source_of(self, section: str, name: str) -> Optional[str]:
        return self.sources.get(section, {}).get(name)

    def enabled_items(self, section: str, tool_id: Optional[str] = None) -> dict[str, dict[str, Any]]:
        items = self.items(section)
        if tool_id is None:
            return {n: i for n, i in items.items() if mf.is_enabled(i)}
        return {n: i for n, i in items.items() if mf.is_enabled_for_tool(i, tool_id)}


def detect_conflicts(global_manifest: Optional[dict[str, Any]],
                     project_manifest: Optional[dict[str, Any]]) -> list[Conflict]:
    """Same name in both scopes with a different payload. Pure; merges nothing."""
    conflicts: list[Conflict] = []
    for section in mf.ALL_SECTIONS:
        g_items = mf.section_items(global_manifest, section)
        p_items = mf.section_items(project_manifest, section)
        for name, g_value in g_items.items():
            if name in p_items and g_value != p_items[name]:
                conflicts.append(Conflict(
                    name=name,
                    section=section,
                    global_value=copy.deepcopy(g_value),
                    project_value=copy.deepcopy(p_items[name]),
                ))
    return conflicts


def merge_configs(global_manifest: Optional[dict[str, Any]],
                  project_manifest: Optional[dict[str, Any]],
                  machine_manifest: Optional[dict[str, Any]] = None) -> MergedConfig:
    """Deep-copy global, overlay machine then project by name. Inputs are left untouched."""
    merged = MergedConfig()
    levels = (
        ("global", global_manifest),
        ("machine", machine_manifest),
        ("project", project_manifest),
    )
    for section in mf.ALL_SECTIONS:
        target: dict[str, dict[str, Any]] = {}
        sources: dict[str, str] = {}
        for level, data in levels:
            for name, item in mf.section_items(data, section).items():
                target[name] = copy.deepcopy(item)
                sources[name] = level
        merged.sections[section] = target
        merged.sources[section] = sources

    for _, data in levels:
        if data and isinstance(data.get("takenOverPlugins"), dict):
            merged.taken_over_plugins.update(copy.deepcopy(data["takenOverPlugins"]))

    merged.conflicts = detect_conflicts(global_manifest, project_manifest)
    return merged


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_machine_manifest(hostname: Optional[str] = None) -> Optional[dict[str, Any]]:
    """Per-host overrides from machines/<hostname>.yaml, if any."""
    host = hostname or socket.gethostname()
    path = paths.machines_dir() / f"{host}.yaml"
    if not path.is_file():
        return None
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError):
        return None
    return data if isinstance(data, dict) else None


def load_merged(project_root: Optional[Path] = None) -> MergedConfig:
    global_manifest = mf.load(paths.global_dir())
    project_manifest = mf.load(paths.project_dir(project_root)) if project_root else None
    return merge_configs(global_manifest, project_manifest, load_machine_manifest())
