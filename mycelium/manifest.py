"""Manifest store: per-scope manifest.yaml holding every declared item and its state.

The manifest is a plain dict, one map per section (``name -> item``) plus
``version`` and ``takenOverPlugins``. An item without ``state`` is enabled.
"""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml

from mycelium import paths
from mycelium.errors import (
    AmbiguousItemError,
    ItemNotFoundError,
    ManifestError,
    ValidationError,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MANIFEST_VERSION = "1.0.0"

ENABLED = "enabled"
DISABLED = "disabled"
DELETED = "deleted"
STATES = (ENABLED, DISABLED, DELETED)

# (type, section) pairs, in lookup order.
SECTIONS: list[tuple[str, str]] = [
    ("skill", "skills"),
    ("mcp", "mcps"),
    ("agent", "agents"),
    ("rule", "rules"),
    ("command", "commands"),
    ("hook", "hooks"),
    ("memory", "memory"),
]

ALL_TYPES = [t for t, _ in SECTIONS]
ALL_SECTIONS = [s for _, s in SECTIONS]
FILE_SECTIONS = ["skills", "agents", "rules", "commands", "memory"]

# Never written into tool-native files.
BOOKKEEPING_FIELDS = ("state", "tools", "excludeTools", "source", "pluginOrigin", "path")

_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]*$")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass
class ItemMatch:
    section: str
    name: str
    item: dict[str, Any]

    @property
    def type(self) -> str:
        return type_for_section(self.section)


@dataclass
class ItemStateInfo:
    name: str
    found: bool = False
    type: Optional[str] = None
    state: Optional[str] = None
    level: Optional[str] = None
    tools: list[str] = field(default_factory=list)
    exclude_tools: list[str] = field(default_factory=list)
    effectively_disabled_for_tool: Optional[bool] = None


# ---------------------------------------------------------------------------
# Section helpers
# ---------------------------------------------------------------------------


def section_for_type(item_type: str) -> Optional[str]:
    for t, s in SECTIONS:
        if t == item_type or s == item_type:
            return s
    return None


def type_for_section(section: str) -> str:
    for t, s in SECTIONS:
        if s == section:
            return t
    return section


def empty_manifest() -> dict[str, Any]:
    manifest: dict[str, Any] = {"version": MANIFEST_VERSION}
    for section in ALL_SECTIONS:
        manifest[section] = {}
    return manifest


def section_items(manifest: Optional[dict[str, Any]], section: str) -> dict[str, dict[str, Any]]:
    """Section map, tolerating missing or malformed sections."""
    if not manifest:
        return {}
    data = manifest.get(section)
    if not isinstance(data, dict):
        return {}
    return {k: (v if isinstance(v, dict) else {}) for k, v in data.items()}


def ensure_section(manifest: dict[str, Any], section: str) -> dict[str, dict[str, Any]]:
    data = manifest.get(section)
    if not isinstance(data, dict):
        data = {}
        manifest[section] = data
    return data


def iter_items(manifest: Optional[dict[str, Any]]) -> Iterator[ItemMatch]:
    for section in ALL_SECTIONS:
        for name, item in section_items(manifest, section).items():
            yield ItemMatch(section=section, name=name, item=item)


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def manifest_path(scope_dir: Path) -> Path:
    return Path(scope_dir) / paths.MANIFEST_FILE


def load(scope_dir: Path) -> Optional[dict[str, Any]]:
    """Read manifest.yaml. None when absent, unreadable or not a mapping."""
    path = manifest_path(scope_dir)
    try:
        text = path.read_text()
    except OSError:
        return None
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError:
        return None
    if data is None:
        return empty_manifest()
    if not isinstance(data, dict):
        return None
    return data


def load_for_update(scope_dir: Path) -> dict[str, Any]:
    """Manifest to mutate and save back. Refuses to start over from a broken file."""
    manifest = load(scope_dir)
    if manifest is None:
        path = manifest_path(scope_dir)
        if path.exists():
            raise ManifestError(f"Could not read {path}: not a valid YAML mapping")
        return empty_manifest()
    return manifest


def dump(manifest: dict[str, Any]) -> str:
    return yaml.safe_dump(manifest, sort_keys=False, default_flow_style=False, allow_unicode=True)


def save(scope_dir: Path, manifest: dict[str, Any]) -> Path:
    """Serialize fully, then atomically replace manifest.yaml."""
    content = dump(manifest)
    scope_dir = Path(scope_dir)
    scope_dir.mkdir(parents=True, exist_ok=True)
    target = manifest_path(scope_dir)
    fd, tmp = tempfile.mkstemp(prefix=".manifest.", suffix=".tmp", dir=scope_dir)
    try:
        with os.fdopen(fd, "w") as fh:
            fh.write(content)
        os.replace(tmp, target)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    return target


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def validate_name(name: str) -> None:
    if not name or not _NAME_RE.match(name):
        raise ValidationError(
            f"Invalid name '{name}': use letters, digits, '-' or '_' "
            "and start with a letter or digit."
        )


def find_item(manifest: Optional[dict[str, Any]], name: str) -> list[ItemMatch]:
    """All sections holding ``name``. Names only need to be unique per section."""
    return [
        ItemMatch(section=section, name=name, item=section_items(manifest, section)[name])
        for section in ALL_SECTIONS
        if name in section_items(manifest, section)
    ]


def resolve_item(manifest: Optional[dict[str, Any]], name: str,
                 item_type: Optional[str] = None) -> ItemMatch:
    matches = find_item(manifest, name)
    if item_type:
        section = section_for_type(item_type)
        if section is None:
            raise ValidationError(
                f"Invalid type: {item_type}. Use: {', '.join(ALL_TYPES)}"
            )
        matches = [m for m in matches if m.section == section]
    if not matches:
        raise ItemNotFoundError(f"'{name}' not found in manifest")
    if len(matches) > 1:
        raise AmbiguousItemError(name, [m.type for m in matches])
    match = matches[0]
    # Hand back the live dict so callers mutate the manifest in place.
    match.item = ensure_section(manifest, match.section)[name]
    return match


# ---------------------------------------------------------------------------
# State queries
# ---------------------------------------------------------------------------


def item_state(item: Optional[dict[str, Any]]) -> str:
    if not item:
        return ENABLED
    state = item.get("state") or ENABLED
    return state if state in STATES else ENABLED


def is_enabled(item: Optional[dict[str, Any]]) -> bool:
    return item_state(item) == ENABLED


def is_enabled_for_tool(item: Optional[dict[str, Any]], tool_id: str) -> bool:
    """Effective enablement: state first, then allow-list, then deny-list."""
    if not is_enabled(item):
        return False
    item = item or {}
    allow = item.get("tools") or []
    if allow and tool_id not in allow:
        return False
    deny = item.get("excludeTools") or []
    return tool_id not in deny


def get_disabled_items(global_manifest: Optional[dict[str, Any]],
                       project_manifest: Optional[dict[str, Any]] = None) -> set[str]:
    """Names disabled or deleted; an explicit project ``enabled`` wins over global."""
    disabled: set[str] = set()
    for manifest in (global_manifest, project_manifest):
        for match in iter_items(manifest):
            state = match.item.get("state")
            if state in (DISABLED, DELETED):
                disabled.add(match.name)
            elif state == ENABLED:
                disabled.discard(match.name)
    return disabled


def get_item_state(name: str, project_root: Optional[Path] = None,
                   tool: Optional[str] = None,
                   item_type: Optional[str] = None) -> ItemStateInfo:
    """State of ``name`` as declared, project scope first, then global.

    ``item_type`` restricts the lookup to one section when a name is shared.
    """
    section = section_for_type(item_type) if item_type else None
    info = ItemStateInfo(name=name)
    levels: list[tuple[Path, str]] = []
    if project_root is not None:
        levels.append((paths.project_dir(project_root), "project"))
    levels.append((paths.global_dir(), "global"))

    for scope_dir, level in levels:
        manifest = load(scope_dir)
        if not manifest:
            continue
        matches = find_item(manifest, name)
        if section is not None:
            matches = [m for m in matches if m.section == section]
        if not matches:
            continue
        match = matches[0]
        info.found = True
        info.type = match.type
        info.state = item_state(match.item)
        info.level = level
        info.tools = list(match.item.get("tools") or [])
        info.exclude_tools = list(match.item.get("excludeTools") or [])
        if tool is not None:
            info.effectively_disabled_for_tool = not is_enabled_for_tool(match.item, tool)
        break
    return info
