"""Write hook items into the tools that read hooks from a config file."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from mycelium import tools
from mycelium.backup import write_config
from mycelium.codecs import (
    JsonCodec,
    TomlCodec,
    filter_items_for_tool,
    toml_format_value,
)
from mycelium.console import log_verbose, warn

DEFAULT_EVENT = "PostToolUse"


@dataclass
class HookSyncResult:
    path: Optional[Path] = None
    written: bool = False
    count: int = 0
    skipped: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


def hook_entry(item: Mapping[str, Any]) -> dict[str, Any]:
    entry: dict[str, Any] = {}
    if item.get("matchers"):
        entry["matchers"] = list(item["matchers"])
    if item.get("command"):
        entry["command"] = item["command"]
    if item.get("timeout"):
        entry["timeout"] = item["timeout"]
    return entry


def group_hooks_by_event(hooks: Mapping[str, dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {}
    for item in hooks.values():
        grouped.setdefault(item.get("event") or DEFAULT_EVENT, []).append(hook_entry(item))
    return grouped


def render_toml_hooks(grouped: Mapping[str, list[dict[str, Any]]]) -> str:
    lines: list[str] = []
    for event, entries in grouped.items():
        for entry in entries:
            lines.append(f"[[hooks.{event}]]")
            for key in ("matchers", "command", "timeout"):
                if key in entry:
                    lines.append(f"{key} = {toml_format_value(entry[key])}")
            lines.append("")
    return "\n".join(lines)


def inject_hooks(path: Path, existing: Optional[str],
                 hooks: Mapping[str, dict[str, Any]]) -> str:
    grouped = group_hooks_by_event(hooks)
    if path.suffix == ".toml":
        return TomlCodec(key="hooks").replace_managed(existing, render_toml_hooks(grouped))
    codec = JsonCodec(key="hooks")
    data, _ = codec.try_parse(existing)
    data["hooks"] = grouped
    return codec.serialize(data)


def hook_commands_in(path: Path) -> list[str]:
    """Commands of every hook currently written in ``path``."""
    if not path.is_file():
        return []
    text = path.read_text()
    if path.suffix == ".toml":
        commands = []
        inside = False
        for line in text.splitlines():
            stripped = line.strip()
            if stripped.startswith("["):
                inside = stripped.startswith("[[hooks.")
                continue
            if inside and stripped.startswith("command"):
                _, _, value = stripped.partition("=")
                commands.append(value.strip().strip('"'))
        return commands
    data, _ = JsonCodec().try_parse(text)
    groups = data.get("hooks")
    if not isinstance(groups, dict):
        return []
    return [
        entry["command"]
        for entries in groups.values() if isinstance(entries, list)
        for entry in entries if isinstance(entry, dict) and "command" in entry
    ]


def sync_hooks_to_tool(tool_id: str, hooks: Mapping[str, dict[str, Any]],
                       project_root: Optional[Path] = None,
                       args: Optional[argparse.Namespace] = None,
                       backed_up: Optional[set[Path]] = None) -> HookSyncResult:
    desc = tools.get_descriptor(tool_id)
    result = HookSyncResult()
    path = tools.kind_path(tool_id, "hooks", project_root)
    if path is None or path.suffix not in (".json", ".toml"):
        result.skipped = "no hook config file"
        return result
    result.path = path

    enabled = filter_items_for_tool(hooks, tool_id)
    result.count = len(enabled)
    existing = path.read_text() if path.is_file() else None
    if existing is not None and path.suffix == ".json":
        _, parse_error = JsonCodec().try_parse(existing)
        if parse_error:
            warn(f"{desc.name}: could not parse {path} ({parse_error}), treating it as empty")
    try:
        result.written = write_config(path, inject_hooks(path, existing, enabled), args, backed_up).written
    except OSError as exc:
        result.error = f"{path}: {exc.strerror or exc}"
        return result
    log_verbose(f"{desc.name}: {len(enabled)} hooks -> {path}", args)
    return result
