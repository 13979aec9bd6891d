"""Audit: read each tool's real files back and compare them with the manifest.

Drift means the manifest says disabled or deleted while a tool still carries
the item. Enabled but absent is plain non-presence (the tool may simply not
have been synced yet).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from mycelium import manifest as mf
from mycelium import paths, tools
from mycelium.codecs import codec_for_tool
from mycelium.errors import ValidationError
from mycelium.hooks import hook_commands_in
from mycelium.memory import BLOCK_MARKER
from mycelium.symlinks import link_names


@dataclass
class ToolPresence:
    tool_id: str
    tool_name: str
    present_in_config: bool
    config_path: Optional[Path]
    details: Optional[str] = None


@dataclass
class VerificationResult:
    name: str
    found: bool = False
    type: Optional[str] = None
    state: Optional[str] = None
    level: Optional[str] = None
    tools: list[str] = field(default_factory=list)
    exclude_tools: list[str] = field(default_factory=list)
    effectively_disabled_for_tool: Optional[bool] = None
    tool_presence: list[ToolPresence] = field(default_factory=list)
    drifted: list[str] = field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        return bool(self.drifted)


# (present, path checked, details)
Check = tuple[bool, Optional[Path], Optional[str]]


def check_mcp(name: str, tool_id: str, project_root: Optional[Path] = None,
              item: Optional[dict[str, Any]] = None) -> Check:
    path = tools.config_path(tool_id, project_root)
    if path is None:
        return False, None, "no mcp path configured"
    if not path.is_file():
        return False, path, "config file not found"
    try:
        text = path.read_text()
    except OSError as exc:
        return False, path, f"unreadable: {exc.strerror or exc}"
    codec = codec_for_tool(tool_id)
    _, parse_error = codec.try_parse(text)
    if parse_error:
        return False, path, "failed to parse config"
    return codec.contains(text, name), path, None


def check_file(name: str, tool_id: str, kind: str,
               project_root: Optional[Path] = None,
               item: Optional[dict[str, Any]] = None) -> Check:
    directory = tools.kind_path(tool_id, kind, project_root)
    if directory is None:
        return False, None, f"no {kind} path configured"
    for candidate in link_names(kind, name, item):
        entry = directory / candidate
        if entry.is_symlink() or entry.exists():
            return True, directory, None
    return False, directory, None


def check_hook(name: str, tool_id: str, project_root: Optional[Path] = None,
               item: Optional[dict[str, Any]] = None) -> Check:
    path = tools.kind_path(tool_id, "hooks", project_root)
    if path is None:
        return False, None, "no hooks path configured"
    command = (item or {}).get("command")
    if not command:
        return False, path, "hook has no command to look for"
    return command in hook_commands_in(path), path, None


def check_memory(name: str, tool_id: str, project_root: Optional[Path] = None,
                 item: Optional[dict[str, Any]] = None) -> Check:
    path = tools.kind_path(tool_id, "memory", project_root)
    if path is None:
        return False, None, "no memory path configured"
    if not path.is_file():
        return False, path, "memory file not found"
    return BLOCK_MARKER.format(name=name) in path.read_text(), path, None


def _file_checker(kind: str) -> Callable[..., Check]:
    def checker(name: str, tool_id: str, project_root: Optional[Path] = None,
                item: Optional[dict[str, Any]] = None) -> Check:
        return check_file(name, tool_id, kind, project_root, item)
    return checker


TYPE_CHECKS: dict[str, Callable[..., Check]] = {
    "mcp": check_mcp,
    "skill": _file_checker("skills"),
    "agent": _file_checker("agents"),
    "rule": _file_checker("rules"),
    "command": _file_checker("commands"),
    "memory": check_memory,
    "hook": check_hook,
}


def _declared_item(name: str, item_type: str, project_root: Optional[Path]) -> Optional[dict[str, Any]]:
    section = mf.section_for_type(item_type)
    scopes = []
    if project_root is not None:
        scopes.append(paths.project_dir(project_root))
    scopes.append(paths.global_dir())
    for scope in scopes:
        items = mf.section_items(mf.load(scope), section or "")
        if name in items:
            return items[name]
    return None


def verify_item_state(name: str, tool: Optional[str] = None, item_type: Optional[str] = None,
                      project_root: Optional[Path] = None) -> VerificationResult:
    """Manifest state of ``name`` plus its real presence in each tool."""
    if item_type and mf.section_for_type(item_type) is None:
        raise ValidationError(f"Invalid type: {item_type}. Use: {', '.join(mf.ALL_TYPES)}")
    info = mf.get_item_state(name, project_root=project_root, tool=tool, item_type=item_type)
    result = VerificationResult(
        name=name,
        found=info.found,
        state=info.state,
        level=info.level,
        tools=info.tools,
        exclude_tools=info.exclude_tools,
        effectively_disabled_for_tool=info.effectively_disabled_for_tool,
    )
    requested = item_type or info.type or "skill"
    section = mf.section_for_type(requested)
    if section is None:
        raise ValidationError(f"Invalid type: {requested}. Use: {', '.join(mf.ALL_TYPES)}")
    result.type = mf.type_for_section(section)
    tool_ids = [tool] if tool else list(tools.ALL_TOOL_IDS)
    for tool_id in tool_ids:
        tools.get_descriptor(tool_id)

    checker = TYPE_CHECKS[result.type]
    item = _declared_item(name, result.type, project_root)
    for tool_id in tool_ids:
        desc = tools.get_descriptor(tool_id)
        present, path, details = checker(name, tool_id, project_root=project_root, item=item)
        result.tool_presence.append(ToolPresence(
            tool_id=tool_id,
            tool_name=desc.name,
            present_in_config=present,
            config_path=path,
            details=details,
        ))

    if result.state in (mf.DISABLED, mf.DELETED):
        for presence in result.tool_presence:
            if presence.present_in_config:
                result.drifted.append(
                    f"{presence.tool_name}: item still present in config ({presence.config_path})"
                )
    return result
