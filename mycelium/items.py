"""Item operations: add, enable, disable, remove, remove-plugin.

Each operation validates first, then transforms the manifest dict in place.
The caller loads and saves the manifest once around it.
"""

from __future__ import annotations

import argparse
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from mycelium import manifest as mf
from mycelium import paths, plugins, tools
from mycelium.advisory import AdvisoryOutcome, AdvisoryStep, run_advisory
from mycelium.console import C, is_dry_run, log_verbose
from mycelium.errors import ItemNotFoundError, ValidationError
from mycelium.symlinks import link_names

# Which tool path kind holds purgeable files for a section.
PURGE_KINDS = {
    "skills": "skills",
    "agents": "agents",
    "commands": "commands",
    "rules": "rules",
}


@dataclass
class ItemResult:
    name: str
    type: Optional[str] = None
    message: str = ""
    changed: bool = True
    removed: list[str] = field(default_factory=list)
    purged: list[Path] = field(default_factory=list)
    released: list[str] = field(default_factory=list)
    advisory: list[AdvisoryOutcome] = field(default_factory=list)
    # Queued by removals, run by apply_removal after the manifest is saved.
    purge_plan: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)
    steps: list[AdvisoryStep] = field(default_factory=list)


def _label(item_type: str) -> str:
    return "MCP" if item_type == "mcp" else item_type.capitalize()


def _check_duplicate(section_map: Mapping[str, Any], item_type: str, name: str, force: bool) -> None:
    if name in section_map and not force:
        raise ValidationError(
            f'{_label(item_type)} "{name}" already exists. Use --force to overwrite.'
        )


def _check_tools(tool_ids: Optional[list[str]]) -> None:
    for tool_id in tool_ids or []:
        tools.get_descriptor(tool_id)


# ---------------------------------------------------------------------------
# Add
# ---------------------------------------------------------------------------


def add_mcp(manifest: dict[str, Any], name: str, command: str,
            args: Optional[list[str]] = None, env: Optional[dict[str, str]] = None,
            tool_ids: Optional[list[str]] = None, exclude_tools: Optional[list[str]] = None,
            source: Optional[str] = None, force: bool = False) -> ItemResult:
    mf.validate_name(name)
    if not command or not command.strip():
        raise ValidationError(f"MCP \"{name}\" needs a command.")
    _check_tools(tool_ids)
    _check_tools(exclude_tools)
    section = mf.ensure_section(manifest, "mcps")
    existed = name in section
    _check_duplicate(section, "mcp", name, force)

    item: dict[str, Any] = {"command": command.strip()}
    if args:
        item["args"] = list(args)
    if env:
        item["env"] = dict(env)
    if tool_ids:
        item["tools"] = list(tool_ids)
    if exclude_tools:
        item["excludeTools"] = list(exclude_tools)
    item["source"] = source or "manual"
    item["state"] = mf.ENABLED
    section[name] = item

    verb = "overwritten" if existed else "added"
    return ItemResult(name=name, type="mcp", message=f"MCP '{name}' {verb}")


def add_item(manifest: dict[str, Any], item_type: str, name: str,
             path: Optional[str] = None, source: Optional[str] = None,
             force: bool = False, extra: Optional[Mapping[str, Any]] = None) -> ItemResult:
    """File-backed items (skill, agent, rule, command, memory) and hooks."""
    section_name = mf.section_for_type(item_type)
    if section_name is None:
        raise ValidationError(f"Invalid type: {item_type}. Use: {', '.join(mf.ALL_TYPES)}")
    item_type = mf.type_for_section(section_name)
    if item_type == "mcp":
        raise ValidationError("Use add_mcp for MCP servers.")
    mf.validate_name(name)
    extra = dict(extra or {})
    if item_type == "hook" and not extra.get("command"):
        raise ValidationError(f"Hook \"{name}\" needs a command.")
    if path is not None:
        source_path = paths.expand_path(path)
        if not source_path.exists():
            raise ValidationError(f"{_label(item_type)} source not found: {source_path}")
    section = mf.ensure_section(manifest, section_name)
    existed = name in section
    _check_duplicate(section, item_type, name, force)

    item: dict[str, Any] = {}
    if path is not None:
        item["path"] = str(paths.expand_path(path))
    item.update({k: v for k, v in extra.items() if v not in (None, "", [])})
    item["source"] = source or "manual"
    item["state"] = mf.ENABLED
    section[name] = item

    verb = "overwritten" if existed else "added"
    return ItemResult(name=name, type=item_type, message=f"{item_type} '{name}' {verb}")


# ---------------------------------------------------------------------------
# Enable / disable
# ---------------------------------------------------------------------------


def enable_item(manifest: dict[str, Any], name: str, item_type: Optional[str] = None,
                tool: Optional[str] = None) -> ItemResult:
    if tool:
        tools.get_descriptor(tool)
    match = mf.resolve_item(manifest, name, item_type)
    item = match.item
    result = ItemResult(name=name, type=match.type)

    if tool:
        exclude = list(item.get("excludeTools") or [])
        allow = list(item.get("tools") or [])
        if tool not in exclude and (not allow or tool in allow):
            result.changed = False
            result.message = f"{match.type} '{name}' is already enabled for {tool}"
            return result
        if tool in exclude:
            exclude.remove(tool)
            if exclude:
                item["excludeTools"] = exclude
            else:
                item.pop("excludeTools", None)
        if allow and tool not in allow:
            item["tools"] = allow + [tool]
        result.message = f"{match.type} '{name}' enabled for {tool}"
        return result

    if mf.item_state(item) == mf.ENABLED:
        result.changed = False
        result.message = f"{match.type} '{name}' is already enabled"
        return result
    item["state"] = mf.ENABLED
    result.message = f"{match.type} '{name}' enabled"
    return result


def disable_item(manifest: dict[str, Any], name: str, item_type: Optional[str] = None,
                 tool: Optional[str] = None) -> ItemResult:
    if tool:
        tools.get_descriptor(tool)
    match = mf.resolve_item(manifest, name, item_type)
    item = match.item
    result = ItemResult(name=name, type=match.type)

    if tool:
        exclude = list(item.get("excludeTools") or [])
        allow = list(item.get("tools") or [])
        if tool in exclude and tool not in allow:
            result.changed = False
            result.message = f"{match.type} '{name}' is already disabled for {tool}"
            return result
        if tool not in exclude:
            item["excludeTools"] = exclude + [tool]
        if tool in allow:
            allow.remove(tool)
            if allow:
                item["tools"] = allow
            else:
                item.pop("tools", None)
        result.message = f"{match.type} '{name}' disabled for {tool}"
        return result

    if mf.item_state(item) == mf.DISABLED:
        result.changed = False
        result.message = f"{match.type} '{name}' is already disabled"
        return result
    item["state"] = mf.DISABLED
    result.message = f"{match.type} '{name}' disabled"
    return result


# ---------------------------------------------------------------------------
# Remove
# ---------------------------------------------------------------------------


def _remove_path(target: Path, args: Optional[argparse.Namespace]) -> bool:
    if not (target.is_symlink() or target.exists()):
        return False
    if is_dry_run(args):
        log_verbose(f"{C.MAGENTA}[dry-run]{C.RESET} Would remove {target}", args)
        return True
    if target.is_dir() and not target.is_symlink():
        shutil.rmtree(target)
    else:
        target.unlink()
    log_verbose(f"{C.YELLOW}Removed{C.RESET} {target}", args)
    return True


def purge_item_files(name: str, item_type: str, project_root: Optional[Path] = None,
                     args: Optional[argparse.Namespace] = None,
                     item: Optional[Mapping[str, Any]] = None) -> list[Path]:
    """Delete an item's canonical source and every tool-side link or copy of it."""
    section = mf.section_for_type(item_type) or item_type
    purged: list[Path] = []

    source_dir = paths.canonical_dir(section)
    for candidate in link_names(section, name):
        target = source_dir / candidate
        if _remove_path(target, args):
            purged.append(target)

    kind = PURGE_KINDS.get(section)
    if kind is None:
        return purged
    seen: set[Path] = set()
    for tool_id in tools.ALL_TOOL_IDS:
        directory = tools.kind_path(tool_id, kind, project_root)
        if directory is None or directory in seen:
            continue
        seen.add(directory)
        for candidate in link_names(section, name, item):
            target = directory / candidate
            try:
                if _remove_path(target, args):
                    purged.append(target)
            except OSError as exc:
                log_verbose(f"Could not remove {target}: {exc}", args)
    return purged


def remove_item(manifest: dict[str, Any], name: str, item_type: Optional[str] = None,
                soft: bool = False) -> ItemResult:
    """Tombstone ``name`` as deleted.

    Only the manifest is touched here. File purges and plugin release steps are
    queued on the result for ``apply_removal`` once the manifest is saved.
    """
    try:
        match = mf.resolve_item(manifest, name, item_type)
    except ItemNotFoundError:
        if not item_type:
            raise
        # Filesystem-only items: record the tombstone so sync keeps them out.
        section = mf.section_for_type(item_type)
        mf.validate_name(name)
        mf.ensure_section(manifest, section)[name] = {"state": mf.DELETED}
        match = mf.resolve_item(manifest, name, item_type)

    match.item["state"] = mf.DELETED
    result = ItemResult(name=name, type=match.type)

    plugin_id = (match.item.get("pluginOrigin") or {}).get("pluginId")
    if plugin_id and plugins.plugin_fully_deleted(manifest, plugin_id):
        result.steps.extend(plugins.release_plugin(manifest, plugin_id))
        result.released.append(plugin_id)

    if not soft:
        result.purge_plan.append((name, match.type, dict(match.item)))
    action = "marked as deleted" if soft else "removed"
    result.message = f"{match.type} '{name}' {action}"
    return result


def remove_plugin(manifest: dict[str, Any], plugin_name: str, soft: bool = False) -> ItemResult:
    """Delete every item from a taken-over plugin and release it.

    Without a takeover record, items whose ``source`` equals ``plugin_name``
    are removed instead. Side effects are queued as in ``remove_item``.
    """
    result = ItemResult(name=plugin_name, type="plugin")
    plugin_id = plugins.find_taken_over(manifest, plugin_name)

    if plugin_id:
        matches = plugins.plugin_items(manifest, plugin_id)
    else:
        matches = [m for m in mf.iter_items(manifest) if m.item.get("source") == plugin_name]
    if not matches:
        raise ItemNotFoundError(f"No items found for plugin '{plugin_name}'")

    for match in matches:
        live = mf.ensure_section(manifest, match.section)[match.name]
        live["state"] = mf.DELETED
        result.removed.append(f"{match.type}: {match.name}")
        if not soft:
            result.purge_plan.append((match.name, match.type, dict(live)))

    if plugin_id:
        result.steps.extend(plugins.release_plugin(manifest, plugin_id, uninstall=True))
        result.released.append(plugin_id)

    result.message = f"{len(result.removed)} items from '{plugin_name}' removed"
    return result


def apply_removal(result: ItemResult, project_root: Optional[Path] = None,
                  args: Optional[argparse.Namespace] = None) -> ItemResult:
    """Run the purges and release steps queued by a removal."""
    for name, item_type, item in result.purge_plan:
        result.purged.extend(purge_item_files(name, item_type, project_root, args, item))
    if result.steps:
        result.advisory = run_advisory(result.steps, args)
    return result
