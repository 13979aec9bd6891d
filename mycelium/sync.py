"""Sync orchestrator: push the merged view into every selected tool.

Each tool runs its own sequential pipeline (MCPs, skills, file items, hooks,
memory). A failing step is recorded on that tool's report and the remaining
steps and tools still run.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from mycelium import tools
from mycelium.backup import write_config
from mycelium.codecs import codec_for_tool, filter_items_for_tool
from mycelium.console import C, is_dry_run, log_verbose, warn
from mycelium.env import resolve_items
from mycelium.errors import MyceliumError, UnsupportedToolError
from mycelium.hooks import HookSyncResult, sync_hooks_to_tool
from mycelium.memory import MemorySyncResult, sync_memory_to_tool
from mycelium.merge import Conflict, MergedConfig
from mycelium.symlinks import ReconcileResult, sync_files_to_dir, sync_skills_to_tool

FILE_KINDS = ("agents", "commands", "rules")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class SyncWriteResult:
    tool_id: str
    success: bool
    config_path: Optional[Path] = None
    backup_path: Optional[Path] = None
    written: bool = False
    mcp_count: int = 0
    error: Optional[str] = None


@dataclass
class DryRunResult:
    tool_id: str
    config_path: Optional[Path]
    current_content: Optional[str]
    new_content: str
    error: Optional[str] = None


@dataclass
class ToolSyncReport:
    tool_id: str
    tool_name: str = ""
    mcp: Optional[SyncWriteResult] = None
    skills: Optional[ReconcileResult] = None
    files: dict[str, ReconcileResult] = field(default_factory=dict)
    hooks: Optional[HookSyncResult] = None
    memory: Optional[MemorySyncResult] = None
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        if self.errors:
            return False
        if self.mcp is not None and not self.mcp.success:
            return False
        parts = [self.skills, *self.files.values(), self.hooks, self.memory]
        return all(p is None or p.success for p in parts)


@dataclass
class SyncAllReport:
    reports: list[ToolSyncReport] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(r.success for r in self.reports)

    def failed(self) -> list[ToolSyncReport]:
        return [r for r in self.reports if not r.success]


# ---------------------------------------------------------------------------
# MCP config
# ---------------------------------------------------------------------------


def _render(tool_id: str, items: Mapping[str, dict[str, Any]],
            env: Optional[Mapping[str, str]],
            project_root: Optional[Path]) -> tuple[Optional[Path], Optional[str], str]:
    """(config path, current content, new content) for one tool."""
    desc = tools.get_descriptor(tool_id)
    path = tools.config_path(tool_id, project_root)
    if path is None:
        raise MyceliumError(f"{desc.name}: no MCP config path on this platform")
    codec = codec_for_tool(tool_id)
    current = path.read_text() if path.is_file() else None
    _, parse_error = codec.try_parse(current)
    if parse_error:
        warn(f"{desc.name}: could not parse {path} ({parse_error}), treating it as empty")
    return path, current, codec.inject(current, resolve_items(items, env))


def sync_mcps_to_tool(tool_id: str, items: Mapping[str, dict[str, Any]],
                      env: Optional[Mapping[str, str]] = None,
                      project_root: Optional[Path] = None,
                      args: Optional[argparse.Namespace] = None,
                      backed_up: Optional[set[Path]] = None) -> SyncWriteResult:
    """Inject the tool's MCP entries, backing up the previous file first."""
    try:
        path, _, content = _render(tool_id, items, env, project_root)
    except (MyceliumError, OSError) as exc:
        return SyncWriteResult(tool_id=tool_id, success=False, error=str(exc))

    count = len(filter_items_for_tool(items, tool_id))
    try:
        written = write_config(path, content, args, backed_up)
    except OSError as exc:
        return SyncWriteResult(tool_id=tool_id, success=False, config_path=path,
                               mcp_count=count, error=f"{path}: {exc.strerror or exc}")
    return SyncWriteResult(
        tool_id=tool_id,
        success=True,
        config_path=path,
        backup_path=written.backup_path,
        written=written.written,
        mcp_count=count,
    )


def dry_run_sync(tool_id: str, items: Mapping[str, dict[str, Any]],
                 env: Optional[Mapping[str, str]] = None,
                 project_root: Optional[Path] = None) -> DryRunResult:
    """What sync_mcps_to_tool would write, without touching the filesystem."""
    try:
        path, current, content = _render(tool_id, items, env, project_root)
    except (MyceliumError, OSError) as exc:
        return DryRunResult(tool_id=tool_id, config_path=None, current_content=None,
                            new_content="", error=str(exc))
    return DryRunResult(tool_id=tool_id, config_path=path, current_content=current,
                        new_content=content)


# ---------------------------------------------------------------------------
# Per-tool pipeline
# ---------------------------------------------------------------------------


def _step(report: ToolSyncReport, label: str, fn: Callable[[], Any]) -> Any:
    try:
        return fn()
    except (OSError, MyceliumError) as exc:
        report.errors.append(f"{label}: {exc}")
        return None


def sync_tool(tool_id: str, merged: MergedConfig,
              env: Optional[Mapping[str, str]] = None,
              project_root: Optional[Path] = None,
              remove_orphans: bool = False,
              args: Optional[argparse.Namespace] = None) -> ToolSyncReport:
    report = ToolSyncReport(tool_id=tool_id)
    try:
        desc = tools.get_descriptor(tool_id)
    except UnsupportedToolError as exc:
        report.errors.append(str(exc))
        return report
    report.tool_name = desc.name
    backed_up: set[Path] = set()

    mcps = merged.items("mcps")
    if "mcp" in desc.capabilities:
        path = tools.config_path(tool_id, project_root)
        if mcps or (path is not None and path.is_file()):
            report.mcp = sync_mcps_to_tool(tool_id, mcps, env, project_root, args, backed_up)

    skills = merged.items("skills")
    skills_dir = tools.kind_path(tool_id, "skills", project_root)
    if skills_dir is not None and (skills or remove_orphans):
        report.skills = _step(report, "skills", lambda: sync_skills_to_tool(
            skills, skills_dir, tool_id, remove_orphans, args))

    for kind in FILE_KINDS:
        items = merged.items(kind)
        target_dir = tools.kind_path(tool_id, kind, project_root)
        if target_dir is None or not items:
            continue
        outcome = _step(report, kind, lambda: sync_files_to_dir(
            kind, items, target_dir, "symlink", tool_id, remove_orphans, args))
        if outcome is not None:
            report.files[kind] = outcome

    hooks = merged.items("hooks")
    if hooks and "hooks" in desc.capabilities:
        report.hooks = _step(report, "hooks", lambda: sync_hooks_to_tool(
            tool_id, hooks, project_root, args, backed_up))

    memory = merged.items("memory")
    if memory and "memory" in desc.capabilities:
        report.memory = _step(report, "memory", lambda: sync_memory_to_tool(
            tool_id, memory, project_root, args, backed_up))

    status = f"{C.GREEN}ok{C.RESET}" if report.success else f"{C.RED}failed{C.RESET}"
    dry = " (dry-run)" if is_dry_run(args) else ""
    log_verbose(f"{desc.name}: {status}{dry}", args)
    return report


def sync_all(merged: MergedConfig, tool_ids: Optional[list[str]] = None,
             env: Optional[Mapping[str, str]] = None,
             project_root: Optional[Path] = None,
             remove_orphans: bool = False,
             args: Optional[argparse.Namespace] = None) -> SyncAllReport:
    """Sync every selected tool (default: the installed ones), one after another."""
    if tool_ids is None:
        tool_ids = tools.detect_installed_tools()
    result = SyncAllReport(conflicts=list(merged.conflicts))
    for tool_id in tool_ids:
        result.reports.append(sync_tool(tool_id, merged, env, project_root, remove_orphans, args))
    return result
