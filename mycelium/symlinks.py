"""Symlink reconciler: make a tool directory match the enabled subset of items."""

from __future__ import annotations

import argparse
import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from mycelium import manifest as mf
from mycelium import paths
from mycelium.console import C, is_dry_run, log_verbose

PathLike = Union[str, Path]

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
REPLACED = "replaced"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass
class SymlinkResult:
    success: bool
    action: Optional[str] = None
    path: Optional[Path] = None
    backup_path: Optional[Path] = None
    error: Optional[str] = None


@dataclass
class SymlinkRecord:
    skill_name: str
    symlink_path: Path
    exists: bool
    valid: bool
    current_target: Optional[str] = None


@dataclass
class ReconcileResult:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    replaced: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    backups: dict[str, Path] = field(default_factory=dict)
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def record(self, name: str, result: SymlinkResult) -> None:
        if not result.success:
            self.errors.append({"item": name, "error": result.error or "unknown error"})
            return
        bucket = {
            CREATED: self.created,
            UPDATED: self.updated,
            REPLACED: self.replaced,
            UNCHANGED: self.unchanged,
        }[result.action or UNCHANGED]
        bucket.append(name)
        if result.backup_path is not None:
            self.backups[name] = result.backup_path

    def changed(self) -> int:
        return len(self.created) + len(self.updated) + len(self.replaced) + len(self.removed)


# ---------------------------------------------------------------------------
# Single link
# ---------------------------------------------------------------------------


def _exists(path: Path) -> bool:
    return path.is_symlink() or path.exists()


def plan_symlink(source: PathLike, target: PathLike) -> str:
    """The action create_skill_symlink would take, without touching anything."""
    target = Path(target)
    if not _exists(target):
        return CREATED
    if target.is_symlink():
        return UNCHANGED if os.readlink(target) == str(source) else UPDATED
    return REPLACED


def timestamped_backup_path(target: Path) -> Path:
    return target.with_name(f"{target.name}.backup.{int(time.time() * 1000)}")


def create_skill_symlink(source: PathLike, target: PathLike) -> SymlinkResult:
    """Point ``target`` at ``source``.

    A file or directory already sitting at ``target`` is renamed to a
    ``.backup.<epoch_ms>`` sibling first, never deleted.
    """
    target = Path(target)
    source_str = str(source)
    try:
        if not _exists(target):
            target.parent.mkdir(parents=True, exist_ok=True)
            target.symlink_to(source_str)
            return SymlinkResult(success=True, action=CREATED, path=target)

        if target.is_symlink():
            # Exact string comparison against what we wrote, not realpath.
            if os.readlink(target) == source_str:
                return SymlinkResult(success=True, action=UNCHANGED, path=target)
            target.unlink()
            target.symlink_to(source_str)
            return SymlinkResult(success=True, action=UPDATED, path=target)

        backup = timestamped_backup_path(target)
        os.rename(target, backup)
        target.symlink_to(source_str)
        return SymlinkResult(success=True, action=REPLACED, path=target, backup_path=backup)
    except OSError as exc:
        return SymlinkResult(success=False, path=target, error=f"{target}: {exc.strerror or exc}")


def remove_skill_symlink(target: PathLike) -> bool:
    """Unlink ``target`` if it is a symlink. Real files and directories stay."""
    target = Path(target)
    if not target.is_symlink():
        return False
    target.unlink()
    return True


def is_symlink_valid(target: PathLike) -> bool:
    target = Path(target)
    return target.is_symlink() and target.exists()


def get_symlink_status(name: str, tool_dir: PathLike) -> SymlinkRecord:
    link = Path(tool_dir) / name
    is_link = link.is_symlink()
    return SymlinkRecord(
        skill_name=name,
        symlink_path=link,
        exists=is_link or link.exists(),
        valid=is_symlink_valid(link),
        current_target=os.readlink(link) if is_link else None,
    )


def list_symlinks(tool_dir: PathLike) -> list[SymlinkRecord]:
    tool_dir = Path(tool_dir)
    if not tool_dir.is_dir():
        return []
    return [
        get_symlink_status(entry.name, tool_dir)
        for entry in sorted(tool_dir.iterdir())
        if entry.is_symlink()
    ]


# ---------------------------------------------------------------------------
# Whole-directory reconciliation
# ---------------------------------------------------------------------------


def skill_source(name: str, item: Mapping[str, Any]) -> Path:
    raw = item.get("path")
    if raw:
        return paths.expand_path(str(raw))
    return paths.canonical_dir("skills") / name


def sync_skills_to_tool(skills: Mapping[str, dict[str, Any]], tool_dir: PathLike,
                        tool_id: Optional[str] = None, remove_orphans: bool = False,
                        args: Optional[argparse.Namespace] = None) -> ReconcileResult:
    """Link every enabled skill into ``tool_dir`` and unlink the rest.

    One failing skill is recorded in ``errors`` and the others still run.
    Orphans (links for names not declared at all) are only removed on request,
    and only when they are symlinks.
    """
    tool_dir = Path(tool_dir)
    result = ReconcileResult()
    dry_run = is_dry_run(args)

    for name in sorted(skills):
        item = skills[name]
        link = tool_dir / name
        enabled = mf.is_enabled_for_tool(item, tool_id) if tool_id else mf.is_enabled(item)
        if not enabled:
            if link.is_symlink():
                if dry_run:
                    log_verbose(f"{C.MAGENTA}[dry-run]{C.RESET} Would unlink {link}", args)
                    result.removed.append(name)
                    continue
                try:
                    remove_skill_symlink(link)
                    result.removed.append(name)
                    log_verbose(f"{C.YELLOW}Unlinked{C.RESET} {name}", args)
                except OSError as exc:
                    result.errors.append({"item": name, "error": str(exc)})
            continue

        source = skill_source(name, item)
        if dry_run:
            try:
                action = plan_symlink(source, link)
            except OSError as exc:
                result.errors.append({"item": name, "error": str(exc)})
                continue
            log_verbose(f"{C.MAGENTA}[dry-run]{C.RESET} Would {action} {link} -> {source}", args)
            result.record(name, SymlinkResult(success=True, action=action, path=link))
            continue

        outcome = create_skill_symlink(source, link)
        result.record(name, outcome)
        if outcome.success and outcome.action != UNCHANGED:
            log_verbose(f"Symlinked {name} ({outcome.action})", args)

    if remove_orphans and tool_dir.is_dir():
        for entry in sorted(tool_dir.iterdir()):
            if entry.name in skills or not entry.is_symlink():
                continue
            if dry_run:
                log_verbose(f"{C.MAGENTA}[dry-run]{C.RESET} Would remove orphan {entry}", args)
                result.removed.append(entry.name)
                continue
            try:
                entry.unlink()
                result.removed.append(entry.name)
                log_verbose(f"{C.YELLOW}Removed orphan{C.RESET} {entry.name}", args)
            except OSError as exc:
                result.errors.append({"item": entry.name, "error": str(exc)})

    return result


def file_source(section: str, name: str, item: Mapping[str, Any]) -> Path:
    raw = item.get("path")
    if raw:
        return paths.expand_path(str(raw))
    base = paths.canonical_dir(section)
    for ext in (".md", ".yaml", ".yml", ""):
        candidate = base / f"{name}{ext}"
        if candidate.exists():
            return candidate
    return base / f"{name}.md"


def link_names(section: str, name: str, item: Optional[Mapping[str, Any]] = None) -> list[str]:
    """Names a tool-side link or copy of this item may carry."""
    names = [name, *(f"{name}{ext}" for ext in (".md", ".yaml", ".yml"))]
    if item and item.get("path") and section != "skills":
        custom = file_source(section, name, item).name
        if custom not in names:
            names.append(custom)
    return names


def _sync_copy(source: Path, target: Path) -> SymlinkResult:
    if not source.exists():
        return SymlinkResult(success=False, path=target, error=f"source missing: {source}")
    if not target.exists() or target.is_symlink():
        if target.is_symlink():
            target.unlink()
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)
        return SymlinkResult(success=True, action=CREATED, path=target)
    if source.stat().st_mtime > target.stat().st_mtime:
        shutil.copy2(source, target)
        return SymlinkResult(success=True, action=UPDATED, path=target)
    return SymlinkResult(success=True, action=UNCHANGED, path=target)


def sync_files_to_dir(section: str, items: Mapping[str, dict[str, Any]], target_dir: PathLike,
                      strategy: str = "symlink", tool_id: Optional[str] = None,
                      remove_orphans: bool = False,
                      args: Optional[argparse.Namespace] = None) -> ReconcileResult:
    """Agents, commands and rules: one link (or copy) per item, named like its source."""
    target_dir = Path(target_dir)
    result = ReconcileResult()
    dry_run = is_dry_run(args)
    declared: set[str] = set()

    for name in sorted(items):
        item = items[name]
        source = file_source(section, name, item)
        target = target_dir / source.name
        declared.add(source.name)
        enabled = mf.is_enabled_for_tool(item, tool_id) if tool_id else mf.is_enabled(item)

        if not enabled:
            removable = target.is_symlink() or (strategy == "copy" and target.is_file())
            if removable:
                try:
                    if not dry_run:
                        target.unlink()
                    result.removed.append(name)
                except OSError as exc:
                    result.errors.append({"item": name, "error": str(exc)})
            continue

        if dry_run:
            action = plan_symlink(source, target) if strategy == "symlink" else CREATED
            result.record(name, SymlinkResult(success=True, action=action, path=target))
            continue
        try:
            if strategy == "copy":
                outcome = _sync_copy(source, target)
            else:
                outcome = create_skill_symlink(source, target)
        except OSError as exc:
            outcome = SymlinkResult(success=False, path=target, error=str(exc))
        result.record(name, outcome)

    if remove_orphans and target_dir.is_dir():
        for entry in sorted(target_dir.iterdir()):
            stem = entry.name.split(".", 1)[0] or entry.name
            if stem in items or entry.name in items or entry.name in declared:
                continue
            if strategy == "symlink" and not entry.is_symlink():
                continue
            if entry.is_dir() and not entry.is_symlink():
                continue
            try:
                if not dry_run:
                    entry.unlink()
                result.removed.append(entry.name)
            except OSError as exc:
                result.errors.append({"item": entry.name, "error": str(exc)})

    return result
