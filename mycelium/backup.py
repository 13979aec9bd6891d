"""Backup-before-write for tool config files, and the matching restore."""

from __future__ import annotations

import argparse
import difflib
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from mycelium import tools
from mycelium.console import C, is_dry_run, log_verbose, wants_diff

BACKUP_SUFFIX = ".mycelium-backup"


@dataclass
class WriteResult:
    path: Path
    written: bool
    backup_path: Optional[Path] = None


@dataclass
class RestoreResult:
    restored: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def backup_path_for(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def backup_config(path: Path) -> Path:
    """Copy (not move) ``path`` next to itself so the original stays readable."""
    dest = backup_path_for(path)
    shutil.copy2(path, dest)
    return dest


def show_diff(path: Path, existing: str, content: str) -> bool:
    diff = "".join(difflib.unified_diff(
        existing.splitlines(keepends=True),
        content.splitlines(keepends=True),
        fromfile=str(path),
        tofile=str(path) + " (new)",
    ))
    if diff:
        print(diff)
    return bool(diff)


def write_config(path: Path, content: str,
                 args: Optional[argparse.Namespace] = None,
                 backed_up: Optional[set[Path]] = None) -> WriteResult:
    """Write a tool file: diff on request, back up the old copy, then write.

    ``backed_up`` collects paths already backed up during one sync so a file
    written twice (MCPs then hooks) keeps the backup of its original content.
    """
    existing = path.read_text() if path.is_file() else None
    if wants_diff(args) and existing is not None:
        show_diff(path, existing, content)
    if existing == content:
        log_verbose(f"{path} {C.DIM}(unchanged){C.RESET}", args)
        return WriteResult(path=path, written=False)
    if is_dry_run(args):
        log_verbose(f"{C.MAGENTA}[dry-run]{C.RESET} Would write {path} ({len(content)} bytes)", args)
        return WriteResult(path=path, written=False)

    backup = None
    already = backed_up is not None and path in backed_up
    if existing is not None and not path.is_symlink() and not already:
        backup = backup_config(path)
        if backed_up is not None:
            backed_up.add(path)
        log_verbose(f"{C.BLUE}Backed up{C.RESET} {path}", args)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    log_verbose(f"{C.GREEN}Wrote{C.RESET} {path}", args)
    return WriteResult(path=path, written=True, backup_path=backup)


# Single files we write into; their directories may sit outside backup_dirs.
WRITTEN_FILE_KINDS = ("mcp", "hooks", "memory")


def _search_dirs(tool_ids: Optional[Iterable[str]],
                 project_root: Optional[Path] = None) -> list[Path]:
    seen: list[Path] = []
    for tool_id in tool_ids or tools.ALL_TOOL_IDS:
        dirs = list(tools.backup_dirs(tool_id))
        for kind in WRITTEN_FILE_KINDS:
            path = tools.kind_path(tool_id, kind, project_root)
            if path is not None:
                dirs.append(path.parent)
        for d in dirs:
            if d not in seen:
                seen.append(d)
    return seen


def restore_backups(tool_ids: Optional[Iterable[str]] = None,
                    args: Optional[argparse.Namespace] = None,
                    project_root: Optional[Path] = None) -> RestoreResult:
    """Copy every ``*.mycelium-backup`` back over its original, then delete it."""
    result = RestoreResult()
    for directory in _search_dirs(tool_ids, project_root):
        if not directory.is_dir():
            continue
        for entry in sorted(directory.iterdir()):
            if not entry.name.endswith(BACKUP_SUFFIX) or not entry.is_file():
                continue
            original = entry.with_name(entry.name[: -len(BACKUP_SUFFIX)])
            if is_dry_run(args):
                log_verbose(f"{C.MAGENTA}[dry-run]{C.RESET} Would restore {original}", args)
                result.restored.append(original)
                continue
            try:
                shutil.copy2(entry, original)
                entry.unlink()
            except OSError as exc:
                result.errors.append(f"Failed to restore {original}: {exc}")
                continue
            result.restored.append(original)
            log_verbose(f"{C.GREEN}Restored{C.RESET} {original}", args)
    return result
