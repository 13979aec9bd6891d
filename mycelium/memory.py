"""Concatenate enabled memory items into each tool's memory file."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from mycelium import paths, tools
from mycelium.backup import write_config
from mycelium.codecs import filter_items_for_tool
from mycelium.console import log_verbose, warn

GENERATED_HEADER = "# Generated from ~/.mycelium/ -- do not edit directly"
GENERATED_HEADER_TEMPLATE = (
    "{header}\n"
    "# Run: mycelium sync\n"
)
BLOCK_MARKER = "<!-- mycelium:memory:{name} -->"


@dataclass
class MemorySyncResult:
    path: Optional[Path] = None
    written: bool = False
    skipped: Optional[str] = None
    included: list[str] = field(default_factory=list)
    truncated: bool = False
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def is_generated_file(content: str) -> bool:
    return content.lstrip().startswith(GENERATED_HEADER)


def generated_header() -> str:
    return GENERATED_HEADER_TEMPLATE.format(header=GENERATED_HEADER)


def memory_source(name: str, item: Mapping[str, Any]) -> Path:
    raw = item.get("path")
    if raw:
        return paths.expand_path(str(raw))
    return paths.canonical_dir("memory") / f"{name}.md"


def render_memory(blocks: list[tuple[str, str]], max_lines: Optional[int] = None) -> tuple[str, bool]:
    parts = [generated_header()]
    for name, text in blocks:
        parts.append(f"{BLOCK_MARKER.format(name=name)}\n{text.strip()}\n")
    content = "\n".join(parts)
    if max_lines is None:
        return content, False
    lines = content.splitlines()
    if len(lines) <= max_lines:
        return content, False
    return "\n".join(lines[:max_lines]) + "\n", True


def sync_memory_to_tool(tool_id: str, memory_items: Mapping[str, dict[str, Any]],
                        project_root: Optional[Path] = None,
                        args: Optional[argparse.Namespace] = None,
                        backed_up: Optional[set[Path]] = None) -> MemorySyncResult:
    desc = tools.get_descriptor(tool_id)
    result = MemorySyncResult()
    target = tools.kind_path(tool_id, "memory", project_root)
    if target is None:
        result.skipped = "no memory path"
        return result
    result.path = target

    if target.is_file() and not is_generated_file(target.read_text()):
        warn(f"{desc.name}: {target} was not written by mycelium, leaving it alone")
        result.skipped = "not a generated file"
        return result

    blocks: list[tuple[str, str]] = []
    for name, item in filter_items_for_tool(memory_items, tool_id).items():
        source = memory_source(name, item)
        try:
            blocks.append((name, source.read_text()))
        except OSError as exc:
            result.errors.append({"item": name, "error": f"{source}: {exc.strerror or exc}"})
            continue
        result.included.append(name)

    if not blocks and not target.exists():
        result.skipped = "nothing to write"
        return result

    content, result.truncated = render_memory(blocks, desc.memory_max_lines)
    if result.truncated:
        warn(f"{desc.name}: memory truncated to {desc.memory_max_lines} lines")
    result.written = write_config(target, content, args, backed_up).written
    log_verbose(f"{desc.name}: {len(blocks)} memory blocks -> {target}", args)
    return result
