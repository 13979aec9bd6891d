"""Overview of the merged configuration and each tool's view of it."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from mycelium import manifest as mf
from mycelium import tools
from mycelium.codecs import codec_for_tool
from mycelium.merge import Conflict, load_merged


@dataclass
class ToolStatus:
    tool_id: str
    name: str
    installed: bool
    config_path: Optional[Path]
    mcp_count: int = 0
    enabled_mcps: int = 0


@dataclass
class StatusReport:
    project_root: Optional[Path]
    # section -> state -> count
    counts: dict[str, dict[str, int]] = field(default_factory=dict)
    tools: list[ToolStatus] = field(default_factory=list)
    taken_over: dict[str, Any] = field(default_factory=dict)
    conflicts: list[Conflict] = field(default_factory=list)

    def total(self, section: str) -> int:
        return sum(self.counts.get(section, {}).values())


def _configured_mcps(tool_id: str, project_root: Optional[Path]) -> int:
    path = tools.config_path(tool_id, project_root)
    if path is None or not path.is_file():
        return 0
    try:
        text = path.read_text()
    except OSError:
        return 0
    return len(codec_for_tool(tool_id).entry_names(text))


def collect_status(project_root: Optional[Path] = None) -> StatusReport:
    merged = load_merged(project_root)
    report = StatusReport(
        project_root=project_root,
        taken_over=dict(merged.taken_over_plugins),
        conflicts=list(merged.conflicts),
    )
    for section in mf.ALL_SECTIONS:
        counts = {state: 0 for state in mf.STATES}
        for item in merged.items(section).values():
            counts[mf.item_state(item)] += 1
        report.counts[section] = counts

    for tool_id in tools.ALL_TOOL_IDS:
        desc = tools.get_descriptor(tool_id)
        report.tools.append(ToolStatus(
            tool_id=tool_id,
            name=desc.name,
            installed=tools.is_installed(tool_id),
            config_path=tools.config_path(tool_id, project_root),
            mcp_count=_configured_mcps(tool_id, project_root),
            enabled_mcps=len(merged.enabled_items("mcps", tool_id)),
        ))
    return report
