"""MCP server exposing mycelium operations as structured tools."""

from __future__ import annotations

import argparse
import io
import sys
from contextlib import contextmanager
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from mycelium import cli
from mycelium.status import collect_status

mcp = FastMCP(
    "mycelium",
    instructions="Manage skills, MCP servers, hooks and memory across Claude Code, Codex, "
    "Gemini CLI, Cursor, VS Code and other AI coding tools from one manifest.",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_args(**kwargs: Any) -> argparse.Namespace:
    defaults = {
        "dry_run": False,
        "diff": False,
        "verbose": False,
        "yes": True,
        "project": None,
        "global_scope": False,
    }
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


@contextmanager
def _capture_output():
    old_out, old_err = sys.stdout, sys.stderr
    sys.stdout = buf_out = io.StringIO()
    sys.stderr = buf_err = io.StringIO()
    try:
        yield buf_out, buf_err
    finally:
        sys.stdout, sys.stderr = old_out, old_err


def _run_cmd(fn, args: argparse.Namespace) -> dict[str, Any]:
    with _capture_output() as (out, err):
        try:
            fn(args)
        except SystemExit as e:
            return {
                "success": False,
                "error": err.getvalue().strip() or out.getvalue().strip() or f"exit code {e.code}",
            }
    return {
        "success": True,
        "output": out.getvalue().strip(),
    }


# ---------------------------------------------------------------------------
# Read-only tools
# ---------------------------------------------------------------------------


@mcp.tool()
def mycelium_status(project: Optional[str] = None) -> dict[str, Any]:
    """Return declared item counts, tool state and takeovers as structured JSON.

    Args:
        project: Project root (default: nearest directory holding .mycelium/).
    """
    report = collect_status(cli.project_root(_mock_args(project=project)))
    return {
        "project_root": str(report.project_root) if report.project_root else None,
        "items": report.counts,
        "tools": [
            {
                "id": t.tool_id,
                "name": t.name,
                "installed": t.installed,
                "config_path": str(t.config_path) if t.config_path else None,
                "mcp_count": t.mcp_count,
                "enabled_mcps": t.enabled_mcps,
            }
            for t in report.tools
        ],
        "taken_over_plugins": sorted(report.taken_over),
        "conflicts": [c.message for c in report.conflicts],
    }


@mcp.tool()
def mycelium_verify(name: str, type: Optional[str] = None, tool: Optional[str] = None,
                    project: Optional[str] = None) -> dict[str, Any]:
    """Compare an item's manifest state with what each tool's files really contain.

    Args:
        name: Item name (e.g. "postgres").
        type: Item type when the name is ambiguous (skill, mcp, agent, rule, command, hook, memory).
        tool: Check one tool only (e.g. "codex").
        project: Project root.
    """
    args = _mock_args(name=name, item_type=type, tool=tool, project=project)
    return _run_cmd(cli.cmd_verify, args)


@mcp.tool()
def mycelium_conflicts(project: Optional[str] = None) -> dict[str, Any]:
    """List items defined differently in the global and project manifests.

    Args:
        project: Project root.
    """
    return _run_cmd(cli.cmd_conflicts, _mock_args(project=project))


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@mcp.tool()
def mycelium_sync(tools: Optional[list[str]] = None, dry_run: bool = False,
                  remove_orphans: bool = False, project: Optional[str] = None) -> dict[str, Any]:
    """Push the merged manifest into every installed tool.

    Args:
        tools: Restrict the sync to these tool ids (e.g. ["claude-code", "cursor"]).
        dry_run: Preview changes without writing files.
        remove_orphans: Remove links in tool directories that no item declares.
        project: Project root.
    """
    args = _mock_args(tools=tools, dry_run=dry_run, remove_orphans=remove_orphans, project=project)
    return _run_cmd(cli.cmd_sync, args)


# ---------------------------------------------------------------------------
# Item state tools
# ---------------------------------------------------------------------------


@mcp.tool()
def mycelium_enable(name: str, type: Optional[str] = None, tool: Optional[str] = None,
                    global_scope: bool = False, project: Optional[str] = None) -> dict[str, Any]:
    """Enable an item, everywhere or for a single tool.

    Args:
        name: Item name.
        type: Item type when the name is ambiguous.
        tool: Enable for this tool only.
        global_scope: Edit the global manifest even inside a project.
        project: Project root.
    """
    args = _mock_args(name=name, item_type=type, tool=tool,
                      global_scope=global_scope, project=project)
    return _run_cmd(cli.cmd_enable, args)


@mcp.tool()
def mycelium_disable(name: str, type: Optional[str] = None, tool: Optional[str] = None,
                     global_scope: bool = False, project: Optional[str] = None) -> dict[str, Any]:
    """Disable an item, everywhere or for a single tool.

    Args:
        name: Item name.
        type: Item type when the name is ambiguous.
        tool: Disable for this tool only.
        global_scope: Edit the global manifest even inside a project.
        project: Project root.
    """
    args = _mock_args(name=name, item_type=type, tool=tool,
                      global_scope=global_scope, project=project)
    return _run_cmd(cli.cmd_disable, args)


@mcp.tool()
def mycelium_remove(name: str, type: Optional[str] = None, soft: bool = False,
                    global_scope: bool = False, project: Optional[str] = None) -> dict[str, Any]:
    """Mark an item deleted and purge its files from the source and every tool.

    Args:
        name: Item name.
        type: Item type when the name is ambiguous.
        soft: Only mark deleted, keep files.
        global_scope: Edit the global manifest even inside a project.
        project: Project root.
    """
    args = _mock_args(name=name, item_type=type, soft=soft,
                      global_scope=global_scope, project=project)
    return _run_cmd(cli.cmd_remove, args)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
