"""mycelium: one manifest, every AI coding tool.

Usage:
    mycelium status                       Show declared items and tool state
    mycelium sync [--tool ID]             Push the merged config into each tool
    mycelium add mcp NAME --command CMD   Declare an MCP server
    mycelium enable|disable NAME          Toggle an item (optionally --tool ID)
    mycelium remove NAME [--soft]         Tombstone an item and purge its files
    mycelium remove-plugin NAME           Remove every item of a taken-over plugin
    mycelium verify NAME                  Compare manifest state with tool files
    mycelium conflicts                    List global/project conflicts
    mycelium restore                      Put back *.mycelium-backup files

Flags:
    --dry-run    Preview changes without writing
    --diff       Show diffs against current files
    --verbose    Detailed output
    --yes        Skip confirmation prompts
    --project    Project root (default: nearest directory holding .mycelium/)
    --global     Edit the global manifest even inside a project
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Callable, Optional

from mycelium import __version__, paths, tools
from mycelium import manifest as mf
from mycelium.backup import restore_backups
from mycelium.console import (
    C,
    confirm,
    fail,
    log,
    section_header,
    state_badge,
    summary_line,
    warn,
)
from mycelium.env import load_env
from mycelium.errors import MyceliumError
from mycelium.items import (
    ItemResult,
    add_item,
    add_mcp,
    apply_removal,
    disable_item,
    enable_item,
    remove_item,
    remove_plugin,
)
from mycelium.merge import load_merged
from mycelium.status import collect_status
from mycelium.sync import ToolSyncReport, sync_all
from mycelium.verify import verify_item_state

# ---------------------------------------------------------------------------
# CLI setup
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mycelium",
        description="Sync skills, MCP servers and agent config across AI coding tools.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--dry-run", action="store_true", help="Preview changes without writing")
    parser.add_argument("--diff", action="store_true", help="Show diffs against current files")
    parser.add_argument("--verbose", action="store_true", help="Detailed output")
    parser.add_argument("--yes", action="store_true", help="Skip confirmation prompts")
    parser.add_argument("--project", metavar="PATH", help="Project root directory")
    parser.add_argument("--global", dest="global_scope", action="store_true",
                        help="Target the global manifest")

    sub = parser.add_subparsers(dest="command")

    sync_p = sub.add_parser("sync", help="Push the merged config into every tool")
    sync_p.add_argument("--tool", dest="tools", action="append", metavar="ID",
                        help="Sync only this tool (repeatable)")
    sync_p.add_argument("--remove-orphans", action="store_true",
                        help="Remove links in tool dirs that no item declares")

    sub.add_parser("status", help="Show items, tools and takeovers")
    sub.add_parser("conflicts", help="List items defined differently in global and project")

    add_p = sub.add_parser("add", help="Declare a new item")
    add_p.add_argument("type", choices=mf.ALL_TYPES, help="Item type")
    add_p.add_argument("name", help="Item name")
    add_p.add_argument("--command", dest="item_command", help="MCP or hook command")
    add_p.add_argument("--arg", dest="item_args", action="append", default=[],
                       help="MCP argument (repeatable)")
    add_p.add_argument("--env", dest="item_env", action="append", default=[], metavar="KEY=VALUE",
                       help="MCP environment variable (repeatable)")
    add_p.add_argument("--path", help="Source file or directory for file-backed items")
    add_p.add_argument("--tool", dest="item_tools", action="append", default=[], metavar="ID",
                       help="Only sync to this tool (repeatable)")
    add_p.add_argument("--exclude-tool", dest="exclude_tools", action="append", default=[],
                       metavar="ID", help="Never sync to this tool (repeatable)")
    add_p.add_argument("--event", help="Hook event (default PostToolUse)")
    add_p.add_argument("--matcher", dest="matchers", action="append", default=[],
                       help="Hook matcher (repeatable)")
    add_p.add_argument("--timeout", type=int, help="Hook timeout in seconds")
    add_p.add_argument("--source", help="Where the item came from (default: manual)")
    add_p.add_argument("--force", action="store_true", help="Overwrite an existing item")

    for verb in ("enable", "disable"):
        p = sub.add_parser(verb, help=f"{verb.capitalize()} an item")
        p.add_argument("name", help="Item name")
        p.add_argument("--type", dest="item_type", help="Item type when the name is ambiguous")
        p.add_argument("--tool", help=f"{verb.capitalize()} for one tool only")

    rm_p = sub.add_parser("remove", help="Mark an item deleted and purge its files")
    rm_p.add_argument("name", help="Item name")
    rm_p.add_argument("--type", dest="item_type", help="Item type when the name is ambiguous")
    rm_p.add_argument("--soft", action="store_true", help="Only mark deleted, keep files")

    rmp_p = sub.add_parser("remove-plugin", help="Remove every item of a taken-over plugin")
    rmp_p.add_argument("name", help="Plugin id or plugin name")
    rmp_p.add_argument("--soft", action="store_true", help="Only mark deleted, keep files")

    ver_p = sub.add_parser("verify", help="Compare an item's state with the tools' real files")
    ver_p.add_argument("name", help="Item name")
    ver_p.add_argument("--type", dest="item_type", help="Item type")
    ver_p.add_argument("--tool", help="Check one tool only")

    res_p = sub.add_parser("restore", help="Restore tool files from *.mycelium-backup copies")
    res_p.add_argument("--tool", dest="tools", action="append", metavar="ID",
                       help="Restore only this tool's files (repeatable)")

    return parser


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------


def project_root(args: argparse.Namespace) -> Optional[Path]:
    if getattr(args, "project", None):
        return Path(args.project).expanduser().resolve()
    return paths.find_project_root()


def scope_dir(args: argparse.Namespace) -> Path:
    """Manifest directory a mutating command writes to."""
    root = project_root(args)
    if getattr(args, "global_scope", False) or root is None:
        return paths.global_dir()
    return paths.project_dir(root)


def _check_tool_ids(tool_ids: Optional[list[str]]) -> None:
    for tool_id in tool_ids or []:
        try:
            tools.get_descriptor(tool_id)
        except MyceliumError as exc:
            fail(f"{exc}. Options: {', '.join(tools.ALL_TOOL_IDS)}")


def parse_env_pairs(pairs: list[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            fail(f"invalid --env '{pair}', expected KEY=VALUE")
        env[key] = value
    return env


def update_manifest(args: argparse.Namespace,
                    fn: Callable[[dict[str, Any]], ItemResult]) -> ItemResult:
    """Load the target manifest, apply ``fn`` once, save once."""
    target = scope_dir(args)
    try:
        manifest = mf.load_for_update(target)
        result = fn(manifest)
    except MyceliumError as exc:
        fail(str(exc))
    if args.dry_run:
        log(f"{C.MAGENTA}[dry-run]{C.RESET} Would update {mf.manifest_path(target)}")
    elif result.changed:
        try:
            mf.save(target, manifest)
        except OSError as exc:
            fail(f"Could not write {mf.manifest_path(target)}: {exc.strerror or exc}")
    return result


def _print_result(result: ItemResult, args: argparse.Namespace) -> None:
    color = C.GREEN if result.changed else C.DIM
    log(f"{color}{result.message}{C.RESET}")
    for plugin_id in result.released:
        log(f"{C.YELLOW}Released{C.RESET} plugin {plugin_id}")
    for outcome in result.advisory:
        if not outcome.ok:
            warn(f"{outcome.name}: {outcome.error}")
    if result.changed and not args.dry_run:
        log(f"{C.DIM}Run: mycelium sync{C.RESET}")


def _print_tool_report(report: ToolSyncReport) -> None:
    mark = f"{C.GREEN}ok{C.RESET}" if report.success else f"{C.RED}failed{C.RESET}"
    print(f"  {C.BOLD_WHITE}{report.tool_name or report.tool_id}{C.RESET} {mark}")
    if report.mcp is not None:
        if report.mcp.success:
            state = "written" if report.mcp.written else "unchanged"
            summary_line("    MCPs", report.mcp.mcp_count, f"{state}: {report.mcp.config_path}")
        else:
            print(f"    {C.RED}MCPs: {report.mcp.error}{C.RESET}")
    if report.skills is not None:
        summary_line("    Skills", len(report.skills.created) + len(report.skills.updated)
                     + len(report.skills.replaced) + len(report.skills.unchanged),
                     f"{report.skills.changed()} changed")
    for kind, outcome in report.files.items():
        summary_line(f"    {kind.capitalize()}", len(outcome.created) + len(outcome.updated)
                     + len(outcome.replaced) + len(outcome.unchanged),
                     f"{outcome.changed()} changed")
    if report.hooks is not None:
        detail = report.hooks.skipped or report.hooks.error or str(report.hooks.path)
        summary_line("    Hooks", report.hooks.count, detail)
    if report.memory is not None:
        detail = report.memory.skipped or str(report.memory.path)
        if report.memory.truncated:
            detail += ", truncated"
        summary_line("    Memory", len(report.memory.included), detail)
    errors = list(report.errors)
    for part in (report.skills, *report.files.values(), report.memory):
        if part is not None:
            errors.extend(f"{e['item']}: {e['error']}" for e in part.errors)
    for err in errors:
        print(f"    {C.RED}{err}{C.RESET}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_sync(args: argparse.Namespace) -> None:
    root = project_root(args)
    _check_tool_ids(args.tools)
    merged = load_merged(root)
    for conflict in merged.conflicts:
        warn(conflict.message)

    tool_ids = args.tools or tools.detect_installed_tools()
    if not tool_ids:
        print(f"\n  {C.DIM}No supported tools detected.{C.RESET}")
        return

    result = sync_all(merged, tool_ids, load_env(root), root,
                      remove_orphans=args.remove_orphans, args=args)

    section_header("Tools")
    for report in result.reports:
        _print_tool_report(report)

    section_header("Summary")
    dry = f" {C.MAGENTA}(dry-run){C.RESET}" if args.dry_run else ""
    ok = len(result.reports) - len(result.failed())
    print(f"  {C.BOLD}{ok}{C.RESET} of {C.BOLD}{len(result.reports)}{C.RESET} tools synced.{dry}")
    print()
    if not result.success:
        fail(f"sync failed for {', '.join(r.tool_id for r in result.failed())}")


def cmd_status(args: argparse.Namespace) -> None:
    report = collect_status(project_root(args))

    section_header("Scope")
    print(f"  {C.BOLD_WHITE}Global{C.RESET}  {paths.global_dir()}")
    project = report.project_root or f"{C.DIM}(none){C.RESET}"
    print(f"  {C.BOLD_WHITE}Project{C.RESET} {project}")

    section_header("Items")
    for section in mf.ALL_SECTIONS:
        counts = report.counts.get(section, {})
        detail = ", ".join(
            f"{counts[state]} {state}" for state in mf.STATES if counts.get(state)
        )
        summary_line(section.capitalize(), report.total(section), detail)

    section_header("Tools")
    for tool in report.tools:
        mark = f"{C.GREEN}installed{C.RESET}" if tool.installed else f"{C.DIM}not found{C.RESET}"
        print(f"  {tool.name:15s} {mark:20s} {C.BOLD}{tool.mcp_count}{C.RESET} MCPs in config, "
              f"{tool.enabled_mcps} declared")

    if report.taken_over:
        section_header(f"Taken-over plugins ({len(report.taken_over)})")
        for plugin_id, record in report.taken_over.items():
            since = record.get("takenOverAt", "") if isinstance(record, dict) else ""
            print(f"  {plugin_id:30s} {C.DIM}{since}{C.RESET}")

    if report.conflicts:
        section_header(f"Conflicts ({len(report.conflicts)})")
        for conflict in report.conflicts:
            print(f"  {C.YELLOW}{conflict.message}{C.RESET}")
    print()


def cmd_add(args: argparse.Namespace) -> None:
    _check_tool_ids(args.item_tools)
    _check_tool_ids(args.exclude_tools)
    if args.type == "mcp":
        if not args.item_command:
            fail("add mcp needs --command")
        env = parse_env_pairs(args.item_env)
        result = update_manifest(args, lambda m: add_mcp(
            m, args.name, args.item_command, args.item_args, env,
            args.item_tools, args.exclude_tools, args.source, args.force,
        ))
    else:
        extra: dict[str, Any] = {}
        if args.type == "hook":
            extra = {
                "event": args.event,
                "command": args.item_command,
                "matchers": args.matchers,
                "timeout": args.timeout,
            }
        if args.item_tools:
            extra["tools"] = args.item_tools
        if args.exclude_tools:
            extra["excludeTools"] = args.exclude_tools
        result = update_manifest(args, lambda m: add_item(
            m, args.type, args.name, args.path, args.source, args.force, extra,
        ))
    _print_result(result, args)


def cmd_enable(args: argparse.Namespace) -> None:
    result = update_manifest(args, lambda m: enable_item(m, args.name, args.item_type, args.tool))
    _print_result(result, args)


def cmd_disable(args: argparse.Namespace) -> None:
    result = update_manifest(args, lambda m: disable_item(m, args.name, args.item_type, args.tool))
    _print_result(result, args)


def cmd_remove(args: argparse.Namespace) -> None:
    if not args.soft and not args.yes and not args.dry_run:
        if not confirm(f"  Remove '{args.name}' and delete its files?", default=False):
            print(f"  {C.DIM}Aborted.{C.RESET}")
            return
    root = project_root(args)
    result = update_manifest(args, lambda m: remove_item(m, args.name, args.item_type, args.soft))
    apply_removal(result, root, args)
    for purged in result.purged:
        log(f"{C.YELLOW}Removed{C.RESET} {purged}")
    _print_result(result, args)


def cmd_remove_plugin(args: argparse.Namespace) -> None:
    if not args.soft and not args.yes and not args.dry_run:
        if not confirm(f"  Remove every item of plugin '{args.name}'?", default=False):
            print(f"  {C.DIM}Aborted.{C.RESET}")
            return
    root = project_root(args)
    result = update_manifest(args, lambda m: remove_plugin(m, args.name, args.soft))
    apply_removal(result, root, args)
    section_header(f"Removed ({len(result.removed)})")
    for entry in result.removed:
        log(entry)
    _print_result(result, args)


def cmd_verify(args: argparse.Namespace) -> None:
    if args.tool:
        _check_tool_ids([args.tool])
    try:
        result = verify_item_state(args.name, args.tool, args.item_type, project_root(args))
    except MyceliumError as exc:
        fail(str(exc))

    section_header(f"{result.type} '{result.name}'")
    if result.found:
        print(f"  State   {state_badge(result.state or mf.ENABLED)} {C.DIM}({result.level}){C.RESET}")
        if result.tools:
            print(f"  Tools   {', '.join(result.tools)}")
        if result.exclude_tools:
            print(f"  Exclude {', '.join(result.exclude_tools)}")
    else:
        print(f"  {C.DIM}Not declared in any manifest{C.RESET}")

    section_header("Tools")
    for presence in result.tool_presence:
        mark = f"{C.GREEN}present{C.RESET}" if presence.present_in_config else f"{C.DIM}absent{C.RESET}"
        detail = f" {C.DIM}({presence.details}){C.RESET}" if presence.details else ""
        print(f"  {presence.tool_name:15s} {mark}{detail}")

    if result.has_drift:
        section_header(f"Drift ({len(result.drifted)})")
        for line in result.drifted:
            print(f"  {C.YELLOW}{line}{C.RESET}")
    print()


def cmd_conflicts(args: argparse.Namespace) -> None:
    merged = load_merged(project_root(args))
    if not merged.conflicts:
        print(f"\n  {C.GREEN}No conflicts{C.RESET} between global and project configs.\n")
        return
    section_header(f"Conflicts ({len(merged.conflicts)})")
    for conflict in merged.conflicts:
        print(f"  {C.YELLOW}{conflict.message}{C.RESET}")
    print()


def cmd_restore(args: argparse.Namespace) -> None:
    _check_tool_ids(args.tools)
    if not args.yes and not args.dry_run:
        if not confirm("  Overwrite tool files with their .mycelium-backup copies?"):
            print(f"  {C.DIM}Aborted.{C.RESET}")
            return
    result = restore_backups(args.tools, args, project_root(args))
    section_header("Summary")
    dry = f" {C.MAGENTA}(dry-run){C.RESET}" if args.dry_run else ""
    print(f"  {C.BOLD}{len(result.restored)}{C.RESET} files restored.{dry}")
    for path in result.restored:
        log(str(path))
    print()
    if result.errors:
        fail("; ".join(result.errors))


COMMANDS: dict[str, Callable[[argparse.Namespace], None]] = {
    "sync": cmd_sync,
    "status": cmd_status,
    "add": cmd_add,
    "enable": cmd_enable,
    "disable": cmd_disable,
    "remove": cmd_remove,
    "remove-plugin": cmd_remove_plugin,
    "verify": cmd_verify,
    "conflicts": cmd_conflicts,
    "restore": cmd_restore,
}


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    COMMANDS[args.command](args)


if __name__ == "__main__":
    main()
