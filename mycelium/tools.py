"""Static registry of target tools: where each one keeps its config and in what format."""

from __future__ import annotations

import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from mycelium import paths
from mycelium.errors import UnsupportedToolError

# A path is a plain string, a per-platform mapping, or None when unsupported.
PathSpec = Union[str, dict[str, str], None]

FORMATS = ("json", "jsonc", "toml", "yaml")
ENTRY_SHAPES = ("standard", "vscode", "opencode", "openclaw")


@dataclass(frozen=True)
class McpDescriptor:
    format: str
    key: str
    entry_shape: str = "standard"


@dataclass(frozen=True)
class ToolPaths:
    mcp: PathSpec = None
    skills: PathSpec = None
    agents: PathSpec = None
    rules: PathSpec = None
    commands: PathSpec = None
    hooks: PathSpec = None
    memory: PathSpec = None
    backup_dirs: tuple[str, ...] = ()


@dataclass(frozen=True)
class ToolDescriptor:
    id: str
    name: str
    cli: Optional[str]
    paths: ToolPaths
    mcp: McpDescriptor
    capabilities: tuple[str, ...] = field(default_factory=tuple)
    memory_max_lines: Optional[int] = None


TOOL_REGISTRY: dict[str, ToolDescriptor] = {
    "claude-code": ToolDescriptor(
        id="claude-code",
        name="Claude Code",
        cli="claude",
        paths=ToolPaths(
            mcp="~/.claude.json",
            skills="~/.claude/skills",
            agents="~/.claude/agents/",
            hooks="~/.claude/settings.json",
            memory="~/.claude/CLAUDE.md",
            backup_dirs=("~/.claude", "~"),
        ),
        mcp=McpDescriptor(format="json", key="mcpServers"),
        capabilities=("mcp", "skills", "memory", "agents", "hooks"),
        memory_max_lines=200,
    ),
    "codex": ToolDescriptor(
        id="codex",
        name="Codex CLI",
        cli="codex",
        paths=ToolPaths(
            mcp="~/.codex/config.toml",
            skills="~/.codex/skills",
            rules=".codex/rules/",
            hooks="~/.codex/config.toml",
            memory="~/.codex/AGENTS.md",
            backup_dirs=("~/.codex",),
        ),
        mcp=McpDescriptor(format="toml", key="mcp.servers"),
        capabilities=("mcp", "skills", "memory", "rules", "hooks"),
    ),
    "gemini-cli": ToolDescriptor(
        id="gemini-cli",
        name="Gemini CLI",
        cli="gemini",
        paths=ToolPaths(
            mcp="~/.gemini/settings.json",
            skills="~/.gemini/extensions",
            hooks="~/.gemini/settings.json",
            memory="~/.gemini/GEMINI.md",
            backup_dirs=("~/.gemini",),
        ),
        mcp=McpDescriptor(format="json", key="mcpServers"),
        capabilities=("mcp", "skills", "memory", "hooks"),
    ),
    "opencode": ToolDescriptor(
        id="opencode",
        name="OpenCode",
        cli="opencode",
        paths=ToolPaths(
            mcp="~/.config/opencode/opencode.json",
            skills="~/.config/opencode/plugin",
            agents="~/.config/opencode/agents/",
            commands="~/.config/opencode/commands/",
            hooks="~/.config/opencode/settings.json",
            memory="~/.opencode/context.md",
            backup_dirs=("~/.config/opencode",),
        ),
        mcp=McpDescriptor(format="json", key="mcp", entry_shape="opencode"),
        capabilities=("mcp", "skills", "memory", "agents", "hooks", "commands"),
    ),
    "openclaw": ToolDescriptor(
        id="openclaw",
        name="OpenClaw",
        cli="openclaw",
        paths=ToolPaths(
            mcp="~/.openclaw/openclaw.json",
            skills="~/.openclaw/workspace/skills",
            agents="~/.openclaw/workspace/agents",
            backup_dirs=("~/.openclaw",),
        ),
        mcp=McpDescriptor(format="json", key="plugins.entries", entry_shape="openclaw"),
        capabilities=("mcp", "skills", "agents"),
    ),
    "aider": ToolDescriptor(
        id="aider",
        name="Aider",
        cli="aider",
        paths=ToolPaths(
            mcp="~/.aider/mcp.yaml",
            skills="~/.aider/plugins",
            memory="~/.aider/MEMORY.md",
            backup_dirs=("~/.aider",),
        ),
        mcp=McpDescriptor(format="yaml", key="mcp.servers"),
        capabilities=("mcp", "skills", "memory"),
    ),
    "cursor": ToolDescriptor(
        id="cursor",
        name="Cursor",
        cli="cursor",
        paths=ToolPaths(
            mcp="~/.cursor/mcp.json",
            rules=".cursor/rules/",
            commands=".cursor/commands/",
            hooks=".cursor/hooks.json",
            backup_dirs=("~/.cursor",),
        ),
        mcp=McpDescriptor(format="json", key="mcpServers"),
        capabilities=("mcp", "rules", "hooks", "commands"),
    ),
    "vscode": ToolDescriptor(
        id="vscode",
        name="VS Code",
        cli="code",
        paths=ToolPaths(
            mcp={
                "darwin": "~/Library/Application Support/Code/User/mcp.json",
                "linux": "~/.config/Code/User/mcp.json",
                "win32": "%APPDATA%/Code/User/mcp.json",
            },
            rules=".github/instructions/",
            backup_dirs=(),
        ),
        mcp=McpDescriptor(format="jsonc", key="servers", entry_shape="vscode"),
        capabilities=("mcp", "rules"),
    ),
    "antigravity": ToolDescriptor(
        id="antigravity",
        name="Antigravity",
        cli=None,
        paths=ToolPaths(
            mcp="~/.gemini/antigravity/mcp_config.json",
            skills="~/.gemini/antigravity/skills/",
            memory="~/.gemini/antigravity/rules.md",
            backup_dirs=("~/.gemini/antigravity",),
        ),
        mcp=McpDescriptor(format="json", key="mcpServers"),
        capabilities=("mcp", "skills", "memory"),
    ),
}

ALL_TOOL_IDS = list(TOOL_REGISTRY)


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def get_descriptor(tool_id: str) -> ToolDescriptor:
    try:
        return TOOL_REGISTRY[tool_id]
    except KeyError:
        raise UnsupportedToolError(tool_id) from None


def tools_with_capability(capability: str) -> list[ToolDescriptor]:
    return [d for d in TOOL_REGISTRY.values() if capability in d.capabilities]


def _platform_key() -> str:
    if sys.platform.startswith("win"):
        return "win32"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


def resolve_path(spec: PathSpec, project_root: Optional[Path] = None) -> Optional[Path]:
    """Expand a registry path. Relative paths need a project root, else None."""
    if spec is None:
        return None
    if isinstance(spec, dict):
        spec = spec.get(_platform_key())
        if not spec:
            return None
    if spec == "~" or spec.startswith("~/") or spec.startswith("%") or spec.startswith("/"):
        return paths.expand_path(spec)
    if project_root is None:
        return None
    return Path(project_root) / spec


def kind_path(tool_id: str, kind: str, project_root: Optional[Path] = None) -> Optional[Path]:
    desc = get_descriptor(tool_id)
    return resolve_path(getattr(desc.paths, kind, None), project_root)


def config_path(tool_id: str, project_root: Optional[Path] = None) -> Optional[Path]:
    return kind_path(tool_id, "mcp", project_root)


def backup_dirs(tool_id: str) -> list[Path]:
    return [paths.expand_path(d) for d in get_descriptor(tool_id).paths.backup_dirs]


def is_installed(tool_id: str) -> bool:
    """CLI on PATH, or one of its config directories exists."""
    desc = get_descriptor(tool_id)
    if desc.cli and shutil.which(desc.cli):
        return True
    for raw in desc.paths.backup_dirs:
        candidate = paths.expand_path(raw)
        if candidate != paths.home() and candidate.is_dir():
            return True
    path = resolve_path(desc.paths.mcp)
    return path is not None and path.parent.is_dir() and path.parent != paths.home()


def detect_installed_tools() -> list[str]:
    return [tool_id for tool_id in ALL_TOOL_IDS if is_installed(tool_id)]


def validate_registry() -> list[str]:
    """Problems in the static table, empty when it is consistent."""
    problems: list[str] = []
    for tool_id, desc in TOOL_REGISTRY.items():
        if desc.id != tool_id:
            problems.append(f"{tool_id}: id mismatch ({desc.id})")
        if desc.mcp.format not in FORMATS:
            problems.append(f"{tool_id}: unknown format {desc.mcp.format}")
        if desc.mcp.entry_shape not in ENTRY_SHAPES:
            problems.append(f"{tool_id}: unknown entry shape {desc.mcp.entry_shape}")
        if "mcp" in desc.capabilities and desc.paths.mcp is None:
            problems.append(f"{tool_id}: mcp capability without a config path")
    return problems
