"""Environment variable files and ``${NAME}`` substitution for MCP entries."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

from mycelium import paths

_TOKEN_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def resolve_env_value(value: str, env: Mapping[str, str]) -> str:
    """Replace each ``${NAME}`` token. Unknown names become the empty string."""
    return _TOKEN_RE.sub(lambda m: env.get(m.group(1), ""), value)


def unresolved_names(value: str, env: Mapping[str, str]) -> list[str]:
    return [m.group(1) for m in _TOKEN_RE.finditer(value) if m.group(1) not in env]


def resolve_entry(item: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Copy of an MCP item with env values, args and command substituted."""
    resolved = dict(item)
    if isinstance(resolved.get("command"), str):
        resolved["command"] = resolve_env_value(resolved["command"], env)
    if resolved.get("args"):
        resolved["args"] = [
            resolve_env_value(a, env) if isinstance(a, str) else a
            for a in resolved["args"]
        ]
    if resolved.get("env"):
        resolved["env"] = {
            k: resolve_env_value(v, env) if isinstance(v, str) else v
            for k, v in resolved["env"].items()
        }
    return resolved


def resolve_items(items: Mapping[str, dict[str, Any]],
                  env: Optional[Mapping[str, str]]) -> dict[str, dict[str, Any]]:
    if env is None:
        return dict(items)
    return {name: resolve_entry(item, env) for name, item in items.items()}


# ---------------------------------------------------------------------------
# .env.local loading
# ---------------------------------------------------------------------------


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_env_file(text: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key:
            continue
        result[key] = _strip_quotes(value.strip())
    return result


def read_env_file(path: Path) -> dict[str, str]:
    if not path.is_file():
        return {}
    try:
        return parse_env_file(path.read_text())
    except OSError:
        return {}


def load_env(project_root: Optional[Path] = None,
             include_process: bool = True) -> dict[str, str]:
    """Global .env.local, then project .env.local on top, then os.environ for the rest."""
    merged: dict[str, str] = {}
    if include_process:
        merged.update(os.environ)
    merged.update(read_env_file(paths.global_dir() / paths.ENV_FILE))
    if project_root is not None:
        merged.update(read_env_file(paths.project_dir(project_root) / paths.ENV_FILE))
    return merged
