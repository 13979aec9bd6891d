"""Per-format codecs that turn manifest MCP items into a tool's native config.

Every codec does two things: ``generate`` builds the managed entries from the
effectively enabled items, and ``inject`` rewrites an existing config file so
that only the managed sub-tree changes.
"""

from __future__ import annotations

import copy
import json
import re
from typing import Any, Mapping, Optional

import yaml

from mycelium import manifest as mf
from mycelium.tools import get_descriptor

# ---------------------------------------------------------------------------
# Item filtering and entry shapes
# ---------------------------------------------------------------------------


def filter_items_for_tool(items: Mapping[str, dict[str, Any]],
                          tool_id: Optional[str] = None) -> dict[str, dict[str, Any]]:
    """Effectively enabled items, in declaration order."""
    if tool_id is None:
        return {name: item for name, item in items.items() if mf.is_enabled(item)}
    return {
        name: item for name, item in items.items()
        if mf.is_enabled_for_tool(item, tool_id)
    }


def clean_entry(item: Mapping[str, Any]) -> dict[str, Any]:
    """Only the externally visible fields: command, then non-empty args and env."""
    entry: dict[str, Any] = {"command": item.get("command", "")}
    args = item.get("args")
    if args:
        entry["args"] = [str(a) for a in args]
    env = item.get("env")
    if env:
        entry["env"] = {str(k): str(v) for k, v in env.items()}
    return entry


def shape_entry(entry: dict[str, Any], shape: str) -> dict[str, Any]:
    if shape == "vscode":
        return {"type": "stdio", **entry}
    if shape == "opencode":
        shaped: dict[str, Any] = {
            "type": "local",
            "command": [entry["command"], *entry.get("args", [])],
            "enabled": True,
        }
        if entry.get("env"):
            shaped["environment"] = entry["env"]
        return shaped
    if shape == "openclaw":
        return {"type": OPENCLAW_ENTRY_TYPE, **entry}
    return entry


OPENCLAW_ENTRY_TYPE = "mcp-adapter"


# ---------------------------------------------------------------------------
# Nested key helpers
# ---------------------------------------------------------------------------


def get_nested(data: Any, key: str) -> Any:
    current = data
    for part in key.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def set_nested(data: dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    current = data
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


# ---------------------------------------------------------------------------
# JSONC comment stripping
# ---------------------------------------------------------------------------

_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


def strip_jsonc(text: str) -> str:
    """Drop // and /* */ comments outside strings, then trailing commas."""
    out: list[str] = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1
    return _strip_trailing_commas("".join(out))


def _strip_trailing_commas(text: str) -> str:
    # Odd indexes are string literals and stay untouched.
    pieces = re.split(r'("(?:\\.|[^"\\])*")', text)
    for idx in range(0, len(pieces), 2):
        pieces[idx] = _TRAILING_COMMA_RE.sub(r"\1", pieces[idx])
    return "".join(pieces)


# ---------------------------------------------------------------------------
# TOML formatting helpers
# ---------------------------------------------------------------------------

_TOML_BARE_KEY_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


def toml_quote_string(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
        .replace("\n", "\\n")
        .replace('"', '\\"')
    )
    return f'"{escaped}"'


def toml_format_key(key: str) -> str:
    if _TOML_BARE_KEY_RE.match(key):
        return key
    return toml_quote_string(key)


def toml_format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return "[" + ", ".join(toml_format_value(v) for v in value) + "]"
    return toml_quote_string(str(value))


# ---------------------------------------------------------------------------
# Codecs
# ---------------------------------------------------------------------------


class ParseError(ValueError):
    pass


class Codec:
    """Base codec for formats that parse into a dict."""

    format = ""

    def __init__(self, key: str = "mcpServers", entry_shape: str = "standard",
                 tool_id: Optional[str] = None) -> None:
        self.key = key
        self.entry_shape = entry_shape
        self.tool_id = tool_id

    # -- format specific ---------------------------------------------------

    def parse(self, text: str) -> dict[str, Any]:
        raise NotImplementedError

    def serialize(self, data: dict[str, Any]) -> str:
        raise NotImplementedError

    # -- shared ------------------------------------------------------------

    def try_parse(self, text: Optional[str]) -> tuple[dict[str, Any], Optional[str]]:
        """Parsed document and an error message. Unparseable input becomes {}."""
        if text is None or not text.strip():
            return {}, None
        try:
            data = self.parse(text)
        except (ValueError, yaml.YAMLError) as exc:
            return {}, f"{type(exc).__name__}: {exc}"
        if not isinstance(data, dict):
            return {}, f"expected a mapping at the top level, got {type(data).__name__}"
        return data, None

    def generate(self, items: Mapping[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
        return {
            name: shape_entry(clean_entry(item), self.entry_shape)
            for name, item in filter_items_for_tool(items, self.tool_id).items()
        }

    def managed_section(self, data: dict[str, Any]) -> dict[str, Any]:
        section = get_nested(data, self.key)
        return section if isinstance(section, dict) else {}

    def entry_names(self, text: Optional[str]) -> list[str]:
        data, _ = self.try_parse(text)
        section = self.managed_section(data)
        if self.entry_shape == "openclaw":
            return [
                n for n, e in section.items()
                if isinstance(e, dict) and e.get("type") == OPENCLAW_ENTRY_TYPE
            ]
        return list(section)

    def contains(self, text: Optional[str], name: str) -> bool:
        data, _ = self.try_parse(text)
        return name in self.managed_section(data)

    def inject(self, existing: Optional[str], items: Mapping[str, dict[str, Any]]) -> str:
        data, _ = self.try_parse(existing)
        data = copy.deepcopy(data)
        entries = self.generate(items)
        if self.entry_shape == "openclaw":
            kept = {
                n: e for n, e in self.managed_section(data).items()
                if not (isinstance(e, dict) and e.get("type") == OPENCLAW_ENTRY_TYPE)
            }
            entries = {**kept, **entries}
        set_nested(data, self.key, entries)
        return self.serialize(data)


class JsonCodec(Codec):
    format = "json"

    def parse(self, text: str) -> dict[str, Any]:
        return json.loads(text)

    def serialize(self, data: dict[str, Any]) -> str:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


class JsoncCodec(JsonCodec):
    """Reads JSON with comments and trailing commas; writes plain JSON."""

    format = "jsonc"

    def parse(self, text: str) -> dict[str, Any]:
        return json.loads(strip_jsonc(text))


class YamlCodec(Codec):
    format = "yaml"

    def parse(self, text: str) -> dict[str, Any]:
        return yaml.safe_load(text)

    def serialize(self, data: dict[str, Any]) -> str:
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)


class TomlCodec(Codec):
    """Line-oriented TOML rewriting.

    Any table whose header starts with the managed key is owned and replaced;
    every other line is kept as opaque text.
    """

    format = "toml"

    _HEADER_RE = re.compile(r"^\s*\[\[?\s*([^\]]+?)\s*\]\]?\s*(#.*)?$")

    def parse(self, text: str) -> dict[str, Any]:
        raise ParseError("TOML is handled line by line")

    def try_parse(self, text: Optional[str]) -> tuple[dict[str, Any], Optional[str]]:
        return {}, None

    def _owns(self, header: str) -> bool:
        return header == self.key or header.startswith(self.key + ".")

    def _split(self, text: str) -> tuple[str, str]:
        """Unowned text before and after the first managed table."""
        before: list[str] = []
        after: list[str] = []
        inside = False
        seen = False
        for line in text.splitlines():
            m = self._HEADER_RE.match(line)
            if m:
                inside = self._owns(m.group(1))
                if inside:
                    seen = True
                    continue
            if not inside:
                (after if seen else before).append(line)
        return "\n".join(before).strip(), "\n".join(after).strip()

    def strip_managed(self, text: str) -> str:
        return "\n\n".join(p for p in self._split(text) if p)

    def replace_managed(self, existing: Optional[str], section: str) -> str:
        """Put ``section`` where the managed tables were (or at the end)."""
        before, after = self._split(existing or "")
        parts = [p for p in (before, section.strip("\n"), after) if p]
        return "\n\n".join(parts) + "\n" if parts else ""

    def render(self, entries: Mapping[str, dict[str, Any]]) -> str:
        lines: list[str] = []
        for name, entry in entries.items():
            table = f"{self.key}.{toml_quote_string(name)}"
            lines.append(f"[{table}]")
            lines.append(f"command = {toml_format_value(entry.get('command', ''))}")
            if entry.get("args"):
                lines.append(f"args = {toml_format_value(entry['args'])}")
            if entry.get("env"):
                lines.append("")
                lines.append(f"[{table}.env]")
                for k, v in entry["env"].items():
                    lines.append(f"{toml_format_key(k)} = {toml_format_value(v)}")
            lines.append("")
        return "\n".join(lines)

    def serialize(self, data: dict[str, Any]) -> str:
        return self.render(get_nested(data, self.key) or {})

    def inject(self, existing: Optional[str], items: Mapping[str, dict[str, Any]]) -> str:
        return self.replace_managed(existing, self.render(self.generate(items)))

    def header_pattern(self, name: str) -> re.Pattern[str]:
        """Header for ``name`` under the managed key or the common legacy keys."""
        keys = {self.key, "mcpServers", "mcp_servers"}
        key_alt = "|".join(re.escape(k) for k in sorted(keys))
        quoted = re.escape(name)
        return re.compile(
            rf'^\s*\[(?:{key_alt})\.(?:{quoted}|"{quoted}"|\'{quoted}\')\]\s*$',
            re.MULTILINE,
        )

    def contains(self, text: Optional[str], name: str) -> bool:
        return bool(text) and bool(self.header_pattern(name).search(text))

    def entry_names(self, text: Optional[str]) -> list[str]:
        names: list[str] = []
        prefix = self.key + "."
        for line in (text or "").splitlines():
            m = self._HEADER_RE.match(line)
            if not m or not m.group(1).startswith(prefix):
                continue
            rest = m.group(1)[len(prefix):]
            if rest.startswith('"'):
                end = rest.find('"', 1)
                name, tail = rest[1:end], rest[end + 1:]
            else:
                name, _, tail = rest.partition(".")
                tail = "." + tail if tail else ""
            if not tail and name not in names:
                names.append(name)
        return names


CODECS: dict[str, type[Codec]] = {
    "json": JsonCodec,
    "jsonc": JsoncCodec,
    "toml": TomlCodec,
    "yaml": YamlCodec,
}


def get_codec(fmt: str, key: str = "mcpServers", entry_shape: str = "standard",
              tool_id: Optional[str] = None) -> Codec:
    try:
        cls = CODECS[fmt]
    except KeyError:
        raise ValueError(f"Unknown config format: {fmt}") from None
    return cls(key=key, entry_shape=entry_shape, tool_id=tool_id)


def codec_for_tool(tool_id: str) -> Codec:
    desc = get_descriptor(tool_id)
    return get_codec(desc.mcp.format, desc.mcp.key, desc.mcp.entry_shape, tool_id)
