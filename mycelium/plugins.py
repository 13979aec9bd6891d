"""Plugin takeover: adopt a Claude Code plugin's items into the manifest and hand them back.

A plugin id has the form ``<plugin>@<marketplace>``. While a plugin is taken
over, ``enabledPlugins[<id>]`` in ~/.claude/settings.json is false and the
manifest's ``takenOverPlugins`` records it.
"""

from __future__ import annotations

import argparse
import json
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

from mycelium import manifest as mf
from mycelium import paths
from mycelium.advisory import AdvisoryStep
from mycelium.console import C, is_dry_run, log
from mycelium.errors import ValidationError

TAKEN_OVER_KEY = "takenOverPlugins"


def claude_home() -> Path:
    return paths.home() / ".claude"


def settings_path() -> Path:
    return claude_home() / "settings.json"


def installed_plugins_path() -> Path:
    return claude_home() / "plugins" / "installed_plugins.json"


def plugin_cache_dir() -> Path:
    return claude_home() / "plugins" / "cache"


def parse_plugin_id(plugin_id: str) -> tuple[str, str]:
    at = plugin_id.rfind("@")
    if at <= 0 or at == len(plugin_id) - 1:
        raise ValidationError(f"Invalid plugin ID format: {plugin_id}")
    return plugin_id[:at], plugin_id[at + 1:]


# ---------------------------------------------------------------------------
# Claude Code settings
# ---------------------------------------------------------------------------


def read_settings() -> dict[str, Any]:
    path = settings_path()
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def write_settings(settings: dict[str, Any]) -> None:
    path = settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings, indent=2, ensure_ascii=False) + "\n")


def set_plugin_enabled(plugin_id: str, enabled: bool) -> None:
    """Flip ``enabledPlugins[plugin_id]`` and keep every other setting."""
    settings = read_settings()
    plugins = settings.get("enabledPlugins")
    if not isinstance(plugins, dict):
        plugins = {}
    plugins[plugin_id] = enabled
    settings["enabledPlugins"] = plugins
    write_settings(settings)


def remove_from_installed(plugin_id: str) -> bool:
    path = installed_plugins_path()
    if not path.is_file():
        return False
    data = json.loads(path.read_text())
    plugins = data.get("plugins") if isinstance(data, dict) else None
    if data.get("version") != 2 or not isinstance(plugins, dict) or plugin_id not in plugins:
        return False
    del plugins[plugin_id]
    path.write_text(json.dumps(data, indent=2) + "\n")
    return True


def delete_plugin_cache(plugin_id: str) -> None:
    plugin, marketplace = parse_plugin_id(plugin_id)
    cache = plugin_cache_dir() / marketplace / plugin
    if cache.exists():
        shutil.rmtree(cache)


# ---------------------------------------------------------------------------
# Manifest bookkeeping
# ---------------------------------------------------------------------------


def taken_over(manifest: Mapping[str, Any]) -> dict[str, Any]:
    data = manifest.get(TAKEN_OVER_KEY)
    return data if isinstance(data, dict) else {}


def find_taken_over(manifest: Mapping[str, Any], plugin_name: str) -> Optional[str]:
    """Exact id, or the first id whose plugin part is ``plugin_name``."""
    for plugin_id in taken_over(manifest):
        if plugin_id == plugin_name or plugin_id.startswith(plugin_name + "@"):
            return plugin_id
    return None


def plugin_items(manifest: Mapping[str, Any], plugin_id: str) -> list[mf.ItemMatch]:
    return [
        match for match in mf.iter_items(manifest)
        if (match.item.get("pluginOrigin") or {}).get("pluginId") == plugin_id
    ]


def take_over_plugin(manifest: dict[str, Any], plugin_id: str,
                     items: Mapping[str, Mapping[str, dict[str, Any]]],
                     args: Optional[argparse.Namespace] = None) -> list[str]:
    """Adopt ``items`` ({section: {name: item}}) and disable the native plugin."""
    plugin, marketplace = parse_plugin_id(plugin_id)
    for section in items:
        if section not in mf.ALL_SECTIONS:
            raise ValidationError(f"Unknown section: {section}")
        for name in items[section]:
            mf.validate_name(name)

    adopted: list[str] = []
    for section, entries in items.items():
        target = mf.ensure_section(manifest, section)
        for name, item in entries.items():
            record = dict(item)
            record["state"] = mf.ENABLED
            record.setdefault("source", plugin_id)
            record["pluginOrigin"] = {"pluginId": plugin_id}
            target[name] = record
            adopted.append(f"{mf.type_for_section(section)}: {name}")

    registry = manifest.get(TAKEN_OVER_KEY)
    if not isinstance(registry, dict):
        registry = {}
        manifest[TAKEN_OVER_KEY] = registry
    registry[plugin_id] = {
        "pluginId": plugin_id,
        "plugin": plugin,
        "marketplace": marketplace,
        "takenOverAt": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
    }

    if not is_dry_run(args):
        set_plugin_enabled(plugin_id, False)
    log(f"{C.GREEN}Took over{C.RESET} {plugin_id} ({len(adopted)} items)")
    return adopted


def _drop_takeover(manifest: dict[str, Any], plugin_id: str) -> None:
    registry = taken_over(manifest)
    registry.pop(plugin_id, None)
    if not registry:
        manifest.pop(TAKEN_OVER_KEY, None)


def release_steps(plugin_id: str, uninstall: bool = False) -> list[AdvisoryStep]:
    steps = [AdvisoryStep(
        f"re-enable {plugin_id} in Claude Code settings",
        lambda: set_plugin_enabled(plugin_id, True),
    )]
    if uninstall:
        steps.append(AdvisoryStep(
            f"remove {plugin_id} from installed_plugins.json",
            lambda: remove_from_installed(plugin_id),
        ))
        steps.append(AdvisoryStep(
            f"delete plugin cache for {plugin_id}",
            lambda: delete_plugin_cache(plugin_id),
        ))
    return steps


def release_plugin(manifest: dict[str, Any], plugin_id: str,
                   uninstall: bool = False) -> list[AdvisoryStep]:
    """Drop the takeover record. Returns the follow-up steps, to run after the save."""
    _drop_takeover(manifest, plugin_id)
    log(f"{C.YELLOW}Released{C.RESET} plugin takeover: {plugin_id}")
    return release_steps(plugin_id, uninstall)


def plugin_fully_deleted(manifest: Mapping[str, Any], plugin_id: str) -> bool:
    """True when the plugin is taken over and none of its items is live."""
    if plugin_id not in taken_over(manifest):
        return False
    return all(
        mf.item_state(match.item) == mf.DELETED for match in plugin_items(manifest, plugin_id)
    )
