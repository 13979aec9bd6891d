"""Tests for add/enable/disable/remove item operations."""

import copy
import json

import pytest

from mycelium import manifest as mf
from mycelium import paths
from mycelium.errors import ItemNotFoundError, UnsupportedToolError, ValidationError
from mycelium.items import (
    add_item,
    add_mcp,
    apply_removal,
    disable_item,
    enable_item,
    purge_item_files,
    remove_item,
    remove_plugin,
)
from mycelium.plugins import take_over_plugin
from tests.conftest import make_args, seed_skill


class TestAddMcp:
    def test_adds_enabled_item(self):
        manifest = mf.empty_manifest()
        add_mcp(manifest, "pg", "pg-mcp", ["--ro"], {"PGUSER": "me"}, tool_ids=["cursor"])
        assert manifest["mcps"]["pg"] == {
            "command": "pg-mcp",
            "args": ["--ro"],
            "env": {"PGUSER": "me"},
            "tools": ["cursor"],
            "source": "manual",
            "state": "enabled",
        }

    def test_duplicate_rejected(self):
        manifest = mf.empty_manifest()
        add_mcp(manifest, "pg", "a")
        with pytest.raises(ValidationError, match='MCP "pg" already exists. Use --force to overwrite.'):
            add_mcp(manifest, "pg", "b")
        assert manifest["mcps"]["pg"]["command"] == "a"

    def test_force_overwrites(self):
        manifest = mf.empty_manifest()
        add_mcp(manifest, "pg", "a")
        result = add_mcp(manifest, "pg", "b", force=True)
        assert manifest["mcps"]["pg"]["command"] == "b"
        assert "overwritten" in result.message

    @pytest.mark.parametrize("kwargs", [
        {"name": "bad name", "command": "x"},
        {"name": "pg", "command": "  "},
        {"name": "pg", "command": "x", "tool_ids": ["emacs"]},
    ])
    def test_validation_before_mutation(self, kwargs):
        manifest = mf.empty_manifest()
        before = copy.deepcopy(manifest)
        with pytest.raises((ValidationError, UnsupportedToolError)):
            add_mcp(manifest, **kwargs)
        assert manifest == before


class TestAddItem:
    def test_skill_with_path(self, tmp_path):
        src = tmp_path / "my-skill"
        src.mkdir()
        manifest = mf.empty_manifest()
        add_item(manifest, "skill", "my-skill", path=str(src))
        assert manifest["skills"]["my-skill"]["path"] == str(src)

    def test_missing_path_rejected(self, tmp_path):
        manifest = mf.empty_manifest()
        with pytest.raises(ValidationError, match="source not found"):
            add_item(manifest, "agent", "rev", path=str(tmp_path / "nope.md"))
        assert manifest["agents"] == {}

    def test_hook_needs_command(self):
        with pytest.raises(ValidationError):
            add_item(mf.empty_manifest(), "hook", "fmt")

    def test_hook_fields(self):
        manifest = mf.empty_manifest()
        add_item(manifest, "hook", "fmt", extra={"command": "ruff", "event": None, "matchers": []})
        assert manifest["hooks"]["fmt"] == {"command": "ruff", "source": "manual", "state": "enabled"}

    def test_mcp_routed_elsewhere(self):
        with pytest.raises(ValidationError):
            add_item(mf.empty_manifest(), "mcp", "pg")

    def test_duplicate_label(self):
        manifest = {"rules": {"style": {}}}
        with pytest.raises(ValidationError, match='Rule "style" already exists'):
            add_item(manifest, "rule", "style")


class TestEnableDisable:
    def test_disable_and_enable(self):
        manifest = {"mcps": {"pg": {"command": "x"}}}
        assert disable_item(manifest, "pg").changed
        assert manifest["mcps"]["pg"]["state"] == "disabled"
        assert enable_item(manifest, "pg").changed
        assert manifest["mcps"]["pg"]["state"] == "enabled"

    def test_already(self):
        manifest = {"mcps": {"pg": {"command": "x"}}}
        result = enable_item(manifest, "pg")
        assert not result.changed
        assert result.message == "mcp 'pg' is already enabled"
        disable_item(manifest, "pg")
        assert "already disabled" in disable_item(manifest, "pg").message

    def test_per_tool_disable(self):
        manifest = {"mcps": {"pg": {"command": "x", "tools": ["cursor", "codex"]}}}
        disable_item(manifest, "pg", tool="cursor")
        item = manifest["mcps"]["pg"]
        assert item["excludeTools"] == ["cursor"]
        assert item["tools"] == ["codex"]
        assert "state" not in item
        assert not mf.is_enabled_for_tool(item, "cursor")

    def test_per_tool_disable_drops_empty_allow_list(self):
        manifest = {"mcps": {"pg": {"command": "x", "tools": ["cursor"]}}}
        disable_item(manifest, "pg", tool="cursor")
        assert "tools" not in manifest["mcps"]["pg"]

    def test_per_tool_enable(self):
        manifest = {"mcps": {"pg": {"command": "x", "excludeTools": ["cursor"]}}}
        enable_item(manifest, "pg", tool="cursor")
        assert "excludeTools" not in manifest["mcps"]["pg"]
        assert "already enabled for cursor" in enable_item(manifest, "pg", tool="cursor").message

    def test_per_tool_enable_extends_allow_list(self):
        manifest = {"mcps": {"pg": {"command": "x", "tools": ["codex"]}}}
        enable_item(manifest, "pg", tool="cursor")
        assert manifest["mcps"]["pg"]["tools"] == ["codex", "cursor"]

    def test_unknown_tool_before_lookup(self):
        with pytest.raises(UnsupportedToolError):
            enable_item({"mcps": {}}, "pg", tool="emacs")

    def test_not_found(self):
        with pytest.raises(ItemNotFoundError):
            disable_item(mf.empty_manifest(), "ghost")


class TestRemoveItem:
    def test_tombstone_and_purge(self, fake_home):
        skill = seed_skill(fake_home, "review")
        link = fake_home / ".claude" / "skills" / "review"
        link.parent.mkdir(parents=True)
        link.symlink_to(skill)
        manifest = {"skills": {"review": {}}}

        result = remove_item(manifest, "review")
        assert manifest["skills"]["review"]["state"] == "deleted"
        assert skill.exists()
        assert link.is_symlink()

        apply_removal(result, args=make_args())

        assert not skill.exists()
        assert not link.is_symlink()
        assert set(result.purged) == {skill, link}

    def test_soft_keeps_files(self, fake_home):
        skill = seed_skill(fake_home, "review")
        manifest = {"skills": {"review": {}}}
        result = apply_removal(remove_item(manifest, "review", soft=True))
        assert manifest["skills"]["review"]["state"] == "deleted"
        assert skill.exists()
        assert result.message == "skill 'review' marked as deleted"

    def test_dry_run_purges_nothing(self, fake_home):
        skill = seed_skill(fake_home, "review")
        manifest = {"skills": {"review": {}}}
        result = apply_removal(remove_item(manifest, "review"), args=make_args(dry_run=True))
        assert skill.exists()
        assert result.purged == [skill]

    def test_untracked_with_type_gets_tombstone(self, fake_home):
        manifest = mf.empty_manifest()
        remove_item(manifest, "stray", "agent", soft=True)
        assert manifest["agents"]["stray"] == {"state": "deleted"}

    def test_untracked_without_type(self, fake_home):
        with pytest.raises(ItemNotFoundError):
            remove_item(mf.empty_manifest(), "stray")

    def test_project_relative_files(self, fake_home, tmp_path):
        rules = paths.canonical_dir("rules")
        rules.mkdir(parents=True)
        (rules / "style.md").write_text("x")
        cursor_rule = tmp_path / ".cursor" / "rules" / "style.md"
        cursor_rule.parent.mkdir(parents=True)
        cursor_rule.symlink_to(rules / "style.md")

        purged = purge_item_files("style", "rule", project_root=tmp_path)

        assert rules / "style.md" in purged
        assert cursor_rule in purged
        assert not cursor_rule.is_symlink()

    def test_custom_path_link_purged_source_kept(self, fake_home, tmp_path):
        src = tmp_path / "review.md"
        src.write_text("x")
        link = fake_home / ".claude" / "agents" / "review.md"
        link.parent.mkdir(parents=True)
        link.symlink_to(src)

        purged = purge_item_files("code-reviewer", "agent", item={"path": str(src)})

        assert purged == [link]
        assert not link.is_symlink()
        assert src.exists()


class TestPluginRelease:
    def _manifest(self, fake_home):
        settings = fake_home / ".claude" / "settings.json"
        settings.parent.mkdir(parents=True, exist_ok=True)
        settings.write_text(json.dumps({"enabledPlugins": {"superpowers@market": True}}))
        manifest = mf.empty_manifest()
        take_over_plugin(manifest, "superpowers@market", {
            "skills": {"brainstorm": {}, "tdd": {}},
        })
        return manifest, settings

    def test_released_only_when_all_deleted(self, fake_home):
        manifest, settings = self._manifest(fake_home)
        assert json.loads(settings.read_text())["enabledPlugins"]["superpowers@market"] is False

        first = remove_item(manifest, "brainstorm", soft=True)
        assert first.released == []
        assert "superpowers@market" in manifest["takenOverPlugins"]

        second = remove_item(manifest, "tdd", soft=True)
        assert second.released == ["superpowers@market"]
        assert "takenOverPlugins" not in manifest
        assert json.loads(settings.read_text())["enabledPlugins"]["superpowers@market"] is False

        apply_removal(second)
        assert json.loads(settings.read_text())["enabledPlugins"]["superpowers@market"] is True

    def test_remove_plugin_by_name(self, fake_home):
        manifest, settings = self._manifest(fake_home)
        result = apply_removal(remove_plugin(manifest, "superpowers", soft=True))
        assert sorted(result.removed) == ["skill: brainstorm", "skill: tdd"]
        assert result.released == ["superpowers@market"]
        assert all(o.ok for o in result.advisory)
        assert manifest["skills"]["tdd"]["state"] == "deleted"

    def test_remove_plugin_by_source(self, fake_home):
        manifest = {"mcps": {"a": {"command": "a", "source": "acme"}, "b": {"command": "b"}}}
        result = remove_plugin(manifest, "acme", soft=True)
        assert result.removed == ["mcp: a"]
        assert manifest["mcps"]["b"].get("state") is None

    def test_remove_plugin_unknown(self, fake_home):
        with pytest.raises(ItemNotFoundError, match="No items found for plugin 'nope'"):
            remove_plugin(mf.empty_manifest(), "nope")

    def test_remove_plugin_queues_purge(self, fake_home):
        manifest, _ = self._manifest(fake_home)
        skill = seed_skill(fake_home, "tdd")

        result = remove_plugin(manifest, "superpowers")

        assert skill.exists()
        assert sorted(name for name, _, _ in result.purge_plan) == ["brainstorm", "tdd"]
        apply_removal(result, args=make_args())
        assert not skill.exists()
