"""Tests for the manifest store and state queries."""

import pytest

from mycelium import manifest as mf
from mycelium import paths
from mycelium.errors import AmbiguousItemError, ItemNotFoundError, ManifestError, ValidationError
from tests.conftest import seed_manifest


class TestLoadSave:
    def test_absent_is_none(self, tmp_path):
        assert mf.load(tmp_path) is None

    def test_empty_file_is_empty_manifest(self, tmp_path):
        (tmp_path / "manifest.yaml").write_text("")
        assert mf.load(tmp_path) == mf.empty_manifest()

    def test_invalid_yaml_is_none(self, tmp_path):
        (tmp_path / "manifest.yaml").write_text("mcps: [unclosed\n")
        assert mf.load(tmp_path) is None

    def test_non_mapping_is_none(self, tmp_path):
        (tmp_path / "manifest.yaml").write_text("- a\n- b\n")
        assert mf.load(tmp_path) is None

    def test_save_then_load(self, tmp_path):
        manifest = mf.empty_manifest()
        manifest["mcps"]["pg"] = {"command": "pg-mcp", "args": ["--port", "5432"]}
        mf.save(tmp_path, manifest)
        assert mf.load(tmp_path) == manifest

    def test_save_leaves_no_temp_files(self, tmp_path):
        mf.save(tmp_path, mf.empty_manifest())
        assert [p.name for p in tmp_path.iterdir()] == ["manifest.yaml"]

    def test_save_keeps_key_order(self, tmp_path):
        mf.save(tmp_path, mf.empty_manifest())
        text = (tmp_path / "manifest.yaml").read_text()
        assert text.index("version") < text.index("skills") < text.index("memory")

    def test_load_for_update_refuses_broken_file(self, tmp_path):
        (tmp_path / "manifest.yaml").write_text("mcps: [unclosed\n")
        with pytest.raises(ManifestError):
            mf.load_for_update(tmp_path)

    def test_load_for_update_starts_empty(self, tmp_path):
        assert mf.load_for_update(tmp_path) == mf.empty_manifest()


class TestSections:
    def test_type_and_section_round_trip(self):
        for item_type in mf.ALL_TYPES:
            assert mf.type_for_section(mf.section_for_type(item_type)) == item_type

    def test_section_name_accepted_as_type(self):
        assert mf.section_for_type("mcps") == "mcps"

    def test_unknown_type(self):
        assert mf.section_for_type("plugin") is None

    def test_malformed_section_tolerated(self):
        assert mf.section_items({"mcps": ["not", "a", "map"]}, "mcps") == {}


class TestValidateName:
    @pytest.mark.parametrize("name", ["pg", "my-skill", "a_b", "0day"])
    def test_valid(self, name):
        mf.validate_name(name)

    @pytest.mark.parametrize("name", ["", "-lead", "_lead", "has space", "dot.name", "../x"])
    def test_invalid(self, name):
        with pytest.raises(ValidationError):
            mf.validate_name(name)


class TestResolveItem:
    def test_unique(self):
        manifest = {"mcps": {"pg": {"command": "x"}}}
        match = mf.resolve_item(manifest, "pg")
        assert match.type == "mcp"

    def test_returns_live_dict(self):
        manifest = {"mcps": {"pg": {"command": "x"}}}
        mf.resolve_item(manifest, "pg").item["state"] = "disabled"
        assert manifest["mcps"]["pg"]["state"] == "disabled"

    def test_ambiguous(self):
        manifest = {"skills": {"pg": {}}, "mcps": {"pg": {"command": "x"}}}
        with pytest.raises(AmbiguousItemError) as exc:
            mf.resolve_item(manifest, "pg")
        assert str(exc.value) == (
            "'pg' found in multiple sections: skill, mcp. Use --type to disambiguate."
        )

    def test_type_disambiguates(self):
        manifest = {"skills": {"pg": {}}, "mcps": {"pg": {"command": "x"}}}
        assert mf.resolve_item(manifest, "pg", "mcp").section == "mcps"

    def test_not_found(self):
        with pytest.raises(ItemNotFoundError):
            mf.resolve_item(mf.empty_manifest(), "nope")

    def test_invalid_type(self):
        with pytest.raises(ValidationError):
            mf.resolve_item(mf.empty_manifest(), "x", "plugin")


class TestEnablement:
    def test_absent_state_is_enabled(self):
        assert mf.is_enabled({"command": "x"})

    def test_unknown_state_treated_as_enabled(self):
        assert mf.item_state({"state": "paused"}) == "enabled"

    def test_allow_list_checked_first(self):
        item = {"tools": ["cursor"], "excludeTools": ["cursor"]}
        assert not mf.is_enabled_for_tool(item, "cursor")
        assert not mf.is_enabled_for_tool(item, "codex")

    def test_allow_list(self):
        item = {"tools": ["cursor"]}
        assert mf.is_enabled_for_tool(item, "cursor")
        assert not mf.is_enabled_for_tool(item, "codex")

    def test_deny_list(self):
        item = {"excludeTools": ["codex"]}
        assert mf.is_enabled_for_tool(item, "cursor")
        assert not mf.is_enabled_for_tool(item, "codex")

    def test_disabled_beats_lists(self):
        assert not mf.is_enabled_for_tool({"state": "disabled", "tools": ["cursor"]}, "cursor")


class TestDisabledItems:
    def test_union_of_scopes(self):
        g = {"mcps": {"a": {"state": "disabled"}}}
        p = {"skills": {"b": {"state": "deleted"}}}
        assert mf.get_disabled_items(g, p) == {"a", "b"}

    def test_project_reenables(self):
        g = {"mcps": {"a": {"state": "disabled"}}}
        p = {"mcps": {"a": {"state": "enabled"}}}
        assert mf.get_disabled_items(g, p) == set()


class TestGetItemState:
    def test_project_scope_first(self, fake_home, tmp_path):
        seed_manifest(paths.global_dir(), mcps={"pg": {"command": "x", "state": "disabled"}})
        root = tmp_path / "proj"
        seed_manifest(paths.project_dir(root), mcps={"pg": {"command": "x", "state": "enabled"}})

        info = mf.get_item_state("pg", project_root=root)
        assert info.found
        assert info.level == "project"
        assert info.state == "enabled"

    def test_global_fallback_with_tool(self, fake_home):
        seed_manifest(paths.global_dir(), mcps={"pg": {"command": "x", "excludeTools": ["codex"]}})
        info = mf.get_item_state("pg", tool="codex")
        assert info.level == "global"
        assert info.exclude_tools == ["codex"]
        assert info.effectively_disabled_for_tool is True

    def test_missing(self, fake_home):
        info = mf.get_item_state("ghost")
        assert not info.found
        assert info.state is None

    def test_type_filters_shared_name(self, fake_home, tmp_path):
        root = tmp_path / "proj"
        seed_manifest(paths.project_dir(root), skills={"pg": {}})
        seed_manifest(paths.global_dir(), mcps={"pg": {"command": "x", "state": "disabled"}})

        info = mf.get_item_state("pg", project_root=root, item_type="mcp")

        assert info.type == "mcp"
        assert info.level == "global"
        assert info.state == "disabled"
