"""Tests for the MCP tool wrappers."""

from mycelium import mcp_server, paths
from tests.conftest import seed_manifest


class TestStatusTool:
    def test_structured_result(self, fake_home):
        seed_manifest(paths.global_dir(), mcps={"pg": {"command": "x"}})
        result = mcp_server.mycelium_status()
        assert result["project_root"] is None
        assert result["items"]["mcps"]["enabled"] == 1
        assert {t["id"] for t in result["tools"]} >= {"claude-code", "codex"}
        assert result["conflicts"] == []


class TestCommandTools:
    def test_enable_missing_item(self, fake_home):
        result = mcp_server.mycelium_enable("ghost")
        assert result["success"] is False
        assert "'ghost' not found" in result["error"]

    def test_disable_writes_manifest(self, fake_home):
        seed_manifest(paths.global_dir(), mcps={"pg": {"command": "x"}})
        result = mcp_server.mycelium_disable("pg", tool="cursor")
        assert result["success"] is True
        assert "disabled for cursor" in result["output"]
        assert "cursor" in (paths.global_dir() / "manifest.yaml").read_text()

    def test_sync_dry_run(self, fake_home):
        seed_manifest(paths.global_dir(), mcps={"pg": {"command": "x"}})
        result = mcp_server.mycelium_sync(tools=["gemini-cli"], dry_run=True)
        assert result["success"] is True
        assert not (fake_home / ".gemini" / "settings.json").exists()

    def test_conflicts(self, fake_home):
        result = mcp_server.mycelium_conflicts()
        assert result["success"] is True
        assert "No conflicts" in result["output"]
