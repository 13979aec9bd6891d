"""Tests for ${NAME} substitution and .env.local files."""

from mycelium import paths
from mycelium.env import (
    load_env,
    parse_env_file,
    resolve_entry,
    resolve_env_value,
    resolve_items,
    unresolved_names,
)


class TestResolveEnvValue:
    def test_adjacent_tokens(self):
        assert resolve_env_value("${A}${B}", {"A": "x", "B": "y"}) == "xy"

    def test_unknown_becomes_empty(self):
        assert resolve_env_value("${Z}", {}) == ""

    def test_surrounding_text_kept(self):
        assert resolve_env_value("postgres://${USER}@db", {"USER": "me"}) == "postgres://me@db"

    def test_bare_dollar_untouched(self):
        assert resolve_env_value("$HOME and ${", {}) == "$HOME and ${"

    def test_unresolved_names(self):
        assert unresolved_names("${A}-${B}", {"A": "1"}) == ["B"]


class TestResolveEntry:
    def test_args_env_and_command(self):
        item = {"command": "${BIN}", "args": ["--token", "${TOKEN}"], "env": {"K": "${TOKEN}"}}
        out = resolve_entry(item, {"BIN": "mcp", "TOKEN": "t"})
        assert out == {"command": "mcp", "args": ["--token", "t"], "env": {"K": "t"}}
        assert item["command"] == "${BIN}"

    def test_no_env_passes_through(self):
        items = {"pg": {"command": "${X}"}}
        assert resolve_items(items, None) == items


class TestParseEnvFile:
    def test_formats(self):
        text = (
            "# comment\n"
            "\n"
            "PLAIN=value\n"
            "export EXPORTED=yes\n"
            "DOUBLE=\"with spaces\"\n"
            "SINGLE='quoted'\n"
            "EQUALS=a=b\n"
            "not a pair\n"
        )
        assert parse_env_file(text) == {
            "PLAIN": "value",
            "EXPORTED": "yes",
            "DOUBLE": "with spaces",
            "SINGLE": "quoted",
            "EQUALS": "a=b",
        }

    def test_mismatched_quotes_kept(self):
        assert parse_env_file("X=\"half'\n") == {"X": "\"half'"}


class TestLoadEnv:
    def test_project_beats_global_beats_process(self, fake_home, tmp_path, monkeypatch):
        monkeypatch.setenv("SHARED", "process")
        monkeypatch.setenv("ONLY_PROCESS", "p")
        gdir = paths.global_dir()
        gdir.mkdir(parents=True)
        (gdir / ".env.local").write_text("SHARED=global\nONLY_GLOBAL=g\n")
        root = tmp_path / "proj"
        paths.project_dir(root).mkdir(parents=True)
        (paths.project_dir(root) / ".env.local").write_text("SHARED=project\n")

        env = load_env(root)

        assert env["SHARED"] == "project"
        assert env["ONLY_GLOBAL"] == "g"
        assert env["ONLY_PROCESS"] == "p"

    def test_without_process(self, fake_home, monkeypatch):
        monkeypatch.setenv("SOMETHING", "1")
        assert "SOMETHING" not in load_env(include_process=False)
