"""Tests for backup-before-write and restore."""

from mycelium import tools
from mycelium.backup import backup_path_for, restore_backups, write_config
from tests.conftest import make_args


class TestWriteConfig:
    def test_new_file_no_backup(self, fake_home):
        target = fake_home / ".cursor" / "mcp.json"
        result = write_config(target, "{}\n", make_args())
        assert result.written
        assert result.backup_path is None
        assert target.read_text() == "{}\n"

    def test_backs_up_existing(self, fake_home):
        target = fake_home / "config.json"
        target.write_text("original")
        result = write_config(target, "new", make_args())
        assert result.backup_path == fake_home / "config.json.mycelium-backup"
        assert result.backup_path.read_text() == "original"
        assert target.read_text() == "new"

    def test_unchanged_not_written(self, fake_home):
        target = fake_home / "config.json"
        target.write_text("same")
        result = write_config(target, "same", make_args())
        assert not result.written
        assert not backup_path_for(target).exists()

    def test_dry_run(self, fake_home):
        target = fake_home / "config.json"
        target.write_text("original")
        result = write_config(target, "new", make_args(dry_run=True))
        assert not result.written
        assert target.read_text() == "original"
        assert not backup_path_for(target).exists()

    def test_diff_printed(self, fake_home, capsys):
        target = fake_home / "config.json"
        target.write_text("a\n")
        write_config(target, "b\n", make_args(diff=True, dry_run=True))
        out = capsys.readouterr().out
        assert "-a" in out
        assert "+b" in out

    def test_second_write_keeps_first_backup(self, fake_home):
        target = fake_home / ".codex" / "config.toml"
        target.parent.mkdir()
        target.write_text("user original")
        backed_up: set = set()
        write_config(target, "after mcps", make_args(), backed_up)
        write_config(target, "after hooks", make_args(), backed_up)
        assert backup_path_for(target).read_text() == "user original"
        assert target.read_text() == "after hooks"

    def test_without_args(self, fake_home):
        assert write_config(fake_home / "x.json", "{}").written


class TestRestoreBackups:
    def test_restores_and_removes_backup(self, fake_home):
        cursor = fake_home / ".cursor"
        cursor.mkdir()
        target = cursor / "mcp.json"
        target.write_text("original")
        write_config(target, "synced", make_args())

        result = restore_backups(["cursor"], make_args())

        assert result.restored == [target]
        assert target.read_text() == "original"
        assert not backup_path_for(target).exists()

    def test_dry_run_keeps_files(self, fake_home):
        codex = fake_home / ".codex"
        codex.mkdir()
        (codex / "config.toml.mycelium-backup").write_text("old")
        (codex / "config.toml").write_text("new")
        result = restore_backups(["codex"], make_args(dry_run=True))
        assert len(result.restored) == 1
        assert (codex / "config.toml").read_text() == "new"

    def test_home_level_backup(self, fake_home):
        (fake_home / ".claude.json.mycelium-backup").write_text("{}")
        result = restore_backups(["claude-code"], make_args())
        assert result.restored == [fake_home / ".claude.json"]

    def test_config_dir_outside_backup_dirs(self, fake_home, monkeypatch):
        monkeypatch.setattr(tools.sys, "platform", "linux")
        target = fake_home / ".config" / "Code" / "User" / "mcp.json"
        target.parent.mkdir(parents=True)
        target.write_text("original")
        write_config(target, "synced", make_args())

        result = restore_backups(["vscode"], make_args())

        assert result.restored == [target]
        assert target.read_text() == "original"

    def test_project_hooks_file(self, fake_home, tmp_path):
        target = tmp_path / "work" / ".cursor" / "hooks.json"
        target.parent.mkdir(parents=True)
        target.write_text("original")
        write_config(target, "synced", make_args())

        assert restore_backups(["cursor"], make_args()).restored == []
        result = restore_backups(["cursor"], make_args(), project_root=tmp_path / "work")

        assert result.restored == [target]
        assert target.read_text() == "original"
