"""Tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path

import pytest

from jot import __version__
from jot.__main__ import _parse_add, main, run
from jot.config import JotConfig
from jot.errors import ContextNotFoundError, JotError


@pytest.fixture
def config(tmp_path: Path, monkeypatch) -> JotConfig:
    workdir = tmp_path / "workspace"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    # No git on PATH: detection falls back to the directory name.
    monkeypatch.setenv("PATH", "")
    return JotConfig(db_path=tmp_path / "jots.sqlite", auto_cleanup=False)


class TestParseAdd:
    def test_message_and_flags(self):
        opts = _parse_add(["fix", "--tag", "bug", "login", "--ttl", "0", "--context", "c"])
        assert opts == {
            "message": "fix login",
            "tags": ["bug"],
            "ttl_days": 0.0,
            "context_name": "c",
        }

    def test_missing_value(self):
        with pytest.raises(JotError):
            _parse_add(["msg", "--ttl"])

    def test_bad_ttl(self):
        with pytest.raises(JotError):
            _parse_add(["msg", "--ttl", "soon"])


class TestRun:
    def test_version(self, capsys):
        assert run(["version"]) == 0
        assert capsys.readouterr().out.strip() == __version__

    def test_unknown_command(self, config: JotConfig, capsys):
        assert run(["frobnicate"], config) == 1
        assert "Usage" in capsys.readouterr().out

    def test_add_then_list(self, config: JotConfig, capsys):
        assert run(["add", "remember", "the", "milk", "--tag", "todo"], config) == 0
        assert 'context "workspace"' in capsys.readouterr().out

        assert run(["list"], config) == 0
        out = capsys.readouterr().out
        assert "remember the milk" in out
        assert "tags:todo" in out

    def test_search_and_contexts(self, config: JotConfig, capsys):
        run(["add", "database", "migration", "--context", "infra"], config)
        run(["add", "unrelated"], config)
        capsys.readouterr()

        run(["search", "migration"], config)
        out = capsys.readouterr().out
        assert "database migration" in out
        assert "unrelated" not in out

        run(["contexts"], config)
        out = capsys.readouterr().out
        assert "infra (1 jots)" in out
        assert "workspace * (1 jots)" in out

    def test_cleanup(self, config: JotConfig, capsys):
        run(["add", "old", "--ttl", "-1"], config)
        capsys.readouterr()
        run(["cleanup"], config)
        assert "Cleaned up 1 expired jot\n" == capsys.readouterr().out

    def test_export(self, config: JotConfig, capsys):
        run(["add", "note", "--context", "proj"], config)
        capsys.readouterr()
        run(["export", "proj"], config)
        out = capsys.readouterr().out
        assert out.startswith("---")
        assert "name: proj" in out

    def test_list_in_new_directory_shows_all_contexts(self, config: JotConfig, capsys):
        run(["add", "hello", "--context", "other"], config)
        capsys.readouterr()

        assert run(["list"], config) == 0
        out = capsys.readouterr().out
        assert "No jots in current context (workspace)" in out
        assert "hello" in out
        assert "ctx:other" in out

    def test_list_named_missing_context_is_error(self, config: JotConfig):
        with pytest.raises(ContextNotFoundError):
            run(["list", "nowhere"], config)


class TestMain:
    @pytest.fixture(autouse=True)
    def isolated(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        monkeypatch.setenv("JOT_DB_PATH", str(tmp_path / "jots.sqlite"))
        monkeypatch.setenv("PATH", "")
        for key in ["JOT_DEFAULT_TTL_DAYS", "JOT_AUTO_CLEANUP", "JOT_LOG_LEVEL"]:
            monkeypatch.delenv(key, raising=False)

    def test_success_exit_code(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["version"])
        assert exc.value.code == 0

    def test_bad_env_number_reports_error(self, monkeypatch, capsys):
        monkeypatch.setenv("JOT_DEFAULT_TTL_DAYS", "soon")
        with pytest.raises(SystemExit) as exc:
            main(["list"])
        assert exc.value.code == 1
        assert capsys.readouterr().err.startswith("Error:")

    def test_malformed_config_file_reports_error(self, tmp_path: Path, capsys):
        (tmp_path / "jot.toml").write_text("[storage\n")
        with pytest.raises(SystemExit) as exc:
            main(["list"])
        assert exc.value.code == 1
        assert capsys.readouterr().err.startswith("Error:")

    def test_domain_error_reports_error(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["add"])
        assert exc.value.code == 1
        assert "Error:" in capsys.readouterr().err
