"""Tests for the CLI interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from ctxengine.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def indexed_project(tmp_project: Path) -> Path:
    """Create a tmp_project that has been indexed."""
    runner = CliRunner()
    result = runner.invoke(main, ["init", "--path", str(tmp_project)])
    assert result.exit_code == 0, f"Init failed: {result.output}"
    return tmp_project


class TestCLIInit:
    def test_init_basic(self, runner: CliRunner, tmp_project: Path):
        result = runner.invoke(main, ["init", "--path", str(tmp_project)])
        assert result.exit_code == 0
        assert "Initializing" in result.output
        assert "Indexed" in result.output

    def test_init_creates_engine_dir(self, runner: CliRunner, tmp_project: Path):
        runner.invoke(main, ["init", "--path", str(tmp_project)])
        assert (tmp_project / ".ctxengine").exists()
        assert (tmp_project / ".ctxengine" / "config.json").exists()
        assert (tmp_project / ".ctxengine" / "index.db").exists()

    def test_init_nonexistent_path(self, runner: CliRunner):
        result = runner.invoke(main, ["init", "--path", "/nonexistent/path"])
        assert result.exit_code != 0


class TestCLIRefresh:
    def test_refresh_up_to_date(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(main, ["refresh", "--path", str(indexed_project)])
        assert result.exit_code == 0
        assert "up to date" in result.output

    def test_refresh_picks_up_changes(self, runner: CliRunner, indexed_project: Path):
        (indexed_project / "src" / "new.ts").write_text("export const x = 1;\n")
        result = runner.invoke(main, ["refresh", "--path", str(indexed_project)])
        assert result.exit_code == 0
        assert "1 updated" in result.output

    def test_refresh_with_exclusion(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["refresh", "--path", str(indexed_project), "-x", "lib"]
        )
        assert result.exit_code == 0
        assert "2 deleted" in result.output


class TestCLIContext:
    def test_context_renders_files(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["context", "users.py", "--path", str(indexed_project), "--budget", "4000"]
        )
        assert result.exit_code == 0
        assert "## src/api/users.py" in result.output
        assert "def get_user(user_id):" in result.output

    def test_context_summary_only(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["context", "users.py", "--path", str(indexed_project), "--summary"]
        )
        assert result.exit_code == 0
        assert "def get_user(user_id):" not in result.output

    def test_context_no_match(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["context", "xyznonexistent", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0
        assert "No files match" in result.output

    def test_context_bad_budget(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["context", "auth", "--path", str(indexed_project), "--budget", "0"]
        )
        assert result.exit_code == 1
        assert "select" in result.output

    def test_context_saves_last_context(self, runner: CliRunner, indexed_project: Path):
        runner.invoke(main, ["context", "auth", "--path", str(indexed_project)])
        last = json.loads((indexed_project / ".ctxengine" / "last-context.json").read_text())
        assert "src/auth/login.ts" in last["files"]


class TestCLIRecord:
    def test_record_against_last_context(self, runner: CliRunner, indexed_project: Path):
        runner.invoke(main, ["context", "login.ts", "--path", str(indexed_project)])
        result = runner.invoke(
            main, ["record", "src/auth/login.ts", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0
        assert "1 useful" in result.output

    def test_record_explicit_offered(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main,
            [
                "record", "x.ts",
                "-o", "x.ts", "-o", "y.ts",
                "--task", "fix auth",
                "--duration", "30",
                "--path", str(indexed_project),
            ],
        )
        assert result.exit_code == 0
        assert "1 useful, 1 wasted" in result.output
        log = json.loads((indexed_project / ".ctxengine" / "usage-log.json").read_text())
        assert log[0]["duration_seconds"] == 30.0
        assert log[0]["task_label"] == "fix auth"


class TestCLIStats:
    def test_stats(self, runner: CliRunner, indexed_project: Path):
        runner.invoke(
            main, ["record", "x.ts", "-o", "x.ts", "-o", "y.ts", "--path", str(indexed_project)]
        )
        result = runner.invoke(main, ["stats", "--path", str(indexed_project)])
        assert result.exit_code == 0
        assert "Indexed files" in result.output
        assert "Most useful" in result.output
        assert "Most wasted" in result.output

    def test_prune(self, runner: CliRunner, indexed_project: Path):
        runner.invoke(main, ["record", "a.ts", "b.ts", "--path", str(indexed_project)])
        result = runner.invoke(main, ["prune", "--min", "2", "--path", str(indexed_project)])
        assert result.exit_code == 0
        assert "Pruned 1 pattern" in result.output


class TestCLIConfig:
    def test_config_show(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(main, ["config", "show", "--path", str(indexed_project)])
        assert result.exit_code == 0
        assert "direct_share" in result.output

    def test_config_set_and_get(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["config", "set", "selection.default_budget", "2000", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0
        result = runner.invoke(
            main, ["config", "get", "selection.default_budget", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0
        assert "2000" in result.output

    def test_config_set_invalid_key(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["config", "set", "nope.key", "1", "--path", str(indexed_project)]
        )
        assert result.exit_code == 1


def test_version(runner: CliRunner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "ctxengine" in result.output
