# tests/unit/cli/test_cli.py
"""Tests for the longhaul CLI against a file-backed SQLite run store."""

import logging
import re
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from click.testing import Result
from typer.testing import CliRunner

from longhaul.cli import app
from tests.fixtures.maintenance import ImportPostsTask, NormalizeTagsTask

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_state() -> Iterator[None]:
    NormalizeTagsTask.normalized = []
    ImportPostsTask.imported = []
    yield
    # Handlers bound to the runner's captured streams must not outlive the test
    logging.getLogger().handlers = []
    structlog.reset_defaults()


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(
        f"""
database:
  url: "sqlite:///{tmp_path / 'runs.db'}"
tasks:
  modules:
    - tests.fixtures.maintenance
  load_entrypoints: false
logging:
  level: WARNING
"""
    )
    return path


def invoke(settings_file: Path, *args: str) -> Result:
    return runner.invoke(app, ["--no-dotenv", "--settings", str(settings_file), *args])


def run_id_from(output: str) -> str:
    match = re.search(r"Run (\S+) enqueued", output)
    assert match is not None, output
    return match.group(1)


class TestCLIBasics:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "longhaul version" in result.output

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("tasks", "perform", "resume", "pause", "cancel", "status", "runs", "reap"):
            assert command in result.output


class TestSettingsErrors:
    def test_missing_settings_file(self, tmp_path: Path) -> None:
        result = invoke(tmp_path / "nope.yaml", "tasks")

        assert result.exit_code == 1
        assert "Settings file not found" in result.output

    def test_invalid_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("ticker_delay_seconds: -1\n")

        result = invoke(path, "tasks")

        assert result.exit_code == 1
        assert "ticker_delay_seconds" in result.output

    def test_unknown_task_module(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(f"database:\n  url: 'sqlite:///{tmp_path / 'runs.db'}'\ntasks:\n  modules: [tests.fixtures.nowhere]\n")

        result = invoke(path, "tasks")

        assert result.exit_code == 1
        assert "Error loading tasks" in result.output


class TestTasksCommand:
    def test_lists_registered_tasks(self, settings_file: Path) -> None:
        result = invoke(settings_file, "tasks")

        assert result.exit_code == 0
        assert "Maintenance::NormalizeTagsTask" in result.output
        assert "Lower-cases generated tags." in result.output
        assert re.search(r"Maintenance::ImportPostsTask .*\[csv\]", result.output)


class TestPerform:
    def test_performs_run_to_completion(self, settings_file: Path) -> None:
        result = invoke(settings_file, "perform", "Maintenance::NormalizeTagsTask", "--arg", "prefix=Env", "-a", "count=2")

        assert result.exit_code == 0, result.output
        assert "succeeded (2 processed)" in result.output
        assert NormalizeTagsTask.normalized == ["env-0", "env-1"]

    def test_csv_task(self, settings_file: Path, tmp_path: Path) -> None:
        csv_path = tmp_path / "posts.csv"
        csv_path.write_text("title\nHello\nWorld\n")

        result = invoke(settings_file, "perform", "Maintenance::ImportPostsTask", "--csv", str(csv_path))

        assert result.exit_code == 0, result.output
        assert ImportPostsTask.imported == ["Hello", "World"]

    def test_unknown_task(self, settings_file: Path) -> None:
        result = invoke(settings_file, "perform", "Maintenance::Missing")

        assert result.exit_code == 1
        assert "Task Maintenance::Missing not found" in result.output

    def test_invalid_argument(self, settings_file: Path) -> None:
        result = invoke(settings_file, "perform", "Maintenance::NormalizeTagsTask", "--arg", "count=lots")

        assert result.exit_code == 1
        assert "count" in result.output

    def test_malformed_argument_pair(self, settings_file: Path) -> None:
        result = invoke(settings_file, "perform", "Maintenance::NormalizeTagsTask", "--arg", "count")

        assert result.exit_code == 1
        assert "KEY=VALUE" in result.output

    def test_csv_task_without_file(self, settings_file: Path) -> None:
        result = invoke(settings_file, "perform", "Maintenance::ImportPostsTask")

        assert result.exit_code == 1
        assert "requires a CSV file" in result.output


class TestRunInspection:
    def test_status_of_finished_run(self, settings_file: Path) -> None:
        performed = invoke(settings_file, "perform", "Maintenance::NormalizeTagsTask")
        run_id = run_id_from(performed.output)

        result = invoke(settings_file, "status", run_id)

        assert result.exit_code == 0
        assert "Status:     succeeded" in result.output
        assert "Progress:   3/3" in result.output

    def test_status_of_unknown_run(self, settings_file: Path) -> None:
        result = invoke(settings_file, "status", "missing")

        assert result.exit_code == 1
        assert "Run missing not found" in result.output

    def test_runs_lists_newest_first(self, settings_file: Path) -> None:
        invoke(settings_file, "perform", "Maintenance::NormalizeTagsTask")

        result = invoke(settings_file, "runs")

        assert result.exit_code == 0
        assert "Maintenance::NormalizeTagsTask" in result.output
        assert "succeeded" in result.output

    def test_runs_active_filter(self, settings_file: Path) -> None:
        invoke(settings_file, "perform", "Maintenance::NormalizeTagsTask")

        result = invoke(settings_file, "runs", "--active")

        assert result.exit_code == 0
        assert "(no runs)" in result.output


class TestOperatorCommands:
    def test_pause_finished_run_rejected(self, settings_file: Path) -> None:
        run_id = run_id_from(invoke(settings_file, "perform", "Maintenance::NormalizeTagsTask").output)

        result = invoke(settings_file, "pause", run_id)

        assert result.exit_code == 1
        assert "cannot transition from succeeded to pausing" in result.output

    def test_cancel_unknown_run(self, settings_file: Path) -> None:
        result = invoke(settings_file, "cancel", "missing")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_resume_finished_run_rejected(self, settings_file: Path) -> None:
        run_id = run_id_from(invoke(settings_file, "perform", "Maintenance::NormalizeTagsTask").output)

        result = invoke(settings_file, "resume", run_id)

        assert result.exit_code == 1

    def test_reap_without_stuck_runs(self, settings_file: Path) -> None:
        result = invoke(settings_file, "reap")

        assert result.exit_code == 0
        assert "No stuck runs." in result.output
