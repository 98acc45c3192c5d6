# tests/unit/core/test_config.py
"""Tests for settings loading (Dynaconf) and validation (Pydantic)."""

from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from longhaul.core.config import LonghaulSettings, TaskSettings, load_settings


class TestDefaults:
    def test_defaults(self) -> None:
        settings = LonghaulSettings()

        assert settings.database.url == "sqlite:///./longhaul.db"
        assert settings.ticker_delay_seconds == 1.0
        assert settings.stuck_timeout == timedelta(minutes=5)
        assert settings.worker.max_job_runtime_seconds is None
        assert settings.tasks.modules == []
        assert settings.logging.level == "INFO"

    def test_settings_are_frozen(self) -> None:
        settings = LonghaulSettings()

        with pytest.raises(ValidationError):
            settings.ticker_delay_seconds = 5.0  # type: ignore[misc]

    def test_invalid_module_name_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid module name"):
            TaskSettings(modules=["app.tasks", "not a module"])

    def test_negative_runtime_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LonghaulSettings(worker={"max_job_runtime_seconds": -1})  # type: ignore[arg-type]


class TestLoadSettings:
    def test_loads_yaml(self, tmp_path: Path) -> None:
        config = tmp_path / "settings.yaml"
        config.write_text(
            "database:\n"
            "  url: sqlite:///runs.db\n"
            "ticker_delay_seconds: 2.5\n"
            "worker:\n"
            "  max_job_runtime_seconds: 300\n"
            "tasks:\n"
            "  modules:\n"
            "    - app.maintenance\n"
        )

        settings = load_settings(config)

        assert settings.database.url == "sqlite:///runs.db"
        assert settings.ticker_delay_seconds == 2.5
        assert settings.worker.max_job_runtime_seconds == 300
        assert settings.tasks.modules == ["app.maintenance"]

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config = tmp_path / "settings.yaml"
        config.write_text("database:\n  url: sqlite:///from-file.db\n")
        monkeypatch.setenv("LONGHAUL_DATABASE__URL", "sqlite:///from-env.db")

        settings = load_settings(config)

        assert settings.database.url == "sqlite:///from-env.db"

    def test_no_file_uses_defaults(self) -> None:
        assert load_settings().stuck_timeout_seconds == 300

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "missing.yaml")

    def test_invalid_values_raise(self, tmp_path: Path) -> None:
        config = tmp_path / "settings.yaml"
        config.write_text("logging:\n  level: LOUD\n")

        with pytest.raises(ValidationError):
            load_settings(config)
