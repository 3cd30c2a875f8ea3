"""Tests for DeploySettings and the settings cache."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError


class TestDeploySettings:
    def test_defaults(self):
        from moodle_deploy.core.config.settings import DeploySettings

        s = DeploySettings()
        assert s.project_dir == Path(".")
        assert s.env_file == Path(".env")
        assert s.compose_command == "docker-compose"
        assert s.readiness_delay_seconds == 10.0
        assert s.log_tail == 20
        assert s.helper_image == "busybox"
        assert s.log_json is None

    def test_paths_resolve_against_project_dir(self, tmp_path):
        from moodle_deploy.core.config.settings import DeploySettings

        s = DeploySettings(project_dir=tmp_path)
        assert s.env_path == tmp_path / ".env"
        assert s.compose_path == tmp_path / "docker-compose.yml"
        assert s.db_data_path == tmp_path / "db-data"
        assert s.backups_path == tmp_path / "backups"

    def test_absolute_paths_kept(self, tmp_path):
        from moodle_deploy.core.config.settings import DeploySettings

        elsewhere = tmp_path / "elsewhere" / "data"
        s = DeploySettings(project_dir=tmp_path / "proj", db_data_dir=elsewhere)
        assert s.db_data_path == elsewhere

    def test_compose_argv(self):
        from moodle_deploy.core.config.settings import DeploySettings

        assert DeploySettings().compose_argv == ["docker-compose"]
        assert DeploySettings(compose_command="docker compose").compose_argv == ["docker", "compose"]

    def test_env_prefix(self, monkeypatch):
        from moodle_deploy.core.config.settings import DeploySettings

        monkeypatch.setenv("MOODLE_DEPLOY_COMPOSE_COMMAND", "docker compose")
        monkeypatch.setenv("MOODLE_DEPLOY_READINESS_DELAY_SECONDS", "0")
        monkeypatch.setenv("MOODLE_DEPLOY_LOG_LEVEL", "debug")
        s = DeploySettings()
        assert s.compose_command == "docker compose"
        assert s.readiness_delay_seconds == 0
        assert s.log_level == "DEBUG"

    def test_negative_delay_rejected(self):
        from moodle_deploy.core.config.settings import DeploySettings

        with pytest.raises(ValidationError):
            DeploySettings(readiness_delay_seconds=-1)


class TestGetSettings:
    def test_cached(self):
        from moodle_deploy.core.config.settings import get_settings

        assert get_settings() is get_settings()

    def test_force_reload(self, monkeypatch):
        from moodle_deploy.core.config.settings import get_settings

        first = get_settings()
        monkeypatch.setenv("MOODLE_DEPLOY_LOG_TAIL", "50")
        assert get_settings().log_tail == first.log_tail
        reloaded = get_settings(_force_reload=True)
        assert reloaded is not first
        assert reloaded.log_tail == 50

    def test_clear_cache(self):
        from moodle_deploy.core.config.settings import clear_settings_cache, get_settings

        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first
