"""Tests for the deploy, reset, backup and status drivers.

All container operations go through ``FakeOrchestrator``.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

BACKUP_TIME = datetime(2024, 3, 9, 14, 5, 7)


# ===========================================================================
# deploy
# ===========================================================================


class TestDeploy:
    def test_call_order(self, stack_config, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import deploy

        deploy(stack_config, fake_orchestrator, settings)
        assert fake_orchestrator.call_names == [
            "pull_image", "compose_down", "compose_up", "container_logs", "compose_ps",
        ]
        assert fake_orchestrator.calls[0] == ("pull_image", "example/moodle:4.1")
        assert fake_orchestrator.calls[3] == ("container_logs", "moodle_web", 20)

    def test_result(self, stack_config, fake_orchestrator, settings):
        from moodle_deploy.deploy.results import OverallStatus
        from moodle_deploy.deploy.workflow import deploy

        result = deploy(stack_config, fake_orchestrator, settings)
        assert result.url == "http://localhost:8080"
        assert result.image == "example/moodle:4.1"
        assert result.app_logs == fake_orchestrator.logs
        assert [s.name for s in result.services] == ["db", "app"]
        assert all(s.status == "running" for s in result.services)
        assert result.overall_status == OverallStatus.PASSED
        assert result.summary == "2/2 services running"
        assert result.warnings == []

    def test_writes_compose_file(self, stack_config, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import deploy

        result = deploy(stack_config, fake_orchestrator, settings)
        doc = yaml.safe_load(settings.compose_path.read_text(encoding="utf-8"))
        assert result.compose_file == str(settings.compose_path)
        assert doc["services"]["db"]["volumes"] == ["./db-data:/var/lib/mysql"]
        assert "secret" not in settings.compose_path.read_text(encoding="utf-8")

    def test_recreates_deleted_data_dir(self, stack_config, fake_orchestrator, settings):
        import shutil

        from moodle_deploy.deploy.workflow import deploy

        shutil.rmtree(settings.db_data_path)
        deploy(stack_config, fake_orchestrator, settings)
        assert settings.db_data_path.is_dir()
        assert list(settings.db_data_path.iterdir()) == []

    def test_pull_failure_stops_before_teardown(self, stack_config, make_orchestrator, settings):
        from moodle_deploy.core.errors import ImageFetchFailed
        from moodle_deploy.deploy.workflow import deploy

        orch = make_orchestrator(failures={"pull_image": ImageFetchFailed("example/moodle:4.1")})
        with pytest.raises(ImageFetchFailed):
            deploy(stack_config, orch, settings)
        assert orch.call_names == ["pull_image"]

    def test_up_failure_propagates(self, stack_config, make_orchestrator, settings):
        from moodle_deploy.core.errors import TopologyStartFailed
        from moodle_deploy.deploy.workflow import deploy

        orch = make_orchestrator(failures={"compose_up": TopologyStartFailed(stderr="bind failed")})
        with pytest.raises(TopologyStartFailed):
            deploy(stack_config, orch, settings)
        assert orch.call_names == ["pull_image", "compose_down", "compose_up"]

    def test_log_failure_is_a_warning(self, stack_config, make_orchestrator, settings):
        from moodle_deploy.core.errors import OrchestrationError
        from moodle_deploy.deploy.workflow import deploy

        orch = make_orchestrator(
            failures={"container_logs": OrchestrationError("No such container: moodle_web")},
        )
        result = deploy(stack_config, orch, settings)
        assert result.app_logs is None
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Could not fetch logs for moodle_web. Is it running?")
        assert orch.call_names[-1] == "compose_ps"

    def test_ps_failure_is_a_warning(self, stack_config, make_orchestrator, settings):
        from moodle_deploy.core.errors import OrchestrationError
        from moodle_deploy.deploy.workflow import deploy

        orch = make_orchestrator(failures={"compose_ps": OrchestrationError("ps broke")})
        result = deploy(stack_config, orch, settings)
        assert result.services == []
        assert result.warnings == ["Could not list services: ps broke"]

    def test_readiness_delay(self, stack_config, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import deploy

        slow = settings.model_copy(update={"readiness_delay_seconds": 10.0})
        with patch("moodle_deploy.deploy.workflow.time.sleep") as mock_sleep:
            deploy(stack_config, fake_orchestrator, slow)
        mock_sleep.assert_called_once_with(10.0)

    def test_no_delay_when_zero(self, stack_config, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import deploy

        with patch("moodle_deploy.deploy.workflow.time.sleep") as mock_sleep:
            deploy(stack_config, fake_orchestrator, settings)
        mock_sleep.assert_not_called()

    def test_repeated_deploy_keeps_two_services(self, stack_config, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import deploy

        deploy(stack_config, fake_orchestrator, settings)
        second = deploy(stack_config, fake_orchestrator, settings)
        assert [s.name for s in second.services] == ["db", "app"]
        assert fake_orchestrator.call_names.count("compose_down") == 2


# ===========================================================================
# status
# ===========================================================================


class TestStatus:
    def test_missing_service_reported_not_found(self, make_orchestrator):
        from conftest import RUNNING_PS, VALID_ENV

        from moodle_deploy.deploy.results import OverallStatus
        from moodle_deploy.deploy.workflow import status

        orch = make_orchestrator(ps_entries=[RUNNING_PS[0]])
        result = status(orch, VALID_ENV)
        app = result.services[1]
        assert app.name == "app"
        assert app.status == "not_found"
        assert app.image == "example/moodle:4.1"
        assert app.ports == "8080:80"
        assert result.overall_status == OverallStatus.PARTIAL
        assert result.summary == "1/2 services running"

    def test_nothing_running(self, make_orchestrator):
        from moodle_deploy.deploy.results import OverallStatus
        from moodle_deploy.deploy.workflow import status

        result = status(make_orchestrator(ps_entries=[]))
        assert [s.status for s in result.services] == ["not_found", "not_found"]
        assert result.overall_status == OverallStatus.FAILED

    def test_only_queries(self, fake_orchestrator):
        from moodle_deploy.deploy.workflow import status

        status(fake_orchestrator)
        assert fake_orchestrator.call_names == ["compose_ps"]

    @pytest.mark.parametrize(
        "state,health,expected",
        [
            ("running", "", "running"),
            ("running", "healthy", "healthy"),
            ("running", "unhealthy", "unhealthy"),
            ("exited", "", "exited"),
            ("Exited (1) 3 seconds ago", "", "exited"),
            ("restarting", "", "starting"),
            ("created", "", "starting"),
            ("paused", "", "not_found"),
        ],
    )
    def test_map_compose_status(self, state, health, expected):
        from moodle_deploy.deploy.workflow import _map_compose_status

        assert _map_compose_status(state, health) == expected


# ===========================================================================
# reset
# ===========================================================================


class TestWipeDatabaseFiles:
    def test_removes_everything_keeps_dir(self, settings):
        from moodle_deploy.deploy.workflow import wipe_database_files

        removed = wipe_database_files(settings.db_data_path)
        assert removed == 3
        assert settings.db_data_path.is_dir()
        assert list(settings.db_data_path.iterdir()) == []

    def test_missing_dir(self, tmp_path):
        from moodle_deploy.deploy.workflow import wipe_database_files

        assert wipe_database_files(tmp_path / "nope") == 0

    def test_failure_raises(self, settings):
        from moodle_deploy.core.errors import DataWipeFailed
        from moodle_deploy.deploy.workflow import wipe_database_files

        with patch("moodle_deploy.deploy.workflow.shutil.rmtree", side_effect=PermissionError("denied")):
            with pytest.raises(DataWipeFailed, match="denied"):
                wipe_database_files(settings.db_data_path)


class TestReset:
    def test_sequence(self, stack_config, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import reset

        reset(stack_config, fake_orchestrator, settings)
        assert fake_orchestrator.call_names == [
            "compose_down",
            "pull_image", "compose_down", "compose_up", "container_logs", "compose_ps",
        ]

    def test_never_installed_project(self, stack_config, make_orchestrator, settings):
        from moodle_deploy.deploy.results import OverallStatus
        from moodle_deploy.deploy.workflow import reset

        assert not settings.compose_path.exists()
        orch = make_orchestrator(compose_file=settings.compose_path)
        result = reset(stack_config, orch, settings)
        assert orch.call_names[:4] == ["compose_down", "pull_image", "compose_down", "compose_up"]
        assert result.overall_status == OverallStatus.PASSED
        assert settings.compose_path.is_file()

    def test_result(self, stack_config, fake_orchestrator, settings):
        from moodle_deploy.deploy.results import OverallStatus
        from moodle_deploy.deploy.workflow import reset

        result = reset(stack_config, fake_orchestrator, settings)
        assert result.entries_removed == 3
        assert result.data_dir == str(settings.db_data_path)
        assert result.deployment is not None
        assert result.overall_status == OverallStatus.PASSED
        assert list(settings.db_data_path.iterdir()) == []

    def test_teardown_failure_keeps_data(self, stack_config, make_orchestrator, settings):
        from moodle_deploy.core.errors import TeardownFailed
        from moodle_deploy.deploy.workflow import reset

        orch = make_orchestrator(failures={"compose_down": TeardownFailed()})
        with pytest.raises(TeardownFailed):
            reset(stack_config, orch, settings)
        assert (settings.db_data_path / "ibdata1").exists()

    def test_reset_twice(self, stack_config, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import reset

        reset(stack_config, fake_orchestrator, settings)
        second = reset(stack_config, fake_orchestrator, settings)
        assert second.entries_removed == 0
        assert [s.name for s in second.deployment.services] == ["db", "app"]


# ===========================================================================
# backup
# ===========================================================================


class TestBackupDirName:
    def test_format(self):
        from moodle_deploy.deploy.workflow import backup_dir_name

        assert backup_dir_name(BACKUP_TIME) == "backup_2024-03-09_14-05-07"

    def test_collision_suffix(self, tmp_path):
        from moodle_deploy.deploy.workflow import create_backup_dir

        first = create_backup_dir(tmp_path, BACKUP_TIME)
        second = create_backup_dir(tmp_path, BACKUP_TIME)
        third = create_backup_dir(tmp_path, BACKUP_TIME)
        assert first.name == "backup_2024-03-09_14-05-07"
        assert second.name == "backup_2024-03-09_14-05-07-1"
        assert third.name == "backup_2024-03-09_14-05-07-2"


class TestBackup:
    def test_copies_database_and_archives_app(self, fake_orchestrator, settings):
        from moodle_deploy.deploy.results import OverallStatus
        from moodle_deploy.deploy.workflow import backup

        result = backup(fake_orchestrator, settings, now=BACKUP_TIME)
        backup_dir = settings.backups_path / "backup_2024-03-09_14-05-07"
        assert result.path == str(backup_dir)
        assert (backup_dir / "db-data" / "ibdata1").read_bytes() == b"\x00" * 64
        assert (backup_dir / "db-data" / "moodle" / "mdl_user.ibd").exists()
        assert (backup_dir / "db-data" / ".hidden").exists()
        assert (backup_dir / "moodle-data.tar.gz").read_bytes() == fake_orchestrator.archive_bytes
        assert result.overall_status == OverallStatus.PASSED

    def test_archive_call(self, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import backup

        result = backup(fake_orchestrator, settings, now=BACKUP_TIME)
        assert fake_orchestrator.calls == [(
            "archive_volume", "moodle_web", "/var/www/html",
            settings.backups_path / "backup_2024-03-09_14-05-07", "moodle-data.tar.gz",
        )]
        assert result.path.endswith("backup_2024-03-09_14-05-07")

    def test_manifest(self, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import LIVE_COPY_WARNING, backup

        result = backup(fake_orchestrator, settings, now=BACKUP_TIME)
        manifest = json.loads((Path(result.path) / "manifest.json").read_text())
        assert manifest["overall_status"] == "PASSED"
        assert manifest["warnings"] == [LIVE_COPY_WARNING]
        artifacts = {a["name"]: a for a in manifest["artifacts"]}
        assert artifacts["db-data"]["kind"] == "directory"
        assert artifacts["db-data"]["size_bytes"] == 64 + 32 + 1
        assert artifacts["moodle-data.tar.gz"]["kind"] == "archive"
        assert artifacts["moodle-data.tar.gz"]["size_bytes"] == len(fake_orchestrator.archive_bytes)
        assert result.total_bytes == 97 + len(fake_orchestrator.archive_bytes)

    def test_two_backups_same_second(self, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import backup

        first = backup(fake_orchestrator, settings, now=BACKUP_TIME)
        second = backup(fake_orchestrator, settings, now=BACKUP_TIME)
        assert first.path != second.path
        assert sorted(p.name for p in settings.backups_path.iterdir()) == [
            "backup_2024-03-09_14-05-07",
            "backup_2024-03-09_14-05-07-1",
        ]

    def test_missing_database_dir(self, fake_orchestrator, settings):
        import shutil

        from moodle_deploy.core.errors import BackupCopyFailed
        from moodle_deploy.deploy.workflow import backup

        shutil.rmtree(settings.db_data_path)
        with pytest.raises(BackupCopyFailed) as exc_info:
            backup(fake_orchestrator, settings, now=BACKUP_TIME)
        assert exc_info.value.stage == "database"
        assert fake_orchestrator.calls == []

    def test_copy_failure(self, fake_orchestrator, settings):
        from moodle_deploy.core.errors import BackupCopyFailed
        from moodle_deploy.deploy.workflow import backup

        with patch("moodle_deploy.deploy.workflow.shutil.copytree", side_effect=OSError("No space left")):
            with pytest.raises(BackupCopyFailed, match="No space left") as exc_info:
                backup(fake_orchestrator, settings, now=BACKUP_TIME)
        assert exc_info.value.stage == "database"

    def test_archive_failure_leaves_partial_backup(self, make_orchestrator, settings):
        from moodle_deploy.core.errors import BackupCopyFailed, OrchestrationError
        from moodle_deploy.deploy.workflow import backup

        orch = make_orchestrator(
            failures={"archive_volume": OrchestrationError("No such container", exit_code=125)},
        )
        with pytest.raises(BackupCopyFailed) as exc_info:
            backup(orch, settings, now=BACKUP_TIME)
        assert exc_info.value.stage == "application"
        assert exc_info.value.exit_code == 125
        backup_dir = settings.backups_path / "backup_2024-03-09_14-05-07"
        assert (backup_dir / "db-data" / "ibdata1").exists()
        assert not (backup_dir / "manifest.json").exists()

    def test_does_not_touch_source(self, fake_orchestrator, settings):
        from moodle_deploy.deploy.workflow import backup

        before = sorted(p.name for p in settings.db_data_path.rglob("*"))
        backup(fake_orchestrator, settings, now=BACKUP_TIME)
        assert sorted(p.name for p in settings.db_data_path.rglob("*")) == before

