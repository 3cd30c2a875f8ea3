"""
Shared pytest fixtures for moodle-deploy tests.

This module provides:
- Environment isolation (process env, cached settings, structlog config)
- A throwaway project directory with a valid ``.env``
- ``FakeOrchestrator``, a recording stand-in for the docker client

No test talks to a real container runtime.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
import structlog

from moodle_deploy.core.config.settings import DeploySettings, clear_settings_cache

VALID_ENV = {
    "MYSQL_ROOT_PASSWORD": "rootpw",
    "MYSQL_DATABASE": "moodle",
    "MYSQL_USER": "moodleuser",
    "MYSQL_PASSWORD": "secret",
    "MOODLE_PORT": "8080",
    "MOODLE_IMAGE": "example/moodle:4.1",
}

RUNNING_PS = [
    {
        "ID": "a1b2c3",
        "Name": "moodle_db",
        "Service": "db",
        "Image": "mysql:5.7",
        "State": "running",
        "Health": "",
        "Ports": "3306/tcp, 33060/tcp",
    },
    {
        "ID": "d4e5f6",
        "Name": "moodle_web",
        "Service": "app",
        "Image": "example/moodle:4.1",
        "State": "running",
        "Health": "",
        "Ports": "0.0.0.0:8080->80/tcp",
    },
]


def write_env(path: Path, values: dict[str, str]) -> Path:
    lines = ["# moodle deployment"]
    lines.extend(f"{key}={value}" for key, value in values.items())
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep ``.env`` exports and ``MOODLE_DEPLOY_*`` settings out of other tests."""
    saved = dict(os.environ)
    for key in list(os.environ):
        if key.startswith("MOODLE_DEPLOY_") or key in VALID_ENV:
            monkeypatch.delenv(key)
    clear_settings_cache()
    yield
    clear_settings_cache()
    os.environ.clear()
    os.environ.update(saved)


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """CLI runs bind structlog to a captured stderr that is closed afterwards."""
    yield
    structlog.reset_defaults()


# =============================================================================
# Project layout
# =============================================================================


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A deployment directory with a valid ``.env`` and some database files."""
    write_env(tmp_path / ".env", VALID_ENV)
    db_data = tmp_path / "db-data"
    db_data.mkdir()
    (db_data / "ibdata1").write_bytes(b"\x00" * 64)
    (db_data / "moodle").mkdir()
    (db_data / "moodle" / "mdl_user.ibd").write_bytes(b"\x01" * 32)
    (db_data / ".hidden").write_text("x", encoding="utf-8")
    return tmp_path


@pytest.fixture
def settings(project_dir: Path) -> DeploySettings:
    return DeploySettings(project_dir=project_dir, readiness_delay_seconds=0)


@pytest.fixture
def stack_config():
    from moodle_deploy.deploy.config import StackConfig

    return StackConfig.from_env(VALID_ENV)


# =============================================================================
# Orchestrator fake
# =============================================================================


class FakeOrchestrator:
    """Records every call; ``failures`` maps a method name to the error it raises.

    With ``compose_file`` set, ``compose_down`` fails like compose does when
    that file is absent.
    """

    def __init__(
        self,
        ps_entries: list[dict[str, Any]] | None = None,
        logs: str = "AH00558: apache2: ready\n",
        failures: dict[str, Exception] | None = None,
        archive_bytes: bytes = b"\x1f\x8b fake archive",
        compose_file: Path | None = None,
    ) -> None:
        self.ps_entries = [dict(e) for e in (RUNNING_PS if ps_entries is None else ps_entries)]
        self.logs = logs
        self.failures = dict(failures or {})
        self.archive_bytes = archive_bytes
        self.compose_file = compose_file
        self.calls: list[tuple[Any, ...]] = []

    @property
    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        error = self.failures.get(name)
        if error is not None:
            raise error

    def pull_image(self, image: str) -> None:
        self._record("pull_image", image)

    def compose_down(self) -> None:
        self._record("compose_down")
        if self.compose_file is not None and not self.compose_file.is_file():
            from moodle_deploy.core.errors import TeardownFailed

            raise TeardownFailed(stderr=f"open {self.compose_file}: no such file or directory")

    def compose_up(self) -> None:
        self._record("compose_up")

    def compose_ps(self) -> list[dict[str, Any]]:
        self._record("compose_ps")
        return [dict(e) for e in self.ps_entries]

    def container_logs(self, container_name: str, tail: int) -> str:
        self._record("container_logs", container_name, tail)
        return self.logs

    def archive_volume(
        self,
        container_name: str,
        source_path: str,
        host_dir: Path,
        archive_name: str,
    ) -> None:
        self._record("archive_volume", container_name, source_path, host_dir, archive_name)
        (host_dir / archive_name).write_bytes(self.archive_bytes)


@pytest.fixture
def fake_orchestrator() -> FakeOrchestrator:
    return FakeOrchestrator()


@pytest.fixture
def make_orchestrator():
    """Factory for a configured ``FakeOrchestrator``."""
    return FakeOrchestrator
