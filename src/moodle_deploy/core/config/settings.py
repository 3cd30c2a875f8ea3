"""
Tool settings for moodle-deploy.

``DeploySettings`` controls *how* the tool runs (where the project lives,
which compose command to call, how long to wait for readiness). It is
separate from the deployment ``.env`` which describes *what* is deployed.

All fields can be set via ``MOODLE_DEPLOY_*`` environment variables, e.g.
``MOODLE_DEPLOY_COMPOSE_COMMAND="docker compose"``. Relative paths resolve
against ``project_dir``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeploySettings(BaseSettings):
    """moodle-deploy runtime settings."""

    model_config = SettingsConfigDict(
        env_prefix="MOODLE_DEPLOY_",
        extra="ignore",
        case_sensitive=False,
    )

    # Layout
    project_dir: Path = Field(default=Path("."), description="Deployment working directory")
    env_file: Path = Field(default=Path(".env"), description="Deployment configuration file")
    compose_file: Path = Field(
        default=Path("docker-compose.yml"),
        description="Compose file written and used for the topology",
    )
    db_data_dir: Path = Field(default=Path("db-data"), description="MySQL bind-mount directory")
    backups_dir: Path = Field(default=Path("backups"), description="Parent of backup directories")

    # Tooling
    compose_command: str = Field(
        default="docker-compose",
        min_length=1,
        description="Compose invocation, 'docker-compose' or 'docker compose'",
    )
    project_name: str | None = Field(default=None, description="Compose project name (-p)")
    helper_image: str = Field(default="busybox", min_length=1, description="Image used to archive volumes")

    # Timing
    readiness_delay_seconds: float = Field(default=10.0, ge=0, description="Fixed wait after start")
    log_tail: int = Field(default=20, ge=1, description="Application log lines shown after start")
    command_timeout_seconds: int = Field(default=600, gt=0, description="Per external command timeout")

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    log_json: bool | None = Field(default=None, description="Force JSON logs (auto when unset)")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    def resolve(self, path: Path) -> Path:
        """Resolve *path* against ``project_dir`` unless it is absolute."""
        return path if path.is_absolute() else self.project_dir / path

    @property
    def env_path(self) -> Path:
        return self.resolve(self.env_file)

    @property
    def compose_path(self) -> Path:
        return self.resolve(self.compose_file)

    @property
    def db_data_path(self) -> Path:
        return self.resolve(self.db_data_dir)

    @property
    def backups_path(self) -> Path:
        return self.resolve(self.backups_dir)

    @property
    def compose_argv(self) -> list[str]:
        """The compose command split into argv form."""
        return self.compose_command.split()


_settings_cache: DeploySettings | None = None


def get_settings(*, _force_reload: bool = False) -> DeploySettings:
    """Load, validate, and cache a :class:`DeploySettings` instance."""
    global _settings_cache
    if _settings_cache is None or _force_reload:
        _settings_cache = DeploySettings()
    return _settings_cache


def clear_settings_cache() -> None:
    """Drop the cached settings (tests and long-lived callers)."""
    global _settings_cache
    _settings_cache = None
