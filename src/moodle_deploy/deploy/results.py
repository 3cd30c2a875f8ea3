"""Result models for moodle-deploy.

Pydantic v2 models returned by the drivers. They are what the CLI renders
as tables or JSON, and ``BackupResult`` doubles as the ``manifest.json``
written next to each backup.

Key Concepts:
    OverallStatus: PASSED / PARTIAL / FAILED / PENDING.
    ServiceStatus: One compose service as reported by ``compose ps``.
    DeploymentResult: Outcome of install (and of status queries).
        ``mark_complete()`` finalises duration, status and summary.
    ResetResult: The wipe step plus the nested redeploy.
    BackupResult: Backup directory and the artifacts written into it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class OverallStatus(str, Enum):
    """Overall status of a driver run."""

    PASSED = "PASSED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    PENDING = "PENDING"


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _elapsed(started_at: str, completed_at: str) -> float:
    start = datetime.fromisoformat(started_at)
    end = datetime.fromisoformat(completed_at)
    return (end - start).total_seconds()


ServiceState = Literal["running", "healthy", "unhealthy", "exited", "starting", "not_found"]


class ServiceStatus(BaseModel):
    """Status of a single deployed service."""

    name: str
    container_id: str | None = None
    container_name: str | None = None
    image: str | None = None
    status: ServiceState = "not_found"
    ports: str | None = None


class DeploymentResult(BaseModel):
    """Result of a deployment (install) or status query."""

    mode: str = "install"
    started_at: str = Field(default_factory=_now)
    completed_at: str | None = None
    duration_seconds: float = 0.0
    image: str | None = None
    url: str | None = None
    compose_file: str | None = None
    services: list[ServiceStatus] = Field(default_factory=list)
    app_logs: str | None = None
    warnings: list[str] = Field(default_factory=list)
    overall_status: OverallStatus = OverallStatus.PENDING
    summary: str = ""

    def mark_complete(self) -> None:
        """Mark deployment as complete, compute duration and status."""
        self.completed_at = _now()
        self.duration_seconds = _elapsed(self.started_at, self.completed_at)
        healthy = sum(1 for s in self.services if s.status in ("running", "healthy"))
        total = len(self.services)
        if not self.services or healthy == total:
            self.overall_status = OverallStatus.PASSED
        elif healthy:
            self.overall_status = OverallStatus.PARTIAL
        else:
            self.overall_status = OverallStatus.FAILED
        self.summary = f"{healthy}/{total} services running"


class ResetResult(BaseModel):
    """Result of a reset: data wipe followed by a fresh deployment."""

    started_at: str = Field(default_factory=_now)
    completed_at: str | None = None
    duration_seconds: float = 0.0
    data_dir: str
    entries_removed: int = 0
    deployment: DeploymentResult | None = None
    overall_status: OverallStatus = OverallStatus.PENDING

    def mark_complete(self) -> None:
        self.completed_at = _now()
        self.duration_seconds = _elapsed(self.started_at, self.completed_at)
        self.overall_status = (
            self.deployment.overall_status if self.deployment else OverallStatus.FAILED
        )


class BackupArtifact(BaseModel):
    """A file or directory written into a backup."""

    name: str
    kind: Literal["directory", "archive"]
    size_bytes: int = 0


class BackupResult(BaseModel):
    """Result of a backup run. Serialised as the backup's ``manifest.json``."""

    path: str
    started_at: str = Field(default_factory=_now)
    completed_at: str | None = None
    duration_seconds: float = 0.0
    artifacts: list[BackupArtifact] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    overall_status: OverallStatus = OverallStatus.PENDING

    def mark_complete(self) -> None:
        self.completed_at = _now()
        self.duration_seconds = _elapsed(self.started_at, self.completed_at)
        self.overall_status = OverallStatus.PASSED

    @property
    def total_bytes(self) -> int:
        return sum(a.size_bytes for a in self.artifacts)
