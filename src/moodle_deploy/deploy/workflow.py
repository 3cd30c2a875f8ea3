"""Deployment, reset, backup and status drivers.

Each driver is a single linear attempt-or-fail sequence over an
``Orchestrator``. Failures raise the typed errors of
``moodle_deploy.core.errors`` and are terminal: there is no retry and no
rollback, so a failure part way through leaves whatever already happened
in place (started containers, a partial backup directory).

Key Concepts:
    deploy(): write compose file -> pull image -> down -> up -> fixed
        readiness wait -> recent app logs -> service listing.
    reset(): down -> delete every entry under the database directory ->
        deploy(). Destroys all database data.
    backup(): timestamped directory -> verbatim copy of the database
        directory -> tar.gz of the application volume -> manifest.json.
    status(): service listing only.

Known limitations:
    - The database copy in backup() is a file-level copy of a possibly
      running MySQL; it is not transactionally consistent. A warning is
      logged and recorded on the result.
    - There is no locking. Concurrent invocations against the same
      project directory can race on the volumes and the data directory.
"""

from __future__ import annotations

import shutil
import time
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from moodle_deploy.core.config.settings import DeploySettings
from moodle_deploy.core.errors import (
    BackupCopyFailed,
    DataWipeFailed,
    OrchestrationError,
)
from moodle_deploy.core.logging import LogContext, get_logger
from moodle_deploy.deploy.compose import generate_compose, write_compose_file
from moodle_deploy.deploy.config import StackConfig
from moodle_deploy.deploy.container import Orchestrator
from moodle_deploy.deploy.results import (
    BackupArtifact,
    BackupResult,
    DeploymentResult,
    ResetResult,
    ServiceStatus,
)
from moodle_deploy.deploy.topology import APP_SERVICE, TOPOLOGY

logger = get_logger(__name__)

APP_DATA_VOLUME = "moodle-data"
ARCHIVE_NAME = "moodle-data.tar.gz"
MANIFEST_NAME = "manifest.json"
BACKUP_PREFIX = "backup_"

LIVE_COPY_WARNING = (
    "Database files were copied from a possibly running MySQL; "
    "the copy is not guaranteed to be consistent."
)


# ---------------------------------------------------------------------------
# Deploy
# ---------------------------------------------------------------------------


def deploy(
    config: StackConfig,
    orchestrator: Orchestrator,
    settings: DeploySettings,
) -> DeploymentResult:
    """Deploy the db + app topology.

    Expects the environment loaded and preflight passed.

    Raises
    ------
    ImageFetchFailed
        The application image could not be pulled.
    TeardownFailed
        Stopping the previous deployment failed.
    TopologyStartFailed
        ``compose up`` failed. Containers that did start keep running.
    """
    with LogContext(operation="install"):
        result = DeploymentResult(
            mode="install",
            image=config.moodle_image,
            url=config.app_url,
        )
        result.compose_file = str(write_topology(settings))
        settings.db_data_path.mkdir(parents=True, exist_ok=True)

        orchestrator.pull_image(config.moodle_image)
        orchestrator.compose_down()
        orchestrator.compose_up()
        logger.info("topology.started", services=[s.name for s in TOPOLOGY])

        delay = settings.readiness_delay_seconds
        if delay:
            logger.info("readiness.waiting", seconds=delay)
            time.sleep(delay)

        try:
            result.app_logs = orchestrator.container_logs(
                APP_SERVICE.container_name, settings.log_tail,
            )
        except OrchestrationError as exc:
            logger.warning("logs.unavailable", container=APP_SERVICE.container_name)
            result.warnings.append(
                f"Could not fetch logs for {APP_SERVICE.container_name}. Is it running? ({exc.message})"
            )

        try:
            result.services = collect_services(orchestrator, config.to_environment())
        except OrchestrationError as exc:
            logger.warning("services.unavailable", error=exc.message)
            result.warnings.append(f"Could not list services: {exc.message}")

        result.mark_complete()
        logger.info("install.complete", url=result.url, summary=result.summary)
        return result


def render_topology(settings: DeploySettings) -> str:
    """Compose YAML for the topology, with the data directory relative to the compose file."""
    return generate_compose(
        TOPOLOGY,
        db_data_dir=_bind_source(settings.db_data_path, settings.compose_path.parent),
        project_name=settings.project_name,
    )


def write_topology(settings: DeploySettings) -> Path:
    """Render the topology into the project's compose file."""
    return write_compose_file(render_topology(settings), settings.compose_path)


def _bind_source(path: Path, base: Path) -> str:
    """Express *path* the way compose expects a bind source relative to *base*."""
    try:
        relative = path.resolve().relative_to(base.resolve())
    except ValueError:
        return str(path.resolve())
    return f"./{relative.as_posix()}"


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


def collect_services(
    orchestrator: Orchestrator,
    environment: Mapping[str, str] | None = None,
) -> list[ServiceStatus]:
    """Match ``compose ps`` output against the declared topology.

    Declared services with no container are reported as ``not_found``.
    """
    by_service: dict[str, dict[str, Any]] = {}
    for entry in orchestrator.compose_ps():
        name = entry.get("Service") or entry.get("Name") or ""
        by_service[name] = entry

    services: list[ServiceStatus] = []
    for spec in TOPOLOGY:
        entry = by_service.get(spec.name)
        if entry is None:
            services.append(ServiceStatus(
                name=spec.name,
                container_name=spec.container_name,
                image=spec.resolved_image(environment or {}),
                ports=spec.port_mapping(environment),
            ))
            continue
        services.append(ServiceStatus(
            name=spec.name,
            container_id=entry.get("ID") or None,
            container_name=entry.get("Name") or spec.container_name,
            image=entry.get("Image") or spec.resolved_image(environment or {}),
            status=_map_compose_status(entry.get("State", ""), entry.get("Health", "")),
            ports=entry.get("Ports") or spec.port_mapping(environment),
        ))
    return services


def status(
    orchestrator: Orchestrator,
    environment: Mapping[str, str] | None = None,
) -> DeploymentResult:
    """Report the state of the declared services without changing anything."""
    result = DeploymentResult(mode="status")
    result.services = collect_services(orchestrator, environment)
    result.mark_complete()
    return result


def _map_compose_status(state: str, health: str = "") -> str:
    """Map a compose State/Health pair to a ``ServiceStatus`` value."""
    state = state.lower()
    health = health.lower()
    if health in ("healthy", "unhealthy"):
        return health
    if state in ("running", "healthy"):
        return state
    if "unhealthy" in state:
        return "unhealthy"
    if "exit" in state or "dead" in state:
        return "exited"
    if "starting" in state or "created" in state or "restarting" in state:
        return "starting"
    return "not_found"


# ---------------------------------------------------------------------------
# Reset
# ---------------------------------------------------------------------------


def wipe_database_files(data_dir: Path) -> int:
    """Delete every entry under *data_dir*, keeping the directory itself.

    Returns the number of top-level entries removed. A missing directory
    removes nothing.

    Raises
    ------
    DataWipeFailed
        An entry could not be removed (commonly files owned by the
        container's mysql user).
    """
    if not data_dir.exists():
        return 0
    removed = 0
    for entry in sorted(data_dir.iterdir()):
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except OSError as exc:
            raise DataWipeFailed(f"Could not delete {entry}: {exc}", cause=exc) from exc
        removed += 1
    logger.warning("database.wiped", path=str(data_dir), entries=removed)
    return removed


def reset(
    config: StackConfig,
    orchestrator: Orchestrator,
    settings: DeploySettings,
) -> ResetResult:
    """Tear down, delete all database files, and deploy again.

    Unconditional and destructive: every file under the database
    directory is lost. Callers are expected to confirm first.
    """
    with LogContext(operation="reset"):
        data_dir = settings.db_data_path
        result = ResetResult(data_dir=str(data_dir))

        # compose needs a file to tear down, even on a never-installed project
        write_topology(settings)
        orchestrator.compose_down()
        result.entries_removed = wipe_database_files(data_dir)

        logger.info("reset.redeploying")
        result.deployment = deploy(config, orchestrator, settings)
        result.mark_complete()
        return result


# ---------------------------------------------------------------------------
# Backup
# ---------------------------------------------------------------------------


def backup_dir_name(now: datetime) -> str:
    return f"{BACKUP_PREFIX}{now:%Y-%m-%d_%H-%M-%S}"


def create_backup_dir(parent: Path, now: datetime) -> Path:
    """Create a fresh, timestamp-named directory under *parent*.

    A numeric suffix is appended when the name is already taken, so an
    existing backup is never written into.
    """
    base = backup_dir_name(now)
    try:
        parent.mkdir(parents=True, exist_ok=True)
        suffix = 0
        while True:
            candidate = parent / (base if suffix == 0 else f"{base}-{suffix}")
            try:
                candidate.mkdir()
            except FileExistsError:
                suffix += 1
                continue
            return candidate
    except OSError as exc:
        raise BackupCopyFailed("directory", str(exc), cause=exc) from exc


def backup(
    orchestrator: Orchestrator,
    settings: DeploySettings,
    now: datetime | None = None,
) -> BackupResult:
    """Copy the database directory and archive the application volume.

    Returns
    -------
    BackupResult
        ``path`` is the new backup directory.

    Raises
    ------
    BackupCopyFailed
        ``stage`` is ``directory``, ``database`` or ``application``. The
        partially written backup directory is left in place.
    """
    with LogContext(operation="backup"):
        backup_dir = create_backup_dir(settings.backups_path, now or datetime.now())
        result = BackupResult(path=str(backup_dir))
        logger.info("backup.started", path=str(backup_dir))

        db_src = settings.db_data_path
        if not db_src.is_dir():
            raise BackupCopyFailed("database", f"Database directory not found: {db_src}")
        db_dest = backup_dir / db_src.name
        try:
            shutil.copytree(db_src, db_dest, symlinks=True)
        except OSError as exc:
            raise BackupCopyFailed("database", str(exc), cause=exc) from exc
        logger.warning("backup.database.live_copy", path=str(db_dest))
        result.warnings.append(LIVE_COPY_WARNING)
        result.artifacts.append(BackupArtifact(
            name=db_dest.name, kind="directory", size_bytes=_tree_size(db_dest),
        ))

        try:
            orchestrator.archive_volume(
                APP_SERVICE.container_name,
                APP_SERVICE.volumes[APP_DATA_VOLUME],
                backup_dir,
                ARCHIVE_NAME,
            )
        except OrchestrationError as exc:
            raise BackupCopyFailed(
                "application", exc.message, exit_code=exc.exit_code, cause=exc,
            ) from exc
        archive = backup_dir / ARCHIVE_NAME
        result.artifacts.append(BackupArtifact(
            name=ARCHIVE_NAME,
            kind="archive",
            size_bytes=archive.stat().st_size if archive.exists() else 0,
        ))

        result.mark_complete()
        (backup_dir / MANIFEST_NAME).write_text(
            result.model_dump_json(indent=2), encoding="utf-8",
        )
        logger.info("backup.complete", path=str(backup_dir), bytes=result.total_bytes)
        return result


def _tree_size(path: Path) -> int:
    return sum(p.stat().st_size for p in path.rglob("*") if p.is_file() and not p.is_symlink())
