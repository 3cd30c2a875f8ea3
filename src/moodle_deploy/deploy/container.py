"""Container runtime client for moodle-deploy.

Every external process the drivers need (``docker pull``, compose
``down``/``up``/``ps``, ``docker logs``, the throwaway archive container)
goes through the narrow ``Orchestrator`` protocol. ``DockerOrchestrator``
implements it with the ``docker`` CLI via subprocess; tests substitute a
recording fake.

Key Concepts:
    Orchestrator: Protocol consumed by the drivers in ``deploy.workflow``.
    DockerOrchestrator: subprocess implementation. Compose commands run in
        the project directory with the deployment environment merged into
        the process environment, so ``${VAR}`` references resolve.
    CommandResult alias: ``subprocess.CompletedProcess[str]``.

Architecture Decisions:
    - subprocess, not docker-py: works with any runtime exposing a
      ``docker`` CLI and with both ``docker-compose`` and ``docker compose``.
    - Timeouts and a vanished binary are folded into a failed
      ``CompletedProcess`` (exit 124 / 127) so each method raises the typed
      error for its own step.
    - stderr is never rewritten: errors carry it verbatim.
"""

from __future__ import annotations

import json
import os
import subprocess
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from moodle_deploy.core.config.settings import DeploySettings
from moodle_deploy.core.errors import (
    ImageFetchFailed,
    OrchestrationError,
    TeardownFailed,
    TopologyStartFailed,
)
from moodle_deploy.core.logging import get_logger

logger = get_logger(__name__)

CommandResult = subprocess.CompletedProcess


@runtime_checkable
class Orchestrator(Protocol):
    """Operations the deploy, reset and backup drivers perform."""

    def pull_image(self, image: str) -> None: ...

    def compose_down(self) -> None: ...

    def compose_up(self) -> None: ...

    def compose_ps(self) -> list[dict[str, Any]]: ...

    def container_logs(self, container_name: str, tail: int) -> str: ...

    def archive_volume(
        self,
        container_name: str,
        source_path: str,
        host_dir: Path,
        archive_name: str,
    ) -> None: ...


class DockerOrchestrator:
    """Drives the topology through the ``docker`` and compose CLIs.

    Parameters
    ----------
    settings
        Tool settings (project directory, compose command, timeouts).
    environment
        Deployment values exported to compose (``StackConfig.to_environment()``).
    """

    def __init__(
        self,
        settings: DeploySettings,
        environment: Mapping[str, str] | None = None,
    ) -> None:
        self.settings = settings
        self.environment = dict(environment or {})

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def pull_image(self, image: str) -> None:
        logger.info("image.pulling", image=image)
        result = self._run(["docker", "pull", image])
        if result.returncode != 0:
            raise ImageFetchFailed(image, stderr=result.stderr, exit_code=result.returncode)
        logger.info("image.pulled", image=image)

    # ------------------------------------------------------------------
    # Compose lifecycle
    # ------------------------------------------------------------------

    def compose_down(self) -> None:
        result = self._run(self._compose_cmd("down"))
        if result.returncode != 0:
            raise TeardownFailed(stderr=result.stderr, exit_code=result.returncode)
        logger.info("topology.down")

    def compose_up(self) -> None:
        result = self._run(self._compose_cmd("up", "-d"))
        if result.returncode != 0:
            raise TopologyStartFailed(stderr=result.stderr, exit_code=result.returncode)
        logger.info("topology.up")

    def compose_ps(self) -> list[dict[str, Any]]:
        """List topology containers as dicts (compose ``--format json``).

        Older compose releases print one JSON array, newer ones one object
        per line; both are accepted. A project without a compose file has
        nothing deployed and lists no containers.
        """
        if not self.settings.compose_path.is_file():
            logger.debug("compose.ps.no_file", path=str(self.settings.compose_path))
            return []
        result = self._run(self._compose_cmd("ps", "--all", "--format", "json"), timeout=30)
        if result.returncode != 0:
            raise OrchestrationError(
                "Failed to list services", stderr=result.stderr, exit_code=result.returncode,
            )
        return _parse_ps_output(result.stdout)

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def container_logs(self, container_name: str, tail: int) -> str:
        result = self._run(["docker", "logs", "--tail", str(tail), container_name], timeout=30)
        if result.returncode != 0:
            raise OrchestrationError(
                f"Could not fetch logs for {container_name}",
                stderr=result.stderr,
                exit_code=result.returncode,
            )
        # docker logs replays the container's stdout and stderr separately
        return result.stdout + result.stderr

    def archive_volume(
        self,
        container_name: str,
        source_path: str,
        host_dir: Path,
        archive_name: str,
    ) -> None:
        """Tar+gzip *source_path* from *container_name*'s volumes into *host_dir*.

        Runs a throwaway helper container with ``--volumes-from`` so the
        named volume is read without touching the host filesystem tree.
        """
        cmd = [
            "docker", "run", "--rm",
            "--volumes-from", container_name,
            "-v", f"{host_dir.resolve()}:/backup",
            self.settings.helper_image,
            "tar", "czf", f"/backup/{archive_name}", source_path,
        ]
        result = self._run(cmd)
        if result.returncode != 0:
            raise OrchestrationError(
                f"Failed to archive {source_path} from {container_name}",
                stderr=result.stderr,
                exit_code=result.returncode,
            )
        logger.info("volume.archived", container=container_name, archive=archive_name)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _compose_cmd(self, *args: str) -> list[str]:
        cmd = [*self.settings.compose_argv, "-f", str(self.settings.compose_path)]
        if self.settings.project_name:
            cmd.extend(["-p", self.settings.project_name])
        cmd.extend(args)
        return cmd

    def _run(self, cmd: list[str], timeout: int | None = None) -> CommandResult[str]:
        """Run *cmd* in the project directory with the deployment environment."""
        timeout = timeout or self.settings.command_timeout_seconds
        logger.debug("command.exec", cmd=" ".join(cmd))
        try:
            result = subprocess.run(  # noqa: S603
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=self.settings.project_dir,
                env={**os.environ, **self.environment},
            )
        except subprocess.TimeoutExpired:
            return subprocess.CompletedProcess(
                cmd, 124, "", f"Command timed out after {timeout}s: {' '.join(cmd)}",
            )
        except OSError as exc:
            return subprocess.CompletedProcess(cmd, 127, "", str(exc))
        if result.stdout.strip():
            logger.debug("command.output", cmd=cmd[0], output=result.stdout.strip())
        return result


def _parse_ps_output(stdout: str) -> list[dict[str, Any]]:
    text = stdout.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return []
        return [d for d in data if isinstance(d, dict)]
    containers = []
    for line in text.splitlines():
        if line.strip():
            try:
                containers.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug("compose.ps.unparsed", line=line)
    return containers
