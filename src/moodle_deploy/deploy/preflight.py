"""Preflight checks for external tools.

Verifies that the binaries the drivers shell out to resolve on ``PATH``
before anything touches the network or the container runtime. Nothing is
installed; a missing tool halts the invocation with ``DependencyMissing``.
"""

from __future__ import annotations

import shutil
from collections.abc import Iterable
from dataclasses import dataclass

from moodle_deploy.core.config.settings import DeploySettings
from moodle_deploy.core.errors import DependencyMissing
from moodle_deploy.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ToolCheck:
    """Resolution result for one tool."""

    tool: str
    path: str | None

    @property
    def found(self) -> bool:
        return self.path is not None


def required_tools(settings: DeploySettings, *, compose: bool = True) -> list[str]:
    """Tools needed by the drivers.

    ``docker`` is always required. The compose command contributes its
    first word, so ``docker compose`` adds nothing while the standalone
    ``docker-compose`` adds itself.
    """
    tools = ["docker"]
    if compose:
        binary = settings.compose_argv[0]
        if binary not in tools:
            tools.append(binary)
    return tools


def probe_tools(tools: Iterable[str]) -> list[ToolCheck]:
    """Resolve each tool on ``PATH`` without failing."""
    return [ToolCheck(tool=tool, path=shutil.which(tool)) for tool in tools]


def check_dependencies(tools: Iterable[str]) -> dict[str, str]:
    """Ensure every tool resolves on ``PATH``.

    Returns
    -------
    dict[str, str]
        Tool name to resolved executable path.

    Raises
    ------
    DependencyMissing
        For the first tool that does not resolve.
    """
    resolved: dict[str, str] = {}
    for check in probe_tools(tools):
        if not check.found:
            logger.error("preflight.missing", tool=check.tool)
            raise DependencyMissing(check.tool)
        resolved[check.tool] = check.path  # type: ignore[assignment]
    logger.debug("preflight.ok", tools=sorted(resolved))
    return resolved
