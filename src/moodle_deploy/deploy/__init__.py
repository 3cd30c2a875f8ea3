"""Moodle stack deployment: topology, compose generation, docker client, drivers.

Key Concepts:
    StackConfig: Validated deployment ``.env`` (all six keys required).
    TOPOLOGY: The static ``db`` + ``app`` service registry.
    DockerOrchestrator: subprocess wrapper over ``docker`` and compose;
        implements the ``Orchestrator`` protocol the drivers consume.
    deploy / reset / backup / status: the drivers.

Related Modules:
    - :mod:`moodle_deploy.deploy.config`: StackConfig
    - :mod:`moodle_deploy.deploy.topology`: ServiceSpec registry
    - :mod:`moodle_deploy.deploy.compose`: compose YAML generation
    - :mod:`moodle_deploy.deploy.container`: Orchestrator + DockerOrchestrator
    - :mod:`moodle_deploy.deploy.preflight`: PATH checks
    - :mod:`moodle_deploy.deploy.workflow`: the drivers
    - :mod:`moodle_deploy.deploy.results`: result models
    - :mod:`moodle_deploy.cli.stack`: CLI commands

Example:
    >>> from moodle_deploy.deploy import StackConfig
    >>> config = StackConfig.from_env({
    ...     "MYSQL_ROOT_PASSWORD": "root", "MYSQL_DATABASE": "moodle",
    ...     "MYSQL_USER": "moodle", "MYSQL_PASSWORD": "secret",
    ...     "MOODLE_PORT": "8080", "MOODLE_IMAGE": "example/moodle:latest",
    ... })
    >>> config.app_url
    'http://localhost:8080'
"""

from __future__ import annotations

from moodle_deploy.deploy.config import StackConfig
from moodle_deploy.deploy.container import DockerOrchestrator, Orchestrator
from moodle_deploy.deploy.results import (
    BackupResult,
    DeploymentResult,
    OverallStatus,
    ResetResult,
    ServiceStatus,
)
from moodle_deploy.deploy.topology import APP_SERVICE, DB_SERVICE, TOPOLOGY
from moodle_deploy.deploy.workflow import backup, deploy, reset, status

__all__ = [
    "APP_SERVICE",
    "BackupResult",
    "DB_SERVICE",
    "DeploymentResult",
    "DockerOrchestrator",
    "Orchestrator",
    "OverallStatus",
    "ResetResult",
    "ServiceStatus",
    "StackConfig",
    "TOPOLOGY",
    "backup",
    "deploy",
    "reset",
    "status",
]
