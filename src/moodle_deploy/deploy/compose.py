"""Docker Compose generation for the Moodle topology.

Renders the ``ServiceSpec`` registry into the compose file the deployment
driver hands to ``docker-compose``. The registry is the single source of
truth, so the file on disk is rewritten on every install instead of being
hand-maintained.

Key Concepts:
    generate_compose: Topology -> YAML string (with a header comment).
    build_compose_document: Topology -> plain dict (what gets serialised).
    write_compose_file: Persists the YAML string to disk.

Architecture Decisions:
    - ``${VAR}`` references are written verbatim: compose interpolates them
      from the environment the driver passes to the subprocess.
    - The database data directory is a bind mount relative to the compose
      file, so ``rm -rf db-data/*`` on the host really resets MySQL.
    - ``depends_on`` uses the short list form: readiness is not gated on a
      health check, matching the fixed readiness delay in the driver.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

from moodle_deploy.core.logging import get_logger
from moodle_deploy.deploy.topology import TOPOLOGY, ServiceSpec

logger = get_logger(__name__)

DEFAULT_DB_DATA_DIR = "./db-data"


def build_compose_document(
    services: Iterable[ServiceSpec] = TOPOLOGY,
    *,
    db_data_dir: str = DEFAULT_DB_DATA_DIR,
    project_name: str | None = None,
) -> dict[str, Any]:
    """Build the compose document as a dict."""
    services = list(services)
    service_names = {s.name for s in services}

    compose: dict[str, Any] = {}
    if project_name:
        compose["name"] = project_name
    compose["services"] = {}
    named_volumes: dict[str, Any] = {}

    for spec in services:
        service: dict[str, Any] = {
            "image": spec.image,
            "container_name": spec.container_name,
        }
        if spec.restart:
            service["restart"] = spec.restart

        valid_deps = [d for d in spec.depends_on if d in service_names]
        if valid_deps:
            service["depends_on"] = valid_deps

        mapping = spec.port_mapping()
        if mapping:
            service["ports"] = [mapping]

        if spec.env:
            service["environment"] = dict(spec.env)

        mounts: list[str] = []
        if spec.data_mount:
            mounts.append(f"{db_data_dir}:{spec.data_mount}")
        for vol_name, mount_path in spec.volumes.items():
            mounts.append(f"{vol_name}:{mount_path}")
            named_volumes[vol_name] = {}
        if mounts:
            service["volumes"] = mounts

        compose["services"][spec.name] = service

    if named_volumes:
        compose["volumes"] = named_volumes
    return compose


def generate_compose(
    services: Iterable[ServiceSpec] = TOPOLOGY,
    *,
    db_data_dir: str = DEFAULT_DB_DATA_DIR,
    project_name: str | None = None,
) -> str:
    """Generate the compose YAML for *services*.

    Returns
    -------
    str
        YAML string ready to write to a file.
    """
    services = list(services)
    document = build_compose_document(
        services, db_data_dir=db_data_dir, project_name=project_name,
    )
    header = (
        "# Generated by moodle-deploy. Changes are overwritten on install.\n"
        f"# Services: {', '.join(s.name for s in services)}\n"
        "# Values in ${...} are read from the deployment .env\n\n"
    )
    return header + yaml.safe_dump(
        document, default_flow_style=False, sort_keys=False, allow_unicode=True,
    )


def write_compose_file(content: str, output_path: Path) -> Path:
    """Write compose YAML to *output_path*, creating parent directories."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(content, encoding="utf-8")
    logger.info("compose.written", path=str(output_path))
    return output_path
