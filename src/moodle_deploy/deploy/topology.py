"""Service registry for the Moodle deployment topology.

The topology is static: a MySQL ``db`` service and a Moodle ``app``
service that depends on it. Values sourced from the deployment ``.env``
are kept as ``${VAR}`` references and interpolated by compose at run
time, so no credentials are written into the compose file.

Key Concepts:
    ServiceSpec: Frozen dataclass describing one compose service.
    DB_SERVICE / APP_SERVICE: The two declared services.
    TOPOLOGY: Both services in start order (dependencies first).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from string import Template


@dataclass(frozen=True)
class ServiceSpec:
    """Specification for a deployable compose service."""

    name: str
    """Compose service name."""

    container_name: str
    """Fixed container name (used by ``docker logs`` and ``--volumes-from``)."""

    image: str
    """Image reference, may contain ``${VAR}`` references."""

    port: str | None = None
    """Published host port (``${VAR}`` allowed); ``None`` keeps the service internal."""

    internal_port: int | None = None
    """Container port the host port maps to."""

    env: dict[str, str] = field(default_factory=dict)
    """Environment variables."""

    depends_on: tuple[str, ...] = ()
    """Services that must start first."""

    data_mount: str | None = None
    """Container path bind-mounted from the host data directory."""

    volumes: dict[str, str] = field(default_factory=dict)
    """Named volumes (volume_name: container_path)."""

    restart: str | None = None
    """Compose restart policy."""

    description: str = ""

    def port_mapping(self, env: Mapping[str, str] | None = None) -> str | None:
        """``host:container`` port mapping, interpolated from *env* when given."""
        if self.port is None or self.internal_port is None:
            return None
        mapping = f"{self.port}:{self.internal_port}"
        if env is None:
            return mapping
        return Template(mapping).safe_substitute(env)

    def resolved_image(self, env: Mapping[str, str]) -> str:
        return Template(self.image).safe_substitute(env)


# ---------------------------------------------------------------------------
# Declared services
# ---------------------------------------------------------------------------

DB_SERVICE = ServiceSpec(
    name="db",
    container_name="moodle_db",
    image="mysql:5.7",
    env={
        "MYSQL_ROOT_PASSWORD": "${MYSQL_ROOT_PASSWORD}",
        "MYSQL_DATABASE": "${MYSQL_DATABASE}",
        "MYSQL_USER": "${MYSQL_USER}",
        "MYSQL_PASSWORD": "${MYSQL_PASSWORD}",
    },
    data_mount="/var/lib/mysql",
    restart="always",
    description="MySQL database (internal only)",
)

APP_SERVICE = ServiceSpec(
    name="app",
    container_name="moodle_web",
    image="${MOODLE_IMAGE}",
    port="${MOODLE_PORT}",
    internal_port=80,
    env={
        "MOODLE_DBTYPE": "mysqli",
        "MOODLE_DBHOST": DB_SERVICE.container_name,
        "MOODLE_DBNAME": "${MYSQL_DATABASE}",
        "MOODLE_DBUSER": "${MYSQL_USER}",
        "MOODLE_DBPASS": "${MYSQL_PASSWORD}",
    },
    depends_on=(DB_SERVICE.name,),
    volumes={"moodle-data": "/var/www/html"},
    description="Moodle web application",
)

TOPOLOGY: tuple[ServiceSpec, ...] = (DB_SERVICE, APP_SERVICE)

SERVICES: dict[str, ServiceSpec] = {s.name: s for s in TOPOLOGY}


def get_service(name: str) -> ServiceSpec:
    """Look up a service spec by name.

    Raises
    ------
    ValueError
        If the service name is not part of the topology.
    """
    key = name.lower().strip()
    if key not in SERVICES:
        available = ", ".join(sorted(SERVICES.keys()))
        raise ValueError(f"Unknown service: {name!r}. Available: {available}")
    return SERVICES[key]
