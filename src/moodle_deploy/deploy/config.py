"""Deployment configuration for the Moodle stack.

``StackConfig`` is the validated form of the deployment ``.env``. All six
keys are required and none has a default: a missing key is a fatal
precondition failure raised before any container command runs.

Example::

    config = StackConfig.from_env(os.environ)
    config.moodle_port      # 8080
    config.to_environment() # {"MYSQL_ROOT_PASSWORD": ..., "MOODLE_PORT": "8080", ...}
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from moodle_deploy.core.errors import InvalidConfigValue, MissingConfigKey

# Field name -> environment key, in declaration order.
ENV_KEYS: dict[str, str] = {
    "mysql_root_password": "MYSQL_ROOT_PASSWORD",
    "mysql_database": "MYSQL_DATABASE",
    "mysql_user": "MYSQL_USER",
    "mysql_password": "MYSQL_PASSWORD",
    "moodle_port": "MOODLE_PORT",
    "moodle_image": "MOODLE_IMAGE",
}


class StackConfig(BaseModel):
    """Validated deployment configuration."""

    model_config = ConfigDict(frozen=True)

    mysql_root_password: str = Field(min_length=1, repr=False)
    mysql_database: str = Field(min_length=1)
    mysql_user: str = Field(min_length=1)
    mysql_password: str = Field(min_length=1, repr=False)
    moodle_port: int = Field(ge=1, le=65535, description="Host port published to container port 80")
    moodle_image: str = Field(min_length=1, description="Application image reference")

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> StackConfig:
        """Build a config from an environment mapping.

        Raises
        ------
        MissingConfigKey
            When any required key is absent or blank.
        InvalidConfigValue
            When a value fails validation (e.g. a non-numeric port).
        """
        missing = [key for key in ENV_KEYS.values() if not (env.get(key) or "").strip()]
        if missing:
            raise MissingConfigKey(missing[0], missing=missing)

        values: dict[str, Any] = {field: env[key].strip() for field, key in ENV_KEYS.items()}
        try:
            return cls(**values)
        except ValidationError as exc:
            error = exc.errors()[0]
            field_name = str(error["loc"][0]) if error["loc"] else ""
            key = ENV_KEYS.get(field_name, field_name)
            raise InvalidConfigValue(
                key,
                values.get(field_name),
                message=f"Invalid configuration for {key}: {error['msg']}",
            ) from exc

    def to_environment(self) -> dict[str, str]:
        """Return the configuration as the ``KEY=VALUE`` mapping compose interpolates."""
        return {key: str(getattr(self, field)) for field, key in ENV_KEYS.items()}

    @property
    def app_url(self) -> str:
        return f"http://localhost:{self.moodle_port}"
