"""Configuration: the deployment ``.env`` loader and the tool's own settings.

Architecture::

    loader.py     .env parsing + export into the process environment
    settings.py   DeploySettings (pydantic-settings) + get_settings() cache
"""

from .loader import load_environment, parse_env_file, parse_env_text
from .settings import DeploySettings, clear_settings_cache, get_settings

__all__ = [
    "DeploySettings",
    "clear_settings_cache",
    "get_settings",
    "load_environment",
    "parse_env_file",
    "parse_env_text",
]
