"""
Environment-file parsing and loading.

Reads the deployment ``.env`` (``KEY=VALUE`` lines, ``#`` comments) and
exports its values into the process environment, the way
``export $(grep -v '^#' .env | xargs)`` would. Values from the file
overwrite variables already present in the process.

All parsing is pure-Python (no ``python-dotenv`` dependency).
"""

from __future__ import annotations

import os
import re
from collections.abc import MutableMapping
from pathlib import Path

from moodle_deploy.core.errors import ConfigurationMissing, InvalidConfigValue
from moodle_deploy.core.logging import get_logger

logger = get_logger(__name__)

_VAR_RE = re.compile(
    r"""
    ^                         # start of line
    \s*                       # optional leading whitespace
    (?:export\s+)?            # optional "export " prefix
    (?P<key>[A-Za-z_]\w*)     # variable name
    \s*=\s*                   # equals with optional whitespace
    (?P<value>.*)             # everything after =
    $                         # end of line
    """,
    re.VERBOSE,
)


def parse_env_text(text: str) -> dict[str, str]:
    """Parse ``.env`` content into a ``{key: value}`` mapping.

    Handles:
    * blank/comment lines
    * ``export VAR=value``
    * quoted values (single or double)
    * inline ``# comments`` outside of quotes
    """
    result: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _VAR_RE.match(line)
        if match is None:
            continue
        key = match.group("key")
        value = match.group("value").strip()

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        elif " #" in value:
            value = value[: value.index(" #")].rstrip()

        result[key] = value
    return result


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a single ``.env`` file.

    Raises
    ------
    ConfigurationMissing
        If *path* is not an existing file, or cannot be read.
    InvalidConfigValue
        If the file is not UTF-8 text.
    """
    if not path.is_file():
        raise ConfigurationMissing(path)
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidConfigValue(
            str(path),
            exc.object[exc.start:exc.end],
            message=f"Configuration file is not valid UTF-8: {path} (byte {exc.start})",
            cause=exc,
        ) from exc
    except OSError as exc:
        raise ConfigurationMissing(
            path,
            message=f"Cannot read configuration file {path}: {exc.strerror or exc}",
            cause=exc,
        ) from exc
    return parse_env_text(text)


def load_environment(
    path: Path | str,
    environ: MutableMapping[str, str] | None = None,
) -> dict[str, str]:
    """Parse *path* and export every pair into *environ* (``os.environ`` by default).

    Returns the parsed mapping. A missing file raises before anything is exported.
    """
    env_path = Path(path)
    values = parse_env_file(env_path)
    target = os.environ if environ is None else environ
    target.update(values)
    logger.info("env.loaded", path=str(env_path), keys=sorted(values))
    return values
