"""
Structured error types for moodle-deploy.

Every failure that ends an invocation is a ``DeployError`` subclass. Errors
carry a category for routing, the exit status the CLI should return, and an
optional chained cause. Nothing here is retryable: each driver is a single
attempt-or-fail sequence.

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────┐
        │                       DeployError                          │
        │            (category, exit_code, cause)                    │
        ├───────────────────────────────────────────────────────────┤
        │  ConfigurationMissing     DependencyMissing               │
        │    MissingConfigKey       (DEPENDENCY)                    │
        │  InvalidConfigValue                                       │
        │  (CONFIG)                                                 │
        │                                                           │
        │  OrchestrationError       StorageError                    │
        │    ImageFetchFailed         BackupCopyFailed              │
        │    TeardownFailed           DataWipeFailed                │
        │    TopologyStartFailed                                    │
        └───────────────────────────────────────────────────────────┘

Usage:
    from moodle_deploy.core.errors import ImageFetchFailed

    if proc.returncode != 0:
        raise ImageFetchFailed(image, stderr=proc.stderr, exit_code=proc.returncode)
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories."""

    CONFIG = "CONFIG"
    DEPENDENCY = "DEPENDENCY"
    ORCHESTRATION = "ORCHESTRATION"
    STORAGE = "STORAGE"
    INTERNAL = "INTERNAL"


class DeployError(Exception):
    """Base exception for all moodle-deploy errors.

    Subclasses set ``default_category``; ``exit_code`` defaults to 1 and is
    overridden by errors that wrap a failed external command so the CLI can
    return that command's own status.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        exit_code: int = 1,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.exit_code = exit_code if exit_code > 0 else 1
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "exit_code": self.exit_code,
        }
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(DeployError):
    """Configuration error. The configuration must be fixed by hand."""

    default_category = ErrorCategory.CONFIG


class ConfigurationMissing(ConfigError):
    """The environment configuration file does not exist."""

    def __init__(
        self,
        path: Path | str | None = None,
        message: str | None = None,
        *,
        cause: Exception | None = None,
    ):
        self.path = Path(path) if path is not None else None
        super().__init__(message or f"Configuration file not found: {path}", cause=cause)


class MissingConfigKey(ConfigurationMissing):
    """A required configuration key is absent or empty."""

    def __init__(self, key: str, missing: list[str] | None = None):
        self.key = key
        self.missing = missing or [key]
        super().__init__(
            message=f"Missing required configuration: {', '.join(self.missing)}",
        )


class InvalidConfigValue(ConfigError):
    """A configuration value is present but unusable."""

    def __init__(
        self,
        key: str,
        value: Any,
        message: str | None = None,
        *,
        cause: Exception | None = None,
    ):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}", cause=cause)


# =============================================================================
# DEPENDENCY ERRORS
# =============================================================================


class DependencyMissing(DeployError):
    """A required external tool is not on the executable search path."""

    default_category = ErrorCategory.DEPENDENCY

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"Required tool not found on PATH: {tool}")


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(DeployError):
    """An external container command failed.

    The tool's stderr is kept verbatim and appended to the message.
    """

    default_category = ErrorCategory.ORCHESTRATION

    def __init__(
        self,
        message: str,
        *,
        stderr: str = "",
        exit_code: int = 1,
        cause: Exception | None = None,
    ):
        self.stderr = stderr
        full = f"{message}\n{stderr.rstrip()}" if stderr.strip() else message
        super().__init__(full, exit_code=exit_code, cause=cause)


class ImageFetchFailed(OrchestrationError):
    """Pulling the application image failed (network, auth, unknown tag)."""

    def __init__(self, image: str, **kwargs: Any):
        self.image = image
        super().__init__(f"Failed to pull image {image}", **kwargs)


class TeardownFailed(OrchestrationError):
    """Stopping the previous deployment failed."""

    def __init__(self, message: str = "Failed to tear down the deployment", **kwargs: Any):
        super().__init__(message, **kwargs)


class TopologyStartFailed(OrchestrationError):
    """Bringing up the db + app topology failed."""

    def __init__(self, message: str = "Failed to start the deployment", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(DeployError):
    """Host filesystem operation failed."""

    default_category = ErrorCategory.STORAGE


class BackupCopyFailed(StorageError):
    """Copying database files or archiving application files failed."""

    def __init__(self, stage: str, message: str, **kwargs: Any):
        self.stage = stage
        super().__init__(f"Backup failed ({stage}): {message}", **kwargs)


class DataWipeFailed(StorageError):
    """Deleting the persisted database files failed."""


__all__ = [
    "BackupCopyFailed",
    "ConfigError",
    "ConfigurationMissing",
    "DataWipeFailed",
    "DependencyMissing",
    "DeployError",
    "ErrorCategory",
    "ImageFetchFailed",
    "InvalidConfigValue",
    "MissingConfigKey",
    "OrchestrationError",
    "StorageError",
    "TeardownFailed",
    "TopologyStartFailed",
]
