"""Core primitives shared by the deploy drivers and the CLI."""

from moodle_deploy.core.errors import (
    BackupCopyFailed,
    ConfigurationMissing,
    DataWipeFailed,
    DependencyMissing,
    DeployError,
    ErrorCategory,
    ImageFetchFailed,
    InvalidConfigValue,
    MissingConfigKey,
    TeardownFailed,
    TopologyStartFailed,
)

__all__ = [
    "BackupCopyFailed",
    "ConfigurationMissing",
    "DataWipeFailed",
    "DependencyMissing",
    "DeployError",
    "ErrorCategory",
    "ImageFetchFailed",
    "InvalidConfigValue",
    "MissingConfigKey",
    "TeardownFailed",
    "TopologyStartFailed",
]
