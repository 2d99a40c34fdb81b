"""Settings management for SQL Runner."""

from sqlrunner.config.models import (
    DatabaseType,
    AutoCommitMode,
    ConnectionProfile,
    PoolSettings,
    RunnerConfig,
    EnvironmentSettings,
)
from sqlrunner.config.parser import (
    ConfigParser,
    SettingsStore,
    get_config,
    validate_config_file,
    create_sample_config,
)

__all__ = [
    # Models
    "DatabaseType",
    "AutoCommitMode",
    "ConnectionProfile",
    "PoolSettings",
    "RunnerConfig",
    "EnvironmentSettings",
    # Parser and store
    "ConfigParser",
    "SettingsStore",
    "get_config",
    "validate_config_file",
    "create_sample_config",
]
