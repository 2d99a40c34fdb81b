"""Settings parser and persistent store for SQL Runner."""

import logging
import os
import re
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from sqlrunner.config.models import (
    AutoCommitMode,
    ConnectionProfile,
    EnvironmentSettings,
    RunnerConfig,
)
from sqlrunner.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ConfigParser:
    """Settings parser with environment variable interpolation."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')

    def __init__(self) -> None:
        """Initialize the settings parser."""
        self.env_settings = EnvironmentSettings()

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> RunnerConfig:
        """Load and validate settings from a YAML file.

        Args:
            config_path: Path to settings file. If None, looks for default locations.

        Returns:
            Validated RunnerConfig instance.

        Raises:
            ConfigurationError: If the settings are invalid or the file is not found.
        """
        config_file = self.find_config_file(config_path)
        raw_config = self.read_raw(config_file)
        return self.build_config(raw_config, config_file)

    def read_raw(self, config_file: Union[str, Path]) -> Dict[str, Any]:
        """Read the YAML document without interpolating environment variables."""
        try:
            with open(config_file, 'r', encoding='utf-8') as file:
                raw_config = yaml.safe_load(file)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file '{config_file}' not found")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in '{config_file}': {e}")

        if raw_config is None:
            return {}
        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Configuration file '{config_file}' must contain a mapping")
        return raw_config

    def build_config(self, raw_config: Dict[str, Any], source: Union[str, Path] = "<memory>") -> RunnerConfig:
        """Interpolate and validate a raw settings document."""
        try:
            processed_config = self._process_env_vars(raw_config)
            return RunnerConfig(**processed_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed for '{source}': {e}")

    def find_config_file(self, config_path: Optional[Union[str, Path]]) -> Path:
        """Find the settings file in default locations.

        Args:
            config_path: Explicit path to settings file.

        Returns:
            Path to settings file.

        Raises:
            ConfigurationError: If no settings file is found.
        """
        if config_path:
            path = Path(config_path)
            if path.exists():
                return path
            raise ConfigurationError(f"Configuration file '{config_path}' not found")

        if self.env_settings.config_file:
            path = Path(self.env_settings.config_file)
            if path.exists():
                return path

        default_locations = [
            Path.cwd() / "sqlrunner.yaml",
            Path.cwd() / "sqlrunner.yml",
            Path.cwd() / "config" / "sqlrunner.yaml",
        ]

        for location in default_locations:
            if location.exists():
                return location

        raise ConfigurationError(
            f"No configuration file found in default locations: {[str(p) for p in default_locations]}"
        )

    def _process_env_vars(self, config: Any) -> Any:
        """Recursively process environment variables in settings."""
        if isinstance(config, dict):
            return {key: self._process_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._process_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_vars(config)
        else:
            return config

    def _substitute_env_vars(self, value: str) -> str:
        """Substitute ``${VAR}`` and ``${VAR:-default}`` in a string.

        Raises:
            ConfigurationError: If a required environment variable is not set.
        """
        def replace_var(match):
            var_expr = match.group(1)

            if ':-' in var_expr:
                var_name, default = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default.strip())

            var_name = var_expr.strip()
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(f"Required environment variable '{var_name}' is not set")
            return env_value

        return self.ENV_VAR_PATTERN.sub(replace_var, value)

    def create_sample_config(self, output_path: Union[str, Path]) -> None:
        """Create a sample settings file."""
        sample_config = {
            'connections': [
                {
                    'id': 'local-sqlite',
                    'name': 'local',
                    'db_type': 'sqlite',
                    'database': './sqlrunner.db',
                },
                {
                    'id': 'dev-postgres',
                    'name': 'dev',
                    'db_type': 'postgresql',
                    'host': 'localhost',
                    'port': 5432,
                    'user': 'dev_user',
                    'password': '${DEV_DB_PASSWORD:-dev_password}',
                    'database': 'myapp_dev',
                },
            ],
            'active_connection': 'local-sqlite',
            'auto_commit': 'smart',
            'default_query_limit': 100,
            'pool': {
                'max_connections': 10,
                'timeout': 30,
                'pool_pre_ping': True,
            },
        }

        write_yaml(output_path, sample_config)


def write_yaml(output_path: Union[str, Path], document: Dict[str, Any]) -> None:
    """Write a settings document to disk."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as file:
        yaml.safe_dump(document, file, default_flow_style=False, sort_keys=False)


class SettingsStore:
    """File-backed store for connection profiles and runner settings.

    ``load`` reads the file on every call so edits take effect on the next
    run without a restart. Mutations operate on the raw YAML document, which
    keeps ``${VAR}`` placeholders intact when writing back.
    """

    def __init__(self, path: Union[str, Path], parser: Optional[ConfigParser] = None) -> None:
        self.path = Path(path)
        self._parser = parser or ConfigParser()

    @classmethod
    def discover(cls, config_path: Optional[Union[str, Path]] = None) -> "SettingsStore":
        """Locate the settings file the same way ``ConfigParser`` does."""
        parser = ConfigParser()
        return cls(parser.find_config_file(config_path), parser)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> RunnerConfig:
        if not self.path.exists():
            return RunnerConfig()
        return self._parser.build_config(self._parser.read_raw(self.path), self.path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        return self._parser.read_raw(self.path)

    def _write(self, document: Dict[str, Any]) -> None:
        # Validate before touching the file so a bad edit never lands on disk.
        self._parser.build_config(document, self.path)
        write_yaml(self.path, document)
        logger.debug("Saved settings to %s", self.path)

    def _connections(self, document: Dict[str, Any]) -> List[Dict[str, Any]]:
        connections = document.setdefault('connections', [])
        if not isinstance(connections, list):
            raise ConfigurationError("'connections' must be a list")
        return connections

    def _resolve_id(self, ref: str) -> str:
        profile = self.load().find_profile(ref)
        if profile is None:
            raise ConfigurationError(f"Connection '{ref}' not found in configuration")
        return profile.id

    def add_profile(self, profile: Union[ConnectionProfile, Dict[str, Any]]) -> ConnectionProfile:
        """Persist a new profile, assigning a fresh id when it has none."""
        if isinstance(profile, ConnectionProfile):
            entry = profile.model_dump(mode='json', exclude_none=True)
            if profile.id == profile.name and 'id' not in profile.model_fields_set:
                entry.pop('id', None)
        else:
            entry = {key: value for key, value in profile.items() if value is not None}

        if not entry.get('id'):
            entry = {'id': uuid.uuid4().hex, **entry}

        document = self._read()
        self._connections(document).append(entry)
        self._write(document)
        logger.info("Added connection profile '%s'", entry.get('name'))
        return self.load().find_profile(entry['id'])

    def remove_profile(self, ref: str) -> str:
        """Delete a profile; clears the active connection if it pointed there."""
        connection_id = self._resolve_id(ref)
        document = self._read()
        document['connections'] = [
            entry for entry in self._connections(document)
            if _entry_id(entry) != connection_id
        ]
        if document.get('active_connection') == connection_id:
            document['active_connection'] = None
        self._write(document)
        logger.info("Removed connection profile '%s'", connection_id)
        return connection_id

    def set_active(self, ref: str) -> ConnectionProfile:
        connection_id = self._resolve_id(ref)
        document = self._read()
        document['active_connection'] = connection_id
        self._write(document)
        return self.load().find_profile(connection_id)

    def set_auto_commit(self, mode: Union[str, AutoCommitMode]) -> AutoCommitMode:
        mode = AutoCommitMode(mode)
        document = self._read()
        document['auto_commit'] = mode.value
        self._write(document)
        return mode


def _entry_id(entry: Dict[str, Any]) -> Optional[str]:
    return entry.get('id') or entry.get('name')


_config_parser = ConfigParser()


def get_config(config_path: Optional[Union[str, Path]] = None) -> RunnerConfig:
    """Load settings from a file (read fresh on every call)."""
    return _config_parser.load_config(config_path)


def validate_config_file(config_path: Union[str, Path]) -> bool:
    """Validate a settings file.

    Raises:
        ConfigurationError: If the settings are invalid.
    """
    _config_parser.load_config(config_path)
    return True


def create_sample_config(output_path: Union[str, Path]) -> None:
    """Create a sample settings file at ``output_path``."""
    _config_parser.create_sample_config(output_path)
