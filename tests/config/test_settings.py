"""Tests for settings models, parsing and the settings store."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from sqlrunner.config import (
    AutoCommitMode,
    ConfigParser,
    ConnectionProfile,
    DatabaseType,
    RunnerConfig,
    SettingsStore,
    create_sample_config,
    validate_config_file,
)
from sqlrunner.exceptions import ConfigurationError


class TestConnectionProfile:
    def test_id_defaults_to_name(self) -> None:
        profile = ConnectionProfile(name="local", db_type="sqlite", database="app.db")
        assert profile.id == "local"
        assert profile.label == "local (sqlite)"

    @pytest.mark.parametrize("alias, expected", [
        ("postgres", DatabaseType.POSTGRESQL),
        ("PG", DatabaseType.POSTGRESQL),
        ("sqlite3", DatabaseType.SQLITE),
        ("mysql", DatabaseType.MYSQL),
    ])
    def test_db_type_aliases(self, alias: str, expected: DatabaseType) -> None:
        profile = ConnectionProfile(name="db", type=alias, host="localhost", database="app")
        assert profile.db_type == expected

    def test_username_alias(self) -> None:
        profile = ConnectionProfile(
            name="pg", dbType="postgresql", host="db", username="admin", database="app"
        )
        assert profile.user == "admin"

    def test_server_types_require_host(self) -> None:
        with pytest.raises(ValidationError, match="requires a 'host' field"):
            ConnectionProfile(name="pg", db_type="postgresql", database="app")

    def test_port_range(self) -> None:
        with pytest.raises(ValidationError, match="Port must be between"):
            ConnectionProfile(name="pg", db_type="postgresql", host="db", port=70000, database="app")

    def test_profiles_are_immutable(self) -> None:
        profile = ConnectionProfile(name="local", db_type="sqlite", database="app.db")
        with pytest.raises(ValidationError):
            profile.name = "renamed"


class TestRunnerConfig:
    def test_defaults(self) -> None:
        config = RunnerConfig()
        assert config.connections == []
        assert config.active_connection is None
        assert config.auto_commit == AutoCommitMode.AUTO
        assert config.default_query_limit == 100

    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate connection name"):
            RunnerConfig(connections=[
                {'id': 'a', 'name': 'same', 'db_type': 'sqlite', 'database': 'a.db'},
                {'id': 'b', 'name': 'same', 'db_type': 'sqlite', 'database': 'b.db'},
            ])

    def test_unknown_active_connection_rejected(self) -> None:
        with pytest.raises(ValidationError, match="not found in connections"):
            RunnerConfig(active_connection="missing")

    def test_find_profile_by_id_then_name(self) -> None:
        config = RunnerConfig(connections=[
            {'id': 'abc123', 'name': 'local', 'db_type': 'sqlite', 'database': 'a.db'},
        ])
        assert config.find_profile('abc123').name == 'local'
        assert config.find_profile('local').id == 'abc123'
        assert config.find_profile('nope') is None


class TestConfigParser:
    def test_env_var_interpolation(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_DB_PASSWORD", "s3cret")
        path = temp_dir / "settings.yaml"
        path.write_text(
            "connections:\n"
            "  - name: pg\n"
            "    db_type: postgresql\n"
            "    host: ${TEST_DB_HOST:-localhost}\n"
            "    password: ${TEST_DB_PASSWORD}\n"
            "    database: app\n"
        )

        config = ConfigParser().load_config(path)

        profile = config.connections[0]
        assert profile.host == "localhost"
        assert profile.password == "s3cret"

    def test_missing_env_var(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("UNSET_PASSWORD_VAR", raising=False)
        path = temp_dir / "settings.yaml"
        path.write_text(
            "connections:\n"
            "  - name: pg\n"
            "    db_type: postgresql\n"
            "    host: db\n"
            "    password: ${UNSET_PASSWORD_VAR}\n"
            "    database: app\n"
        )
        with pytest.raises(ConfigurationError, match="UNSET_PASSWORD_VAR"):
            ConfigParser().load_config(path)

    def test_invalid_yaml(self, temp_dir: Path) -> None:
        path = temp_dir / "broken.yaml"
        path.write_text("connections: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            ConfigParser().load_config(path)

    def test_explicit_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            ConfigParser().load_config(temp_dir / "missing.yaml")

    def test_sample_config_validates(self, temp_dir: Path) -> None:
        path = temp_dir / "sample.yaml"
        create_sample_config(path)
        assert validate_config_file(path) is True

        config = ConfigParser().load_config(path)
        assert config.active_profile.id == "local-sqlite"
        assert config.auto_commit == AutoCommitMode.SMART


class TestSettingsStore:
    def test_load_missing_file_is_empty(self, temp_dir: Path) -> None:
        store = SettingsStore(temp_dir / "absent.yaml")
        assert not store.exists()
        assert store.load().connections == []

    def test_add_profile_assigns_id(self, temp_dir: Path) -> None:
        store = SettingsStore(temp_dir / "settings.yaml")
        profile = ConnectionProfile(name="scratch", db_type="sqlite", database="scratch.db")

        saved = store.add_profile(profile)

        assert saved.name == "scratch"
        assert saved.id != "scratch"
        assert len(saved.id) == 32
        assert store.load().find_profile("scratch").id == saved.id

    def test_add_profile_keeps_explicit_id(self, store: SettingsStore) -> None:
        saved = store.add_profile({'id': 'third', 'name': 'third', 'db_type': 'sqlite', 'database': 'x.db'})
        assert saved.id == 'third'
        assert len(store.load().connections) == 3

    def test_invalid_edit_is_not_written(self, store: SettingsStore, settings_file: Path) -> None:
        before = settings_file.read_text()
        with pytest.raises(ConfigurationError):
            store.add_profile({'name': 'local', 'db_type': 'sqlite', 'database': 'dup.db'})
        assert settings_file.read_text() == before

    def test_remove_active_profile_clears_active(self, store: SettingsStore) -> None:
        removed = store.remove_profile("local")

        config = store.load()
        assert removed == "local"
        assert config.active_connection is None
        assert [p.id for p in config.connections] == ["other"]

    def test_remove_unknown_profile(self, store: SettingsStore) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            store.remove_profile("missing")

    def test_set_active_by_name(self, store: SettingsStore) -> None:
        profile = store.set_active("other")
        assert profile.id == "other"
        assert store.load().active_connection == "other"

    def test_set_auto_commit(self, store: SettingsStore) -> None:
        assert store.set_auto_commit("smart") == AutoCommitMode.SMART
        assert store.load().auto_commit == AutoCommitMode.SMART
        with pytest.raises(ValueError):
            store.set_auto_commit("sometimes")

    def test_placeholders_survive_writes(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE_PG_PASSWORD", "hunter2")
        path = temp_dir / "settings.yaml"
        path.write_text(
            "connections:\n"
            "  - name: pg\n"
            "    db_type: postgresql\n"
            "    host: db\n"
            "    password: ${STORE_PG_PASSWORD}\n"
            "    database: app\n"
        )
        store = SettingsStore(path)

        store.set_active("pg")

        raw = yaml.safe_load(path.read_text())
        assert raw['connections'][0]['password'] == "${STORE_PG_PASSWORD}"
        assert store.load().active_profile.password == "hunter2"
