from __future__ import annotations

from pathlib import Path
import shutil
import sqlite3

import pytest
import yaml

from sqlrunner.cli.utils import console
from sqlrunner.config import SettingsStore
from sqlrunner.db.connection import ConnectionRegistry
from sqlrunner.session import RunnerSession


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep CLI output on one line regardless of the terminal running the tests."""
    monkeypatch.setattr(console, "width", 200)


@pytest.fixture
def temp_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Provide a temporary directory removed after the test."""
    path = tmp_path_factory.mktemp("sqlrunner")
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def sqlite_db(temp_dir: Path) -> Path:
    """Create a SQLite database file with a little test data."""
    db_path = temp_dir / "test.db"
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE items (
            id INTEGER PRIMARY KEY,
            name TEXT
        );

        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            email TEXT NOT NULL UNIQUE
        );

        INSERT INTO items (id, name) VALUES (1, 'a'), (2, NULL);
        INSERT INTO users (id, email) VALUES (1, 'alice@example.com');

        CREATE VIEW item_names AS SELECT name FROM items;
    """)
    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def settings_file(temp_dir: Path, sqlite_db: Path) -> Path:
    """Write a settings file with two SQLite profiles; ``local`` is active."""
    path = temp_dir / "sqlrunner.yaml"
    document = {
        'connections': [
            {'id': 'local', 'name': 'local', 'db_type': 'sqlite', 'database': str(sqlite_db)},
            {'id': 'other', 'name': 'other', 'db_type': 'sqlite', 'database': str(temp_dir / "other.db")},
        ],
        'active_connection': 'local',
        'auto_commit': 'auto',
        'default_query_limit': 100,
    }
    path.write_text(yaml.safe_dump(document, sort_keys=False), encoding='utf-8')
    return path


@pytest.fixture
def store(settings_file: Path) -> SettingsStore:
    return SettingsStore(settings_file)


@pytest.fixture
def registry() -> ConnectionRegistry:
    registry = ConnectionRegistry()
    try:
        yield registry
    finally:
        registry.disconnect_all()


@pytest.fixture
def session(store: SettingsStore) -> RunnerSession:
    session = RunnerSession(store)
    try:
        yield session
    finally:
        session.close()


def read_rows(db_path: Path, query: str) -> list:
    """Read rows through an independent connection, outside any open transaction."""
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute(query).fetchall()
    finally:
        conn.close()


@pytest.fixture
def db_rows(sqlite_db: Path):
    """Query the test database through a separate connection."""
    return lambda query: read_rows(sqlite_db, query)
