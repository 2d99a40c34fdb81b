"""Session facade wiring settings, connections, execution and export."""

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from sqlrunner.config.models import AutoCommitMode, ConnectionProfile, RunnerConfig
from sqlrunner.config.parser import SettingsStore
from sqlrunner.db.browser import SchemaBrowser
from sqlrunner.db.connection import (
    AdapterFactory,
    ConnectionRegistry,
    ConnectionState,
    ConnectionStatus,
)
from sqlrunner.db.executor import ExecutionOutcome, QueryExecutor
from sqlrunner.db.normalizer import QueryResult
from sqlrunner.db.transaction import TransactionCoordinator
from sqlrunner.exceptions import ConfigurationError, NoActiveConnection
from sqlrunner.export import ExportFormat, ResultExporter
from sqlrunner.statements import apply_default_limit, locate_statements

logger = logging.getLogger(__name__)


class RunnerSession:
    """Everything a front end needs to run SQL against saved profiles.

    Settings are re-read from the store on every operation. The registry is
    owned by the session unless one is passed in; ``close`` (or leaving the
    ``with`` block) disconnects everything it holds.
    """

    def __init__(self, store: SettingsStore, registry: Optional[ConnectionRegistry] = None) -> None:
        self.store = store
        self.registry = registry or ConnectionRegistry(AdapterFactory(store.load().pool))
        self.coordinator = TransactionCoordinator(self.registry)
        self.executor = QueryExecutor(self.registry, self.coordinator, store.load)
        self.browser = SchemaBrowser(self.registry)
        self.exporter = ResultExporter()

    def __enter__(self) -> "RunnerSession":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def settings(self) -> RunnerConfig:
        return self.store.load()

    @property
    def last_result(self) -> Optional[QueryResult]:
        return self.executor.last_result

    def profile(self, ref: Optional[str] = None) -> ConnectionProfile:
        """Resolve a profile by id or name, defaulting to the active one.

        Raises:
            NoActiveConnection: If ``ref`` is omitted and nothing is active.
            ConfigurationError: If ``ref`` names no saved profile.
        """
        settings = self.settings
        if ref is None:
            profile = settings.active_profile
            if profile is None:
                raise NoActiveConnection(
                    "No active connection set. Choose one with 'profile use' or '\\use'."
                )
            return profile

        profile = settings.find_profile(ref)
        if profile is None:
            raise ConfigurationError(f"Connection '{ref}' not found in configuration")
        return profile

    def _live_id(self, ref: Optional[str]) -> str:
        if ref is None:
            return self.executor.resolve(None, self.settings).connection_id
        return self.executor.resolve(self.profile(ref).id, self.settings).connection_id

    def connect(self, ref: Optional[str] = None) -> ConnectionState:
        return self.registry.connect(self.profile(ref))

    def disconnect(self, ref: Optional[str] = None) -> List[str]:
        """Disconnect a profile; returns cleanup warnings (empty when clean)."""
        return self.registry.disconnect(self.profile(ref).id)

    def use(self, ref: str) -> ConnectionState:
        """Make a profile the active connection and make sure it is live."""
        profile = self.store.set_active(ref)
        logger.info("Active connection is now %s", profile.name)
        return self.registry.connect(profile)

    def run(self, sql: str, connection: Optional[str] = None) -> ExecutionOutcome:
        """Run one statement, adding the default row limit to a bare SELECT."""
        statement = apply_default_limit(sql, self.settings.default_query_limit)
        connection_id = self.profile(connection).id if connection else None
        return self.executor.run(statement, connection_id)

    def run_script(self, text: str, connection: Optional[str] = None) -> Iterator[ExecutionOutcome]:
        """Run each ``;``-terminated statement in order, yielding its outcome.

        The first failing statement raises and later statements are not run.
        """
        for statement in locate_statements(text):
            yield self.run(statement, connection)

    def begin(self, connection: Optional[str] = None) -> ConnectionState:
        return self.coordinator.begin_transaction(self._live_id(connection))

    def commit(self, connection: Optional[str] = None) -> ConnectionState:
        return self.coordinator.commit_transaction(self._live_id(connection))

    def rollback(self, connection: Optional[str] = None) -> ConnectionState:
        return self.coordinator.rollback_transaction(self._live_id(connection))

    def tables(self, connection: Optional[str] = None) -> Dict[str, List[str]]:
        return self.browser.tree(self._live_id(connection))

    def export(
        self,
        fmt: Union[str, ExportFormat],
        path: Union[str, Path],
        columns: Optional[List[str]] = None,
    ) -> Path:
        """Export the most recent tabular result."""
        return self.exporter.export(self.executor.last_result, path, fmt, columns)

    def status(self) -> List[ConnectionStatus]:
        settings = self.settings
        return self.registry.describe(settings.connections, settings.active_connection)

    def test(self, ref: Optional[str] = None) -> Tuple[ConnectionProfile, str]:
        """Check a saved profile's credentials without keeping a connection.

        Returns the profile and the driver name that connected.
        """
        profile = self.profile(ref)
        driver = self.registry.test_connection(profile)
        return profile, driver

    def delete_profile(self, ref: str) -> Tuple[str, List[str]]:
        """Disconnect a profile if live, then remove it from the store.

        Returns:
            The removed profile id and any disconnect warnings.
        """
        profile = self.profile(ref)
        warnings = self.registry.disconnect(profile.id)
        return self.store.remove_profile(profile.id), warnings

    def set_mode(self, mode: Union[str, AutoCommitMode]) -> AutoCommitMode:
        return self.store.set_auto_commit(mode)

    def close(self) -> Dict[str, List[str]]:
        return self.registry.disconnect_all()
