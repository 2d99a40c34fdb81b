"""Live connection registry and adapter factory."""

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Type

from sqlalchemy.engine import Connection

from sqlrunner.config.models import ConnectionProfile, DatabaseType, PoolSettings
from sqlrunner.db.base import BaseAdapter
from sqlrunner.db.adapters.postgresql import PostgreSQLAdapter
from sqlrunner.db.adapters.mysql import MySQLAdapter
from sqlrunner.db.adapters.sqlite import SQLiteAdapter
from sqlrunner.exceptions import ConnectError

logger = logging.getLogger(__name__)

RegistryListener = Callable[[str], None]


class AdapterFactory:
    """Factory for creating database adapters."""

    _adapters: Dict[DatabaseType, Type[BaseAdapter]] = {
        DatabaseType.POSTGRESQL: PostgreSQLAdapter,
        DatabaseType.MYSQL: MySQLAdapter,
        DatabaseType.SQLITE: SQLiteAdapter,
    }

    def __init__(self, pool_settings: Optional[PoolSettings] = None) -> None:
        self.pool_settings = pool_settings or PoolSettings()

    def create_adapter(self, db_type: DatabaseType) -> BaseAdapter:
        """Create the adapter for a database type.

        Raises:
            ConnectError: If the database type is not supported.
        """
        adapter_class = self._adapters.get(db_type)
        if not adapter_class:
            supported_types = [t.value for t in self._adapters]
            raise ConnectError(
                f"Unsupported database type: {db_type}. Supported types: {supported_types}"
            )
        return adapter_class(self.pool_settings)

    @classmethod
    def get_supported_types(cls) -> List[DatabaseType]:
        """Get list of supported database types."""
        return list(cls._adapters.keys())


@dataclass
class ConnectionState:
    """Live state of one connection.

    ``tx_handle`` is only set while a transaction is open on a backend that
    checks out a dedicated connection for it (PostgreSQL).
    """
    connection_id: str
    profile: ConnectionProfile
    adapter: BaseAdapter
    main_handle: Any
    tx_handle: Optional[Connection] = None
    in_transaction: bool = False
    uncommitted_count: int = 0

    @property
    def db_type(self) -> DatabaseType:
        return self.adapter.db_type

    @property
    def active_handle(self) -> Any:
        return self.tx_handle if self.tx_handle is not None else self.main_handle

    @property
    def tx_handle_lost(self) -> bool:
        """True after a failed COMMIT/ROLLBACK released the transaction's connection."""
        return self.adapter.uses_dedicated_tx_handle and self.in_transaction and self.tx_handle is None


@dataclass(frozen=True)
class ConnectionStatus:
    """Per-profile status rendered by the presentation layer."""
    connection_id: str
    name: str
    db_type: DatabaseType
    connected: bool
    is_active: bool
    in_transaction: bool = False
    uncommitted_count: int = 0

    @property
    def description(self) -> str:
        if not self.connected:
            return f"{self.db_type.value} (disconnected)"
        state = "active" if self.is_active else "connected"
        text = f"{self.db_type.value} ({state})"
        if self.uncommitted_count > 0:
            text += f" Transactional ({self.uncommitted_count})"
        return text


class ConnectionRegistry:
    """Owns every live ``ConnectionState``, keyed by connection id.

    The registry is constructed explicitly and torn down with
    ``disconnect_all`` (or by leaving its ``with`` block).
    """

    def __init__(self, factory: Optional[AdapterFactory] = None) -> None:
        self._factory = factory or AdapterFactory()
        self._states: Dict[str, ConnectionState] = {}
        self._lock = Lock()
        self._listeners: List[RegistryListener] = []

    def __enter__(self) -> "ConnectionRegistry":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.disconnect_all()

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._states

    def __len__(self) -> int:
        return len(self._states)

    def connect(self, profile: ConnectionProfile) -> ConnectionState:
        """Return the live state for a profile, opening it if needed.

        Connecting an already connected id returns the existing state without
        re-validating credentials.

        Raises:
            ConnectError: If the backend cannot be reached; nothing is stored.
        """
        existing = self._states.get(profile.id)
        if existing is not None:
            return existing

        adapter = self._factory.create_adapter(profile.db_type)
        handle = adapter.connect(profile)
        state = ConnectionState(
            connection_id=profile.id,
            profile=profile,
            adapter=adapter,
            main_handle=handle,
        )

        with self._lock:
            existing = self._states.get(profile.id)
            if existing is None:
                self._states[profile.id] = state

        if existing is not None:
            # Lost a race with another connect for the same id.
            adapter.close(handle)
            return existing

        logger.info("Connected to %s", profile.label)
        self.notify(profile.id)
        return state

    def test_connection(self, profile: ConnectionProfile) -> str:
        """Verify credentials with a throwaway connection; never stored.

        Returns the name of the driver that made the connection.

        Raises:
            ConnectError: If the connection test fails.
        """
        adapter = self._factory.create_adapter(profile.db_type)
        adapter.test_connect(profile)
        return adapter.driver_name

    def disconnect(self, connection_id: str) -> List[str]:
        """Tear down a live connection.

        An open transaction is rolled back explicitly before the handles are
        closed. Cleanup failures do not stop the teardown; they are logged
        and returned as warnings.

        Returns:
            Warning messages for cleanup steps that failed.
        """
        with self._lock:
            state = self._states.pop(connection_id, None)
        if state is None:
            return []

        warnings: List[str] = []
        name = state.profile.name

        if state.in_transaction:
            try:
                state.adapter.rollback_tx(state.main_handle, state.tx_handle)
            except Exception as e:
                warnings.append(f"Rollback before disconnecting {name} failed: {e}")
            state.tx_handle = None
            state.in_transaction = False
            state.uncommitted_count = 0

        try:
            state.adapter.close(state.main_handle, state.tx_handle)
        except Exception as e:
            warnings.append(f"Closing {name} failed: {e}")
        state.tx_handle = None

        for warning in warnings:
            logger.warning(warning)
        logger.info("Disconnected from %s", state.profile.label)
        self.notify(connection_id)
        return warnings

    def disconnect_all(self) -> Dict[str, List[str]]:
        """Disconnect every live connection, continuing past failures."""
        results: Dict[str, List[str]] = {}
        for connection_id in list(self._states.keys()):
            try:
                warnings = self.disconnect(connection_id)
            except Exception as e:
                logger.warning("Disconnecting %s failed: %s", connection_id, e)
                warnings = [str(e)]
            if warnings:
                results[connection_id] = warnings
        return results

    def get_state(self, connection_id: Optional[str]) -> Optional[ConnectionState]:
        if connection_id is None:
            return None
        return self._states.get(connection_id)

    def get_active_handle(self, connection_id: str) -> Optional[Any]:
        """Return the transaction's handle if one is checked out, else the main handle."""
        state = self._states.get(connection_id)
        return state.active_handle if state is not None else None

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._states

    def states(self) -> List[ConnectionState]:
        return list(self._states.values())

    def describe(
        self,
        profiles: Iterable[ConnectionProfile],
        active_id: Optional[str] = None,
    ) -> List[ConnectionStatus]:
        """Build the status row shown for each profile."""
        statuses = []
        for profile in profiles:
            state = self._states.get(profile.id)
            statuses.append(ConnectionStatus(
                connection_id=profile.id,
                name=profile.name,
                db_type=profile.db_type,
                connected=state is not None,
                is_active=profile.id == active_id,
                in_transaction=state.in_transaction if state else False,
                uncommitted_count=state.uncommitted_count if state else 0,
            ))
        return statuses

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        """Register a callback fired with the connection id on every state change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, connection_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(connection_id)
            except Exception:
                logger.exception("Registry listener failed for %s", connection_id)
