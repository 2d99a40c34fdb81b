"""Base database adapter and raw driver results."""

import logging
import re
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Generator, List, Mapping, Optional, Sequence

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.exc import SQLAlchemyError

from sqlrunner.config.models import ConnectionProfile, DatabaseType, PoolSettings
from sqlrunner.exceptions import ConnectError, QueryError, TransactionError

if TYPE_CHECKING:
    from sqlrunner.db.connection import ConnectionState

logger = logging.getLogger(__name__)

_COMMENT_PATTERN = re.compile(r"--[^\n]*|/\*.*?\*/", re.DOTALL)


def command_verb(sql: str) -> str:
    """Return the upper-cased leading keyword of the last statement in ``sql``."""
    statements = [stmt.strip() for stmt in _COMMENT_PATTERN.sub(" ", sql).split(";")]
    statements = [stmt for stmt in statements if stmt]
    if not statements:
        return ""
    return statements[-1].split(None, 1)[0].upper()


def driver_message(error: Exception) -> str:
    """Extract the driver-native message from a SQLAlchemy error."""
    original = getattr(error, "orig", None)
    return str(original if original is not None else error).strip()


@dataclass(frozen=True)
class RawColumn:
    """Column as reported by the driver."""
    name: str
    type_code: Any = None


@dataclass
class RawResult:
    """Backend result before normalization.

    Tabular results (``returns_rows``) carry columns and rows; non-tabular
    results carry the affected-row count and the statement's command verb.
    """
    returns_rows: bool
    columns: List[RawColumn] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0
    command: str = ""

    @property
    def summary(self) -> str:
        return f"{self.command} {self.rowcount}".strip()


class BaseAdapter(ABC):
    """Base class for database adapters.

    An adapter owns no state of its own: it opens handles, runs statements
    on them and closes them. The handles are stored on the connection state
    by the registry.
    """

    db_type: DatabaseType
    driver_name: str = ""
    begin_statement: str = "BEGIN"
    # Backends whose main handle is a pool check out a dedicated connection
    # for the lifetime of a transaction.
    uses_dedicated_tx_handle: bool = False
    type_names: Mapping[Any, str] = {}
    unknown_type_format: Optional[str] = None
    probe_query: str = "SELECT 1"

    def __init__(self, pool_settings: Optional[PoolSettings] = None) -> None:
        """Initialize database adapter.

        Args:
            pool_settings: Connection pool settings.
        """
        self.pool_settings = pool_settings or PoolSettings()

    @abstractmethod
    def build_connection_string(self, profile: ConnectionProfile) -> str:
        """Build the SQLAlchemy URL for a profile."""
        pass

    def _get_engine_options(self, profile: ConnectionProfile) -> Dict[str, Any]:
        """Get database-specific engine options."""
        return {}

    def create_engine(self, profile: ConnectionProfile) -> Engine:
        """Create an engine whose connections run in backend autocommit mode.

        Transactions are opened explicitly with ``BEGIN``, so anything that
        runs outside one is committed by the backend itself.

        Raises:
            ConnectError: If engine creation fails.
        """
        try:
            engine_args = {
                'isolation_level': 'AUTOCOMMIT',
                'echo': False,
            }
            engine_args.update(self._get_engine_options(profile))
            return create_engine(self.build_connection_string(profile), **engine_args)
        except Exception as e:
            raise ConnectError(
                f"Failed to create database engine for '{profile.name}': {e}",
                database_type=self.db_type.value,
                connection_name=profile.name,
            ) from e

    def _connect_error(self, profile: ConnectionProfile, error: Exception) -> ConnectError:
        return ConnectError(
            f"Failed to connect to {profile.name}: {driver_message(error)}",
            database_type=self.db_type.value,
            connection_name=profile.name,
        )

    @abstractmethod
    def connect(self, profile: ConnectionProfile) -> Any:
        """Open the long-lived main handle for a profile.

        Raises:
            ConnectError: If the handle cannot be opened.
        """
        pass

    def test_connect(self, profile: ConnectionProfile) -> None:
        """Open and immediately close a throwaway connection.

        Raises:
            ConnectError: If the connection test fails.
        """
        engine = self.create_engine(profile)
        try:
            with engine.connect() as connection:
                connection.exec_driver_sql(self.probe_query)
        except SQLAlchemyError as e:
            raise ConnectError(
                f"Connection test failed: {driver_message(e)}",
                database_type=self.db_type.value,
                connection_name=profile.name,
            ) from e
        finally:
            engine.dispose()

    @contextmanager
    def checkout(self, main_handle: Any, tx_handle: Optional[Connection] = None) -> Generator[Connection, None, None]:
        """Yield the connection a statement should run on."""
        yield tx_handle if tx_handle is not None else main_handle

    def execute(self, main_handle: Any, sql: str, tx_handle: Optional[Connection] = None) -> RawResult:
        """Run one SQL text and return its raw result.

        Raises:
            QueryError: If the statement fails.
        """
        logger.debug("Executing on %s: %s", self.db_type.value, sql[:200])
        try:
            with self.checkout(main_handle, tx_handle) as connection:
                result = connection.exec_driver_sql(sql, execution_options={'no_parameters': True})
                return self._build_raw_result(result, sql)
        except SQLAlchemyError as e:
            raise QueryError(driver_message(e), sql=sql) from e

    def _build_raw_result(self, result: CursorResult, sql: str) -> RawResult:
        command = command_verb(sql)
        if not result.returns_rows:
            rowcount = result.rowcount if result.rowcount and result.rowcount > 0 else 0
            return RawResult(returns_rows=False, rowcount=rowcount, command=command)

        # Type codes must be read before the rows are consumed.
        cursor = getattr(result, 'cursor', None)
        description = cursor.description if cursor is not None else None
        names = list(result.keys())
        rows = [dict(row._mapping) for row in result]
        return RawResult(
            returns_rows=True,
            columns=self._describe_columns(names, description or (), rows),
            rows=rows,
            rowcount=len(rows),
            command=command,
        )

    def _describe_columns(
        self,
        names: List[str],
        description: Sequence[Sequence[Any]],
        rows: List[Dict[str, Any]],
    ) -> List[RawColumn]:
        type_codes = [entry[1] for entry in description]
        if len(type_codes) != len(names):
            type_codes = [None] * len(names)
        return [RawColumn(name, code) for name, code in zip(names, type_codes)]

    def type_name(self, type_code: Any) -> Optional[str]:
        """Map a driver type code to a readable type name."""
        if type_code is None or self.unknown_type_format is None:
            return None
        return self.type_names.get(type_code, self.unknown_type_format.format(code=type_code))

    def _run_control(self, connection: Connection, statement: str, operation: str) -> None:
        try:
            connection.exec_driver_sql(statement)
        except SQLAlchemyError as e:
            raise TransactionError(
                f"Failed to {operation} transaction: {driver_message(e)}",
                operation=operation,
            ) from e

    def begin_tx(self, main_handle: Any) -> Optional[Connection]:
        """Issue BEGIN on the persistent connection; there is no separate handle."""
        self._run_control(main_handle, self.begin_statement, "begin")
        return None

    def commit_tx(self, main_handle: Any, tx_handle: Optional[Connection] = None) -> None:
        self._run_control(tx_handle if tx_handle is not None else main_handle, "COMMIT", "commit")

    def rollback_tx(self, main_handle: Any, tx_handle: Optional[Connection] = None) -> None:
        self._run_control(tx_handle if tx_handle is not None else main_handle, "ROLLBACK", "rollback")

    def close(self, main_handle: Any, tx_handle: Optional[Connection] = None) -> None:
        """End the persistent connection and dispose of its engine."""
        engine = main_handle.engine
        try:
            main_handle.close()
        finally:
            engine.dispose()

    def fetch_column(self, state: "ConnectionState", query: str, column: str) -> List[Any]:
        """Run a read-only browsing query outside any open transaction and collect one column."""
        result = self.execute(state.main_handle, query)
        values = []
        for row in result.rows:
            value = row.get(column)
            if value is None and row:
                value = next(iter(row.values()))
            values.append(value)
        return values

    def get_schema_names(self, state: "ConnectionState") -> List[str]:
        """Backends without schemas list none."""
        return []

    @abstractmethod
    def get_table_names(self, state: "ConnectionState", schema: Optional[str] = None) -> List[str]:
        """List base tables, within ``schema`` where the backend has schemas."""
        pass
