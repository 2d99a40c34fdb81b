"""Database connectivity, transactions and query execution."""

from sqlrunner.db.base import BaseAdapter, RawColumn, RawResult
from sqlrunner.db.connection import (
    AdapterFactory,
    ConnectionRegistry,
    ConnectionState,
    ConnectionStatus,
)
from sqlrunner.db.transaction import TransactionCoordinator, needs_transaction
from sqlrunner.db.normalizer import QueryResult, ResultColumn, normalize
from sqlrunner.db.executor import (
    ExecutionOutcome,
    OutcomeKind,
    QueryExecutor,
    NO_COLUMNS_MESSAGE,
)
from sqlrunner.db.browser import SchemaBrowser
from sqlrunner.db.adapters import (
    PostgreSQLAdapter,
    MySQLAdapter,
    SQLiteAdapter,
)

__all__ = [
    # Base classes
    "BaseAdapter",
    "RawColumn",
    "RawResult",
    # Connection management
    "AdapterFactory",
    "ConnectionRegistry",
    "ConnectionState",
    "ConnectionStatus",
    # Transactions and execution
    "TransactionCoordinator",
    "needs_transaction",
    "QueryExecutor",
    "ExecutionOutcome",
    "OutcomeKind",
    "NO_COLUMNS_MESSAGE",
    # Results
    "QueryResult",
    "ResultColumn",
    "normalize",
    # Browsing
    "SchemaBrowser",
    # Database adapters
    "PostgreSQLAdapter",
    "MySQLAdapter",
    "SQLiteAdapter",
]
