"""Core exceptions for SQL Runner."""

from typing import Any, Dict, Optional


class SQLRunnerError(Exception):
    """Base exception for all SQL Runner errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SQLRunnerError):
    """Raised when there's an error in settings parsing or validation."""
    pass


class ConnectError(SQLRunnerError):
    """Raised when a connection cannot be opened (credentials, network, file)."""

    def __init__(
        self,
        message: str,
        database_type: Optional[str] = None,
        connection_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.database_type = database_type
        self.connection_name = connection_name


class NoActiveConnection(SQLRunnerError):
    """Raised when no connection is configured as active."""
    pass


class ConnectionNotLive(SQLRunnerError):
    """Raised when the requested connection has no live state."""

    def __init__(
        self,
        message: str,
        connection_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.connection_id = connection_id


class TransactionError(SQLRunnerError):
    """Raised when BEGIN, COMMIT or ROLLBACK fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.operation = operation


class QueryError(SQLRunnerError):
    """Raised when statement execution fails."""

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        rolled_back: bool = False,
        rollback_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.sql = sql
        self.rolled_back = rolled_back
        self.rollback_error = rollback_error


class ExportError(SQLRunnerError):
    """Raised when a query result cannot be exported."""
    pass
