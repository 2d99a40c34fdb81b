"""Database adapters for the supported backends."""

from sqlrunner.db.adapters.postgresql import PostgreSQLAdapter
from sqlrunner.db.adapters.mysql import MySQLAdapter
from sqlrunner.db.adapters.sqlite import SQLiteAdapter

__all__ = [
    "PostgreSQLAdapter",
    "MySQLAdapter",
    "SQLiteAdapter",
]
