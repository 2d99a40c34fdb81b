"""SQL Runner: ad-hoc SQL against PostgreSQL, MySQL and SQLite.

SQL Runner provides:
- Cached live connections per configured profile
- Explicit, backend-agnostic transaction control
- Auto-commit policies (auto, off, smart)
- Uniform result reporting with CSV/JSON export
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from sqlrunner.exceptions import (
    SQLRunnerError,
    ConfigurationError,
    ConnectError,
    NoActiveConnection,
    ConnectionNotLive,
    TransactionError,
    QueryError,
    ExportError,
)

__all__ = [
    "__version__",
    "SQLRunnerError",
    "ConfigurationError",
    "ConnectError",
    "NoActiveConnection",
    "ConnectionNotLive",
    "TransactionError",
    "QueryError",
    "ExportError",
]
