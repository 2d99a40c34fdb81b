"""SQLite database adapter."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.engine import Connection, URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from sqlrunner.config.models import ConnectionProfile, DatabaseType
from sqlrunner.db.base import BaseAdapter, RawColumn

logger = logging.getLogger(__name__)


class SQLiteAdapter(BaseAdapter):
    """SQLite database adapter backed by one persistent file connection.

    SQLite reports no column types, and column names are taken from the
    first returned row: a query returning no rows reports no columns.
    """

    db_type = DatabaseType.SQLITE
    driver_name = "sqlite"

    TABLE_QUERY = "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"

    def build_connection_string(self, profile: ConnectionProfile) -> str:
        """Build SQLite connection URL, resolving relative paths against the cwd."""
        database = profile.database
        if database != ":memory:":
            db_path = Path(database).expanduser()
            if not db_path.is_absolute():
                db_path = Path.cwd() / db_path
            database = str(db_path)
        return URL.create("sqlite", database=database).render_as_string()

    def _get_engine_options(self, profile: ConnectionProfile) -> Dict[str, Any]:
        """Get SQLite-specific engine options."""
        return {
            'poolclass': NullPool,
            'connect_args': {
                'check_same_thread': False,
                'timeout': profile.options.get('timeout', 30),
            },
        }

    def connect(self, profile: ConnectionProfile) -> Connection:
        """Open the database file."""
        engine = self.create_engine(profile)
        try:
            connection = engine.connect()
        except SQLAlchemyError as e:
            engine.dispose()
            raise self._connect_error(profile, e) from e
        logger.info("Opened SQLite database %s", profile.database)
        return connection

    def _describe_columns(
        self,
        names: List[str],
        description: Sequence[Sequence[Any]],
        rows: List[Dict[str, Any]],
    ) -> List[RawColumn]:
        if not rows:
            return []
        return [RawColumn(name) for name in rows[0].keys()]

    def get_table_names(self, state, schema: Optional[str] = None) -> List[str]:
        return self.fetch_column(state, self.TABLE_QUERY, 'name')
