"""MySQL database adapter."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Connection, URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from sqlrunner.config.models import ConnectionProfile, DatabaseType
from sqlrunner.db.base import BaseAdapter

logger = logging.getLogger(__name__)

# Field type codes from the MySQL client protocol.
MYSQL_FIELD_TYPES: Dict[int, str] = {
    0: 'DECIMAL',
    1: 'TINY',
    2: 'SHORT',
    3: 'LONG',
    4: 'FLOAT',
    5: 'DOUBLE',
    7: 'TIMESTAMP',
    8: 'LONGLONG',
    9: 'INT24',
    10: 'DATE',
    11: 'TIME',
    12: 'DATETIME',
    13: 'YEAR',
    15: 'VARCHAR',
    16: 'BIT',
    245: 'JSON',
    246: 'NEWDECIMAL',
    247: 'ENUM',
    248: 'SET',
    249: 'TINY_BLOB',
    250: 'MEDIUM_BLOB',
    251: 'LONG_BLOB',
    252: 'BLOB',
    253: 'VAR_STRING',
    254: 'STRING',
    255: 'GEOMETRY',
}


class MySQLAdapter(BaseAdapter):
    """MySQL database adapter backed by one persistent connection."""

    db_type = DatabaseType.MYSQL
    driver_name = "pymysql"
    default_port = 3306
    type_names = MYSQL_FIELD_TYPES
    unknown_type_format = "UNKNOWN({code})"

    def build_connection_string(self, profile: ConnectionProfile) -> str:
        """Build MySQL connection URL."""
        query = {'charset': str(profile.options.get('charset', 'utf8mb4'))}
        url = URL.create(
            "mysql+pymysql",
            username=profile.user,
            password=profile.password,
            host=profile.host,
            port=profile.port or self.default_port,
            database=profile.database,
            query=query,
        )
        return url.render_as_string(hide_password=False)

    def _get_engine_options(self, profile: ConnectionProfile) -> Dict[str, Any]:
        """Get MySQL-specific engine options."""
        return {
            'poolclass': NullPool,
            'connect_args': {
                'connect_timeout': profile.options.get('connect_timeout', self.pool_settings.connect_timeout),
            },
        }

    def connect(self, profile: ConnectionProfile) -> Connection:
        """Open the single persistent connection reused for every statement."""
        engine = self.create_engine(profile)
        try:
            connection = engine.connect()
        except SQLAlchemyError as e:
            engine.dispose()
            raise self._connect_error(profile, e) from e
        logger.info("Opened MySQL connection for %s", profile.name)
        return connection

    def get_table_names(self, state, schema: Optional[str] = None) -> List[str]:
        key = f"Tables_in_{state.profile.database}"
        return self.fetch_column(state, "SHOW TABLES", key)
