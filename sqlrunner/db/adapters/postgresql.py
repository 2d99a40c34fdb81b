"""PostgreSQL database adapter."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional

from sqlalchemy.engine import Connection, Engine, URL
from sqlalchemy.exc import SQLAlchemyError

from sqlrunner.config.models import ConnectionProfile, DatabaseType
from sqlrunner.db.base import BaseAdapter, driver_message
from sqlrunner.exceptions import TransactionError

logger = logging.getLogger(__name__)

# Builtin type OIDs as shipped by the server catalog (pg_type).
PG_BUILTIN_TYPES: Dict[int, str] = {
    16: 'BOOL',
    17: 'BYTEA',
    18: 'CHAR',
    20: 'INT8',
    21: 'INT2',
    23: 'INT4',
    24: 'REGPROC',
    25: 'TEXT',
    26: 'OID',
    27: 'TID',
    28: 'XID',
    29: 'CID',
    114: 'JSON',
    142: 'XML',
    194: 'PG_NODE_TREE',
    210: 'SMGR',
    602: 'PATH',
    604: 'POLYGON',
    650: 'CIDR',
    700: 'FLOAT4',
    701: 'FLOAT8',
    702: 'ABSTIME',
    703: 'RELTIME',
    704: 'TINTERVAL',
    718: 'CIRCLE',
    774: 'MACADDR8',
    790: 'MONEY',
    829: 'MACADDR',
    869: 'INET',
    1033: 'ACLITEM',
    1042: 'BPCHAR',
    1043: 'VARCHAR',
    1082: 'DATE',
    1083: 'TIME',
    1114: 'TIMESTAMP',
    1184: 'TIMESTAMPTZ',
    1186: 'INTERVAL',
    1266: 'TIMETZ',
    1560: 'BIT',
    1562: 'VARBIT',
    1700: 'NUMERIC',
    1790: 'REFCURSOR',
    2202: 'REGPROCEDURE',
    2203: 'REGOPER',
    2204: 'REGOPERATOR',
    2205: 'REGCLASS',
    2206: 'REGTYPE',
    2950: 'UUID',
    2970: 'TXID_SNAPSHOT',
    3220: 'PG_LSN',
    3361: 'PG_NDISTINCT',
    3402: 'PG_DEPENDENCIES',
    3614: 'TSVECTOR',
    3615: 'TSQUERY',
    3642: 'GTSVECTOR',
    3734: 'REGCONFIG',
    3769: 'REGDICTIONARY',
    3802: 'JSONB',
    4089: 'REGNAMESPACE',
    4096: 'REGROLE',
}


class PostgreSQLAdapter(BaseAdapter):
    """PostgreSQL database adapter.

    The main handle is a pooled ``Engine``. Statements outside a transaction
    borrow one pooled connection and return it; a transaction keeps one
    checked-out connection until COMMIT or ROLLBACK releases it.
    """

    db_type = DatabaseType.POSTGRESQL
    driver_name = "psycopg2"
    default_port = 5432
    uses_dedicated_tx_handle = True
    type_names = PG_BUILTIN_TYPES
    unknown_type_format = "OID({code})"

    SCHEMA_QUERY = (
        "SELECT schema_name FROM information_schema.schemata "
        "WHERE schema_name NOT IN ('pg_catalog', 'information_schema') "
        "AND schema_name NOT LIKE 'pg_toast%'"
    )

    def build_connection_string(self, profile: ConnectionProfile) -> str:
        """Build PostgreSQL connection URL."""
        url = URL.create(
            "postgresql+psycopg2",
            username=profile.user,
            password=profile.password,
            host=profile.host,
            port=profile.port or self.default_port,
            database=profile.database,
        )
        return url.render_as_string(hide_password=False)

    def _get_engine_options(self, profile: ConnectionProfile) -> Dict[str, Any]:
        """Get PostgreSQL-specific pool and driver options."""
        connect_args = {
            'connect_timeout': self.pool_settings.connect_timeout,
            'application_name': 'sqlrunner',
        }
        connect_args.update(profile.options)
        return {
            'pool_size': self.pool_settings.max_connections,
            'max_overflow': self.pool_settings.max_overflow,
            'pool_timeout': self.pool_settings.timeout,
            'pool_recycle': self.pool_settings.pool_recycle,
            'pool_pre_ping': self.pool_settings.pool_pre_ping,
            'connect_args': connect_args,
        }

    def connect(self, profile: ConnectionProfile) -> Engine:
        """Open the pool and verify it with a probe query."""
        engine = self.create_engine(profile)
        try:
            with engine.connect() as connection:
                connection.exec_driver_sql(self.probe_query)
        except SQLAlchemyError as e:
            engine.dispose()
            raise self._connect_error(profile, e) from e
        logger.info("Opened PostgreSQL pool for %s", profile.name)
        return engine

    @contextmanager
    def checkout(self, main_handle: Engine, tx_handle: Optional[Connection] = None) -> Generator[Connection, None, None]:
        """Use the transaction's connection, or borrow one from the pool."""
        if tx_handle is not None:
            yield tx_handle
            return

        connection = main_handle.connect()
        try:
            yield connection
        finally:
            connection.close()

    def begin_tx(self, main_handle: Engine) -> Connection:
        """Check out a dedicated connection and open a transaction on it."""
        try:
            connection = main_handle.connect()
        except SQLAlchemyError as e:
            raise TransactionError(
                f"Failed to begin transaction: {driver_message(e)}", operation="begin"
            ) from e

        try:
            self._run_control(connection, self.begin_statement, "begin")
        except TransactionError:
            connection.close()
            raise
        return connection

    def commit_tx(self, main_handle: Engine, tx_handle: Optional[Connection] = None) -> None:
        self._finish(tx_handle, "COMMIT", "commit")

    def rollback_tx(self, main_handle: Engine, tx_handle: Optional[Connection] = None) -> None:
        self._finish(tx_handle, "ROLLBACK", "rollback")

    def _finish(self, tx_handle: Optional[Connection], statement: str, operation: str) -> None:
        # A missing handle was already released by an earlier failed COMMIT or
        # ROLLBACK; the server ended that transaction when it failed.
        if tx_handle is None:
            logger.warning("No transaction connection to %s; it was already released", operation)
            return
        try:
            self._run_control(tx_handle, statement, operation)
        finally:
            tx_handle.close()

    def close(self, main_handle: Engine, tx_handle: Optional[Connection] = None) -> None:
        """Release any transaction connection, then close every pooled member."""
        try:
            if tx_handle is not None:
                tx_handle.close()
        finally:
            main_handle.dispose()

    def get_schema_names(self, state) -> List[str]:
        return self.fetch_column(state, self.SCHEMA_QUERY, 'schema_name')

    def get_table_names(self, state, schema: Optional[str] = None) -> List[str]:
        schema_name = (schema or 'public').replace("'", "''")
        query = (
            "SELECT table_name FROM information_schema.tables "
            f"WHERE table_schema = '{schema_name}' AND table_type = 'BASE TABLE'"
        )
        return self.fetch_column(state, query, 'table_name')
