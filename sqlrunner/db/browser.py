"""Read-only schema and table listing for live connections."""

import logging
from typing import Dict, List, Optional

from sqlrunner.config.models import DatabaseType
from sqlrunner.db.connection import ConnectionRegistry, ConnectionState
from sqlrunner.exceptions import ConnectionNotLive

logger = logging.getLogger(__name__)


class SchemaBrowser:
    """Lists schemas and tables through each adapter's normal execute path.

    Browsing queries never join an open transaction. On PostgreSQL they
    borrow a pooled connection and return it afterwards.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    def _require_state(self, connection_id: str) -> ConnectionState:
        state = self.registry.get_state(connection_id)
        if state is None:
            raise ConnectionNotLive(
                f"Connection '{connection_id}' is not active.", connection_id=connection_id
            )
        return state

    def list_schemas(self, connection_id: str) -> List[str]:
        """List user schemas; backends without schemas return an empty list."""
        state = self._require_state(connection_id)
        return state.adapter.get_schema_names(state)

    def list_tables(self, connection_id: str, schema: Optional[str] = None) -> List[str]:
        state = self._require_state(connection_id)
        return state.adapter.get_table_names(state, schema)

    def tree(self, connection_id: str) -> Dict[str, List[str]]:
        """Map each schema (or the database itself) to its base tables.

        Args:
            connection_id: Id of a live connection.

        Returns:
            Schema names mapped to table names. Backends without schemas
            use the database name as the only key.

        Raises:
            ConnectionNotLive: If the connection is not open.
        """
        state = self._require_state(connection_id)
        if state.db_type == DatabaseType.POSTGRESQL:
            schemas = state.adapter.get_schema_names(state)
            logger.debug("Found %d schemas on %s", len(schemas), state.profile.name)
            return {
                schema: state.adapter.get_table_names(state, schema)
                for schema in schemas
            }
        return {state.profile.database: state.adapter.get_table_names(state)}
