"""Query execution pipeline: resolve, apply policy, dispatch, normalize."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from sqlrunner.config.models import RunnerConfig
from sqlrunner.db.connection import ConnectionRegistry, ConnectionState
from sqlrunner.db.normalizer import QueryResult, normalize
from sqlrunner.db.transaction import TransactionCoordinator, needs_transaction
from sqlrunner.exceptions import (
    ConnectionNotLive,
    NoActiveConnection,
    QueryError,
    TransactionError,
)
from sqlrunner.statements import is_select, transaction_control

logger = logging.getLogger(__name__)

SettingsLoader = Callable[[], RunnerConfig]

NO_COLUMNS_MESSAGE = "Query executed successfully, but no columns were returned."


class OutcomeKind(str, Enum):
    """What a successful statement produced."""
    ROWS = "rows"
    NO_COLUMNS = "no_columns"
    COMMAND = "command"


@dataclass
class ExecutionOutcome:
    """Reportable output of one executed statement."""
    kind: OutcomeKind
    message: str
    connection_id: str
    result: Optional[QueryResult] = None
    rowcount: int = 0
    command: str = ""
    execution_time: float = 0.0
    in_transaction: bool = False
    uncommitted_count: int = 0


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


class QueryExecutor:
    """Single entry point for running a statement on a live connection.

    Settings are read through ``settings_loader`` on every run, so a changed
    active connection or auto-commit mode applies to the next statement.
    Only the most recent tabular result is retained in ``last_result``.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        coordinator: TransactionCoordinator,
        settings_loader: SettingsLoader,
    ) -> None:
        self.registry = registry
        self.coordinator = coordinator
        self._settings_loader = settings_loader
        self.last_result: Optional[QueryResult] = None

    def resolve(self, connection_id: Optional[str], settings: RunnerConfig) -> ConnectionState:
        """Find the live state for ``connection_id`` or the active connection.

        Raises:
            NoActiveConnection: If no id is given and none is configured.
            ConnectionNotLive: If the id has no live state.
        """
        if connection_id is None:
            connection_id = settings.active_connection
        if not connection_id:
            raise NoActiveConnection(
                "No active connection set. Choose one with 'profile use' or '\\use'."
            )

        state = self.registry.get_state(connection_id)
        if state is None:
            profile = settings.find_profile(connection_id)
            name = profile.name if profile else connection_id
            raise ConnectionNotLive(
                f"Connection to '{name}' is not active.", connection_id=connection_id
            )
        return state

    def run(self, sql: str, connection_id: Optional[str] = None) -> ExecutionOutcome:
        """Execute one SQL text on a live connection.

        A failure inside an open transaction triggers an automatic rollback;
        the raised ``QueryError`` reports both. DML results are summarised and
        never replace ``last_result``.

        Raises:
            NoActiveConnection, ConnectionNotLive: If there is nothing to run on.
            TransactionError: If the auto-commit policy cannot open a transaction,
                or a typed BEGIN, COMMIT or ROLLBACK fails.
            QueryError: If the statement fails.
        """
        settings = self._settings_loader()
        state = self.resolve(connection_id, settings)
        connection_id = state.connection_id

        control = transaction_control(sql)
        if control is not None:
            return self._run_control(state, control)

        if needs_transaction(settings.auto_commit, state.in_transaction, is_select(sql)):
            self.coordinator.begin_transaction(connection_id)

        if state.tx_handle_lost:
            raise TransactionError(
                f"The transaction on '{state.profile.name}' lost its connection after a failed "
                "commit or rollback. Roll back to continue.",
                operation="execute",
            )

        start_time = time.time()
        try:
            raw = state.adapter.execute(state.main_handle, sql, state.tx_handle)
        except Exception as e:
            raise self._failure_error(state, sql, e) from e
        execution_time = time.time() - start_time

        if state.in_transaction:
            state.uncommitted_count += 1
            self.registry.notify(connection_id)

        outcome = ExecutionOutcome(
            kind=OutcomeKind.COMMAND,
            message="",
            connection_id=connection_id,
            rowcount=raw.rowcount,
            command=raw.command,
            execution_time=execution_time,
            in_transaction=state.in_transaction,
            uncommitted_count=state.uncommitted_count,
        )

        if not raw.returns_rows:
            outcome.message = raw.summary
            logger.debug("%s on %s in %.3fs", raw.summary, state.profile.name, execution_time)
            return outcome

        result = normalize(raw, state.adapter)
        self.last_result = result
        outcome.result = result
        if not result.columns:
            outcome.kind = OutcomeKind.NO_COLUMNS
            outcome.message = NO_COLUMNS_MESSAGE
        else:
            outcome.kind = OutcomeKind.ROWS
            outcome.message = f"Query returned {result.row_count} row{_plural(result.row_count)}."
        logger.debug("%s (%.3fs)", outcome.message, execution_time)
        return outcome

    def _run_control(self, state: ConnectionState, control: str) -> ExecutionOutcome:
        """Route a typed BEGIN, COMMIT or ROLLBACK through the coordinator."""
        if control == "commit" and state.tx_handle_lost:
            raise TransactionError(
                f"The transaction on '{state.profile.name}' lost its connection after a failed "
                "commit or rollback. Roll back to continue.",
                operation="commit",
            )

        operations = {
            "begin": self.coordinator.begin_transaction,
            "commit": self.coordinator.commit_transaction,
            "rollback": self.coordinator.rollback_transaction,
        }
        start_time = time.time()
        operations[control](state.connection_id)
        command = control.upper()
        return ExecutionOutcome(
            kind=OutcomeKind.COMMAND,
            message=command,
            connection_id=state.connection_id,
            command=command,
            execution_time=time.time() - start_time,
            in_transaction=state.in_transaction,
            uncommitted_count=state.uncommitted_count,
        )

    def _failure_error(self, state: ConnectionState, sql: str, error: Exception) -> QueryError:
        """Roll back an open transaction and build the error to report."""
        cause = error.message if isinstance(error, QueryError) else str(error)
        logger.error("Query failed on %s: %s", state.profile.name, cause)

        if not state.in_transaction:
            return QueryError(f"Query failed: {cause}", sql=sql)

        try:
            self.coordinator.rollback_transaction(state.connection_id)
        except Exception as rollback_error:
            return QueryError(
                f"Query failed: {cause}. Automatic rollback also failed: {rollback_error}",
                sql=sql,
                rollback_error=rollback_error,
            )

        return QueryError(
            f"Query failed and transaction was rolled back: {cause}",
            sql=sql,
            rolled_back=True,
        )
