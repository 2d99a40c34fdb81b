"""Per-connection transaction state machine and auto-commit policy."""

import logging

from sqlrunner.config.models import AutoCommitMode
from sqlrunner.db.connection import ConnectionRegistry, ConnectionState
from sqlrunner.exceptions import ConnectionNotLive

logger = logging.getLogger(__name__)


def needs_transaction(mode: AutoCommitMode, in_transaction: bool, is_select: bool) -> bool:
    """Decide whether a transaction must be opened before a statement.

    ``auto`` never opens one, ``off`` opens one before any statement and
    ``smart`` only before statements that are not SELECTs.
    """
    if in_transaction:
        return False
    mode = AutoCommitMode(mode)
    if mode == AutoCommitMode.OFF:
        return True
    if mode == AutoCommitMode.SMART:
        return not is_select
    return False


class TransactionCoordinator:
    """Drives BEGIN/COMMIT/ROLLBACK for connections held by a registry.

    States are Idle and InTransaction. Beginning an open transaction and
    committing or rolling back an idle connection are no-ops. A failed
    COMMIT or ROLLBACK propagates and leaves ``in_transaction`` set so the
    state can be inspected.
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

    def begin_transaction(self, connection_id: str) -> ConnectionState:
        state = self._require_state(connection_id)
        if state.in_transaction:
            return state

        state.tx_handle = state.adapter.begin_tx(state.main_handle)
        state.in_transaction = True
        state.uncommitted_count = 0
        logger.info("Transaction started on %s", state.profile.name)
        self.registry.notify(connection_id)
        return state

    def commit_transaction(self, connection_id: str) -> ConnectionState:
        return self._finish(connection_id, commit=True)

    def rollback_transaction(self, connection_id: str) -> ConnectionState:
        return self._finish(connection_id, commit=False)

    def _finish(self, connection_id: str, commit: bool) -> ConnectionState:
        state = self._require_state(connection_id)
        if not state.in_transaction:
            return state

        finish = state.adapter.commit_tx if commit else state.adapter.rollback_tx
        tx_handle = state.tx_handle
        try:
            finish(state.main_handle, tx_handle)
        finally:
            # The adapter releases a dedicated connection on every path, so
            # drop the reference before anything can release it again.
            if tx_handle is not None:
                state.tx_handle = None

        state.in_transaction = False
        state.uncommitted_count = 0
        logger.info("Transaction %s on %s", "committed" if commit else "rolled back", state.profile.name)
        self.registry.notify(connection_id)
        return state
