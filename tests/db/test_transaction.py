"""Tests for the auto-commit policy and the transaction coordinator."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from sqlrunner.config import AutoCommitMode, ConnectionProfile
from sqlrunner.db.connection import ConnectionRegistry
from sqlrunner.db.transaction import TransactionCoordinator, needs_transaction
from sqlrunner.exceptions import ConnectionNotLive, TransactionError


@pytest.mark.parametrize("mode, in_transaction, is_select, expected", [
    (AutoCommitMode.AUTO, False, False, False),
    (AutoCommitMode.AUTO, False, True, False),
    (AutoCommitMode.OFF, False, True, True),
    (AutoCommitMode.OFF, False, False, True),
    (AutoCommitMode.OFF, True, False, False),
    (AutoCommitMode.SMART, False, True, False),
    (AutoCommitMode.SMART, False, False, True),
    (AutoCommitMode.SMART, True, False, False),
    ("smart", False, False, True),
])
def test_needs_transaction(mode, in_transaction: bool, is_select: bool, expected: bool) -> None:
    assert needs_transaction(mode, in_transaction, is_select) is expected


@pytest.fixture
def live(registry: ConnectionRegistry, sqlite_db: Path):
    profile = ConnectionProfile(id="local", name="local", db_type="sqlite", database=str(sqlite_db))
    state = registry.connect(profile)
    return state, TransactionCoordinator(registry)


class TestTransactionCoordinator:
    def test_begin_sets_state(self, live) -> None:
        state, coordinator = live

        coordinator.begin_transaction("local")

        assert state.in_transaction is True
        assert state.uncommitted_count == 0
        # SQLite transactions run on the persistent connection.
        assert state.tx_handle is None

    def test_begin_twice_is_noop(self, live) -> None:
        state, coordinator = live
        coordinator.begin_transaction("local")
        state.uncommitted_count = 3

        coordinator.begin_transaction("local")

        assert state.uncommitted_count == 3

    def test_commit_persists(self, live, db_rows) -> None:
        state, coordinator = live
        coordinator.begin_transaction("local")
        state.adapter.execute(state.main_handle, "UPDATE items SET name = 'b' WHERE id = 1")
        state.uncommitted_count = 1

        coordinator.commit_transaction("local")

        assert state.in_transaction is False
        assert state.uncommitted_count == 0
        assert db_rows("SELECT name FROM items WHERE id = 1") == [("b",)]

    def test_rollback_discards(self, live, db_rows) -> None:
        state, coordinator = live
        coordinator.begin_transaction("local")
        state.adapter.execute(state.main_handle, "DELETE FROM items")

        coordinator.rollback_transaction("local")

        assert state.in_transaction is False
        assert db_rows("SELECT COUNT(*) FROM items") == [(2,)]

    def test_commit_and_rollback_when_idle_are_noops(self, live) -> None:
        state, coordinator = live
        state.adapter = MagicMock(wraps=state.adapter)

        coordinator.commit_transaction("local")
        coordinator.rollback_transaction("local")

        state.adapter.commit_tx.assert_not_called()
        state.adapter.rollback_tx.assert_not_called()

    def test_failed_commit_keeps_transaction_flag(self, live) -> None:
        state, coordinator = live
        coordinator.begin_transaction("local")
        adapter = MagicMock(wraps=state.adapter)
        adapter.commit_tx.side_effect = TransactionError("Failed to commit transaction: disk I/O error", operation="commit")
        state.adapter = adapter

        with pytest.raises(TransactionError, match="disk I/O error"):
            coordinator.commit_transaction("local")

        assert state.in_transaction is True
        assert state.tx_handle is None

    def test_unknown_connection(self, registry: ConnectionRegistry) -> None:
        coordinator = TransactionCoordinator(registry)
        with pytest.raises(ConnectionNotLive):
            coordinator.begin_transaction("ghost")

    def test_notifies_on_each_transition(self, live, registry: ConnectionRegistry) -> None:
        _, coordinator = live
        events = []
        registry.subscribe(events.append)

        coordinator.begin_transaction("local")
        coordinator.commit_transaction("local")

        assert events == ["local", "local"]
