"""Tests for backend adapters using mocked SQLAlchemy engines and connections."""

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError

from sqlrunner.config import ConnectionProfile, RunnerConfig
from sqlrunner.db.adapters import MySQLAdapter, PostgreSQLAdapter, SQLiteAdapter
from sqlrunner.db.base import command_verb, driver_message
from sqlrunner.db.connection import ConnectionState
from sqlrunner.db.executor import QueryExecutor
from sqlrunner.db.transaction import TransactionCoordinator
from sqlrunner.exceptions import QueryError, TransactionError


def driver_error(message: str) -> OperationalError:
    return OperationalError("statement", {}, Exception(message))


def tabular_result(description, rows):
    result = MagicMock()
    result.returns_rows = True
    result.keys.return_value = [entry[0] for entry in description]
    result.cursor.description = description
    result.__iter__.return_value = iter([SimpleNamespace(_mapping=row) for row in rows])
    return result


def dml_result(rowcount: int):
    result = MagicMock()
    result.returns_rows = False
    result.rowcount = rowcount
    return result


@pytest.mark.parametrize("sql, verb", [
    ("update items set name = 'x'", "UPDATE"),
    ("-- note\nINSERT INTO items VALUES (1)", "INSERT"),
    ("/* c */ delete from items; create table t (id int)", "CREATE"),
    ("", ""),
])
def test_command_verb(sql: str, verb: str) -> None:
    assert command_verb(sql) == verb


def test_driver_message_prefers_driver_text() -> None:
    assert driver_message(driver_error("relation \"x\" does not exist")) == 'relation "x" does not exist'


class TestPostgreSQLAdapter:
    @pytest.fixture
    def adapter(self) -> PostgreSQLAdapter:
        return PostgreSQLAdapter()

    def test_connection_string(self, adapter: PostgreSQLAdapter) -> None:
        profile = ConnectionProfile(
            name="pg", db_type="postgresql", host="db.example.com", user="app", password="pw", database="shop"
        )
        assert adapter.build_connection_string(profile) == "postgresql+psycopg2://app:pw@db.example.com:5432/shop"

    @pytest.mark.parametrize("code, name", [(23, "INT4"), (25, "TEXT"), (1043, "VARCHAR"), (99999, "OID(99999)")])
    def test_type_names(self, adapter: PostgreSQLAdapter, code: int, name: str) -> None:
        assert adapter.type_name(code) == name

    def test_statement_outside_transaction_borrows_and_returns(self, adapter: PostgreSQLAdapter) -> None:
        engine = MagicMock()
        pooled = engine.connect.return_value
        pooled.exec_driver_sql.return_value = tabular_result(
            [("id", 23, None, None, None, None, None), ("name", 25, None, None, None, None, None)],
            [{"id": 1, "name": "a"}],
        )

        raw = adapter.execute(engine, "SELECT id, name FROM items")

        engine.connect.assert_called_once()
        pooled.close.assert_called_once()
        assert raw.returns_rows is True
        assert [(c.name, c.type_code) for c in raw.columns] == [("id", 23), ("name", 25)]
        assert raw.rows == [{"id": 1, "name": "a"}]

    def test_failed_statement_still_returns_connection(self, adapter: PostgreSQLAdapter) -> None:
        engine = MagicMock()
        pooled = engine.connect.return_value
        pooled.exec_driver_sql.side_effect = driver_error("syntax error at or near \"SELEC\"")

        with pytest.raises(QueryError, match="syntax error"):
            adapter.execute(engine, "SELEC 1")

        pooled.close.assert_called_once()

    def test_statement_inside_transaction_uses_tx_handle(self, adapter: PostgreSQLAdapter) -> None:
        engine = MagicMock()
        tx = MagicMock()
        tx.exec_driver_sql.return_value = dml_result(3)

        raw = adapter.execute(engine, "UPDATE items SET name = 'x'", tx)

        engine.connect.assert_not_called()
        tx.close.assert_not_called()
        assert raw.summary == "UPDATE 3"

    def test_begin_checks_out_dedicated_connection(self, adapter: PostgreSQLAdapter) -> None:
        engine = MagicMock()

        tx = adapter.begin_tx(engine)

        assert tx is engine.connect.return_value
        tx.exec_driver_sql.assert_called_once_with("BEGIN")
        tx.close.assert_not_called()

    def test_failed_begin_releases_connection(self, adapter: PostgreSQLAdapter) -> None:
        engine = MagicMock()
        pooled = engine.connect.return_value
        pooled.exec_driver_sql.side_effect = driver_error("too many clients")

        with pytest.raises(TransactionError, match="too many clients"):
            adapter.begin_tx(engine)

        pooled.close.assert_called_once()

    @pytest.mark.parametrize("method, statement", [("commit_tx", "COMMIT"), ("rollback_tx", "ROLLBACK")])
    def test_finish_releases_handle(self, adapter: PostgreSQLAdapter, method: str, statement: str) -> None:
        engine = MagicMock()
        tx = MagicMock()

        getattr(adapter, method)(engine, tx)

        tx.exec_driver_sql.assert_called_once_with(statement)
        tx.close.assert_called_once()

    @pytest.mark.parametrize("method", ["commit_tx", "rollback_tx"])
    def test_failed_finish_still_releases_handle(self, adapter: PostgreSQLAdapter, method: str) -> None:
        tx = MagicMock()
        tx.exec_driver_sql.side_effect = driver_error("server closed the connection unexpectedly")

        with pytest.raises(TransactionError, match="server closed"):
            getattr(adapter, method)(MagicMock(), tx)

        tx.close.assert_called_once()

    def test_finish_without_handle_is_noop(self, adapter: PostgreSQLAdapter) -> None:
        engine = MagicMock()
        adapter.rollback_tx(engine, None)
        engine.connect.assert_not_called()

    def test_close_releases_tx_and_disposes_pool(self, adapter: PostgreSQLAdapter) -> None:
        engine = MagicMock()
        tx = MagicMock()

        adapter.close(engine, tx)

        tx.close.assert_called_once()
        engine.dispose.assert_called_once()

    def test_coordinator_never_releases_twice(self, adapter: PostgreSQLAdapter) -> None:
        engine = MagicMock()
        profile = ConnectionProfile(name="pg", db_type="postgresql", host="db", database="shop")
        state = ConnectionState("pg", profile, adapter, engine)
        registry = MagicMock()
        registry.get_state.return_value = state
        coordinator = TransactionCoordinator(registry)

        coordinator.begin_transaction("pg")
        tx = state.tx_handle
        tx.exec_driver_sql.side_effect = driver_error("connection reset")

        with pytest.raises(TransactionError):
            coordinator.commit_transaction("pg")
        assert state.tx_handle is None
        assert state.in_transaction is True
        assert state.tx_handle_lost is True

        coordinator.rollback_transaction("pg")

        tx.close.assert_called_once()
        assert state.in_transaction is False
        assert state.tx_handle_lost is False

    def test_typed_begin_holds_a_dedicated_connection(self, adapter: PostgreSQLAdapter) -> None:
        engine = MagicMock()
        profile = ConnectionProfile(name="pg", db_type="postgresql", host="db", database="shop")
        state = ConnectionState("pg", profile, adapter, engine)
        registry = MagicMock()
        registry.get_state.return_value = state
        settings = RunnerConfig(connections=[profile], active_connection="pg")
        executor = QueryExecutor(registry, TransactionCoordinator(registry), lambda: settings)

        executor.run("BEGIN")

        tx = state.tx_handle
        assert tx is engine.connect.return_value
        tx.exec_driver_sql.assert_called_once_with("BEGIN")
        tx.close.assert_not_called()

        tx.exec_driver_sql.return_value = dml_result(1)
        executor.run("DELETE FROM orders WHERE id = 1")
        executor.run("COMMIT")

        engine.connect.assert_called_once()
        tx.exec_driver_sql.assert_called_with("COMMIT")
        tx.close.assert_called_once()
        assert state.in_transaction is False

    def test_table_query_escapes_schema(self, adapter: PostgreSQLAdapter) -> None:
        engine = MagicMock()
        pooled = engine.connect.return_value
        pooled.exec_driver_sql.return_value = tabular_result(
            [("table_name", 19, None, None, None, None, None)], [{"table_name": "orders"}]
        )
        state = SimpleNamespace(main_handle=engine, tx_handle=None)

        assert adapter.get_table_names(state, "o'hara") == ["orders"]

        sql = pooled.exec_driver_sql.call_args[0][0]
        assert "table_schema = 'o''hara'" in sql
        assert "table_type = 'BASE TABLE'" in sql


class TestMySQLAdapter:
    @pytest.fixture
    def adapter(self) -> MySQLAdapter:
        return MySQLAdapter()

    def test_connection_string(self, adapter: MySQLAdapter) -> None:
        profile = ConnectionProfile(name="my", db_type="mysql", host="localhost", user="root", database="shop")
        assert adapter.build_connection_string(profile) == "mysql+pymysql://root@localhost:3306/shop?charset=utf8mb4"

    @pytest.mark.parametrize("code, name", [(3, "LONG"), (253, "VAR_STRING"), (246, "NEWDECIMAL"), (77, "UNKNOWN(77)")])
    def test_type_names(self, adapter: MySQLAdapter, code: int, name: str) -> None:
        assert adapter.type_name(code) == name

    def test_transactions_use_persistent_connection(self, adapter: MySQLAdapter) -> None:
        connection = MagicMock()

        assert adapter.begin_tx(connection) is None
        adapter.commit_tx(connection, None)

        statements = [call[0][0] for call in connection.exec_driver_sql.call_args_list]
        assert statements == ["BEGIN", "COMMIT"]
        connection.close.assert_not_called()

    def test_show_tables_keyed_by_database(self, adapter: MySQLAdapter) -> None:
        connection = MagicMock()
        connection.exec_driver_sql.return_value = tabular_result(
            [("Tables_in_shop", 253, None, None, None, None, None)],
            [{"Tables_in_shop": "orders"}, {"Tables_in_shop": "users"}],
        )
        profile = ConnectionProfile(name="my", db_type="mysql", host="localhost", database="shop")
        state = SimpleNamespace(main_handle=connection, tx_handle=None, profile=profile)

        assert adapter.get_table_names(state) == ["orders", "users"]
        assert connection.exec_driver_sql.call_args[0][0] == "SHOW TABLES"

    def test_close_disposes_engine(self, adapter: MySQLAdapter) -> None:
        connection = MagicMock()
        adapter.close(connection)
        connection.close.assert_called_once()
        connection.engine.dispose.assert_called_once()


class TestSQLiteAdapter:
    def test_relative_path_resolves_against_cwd(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(temp_dir)
        profile = ConnectionProfile(name="local", db_type="sqlite", database="data/app.db")

        url = SQLiteAdapter().build_connection_string(profile)

        assert make_url(url).database == str(Path.cwd() / 'data' / 'app.db')

    def test_memory_database(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(temp_dir)
        adapter = SQLiteAdapter()
        profile = ConnectionProfile(name="mem", db_type="sqlite", database=":memory:")

        assert make_url(adapter.build_connection_string(profile)).database == ":memory:"

        connection = adapter.connect(profile)
        try:
            assert adapter.execute(connection, "SELECT 1 AS one").rows == [{"one": 1}]
        finally:
            adapter.close(connection)
        assert list(temp_dir.iterdir()) == []

    def test_reports_no_types(self) -> None:
        assert SQLiteAdapter().type_name("TEXT") is None

    def test_columns_come_from_first_row(self, sqlite_db: Path) -> None:
        adapter = SQLiteAdapter()
        profile = ConnectionProfile(name="local", db_type="sqlite", database=str(sqlite_db))
        connection = adapter.connect(profile)
        try:
            raw = adapter.execute(connection, "SELECT id, name FROM items WHERE id = 2")
            empty = adapter.execute(connection, "SELECT id, name FROM items WHERE id = 99")
        finally:
            adapter.close(connection)

        assert [c.name for c in raw.columns] == ["id", "name"]
        assert raw.rows == [{"id": 2, "name": None}]
        assert empty.returns_rows is True
        assert empty.columns == []
