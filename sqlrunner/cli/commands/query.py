"""One-shot query and schema browsing commands."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from sqlrunner.cli.utils import (
    build_tables_tree,
    console,
    fail,
    get_store,
    print_error,
    print_success,
    print_warning,
    print_warnings,
    render_outcome,
)
from sqlrunner.exceptions import ExportError, SQLRunnerError
from sqlrunner.session import RunnerSession


def _finish_transaction(session: RunnerSession, connection_id: str, commit: bool) -> None:
    """Close a transaction left open by the auto-commit policy."""
    state = session.registry.get_state(connection_id)
    if state is None or not state.in_transaction:
        return
    if commit:
        session.coordinator.commit_transaction(connection_id)
        print_success(f"Committed {state.profile.name}")
    else:
        count = state.uncommitted_count
        session.coordinator.rollback_transaction(connection_id)
        print_warning(
            f"Rolled back {count} uncommitted statement(s) on {state.profile.name}; "
            "pass --commit to keep them"
        )


@click.command(name="run")
@click.argument("sql", required=False)
@click.option("--file", "-f", "sql_file", type=click.Path(exists=True, dir_okay=False),
              help="Read SQL statements from a file")
@click.option("--connection", "-c", help="Profile id or name (default: active connection)")
@click.option("--commit", is_flag=True, help="Commit a transaction left open at exit")
@click.option("--export-csv", type=click.Path(dir_okay=False), help="Export the last result to CSV")
@click.option("--export-json", type=click.Path(dir_okay=False), help="Export the last result to JSON")
@click.pass_context
def run_command(
    ctx: click.Context,
    sql: Optional[str],
    sql_file: Optional[str],
    connection: Optional[str],
    commit: bool,
    export_csv: Optional[str],
    export_json: Optional[str],
) -> None:
    """Run SQL statements against a saved connection.

    Statements are separated by ';'. Without --commit, a transaction the
    auto-commit policy left open is rolled back before exiting.
    """
    verbose = ctx.obj.get("verbose", False)
    if sql_file:
        sql = Path(sql_file).read_text(encoding="utf-8")
    if not sql or not sql.strip():
        raise click.UsageError("Provide SQL as an argument or with --file")

    try:
        session = RunnerSession(get_store(ctx))
    except SQLRunnerError as exc:
        fail("Configuration Error", exc, verbose)

    failed = False
    with session:
        try:
            state = session.connect(connection)
        except SQLRunnerError as exc:
            fail("Connection failed", exc, verbose)

        try:
            for outcome in session.run_script(sql, state.connection_id):
                render_outcome(outcome)
        except SQLRunnerError as exc:
            print_error(str(exc))
            failed = True

        try:
            _finish_transaction(session, state.connection_id, commit and not failed)
        except SQLRunnerError as exc:
            print_error(str(exc))
            failed = True

        for fmt, path in (("csv", export_csv), ("json", export_json)):
            if not path:
                continue
            try:
                written = session.export(fmt, path)
                print_success(f"Exported {session.last_result.row_count} row(s) to {written}")
            except ExportError as exc:
                print_warning(str(exc))

        print_warnings(session.close())

    if failed:
        raise SystemExit(1)


@click.command(name="tables")
@click.option("--connection", "-c", help="Profile id or name (default: active connection)")
@click.pass_context
def tables_command(ctx: click.Context, connection: Optional[str]) -> None:
    """Show the schema and table tree of a connection."""
    try:
        with RunnerSession(get_store(ctx)) as session:
            state = session.connect(connection)
            tree = session.tables(state.connection_id)
    except SQLRunnerError as exc:
        fail("Error listing tables", exc, ctx.obj.get("verbose", False))

    if not any(tree.values()):
        console.print(f"[yellow]No tables found in {state.profile.name}[/yellow]")
    console.print(build_tables_tree(state.profile.label, tree))
