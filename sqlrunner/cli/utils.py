"""Shared CLI utilities for SQL Runner."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, NoReturn, Optional, Union

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from sqlrunner.config import EnvironmentSettings, SettingsStore
from sqlrunner.db.connection import ConnectionStatus
from sqlrunner.db.executor import ExecutionOutcome, OutcomeKind
from sqlrunner.db.normalizer import QueryResult
from sqlrunner.exceptions import ConfigurationError

DEFAULT_CONFIG_FILE = "sqlrunner.yaml"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Single console instance reused across CLI modules
console = Console()


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging once for the CLI process.

    ``--verbose`` selects DEBUG; otherwise ``SQLRUNNER_LOG_LEVEL`` applies.
    """
    level_name = "DEBUG" if verbose else EnvironmentSettings().log_level.upper()
    level = getattr(logging, level_name, logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


def print_error(message: str) -> None:
    console.print(f"[red]{escape(message)}[/red]")


def print_warning(message: str) -> None:
    console.print(f"[yellow]{escape(message)}[/yellow]")


def print_success(message: str) -> None:
    console.print(f"[green]{escape(message)}[/green]")


def print_exception(message: str, error: Exception, verbose: bool = False) -> None:
    """Render a formatted exception message.

    Args:
        message: Friendly context message to display before the exception.
        error: Original exception instance.
        verbose: When True, render the full traceback for debugging.
    """
    print_error(f"{message}: {error}")
    if verbose:
        console.print_exception()


def fail(message: str, error: Exception, verbose: bool = False) -> NoReturn:
    """Print an error and exit with status 1."""
    print_exception(message, error, verbose)
    raise SystemExit(1) from error


def get_store(ctx: click.Context, create: bool = False) -> SettingsStore:
    """Locate the settings file for this invocation.

    Args:
        ctx: Click context carrying the ``--config`` option.
        create: When True, fall back to a store at the ``--config`` path (or
            ``sqlrunner.yaml`` in the working directory) that does not exist yet.

    Raises:
        ConfigurationError: If no settings file is found and ``create`` is False.
    """
    config_path = ctx.obj.get("config") if ctx.obj else None
    try:
        return SettingsStore.discover(config_path)
    except ConfigurationError:
        if not create:
            raise
        return SettingsStore(Path(config_path or DEFAULT_CONFIG_FILE))


def build_result_table(result: QueryResult) -> Table:
    """Render rows under headers that show each column's type beneath its name."""
    table = Table(show_header=True, header_style="bold magenta")
    for header in result.headers:
        table.add_column(escape(header), overflow="fold")
    for row in result.display_rows():
        table.add_row(*[escape(value) for value in row])
    return table


def render_outcome(outcome: ExecutionOutcome) -> None:
    """Print what a statement produced: a table or an informational line."""
    if outcome.kind == OutcomeKind.ROWS and outcome.result is not None:
        console.print(build_result_table(outcome.result))
        console.print(f"[dim]{escape(outcome.message)} ({outcome.execution_time:.3f}s)[/dim]")
    else:
        console.print(f"[cyan]{escape(outcome.message)}[/cyan]")

    if outcome.in_transaction:
        console.print(
            f"[yellow]Transaction open: {outcome.uncommitted_count} uncommitted statement(s)[/yellow]"
        )


def build_status_table(statuses: Iterable[ConnectionStatus]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Id", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Status", style="yellow")
    for status in statuses:
        name = f"* {status.name}" if status.is_active else status.name
        table.add_row(escape(status.connection_id), escape(name), escape(status.description))
    return table


def build_tables_tree(label: str, tree: Dict[str, List[str]]) -> Tree:
    root = Tree(f"[bold blue]{escape(label)}[/bold blue]")
    for schema, tables in tree.items():
        branch = root.add(f"[cyan]{escape(schema)}[/cyan] ({len(tables)})")
        for table in sorted(tables):
            branch.add(escape(table))
    return root


def print_warnings(warnings: Union[List[str], Dict[str, List[str]], None]) -> None:
    if not warnings:
        return
    if isinstance(warnings, dict):
        warnings = [message for messages in warnings.values() for message in messages]
    for message in warnings:
        print_warning(message)


def parse_columns(values: Optional[Iterable[str]]) -> Optional[List[str]]:
    """Split ``a,b c`` style column arguments into names."""
    if not values:
        return None
    columns = [name.strip() for value in values for name in value.split(",") if name.strip()]
    return columns or None
