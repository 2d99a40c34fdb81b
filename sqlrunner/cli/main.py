"""Main CLI entry point for SQL Runner."""

from __future__ import annotations

from typing import Optional

import click
from rich.panel import Panel
from rich.text import Text

from sqlrunner import __version__
from sqlrunner.cli.commands.configuration import config_group
from sqlrunner.cli.commands.profile import profile_group
from sqlrunner.cli.commands.query import run_command, tables_command
from sqlrunner.cli.shell import shell_command
from sqlrunner.cli.utils import configure_logging, console


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--config", type=click.Path(dir_okay=False), help="Path to settings file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, version: bool, config: Optional[str], verbose: bool) -> None:
    """SQL Runner - run ad-hoc SQL against PostgreSQL, MySQL and SQLite."""
    ctx.ensure_object(dict)
    ctx.obj.update({"config": config, "verbose": verbose})
    configure_logging(verbose)

    if version:
        console.print(f"SQL Runner v{__version__}")
        return

    if ctx.invoked_subcommand is None:
        show_dashboard()


# Registered in workflow order: settings, profiles, querying.
COMMAND_REGISTRY = [
    config_group,
    profile_group,
    run_command,
    tables_command,
    shell_command,
]

for _command in COMMAND_REGISTRY:
    cli.add_command(_command)


def show_dashboard() -> None:
    """Display the command overview."""
    title = Text("SQL Runner", style="bold blue")
    subtitle = Text("Ad-hoc SQL with explicit transaction control", style="italic")

    dashboard_content = Text()
    dashboard_content.append("config   ", style="bold")
    dashboard_content.append("validate or create a settings file\n")
    dashboard_content.append("profile  ", style="bold")
    dashboard_content.append("list, add, remove, use and test connection profiles\n")
    dashboard_content.append("run      ", style="bold")
    dashboard_content.append("execute SQL once and report the results\n")
    dashboard_content.append("tables   ", style="bold")
    dashboard_content.append("browse schemas and tables\n")
    dashboard_content.append("shell    ", style="bold")
    dashboard_content.append("interactive session with \\begin, \\commit and \\rollback\n")
    dashboard_content.append("\nRun 'sqlrunner --help' for available commands", style="dim")

    panel = Panel(
        dashboard_content,
        title=title,
        subtitle=subtitle,
        border_style="blue",
        padding=(1, 2),
    )

    console.print(panel)


if __name__ == "__main__":
    cli()
