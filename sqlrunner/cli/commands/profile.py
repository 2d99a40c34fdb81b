"""Connection profile CLI commands."""

from __future__ import annotations

from typing import Optional

import click
from pydantic import ValidationError
from rich.table import Table

from sqlrunner.cli.utils import console, fail, get_store, print_success, print_warnings
from sqlrunner.config import ConnectionProfile, DatabaseType
from sqlrunner.db.connection import ConnectionRegistry
from sqlrunner.exceptions import ConfigurationError, SQLRunnerError
from sqlrunner.session import RunnerSession


@click.group(name="profile")
def profile_group() -> None:
    """Manage saved connection profiles."""
    pass


@profile_group.command(name="list")
@click.pass_context
def list_command(ctx: click.Context) -> None:
    """List saved connection profiles."""
    try:
        config = get_store(ctx).load()
    except ConfigurationError as exc:
        fail("Configuration Error", exc, ctx.obj.get("verbose", False))

    if not config.connections:
        console.print("[yellow]No connection profiles configured.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Id", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Type", style="yellow")
    table.add_column("Target")
    table.add_column("Active", style="blue")
    for profile in config.connections:
        active = "✓" if profile.id == config.active_connection else ""
        table.add_row(profile.id, profile.name, profile.db_type.value, _target(profile), active)
    console.print(table)
    console.print(f"\nAuto-commit mode: [cyan]{config.auto_commit.value}[/cyan]")


def _target(profile: ConnectionProfile) -> str:
    if profile.db_type == DatabaseType.SQLITE:
        return profile.database
    port = f":{profile.port}" if profile.port else ""
    return f"{profile.host}{port}/{profile.database}"


@profile_group.command(name="add")
@click.option("--name", "-n", required=True, help="Display name of the profile")
@click.option(
    "--type", "db_type", required=True,
    type=click.Choice([t.value for t in DatabaseType], case_sensitive=False),
    help="Database type",
)
@click.option("--database", "-d", required=True, help="Database name (file path for SQLite)")
@click.option("--host", "-h", help="Database host")
@click.option("--port", "-p", type=int, help="Database port")
@click.option("--user", "-u", help="Database user")
@click.option("--password", help="Database password (may be a ${VAR} reference)")
@click.option("--id", "profile_id", help="Explicit profile id (default: generated)")
@click.option("--use", "make_active", is_flag=True, help="Make the new profile the active connection")
@click.option("--no-test", is_flag=True, help="Save without verifying the connection first")
@click.pass_context
def add_command(
    ctx: click.Context,
    name: str,
    db_type: str,
    database: str,
    host: Optional[str],
    port: Optional[int],
    user: Optional[str],
    password: Optional[str],
    profile_id: Optional[str],
    make_active: bool,
    no_test: bool,
) -> None:
    """Add a connection profile, verifying the credentials first."""
    verbose = ctx.obj.get("verbose", False)
    try:
        store = get_store(ctx, create=True)
        fields = dict(
            name=name, db_type=db_type, database=database, host=host,
            port=port, user=user, password=password,
        )
        if profile_id:
            fields["id"] = profile_id
        profile = ConnectionProfile(**fields)

        if not no_test:
            console.print(f"Testing connection to [cyan]{profile.label}[/cyan]...")
            driver = ConnectionRegistry().test_connection(profile)
            print_success(f"Connection OK (driver: {driver})")

        saved = store.add_profile(profile)
        if make_active:
            store.set_active(saved.id)
    except ValidationError as exc:
        fail("Invalid profile", exc, verbose)
    except SQLRunnerError as exc:
        fail("Error adding profile", exc, verbose)

    print_success(f"Saved profile '{saved.name}' (id: {saved.id}) to {store.path}")
    if make_active:
        console.print(f"Active connection: [cyan]{saved.name}[/cyan]")


@profile_group.command(name="remove")
@click.argument("ref")
@click.pass_context
def remove_command(ctx: click.Context, ref: str) -> None:
    """Remove a profile by id or name."""
    try:
        with RunnerSession(get_store(ctx)) as session:
            connection_id, warnings = session.delete_profile(ref)
    except SQLRunnerError as exc:
        fail("Error removing profile", exc, ctx.obj.get("verbose", False))

    print_warnings(warnings)
    print_success(f"Removed profile '{connection_id}'")


@profile_group.command(name="use")
@click.argument("ref")
@click.pass_context
def use_command(ctx: click.Context, ref: str) -> None:
    """Set the active connection."""
    try:
        profile = get_store(ctx).set_active(ref)
    except SQLRunnerError as exc:
        fail("Error setting active connection", exc, ctx.obj.get("verbose", False))

    print_success(f"Active connection: {profile.label}")


@profile_group.command(name="test")
@click.argument("ref", required=False)
@click.pass_context
def test_command(ctx: click.Context, ref: Optional[str]) -> None:
    """Verify a profile's credentials (default: the active profile)."""
    try:
        with RunnerSession(get_store(ctx)) as session:
            profile, driver = session.test(ref)
    except SQLRunnerError as exc:
        fail("Connection test failed", exc, ctx.obj.get("verbose", False))

    print_success(f"Connection to '{profile.name}' succeeded (driver: {driver})")
