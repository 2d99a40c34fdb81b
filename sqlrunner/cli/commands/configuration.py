"""Settings file CLI commands."""

from __future__ import annotations

from pathlib import Path

import click

from sqlrunner.cli.utils import console, fail, print_success
from sqlrunner.config import create_sample_config, get_config
from sqlrunner.exceptions import ConfigurationError


@click.group(name="config")
def config_group() -> None:
    """Settings file management."""
    pass


@config_group.command(name="validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate_command(ctx: click.Context, config_file: str) -> None:
    """Validate a settings file."""
    verbose = ctx.obj.get("verbose", False)
    try:
        config = get_config(config_file)
    except ConfigurationError as exc:
        fail("Configuration validation failed", exc, verbose)

    print_success(f"Configuration file '{config_file}' is valid")
    names = ", ".join(profile.name for profile in config.connections) or "none"
    console.print(f"Found {len(config.connections)} connection(s): {names}")
    active = config.active_profile
    console.print(f"Active connection: [cyan]{active.name if active else 'none'}[/cyan]")
    console.print(f"Auto-commit mode: [cyan]{config.auto_commit.value}[/cyan]")


@config_group.command(name="sample")
@click.argument("output_file", type=click.Path(dir_okay=False))
@click.pass_context
def sample_command(ctx: click.Context, output_file: str) -> None:
    """Create a sample settings file."""
    output_path = Path(output_file)
    if output_path.exists():
        click.confirm(f"File '{output_file}' exists. Overwrite?", abort=True)

    try:
        create_sample_config(output_path)
    except OSError as exc:
        fail("Error creating sample configuration", exc, ctx.obj.get("verbose", False))

    print_success(f"Sample configuration created: {output_file}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Edit the connection profiles to match your databases")
    console.print("2. Set required environment variables (e.g., DEV_DB_PASSWORD)")
    console.print(f"3. Validate: [cyan]sqlrunner config validate {output_file}[/cyan]")
