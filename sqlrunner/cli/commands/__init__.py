"""Subcommands of the ``sqlrunner`` CLI."""
