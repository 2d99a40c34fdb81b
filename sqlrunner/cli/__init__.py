"""Command-line interface for SQL Runner."""
