"""Interactive SQL shell."""

from __future__ import annotations

import logging
import shlex
from typing import Callable, List, Optional

import click
from rich.console import Console

from sqlrunner.cli.utils import (
    build_status_table,
    build_tables_tree,
    console as default_console,
    get_store,
    parse_columns,
    print_error,
    print_success,
    print_warning,
    print_warnings,
    render_outcome,
)
from sqlrunner.config import AutoCommitMode
from sqlrunner.exceptions import ExportError, SQLRunnerError
from sqlrunner.session import RunnerSession

logger = logging.getLogger(__name__)

HELP_TEXT = """\
SQL statements end with ';' and may span several lines.

  \\connect [PROFILE]        open a connection (default: active profile)
  \\disconnect [PROFILE]     close a connection
  \\use PROFILE              make a profile active and connect to it
  \\begin                    start a transaction
  \\commit                   commit the open transaction
  \\rollback                 roll back the open transaction
  \\status                   show every profile and its connection state
  \\tables                   show schemas and tables of the active connection
  \\export csv|json PATH [COLUMNS]
                            export the last result (COLUMNS: a,b or a b)
  \\mode [auto|off|smart]    show or change the auto-commit mode
  \\help                     show this help
  \\quit                     leave the shell"""


class ShellSession:
    """Read-eval-print loop over a ``RunnerSession``.

    Lines are buffered until one ends with ``;``, then the buffer runs as a
    script. Lines starting with a backslash on an empty buffer are meta
    commands. Errors are printed and the loop continues.
    """

    def __init__(
        self,
        session: RunnerSession,
        console: Optional[Console] = None,
        read_line: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.session = session
        self.console = console or default_console
        self._read_line = read_line or self.console.input
        self._buffer: List[str] = []
        self._running = False
        self._commands = {
            "connect": self._cmd_connect,
            "disconnect": self._cmd_disconnect,
            "use": self._cmd_use,
            "begin": self._cmd_begin,
            "commit": self._cmd_commit,
            "rollback": self._cmd_rollback,
            "status": self._cmd_status,
            "tables": self._cmd_tables,
            "export": self._cmd_export,
            "mode": self._cmd_mode,
            "help": self._cmd_help,
            "?": self._cmd_help,
            "quit": self._cmd_quit,
            "q": self._cmd_quit,
        }

    @property
    def prompt(self) -> str:
        if self._buffer:
            return "   ...> "
        try:
            profile = self.session.settings.active_profile
        except SQLRunnerError:
            return "sqlrunner> "
        if profile is None:
            return "sqlrunner> "
        state = self.session.registry.get_state(profile.id)
        marker = "*" if state is not None and state.in_transaction else ""
        return f"{profile.name}{marker}> "

    def run(self) -> None:
        """Loop until ``\\quit`` or end of input, then disconnect everything."""
        self._running = True
        self.console.print("[bold blue]SQL Runner shell[/bold blue] [dim](\\help for commands)[/dim]")
        try:
            while self._running:
                try:
                    line = self._read_line(self.prompt)
                except EOFError:
                    break
                except KeyboardInterrupt:
                    self._buffer.clear()
                    self.console.print()
                    continue
                self.handle_line(line)
        finally:
            self._shutdown()

    def handle_line(self, line: str) -> None:
        stripped = line.strip()
        if not self._buffer and stripped.startswith("\\"):
            self._dispatch(stripped[1:])
            return
        if not stripped:
            return

        self._buffer.append(line)
        if stripped.endswith(";"):
            text = "\n".join(self._buffer)
            self._buffer.clear()
            self._execute(text)

    def _execute(self, text: str) -> None:
        try:
            for outcome in self.session.run_script(text):
                render_outcome(outcome)
        except SQLRunnerError as exc:
            print_error(str(exc))

    def _dispatch(self, command_line: str) -> None:
        try:
            parts = shlex.split(command_line)
        except ValueError as exc:
            print_error(f"Invalid command: {exc}")
            return
        if not parts:
            return

        name, args = parts[0].lower(), parts[1:]
        handler = self._commands.get(name)
        if handler is None:
            print_error(f"Unknown command '\\{name}'. Type \\help for the list of commands.")
            return
        try:
            handler(args)
        except SQLRunnerError as exc:
            print_error(str(exc))

    def _cmd_connect(self, args: List[str]) -> None:
        state = self.session.connect(args[0] if args else None)
        print_success(f"Connected to {state.profile.label}")

    def _cmd_disconnect(self, args: List[str]) -> None:
        profile = self.session.profile(args[0] if args else None)
        print_warnings(self.session.disconnect(profile.id))
        self.console.print(f"Disconnected from {profile.name}")

    def _cmd_use(self, args: List[str]) -> None:
        if not args:
            print_error("Usage: \\use PROFILE")
            return
        state = self.session.use(args[0])
        print_success(f"Using {state.profile.label}")

    def _cmd_begin(self, args: List[str]) -> None:
        state = self.session.begin()
        self.console.print(f"Transaction started on {state.profile.name}")

    def _cmd_commit(self, args: List[str]) -> None:
        state = self.session.commit()
        self.console.print(f"Committed {state.profile.name}")

    def _cmd_rollback(self, args: List[str]) -> None:
        state = self.session.rollback()
        self.console.print(f"Rolled back {state.profile.name}")

    def _cmd_status(self, args: List[str]) -> None:
        statuses = self.session.status()
        if not statuses:
            print_warning("No connection profiles configured.")
            return
        self.console.print(build_status_table(statuses))
        self.console.print(f"Auto-commit mode: [cyan]{self.session.settings.auto_commit.value}[/cyan]")

    def _cmd_tables(self, args: List[str]) -> None:
        profile = self.session.profile(args[0] if args else None)
        tree = self.session.tables(profile.id)
        self.console.print(build_tables_tree(profile.label, tree))

    def _cmd_export(self, args: List[str]) -> None:
        if len(args) < 2:
            print_error("Usage: \\export csv|json PATH [COLUMNS]")
            return
        fmt, path = args[0], args[1]
        try:
            written = self.session.export(fmt, path, parse_columns(args[2:]))
        except ExportError as exc:
            print_warning(str(exc))
            return
        print_success(f"Exported {self.session.last_result.row_count} row(s) to {written}")

    def _cmd_mode(self, args: List[str]) -> None:
        if not args:
            mode = self.session.settings.auto_commit
            self.console.print(f"Auto-commit mode: [cyan]{mode.value}[/cyan]")
            return
        try:
            mode = self.session.set_mode(args[0].lower())
        except ValueError:
            choices = ", ".join(m.value for m in AutoCommitMode)
            print_error(f"Unknown mode '{args[0]}'. Choose one of: {choices}")
            return
        self.console.print(f"Auto-commit mode: [cyan]{mode.value}[/cyan]")

    def _cmd_help(self, args: List[str]) -> None:
        self.console.print(HELP_TEXT, markup=False, highlight=False)

    def _cmd_quit(self, args: List[str]) -> None:
        self._running = False

    def _shutdown(self) -> None:
        if self._buffer:
            print_warning("Discarding unterminated statement (missing ';').")
            self._buffer.clear()
        for state in self.session.registry.states():
            if state.in_transaction:
                print_warning(
                    f"Rolling back {state.uncommitted_count} uncommitted statement(s) "
                    f"on {state.profile.name}"
                )
        print_warnings(self.session.close())
        logger.debug("Shell closed")


@click.command(name="shell")
@click.option("--connection", "-c", help="Profile to make active and connect to at start")
@click.pass_context
def shell_command(ctx: click.Context, connection: Optional[str]) -> None:
    """Start an interactive SQL shell."""
    try:
        session = RunnerSession(get_store(ctx))
    except SQLRunnerError as exc:
        print_error(f"Configuration Error: {exc}")
        raise SystemExit(1) from exc

    shell = ShellSession(session)
    if connection or session.settings.active_connection:
        try:
            state = session.use(connection) if connection else session.connect()
            print_success(f"Connected to {state.profile.label}")
        except SQLRunnerError as exc:
            print_error(str(exc))
    shell.run()
