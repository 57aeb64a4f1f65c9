"""Typer application and CLI entry point for multiclient.

This module wires together the top-level Typer application and registers
the built-in sub-commands (``pool``, ``check``, ``request``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
Unhandled :class:`~multiclient.exceptions.MultiClientError` instances exit
with their ``exit_code``; anything else is written to a crash log.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from multiclient import __version__
from multiclient.commands.check import check_command
from multiclient.commands.pool import pool_app
from multiclient.commands.request import request_command
from multiclient.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="multiclient",
    help="Load-balanced HTTP requests over a pool of endpoints.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.add_typer(pool_app, name="pool", help="Manage saved endpoint pools.")
app.command("check")(check_command)
app.command("request")(request_command)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"multiclient {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    pool: Optional[str] = typer.Option(
        None, "--pool", "-p", help="Saved pool name to use."
    ),
    pool_file: Optional[str] = typer.Option(
        None, "--pool-file", help="JSON or YAML pool definition file."
    ),
    addresses: Optional[list[str]] = typer.Option(
        None, "--address", "-a", help="Endpoint base URL (repeatable); overrides the pool's."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output and library logging."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~multiclient.output.OutputManager` from
    CLI flags, routes library logging to stderr when verbose, and stores
    the pool selection in ``ctx.obj`` for sub-commands.
    """
    from multiclient.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    output.install_logging()

    ctx.ensure_object(dict)
    ctx.obj["pool"] = pool
    ctx.obj["pool_file"] = pool_file
    ctx.obj["addresses"] = addresses or None
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from multiclient.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``multiclient`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from multiclient.exceptions import MultiClientError
        from multiclient.output import error

        if isinstance(exc, MultiClientError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
