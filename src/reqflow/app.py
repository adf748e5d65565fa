"""Typer application and CLI entry point for reqflow.

Registers the built-in sub-commands (``send``, ``env``, ``extensions``) on
the root application. :func:`main` is the console-script entry point
declared in ``pyproject.toml``; it maps :class:`~reqflow.exceptions.ReqflowError`
to the error's exit code and writes a crash log for anything else.

See Also:
    :mod:`reqflow.config`: Configuration resolution.
    :mod:`reqflow.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import sys
import traceback
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from reqflow import __version__
from reqflow.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="reqflow",
    help="Execute request documents through an extensible request pipeline.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"reqflow {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool, console: Console) -> None:
    """Send library log records to stderr through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
        force=True,
    )


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
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~reqflow.output.OutputManager` and the
    logging handler, and stores shared flags in ``ctx.obj``.
    """
    from reqflow.output import OutputFormat, OutputManager, set_output

    fmt: Optional[OutputFormat] = None
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(
        format=fmt or OutputFormat.AUTO,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    _configure_logging(verbose, output.stderr_console)

    ctx.ensure_object(dict)
    ctx.obj["format"] = fmt.value if fmt is not None else None
    ctx.obj["verbose"] = verbose


# ------------------------------------------------------------------ #
# Built-in commands
# ------------------------------------------------------------------ #

from reqflow.commands.env import env_app  # noqa: E402
from reqflow.commands.extensions import extensions_app  # noqa: E402
from reqflow.commands.send import send_command  # noqa: E402

app.command("send")(send_command)
app.add_typer(env_app, name="env", help="Inspect environment sources and variable names.")
app.add_typer(extensions_app, name="extensions", help="Inspect loaded extensions.")


def _write_crash_log() -> str:
    """Write the current traceback to the data directory and return its path."""
    from reqflow.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``reqflow`` console script.

    :class:`~reqflow.exceptions.ReqflowError` exits with the error's
    ``exit_code``; any other exception produces a crash log and a generic
    failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from reqflow.exceptions import ReqflowError
        from reqflow.output import error

        if isinstance(exc, ReqflowError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log()
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
