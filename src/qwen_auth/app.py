"""Typer application and CLI entry point for qwen-auth.

The CLI is a thin operator surface over :class:`~qwen_auth.auth.AuthManager`:
``qwen-auth auth login|status|token|refresh|logout``.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. It registers sub-commands and invokes the Typer app.
:class:`~qwen_auth.exceptions.QwenAuthError` exits with the error's
``exit_code``; anything else is written to a crash log under the data
directory.

See Also:
    :mod:`qwen_auth.config`: Configuration loading used by every command.
    :mod:`qwen_auth.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from qwen_auth import __version__
from qwen_auth.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="qwen-auth",
    help="Manage Qwen / DashScope API credentials.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"qwen-auth {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool, no_color: bool) -> None:
    """Send library log records to stderr through Rich."""
    root = logging.getLogger("qwen_auth")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True, no_color=no_color),
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


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
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="JSON or YAML configuration file.",
        exists=True,
        dir_okay=False,
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~qwen_auth.output.OutputManager`, wires
    library logging to stderr, and stores the config path in ``ctx.obj``.
    """
    from qwen_auth.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose, no_color)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _write_crash_log() -> str:
    """Write the current traceback under ``<data dir>/logs`` and return its path."""
    from qwen_auth.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def _register_commands() -> None:
    from qwen_auth.commands.auth import auth_app

    if not any(group.name == "auth" for group in app.registered_groups):
        app.add_typer(auth_app, name="auth", help="Log in, inspect, refresh, and log out.")


_register_commands()


def main() -> None:
    """CLI entry point invoked by the ``qwen-auth`` console script.

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
        from qwen_auth.exceptions import QwenAuthError
        from qwen_auth.output import error

        if isinstance(exc, QwenAuthError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log()
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
