"""Typer application and CLI entry point for tether.

This module wires together the top-level Typer application and registers
the built-in commands (``login``, ``logout``, ``status``, ``connect`` and
the ``config`` group).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~tether.exceptions.TetherError` exits with its own code; any other
exception is written to a crash log under the data directory.

See Also:
    :mod:`tether.config`: Configuration resolution.
    :mod:`tether.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from tether import __version__
from tether.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED


app = typer.Typer(
    name="tether",
    help="Keep a local tool connected to its remote service.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"tether {__version__}")
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
    endpoint: Optional[str] = typer.Option(
        None, "--endpoint", "-e", help="Remote service base URL."
    ),
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Credential profile to use."
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
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~tether.output.OutputManager` and the
    logging level from CLI flags, and stores the endpoint and profile
    overrides in ``ctx.obj`` for sub-commands.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        endpoint: Endpoint override (highest precedence).
        profile: Profile name override (highest precedence).
        json_output: Force JSON output format.
        plain_output: Force plain-text output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential diagnostic output.
        verbose: Enable debug-level diagnostic output and logging.
    """
    from tether.output import OutputFormat, OutputManager, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = _configured_format()

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose, no_color)

    ctx.ensure_object(dict)
    ctx.obj["endpoint"] = endpoint
    ctx.obj["profile"] = profile
    ctx.obj["verbose"] = verbose


def _configure_logging(verbose: bool, no_color: bool) -> None:
    """Route the ``tether`` loggers through Rich on the diagnostics console.

    Replaces handlers installed by an earlier invocation in the same
    process, so repeated runs (tests, embedding) do not duplicate lines.
    """
    from rich.console import Console
    from rich.logging import RichHandler

    # No explicit file: the console writes to whatever sys.stderr is now.
    handler = RichHandler(
        console=Console(stderr=True, no_color=no_color),
        show_path=False,
        rich_tracebacks=verbose,
    )
    pkg_logger = logging.getLogger("tether")
    for old in list(pkg_logger.handlers):
        pkg_logger.removeHandler(old)
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _configured_format() -> Any:  # noqa: ANN401
    """Output format from the config file, ``AUTO`` if it cannot be read."""
    from tether.config import load_config
    from tether.exceptions import ConfigError
    from tether.output import OutputFormat

    try:
        return OutputFormat(load_config().output.format)
    except (ConfigError, ValueError):
        # ``config set`` must stay usable to repair a broken file.
        return OutputFormat.AUTO


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path.

    Args:
        exc: The unhandled exception to log.

    Returns:
        Absolute path to the written crash log file.
    """
    from tether.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


# ------------------------------------------------------------------ #
# Built-in commands
# ------------------------------------------------------------------ #

from tether.commands.auth import login_command, logout_command, status_command  # noqa: E402
from tether.commands.config import config_app  # noqa: E402
from tether.commands.connect import connect_command  # noqa: E402

app.command("login")(login_command)
app.command("logout")(logout_command)
app.command("status")(status_command)
app.command("connect")(connect_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def main() -> None:
    """CLI entry point invoked by the ``tether`` console script.

    Unhandled :class:`~tether.exceptions.TetherError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

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
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        from tether.exceptions import TetherError
        from tether.output import error

        if isinstance(exc, TetherError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
