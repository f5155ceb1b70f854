"""Config commands -- view and modify the configuration file.

Provides the ``tether config`` sub-command group. Settings are persisted
in the tether config directory (``config.json``) and supply the defaults
that ``TETHER_*`` environment variables and CLI flags override.
"""

from __future__ import annotations

import typer

from tether.exceptions import TetherError
from tether.output import error, format_data, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the stored configuration.

    Example::

        tether config show
        tether config show --json
    """
    from tether.config import config_path, load_config

    try:
        config = load_config()
    except TetherError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config file: {config_path()}")
    format_data(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'callback.port')."
    ),
    value: str = typer.Argument(help="Value to set (parsed as JSON when possible)."),
) -> None:
    """Set a configuration value.

    Raises:
        typer.Exit: With code 2 for an unknown key, or 1 when the value
            fails validation.

    Example::

        tether config set endpoint https://tether.example.com
        tether config set callback.port 9090
        tether config set enabled false
    """
    from tether.config import load_config, save_config, set_config_value
    from tether.models import TetherConfig

    try:
        config = load_config()
    except TetherError as exc:
        # A broken file is replaced by defaults plus this one change.
        error(str(exc))
        config = TetherConfig()

    try:
        updated = set_config_value(config, key, value)
    except TetherError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    save_config(updated)
    success(f"Set {key} = {value}")
