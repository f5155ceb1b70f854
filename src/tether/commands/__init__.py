"""Built-in CLI sub-commands for tether.

* :mod:`~tether.commands.auth` -- ``login``, ``logout`` and ``status``.
* :mod:`~tether.commands.connect` -- ``connect``, which runs the connection
  component in the foreground.
* :mod:`~tether.commands.config` -- view and modify settings.

Single commands are plain callback functions registered directly on the
root app; the ``config`` group is a :class:`typer.Typer` sub-application.
"""

from __future__ import annotations

from typing import Optional

import typer

from tether.models import TetherConfig


def resolve_from_context(ctx: typer.Context, port: Optional[int] = None) -> TetherConfig:
    """Resolve the configuration with the root ``--endpoint``/``--profile`` overrides.

    Raises:
        ConfigError: If the config file or an environment value is invalid.
    """
    from tether.config import resolve_config

    obj = ctx.obj or {}
    return resolve_config(
        cli_endpoint=obj.get("endpoint"),
        cli_profile=obj.get("profile"),
        cli_port=port,
    )
