"""Connect command -- run the connection component in the foreground.

Enables the integration and renders every connection notice on stderr
until Ctrl-C, until ``--duration`` elapses, or until the attempt ends up
not authenticated.
"""

from __future__ import annotations

import threading
from typing import Optional

import typer

from tether.commands import resolve_from_context
from tether.exceptions import AuthError, TetherError
from tether.models import LifecycleState
from tether.output import debug, error, info, suggest


def connect_command(
    ctx: typer.Context,
    duration: Optional[float] = typer.Option(
        None, "--duration", "-d", help="Stop after this many seconds (default: run until Ctrl-C)."
    ),
) -> None:
    """Connect to the remote service and stay connected.

    Raises:
        typer.Exit: With code 3 when no valid credential is stored.

    Example::

        tether connect
        tether connect --duration 30
    """
    from tether.component import ConnectionComponent

    try:
        config = resolve_from_context(ctx)
    except TetherError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    unauthenticated = threading.Event()

    def _on_state(state: LifecycleState) -> None:
        debug(f"Connection state: {state.value}")
        if state is LifecycleState.UNAUTHENTICATED:
            unauthenticated.set()

    with ConnectionComponent(config.model_copy(update={"enabled": True})) as component:
        component.machine.state.advise(component.lifetime, _on_state)
        info(f"Connecting to {config.endpoint} ...")
        unauthenticated.wait(duration)
        last_error = component.machine.last_error

    if unauthenticated.is_set():
        suggest("Sign in: tether login")
        code = last_error.exit_code if last_error is not None else AuthError.exit_code
        raise typer.Exit(code=code)
    info("Disconnected.")
