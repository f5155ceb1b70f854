"""Auth commands -- browser sign-in and the stored credential.

Typical workflow::

    tether login           # opens the browser, waits for the callback
    tether status          # shows whether a credential is stored
    tether logout          # forgets it
"""

from __future__ import annotations

from typing import Optional

import typer

from tether.commands import resolve_from_context
from tether.exceptions import AuthError, BrowserLaunchError, TetherError
from tether.output import error, format_data, info, success, suggest, warning


def login_command(
    ctx: typer.Context,
    timeout: float = typer.Option(
        300.0, "--timeout", "-t", help="Seconds to wait for the browser callback."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the sign-in URL instead of opening a browser."
    ),
    port: Optional[int] = typer.Option(
        None, "--port", help="Local callback port (0 picks a free one)."
    ),
) -> None:
    """Sign in through the browser.

    Binds the local callback listener, opens the remote sign-in page and
    waits until the page redirects back with a token. The token is stored
    in the credential profile.

    Raises:
        typer.Exit: With the error's exit code if the listener cannot bind
            (8), or with code 3 if no sign-in arrives within *timeout*.

    Example::

        tether login
        tether login --no-browser --port 0
    """
    from tether.auth import AuthCallbackServer, CredentialStore, LoginModel
    from tether.reactive import LifetimeTree

    try:
        config = resolve_from_context(ctx, port=port)
    except TetherError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    with LifetimeTree().create_root("login") as root:
        login = LoginModel(
            CredentialStore(config.profile),
            config.endpoint,
            login_path=config.login_path,
            return_parameter=config.return_parameter,
        )
        server = AuthCallbackServer(login, root, config.callback)
        show_url = no_browser
        try:
            pending = server.authenticate(launch_browser=not no_browser)
        except BrowserLaunchError as exc:
            warning(str(exc))
            pending = server.pending
            show_url = True
        except TetherError as exc:
            error(str(exc))
            raise typer.Exit(code=exc.exit_code) from None

        if pending is None:
            error("The sign-in listener stopped unexpectedly.")
            raise typer.Exit(code=AuthError.exit_code)
        if show_url:
            info(f"Open this URL to sign in: {pending.login_url}")
        info(f"Waiting for the sign-in callback on {pending.callback_url} ...")

        if not pending.wait(timeout) or not pending.succeeded:
            error(f"No sign-in received within {timeout:g}s.")
            suggest("Run 'tether login' again.")
            raise typer.Exit(code=AuthError.exit_code)

    success(f"Signed in to {config.endpoint} (profile '{config.profile}').")
    suggest("Connect: tether connect")


def logout_command(ctx: typer.Context) -> None:
    """Remove the stored credential of the active profile.

    Example::

        tether logout
        tether --profile staging logout
    """
    from tether.auth import CredentialStore, LoginModel

    try:
        config = resolve_from_context(ctx)
    except TetherError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    login = LoginModel(CredentialStore(config.profile), config.endpoint)
    if not login.has_credential():
        info(f"Profile '{config.profile}' is not signed in.")
        return
    login.sign_out()
    success(f"Signed out of {config.endpoint}.")


def status_command(ctx: typer.Context) -> None:
    """Show the endpoint, profile and whether a credential is stored.

    Example::

        tether status
        tether status --json
    """
    from tether.auth import CredentialStore, LoginModel

    try:
        config = resolve_from_context(ctx)
    except TetherError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    store = CredentialStore(config.profile)
    login = LoginModel(store, config.endpoint)
    cb = config.callback
    format_data(
        {
            "endpoint": config.endpoint,
            "profile": config.profile,
            "signed_in": login.has_credential(),
            "credential_file": str(store.path),
            "enabled": config.enabled,
            "callback_url": f"http://{cb.public_host}:{cb.port}{cb.path}",
        }
    )
