"""tether -- keep a local tool connected to its remote service.

The package embeds a connection lifecycle into a host application: an
enable/disable switch drives delayed connect attempts against a remote
endpoint, connection changes become user notices, and a one-shot local HTTP
callback receives the token of a browser sign-in. Every resource lives in a
cascading cancellation scope (a *lifetime*), so switching off or closing
releases it deterministically.

Typical use from a host::

    from tether import ConnectionComponent
    from tether.config import resolve_config

    with ConnectionComponent(resolve_config()) as component:
        component.enable()

The ``tether`` console script drives the same component from a terminal.

Modules:
    app: Typer application and CLI entry point.
    component: :class:`ConnectionComponent`, the object wiring it all.
    reactive: lifetimes and observable properties.
    connection: remote client and connection state machine.
    auth: credential storage, sign-in model and browser callback server.
    scheduler: the background task queue for delayed work.
    notifications: user notices and their console rendering.
    models: Pydantic configuration models and lifecycle enums.
    config: XDG-aware configuration loading and precedence.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"

from tether.component import ConnectionComponent  # noqa: E402

__all__ = ["ConnectionComponent", "__version__"]
