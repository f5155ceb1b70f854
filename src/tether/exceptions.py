"""Exception hierarchy for tether.

All exceptions inherit from :class:`TetherError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`tether.exit_codes`.
The CLI entry point :func:`tether.app.main` catches ``TetherError`` and
exits with the appropriate code. Inside the embedded component these errors
never reach the host unobserved: background failures are converted into
user notices or into a terminated lifetime.

Subclass hierarchy::

    TetherError (exit 1)
    +-- InvalidUsageError            (exit 2)
    +-- ConfigError                  (exit 1)
    +-- AuthError                    (exit 3)
    |   +-- MissingCredentialError
    |   +-- MissingTokenError
    +-- ConnectError                 (exit 6)
    +-- PortBindError                (exit 8)
    +-- BrowserLaunchError           (exit 9)
    +-- LifetimeError                (exit 1)
        +-- ParentAlreadyTerminatedError
"""

from __future__ import annotations

from tether.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_BROWSER_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PORT_BIND_ERROR,
)


class TetherError(Exception):
    """Base exception for all tether errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`tether.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(TetherError):
    """Raised for invalid CLI arguments or configuration keys."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(TetherError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class AuthError(TetherError):
    """Raised when signing in fails or no usable credential exists."""

    exit_code = EXIT_AUTH_FAILURE


class MissingCredentialError(AuthError):
    """Raised when no persisted token is available at connect time.

    Surfaced to the user as a "not authenticated" notice, never fatal.
    """


class MissingTokenError(AuthError):
    """Raised when the auth callback is invoked without a token parameter.

    The callback server answers with :attr:`http_status` and keeps the
    pending listener alive so the same link can be retried.
    """

    http_status = 400


class ConnectError(TetherError):
    """Raised when the handshake with the remote endpoint fails.

    Covers timeouts, refused connections, DNS failures and rejected
    credentials alike.
    """

    exit_code = EXIT_CONNECTION_ERROR


class PortBindError(TetherError):
    """Raised when the local callback listener cannot bind its port.

    Fatal to the authenticate() attempt that raised it, not to the process.
    """

    exit_code = EXIT_PORT_BIND_ERROR


class BrowserLaunchError(TetherError):
    """Raised when the system browser cannot be opened for sign-in.

    Args:
        message: Human-readable error description.
        url: The sign-in URL the user can open by hand.
    """

    exit_code = EXIT_BROWSER_ERROR

    def __init__(self, message: str, url: str):
        super().__init__(message)
        self.url = url


class LifetimeError(TetherError):
    """Base class for misuse of the lifetime tree."""


class ParentAlreadyTerminatedError(LifetimeError):
    """Raised when creating a child of a terminated (or terminating) lifetime."""
