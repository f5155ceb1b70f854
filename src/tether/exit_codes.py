"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~tether.exceptions.TetherError` subclass. Shell
wrappers can inspect the exit code of ``tether login`` or ``tether connect``
to learn why it failed without parsing stderr.

Example::

    $ tether login --timeout 30
    $ echo $?
    8   # EXIT_PORT_BIND_ERROR -- the callback port is already taken
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or no credential is available."""

EXIT_CONNECTION_ERROR = 6
"""The remote endpoint could not be reached or rejected the handshake."""

EXIT_PORT_BIND_ERROR = 8
"""The local callback listener could not bind its port."""

EXIT_BROWSER_ERROR = 9
"""The system browser could not be launched."""

EXIT_INTERRUPTED = 130
"""The command was cancelled with Ctrl-C."""
