"""Sign-in support for tether.

- :class:`LoginModel` -- endpoint, persisted token and sign-in URL.
- :class:`AuthCallbackServer` -- browser sign-in with a one-shot local
  callback listener.
- :class:`Persistence`, :class:`CredentialStore`, :class:`MemoryPersistence`
  -- key/value credential storage.

Typical usage::

    from tether.auth import AuthCallbackServer, CredentialStore, LoginModel

    login = LoginModel(CredentialStore("default"), "https://tether.example.com")
    server = AuthCallbackServer(login, root_lifetime)
    pending = server.authenticate()
    pending.wait(timeout=120)
"""

from tether.auth.callback_server import AuthCallbackServer, PendingServer
from tether.auth.credential_store import CredentialStore, MemoryPersistence, Persistence
from tether.auth.login import LoginModel

__all__ = [
    "AuthCallbackServer",
    "CredentialStore",
    "LoginModel",
    "MemoryPersistence",
    "PendingServer",
    "Persistence",
]
