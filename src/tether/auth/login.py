"""Sign-in state for one remote endpoint.

:class:`LoginModel` ties together the endpoint URL, the persisted credential
and the browser sign-in URL. Its :attr:`~LoginModel.signed_in` flag follows
the stored token. :attr:`~LoginModel.revision` changes on every sign-in and
sign-out, even when a new token replaces an old one, so the connection
component restarts its connect attempt as soon as a browser sign-in
completes.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

from tether.auth.credential_store import Persistence
from tether.exceptions import AuthError
from tether.reactive.property import ReactiveFlag, ReactiveProperty

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
SECRET_KEY = "secret"


class LoginModel:
    """Persisted credential accessor and sign-in entry point.

    Args:
        persistence: Key/value store holding the ``"token"`` key.
        endpoint: Base URL of the remote service.
        login_path: Path of the sign-in page below *endpoint*.
        return_parameter: Query parameter naming the callback URL the
            sign-in page redirects to.
    """

    def __init__(
        self,
        persistence: Persistence,
        endpoint: str,
        login_path: str = "/login",
        return_parameter: str = "returnTo",
    ) -> None:
        self._persistence = persistence
        self._endpoint = endpoint.rstrip("/")
        self._login_path = "/" + login_path.lstrip("/")
        self._return_parameter = return_parameter
        self.signed_in = ReactiveFlag(self.has_credential(), name="signed_in")
        self.revision: ReactiveProperty[int] = ReactiveProperty(0, name="credential.revision")

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def persistence(self) -> Persistence:
        return self._persistence

    @property
    def token(self) -> Optional[str]:
        """The persisted token, or ``None`` when missing or empty."""
        return self._persistence.get(TOKEN_KEY) or None

    def has_credential(self) -> bool:
        """``True`` if a non-empty token is persisted."""
        return self.token is not None

    def sign_in(self, token: str, secret: str) -> None:
        """Persist *token* (and *secret*, when non-empty) and mark the session signed in.

        Raises:
            AuthError: If *token* is empty.
        """
        if not token:
            raise AuthError("Cannot sign in with an empty token")
        self._persistence.set(TOKEN_KEY, token)
        if secret:
            self._persistence.set(SECRET_KEY, secret)
        logger.info("Signed in to %s", self._endpoint)
        self.signed_in.set(True)
        self._bump()

    def sign_out(self) -> None:
        """Forget the persisted credential."""
        self._persistence.remove(TOKEN_KEY)
        self._persistence.remove(SECRET_KEY)
        logger.info("Signed out of %s", self._endpoint)
        self.signed_in.set(False)
        self._bump()

    def _bump(self) -> None:
        self.revision.set(self.revision.value + 1)

    def login_url(self, return_to: str) -> str:
        """Build the browser sign-in URL that redirects back to *return_to*.

        Example::

            login = LoginModel(MemoryPersistence(), "http://localhost:8000")
            login.login_url("http://localhost:8080/auth")
            # 'http://localhost:8000/login?returnTo=http%3A%2F%2Flocalhost%3A8080%2Fauth'
        """
        query = urlencode({self._return_parameter: return_to})
        return f"{self._endpoint}{self._login_path}?{query}"
