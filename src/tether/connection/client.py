"""Remote connection collaborator.

:class:`RemoteClient` is the interface the
:class:`~tether.connection.state_machine.ConnectionStateMachine` drives:
``start(login, endpoint, lifetime, reconnect)`` plus an observable
:attr:`~RemoteClient.status`. The session it opens lives exactly as long as
*lifetime*.

:class:`HttpRemoteClient` implements it with a bearer-token handshake and a
heartbeat over httpx. It is a liveness probe, not a protocol: a failed
heartbeat flips the status to ``CONNECTING`` and retries with exponential
backoff until the endpoint answers again or the lifetime ends.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from tether.auth.login import LoginModel
from tether.exceptions import ConnectError, MissingCredentialError
from tether.models import ConnectionConfig, ConnectionStatus
from tether.reactive.lifetime import Lifetime
from tether.reactive.property import ReactiveProperty

logger = logging.getLogger(__name__)


class RemoteClient(ABC):
    """A connection to the remote service with an observable status."""

    def __init__(self) -> None:
        self.status: ReactiveProperty[ConnectionStatus] = ReactiveProperty(
            ConnectionStatus.DISCONNECTED, name="connection.status"
        )

    @abstractmethod
    def start(
        self,
        login: LoginModel,
        endpoint: str,
        lifetime: Lifetime,
        reconnect: bool = True,
    ) -> None:
        """Open a session bound to *lifetime*.

        Args:
            login: Supplies the persisted credential.
            endpoint: Base URL of the remote service.
            lifetime: Terminating it closes the session and releases every
                resource the session holds.
            reconnect: Keep retrying after the connection is lost.

        Raises:
            MissingCredentialError: If *login* has no token.
            ConnectError: If the initial handshake fails.
        """
        ...


class _HeartbeatSession:
    def __init__(
        self,
        owner: HttpRemoteClient,
        http: httpx.Client,
        endpoint: str,
        reconnect: bool,
    ) -> None:
        self._owner = owner
        self._http = http
        self._endpoint = endpoint
        self._reconnect = reconnect
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="tether-heartbeat", daemon=True)

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._http.close()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(self._owner.config.request_timeout)
        self._owner._session_stopped(self)
        logger.debug("Session with %s closed", self._endpoint)

    def _run(self) -> None:
        cfg = self._owner.config
        delay = cfg.heartbeat_interval
        failures = 0
        while not self._stopped.wait(delay):
            try:
                self._owner._handshake(self._http, self._endpoint)
                alive = True
            except Exception as exc:
                alive = False
                logger.info("Heartbeat to %s failed: %s", self._endpoint, exc)
            if self._stopped.is_set():
                return

            if alive:
                failures = 0
                delay = cfg.heartbeat_interval
                self._owner._publish(self, ConnectionStatus.CONNECTED)
                continue

            if not self._reconnect:
                self._owner._publish(self, ConnectionStatus.DISCONNECTED)
                return
            failures += 1
            delay = min(cfg.heartbeat_interval * 2 ** (failures - 1), cfg.max_backoff)
            self._owner._publish(self, ConnectionStatus.CONNECTING)
            logger.debug("Reconnecting to %s in %.1fs", self._endpoint, delay)


class HttpRemoteClient(RemoteClient):
    """:class:`RemoteClient` backed by an httpx handshake and heartbeat.

    Args:
        config: Handshake path, heartbeat interval, backoff cap and timeout.
        transport: Optional httpx transport (``httpx.MockTransport`` in
            tests).
    """

    def __init__(
        self,
        config: Optional[ConnectionConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__()
        self.config = config or ConnectionConfig()
        self._transport = transport
        self._lock = threading.Lock()
        self._session: Optional[_HeartbeatSession] = None

    def start(
        self,
        login: LoginModel,
        endpoint: str,
        lifetime: Lifetime,
        reconnect: bool = True,
    ) -> None:
        token = login.token
        if token is None:
            raise MissingCredentialError("No persisted token; sign in first")

        http = httpx.Client(
            base_url=endpoint,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=self.config.request_timeout,
            transport=self._transport,
        )
        try:
            self._handshake(http, endpoint)
        except BaseException:
            http.close()
            raise

        session = _HeartbeatSession(self, http, endpoint, reconnect)
        with self._lock:
            previous, self._session = self._session, session
        if previous is not None:
            previous.stop()
        self.status.set(ConnectionStatus.CONNECTED)
        logger.info("Connected to %s", endpoint)
        session.start()
        lifetime.add(session.stop)

    def _handshake(self, http: httpx.Client, endpoint: str) -> None:
        try:
            response = http.get(self.config.handshake_path)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            if code in (401, 403):
                raise ConnectError(f"Credential rejected by {endpoint} (HTTP {code})") from exc
            raise ConnectError(f"Handshake with {endpoint} failed with status {code}") from exc
        except httpx.HTTPError as exc:
            raise ConnectError(f"Cannot reach {endpoint}: {exc}") from exc

    def _publish(self, session: _HeartbeatSession, status: ConnectionStatus) -> None:
        if session is self._session and not session.stopped:
            self.status.set(status)

    def _session_stopped(self, session: _HeartbeatSession) -> None:
        with self._lock:
            if self._session is not session:
                return
            self._session = None
        self.status.set(ConnectionStatus.DISCONNECTED)
