"""Connection lifecycle state machine.

::

    UNINITIALIZED --start--> (delay) --credential?--no--> UNAUTHENTICATED
                                          |
                                         yes
                                          v
                                      CONNECTING --handshake ok--> CONNECTED
                                          |                         ^   |
                                   handshake failed                 |   | connection lost
                                          v                         |   v
                                    UNAUTHENTICATED                CONNECTING

    any state --owning lifetime terminated--> STOPPED

:meth:`ConnectionStateMachine.start` has no counterpart ``stop``: the
attempt ends when the lifetime passed to ``start`` terminates, which cancels
the delayed task and closes the client session.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from tether.auth.login import LoginModel
from tether.connection.client import RemoteClient
from tether.exceptions import ConnectError, MissingCredentialError, TetherError
from tether.models import ConnectionStatus, LifecycleState
from tether.notifications import Notifier
from tether.reactive.lifetime import Lifetime
from tether.reactive.property import ReactiveProperty
from tether.scheduler import ScheduledTask, TaskScheduler

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_DELAY = 0.1


class ConnectionStateMachine:
    """Drive connect attempts and report connection changes.

    Args:
        client: Remote connection collaborator.
        login: Supplies the endpoint and the persisted credential.
        scheduler: Runs the delayed connect attempt.
        notifier: Receives "connected", "reconnecting" and "not
            authenticated" notices.
        disable: Action attached to the "reconnecting" notice.
        sign_in: Action attached to the "not authenticated" notice.
        connect_delay: Seconds between :meth:`start` and the attempt.
        reconnect: Passed to :meth:`RemoteClient.start`.
    """

    def __init__(
        self,
        client: RemoteClient,
        login: LoginModel,
        scheduler: TaskScheduler,
        notifier: Notifier,
        disable: Callable[[], Any],
        sign_in: Callable[[], Any],
        connect_delay: float = DEFAULT_CONNECT_DELAY,
        reconnect: bool = True,
    ) -> None:
        self.client = client
        self.login = login
        self.connect_delay = connect_delay
        self.reconnect = reconnect
        self.state: ReactiveProperty[LifecycleState] = ReactiveProperty(
            LifecycleState.UNINITIALIZED, name="lifecycle"
        )
        self.last_error: Optional[TetherError] = None
        self._scheduler = scheduler
        self._notifier = notifier
        self._disable = disable
        self._sign_in = sign_in

    def start(self, lifetime: Lifetime) -> ScheduledTask:
        """Schedule a connect attempt that lives as long as *lifetime*."""
        lifetime.add(lambda: self.state.set(LifecycleState.STOPPED))
        logger.debug("Connect attempt in %.2fs (%s)", self.connect_delay, lifetime.name)
        return self._scheduler.schedule(
            lifetime, self.connect_delay, lambda: self._connect(lifetime), name="connect"
        )

    def _connect(self, lifetime: Lifetime) -> None:
        if not lifetime.is_alive:
            return
        if not self.login.has_credential():
            self._fail(lifetime, MissingCredentialError("No persisted credential"))
            return

        self.state.set(LifecycleState.CONNECTING)
        try:
            self.client.start(self.login, self.login.endpoint, lifetime, self.reconnect)
            self.client.status.view(lifetime, self._on_status)
        except TetherError as exc:
            self._fail(lifetime, exc)
        except Exception as exc:
            # Any failure of the attempt reads as "not authenticated".
            logger.debug("Unexpected connect failure", exc_info=True)
            self._fail(lifetime, ConnectError(f"Connect attempt failed: {exc}"))

    def _on_status(self, status_lifetime: Lifetime, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.CONNECTED:
            self.last_error = None
            self.state.set(LifecycleState.CONNECTED)
            self._notifier.connected()
        elif status is ConnectionStatus.CONNECTING:
            self.state.set(LifecycleState.CONNECTING)
            self._notifier.reconnecting(status_lifetime, self._disable)
        else:
            self.state.set(LifecycleState.DISCONNECTED)

    def _fail(self, lifetime: Lifetime, exc: TetherError) -> None:
        if not lifetime.is_alive:
            logger.debug("Ignoring failure of a cancelled attempt: %s", exc)
            return
        logger.warning("Not authenticated: %s", exc)
        self.last_error = exc
        self.state.set(LifecycleState.UNAUTHENTICATED)
        self._notifier.not_authenticated(self._sign_in)
