"""The connection component: one object wiring the whole lifecycle together.

:class:`ConnectionComponent` owns a root lifetime and, below it:

* the :attr:`~ConnectionComponent.enabled` flag. While it is true, a
  connect attempt runs; while it is false, a "switched off" notice is shown;
* one attempt lifetime per credential revision, so a completed browser
  sign-in supersedes a failed attempt and reconnects;
* the :class:`~tether.auth.callback_server.AuthCallbackServer` and its
  single pending listener;
* the :class:`~tether.scheduler.TaskScheduler`, unless one is injected.

Closing the component terminates the root lifetime, which releases every
one of them. Hosts (the ``tether`` CLI, an editor plugin, tests) create one
component each; there is no module-level instance.

Example::

    config = resolve_config()
    with ConnectionComponent(config) as component:
        component.enable()
        ...
"""

from __future__ import annotations

import logging
import webbrowser
from typing import Callable, Optional

from tether.auth.callback_server import AuthCallbackServer, PendingServer
from tether.auth.credential_store import CredentialStore, Persistence
from tether.auth.login import LoginModel
from tether.connection.client import HttpRemoteClient, RemoteClient
from tether.connection.state_machine import ConnectionStateMachine
from tether.exceptions import TetherError
from tether.models import TetherConfig
from tether.notifications import ConsoleNotifier, Notifier
from tether.reactive.lifetime import Lifetime, LifetimeTree
from tether.reactive.property import ReactiveFlag
from tether.scheduler import TaskScheduler

logger = logging.getLogger(__name__)


class ConnectionComponent:
    """Enable/disable switch, connect attempts and browser sign-in.

    Args:
        config: Resolved configuration.
        persistence: Credential storage. Defaults to a
            :class:`~tether.auth.credential_store.CredentialStore` for
            ``config.profile``.
        client: Remote connection collaborator. Defaults to
            :class:`~tether.connection.client.HttpRemoteClient`.
        notifier: Defaults to :class:`~tether.notifications.ConsoleNotifier`.
        scheduler: Shared task scheduler. When omitted the component starts
            its own and closes it on :meth:`close`.
        open_browser: Passed to the callback server.
        lifetime: Parent lifetime. When omitted the component is the root
            of a fresh :class:`~tether.reactive.LifetimeTree`.
    """

    def __init__(
        self,
        config: TetherConfig,
        *,
        persistence: Optional[Persistence] = None,
        client: Optional[RemoteClient] = None,
        notifier: Optional[Notifier] = None,
        scheduler: Optional[TaskScheduler] = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
        lifetime: Optional[Lifetime] = None,
    ) -> None:
        self.config = config
        if lifetime is None:
            self.lifetime = LifetimeTree().create_root("component")
        else:
            self.lifetime = lifetime.create_child("component")

        if scheduler is None:
            scheduler = TaskScheduler()
            self.lifetime.add(scheduler.close)
        self.scheduler = scheduler

        if persistence is None:
            persistence = CredentialStore(config.profile)
        self.login = LoginModel(
            persistence,
            config.endpoint,
            login_path=config.login_path,
            return_parameter=config.return_parameter,
        )
        self.client = client if client is not None else HttpRemoteClient(config.connection)
        self.notifier = notifier if notifier is not None else ConsoleNotifier()
        self.machine = ConnectionStateMachine(
            self.client,
            self.login,
            scheduler,
            self.notifier,
            disable=self.disable,
            sign_in=self._sign_in_from_notice,
            connect_delay=config.connection.connect_delay,
            reconnect=config.connection.reconnect,
        )
        self.auth = AuthCallbackServer(
            self.login, self.lifetime, config.callback, open_browser=open_browser
        )
        self._attempt: Optional[Lifetime] = None

        self.enabled = ReactiveFlag(config.enabled, name="enabled")
        self.enabled.when_true(self.lifetime, self._on_enabled)
        self.enabled.when_false(
            self.lifetime, lambda disabled: self.notifier.disconnected(disabled, self.enable)
        )

    @property
    def attempt(self) -> Optional[Lifetime]:
        """Lifetime of the running connect attempt, if any."""
        attempt = self._attempt
        if attempt is not None and attempt.is_alive:
            return attempt
        return None

    @property
    def closed(self) -> bool:
        return not self.lifetime.is_alive

    def enable(self) -> None:
        self.enabled.set(True)

    def disable(self) -> None:
        self.enabled.set(False)

    def authenticate(self, launch_browser: bool = True) -> PendingServer:
        """Start a browser sign-in; see :meth:`AuthCallbackServer.authenticate`."""
        return self.auth.authenticate(launch_browser=launch_browser)

    def sign_out(self) -> None:
        """Forget the credential; a running attempt is replaced by one without it."""
        self.auth.cancel()
        self.login.sign_out()

    def close(self) -> None:
        """Release everything the component owns. Safe to call twice."""
        if self.lifetime.is_alive:
            logger.debug("Closing connection component")
        self.lifetime.terminate()

    def __enter__(self) -> ConnectionComponent:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _on_enabled(self, enabled: Lifetime) -> None:
        logger.info("Integration enabled for %s", self.login.endpoint)
        enabled.add(lambda: logger.info("Integration disabled"))
        self.login.revision.view(enabled, self._start_attempt)

    def _start_attempt(self, attempt: Lifetime, revision: int) -> None:
        logger.debug("Starting connect attempt for credential revision %d", revision)
        self._attempt = attempt
        self.machine.start(attempt)

    def _sign_in_from_notice(self) -> None:
        try:
            pending = self.authenticate()
        except TetherError as exc:
            logger.warning("Sign-in could not start: %s", exc)
            self.notifier.sign_in_failed(exc, self._sign_in_from_notice)
            return
        logger.info("Waiting for the browser sign-in at %s", pending.callback_url)
