"""User notices about the connection lifecycle.

A :class:`Notice` is one user-visible message with at most one action (a
callback the user can trigger, such as "Sign in"). A :class:`Notifier`
shows notices. A notice shown for a lifetime expires when that lifetime
terminates: the "reconnecting" notice disappears once the connection is
back, the "switched off" notice once the integration is re-enabled.

:class:`ConsoleNotifier` renders notices through :mod:`tether.output` and
keeps the list of notices that have not expired yet.
"""

from __future__ import annotations

import enum
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from tether.output import OutputManager, get_output
from tether.reactive.lifetime import Lifetime

logger = logging.getLogger(__name__)

Action = Callable[[], Any]


class NoticeKind(str, enum.Enum):
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    NOT_AUTHENTICATED = "not_authenticated"
    SIGN_IN_FAILED = "sign_in_failed"


@dataclass(eq=False)
class Notice:
    """A single notification.

    Attributes:
        kind: Which lifecycle event this notice reports.
        title: Short source label.
        message: Text shown to the user.
        action_label: Label of the action, e.g. ``"Sign in"``.
        action: Callback run by :meth:`invoke`.
        expired: Set once the notice is no longer relevant.
    """

    kind: NoticeKind
    title: str
    message: str
    action_label: Optional[str] = None
    action: Optional[Action] = None
    expired: bool = False

    def invoke(self) -> None:
        """Run the action unless the notice has expired."""
        if self.action is None or self.expired:
            return
        self.action()


class Notifier(ABC):
    """Shows notices; subclasses decide how."""

    title = "tether"

    @abstractmethod
    def show(self, notice: Notice) -> None:
        ...

    def expire(self, notice: Notice) -> None:
        notice.expired = True

    def notify(self, notice: Notice, lifetime: Optional[Lifetime] = None) -> Notice:
        """Show *notice*, expiring it when *lifetime* terminates."""
        self.show(notice)
        if lifetime is not None:
            lifetime.add(lambda: self.expire(notice))
        return notice

    def reconnecting(self, lifetime: Lifetime, disable: Action) -> Notice:
        return self.notify(
            Notice(
                NoticeKind.RECONNECTING,
                self.title,
                "Failed to establish server connection. Will keep trying to reconnect.",
                action_label="Switch off",
                action=disable,
            ),
            lifetime,
        )

    def disconnected(self, lifetime: Lifetime, enable: Action) -> Notice:
        return self.notify(
            Notice(
                NoticeKind.DISCONNECTED,
                self.title,
                "Integration switched off.",
                action_label="Switch on",
                action=enable,
            ),
            lifetime,
        )

    def connected(self) -> Notice:
        return self.notify(Notice(NoticeKind.CONNECTED, self.title, "Signed in"))

    def not_authenticated(self, sign_in: Action) -> Notice:
        return self.notify(
            Notice(
                NoticeKind.NOT_AUTHENTICATED,
                self.title,
                "Not authenticated.",
                action_label="Sign in",
                action=sign_in,
            )
        )

    def sign_in_failed(self, error: Exception, retry: Action) -> Notice:
        return self.notify(
            Notice(
                NoticeKind.SIGN_IN_FAILED,
                self.title,
                f"Sign-in could not start: {error}",
                action_label="Try again",
                action=retry,
            )
        )


class ConsoleNotifier(Notifier):
    """Render notices on stderr through an :class:`~tether.output.OutputManager`.

    At most one notice of each kind is active; showing another expires the
    previous one.

    Args:
        output: Manager to print with. Defaults to the global one at the
            time each notice is shown.
    """

    def __init__(self, output: Optional[OutputManager] = None) -> None:
        self._output = output
        self._lock = threading.Lock()
        self._active: list[Notice] = []

    @property
    def active(self) -> list[Notice]:
        """Notices shown and not yet expired, oldest first."""
        with self._lock:
            return list(self._active)

    def show(self, notice: Notice) -> None:
        # A notice replaces the earlier one of its kind, so notices shown
        # without a lifetime do not pile up over a long session.
        with self._lock:
            superseded = [n for n in self._active if n.kind is notice.kind]
            self._active = [n for n in self._active if n.kind is not notice.kind]
            self._active.append(notice)
        for old in superseded:
            self.expire(old)
        out = self._output or get_output()
        text = f"[{notice.title}] {notice.message}"
        if notice.kind is NoticeKind.CONNECTED:
            out.success(text)
        elif notice.kind is NoticeKind.SIGN_IN_FAILED:
            out.error(text)
        elif notice.kind in (NoticeKind.RECONNECTING, NoticeKind.NOT_AUTHENTICATED):
            out.warning(text)
        else:
            out.info(text)
        if notice.action_label:
            out.suggest(notice.action_label)

    def expire(self, notice: Notice) -> None:
        super().expire(notice)
        with self._lock:
            if notice in self._active:
                self._active.remove(notice)
        logger.debug("Notice expired: %s", notice.kind.value)
