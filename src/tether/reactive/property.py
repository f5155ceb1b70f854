"""Observable values whose subscriptions are scoped by lifetimes.

:class:`ReactiveProperty` holds a single value and notifies subscribers on
every change. Subscribers come in two flavours:

* :meth:`ReactiveProperty.view` -- the handler receives a child lifetime
  that stays alive exactly as long as the property keeps the value it was
  called with. Resources registered on it are released on the next change.
* :meth:`ReactiveProperty.advise` -- a plain ``handler(value)`` callback.

Both fire immediately on registration with the current value, and both stop
when the lifetime passed at registration terminates.

Notifications are synchronous with the mutation. A change first terminates
every per-value lifetime of the old value and only then runs the handlers for
the new value. A mutation issued from inside a handler on the same thread is
queued and applied once the current mutation has finished notifying. A
mutation from another thread blocks until then, so no two mutations ever
interleave their handler runs.

:class:`ReactiveFlag` adds :meth:`~ReactiveFlag.when_true` and
:meth:`~ReactiveFlag.when_false` on top of ``view``.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Generic, Optional, TypeVar

from tether.exceptions import ParentAlreadyTerminatedError
from tether.reactive.lifetime import Lifetime

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Subscription(Generic[T]):
    def __init__(
        self,
        owner: str,
        lifetime: Lifetime,
        handler: Callable[..., Any],
        accept: Optional[Callable[[T], bool]],
        scoped: bool,
    ) -> None:
        self.owner = owner
        self.lifetime = lifetime
        self.handler = handler
        self.accept = accept
        self.scoped = scoped
        self._value_lifetime: Optional[Lifetime] = None

    def release(self) -> None:
        value_lifetime, self._value_lifetime = self._value_lifetime, None
        if value_lifetime is not None:
            value_lifetime.terminate()

    def fire(self, value: T) -> None:
        if self.accept is not None and not self.accept(value):
            return
        if not self.lifetime.is_alive:
            return
        try:
            if self.scoped:
                try:
                    value_lifetime = self.lifetime.create_child(f"{self.owner}={value!r}")
                except ParentAlreadyTerminatedError:
                    # Owner began terminating between the check and here.
                    return
                self._value_lifetime = value_lifetime
                self.handler(value_lifetime, value)
            else:
                self.handler(value)
        except Exception:
            logger.exception("Subscriber of '%s' failed on value %r", self.owner, value)


class ReactiveProperty(Generic[T]):
    """A value with lifetime-scoped change subscriptions.

    Args:
        value: Initial value.
        name: Label used in logs and in the names of per-value lifetimes.
    """

    def __init__(self, value: T, name: str = "property") -> None:
        self._value = value
        self._name = name
        self._lock = threading.RLock()
        self._pending: deque[T] = deque()
        self._applying = False
        self._subscriptions: list[_Subscription[T]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, value: T) -> None:
        self.set(value)

    def set(self, value: T) -> None:
        """Change the value and notify subscribers.

        Setting the current value again is a no-op.
        """
        with self._lock:
            self._pending.append(value)
            if self._applying:
                logger.debug("Deferring reentrant update of '%s' to %r", self._name, value)
                return
            self._applying = True
            try:
                while self._pending:
                    self._apply(self._pending.popleft())
            finally:
                self._applying = False

    def view(
        self,
        lifetime: Lifetime,
        handler: Callable[[Lifetime, T], Any],
        accept: Optional[Callable[[T], bool]] = None,
    ) -> None:
        """Call ``handler(value_lifetime, value)`` for the current and every later value.

        Args:
            lifetime: Subscription scope. Terminating it unsubscribes and
                terminates the current per-value lifetime.
            handler: Receives a child of *lifetime* that is terminated when
                the value changes.
            accept: Optional filter; rejected values do not call *handler*.
        """
        self._subscribe(_Subscription(self._name, lifetime, handler, accept, scoped=True))

    def advise(self, lifetime: Lifetime, handler: Callable[[T], Any]) -> None:
        """Call ``handler(value)`` for the current and every later value."""
        self._subscribe(_Subscription(self._name, lifetime, handler, None, scoped=False))

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _subscribe(self, subscription: _Subscription[T]) -> None:
        with self._lock:
            self._subscriptions.append(subscription)
            subscription.lifetime.add(lambda: self._unsubscribe(subscription))
            subscription.fire(self._value)

    def _unsubscribe(self, subscription: _Subscription[T]) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _apply(self, value: T) -> None:
        if value == self._value:
            return
        logger.debug("'%s' changed: %r -> %r", self._name, self._value, value)
        self._value = value
        subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.release()
        for subscription in subscriptions:
            subscription.fire(value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, value={self._value!r})"


class ReactiveFlag(ReactiveProperty[bool]):
    """Observable boolean with scoped true/false callbacks.

    Example::

        enabled = ReactiveFlag(False, name="enabled")
        enabled.when_true(root, lambda lt: lt.add(lambda: print("stopped")))
        enabled.value = True   # callback runs now
        enabled.value = False  # prints "stopped"
    """

    def __init__(self, value: bool = False, name: str = "flag") -> None:
        super().__init__(bool(value), name)

    def set(self, value: bool) -> None:
        super().set(bool(value))

    def when_true(self, lifetime: Lifetime, callback: Callable[[Lifetime], Any]) -> None:
        """Run *callback* with a lifetime that lasts while the flag is true."""
        self.view(lifetime, lambda value_lifetime, _: callback(value_lifetime), accept=bool)

    def when_false(self, lifetime: Lifetime, callback: Callable[[Lifetime], Any]) -> None:
        """Run *callback* with a lifetime that lasts while the flag is false."""
        self.view(
            lifetime,
            lambda value_lifetime, _: callback(value_lifetime),
            accept=lambda value: not value,
        )
