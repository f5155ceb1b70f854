"""Cascading cancellation scopes ("lifetimes").

A :class:`Lifetime` owns cleanup actions and child lifetimes. Terminating it
first terminates every child (newest first, depth-first), then runs its own
cleanup actions in reverse registration order. Termination is one-way and
idempotent::

    ACTIVE -> TERMINATING -> TERMINATED

Lifetimes are nodes of a :class:`LifetimeTree` arena keyed by integer ids.
The tree is walked explicitly on termination, so the order in which
resources are released is deterministic and can be asserted in tests.
:class:`Lifetime` objects are lightweight handles into that arena.

:class:`SequentialLifetimes` hands out one child lifetime at a time and
terminates the previous one before creating the next. It is the only mutual
exclusion mechanism around the auth callback port.

Example::

    tree = LifetimeTree()
    root = tree.create_root("component")
    child = root.create_child("attempt")
    child.add(lambda: print("released"))
    root.terminate()  # prints "released"
"""

from __future__ import annotations

import enum
import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from tether.exceptions import ParentAlreadyTerminatedError

logger = logging.getLogger(__name__)

Action = Callable[[], Any]


class LifetimeState(str, enum.Enum):
    """State of a single lifetime node."""

    ACTIVE = "active"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


@dataclass
class _Node:
    handle: Lifetime
    parent: Optional[int]
    state: LifetimeState = LifetimeState.ACTIVE
    cleanups: list[Action] = field(default_factory=list)
    children: list[int] = field(default_factory=list)
    terminating_thread: Optional[int] = None


class LifetimeTree:
    """Arena holding every live lifetime node.

    Terminated nodes are removed from the arena and detached from their
    parent, so :meth:`__len__` counts only live lifetimes. Tests use it to
    check that a disable or cancel released everything.

    Cleanup actions run outside the arena lock, which lets them block on
    other threads that touch the same tree (joining a heartbeat thread,
    shutting down an HTTP listener).
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: dict[int, _Node] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def create_root(self, name: str = "root") -> Lifetime:
        """Create a lifetime without a parent."""
        with self._lock:
            return self._register(None, name)

    def create_child(self, parent: Lifetime, name: Optional[str] = None) -> Lifetime:
        """Create a child of *parent*.

        Raises:
            ParentAlreadyTerminatedError: If *parent* is terminating or
                terminated.
        """
        with self._lock:
            node = self._nodes.get(parent.id)
            if node is None or node.state is not LifetimeState.ACTIVE:
                raise ParentAlreadyTerminatedError(
                    f"Lifetime '{parent.name}' is already terminated"
                )
            child = self._register(parent.id, name or f"{parent.name}/{len(node.children)}")
            node.children.append(child.id)
            return child

    def add_cleanup(self, lifetime: Lifetime, action: Action) -> None:
        """Register *action* to run when *lifetime* terminates.

        If the lifetime is already terminating or terminated the action runs
        immediately, so a resource acquired late is still released.
        """
        with self._lock:
            node = self._nodes.get(lifetime.id)
            if node is not None and node.state is LifetimeState.ACTIVE:
                node.cleanups.append(action)
                return
        _run_cleanup(lifetime, action)

    def state_of(self, lifetime: Lifetime) -> LifetimeState:
        with self._lock:
            node = self._nodes.get(lifetime.id)
            return node.state if node is not None else LifetimeState.TERMINATED

    def terminate(self, lifetime: Lifetime) -> None:
        """Terminate *lifetime* and all of its descendants.

        Second and later calls are no-ops. If another thread is already
        terminating the same lifetime, this call returns without waiting;
        use :meth:`wait_terminated` when the release must have happened.
        """
        with self._lock:
            node = self._nodes.get(lifetime.id)
            if node is None or node.state is not LifetimeState.ACTIVE:
                return
            node.state = LifetimeState.TERMINATING
            node.terminating_thread = threading.get_ident()
        self._walk(node)

    def wait_terminated(self, lifetime: Lifetime, timeout: Optional[float] = None) -> bool:
        """Block until a lifetime whose termination has begun is terminated.

        Returns ``False`` at once when the calling thread is the one running
        that termination (waiting there would never finish) or on timeout.
        """
        with self._lock:
            node = self._nodes.get(lifetime.id)
            if node is not None and node.terminating_thread == threading.get_ident():
                return False
        return lifetime.wait(timeout)

    def _walk(self, node: _Node) -> None:
        with self._lock:
            # No child can be added once the node left ACTIVE.
            children = [self._nodes[c] for c in reversed(node.children) if c in self._nodes]

        for child in children:
            self.terminate(child.handle)
            # A child terminated concurrently by another thread must be gone
            # before our own cleanups run.
            self.wait_terminated(child.handle)

        with self._lock:
            actions, node.cleanups = node.cleanups, []

        for action in reversed(actions):
            _run_cleanup(node.handle, action)

        with self._lock:
            node.state = LifetimeState.TERMINATED
            self._nodes.pop(node.handle.id, None)
            if node.parent is not None:
                parent = self._nodes.get(node.parent)
                if parent is not None and node.handle.id in parent.children:
                    parent.children.remove(node.handle.id)
        node.handle._terminated.set()
        logger.debug("Lifetime '%s' terminated", node.handle.name)

    def _register(self, parent_id: Optional[int], name: str) -> Lifetime:
        handle = Lifetime(self, next(self._ids), name)
        self._nodes[handle.id] = _Node(handle=handle, parent=parent_id)
        return handle


def _run_cleanup(lifetime: Lifetime, action: Action) -> None:
    try:
        action()
    except Exception:
        logger.exception("Cleanup action failed while terminating lifetime '%s'", lifetime.name)


class Lifetime:
    """Handle to one node of a :class:`LifetimeTree`.

    Usable as a context manager; leaving the ``with`` block terminates it.
    """

    __slots__ = ("_tree", "_id", "_name", "_terminated")

    def __init__(self, tree: LifetimeTree, lifetime_id: int, name: str) -> None:
        self._tree = tree
        self._id = lifetime_id
        self._name = name
        self._terminated = threading.Event()

    @property
    def id(self) -> int:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def tree(self) -> LifetimeTree:
        return self._tree

    @property
    def state(self) -> LifetimeState:
        return self._tree.state_of(self)

    @property
    def is_alive(self) -> bool:
        """``True`` until termination has begun."""
        return self.state is LifetimeState.ACTIVE

    def create_child(self, name: Optional[str] = None) -> Lifetime:
        return self._tree.create_child(self, name)

    def add(self, action: Action) -> None:
        """Register a cleanup action (see :meth:`LifetimeTree.add_cleanup`)."""
        self._tree.add_cleanup(self, action)

    def terminate(self) -> None:
        self._tree.terminate(self)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until termination has completed.

        Returns:
            ``True`` if the lifetime is terminated, ``False`` on timeout.
        """
        return self._terminated.wait(timeout)

    def __enter__(self) -> Lifetime:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.terminate()

    def __repr__(self) -> str:
        return f"Lifetime(id={self._id}, name={self._name!r}, state={self.state.value})"


class SequentialLifetimes:
    """Produce child lifetimes of *parent*, at most one alive at a time.

    :meth:`next` terminates the previously issued lifetime under a mutex and
    does not create the new one until every cleanup of the previous one has
    finished, even when another thread started that termination (a callback
    request thread finishing a sign-in, for instance). Called from inside
    that termination, it does not wait.

    Args:
        parent: Lifetime that owns every issued child.
        name: Prefix for the names of issued lifetimes.
    """

    def __init__(self, parent: Lifetime, name: str = "sequential") -> None:
        self._parent = parent
        self._name = name
        self._lock = threading.Lock()
        self._current: Optional[Lifetime] = None
        self._issued = 0

    @property
    def current(self) -> Optional[Lifetime]:
        """The most recently issued lifetime if it is still alive."""
        current = self._current
        if current is not None and current.is_alive:
            return current
        return None

    def next(self) -> Lifetime:
        """Terminate the current lifetime and return a fresh one.

        Raises:
            ParentAlreadyTerminatedError: If the parent is terminated.
        """
        with self._lock:
            self._release_current()
            self._issued += 1
            self._current = self._parent.create_child(f"{self._name}#{self._issued}")
            return self._current

    def terminate_current(self) -> None:
        with self._lock:
            self._release_current()
            self._current = None

    def _release_current(self) -> None:
        current = self._current
        if current is not None:
            current.terminate()
            current.tree.wait_terminated(current)
