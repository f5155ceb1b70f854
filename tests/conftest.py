"""Shared test fixtures for tether.

Provides isolated config environments, output state management, in-memory
collaborators for the connection component (a recording notifier and a
fake remote client), a scheduler and a root lifetime that are always torn
down, and small helpers for timing-dependent assertions.
"""

from __future__ import annotations

import socket
import threading
import time
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import pytest

from tether.auth.login import LoginModel
from tether.connection.client import RemoteClient
from tether.models import ConnectionStatus
from tether.notifications import Notice, NoticeKind, Notifier
from tether.output import OutputFormat, OutputManager, reset_output, set_output
from tether.reactive import Lifetime, LifetimeTree
from tether.scheduler import TaskScheduler


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> Iterator[None]:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    Resetting forces a fresh manager to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and credentials to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    and clears all TETHER_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("tether.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["TETHER_ENDPOINT", "TETHER_PROFILE", "TETHER_CALLBACK_PORT"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> Iterator[OutputManager]:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Lifetimes and scheduling
# ---------------------------------------------------------------------------


@pytest.fixture
def tree() -> LifetimeTree:
    return LifetimeTree()


@pytest.fixture
def root(tree: LifetimeTree) -> Iterator[Lifetime]:
    """A root lifetime terminated at teardown, releasing whatever a test leaked."""
    lifetime = tree.create_root("test")
    yield lifetime
    lifetime.terminate()


@pytest.fixture
def scheduler() -> Iterator[TaskScheduler]:
    sched = TaskScheduler(name="test-scheduler")
    yield sched
    sched.close()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Return a poller: ``wait_until(predicate, timeout=2.0) -> bool``."""

    def _wait(predicate: Callable[[], Any], timeout: float = 2.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return bool(predicate())

    return _wait


@pytest.fixture
def free_port() -> int:
    """A TCP port on 127.0.0.1 that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class RecordingNotifier(Notifier):
    """Notifier that keeps every shown notice in order."""

    def __init__(self) -> None:
        self.shown: list[Notice] = []
        self._lock = threading.Lock()

    def show(self, notice: Notice) -> None:
        with self._lock:
            self.shown.append(notice)

    def kinds(self) -> list[NoticeKind]:
        with self._lock:
            return [notice.kind for notice in self.shown]

    def of_kind(self, kind: NoticeKind) -> list[Notice]:
        with self._lock:
            return [notice for notice in self.shown if notice.kind is kind]


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


class FakeRemoteClient(RemoteClient):
    """In-process RemoteClient.

    ``start`` records the call, optionally raises ``error``, and otherwise
    publishes CONNECTED. Terminating the lifetime passed to ``start``
    publishes DISCONNECTED and counts a release.
    """

    def __init__(self, error: Optional[Exception] = None) -> None:
        super().__init__()
        self.error = error
        self.calls: list[tuple[str, Lifetime, bool]] = []
        self.released = 0
        self._lock = threading.Lock()

    @property
    def live_sessions(self) -> int:
        with self._lock:
            return len(self.calls) - self.released

    def start(
        self,
        login: LoginModel,
        endpoint: str,
        lifetime: Lifetime,
        reconnect: bool = True,
    ) -> None:
        if self.error is not None:
            with self._lock:
                self.calls.append((endpoint, lifetime, reconnect))
                self.released += 1
            raise self.error
        with self._lock:
            self.calls.append((endpoint, lifetime, reconnect))
        self.status.set(ConnectionStatus.CONNECTED)
        lifetime.add(self._release)

    def _release(self) -> None:
        with self._lock:
            self.released += 1
        self.status.set(ConnectionStatus.DISCONNECTED)


@pytest.fixture
def fake_client() -> FakeRemoteClient:
    return FakeRemoteClient()
