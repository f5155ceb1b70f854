"""Single background task queue for delayed, lifetime-bound work.

:class:`TaskScheduler` runs every task on one daemon thread, in due-time
order. Each task is bound to a :class:`~tether.reactive.Lifetime`:
terminating the lifetime cancels the task if it has not started yet. A task
that raises is logged; exceptions never escape the worker thread unobserved.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from typing import Any, Callable, Optional

from tether.reactive.lifetime import Lifetime

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for one scheduled call."""

    def __init__(self, fn: Callable[[], Any], name: str) -> None:
        self._fn = fn
        self.name = name
        self._lock = threading.Lock()
        self._state = "pending"
        self._done = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._state == "cancelled"

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> bool:
        """Cancel the task if it has not started.

        Returns:
            ``True`` if the task will not run.
        """
        with self._lock:
            if self._state == "pending":
                self._state = "cancelled"
                self._done.set()
            return self._state == "cancelled"

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the task has run or was cancelled."""
        return self._done.wait(timeout)

    def run(self) -> None:
        with self._lock:
            if self._state != "pending":
                return
            self._state = "running"
        try:
            self._fn()
        except Exception:
            logger.exception("Scheduled task '%s' failed", self.name)
        finally:
            self._state = "finished"
            self._done.set()


class TaskScheduler:
    """Run delayed tasks on a single background thread.

    The worker thread is started lazily on the first :meth:`schedule` call
    and stopped by :meth:`close`. Tasks still queued at close are cancelled.

    Args:
        name: Name of the worker thread.
    """

    def __init__(self, name: str = "tether-scheduler") -> None:
        self._name = name
        self._cond = threading.Condition()
        self._queue: list[tuple[float, int, ScheduledTask]] = []
        self._counter = itertools.count()
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(
        self,
        lifetime: Lifetime,
        delay: float,
        fn: Callable[[], Any],
        name: Optional[str] = None,
    ) -> ScheduledTask:
        """Run *fn* after *delay* seconds unless *lifetime* ends first.

        Args:
            lifetime: Scope of the task; its termination cancels the task.
            delay: Seconds to wait before running.
            fn: Zero-argument callable.
            name: Label for logs.

        Returns:
            The :class:`ScheduledTask` handle.

        Raises:
            RuntimeError: If the scheduler has been closed.
        """
        task = ScheduledTask(fn, name or getattr(fn, "__name__", "task"))
        with self._cond:
            if self._closed:
                raise RuntimeError("Scheduler is closed")
            heapq.heappush(
                self._queue, (time.monotonic() + max(delay, 0.0), next(self._counter), task)
            )
            self._ensure_worker()
            self._cond.notify()
        lifetime.add(task.cancel)
        return task

    def close(self, timeout: float = 5.0) -> None:
        """Stop the worker thread and cancel queued tasks. Idempotent."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            pending = [task for _, _, task in self._queue]
            self._queue.clear()
            self._cond.notify_all()
        for task in pending:
            task.cancel()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _ensure_worker(self) -> None:
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._closed:
                    if self._queue:
                        remaining = self._queue[0][0] - time.monotonic()
                        if remaining <= 0:
                            break
                        self._cond.wait(remaining)
                    else:
                        self._cond.wait()
                if self._closed:
                    return
                _, _, task = heapq.heappop(self._queue)
            task.run()
