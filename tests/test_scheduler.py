"""Tests for tether.scheduler -- delayed, lifetime-bound background tasks."""

from __future__ import annotations

import logging
import threading
import time

import pytest

from tether.reactive import Lifetime
from tether.scheduler import TaskScheduler


class TestTaskScheduler:
    def test_runs_task_after_delay(self, scheduler: TaskScheduler, root: Lifetime) -> None:
        ran = threading.Event()
        started = time.monotonic()

        task = scheduler.schedule(root, 0.05, ran.set, name="probe")

        assert ran.wait(2.0)
        assert time.monotonic() - started >= 0.04
        assert task.wait(1.0)
        assert task.done and not task.cancelled

    def test_runs_tasks_in_due_order(self, scheduler: TaskScheduler, root: Lifetime) -> None:
        order: list[str] = []
        done = threading.Event()

        scheduler.schedule(root, 0.10, lambda: (order.append("late"), done.set()))
        scheduler.schedule(root, 0.02, lambda: order.append("early"))

        assert done.wait(2.0)
        assert order == ["early", "late"]

    def test_terminating_lifetime_cancels_pending_task(
        self, scheduler: TaskScheduler, root: Lifetime
    ) -> None:
        ran = threading.Event()
        scope = root.create_child()
        task = scheduler.schedule(scope, 0.2, ran.set)

        scope.terminate()

        assert task.cancelled
        assert task.done
        assert not ran.wait(0.4)

    def test_schedule_on_terminated_lifetime_is_cancelled_immediately(
        self, scheduler: TaskScheduler, root: Lifetime
    ) -> None:
        scope = root.create_child()
        scope.terminate()

        task = scheduler.schedule(scope, 1.0, lambda: None)

        assert task.cancelled

    def test_failing_task_is_logged_and_worker_survives(
        self, scheduler: TaskScheduler, root: Lifetime, caplog: pytest.LogCaptureFixture
    ) -> None:
        ran = threading.Event()

        with caplog.at_level(logging.ERROR, logger="tether.scheduler"):
            failing = scheduler.schedule(root, 0.0, lambda: 1 / 0, name="divide")
            assert failing.wait(2.0)
            scheduler.schedule(root, 0.0, ran.set)
            assert ran.wait(2.0)

        assert "divide" in caplog.text

    def test_close_cancels_queued_tasks(self, root: Lifetime) -> None:
        scheduler = TaskScheduler()
        task = scheduler.schedule(root, 10.0, lambda: None)

        scheduler.close()

        assert task.cancelled
        assert scheduler.closed
        with pytest.raises(RuntimeError, match="closed"):
            scheduler.schedule(root, 0.0, lambda: None)

    def test_close_is_idempotent(self) -> None:
        scheduler = TaskScheduler()
        scheduler.close()
        scheduler.close()
        assert scheduler.closed
