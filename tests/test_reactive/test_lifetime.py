"""Tests for tether.reactive.lifetime -- scope tree and sequential lifetimes."""

from __future__ import annotations

import logging
import threading
import time

import pytest

from tether.exceptions import LifetimeError, ParentAlreadyTerminatedError
from tether.reactive import Lifetime, LifetimeState, LifetimeTree, SequentialLifetimes


# ---------------------------------------------------------------------------
# Termination order
# ---------------------------------------------------------------------------


class TestTermination:
    def test_cleanups_run_in_reverse_registration_order(self, root: Lifetime) -> None:
        calls: list[str] = []
        lt = root.create_child("scope")
        lt.add(lambda: calls.append("first"))
        lt.add(lambda: calls.append("second"))
        lt.add(lambda: calls.append("third"))

        lt.terminate()

        assert calls == ["third", "second", "first"]

    def test_children_terminate_before_parent_cleanups(self, root: Lifetime) -> None:
        calls: list[str] = []
        parent = root.create_child("parent")
        parent.add(lambda: calls.append("parent"))
        older = parent.create_child("older")
        older.add(lambda: calls.append("older"))
        newer = parent.create_child("newer")
        newer.add(lambda: calls.append("newer"))
        grandchild = older.create_child("grandchild")
        grandchild.add(lambda: calls.append("grandchild"))

        parent.terminate()

        assert calls == ["newer", "grandchild", "older", "parent"]
        assert not grandchild.is_alive

    def test_terminate_is_idempotent(self, root: Lifetime) -> None:
        calls: list[int] = []
        lt = root.create_child()
        lt.add(lambda: calls.append(1))

        lt.terminate()
        lt.terminate()
        root.terminate()

        assert calls == [1]

    def test_state_moves_through_terminating(self, root: Lifetime) -> None:
        seen: list[LifetimeState] = []
        lt = root.create_child()
        lt.add(lambda: seen.append(lt.state))

        assert lt.state is LifetimeState.ACTIVE
        lt.terminate()

        assert seen == [LifetimeState.TERMINATING]
        assert lt.state is LifetimeState.TERMINATED

    def test_failing_cleanup_is_logged_and_others_still_run(
        self, root: Lifetime, caplog: pytest.LogCaptureFixture
    ) -> None:
        calls: list[str] = []
        lt = root.create_child("flaky")
        lt.add(lambda: calls.append("after"))
        lt.add(lambda: 1 / 0)
        lt.add(lambda: calls.append("before"))

        with caplog.at_level(logging.ERROR, logger="tether.reactive.lifetime"):
            lt.terminate()

        assert calls == ["before", "after"]
        assert "flaky" in caplog.text
        assert lt.state is LifetimeState.TERMINATED


# ---------------------------------------------------------------------------
# Registration on terminated lifetimes
# ---------------------------------------------------------------------------


class TestTerminatedLifetime:
    def test_create_child_of_terminated_raises(self, root: Lifetime) -> None:
        lt = root.create_child("gone")
        lt.terminate()

        with pytest.raises(ParentAlreadyTerminatedError, match="gone"):
            lt.create_child()

    def test_create_child_while_terminating_raises(self, root: Lifetime) -> None:
        errors: list[Exception] = []
        lt = root.create_child()

        def _late_child() -> None:
            try:
                lt.create_child()
            except LifetimeError as exc:
                errors.append(exc)

        lt.add(_late_child)
        lt.terminate()

        assert len(errors) == 1
        assert isinstance(errors[0], ParentAlreadyTerminatedError)

    def test_add_after_termination_runs_immediately(self, root: Lifetime) -> None:
        calls: list[str] = []
        lt = root.create_child()
        lt.terminate()

        lt.add(lambda: calls.append("late"))

        assert calls == ["late"]

    def test_add_during_termination_runs_immediately(self, root: Lifetime) -> None:
        calls: list[str] = []
        lt = root.create_child()
        lt.add(lambda: lt.add(lambda: calls.append("nested")))

        lt.terminate()

        assert calls == ["nested"]


# ---------------------------------------------------------------------------
# Arena bookkeeping and handle helpers
# ---------------------------------------------------------------------------


class TestTreeAndHandle:
    def test_len_counts_live_lifetimes(self, tree: LifetimeTree) -> None:
        top = tree.create_root("top")
        a = top.create_child("a")
        a.create_child("a1")
        top.create_child("b")
        assert len(tree) == 4

        a.terminate()
        assert len(tree) == 2

        top.terminate()
        assert len(tree) == 0

    def test_context_manager_terminates_on_exit(self, root: Lifetime) -> None:
        with root.create_child("block") as lt:
            assert lt.is_alive
        assert not lt.is_alive

    def test_context_manager_terminates_on_error(self, root: Lifetime) -> None:
        calls: list[str] = []
        with pytest.raises(ValueError):
            with root.create_child() as lt:
                lt.add(lambda: calls.append("released"))
                raise ValueError("boom")
        assert calls == ["released"]

    def test_wait_returns_after_termination(self, root: Lifetime) -> None:
        lt = root.create_child()
        assert lt.wait(0.01) is False

        timer = threading.Timer(0.05, lt.terminate)
        timer.start()
        try:
            assert lt.wait(2.0) is True
        finally:
            timer.cancel()

    def test_default_child_names_derive_from_parent(self, tree: LifetimeTree) -> None:
        top = tree.create_root("component")
        child = top.create_child()
        assert child.name == "component/0"
        assert "component/0" in repr(child)
        top.terminate()


# ---------------------------------------------------------------------------
# SequentialLifetimes
# ---------------------------------------------------------------------------


class TestSequentialLifetimes:
    def test_next_terminates_previous_first(self, root: Lifetime) -> None:
        calls: list[str] = []
        seq = SequentialLifetimes(root, name="auth")

        first = seq.next()
        first.add(lambda: calls.append("first released"))
        second = seq.next()
        calls.append("second issued")

        assert calls == ["first released", "second issued"]
        assert not first.is_alive
        assert second.is_alive
        assert (first.name, second.name) == ("auth#1", "auth#2")

    def test_current_and_terminate_current(self, root: Lifetime) -> None:
        seq = SequentialLifetimes(root)
        assert seq.current is None

        lt = seq.next()
        assert seq.current is lt

        seq.terminate_current()
        assert seq.current is None
        assert not lt.is_alive

    def test_current_is_none_after_external_termination(self, root: Lifetime) -> None:
        seq = SequentialLifetimes(root)
        lt = seq.next()
        lt.terminate()
        assert seq.current is None

    def test_next_after_parent_terminated_raises(self, tree: LifetimeTree) -> None:
        parent = tree.create_root()
        seq = SequentialLifetimes(parent)
        issued = seq.next()
        parent.terminate()

        assert not issued.is_alive
        with pytest.raises(ParentAlreadyTerminatedError):
            seq.next()

    def test_concurrent_next_keeps_one_alive(self, root: Lifetime) -> None:
        seq = SequentialLifetimes(root)
        issued: list[Lifetime] = []
        lock = threading.Lock()

        def _worker() -> None:
            for _ in range(20):
                lt = seq.next()
                with lock:
                    issued.append(lt)

        threads = [threading.Thread(target=_worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        alive = [lt for lt in issued if lt.is_alive]
        assert len(issued) == 80
        assert len(alive) == 1
        assert seq.current is alive[0]

    def test_next_waits_for_release_started_by_another_thread(self, root: Lifetime) -> None:
        seq = SequentialLifetimes(root)
        first = seq.next()
        entered = threading.Event()
        released = threading.Event()

        def _slow_release() -> None:
            entered.set()
            time.sleep(0.3)
            released.set()

        first.add(_slow_release)
        terminator = threading.Thread(target=first.terminate)
        terminator.start()
        assert entered.wait(5.0)

        second = seq.next()

        assert released.is_set()
        assert first.state is LifetimeState.TERMINATED
        assert second.is_alive
        terminator.join(5.0)

    def test_terminate_current_waits_for_release_started_by_another_thread(
        self, root: Lifetime
    ) -> None:
        seq = SequentialLifetimes(root)
        first = seq.next()
        entered = threading.Event()
        released = threading.Event()

        def _slow_release() -> None:
            entered.set()
            time.sleep(0.3)
            released.set()

        first.add(_slow_release)
        terminator = threading.Thread(target=first.terminate)
        terminator.start()
        assert entered.wait(5.0)

        seq.terminate_current()

        assert released.is_set()
        assert seq.current is None
        terminator.join(5.0)

    def test_next_from_cleanup_of_current_does_not_block(self, root: Lifetime) -> None:
        seq = SequentialLifetimes(root)
        first = seq.next()
        replacements: list[Lifetime] = []
        first.add(lambda: replacements.append(seq.next()))

        finisher = threading.Thread(target=first.terminate)
        finisher.start()
        finisher.join(5.0)

        assert not finisher.is_alive()
        assert len(replacements) == 1
        assert replacements[0].is_alive
        assert seq.current is replacements[0]
        assert not first.is_alive


class TestWaitTerminated:
    def test_returns_false_on_the_terminating_thread(self, root: Lifetime) -> None:
        lt = root.create_child()
        results: list[bool] = []
        lt.add(lambda: results.append(lt.tree.wait_terminated(lt, timeout=5.0)))

        lt.terminate()

        assert results == [False]

    def test_returns_true_once_terminated(self, root: Lifetime) -> None:
        lt = root.create_child()
        lt.terminate()
        assert lt.tree.wait_terminated(lt, timeout=1.0) is True
