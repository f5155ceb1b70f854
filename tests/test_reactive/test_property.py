"""Tests for tether.reactive.property -- scoped views, flags, reentrancy."""

from __future__ import annotations

import logging
import threading

import pytest

from tether.reactive import Lifetime, ReactiveFlag, ReactiveProperty


class TestReactiveProperty:
    def test_view_fires_immediately_with_current_value(self, root: Lifetime) -> None:
        prop = ReactiveProperty("a", name="letter")
        seen: list[str] = []

        prop.view(root, lambda lt, value: seen.append(value))

        assert seen == ["a"]

    def test_setting_same_value_fires_nothing(self, root: Lifetime) -> None:
        prop = ReactiveProperty(1)
        seen: list[int] = []
        prop.advise(root, seen.append)

        prop.set(1)
        prop.value = 1

        assert seen == [1]

    def test_value_lifetime_ends_on_change(self, root: Lifetime) -> None:
        prop = ReactiveProperty("a")
        lifetimes: dict[str, Lifetime] = {}
        prop.view(root, lambda lt, value: lifetimes.setdefault(value, lt))

        prop.set("b")

        assert not lifetimes["a"].is_alive
        assert lifetimes["b"].is_alive

    def test_old_value_released_before_new_handlers_run(self, root: Lifetime) -> None:
        prop = ReactiveProperty(0)
        events: list[str] = []

        def _first(lt: Lifetime, value: int) -> None:
            events.append(f"first:{value}")
            lt.add(lambda: events.append(f"first-release:{value}"))

        def _second(lt: Lifetime, value: int) -> None:
            events.append(f"second:{value}")
            lt.add(lambda: events.append(f"second-release:{value}"))

        prop.view(root, _first)
        prop.view(root, _second)
        events.clear()

        prop.set(1)

        assert events == ["first-release:0", "second-release:0", "first:1", "second:1"]

    def test_subscription_ends_with_its_lifetime(self, root: Lifetime) -> None:
        prop = ReactiveProperty(0)
        seen: list[int] = []
        sub = root.create_child()
        prop.advise(sub, seen.append)
        assert prop.subscriber_count == 1

        sub.terminate()
        prop.set(5)

        assert seen == [0]
        assert prop.subscriber_count == 0

    def test_accept_filters_values(self, root: Lifetime) -> None:
        prop = ReactiveProperty(0)
        seen: list[int] = []
        prop.view(root, lambda lt, value: seen.append(value), accept=lambda v: v % 2 == 0)

        for v in (1, 2, 3, 4):
            prop.set(v)

        assert seen == [0, 2, 4]

    def test_handler_error_is_logged_and_others_still_fire(
        self, root: Lifetime, caplog: pytest.LogCaptureFixture
    ) -> None:
        prop = ReactiveProperty(0, name="counter")
        seen: list[int] = []

        def _broken(value: int) -> None:
            if value:
                raise RuntimeError("handler broke")

        prop.advise(root, _broken)
        prop.advise(root, seen.append)

        with caplog.at_level(logging.ERROR, logger="tether.reactive.property"):
            prop.set(1)

        assert seen == [0, 1]
        assert "counter" in caplog.text

    def test_reentrant_set_is_deferred(self, root: Lifetime) -> None:
        prop = ReactiveProperty(0)
        events: list[str] = []

        def _bump(value: int) -> None:
            events.append(f"a:{value}")
            if value == 1:
                prop.set(2)
                events.append(f"a:after-set:{prop.value}")

        prop.advise(root, _bump)
        prop.advise(root, lambda value: events.append(f"b:{value}"))
        events.clear()

        prop.set(1)

        # Every handler sees 1 before anyone sees 2.
        assert events == ["a:1", "a:after-set:1", "b:1", "a:2", "b:2"]
        assert prop.value == 2

    def test_mutations_from_threads_do_not_interleave(self, root: Lifetime) -> None:
        prop = ReactiveProperty(0)
        active = []
        overlaps = []
        guard = threading.Lock()

        def _handler(value: int) -> None:
            with guard:
                active.append(value)
                if len(active) > 1:
                    overlaps.append(list(active))
            for _ in range(1000):
                pass
            with guard:
                active.remove(value)

        prop.advise(root, _handler)

        def _writer(offset: int) -> None:
            for i in range(50):
                prop.set(offset + i)

        threads = [threading.Thread(target=_writer, args=(n * 1000,)) for n in range(1, 4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []


class TestReactiveFlag:
    def test_when_true_fires_immediately_if_true(self, root: Lifetime) -> None:
        flag = ReactiveFlag(True)
        calls: list[Lifetime] = []

        flag.when_true(root, calls.append)

        assert len(calls) == 1
        assert calls[0].is_alive

    def test_false_to_true_fires_once_synchronously(self, root: Lifetime) -> None:
        flag = ReactiveFlag(False, name="enabled")
        calls: list[str] = []
        flag.when_true(root, lambda lt: calls.append("on"))
        assert calls == []

        flag.value = True
        assert calls == ["on"]

        flag.value = True
        assert calls == ["on"]

    def test_same_value_fires_nothing(self, root: Lifetime) -> None:
        flag = ReactiveFlag(False)
        calls: list[str] = []
        flag.when_true(root, lambda lt: calls.append("true"))
        flag.when_false(root, lambda lt: calls.append("false"))
        calls.clear()

        flag.set(False)

        assert calls == []

    def test_true_lifetime_ends_before_false_callback(self, root: Lifetime) -> None:
        flag = ReactiveFlag(True)
        events: list[str] = []
        flag.when_true(root, lambda lt: lt.add(lambda: events.append("true released")))
        flag.when_false(root, lambda lt: events.append("false fired"))

        flag.value = False

        assert events == ["true released", "false fired"]

    def test_at_most_one_true_lifetime_across_toggles(self, root: Lifetime) -> None:
        flag = ReactiveFlag(False)
        issued: list[Lifetime] = []
        flag.when_true(root, issued.append)

        for value in (True, False, True, True, False, True):
            flag.value = value
            assert sum(1 for lt in issued if lt.is_alive) == (1 if flag.value else 0)

        assert len(issued) == 3

    def test_non_bool_values_are_coerced(self, root: Lifetime) -> None:
        flag = ReactiveFlag(0)  # type: ignore[arg-type]
        assert flag.value is False
        flag.set(1)  # type: ignore[arg-type]
        assert flag.value is True

    def test_terminating_owner_releases_callback_lifetime(self, root: Lifetime) -> None:
        flag = ReactiveFlag(True)
        owner = root.create_child("owner")
        issued: list[Lifetime] = []
        flag.when_true(owner, issued.append)

        owner.terminate()
        flag.value = False
        flag.value = True

        assert len(issued) == 1
        assert not issued[0].is_alive
