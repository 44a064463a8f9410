from __future__ import annotations

from typing import Any

from avisos.core import metrics as metrics_module
from avisos.services.pubsub import EventBus


def _errors(topic: str) -> float:
    value = metrics_module.REGISTRY.get_sample_value("event_listener_errors_total", {"topic": topic})
    return value or 0.0


def test_listeners_run_in_registration_order() -> None:
    bus = EventBus()
    calls: list[tuple[str, Any]] = []
    bus.subscribe("comment:created", lambda payload: calls.append(("first", payload)))
    bus.subscribe("comment:created", lambda payload: calls.append(("second", payload)))

    delivered = bus.publish("comment:created", 7)

    assert delivered == 2
    assert calls == [("first", 7), ("second", 7)]


def test_failing_listener_does_not_stop_the_others() -> None:
    bus = EventBus()
    seen: list[int] = []
    before = _errors("isolation")

    def _boom(_: Any) -> None:
        raise RuntimeError("listener exploded")

    bus.subscribe("isolation", _boom)
    bus.subscribe("isolation", seen.append)

    delivered = bus.publish("isolation", 1)

    assert delivered == 1
    assert seen == [1]
    assert _errors("isolation") == before + 1


def test_publish_without_listeners_is_a_no_op() -> None:
    bus = EventBus()
    assert bus.publish("nobody:listens", {"x": 1}) == 0
    assert bus.listener_count("nobody:listens") == 0


def test_subscription_cancel_removes_only_that_listener() -> None:
    bus = EventBus()
    first: list[int] = []
    second: list[int] = []
    subscription = bus.subscribe("topic", first.append)
    bus.subscribe("topic", second.append)

    assert subscription.cancel() is True
    assert subscription.cancel() is False
    bus.publish("topic", 3)

    assert first == []
    assert second == [3]
    assert bus.listener_count("topic") == 1


def test_same_callable_can_subscribe_twice() -> None:
    bus = EventBus()
    seen: list[int] = []
    first = bus.subscribe("topic", seen.append)
    bus.subscribe("topic", seen.append)

    bus.publish("topic", 1)
    first.cancel()
    bus.publish("topic", 2)

    assert seen == [1, 1, 2]


def test_changes_during_dispatch_apply_to_the_next_publish() -> None:
    bus = EventBus()
    late: list[int] = []
    calls: list[int] = []

    def _subscribe_another(payload: int) -> None:
        calls.append(payload)
        bus.subscribe("topic", late.append)

    def _cancel_self(payload: int) -> None:
        calls.append(payload)
        cancelling.cancel()

    bus.subscribe("topic", _subscribe_another)
    cancelling = bus.subscribe("topic", _cancel_self)

    bus.publish("topic", 1)
    assert late == []
    assert calls == [1, 1]

    bus.publish("topic", 2)
    assert late == [2]
    assert calls == [1, 1, 2]


def test_topics_are_independent() -> None:
    bus = EventBus()
    seen: list[str] = []
    bus.subscribe("a", lambda _: seen.append("a"))
    bus.subscribe("b", lambda _: seen.append("b"))

    bus.publish("b", None)

    assert seen == ["b"]
