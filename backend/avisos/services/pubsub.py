"""In-memory synchronous pub/sub event bus.

Decouples the REST write path from the realtime broadcast path. Dispatch is
synchronous and in registration order; a failing listener is logged and
skipped so the remaining listeners and the publisher are unaffected.
"""
from __future__ import annotations

import itertools
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, DefaultDict

from loguru import logger

from avisos.core.metrics import record_listener_error

Listener = Callable[[Any], None]


@dataclass(frozen=True, slots=True)
class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`."""

    topic: str
    listener: Listener
    token: int
    _bus: "EventBus" = field(repr=False, compare=False)

    def cancel(self) -> bool:
        return self._bus.unsubscribe(self)


class EventBus:
    """Process-local topic based event bus."""

    def __init__(self) -> None:
        self._subscriptions: DefaultDict[str, list[Subscription]] = defaultdict(list)
        self._tokens = itertools.count(1)

    def subscribe(self, topic: str, listener: Listener) -> Subscription:
        subscription = Subscription(topic=topic, listener=listener, token=next(self._tokens), _bus=self)
        self._subscriptions[topic].append(subscription)
        logger.bind(topic=topic, token=subscription.token).debug("event_listener_subscribed")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        listeners = self._subscriptions.get(subscription.topic)
        if not listeners or subscription not in listeners:
            return False
        listeners.remove(subscription)
        if not listeners:
            del self._subscriptions[subscription.topic]
        return True

    def publish(self, topic: str, payload: Any) -> int:
        """Invoke every listener registered for ``topic``; return how many succeeded."""

        # Listeners added or removed while dispatching take effect on the next publish.
        listeners = list(self._subscriptions.get(topic, ()))
        delivered = 0
        for subscription in listeners:
            try:
                subscription.listener(payload)
            except Exception:
                record_listener_error(topic)
                logger.bind(topic=topic, token=subscription.token).exception("event_listener_failed")
                continue
            delivered += 1
        return delivered

    def listener_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, ()))


__all__ = ["EventBus", "Listener", "Subscription"]
