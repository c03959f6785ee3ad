"""Event bus decoupling discovery from per-object processing.

``publish()`` never runs handlers inline: events are queued and handed to
subscribers by ``drain()``, which the caller (a worker, the CLI after a
pass, or a test) invokes when it chooses.  A handler failure is logged
and does not stop delivery to other handlers or of other events.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections import defaultdict, deque
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], Any]


class EventBus(Protocol):
    """Protocol the engine requires from the event bus."""

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        """Queue *payload* for the subscribers of *topic*."""
        ...  # pragma: no cover


class InMemoryBus:
    """Process-local ``EventBus`` with explicit delivery."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._queue: deque[tuple[str, dict[str, Any]]] = deque()
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        self._subscribers[topic].append(handler)

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._queue.append((topic, copy.deepcopy(payload)))
        logger.debug("Published event on topic %s", topic)

    @property
    def pending(self) -> list[tuple[str, dict[str, Any]]]:
        """Queued events, oldest first."""
        with self._lock:
            return list(self._queue)

    def drain(self) -> int:
        """Deliver queued events, including ones published while draining.

        Returns:
            Number of events taken off the queue.
        """
        delivered = 0
        while True:
            with self._lock:
                if not self._queue:
                    return delivered
                topic, payload = self._queue.popleft()
            delivered += 1

            handlers = self._subscribers.get(topic, [])
            if not handlers:
                logger.warning("No subscribers for topic %s", topic)
            for handler in handlers:
                try:
                    handler(copy.deepcopy(payload))
                except Exception:
                    logger.exception(
                        "Handler for topic %s failed", topic
                    )
