"""In-process publish/subscribe fan-out of state deltas.

Topics:

- ``event:<id>``: every delta concerning one event
- ``operator:<id>``: prompts addressed to one operator (``checkInDue``, ...)
- ``events``: listing feed (``newEvent``, ``eventUpdated``, ``eventDeleted``)

Sequence numbers on ``operator:<id>`` topics are only kept while someone is
subscribed; they restart at 1 for a new listener.

Sinks must not block; the default sink is an unbounded queue. A sink that
raises is dropped, so a subscriber that disconnects mid-delivery simply
misses later deltas. Nothing is replayed.
"""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, Literal, Optional

from ..models.domain import utcnow

logger = logging.getLogger(__name__)

DeltaType = Literal[
    "newEvent",
    "eventUpdated",
    "eventDeleted",
    "operatorStatusChanged",
    "newLog",
    "logUpdated",
    "logDeleted",
    "checkInDue",
    "welfareCheckDue",
]

EVENTS_TOPIC = "events"


def event_topic(event_id: str) -> str:
    return f"event:{event_id}"


OPERATOR_TOPIC_PREFIX = "operator:"


def operator_topic(operator_id: str) -> str:
    return f"{OPERATOR_TOPIC_PREFIX}{operator_id}"


@dataclass(slots=True, frozen=True)
class Delta:
    type: DeltaType
    topic: str
    payload: dict
    timestamp: datetime
    sequence: int

    def to_message(self) -> dict:
        return {
            "type": self.type,
            "topic": self.topic,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
            "sequence": self.sequence,
        }


Sink = Callable[[Delta], None]


class Subscription:
    """Handle returned by :meth:`ChangeBroadcaster.subscribe`."""

    def __init__(self, broadcaster: "ChangeBroadcaster", sink: Optional[Sink] = None) -> None:
        self.id = uuid.uuid4().hex
        self.topics: set[str] = set()
        self._broadcaster = broadcaster
        self._queue: "queue.SimpleQueue[Delta]" = queue.SimpleQueue()
        self._sink = sink or self._queue.put
        self.closed = False

    def deliver(self, delta: Delta) -> None:
        self._sink(delta)

    def get(self, timeout: Optional[float] = None) -> Delta:
        """Next queued delta; raises ``queue.Empty`` after ``timeout``."""
        return self._queue.get(timeout=timeout)

    def drain(self) -> list[Delta]:
        items: list[Delta] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items

    def add_topic(self, topic: str) -> None:
        self._broadcaster.add_topic(self, topic)

    def remove_topic(self, topic: str) -> None:
        self._broadcaster.remove_topic(self, topic)

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ChangeBroadcaster:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._subscribers: dict[str, dict[str, Subscription]] = {}
        self._sequences: dict[str, int] = {}
        self._ordering_locks: dict[str, threading.RLock] = {}
        self._ordering_guard = threading.Lock()

    def subscribe(self, *topics: str, sink: Optional[Sink] = None) -> Subscription:
        subscription = Subscription(self, sink)
        for topic in topics:
            self.add_topic(subscription, topic)
        return subscription

    def add_topic(self, subscription: Subscription, topic: str) -> None:
        with self._lock:
            if subscription.closed:
                return
            self._subscribers.setdefault(topic, {})[subscription.id] = subscription
            subscription.topics.add(topic)

    def remove_topic(self, subscription: Subscription, topic: str) -> None:
        with self._lock:
            members = self._subscribers.get(topic)
            if members is not None:
                members.pop(subscription.id, None)
                if not members:
                    del self._subscribers[topic]
                    if topic.startswith(OPERATOR_TOPIC_PREFIX):
                        self._sequences.pop(topic, None)
            subscription.topics.discard(topic)

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            for topic in list(subscription.topics):
                self.remove_topic(subscription, topic)
            subscription.closed = True

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, {}))

    def publish(self, topic: str, delta_type: DeltaType, payload: dict) -> Delta:
        """Stamp the next sequence number for ``topic`` and hand the delta to every subscriber."""
        with self._lock:
            members = list(self._subscribers.get(topic, {}).values())
            sequence = self._sequences.get(topic, 0) + 1
            if members or not topic.startswith(OPERATOR_TOPIC_PREFIX):
                self._sequences[topic] = sequence
            delta = Delta(type=delta_type, topic=topic, payload=payload, timestamp=utcnow(), sequence=sequence)
            for subscription in members:
                try:
                    subscription.deliver(delta)
                except Exception as exc:
                    logger.warning(f"Dropping subscriber {subscription.id} on {topic}: {exc}")
                    self.unsubscribe(subscription)
        logger.debug(f"Published {delta_type} #{sequence} on {topic}")
        return delta

    @contextmanager
    def ordered(self, event_id: str) -> Iterator[None]:
        """Hold across "commit + publish" so an event's deltas go out in acceptance order."""
        with self._ordering_guard:
            lock = self._ordering_locks.setdefault(event_id, threading.RLock())
        with lock:
            yield

    def forget(self, event_id: str) -> None:
        """Drop bookkeeping for a deleted event."""
        with self._ordering_guard:
            self._ordering_locks.pop(event_id, None)
        with self._lock:
            self._sequences.pop(event_topic(event_id), None)
