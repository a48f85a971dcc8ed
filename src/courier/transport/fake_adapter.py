"""Fake transport adapter: in-memory channels for testing and development.

Keeps every sent message for inspection and a FIFO queue per channel for
consumers. Nacked deliveries are redelivered before anything else on the
channel, in the order they were originally sent, the way a broker replays
its pending entries. Failure is configurable.
"""

import bisect
import itertools
import threading
from collections import defaultdict, deque
from typing import Any
from uuid import uuid4

from courier.transport.port import Delivery, TransportError, TransportPort


class FakeTransport(TransportPort):
    """In-memory transport that accepts everything by default."""

    def __init__(self):
        self._lock = threading.Lock()
        self.should_succeed = True
        self.failure_reason = "Broker unavailable"
        self.sent: list[Delivery] = []
        self.acked: list[Delivery] = []
        self.nacked: list[Delivery] = []
        self._queues: dict[str, deque[Delivery]] = defaultdict(deque)
        self._redeliveries: dict[str, list[tuple[int, Delivery]]] = defaultdict(list)
        self._positions: dict[str, int] = {}
        self._counter = itertools.count()

    def configure(self, should_succeed: bool = True, failure_reason: str = "Broker unavailable"):
        """Configure the fake transport behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def reset(self) -> None:
        with self._lock:
            self.should_succeed = True
            self.failure_reason = "Broker unavailable"
            self.sent.clear()
            self.acked.clear()
            self.nacked.clear()
            self._queues.clear()
            self._redeliveries.clear()
            self._positions.clear()

    def _enqueue(self, delivery: Delivery) -> None:
        self._positions[delivery.delivery_id] = next(self._counter)
        self._queues[delivery.channel].append(delivery)

    def send(self, channel: str, payload: dict[str, Any], headers: dict[str, str]) -> str:
        if not self.should_succeed:
            raise TransportError(self.failure_reason)
        delivery = Delivery(channel=channel, delivery_id=uuid4().hex, payload=payload, headers=dict(headers))
        with self._lock:
            self.sent.append(delivery)
            self._enqueue(delivery)
        return delivery.delivery_id

    def inject(self, channel: str, payload: dict[str, Any], headers: dict[str, str] | None = None) -> Delivery:
        """Place an inbound message on a channel, bypassing failure simulation."""
        delivery = Delivery(channel=channel, delivery_id=uuid4().hex, payload=payload, headers=dict(headers or {}))
        with self._lock:
            self._enqueue(delivery)
        return delivery

    def receive(self, channel: str, consumer_group: str) -> Delivery | None:
        with self._lock:
            redeliveries = self._redeliveries.get(channel)
            if redeliveries:
                return redeliveries.pop(0)[1]
            queue = self._queues.get(channel)
            if not queue:
                return None
            return queue.popleft()

    def ack(self, delivery: Delivery, consumer_group: str) -> None:
        with self._lock:
            self.acked.append(delivery)

    def nack(self, delivery: Delivery, consumer_group: str) -> None:
        with self._lock:
            self.nacked.append(delivery)
            position = self._positions.get(delivery.delivery_id, -1)
            bisect.insort(self._redeliveries[delivery.channel], (position, delivery), key=lambda entry: entry[0])

    def sent_to(self, channel: str) -> list[Delivery]:
        return [d for d in self.sent if d.channel == channel]

    def pending(self, channel: str) -> int:
        with self._lock:
            return len(self._queues.get(channel, ())) + len(self._redeliveries.get(channel, ()))
