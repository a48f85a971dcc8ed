"""Transport port: the abstract interface to the message broker.

Publishers and consumers program against this port. Adapters are chosen
through configuration (see ``courier.transport.get_transport``).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


class TransportError(Exception):
    """The broker could not accept or hand out a message."""


@dataclass(frozen=True)
class Delivery:
    """One message handed to a consumer, acknowledged by ``delivery_id``."""

    channel: str
    delivery_id: str
    payload: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def partition_key(self) -> str | None:
        return self.headers.get("partitionKey")


class TransportPort(ABC):
    """Abstract interface for transport adapters."""

    @abstractmethod
    def send(self, channel: str, payload: dict[str, Any], headers: dict[str, str]) -> str:
        """Publish a message; returns the broker's delivery id.

        Raises:
            TransportError: when the broker rejects or cannot be reached.
        """
        ...

    @abstractmethod
    def receive(self, channel: str, consumer_group: str) -> Delivery | None:
        """Hand out the next unacknowledged message, or None when the channel is idle."""
        ...

    @abstractmethod
    def ack(self, delivery: Delivery, consumer_group: str) -> None:
        """Mark a delivery as processed; it will not be handed out again."""
        ...

    @abstractmethod
    def nack(self, delivery: Delivery, consumer_group: str) -> None:
        """Return a delivery for redelivery, ahead of messages sent after it."""
        ...
