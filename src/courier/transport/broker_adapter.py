"""Broker transport adapter: publishes through the domain's Protean broker.

Locally the broker is Protean's inline broker; in production it is Redis
Streams (see ``domain.toml``). Messages travel as ``{"headers", "payload"}``
envelopes because Protean brokers carry a single dict per message.
Messages from producers that do not use the envelope are delivered with
the whole dict as payload and no headers.
"""

from typing import Any

import structlog
from protean.utils.globals import current_domain

from courier.transport.port import Delivery, TransportError, TransportPort

logger = structlog.get_logger(__name__)


class BrokerTransport(TransportPort):
    def __init__(self, broker_name: str = "default", broker=None):
        self.broker_name = broker_name
        self._broker = broker

    @property
    def broker(self):
        # Resolved per call so the adapter follows the active domain context
        return self._broker if self._broker is not None else current_domain.brokers[self.broker_name]

    def send(self, channel: str, payload: dict[str, Any], headers: dict[str, str]) -> str:
        try:
            identifier = self.broker.publish(channel, {"headers": dict(headers), "payload": payload})
        except Exception as exc:
            raise TransportError(f"Publish to {channel} failed: {exc}") from exc
        if not identifier:
            raise TransportError(f"Broker did not accept message on {channel}")
        return str(identifier)

    def receive(self, channel: str, consumer_group: str) -> Delivery | None:
        try:
            result = self.broker.get_next(channel, consumer_group)
        except Exception as exc:
            raise TransportError(f"Read from {channel} failed: {exc}") from exc
        if not result:
            return None

        identifier, message = result
        if isinstance(message, dict) and "payload" in message:
            payload = message["payload"]
            headers = message.get("headers") or {}
        else:
            payload, headers = message, {}
        return Delivery(channel=channel, delivery_id=str(identifier), payload=payload, headers=headers)

    def _settle(self, operation: str, delivery: Delivery, consumer_group: str) -> None:
        try:
            settled = getattr(self.broker, operation)(delivery.channel, delivery.delivery_id, consumer_group)
        except Exception as exc:
            raise TransportError(f"{operation} on {delivery.channel} failed: {exc}") from exc
        if not settled:
            logger.warning(
                "Broker refused settlement",
                operation=operation,
                channel=delivery.channel,
                delivery_id=delivery.delivery_id,
            )

    def ack(self, delivery: Delivery, consumer_group: str) -> None:
        self._settle("ack", delivery, consumer_group)

    def nack(self, delivery: Delivery, consumer_group: str) -> None:
        self._settle("nack", delivery, consumer_group)
