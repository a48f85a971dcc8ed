"""Event publisher: stamps outbound events and relays the outbox.

``publish`` never raises for transport problems; it reports them in a
``PublishResult`` so that a committed state change is not undone by a
broker outage. ``relay_pending`` drains one parcel's outbox in sequence
order and stops at the first failure, so a later event can never reach
the wire ahead of an earlier one. Messages left PENDING are picked up by
``relay_all`` on the next sweep.
"""

import itertools
import threading
from dataclasses import dataclass
from typing import Any

import structlog
from protean.utils.globals import current_domain

from courier.messaging.contracts import stamp
from courier.outbox.outbound_message import OutboundMessage, OutboundStatus
from courier.shared.locks import KeyedLocks
from courier.transport import get_transport
from courier.transport.port import TransportError, TransportPort

logger = structlog.get_logger(__name__)

_counter = itertools.count(1)
_counter_lock = threading.Lock()


def _next_local_sequence() -> int:
    with _counter_lock:
        return next(_counter)


@dataclass(frozen=True)
class PublishResult:
    success: bool
    event_id: str
    correlation_id: str
    error: str | None = None


@dataclass(frozen=True)
class RelayReport:
    published: int = 0
    pending: int = 0
    error: str | None = None

    @property
    def complete(self) -> bool:
        return self.pending == 0


class EventPublisher:
    """Hands events to the configured transport, keyed by parcel id."""

    _relay_locks = KeyedLocks()

    def __init__(self, transport: TransportPort | None = None):
        self._transport = transport

    @property
    def transport(self) -> TransportPort:
        return self._transport if self._transport is not None else get_transport()

    def publish(
        self,
        channel: str,
        payload: dict[str, Any],
        partition_key: str,
        headers: dict[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> PublishResult:
        """Publish one event. A missing correlation id is derived from a process-wide counter."""
        correlation_id = correlation_id or payload.get("correlationId") or f"{partition_key}-{_next_local_sequence()}"
        message = stamp(payload, correlation_id)
        wire_headers = dict(headers or {})
        wire_headers.update(
            {
                "partitionKey": partition_key,
                "eventType": str(message.get("eventType", "")),
                "correlationId": correlation_id,
            }
        )

        try:
            self.transport.send(channel, message, wire_headers)
        except TransportError as exc:
            logger.error(
                "Event publish failed",
                channel=channel,
                partition_key=partition_key,
                correlation_id=correlation_id,
                error=str(exc),
            )
            return PublishResult(False, message["eventId"], correlation_id, str(exc))

        logger.debug(
            "Event published",
            channel=channel,
            partition_key=partition_key,
            event_id=message["eventId"],
            correlation_id=correlation_id,
        )
        return PublishResult(True, message["eventId"], correlation_id)

    # -------------------------------------------------------------------
    # Outbox relay
    # -------------------------------------------------------------------
    def _pending_for(self, partition_key: str) -> list[OutboundMessage]:
        repo = current_domain.repository_for(OutboundMessage)
        results = repo._dao.query.filter(
            partition_key=partition_key,
            status=OutboundStatus.PENDING.value,
        ).all()
        return sorted(results.items, key=lambda m: m.sequence)

    def relay_pending(self, partition_key: str) -> RelayReport:
        """Publish a parcel's PENDING outbox messages in order, stopping at the first failure."""
        repo = current_domain.repository_for(OutboundMessage)
        with self._relay_locks.hold(partition_key):
            pending = self._pending_for(partition_key)
            published = 0
            for message in pending:
                result = self.publish(
                    message.channel,
                    message.body,
                    message.partition_key,
                    correlation_id=message.correlation_id,
                )
                if not result.success:
                    message.record_failure(result.error)
                    repo.add(message)
                    return RelayReport(published=published, pending=len(pending) - published, error=result.error)

                message.mark_published(result.event_id)
                repo.add(message)
                published += 1

        return RelayReport(published=published)

    def relay_all(self) -> RelayReport:
        """Sweep every partition with PENDING messages."""
        repo = current_domain.repository_for(OutboundMessage)
        pending = repo._dao.query.filter(status=OutboundStatus.PENDING.value).all().items
        keys = sorted({m.partition_key for m in pending})

        published = remaining = 0
        last_error = None
        for key in keys:
            report = self.relay_pending(key)
            published += report.published
            remaining += report.pending
            last_error = report.error or last_error

        if keys:
            logger.info("Outbox sweep finished", partitions=len(keys), published=published, pending=remaining)
        return RelayReport(published=published, pending=remaining, error=last_error)
