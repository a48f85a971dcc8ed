"""Outbound message aggregate: the transactional outbox for wire events.

A message is staged in the same unit of work as the parcel change it
describes, so a committed change always has its event recorded and an
aborted one never does. The relay (``EventPublisher.relay_pending``)
publishes PENDING messages per partition key in ``sequence`` order and
marks them PUBLISHED. A failed attempt leaves the message PENDING for the
next sweep.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Integer, String, Text

from courier.domain import courier


class OutboundStatus(Enum):
    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"


@courier.aggregate
class OutboundMessage:
    channel = String(required=True, max_length=100)
    partition_key = String(required=True, max_length=100)
    event_type = String(required=True, max_length=100)
    correlation_id = String(required=True, max_length=150)
    sequence = Integer(required=True, min_value=1)
    payload = Text(required=True)  # JSON body without per-attempt fields
    status = String(
        max_length=20,
        choices=OutboundStatus,
        default=OutboundStatus.PENDING.value,
    )
    attempts = Integer(default=0)
    last_error = String(max_length=1000)
    last_event_id = String(max_length=50)
    created_at = DateTime()
    published_at = DateTime()

    @classmethod
    def stage(
        cls,
        channel: str,
        partition_key: str,
        event_type: str,
        correlation_id: str,
        sequence: int,
        body: dict,
    ):
        return cls(
            channel=channel,
            partition_key=partition_key,
            event_type=event_type,
            correlation_id=correlation_id,
            sequence=sequence,
            payload=json.dumps(body),
            status=OutboundStatus.PENDING.value,
            created_at=datetime.now(UTC),
        )

    @property
    def body(self) -> dict:
        return json.loads(self.payload)

    @property
    def is_pending(self) -> bool:
        return self.status == OutboundStatus.PENDING.value

    def mark_published(self, event_id: str) -> None:
        self.attempts = (self.attempts or 0) + 1
        self.status = OutboundStatus.PUBLISHED.value
        self.last_event_id = event_id
        self.last_error = None
        self.published_at = datetime.now(UTC)

    def record_failure(self, error: str) -> None:
        self.attempts = (self.attempts or 0) + 1
        self.last_error = (error or "Unknown transport error")[:1000]
