"""Stage outbound events for a parcel change.

Each helper reserves the parcel's next event number, renders the wire
body and returns an unsaved ``OutboundMessage``. Callers add it to its
repository inside the same command handler that saves the parcel.
"""

from courier.messaging import channels
from courier.messaging.contracts import (
    REGISTRATION_EVENT_TYPE,
    TRACKING_EVENT_TYPE,
    registration_message,
    tracking_message,
)
from courier.outbox.outbound_message import OutboundMessage


def stage_registration(parcel, sender, recipient) -> OutboundMessage:
    sequence = parcel.allocate_event_sequence()
    correlation_id = parcel.correlation_id(sequence)
    return OutboundMessage.stage(
        channel=channels.carrier_events(),
        partition_key=str(parcel.id),
        event_type=REGISTRATION_EVENT_TYPE,
        correlation_id=correlation_id,
        sequence=sequence,
        body=registration_message(parcel, sender, recipient, correlation_id),
    )


def stage_tracking(parcel, entry, previous_status: str | None) -> OutboundMessage:
    sequence = parcel.allocate_event_sequence()
    correlation_id = parcel.correlation_id(sequence)
    return OutboundMessage.stage(
        channel=channels.tracking_events(),
        partition_key=str(parcel.id),
        event_type=TRACKING_EVENT_TYPE,
        correlation_id=correlation_id,
        sequence=sequence,
        body=tracking_message(parcel, entry, previous_status, correlation_id),
    )
