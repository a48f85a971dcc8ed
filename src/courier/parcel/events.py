"""Parcel domain events: immutable facts about parcel lifecycle changes.

These are internal facts raised by the aggregate. The wire messages sent
to the transport provider and tracking consumers are built separately in
``courier.messaging.contracts`` and staged in the outbox.
"""

from protean.fields import DateTime, Identifier, Integer, String, Text

from courier.domain import courier


@courier.event(part_of="Parcel")
class ParcelRegistered:
    """A parcel was accepted from an inbound order."""

    __version__ = 1

    parcel_id = Identifier(required=True)
    edi_reference = String(required=True)
    sender_id = Identifier(required=True)
    recipient_id = Identifier(required=True)
    priority = String(required=True)
    estimated_delivery_date = DateTime()
    registered_at = DateTime(required=True)


@courier.event(part_of="Parcel")
class ParcelStatusChanged:
    """The carrier moved the parcel to a new status."""

    __version__ = 1

    parcel_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    location = String(max_length=200)
    note = Text()
    ledger_sequence = Integer(required=True)
    changed_at = DateTime(required=True)


@courier.event(part_of="Parcel")
class TrackingNoticeRecorded:
    """A tracking entry was appended without a status change."""

    __version__ = 1

    parcel_id = Identifier(required=True)
    event_type = String(required=True)
    description = String(max_length=500)
    location = String(max_length=200)
    ledger_sequence = Integer(required=True)
    recorded_at = DateTime(required=True)


@courier.event(part_of="Parcel")
class ParcelCancelled:
    """The sender cancelled the parcel before it left the pickup stage."""

    __version__ = 1

    parcel_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String(required=True, max_length=500)
    cancelled_at = DateTime(required=True)
