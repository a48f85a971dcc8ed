"""Wire contracts for outbound events.

Every outbound message shares one envelope (``DomainEvent``): a fresh
``eventId`` per publish attempt, the parcel id as partition key, a
``correlationId`` of ``<parcelId>-<n>`` that stays stable across retries
of the same logical event, a source and a schema version. Field names on
the wire are camelCase.

Bodies are rendered when the event is staged in the outbox; ``stamp``
adds the per-attempt ``eventId`` and ``timestamp`` at publish time.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SOURCE = "courier-management-system"
SCHEMA_VERSION = "1.0"

REGISTRATION_EVENT_TYPE = "ABC_TRANSPORT_EVENT"
REGISTRATION_MESSAGE_TYPE = "PARCEL_REGISTRATION"
TRACKING_EVENT_TYPE = "TRACKING_EVENT"

_STAMPED_FIELDS = {"event_id", "timestamp"}


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self, **kwargs: Any) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", **kwargs)


class ContactBlock(WireModel):
    name: str
    email: str
    phone: str | None = None


class AddressBlock(WireModel):
    street_address: str
    city: str
    state: str | None = None
    postal_code: str
    country: str
    landmark: str | None = None
    contact_person: str | None = None
    contact_phone: str | None = None


class ParcelDetailsBlock(WireModel):
    description: str | None = None
    weight: float | None = None
    dimensions: str | None = None


class DomainEvent(WireModel):
    """Envelope fields carried by every outbound event."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    parcel_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    correlation_id: str
    source: str = SOURCE
    version: str = SCHEMA_VERSION
    metadata: dict[str, Any] = Field(default_factory=dict)


class RegistrationMessage(DomainEvent):
    """Announces a newly registered parcel to the transport provider."""

    event_type: str = REGISTRATION_EVENT_TYPE
    message_type: str = REGISTRATION_MESSAGE_TYPE
    edi_reference: str
    status: str
    priority: str
    sender: ContactBlock
    recipient: ContactBlock
    pickup_address: AddressBlock
    delivery_address: AddressBlock
    parcel_details: ParcelDetailsBlock


class TrackingMessage(DomainEvent):
    """Announces one ledger entry to tracking consumers."""

    event_type: str = TRACKING_EVENT_TYPE
    tracking_event_type: str
    description: str | None = None
    event_timestamp: datetime
    location: str | None = None
    vehicle_id: str | None = None
    driver_name: str | None = None
    additional_info: str | None = None
    previous_status: str | None = None
    current_status: str


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _address_block(address) -> AddressBlock:
    return AddressBlock(
        street_address=address.street_address,
        city=address.city,
        state=address.state,
        postal_code=address.postal_code,
        country=address.country,
        landmark=address.landmark,
        contact_person=address.contact_person,
        contact_phone=address.contact_phone,
    )


def _contact_block(party) -> ContactBlock:
    return ContactBlock(name=party.name, email=party.email, phone=party.phone)


def registration_message(parcel, sender, recipient, correlation_id: str) -> dict[str, Any]:
    """Render the registration body for ``parcel`` (without per-attempt fields)."""
    message = RegistrationMessage(
        parcel_id=str(parcel.id),
        correlation_id=correlation_id,
        edi_reference=parcel.edi_reference,
        status=parcel.status,
        priority=parcel.priority,
        sender=_contact_block(sender),
        recipient=_contact_block(recipient),
        pickup_address=_address_block(parcel.pickup_address),
        delivery_address=_address_block(parcel.delivery_address),
        parcel_details=ParcelDetailsBlock(
            description=parcel.description,
            weight=parcel.weight,
            dimensions=parcel.dimensions,
        ),
        metadata={
            "createdAt": _iso(parcel.created_at),
            "estimatedDeliveryDate": _iso(parcel.estimated_delivery_date),
        },
    )
    return message.to_wire(exclude=_STAMPED_FIELDS)


def tracking_message(parcel, entry, previous_status: str | None, correlation_id: str) -> dict[str, Any]:
    """Render the tracking body for one ledger ``entry`` of ``parcel``."""
    message = TrackingMessage(
        parcel_id=str(parcel.id),
        correlation_id=correlation_id,
        tracking_event_type=entry.event_type,
        description=entry.description,
        event_timestamp=entry.event_timestamp,
        location=entry.location,
        vehicle_id=entry.vehicle_id,
        driver_name=entry.driver_name,
        additional_info=entry.additional_info,
        previous_status=previous_status,
        current_status=parcel.status,
        metadata={
            "trackingEventId": str(entry.id),
            "parcelStatus": parcel.status,
            "parcelPriority": parcel.priority,
        },
    )
    return message.to_wire(exclude=_STAMPED_FIELDS)


def stamp(body: dict[str, Any], correlation_id: str | None = None) -> dict[str, Any]:
    """Return a copy of ``body`` with a fresh eventId and timestamp for one publish attempt."""
    stamped = dict(body)
    stamped["eventId"] = str(uuid4())
    stamped["timestamp"] = datetime.now(UTC).isoformat()
    if correlation_id is not None:
        stamped["correlationId"] = correlation_id
    return stamped
