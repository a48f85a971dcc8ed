"""Carrier status messages: parsing and interpretation.

The transport provider sends camelCase JSON with a ``messageType`` from a
closed set. ``interpret`` maps each type to either a status transition or
a ledger-only notice; the match is exhaustive, so adding a message type
without handling it fails type checking.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import assert_never

import structlog
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from courier.parcel.parcel import ParcelStatus, TrackingEventType

logger = structlog.get_logger(__name__)

CARRIER_NAME = "ABC Transport"

_TIMESTAMP = TypeAdapter(datetime)


class CarrierMessageType(Enum):
    PICKUP_SCHEDULED = "PICKUP_SCHEDULED"
    PARCEL_PICKED_UP = "PARCEL_PICKED_UP"
    PARCEL_IN_TRANSIT = "PARCEL_IN_TRANSIT"
    PARCEL_LOADED_IN_TRUCK = "PARCEL_LOADED_IN_TRUCK"
    PARCEL_OUT_FOR_DELIVERY = "PARCEL_OUT_FOR_DELIVERY"
    PARCEL_DELIVERED = "PARCEL_DELIVERED"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    PARCEL_RETURNED = "PARCEL_RETURNED"


class CarrierMessage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore")

    message_type: CarrierMessageType
    parcel_id: str | None = None
    message_id: str | None = None
    timestamp: datetime | None = None
    location: str | None = None
    vehicle_id: str | None = None
    driver_name: str | None = None
    scheduled_pickup_time: str | None = None
    estimated_delivery_time: str | None = None
    delivery_location: str | None = None
    recipient_name: str | None = None
    delivery_time: str | None = None
    signature: str | None = None
    failure_reason: str | None = None
    next_attempt_time: str | None = None
    return_reason: str | None = None

    @field_validator("parcel_id", "message_id")
    @classmethod
    def blank_is_missing(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("timestamp", mode="before")
    @classmethod
    def unreadable_timestamp_is_missing(cls, value):
        """The timestamp is informational; an unreadable one never drops the update."""
        if value is None or isinstance(value, datetime):
            return value
        try:
            return _TIMESTAMP.validate_python(value)
        except ValidationError:
            logger.warning("Ignoring unreadable carrier timestamp", timestamp=value)
            return None

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


@dataclass(frozen=True)
class CarrierAction:
    """What a carrier message asks of the lifecycle."""

    status: ParcelStatus | None = None
    notice_type: TrackingEventType | None = None
    location: str | None = None
    note: str | None = None
    description: str | None = None

    @property
    def is_transition(self) -> bool:
        return self.status is not None


def interpret(message: CarrierMessage) -> CarrierAction:
    match message.message_type:
        case CarrierMessageType.PICKUP_SCHEDULED:
            return CarrierAction(
                notice_type=TrackingEventType.PICKUP_SCHEDULED,
                location=message.location,
                description=f"Pickup scheduled by {CARRIER_NAME} for {message.scheduled_pickup_time}",
                note=f"Vehicle: {message.vehicle_id}, Driver: {message.driver_name}",
            )
        case CarrierMessageType.PARCEL_PICKED_UP:
            return CarrierAction(
                status=ParcelStatus.PICKED_UP,
                location=message.location,
                note=f"Picked up by {message.driver_name} (Vehicle: {message.vehicle_id})",
            )
        case CarrierMessageType.PARCEL_IN_TRANSIT:
            return CarrierAction(
                status=ParcelStatus.IN_TRANSIT,
                location=message.location,
                note=f"In transit via vehicle: {message.vehicle_id}",
            )
        case CarrierMessageType.PARCEL_LOADED_IN_TRUCK:
            return CarrierAction(
                status=ParcelStatus.LOADED_IN_TRUCK,
                location=message.location,
                note=f"Loaded in delivery truck. Driver: {message.driver_name}, Vehicle: {message.vehicle_id}",
            )
        case CarrierMessageType.PARCEL_OUT_FOR_DELIVERY:
            return CarrierAction(
                status=ParcelStatus.OUT_FOR_DELIVERY,
                location=message.location,
                note=f"Out for delivery. ETA: {message.estimated_delivery_time}, Driver: {message.driver_name}",
            )
        case CarrierMessageType.PARCEL_DELIVERED:
            note = f"Delivered to {message.recipient_name} at {message.delivery_time}"
            if message.signature:
                note += f". Signature: {message.signature}"
            return CarrierAction(
                status=ParcelStatus.DELIVERED,
                location=message.delivery_location or message.location,
                note=note,
            )
        case CarrierMessageType.DELIVERY_FAILED:
            note = f"Delivery failed: {message.failure_reason}"
            if message.next_attempt_time:
                note += f". Next attempt: {message.next_attempt_time}"
            return CarrierAction(
                status=ParcelStatus.FAILED_DELIVERY,
                location=message.location,
                note=note,
            )
        case CarrierMessageType.PARCEL_RETURNED:
            return CarrierAction(
                status=ParcelStatus.RETURNED,
                location=message.location,
                note=f"Returned to facility: {message.return_reason}",
            )
        case _:
            assert_never(message.message_type)
