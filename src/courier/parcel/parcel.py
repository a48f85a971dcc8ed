"""Parcel aggregate: the lifecycle state machine and its tracking ledger.

State Machine:
    REGISTERED → PICKED_UP → IN_TRANSIT → LOADED_IN_TRUCK → OUT_FOR_DELIVERY → DELIVERED
    any non-terminal → FAILED_DELIVERY | RETURNED
    {REGISTERED, PICKED_UP} → CANCELLED   (customer cancellation only)

DELIVERED, CANCELLED and RETURNED are terminal. Between non-terminal
states the carrier feed is trusted for ordering: a re-attempt after
FAILED_DELIVERY goes back to OUT_FOR_DELIVERY, and a status may be
re-reported. Every accepted change appends one entry to the ledger.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from courier.domain import courier
from courier.parcel.events import (
    ParcelCancelled,
    ParcelRegistered,
    ParcelStatusChanged,
    TrackingNoticeRecorded,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ParcelStatus(Enum):
    REGISTERED = "REGISTERED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    LOADED_IN_TRUCK = "LOADED_IN_TRUCK"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    FAILED_DELIVERY = "FAILED_DELIVERY"
    RETURNED = "RETURNED"
    CANCELLED = "CANCELLED"


class Priority(Enum):
    STANDARD = "STANDARD"
    EXPRESS = "EXPRESS"
    URGENT = "URGENT"

    @classmethod
    def parse(cls, value: str | None) -> "Priority":
        """Case-insensitive lookup; anything unrecognised is STANDARD."""
        if not value:
            return cls.STANDARD
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.STANDARD


class TrackingEventType(Enum):
    REGISTERED = "REGISTERED"
    PICKUP_SCHEDULED = "PICKUP_SCHEDULED"
    PICKED_UP = "PICKED_UP"
    ARRIVED_AT_FACILITY = "ARRIVED_AT_FACILITY"
    DEPARTED_FROM_FACILITY = "DEPARTED_FROM_FACILITY"
    LOADED_IN_TRUCK = "LOADED_IN_TRUCK"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERY_ATTEMPTED = "DELIVERY_ATTEMPTED"
    DELIVERED = "DELIVERED"
    FAILED_DELIVERY = "FAILED_DELIVERY"
    RETURNED_TO_FACILITY = "RETURNED_TO_FACILITY"
    CANCELLED = "CANCELLED"
    EXCEPTION = "EXCEPTION"


TERMINAL_STATUSES = frozenset({ParcelStatus.DELIVERED, ParcelStatus.CANCELLED, ParcelStatus.RETURNED})

CANCELLABLE_STATUSES = frozenset({ParcelStatus.REGISTERED, ParcelStatus.PICKED_UP})

STATUS_EVENT_TYPES = {
    ParcelStatus.REGISTERED: TrackingEventType.REGISTERED,
    ParcelStatus.PICKED_UP: TrackingEventType.PICKED_UP,
    ParcelStatus.IN_TRANSIT: TrackingEventType.IN_TRANSIT,
    ParcelStatus.LOADED_IN_TRUCK: TrackingEventType.LOADED_IN_TRUCK,
    ParcelStatus.OUT_FOR_DELIVERY: TrackingEventType.OUT_FOR_DELIVERY,
    ParcelStatus.DELIVERED: TrackingEventType.DELIVERED,
    ParcelStatus.FAILED_DELIVERY: TrackingEventType.FAILED_DELIVERY,
    ParcelStatus.RETURNED: TrackingEventType.RETURNED_TO_FACILITY,
    ParcelStatus.CANCELLED: TrackingEventType.CANCELLED,
}


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@courier.value_object(part_of="Parcel")
class Address:
    """A pickup or delivery location. Owned by exactly one parcel."""

    street_address = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)
    landmark = String(max_length=255)
    contact_person = String(max_length=200)
    contact_phone = String(max_length=30)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@courier.entity(part_of="Parcel")
class TrackingEvent:
    """One append-only ledger entry. Never edited once written."""

    event_type = String(required=True, max_length=50, choices=TrackingEventType)
    description = Text()
    location = String(max_length=200)
    vehicle_id = String(max_length=50)
    driver_name = String(max_length=100)
    additional_info = Text()
    event_timestamp = DateTime(required=True)
    recorded_at = DateTime()
    sequence = Integer(required=True, min_value=1)
    source_message_id = String(max_length=100)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@courier.aggregate
class Parcel:
    edi_reference = String(required=True, max_length=100)
    sender_id = Identifier(required=True)
    recipient_id = Identifier(required=True)
    pickup_address = ValueObject(Address, required=True)
    delivery_address = ValueObject(Address, required=True)
    description = String(max_length=500)
    weight = Float()
    dimensions = String(max_length=100)
    declared_value = Float()
    fragile = Boolean(default=False)
    priority = String(max_length=20, choices=Priority, default=Priority.STANDARD.value)
    signature_required = Boolean(default=False)
    insured = Boolean(default=False)
    status = String(
        max_length=30,
        choices=ParcelStatus,
        default=ParcelStatus.REGISTERED.value,
    )
    estimated_delivery_date = DateTime()
    actual_delivery_date = DateTime()
    cancellation_reason = String(max_length=500)
    event_sequence = Integer(default=0)
    tracking_events = HasMany(TrackingEvent)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def delivery_date_set_only_when_delivered(self):
        delivered = self.status == ParcelStatus.DELIVERED.value
        if delivered and self.actual_delivery_date is None:
            raise ValidationError({"actual_delivery_date": ["Delivered parcels must record a delivery date"]})
        if not delivered and self.actual_delivery_date is not None:
            raise ValidationError({"actual_delivery_date": ["Only delivered parcels carry a delivery date"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def register(
        cls,
        parcel_id: str,
        edi_reference: str,
        sender_id: str,
        recipient_id: str,
        pickup_address: Address,
        delivery_address: Address,
        priority: Priority = Priority.STANDARD,
        description: str | None = None,
        weight: float | None = None,
        dimensions: str | None = None,
        declared_value: float | None = None,
        fragile: bool = False,
        signature_required: bool = False,
        insured: bool = False,
        estimated_delivery_date: datetime | None = None,
    ):
        """Create a parcel in REGISTERED state with its first ledger entry."""
        now = datetime.now(UTC)
        parcel = cls(
            id=parcel_id,
            edi_reference=edi_reference,
            sender_id=sender_id,
            recipient_id=recipient_id,
            pickup_address=pickup_address,
            delivery_address=delivery_address,
            description=description,
            weight=weight,
            dimensions=dimensions,
            declared_value=declared_value,
            fragile=fragile,
            priority=priority.value,
            signature_required=signature_required,
            insured=insured,
            status=ParcelStatus.REGISTERED.value,
            estimated_delivery_date=estimated_delivery_date,
            created_at=now,
            updated_at=now,
        )
        parcel._append_entry(
            TrackingEventType.REGISTERED,
            description="Parcel registered in the system",
            occurred_at=now,
        )
        parcel.raise_(
            ParcelRegistered(
                parcel_id=parcel_id,
                edi_reference=edi_reference,
                sender_id=sender_id,
                recipient_id=recipient_id,
                priority=priority.value,
                estimated_delivery_date=estimated_delivery_date,
                registered_at=now,
            )
        )
        return parcel

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return ParcelStatus(self.status) in TERMINAL_STATUSES

    def has_processed(self, source_message_id: str | None) -> bool:
        """True when a carrier message with this id has already been applied."""
        if not source_message_id:
            return False
        return any(e.source_message_id == source_message_id for e in (self.tracking_events or []))

    def history(self) -> list[TrackingEvent]:
        """Ledger entries, newest first; ties on timestamp go to the later append."""
        return sorted(
            self.tracking_events or [],
            key=lambda e: (_as_utc(e.event_timestamp), e.sequence),
            reverse=True,
        )

    def correlation_id(self, sequence: int | None = None) -> str:
        return f"{self.id}-{sequence if sequence is not None else self.event_sequence}"

    def allocate_event_sequence(self) -> int:
        """Reserve the next outbound event number for this parcel."""
        self.event_sequence = (self.event_sequence or 0) + 1
        return self.event_sequence

    # -------------------------------------------------------------------
    # Ledger helper
    # -------------------------------------------------------------------
    def _append_entry(
        self,
        event_type: TrackingEventType,
        description: str | None = None,
        location: str | None = None,
        additional_info: str | None = None,
        occurred_at: datetime | None = None,
        vehicle_id: str | None = None,
        driver_name: str | None = None,
        source_message_id: str | None = None,
    ) -> TrackingEvent:
        now = datetime.now(UTC)
        sequence = max((e.sequence for e in (self.tracking_events or [])), default=0) + 1
        entry = TrackingEvent(
            event_type=event_type.value,
            description=description,
            location=location,
            additional_info=additional_info,
            vehicle_id=vehicle_id,
            driver_name=driver_name,
            event_timestamp=occurred_at or now,
            recorded_at=now,
            sequence=sequence,
            source_message_id=source_message_id,
        )
        self.add_tracking_events(entry)
        return entry

    # -------------------------------------------------------------------
    # Carrier-driven transitions
    # -------------------------------------------------------------------
    def apply_status(
        self,
        new_status: ParcelStatus,
        location: str | None = None,
        note: str | None = None,
        occurred_at: datetime | None = None,
        vehicle_id: str | None = None,
        driver_name: str | None = None,
        source_message_id: str | None = None,
    ) -> TrackingEvent:
        """Move the parcel to ``new_status`` and append the matching ledger entry."""
        current = ParcelStatus(self.status)
        if current in TERMINAL_STATUSES:
            raise ValidationError({"status": [f"Parcel is {current.value}; cannot move to {new_status.value}"]})
        if new_status == ParcelStatus.CANCELLED:
            raise ValidationError({"status": ["Parcels are cancelled only at the sender's request"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = new_status.value
            if new_status == ParcelStatus.DELIVERED:
                self.actual_delivery_date = now
            self.updated_at = now
            entry = self._append_entry(
                STATUS_EVENT_TYPES[new_status],
                description=f"Status changed from {current.value} to {new_status.value}",
                location=location,
                additional_info=note,
                occurred_at=occurred_at,
                vehicle_id=vehicle_id,
                driver_name=driver_name,
                source_message_id=source_message_id,
            )

        self.raise_(
            ParcelStatusChanged(
                parcel_id=str(self.id),
                previous_status=current.value,
                new_status=new_status.value,
                location=location,
                note=note,
                ledger_sequence=entry.sequence,
                changed_at=now,
            )
        )
        return entry

    def record_notice(
        self,
        event_type: TrackingEventType,
        description: str | None = None,
        location: str | None = None,
        additional_info: str | None = None,
        occurred_at: datetime | None = None,
        vehicle_id: str | None = None,
        driver_name: str | None = None,
        source_message_id: str | None = None,
    ) -> TrackingEvent:
        """Append a ledger entry that does not change the parcel's status."""
        now = datetime.now(UTC)
        entry = self._append_entry(
            event_type,
            description=description,
            location=location,
            additional_info=additional_info,
            occurred_at=occurred_at,
            vehicle_id=vehicle_id,
            driver_name=driver_name,
            source_message_id=source_message_id,
        )
        self.updated_at = now
        self.raise_(
            TrackingNoticeRecorded(
                parcel_id=str(self.id),
                event_type=event_type.value,
                description=description,
                location=location,
                ledger_sequence=entry.sequence,
                recorded_at=now,
            )
        )
        return entry

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str) -> TrackingEvent:
        """Cancel at the sender's request; only before the parcel is in transit."""
        current = ParcelStatus(self.status)
        if current not in CANCELLABLE_STATUSES:
            raise ValidationError({"status": [f"Cannot cancel parcel in {current.value} state"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = ParcelStatus.CANCELLED.value
            self.cancellation_reason = reason
            self.updated_at = now
            entry = self._append_entry(
                TrackingEventType.CANCELLED,
                description=f"Parcel cancelled by customer: {reason}",
                occurred_at=now,
            )

        self.raise_(
            ParcelCancelled(
                parcel_id=str(self.id),
                previous_status=current.value,
                reason=reason,
                cancelled_at=now,
            )
        )
        return entry
