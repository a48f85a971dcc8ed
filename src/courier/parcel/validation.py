"""Order validation: structural checks on an inbound EDI order.

Checks run in a fixed order and stop at the first failure, so a caller
always sees the most fundamental problem first. Validation is pure: it
reads the payload and returns either a normalized ``OrderSubmission`` or
the violated constraint. Nothing is looked up or written.

Field lengths are checked against the stored limits here, so an order
that passes is never rejected after its parties have been written.

The email check is deliberately weak (an at-sign somewhere in the value);
the transport provider performs its own address verification.
"""

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from courier.parcel.parcel import Priority
from courier.party.resolution import ContactDetails

_ADDRESS_FIELDS = {
    "street_address": ("street address", 255),
    "city": ("city", 100),
    "state": ("state", 100),
    "postal_code": ("postal code", 20),
    "country": ("country", 100),
    "landmark": ("landmark", 255),
    "contact_person": ("contact person", 200),
    "contact_phone": ("contact phone", 30),
}

_REQUIRED_ADDRESS_FIELDS = ("street_address", "city", "postal_code", "country")

# Mirrors the limits of the Party aggregate
_CONTACT_FIELDS = {
    "phone": ("phone", 30),
    "company": ("company", 200),
    "customer_code": ("customer code", 64),
}

EDI_REFERENCE_MAX_LENGTH = 100


class OrderRejected(Exception):
    """Raised internally at the first violated constraint."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class AddressDetails:
    street_address: str
    city: str
    postal_code: str
    country: str
    state: str | None = None
    landmark: str | None = None
    contact_person: str | None = None
    contact_phone: str | None = None

    def as_dict(self) -> dict[str, str | None]:
        return asdict(self)


@dataclass(frozen=True)
class OrderSubmission:
    """A structurally valid, normalized order."""

    edi_reference: str
    sender: ContactDetails
    recipient: ContactDetails
    pickup_address: AddressDetails
    delivery_address: AddressDetails
    description: str | None = None
    weight: float | None = None
    dimensions: str | None = None
    declared_value: float | None = None
    fragile: bool = False
    priority: Priority = Priority.STANDARD
    signature_required: bool = False
    insured: bool = False
    estimated_delivery_date: datetime | None = None
    submitted_at: datetime | None = None


@dataclass(frozen=True)
class ValidationOutcome:
    submission: OrderSubmission | None = None
    violations: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.submission is not None and not self.violations


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _number(value: Any, label: str) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise OrderRejected(f"{label} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise OrderRejected(f"{label} must be a number") from None


def _timestamp(value: Any, label: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            raise OrderRejected(f"{label} is not a valid ISO-8601 timestamp") from None
    return parsed.replace(tzinfo=UTC) if parsed.tzinfo is None else parsed


def _bounded(value: str | None, limit: int, label: str) -> str | None:
    if value is not None and len(value) > limit:
        raise OrderRejected(f"{label} must be at most {limit} characters")
    return value


def _block(payload: Mapping, key: str) -> Mapping | None:
    value = payload.get(key)
    if isinstance(value, Mapping) and value:
        return value
    return None


def _contact(block: Mapping, label: str) -> ContactDetails:
    name = _text(block.get("name"))
    if not name:
        raise OrderRejected(f"{label} name is required")
    _bounded(name, 200, f"{label} name")
    email = _text(block.get("email"))
    if not email:
        raise OrderRejected(f"{label} email is required")
    if "@" not in email:
        raise OrderRejected(f"{label} email format is invalid")
    _bounded(email, 254, f"{label} email")
    optional = {
        key: _bounded(_text(block.get(key)), limit, f"{label} {human}") for key, (human, limit) in _CONTACT_FIELDS.items()
    }
    return ContactDetails(
        name=name,
        email=email,
        reference_code=optional["customer_code"],
        phone=optional["phone"],
        company=optional["company"],
    )


def _address(block: Mapping, label: str) -> AddressDetails:
    for key in _REQUIRED_ADDRESS_FIELDS:
        if not _text(block.get(key)):
            raise OrderRejected(f"{label} {_ADDRESS_FIELDS[key][0]} is required")
    return AddressDetails(
        **{key: _bounded(_text(block.get(key)), limit, f"{label} {human}") for key, (human, limit) in _ADDRESS_FIELDS.items()}
    )


class OrderValidator:
    """Fail-fast structural validation of inbound orders."""

    def validate(self, payload: Any) -> ValidationOutcome:
        try:
            return ValidationOutcome(submission=self._normalize(payload))
        except OrderRejected as exc:
            return ValidationOutcome(violations=[exc.message])

    def _normalize(self, payload: Any) -> OrderSubmission:
        if not isinstance(payload, Mapping):
            raise OrderRejected("Order payload must be a JSON object")

        edi_reference = _text(payload.get("edi_reference"))
        if not edi_reference:
            raise OrderRejected("EDI reference is required")
        _bounded(edi_reference, EDI_REFERENCE_MAX_LENGTH, "EDI reference")

        sender = _block(payload, "sender")
        if sender is None:
            raise OrderRejected("Sender information is required")
        recipient = _block(payload, "recipient")
        if recipient is None:
            raise OrderRejected("Recipient information is required")
        pickup = _block(payload, "pickup_address")
        if pickup is None:
            raise OrderRejected("Pickup address is required")
        delivery = _block(payload, "delivery_address")
        if delivery is None:
            raise OrderRejected("Delivery address is required")

        sender_contact = _contact(sender, "Sender")
        recipient_contact = _contact(recipient, "Recipient")
        pickup_address = _address(pickup, "Pickup address")
        delivery_address = _address(delivery, "Delivery address")

        details = payload.get("parcel_details") or {}
        options = payload.get("service_options") or {}
        if not isinstance(details, Mapping):
            raise OrderRejected("Parcel details must be an object")
        if not isinstance(options, Mapping):
            raise OrderRejected("Service options must be an object")

        return OrderSubmission(
            edi_reference=edi_reference,
            sender=sender_contact,
            recipient=recipient_contact,
            pickup_address=pickup_address,
            delivery_address=delivery_address,
            description=_bounded(_text(details.get("description")), 500, "Parcel description"),
            weight=_number(details.get("weight"), "Parcel weight"),
            dimensions=_bounded(_text(details.get("dimensions")), 100, "Parcel dimensions"),
            declared_value=_number(details.get("value"), "Declared value"),
            fragile=_flag(details.get("fragile")),
            priority=Priority.parse(_text(options.get("priority"))),
            signature_required=_flag(options.get("signature_required")),
            insured=_flag(options.get("insurance")),
            estimated_delivery_date=_timestamp(options.get("estimated_delivery_date"), "Estimated delivery date"),
            submitted_at=_timestamp(payload.get("timestamp"), "Order timestamp"),
        )


def validate_order(payload: Any) -> ValidationOutcome:
    return OrderValidator().validate(payload)
