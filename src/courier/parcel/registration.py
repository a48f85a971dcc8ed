"""Parcel registration: command and handler.

Creates the parcel, its REGISTERED ledger entry and the registration
outbox message in one unit of work.
"""

import json

import structlog
from protean import handle
from protean.fields import Boolean, DateTime, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from courier.domain import courier
from courier.outbox.outbound_message import OutboundMessage
from courier.outbox.staging import stage_registration
from courier.parcel.parcel import Address, Parcel, Priority
from courier.party.party import Party

logger = structlog.get_logger(__name__)


@courier.command(part_of="Parcel")
class RegisterParcel:
    """Register a validated order as a new parcel."""

    parcel_id = Identifier(required=True)
    edi_reference = String(required=True, max_length=100)
    sender_id = Identifier(required=True)
    recipient_id = Identifier(required=True)
    pickup_address = Text(required=True)  # JSON address dict
    delivery_address = Text(required=True)  # JSON address dict
    description = String(max_length=500)
    weight = Float()
    dimensions = String(max_length=100)
    declared_value = Float()
    fragile = Boolean(default=False)
    priority = String(max_length=20, default=Priority.STANDARD.value)
    signature_required = Boolean(default=False)
    insured = Boolean(default=False)
    estimated_delivery_date = DateTime()


@courier.command_handler(part_of=Parcel)
class RegisterParcelHandler:
    @handle(RegisterParcel)
    def register_parcel(self, command):
        party_repo = current_domain.repository_for(Party)
        sender = party_repo.get(command.sender_id)
        recipient = party_repo.get(command.recipient_id)

        parcel = Parcel.register(
            parcel_id=command.parcel_id,
            edi_reference=command.edi_reference,
            sender_id=command.sender_id,
            recipient_id=command.recipient_id,
            pickup_address=Address(**json.loads(command.pickup_address)),
            delivery_address=Address(**json.loads(command.delivery_address)),
            priority=Priority.parse(command.priority),
            description=command.description,
            weight=command.weight,
            dimensions=command.dimensions,
            declared_value=command.declared_value,
            fragile=command.fragile,
            signature_required=command.signature_required,
            insured=command.insured,
            estimated_delivery_date=command.estimated_delivery_date,
        )
        message = stage_registration(parcel, sender, recipient)

        current_domain.repository_for(Parcel).add(parcel)
        current_domain.repository_for(OutboundMessage).add(message)
        logger.info(
            "Parcel registered",
            parcel_id=str(parcel.id),
            edi_reference=parcel.edi_reference,
            correlation_id=message.correlation_id,
        )
        return str(parcel.id)
