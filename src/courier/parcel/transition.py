"""Carrier-driven status transition: command and handler.

The status change, its ledger entry and the tracking outbox message are
saved together. A carrier message id already present in the ledger marks
a redelivery; it is acknowledged without touching the parcel.
"""

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from courier.domain import courier
from courier.outbox.outbound_message import OutboundMessage
from courier.outbox.staging import stage_tracking
from courier.parcel.parcel import Parcel, ParcelStatus

logger = structlog.get_logger(__name__)


@courier.command(part_of="Parcel")
class ApplyTransition:
    """Move a parcel to a new status reported by the carrier."""

    parcel_id = Identifier(required=True)
    new_status = String(required=True, max_length=30, choices=ParcelStatus)
    location = String(max_length=200)
    note = Text()
    occurred_at = DateTime()
    vehicle_id = String(max_length=50)
    driver_name = String(max_length=100)
    source_message_id = String(max_length=100)


@courier.command_handler(part_of=Parcel)
class ApplyTransitionHandler:
    @handle(ApplyTransition)
    def apply_transition(self, command):
        repo = current_domain.repository_for(Parcel)
        parcel = repo.get(command.parcel_id)

        if parcel.has_processed(command.source_message_id):
            logger.info(
                "Carrier message already applied, ignoring redelivery",
                parcel_id=str(parcel.id),
                message_id=command.source_message_id,
            )
            return {"parcel_id": str(parcel.id), "status": parcel.status, "replayed": True}

        previous_status = parcel.status
        entry = parcel.apply_status(
            ParcelStatus(command.new_status),
            location=command.location,
            note=command.note,
            occurred_at=command.occurred_at,
            vehicle_id=command.vehicle_id,
            driver_name=command.driver_name,
            source_message_id=command.source_message_id,
        )
        message = stage_tracking(parcel, entry, previous_status)

        repo.add(parcel)
        current_domain.repository_for(OutboundMessage).add(message)
        logger.info(
            "Parcel status changed",
            parcel_id=str(parcel.id),
            previous_status=previous_status,
            new_status=parcel.status,
            correlation_id=message.correlation_id,
        )
        return {"parcel_id": str(parcel.id), "status": parcel.status, "replayed": False}
