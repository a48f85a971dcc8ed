"""Parcel cancellation: command and handler.

Only the sender may cancel, and only while the parcel is REGISTERED or
PICKED_UP. A request naming someone other than the sender is treated
exactly like an unknown parcel, so ids cannot be probed.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from courier.domain import courier
from courier.outbox.outbound_message import OutboundMessage
from courier.outbox.staging import stage_tracking
from courier.parcel.parcel import Parcel

logger = structlog.get_logger(__name__)


def load_owned_parcel(parcel_id: str, requested_by: str | None) -> Parcel:
    """Fetch a parcel, hiding it from anyone who is not its sender."""
    parcel = current_domain.repository_for(Parcel).get(parcel_id)
    if requested_by and str(parcel.sender_id) != str(requested_by):
        raise ObjectNotFoundError(f"`Parcel` object with identifier {parcel_id} does not exist.")
    return parcel


@courier.command(part_of="Parcel")
class CancelParcel:
    """Cancel a parcel at the sender's request."""

    parcel_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    requested_by = Identifier()


@courier.command_handler(part_of=Parcel)
class CancelParcelHandler:
    @handle(CancelParcel)
    def cancel_parcel(self, command):
        parcel = load_owned_parcel(command.parcel_id, command.requested_by)

        previous_status = parcel.status
        entry = parcel.cancel(command.reason)
        message = stage_tracking(parcel, entry, previous_status)

        current_domain.repository_for(Parcel).add(parcel)
        current_domain.repository_for(OutboundMessage).add(message)
        logger.info(
            "Parcel cancelled",
            parcel_id=str(parcel.id),
            previous_status=previous_status,
            correlation_id=message.correlation_id,
        )
        return {"parcel_id": str(parcel.id), "status": parcel.status}
