"""Tracking ledger: append notices and read a parcel's history.

Notices are ledger entries that do not move the parcel (for example a
scheduled pickup). Reads go through ``LedgerView``, which fetches the
parcel from the store each time it is iterated, so a view handed out
earlier always reflects the latest committed entries.
"""

from collections.abc import Iterator

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from courier.domain import courier
from courier.outbox.outbound_message import OutboundMessage
from courier.outbox.staging import stage_tracking
from courier.parcel.parcel import Parcel, TrackingEvent, TrackingEventType

logger = structlog.get_logger(__name__)


@courier.command(part_of="Parcel")
class RecordTrackingNotice:
    """Append a ledger entry without changing the parcel's status."""

    parcel_id = Identifier(required=True)
    event_type = String(required=True, max_length=50, choices=TrackingEventType)
    description = String(max_length=500)
    location = String(max_length=200)
    additional_info = Text()
    occurred_at = DateTime()
    vehicle_id = String(max_length=50)
    driver_name = String(max_length=100)
    source_message_id = String(max_length=100)


@courier.command_handler(part_of=Parcel)
class RecordTrackingNoticeHandler:
    @handle(RecordTrackingNotice)
    def record_tracking_notice(self, command):
        repo = current_domain.repository_for(Parcel)
        parcel = repo.get(command.parcel_id)

        if parcel.has_processed(command.source_message_id):
            logger.info(
                "Tracking notice already recorded, ignoring redelivery",
                parcel_id=str(parcel.id),
                message_id=command.source_message_id,
            )
            return {"parcel_id": str(parcel.id), "status": parcel.status, "replayed": True}

        entry = parcel.record_notice(
            TrackingEventType(command.event_type),
            description=command.description,
            location=command.location,
            additional_info=command.additional_info,
            occurred_at=command.occurred_at,
            vehicle_id=command.vehicle_id,
            driver_name=command.driver_name,
            source_message_id=command.source_message_id,
        )
        message = stage_tracking(parcel, entry, parcel.status)

        repo.add(parcel)
        current_domain.repository_for(OutboundMessage).add(message)
        logger.info(
            "Tracking notice recorded",
            parcel_id=str(parcel.id),
            event_type=command.event_type,
            correlation_id=message.correlation_id,
        )
        return {"parcel_id": str(parcel.id), "status": parcel.status, "replayed": False}


class LedgerView:
    """Restartable view over a parcel's history, newest entry first."""

    def __init__(self, parcel_id: str):
        self.parcel_id = parcel_id

    def __iter__(self) -> Iterator[TrackingEvent]:
        parcel = current_domain.repository_for(Parcel).get(self.parcel_id)
        return iter(parcel.history())

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def latest(self) -> TrackingEvent | None:
        return next(iter(self), None)


class TrackingLedger:
    """Append-only access to parcel tracking entries."""

    def append(
        self,
        parcel_id: str,
        event_type: TrackingEventType,
        description: str | None = None,
        location: str | None = None,
        metadata: dict | None = None,
    ) -> dict:
        """Record a notice. ``metadata`` carries carrier specifics:
        additional_info, occurred_at, vehicle_id, driver_name, source_message_id.
        """
        metadata = metadata or {}
        command = RecordTrackingNotice(
            parcel_id=parcel_id,
            event_type=event_type.value,
            description=description,
            location=location,
            additional_info=metadata.get("additional_info"),
            occurred_at=metadata.get("occurred_at"),
            vehicle_id=metadata.get("vehicle_id"),
            driver_name=metadata.get("driver_name"),
            source_message_id=metadata.get("source_message_id"),
        )
        return current_domain.process(command, asynchronous=False)

    def history(self, parcel_id: str) -> LedgerView:
        return LedgerView(parcel_id)
