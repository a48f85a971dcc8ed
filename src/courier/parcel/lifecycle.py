"""Parcel lifecycle service: the entry point for state changes and reads.

Runs each change as one command (one unit of work), translates domain
rejections into ``OperationResult`` values, then relays the parcel's
outbox. Store and broker outages during the command propagate to the
caller; a publish failure after commit is reported as a degraded success.
"""

from datetime import datetime

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from courier.messaging.publisher import EventPublisher
from courier.parcel.cancellation import CancelParcel, load_owned_parcel
from courier.parcel.parcel import ParcelStatus, TrackingEventType
from courier.parcel.tracking import TrackingLedger
from courier.parcel.transition import ApplyTransition
from courier.shared.results import ErrorKind, OperationResult

logger = structlog.get_logger(__name__)


def rejection_result(exc: ValidationError, parcel_id: str, current_status: str | None = None) -> OperationResult:
    """Status rule violations are precondition failures; anything else is bad input."""
    messages = exc.messages if isinstance(exc.messages, dict) else {"request": [str(exc.messages)]}
    flat = [message for items in messages.values() for message in items]
    kind = ErrorKind.PRECONDITION if "status" in messages else ErrorKind.VALIDATION
    details = {"currentStatus": current_status} if current_status and kind == ErrorKind.PRECONDITION else {}
    return OperationResult.failure(
        kind,
        flat[0] if flat else "Request rejected",
        parcel_id=parcel_id,
        status=current_status,
        violations=flat,
        details=details,
    )


def not_found_result(parcel_id: str) -> OperationResult:
    return OperationResult.failure(ErrorKind.NOT_FOUND, f"Parcel not found: {parcel_id}", parcel_id=parcel_id)


def _entry_dict(entry) -> dict:
    return {
        "trackingEventId": str(entry.id),
        "eventType": entry.event_type,
        "description": entry.description,
        "location": entry.location,
        "vehicleId": entry.vehicle_id,
        "driverName": entry.driver_name,
        "additionalInfo": entry.additional_info,
        "eventTimestamp": entry.event_timestamp.isoformat() if entry.event_timestamp else None,
        "sequence": entry.sequence,
    }


class ParcelLifecycle:
    def __init__(self, publisher: EventPublisher | None = None, ledger: TrackingLedger | None = None):
        self.publisher = publisher or EventPublisher()
        self.ledger = ledger or TrackingLedger()

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------
    def apply_transition(
        self,
        parcel_id: str,
        new_status: ParcelStatus | str,
        location: str | None = None,
        note: str | None = None,
        occurred_at: datetime | None = None,
        vehicle_id: str | None = None,
        driver_name: str | None = None,
        source_message_id: str | None = None,
    ) -> OperationResult:
        try:
            status = new_status if isinstance(new_status, ParcelStatus) else ParcelStatus(new_status)
        except ValueError:
            return OperationResult.failure(ErrorKind.VALIDATION, f"Unknown parcel status: {new_status}", parcel_id=parcel_id)

        return self._run(
            ApplyTransition,
            parcel_id,
            f"Parcel moved to {status.value}",
            new_status=status.value,
            location=location,
            note=note,
            occurred_at=occurred_at,
            vehicle_id=vehicle_id,
            driver_name=driver_name,
            source_message_id=source_message_id,
        )

    def record_notice(
        self,
        parcel_id: str,
        event_type: TrackingEventType,
        description: str | None = None,
        location: str | None = None,
        metadata: dict | None = None,
    ) -> OperationResult:
        try:
            outcome = self.ledger.append(parcel_id, event_type, description, location, metadata)
        except ObjectNotFoundError:
            return not_found_result(parcel_id)
        except ValidationError as exc:
            return rejection_result(exc, parcel_id)
        return self._after_commit(outcome, f"Tracking notice {event_type.value} recorded")

    def cancel(self, parcel_id: str, reason: str, requested_by: str | None = None) -> OperationResult:
        try:
            current = load_owned_parcel(parcel_id, requested_by)
        except ObjectNotFoundError:
            return not_found_result(parcel_id)

        return self._run(
            CancelParcel,
            parcel_id,
            "Parcel cancelled",
            current_status=current.status,
            reason=reason,
            requested_by=requested_by,
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def track(self, parcel_id: str, requested_by: str | None = None) -> OperationResult:
        """Parcel summary with its history, newest entry first."""
        try:
            parcel = load_owned_parcel(parcel_id, requested_by)
        except ObjectNotFoundError:
            return not_found_result(parcel_id)

        history = [_entry_dict(entry) for entry in self.ledger.history(parcel_id)]
        return OperationResult.ok(
            "Parcel found",
            parcel_id=str(parcel.id),
            status=parcel.status,
            details={
                "ediReference": parcel.edi_reference,
                "priority": parcel.priority,
                "estimatedDeliveryDate": parcel.estimated_delivery_date.isoformat()
                if parcel.estimated_delivery_date
                else None,
                "actualDeliveryDate": parcel.actual_delivery_date.isoformat() if parcel.actual_delivery_date else None,
                "history": history,
            },
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _run(self, command_cls, parcel_id: str, message: str, current_status: str | None = None, **fields):
        try:
            command = command_cls(parcel_id=parcel_id, **fields)
            outcome = current_domain.process(command, asynchronous=False)
        except ObjectNotFoundError:
            return not_found_result(parcel_id)
        except ValidationError as exc:
            logger.info("Parcel change rejected", parcel_id=parcel_id, errors=exc.messages)
            return rejection_result(exc, parcel_id, current_status or self._current_status(parcel_id))
        return self._after_commit(outcome, message)

    def _current_status(self, parcel_id: str) -> str | None:
        try:
            return load_owned_parcel(parcel_id, None).status
        except ObjectNotFoundError:
            return None

    def _after_commit(self, outcome: dict, message: str) -> OperationResult:
        parcel_id = outcome["parcel_id"]
        if outcome.get("replayed"):
            return OperationResult.ok(
                "Carrier message already applied",
                parcel_id=parcel_id,
                status=outcome["status"],
                duplicate=True,
                published=self.publisher.relay_pending(parcel_id).complete,
            )

        report = self.publisher.relay_pending(parcel_id)
        if not report.complete:
            logger.error("State change committed but event not published", parcel_id=parcel_id, error=report.error)
            return OperationResult.ok(
                f"{message}; event pending publish",
                parcel_id=parcel_id,
                status=outcome["status"],
                published=False,
            )
        return OperationResult.ok(message, parcel_id=parcel_id, status=outcome["status"], published=True)
