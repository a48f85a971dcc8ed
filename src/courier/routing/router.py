"""Inbound event router: turns channel messages into lifecycle operations.

Acknowledgement policy:
    ACK   success, duplicate, validation failure, unknown message type,
          unknown parcel, precondition rejection (none of these can
          succeed on redelivery)
    NACK  infrastructure failure (store or broker unavailable); the
          transport redelivers and the operation is retried

Carrier messages for one parcel are serialized on the parcel id; orders
are serialized on their EDI reference inside ``ParcelIngestion``.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError as MessageValidationError

from courier.messaging import channels
from courier.parcel.ingestion import ParcelIngestion
from courier.parcel.lifecycle import ParcelLifecycle
from courier.routing.carrier_messages import CarrierMessage, interpret
from courier.shared.locks import KeyedLocks
from courier.shared.results import ErrorKind, OperationResult
from courier.utils.logging import bound_context

logger = structlog.get_logger(__name__)


class Disposition(Enum):
    ACK = "ACK"
    NACK = "NACK"


@dataclass(frozen=True)
class RoutingOutcome:
    disposition: Disposition
    result: OperationResult

    @property
    def acked(self) -> bool:
        return self.disposition == Disposition.ACK


def _infrastructure_failure(exc: Exception, parcel_id: str | None = None) -> RoutingOutcome:
    return RoutingOutcome(
        Disposition.NACK,
        OperationResult.failure(ErrorKind.INFRASTRUCTURE, str(exc) or type(exc).__name__, parcel_id=parcel_id),
    )


def _rejected(message: str, violations: list[str] | None = None) -> RoutingOutcome:
    return RoutingOutcome(
        Disposition.ACK,
        OperationResult.failure(ErrorKind.VALIDATION, message, violations=violations or [message]),
    )


class InboundEventRouter:
    _parcel_locks = KeyedLocks()

    def __init__(self, ingestion: ParcelIngestion | None = None, lifecycle: ParcelLifecycle | None = None):
        self.ingestion = ingestion or ParcelIngestion()
        self.lifecycle = lifecycle or ParcelLifecycle()

    def route(self, channel: str, message: Any) -> RoutingOutcome:
        """Dispatch a message by the channel it arrived on."""
        if channel == channels.incoming_orders():
            return self.on_order_submission(message)
        if channel == channels.carrier_responses():
            return self.on_carrier_status(message)
        logger.error("Message on unrouted channel", channel=channel)
        return _rejected(f"No route for channel {channel}")

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    def on_order_submission(self, message: Any) -> RoutingOutcome:
        edi_reference = message.get("edi_reference") if isinstance(message, Mapping) else None
        with bound_context(channel=channels.incoming_orders(), edi_reference=edi_reference):
            try:
                result = self.ingestion.ingest(message)
            except Exception as exc:
                logger.exception("Order ingestion failed, requesting redelivery")
                return _infrastructure_failure(exc)

            if result.success:
                logger.info("Order processed", parcel_id=result.parcel_id, duplicate=result.duplicate)
            else:
                logger.warning("Order rejected", reason=result.message)
            return RoutingOutcome(Disposition.ACK, result)

    # -------------------------------------------------------------------
    # Carrier status
    # -------------------------------------------------------------------
    def on_carrier_status(self, message: Any) -> RoutingOutcome:
        if not isinstance(message, Mapping):
            logger.warning("Carrier message is not an object", channel=channels.carrier_responses())
            return _rejected("Carrier message must be a JSON object")

        try:
            parsed = CarrierMessage.model_validate(message)
        except MessageValidationError as exc:
            violations = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
            logger.warning(
                "Carrier message rejected",
                message_type=message.get("messageType"),
                violations=violations,
            )
            return _rejected("Malformed or unknown carrier message", violations)

        if parsed.parcel_id is None:
            logger.warning("Carrier message without parcelId", message_type=parsed.message_type.value)
            return _rejected("Carrier message has no parcelId")

        with bound_context(
            channel=channels.carrier_responses(),
            parcel_id=parsed.parcel_id,
            message_type=parsed.message_type.value,
            message_id=parsed.message_id,
        ):
            with self._parcel_locks.hold(parsed.parcel_id):
                try:
                    result = self._apply(parsed)
                except Exception as exc:
                    logger.exception("Carrier message failed, requesting redelivery")
                    return _infrastructure_failure(exc, parsed.parcel_id)

            if result.error_kind == ErrorKind.NOT_FOUND:
                logger.warning("Carrier message for unknown parcel dropped")
            elif not result.success:
                logger.warning("Carrier message rejected", reason=result.message)
            return RoutingOutcome(Disposition.ACK, result)

    def _apply(self, message: CarrierMessage) -> OperationResult:
        action = interpret(message)
        if action.is_transition:
            return self.lifecycle.apply_transition(
                message.parcel_id,
                action.status,
                location=action.location,
                note=action.note,
                occurred_at=message.timestamp,
                vehicle_id=message.vehicle_id,
                driver_name=message.driver_name,
                source_message_id=message.message_id,
            )
        return self.lifecycle.record_notice(
            message.parcel_id,
            action.notice_type,
            description=action.description,
            location=action.location,
            metadata={
                "additional_info": action.note,
                "occurred_at": message.timestamp,
                "vehicle_id": message.vehicle_id,
                "driver_name": message.driver_name,
                "source_message_id": message.message_id,
            },
        )
