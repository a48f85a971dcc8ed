"""Order ingestion: validate, resolve parties, register, publish.

A resubmitted order (same EDI reference) is an idempotent replay: the
existing parcel is returned with ``duplicate=True`` and nothing new is
written. Any of its events still waiting in the outbox are relayed, which
covers the case where the first submission committed but its publish
failed.
"""

import json

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from courier.messaging.publisher import EventPublisher
from courier.parcel.parcel import Parcel
from courier.parcel.registration import RegisterParcel
from courier.parcel.validation import OrderSubmission, OrderValidator
from courier.party.resolution import PartyResolver
from courier.shared.identifiers import new_parcel_id
from courier.shared.locks import KeyedLocks
from courier.shared.results import ErrorKind, OperationResult

logger = structlog.get_logger(__name__)


def find_by_edi_reference(edi_reference: str) -> Parcel | None:
    results = current_domain.repository_for(Parcel)._dao.query.filter(edi_reference=edi_reference).all()
    return results.first if results.items else None


def _flatten_messages(exc: ValidationError) -> list[str]:
    messages = exc.messages if isinstance(exc.messages, dict) else {"order": [str(exc.messages)]}
    return [f"{field}: {message}" for field, items in messages.items() for message in items]


class ParcelIngestion:
    """Turns raw orders into registered, announced parcels.

    Submissions sharing an EDI reference are serialized so the duplicate
    check and the registration cannot interleave.
    """

    _order_locks = KeyedLocks()

    def __init__(
        self,
        validator: OrderValidator | None = None,
        resolver: PartyResolver | None = None,
        publisher: EventPublisher | None = None,
    ):
        self.validator = validator or OrderValidator()
        self.resolver = resolver or PartyResolver()
        self.publisher = publisher or EventPublisher()

    def ingest(self, payload) -> OperationResult:
        outcome = self.validator.validate(payload)
        if not outcome.is_valid:
            logger.warning("Order rejected", violations=outcome.violations)
            return OperationResult.failure(
                ErrorKind.VALIDATION,
                outcome.violations[0],
                violations=outcome.violations,
            )

        submission = outcome.submission
        with self._order_locks.hold(submission.edi_reference):
            existing = find_by_edi_reference(submission.edi_reference)
            if existing is not None:
                return self._replay(existing)

            try:
                sender_id = self.resolver.resolve(submission.sender)
                recipient_id = self.resolver.resolve(submission.recipient)
                parcel_id = current_domain.process(
                    self._register_command(submission, sender_id, recipient_id),
                    asynchronous=False,
                )
            except ValidationError as exc:
                violations = _flatten_messages(exc)
                logger.warning(
                    "Order rejected by domain rules",
                    edi_reference=submission.edi_reference,
                    violations=violations,
                )
                return OperationResult.failure(ErrorKind.VALIDATION, violations[0], violations=violations)

        report = self.publisher.relay_pending(parcel_id)
        if not report.complete:
            logger.error(
                "Parcel registered but registration event not published",
                parcel_id=parcel_id,
                error=report.error,
            )
            return OperationResult.ok(
                "Parcel registered; registration event pending publish",
                parcel_id=parcel_id,
                status="REGISTERED",
                published=False,
            )

        return OperationResult.ok(
            "Parcel registered",
            parcel_id=parcel_id,
            status="REGISTERED",
            published=True,
        )

    def _replay(self, parcel: Parcel) -> OperationResult:
        logger.info("Duplicate order, returning existing parcel", parcel_id=str(parcel.id), edi_reference=parcel.edi_reference)
        report = self.publisher.relay_pending(str(parcel.id))
        return OperationResult.ok(
            "Order already registered",
            parcel_id=str(parcel.id),
            status=parcel.status,
            published=report.complete,
            duplicate=True,
        )

    @staticmethod
    def _register_command(submission: OrderSubmission, sender_id: str, recipient_id: str) -> RegisterParcel:
        return RegisterParcel(
            parcel_id=new_parcel_id(),
            edi_reference=submission.edi_reference,
            sender_id=sender_id,
            recipient_id=recipient_id,
            pickup_address=json.dumps(submission.pickup_address.as_dict()),
            delivery_address=json.dumps(submission.delivery_address.as_dict()),
            description=submission.description,
            weight=submission.weight,
            dimensions=submission.dimensions,
            declared_value=submission.declared_value,
            fragile=submission.fragile,
            priority=submission.priority.value,
            signature_required=submission.signature_required,
            insured=submission.insured,
            estimated_delivery_date=submission.estimated_delivery_date,
        )
