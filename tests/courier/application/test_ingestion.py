"""Order ingestion: validation, party resolution, registration and publishing."""

from courier.messaging import channels
from courier.outbox.outbound_message import OutboundMessage
from courier.parcel.ingestion import ParcelIngestion, find_by_edi_reference
from courier.parcel.lifecycle import ParcelLifecycle
from courier.parcel.parcel import Parcel, ParcelStatus, Priority
from courier.party.party import Party
from courier.shared.results import ErrorKind
from protean import current_domain
from protean.exceptions import ValidationError


def _parties():
    return current_domain.repository_for(Party)._dao.query.all().items


def _outbox(parcel_id):
    return current_domain.repository_for(OutboundMessage)._dao.query.filter(partition_key=parcel_id).all().items


class RejectingResolver:
    """Resolver whose party rules reject the contact."""

    def resolve(self, contact):
        raise ValidationError({"phone": ["String should have at most 30 characters"]})


class TestRegistration:
    def test_valid_order_registers_parcel(self, make_order):
        result = ParcelIngestion().ingest(make_order())

        assert result.success
        assert result.parcel_id.startswith("PKG-")
        assert result.status == ParcelStatus.REGISTERED.value
        assert result.published is True
        assert not result.duplicate

        parcel = current_domain.repository_for(Parcel).get(result.parcel_id)
        assert parcel.edi_reference == "EDI-2024-001"
        assert parcel.priority == Priority.EXPRESS.value
        assert parcel.insured is True
        assert parcel.pickup_address.city == "New York"
        assert parcel.delivery_address.landmark == "Next to the pharmacy"
        assert [e.event_type for e in parcel.tracking_events] == ["REGISTERED"]

    def test_registration_event_is_published_to_carrier(self, make_order, transport):
        result = ParcelIngestion().ingest(make_order())

        sent = transport.sent_to(channels.carrier_events())
        assert len(sent) == 1
        delivery = sent[0]
        assert delivery.headers["partitionKey"] == result.parcel_id
        assert delivery.headers["correlationId"] == f"{result.parcel_id}-1"
        assert delivery.payload["eventType"] == "ABC_TRANSPORT_EVENT"
        assert delivery.payload["messageType"] == "PARCEL_REGISTRATION"
        assert delivery.payload["ediReference"] == "EDI-2024-001"
        assert delivery.payload["sender"]["name"] == "John Doe"
        assert delivery.payload["recipient"]["email"] == "jane@example.com"
        assert "eventId" in delivery.payload

    def test_outbox_row_is_marked_published(self, make_order):
        result = ParcelIngestion().ingest(make_order())
        rows = _outbox(result.parcel_id)
        assert len(rows) == 1
        assert not rows[0].is_pending
        assert rows[0].attempts == 1

    def test_parties_are_created_with_reference_codes(self, make_order):
        ParcelIngestion().ingest(make_order())
        parties = _parties()
        assert sorted(p.email for p in parties) == ["jane@example.com", "john@example.com"]
        assert all(p.reference_code.startswith("CUST-") for p in parties)

    def test_existing_party_is_reused(self, make_order):
        ParcelIngestion().ingest(make_order())
        ParcelIngestion().ingest(make_order(edi_reference="EDI-2024-002"))
        assert len(_parties()) == 2

    def test_party_found_by_customer_code(self, make_order):
        order = make_order()
        order["sender"]["customer_code"] = "CUST-ACME"
        first = ParcelIngestion().ingest(order)

        second_order = make_order(edi_reference="EDI-2024-002")
        second_order["sender"]["customer_code"] = "CUST-ACME"
        second_order["sender"]["email"] = "shipping@acme.example.com"
        second = ParcelIngestion().ingest(second_order)

        repo = current_domain.repository_for(Parcel)
        assert repo.get(first.parcel_id).sender_id == repo.get(second.parcel_id).sender_id

    def test_same_person_as_sender_and_recipient(self, make_order):
        order = make_order()
        order["recipient"] = dict(order["sender"])
        result = ParcelIngestion().ingest(order)

        assert result.success
        parcel = current_domain.repository_for(Parcel).get(result.parcel_id)
        assert parcel.sender_id == parcel.recipient_id
        assert len(_parties()) == 1

    def test_client_supplied_parcel_id_is_ignored(self, make_order):
        result = ParcelIngestion().ingest(make_order(parcel_id="PKG-CLIENT"))
        assert result.parcel_id != "PKG-CLIENT"


class TestDuplicateOrders:
    def test_resubmission_returns_existing_parcel(self, make_order, transport):
        first = ParcelIngestion().ingest(make_order())
        second = ParcelIngestion().ingest(make_order())

        assert second.success
        assert second.duplicate
        assert second.parcel_id == first.parcel_id
        assert len(transport.sent_to(channels.carrier_events())) == 1
        assert find_by_edi_reference("EDI-2024-001").id == first.parcel_id

    def test_resubmission_reports_current_status(self, make_order, registered_parcel):
        ParcelLifecycle().apply_transition(registered_parcel, ParcelStatus.PICKED_UP)
        result = ParcelIngestion().ingest(make_order())
        assert result.status == ParcelStatus.PICKED_UP.value


class TestRejectedOrders:
    def test_invalid_order_is_rejected(self, make_order, transport):
        order = make_order()
        order["sender"]["email"] = "not-an-email"
        result = ParcelIngestion().ingest(order)

        assert not result.success
        assert result.error_kind == ErrorKind.VALIDATION
        assert result.message == "Sender email format is invalid"
        assert result.violations == ["Sender email format is invalid"]
        assert transport.sent == []
        assert find_by_edi_reference("EDI-2024-001") is None
        assert _parties() == []

    def test_overlong_contact_field_writes_nothing(self, make_order, transport):
        order = make_order()
        order["sender"]["phone"] = "+1 (555) 010-0100 extension 98765"
        result = ParcelIngestion().ingest(order)

        assert result.error_kind == ErrorKind.VALIDATION
        assert result.message == "Sender phone must be at most 30 characters"
        assert _parties() == []
        assert transport.sent == []

    def test_overlong_address_field_writes_nothing(self, make_order):
        order = make_order()
        order["delivery_address"]["postal_code"] = "11217-0000-0000-0000-0000"
        result = ParcelIngestion().ingest(order)

        assert result.error_kind == ErrorKind.VALIDATION
        assert result.message == "Delivery address postal code must be at most 20 characters"
        assert find_by_edi_reference("EDI-2024-001") is None
        assert _parties() == []

    def test_party_rule_violation_is_reported_as_validation(self, make_order):
        result = ParcelIngestion(resolver=RejectingResolver()).ingest(make_order())

        assert not result.success
        assert result.error_kind == ErrorKind.VALIDATION
        assert result.violations == ["phone: String should have at most 30 characters"]
        assert find_by_edi_reference("EDI-2024-001") is None


class TestDegradedPublishing:
    def test_broker_outage_after_commit_is_degraded_success(self, make_order, transport):
        transport.configure(should_succeed=False)
        result = ParcelIngestion().ingest(make_order())

        assert result.success
        assert result.published is False
        assert result.degraded
        assert current_domain.repository_for(Parcel).get(result.parcel_id) is not None

        rows = _outbox(result.parcel_id)
        assert len(rows) == 1
        assert rows[0].is_pending
        assert rows[0].last_error == "Broker unavailable"

    def test_resubmission_relays_pending_registration(self, make_order, transport):
        transport.configure(should_succeed=False)
        first = ParcelIngestion().ingest(make_order())

        transport.configure(should_succeed=True)
        second = ParcelIngestion().ingest(make_order())

        assert second.duplicate
        assert second.published is True
        sent = transport.sent_to(channels.carrier_events())
        assert len(sent) == 1
        assert sent[0].payload["correlationId"] == f"{first.parcel_id}-1"
