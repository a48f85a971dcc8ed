"""Event publisher and outbox relay."""

from courier.messaging import channels
from courier.messaging.publisher import EventPublisher
from courier.outbox.outbound_message import OutboundMessage
from courier.parcel.ingestion import ParcelIngestion
from courier.parcel.lifecycle import ParcelLifecycle
from courier.parcel.parcel import ParcelStatus
from courier.transport.fake_adapter import FakeTransport
from protean import current_domain


def _pending():
    return current_domain.repository_for(OutboundMessage)._dao.query.filter(status="PENDING").all().items


class TestPublish:
    def test_publish_stamps_and_sends(self, transport):
        result = EventPublisher().publish(
            "parcel-tracking-events",
            {"eventType": "TRACKING_EVENT", "parcelId": "PKG-1"},
            partition_key="PKG-1",
            correlation_id="PKG-1-7",
        )

        assert result.success
        assert result.correlation_id == "PKG-1-7"
        delivery = transport.sent[0]
        assert delivery.payload["eventId"] == result.event_id
        assert delivery.payload["correlationId"] == "PKG-1-7"
        assert delivery.headers == {"partitionKey": "PKG-1", "eventType": "TRACKING_EVENT", "correlationId": "PKG-1-7"}

    def test_correlation_id_is_derived_when_missing(self):
        publisher = EventPublisher()
        first = publisher.publish("c", {"eventType": "X"}, partition_key="PKG-9")
        second = publisher.publish("c", {"eventType": "X"}, partition_key="PKG-9")

        assert first.correlation_id.startswith("PKG-9-")
        assert second.correlation_id.startswith("PKG-9-")
        assert int(second.correlation_id.rsplit("-", 1)[1]) > int(first.correlation_id.rsplit("-", 1)[1])

    def test_extra_headers_are_kept(self, transport):
        EventPublisher().publish("c", {"eventType": "X"}, partition_key="PKG-1", headers={"traceId": "t-1"})
        assert transport.sent[0].headers["traceId"] == "t-1"

    def test_transport_failure_is_returned_not_raised(self, transport):
        transport.configure(should_succeed=False, failure_reason="Connection refused")
        result = EventPublisher().publish("c", {"eventType": "X"}, partition_key="PKG-1")

        assert not result.success
        assert result.error == "Connection refused"
        assert result.event_id

    def test_explicit_transport_is_used(self, transport):
        own = FakeTransport()
        EventPublisher(transport=own).publish("c", {"eventType": "X"}, partition_key="PKG-1")
        assert len(own.sent) == 1
        assert transport.sent == []


class TestRelay:
    def test_relay_all_republishes_after_outage(self, make_order, transport):
        transport.configure(should_succeed=False)
        first = ParcelIngestion().ingest(make_order())
        second = ParcelIngestion().ingest(make_order(edi_reference="EDI-2024-002"))
        ParcelLifecycle().apply_transition(first.parcel_id, ParcelStatus.PICKED_UP)
        assert len(_pending()) == 3

        transport.configure(should_succeed=True)
        report = EventPublisher().relay_all()

        assert report.complete
        assert report.published == 3
        assert _pending() == []
        assert {d.headers["partitionKey"] for d in transport.sent} == {first.parcel_id, second.parcel_id}

        first_events = [d.payload["correlationId"] for d in transport.sent if d.headers["partitionKey"] == first.parcel_id]
        assert first_events == [f"{first.parcel_id}-1", f"{first.parcel_id}-2"]

    def test_relay_stops_at_first_failure(self, registered_parcel, transport):
        transport.configure(should_succeed=False)
        ParcelLifecycle().apply_transition(registered_parcel, ParcelStatus.PICKED_UP)
        ParcelLifecycle().apply_transition(registered_parcel, ParcelStatus.IN_TRANSIT)

        report = EventPublisher().relay_pending(registered_parcel)

        assert not report.complete
        assert report.published == 0
        assert report.pending == 2
        assert report.error == "Broker unavailable"
        first_pending = min(_pending(), key=lambda m: m.sequence)
        assert first_pending.attempts >= 1

    def test_relay_with_nothing_pending(self, registered_parcel):
        report = EventPublisher().relay_pending(registered_parcel)
        assert report.complete
        assert report.published == 0

    def test_each_relay_attempt_gets_new_event_id(self, registered_parcel, transport):
        transport.configure(should_succeed=False)
        ParcelLifecycle().apply_transition(registered_parcel, ParcelStatus.PICKED_UP)
        transport.configure(should_succeed=True)
        EventPublisher().relay_pending(registered_parcel)

        tracking = transport.sent_to(channels.tracking_events())
        assert len(tracking) == 1
        row = current_domain.repository_for(OutboundMessage)._dao.query.filter(
            partition_key=registered_parcel, sequence=2
        ).all().first
        assert row.last_event_id == tracking[0].payload["eventId"]
        assert row.attempts == 2
