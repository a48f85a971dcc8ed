"""Broker transport adapter over a Protean-style broker."""

from collections import defaultdict, deque

import pytest
from courier.transport import get_transport, reset_transport, set_transport
from courier.transport.broker_adapter import BrokerTransport
from courier.transport.fake_adapter import FakeTransport
from courier.transport.port import TransportError


class StubBroker:
    """Minimal stand-in exposing the broker calls the adapter uses."""

    def __init__(self):
        self.streams: dict[str, deque] = defaultdict(deque)
        self.acked: list[tuple[str, str, str]] = []
        self.nacked: list[tuple[str, str, str]] = []
        self.fail = False
        self.settle_result = True
        self._next_id = 0

    def publish(self, stream, message):
        if self.fail:
            raise ConnectionError("redis unreachable")
        self._next_id += 1
        identifier = f"{self._next_id}-0"
        self.streams[stream].append((identifier, message))
        return identifier

    def get_next(self, stream, consumer_group):
        if self.fail:
            raise ConnectionError("redis unreachable")
        queue = self.streams[stream]
        return queue.popleft() if queue else None

    def ack(self, stream, identifier, consumer_group):
        self.acked.append((stream, identifier, consumer_group))
        return self.settle_result

    def nack(self, stream, identifier, consumer_group):
        self.nacked.append((stream, identifier, consumer_group))
        return self.settle_result


@pytest.fixture()
def broker():
    return StubBroker()


@pytest.fixture()
def adapter(broker):
    return BrokerTransport(broker=broker)


class TestSend:
    def test_message_is_wrapped_with_headers(self, adapter, broker):
        delivery_id = adapter.send("abc-transport-events", {"parcelId": "PKG-1"}, {"partitionKey": "PKG-1"})

        assert delivery_id == "1-0"
        _, message = broker.streams["abc-transport-events"][0]
        assert message == {"headers": {"partitionKey": "PKG-1"}, "payload": {"parcelId": "PKG-1"}}

    def test_broker_error_becomes_transport_error(self, adapter, broker):
        broker.fail = True
        with pytest.raises(TransportError, match="redis unreachable"):
            adapter.send("c", {}, {})

    def test_rejected_publish_is_transport_error(self, adapter, broker, monkeypatch):
        monkeypatch.setattr(broker, "publish", lambda stream, message: None)
        with pytest.raises(TransportError):
            adapter.send("c", {}, {})


class TestReceive:
    def test_round_trip_keeps_headers(self, adapter):
        adapter.send("c", {"parcelId": "PKG-1"}, {"partitionKey": "PKG-1"})
        delivery = adapter.receive("c", "courier")

        assert delivery.channel == "c"
        assert delivery.delivery_id == "1-0"
        assert delivery.payload == {"parcelId": "PKG-1"}
        assert delivery.partition_key == "PKG-1"

    def test_foreign_messages_are_delivered_whole(self, adapter, broker):
        broker.streams["c"].append(("9-0", {"messageType": "PARCEL_PICKED_UP"}))
        delivery = adapter.receive("c", "courier")
        assert delivery.payload == {"messageType": "PARCEL_PICKED_UP"}
        assert delivery.headers == {}

    def test_idle_channel(self, adapter):
        assert adapter.receive("c", "courier") is None

    def test_read_error_becomes_transport_error(self, adapter, broker):
        broker.fail = True
        with pytest.raises(TransportError):
            adapter.receive("c", "courier")


class TestSettle:
    def test_ack_and_nack_pass_through(self, adapter, broker):
        adapter.send("c", {}, {})
        adapter.send("c", {}, {})
        first = adapter.receive("c", "courier")
        second = adapter.receive("c", "courier")

        adapter.ack(first, "courier")
        adapter.nack(second, "courier")

        assert broker.acked == [("c", "1-0", "courier")]
        assert broker.nacked == [("c", "2-0", "courier")]

    def test_refused_settlement_does_not_raise(self, adapter, broker):
        broker.settle_result = False
        adapter.send("c", {}, {})
        adapter.ack(adapter.receive("c", "courier"), "courier")
        assert len(broker.acked) == 1


class TestRegistry:
    def test_fake_adapter_selected_by_environment(self, monkeypatch):
        reset_transport()
        monkeypatch.setenv("COURIER_TRANSPORT", "fake")
        assert isinstance(get_transport(), FakeTransport)

    def test_broker_adapter_is_default(self, monkeypatch):
        reset_transport()
        monkeypatch.delenv("COURIER_TRANSPORT", raising=False)
        assert isinstance(get_transport(), BrokerTransport)

    def test_unknown_adapter(self, monkeypatch):
        reset_transport()
        monkeypatch.setenv("COURIER_TRANSPORT", "carrier-pigeon")
        with pytest.raises(ValueError):
            get_transport()

    def test_installed_adapter_is_returned(self, adapter):
        set_transport(adapter)
        assert get_transport() is adapter

    def test_default_broker_from_domain(self):
        transport = BrokerTransport()
        delivery_id = transport.send("courier-smoke", {"ping": True}, {"partitionKey": "k"})
        assert delivery_id
