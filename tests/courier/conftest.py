import copy

import pytest
from protean.integrations.pytest import DomainFixture

_BASE_ORDER = {
    "edi_reference": "EDI-2024-001",
    "parcel_id": None,
    "sender": {
        "customer_code": None,
        "name": "John Doe",
        "email": "john@example.com",
        "phone": "+1-555-0100",
        "company": "Acme Corp",
    },
    "recipient": {
        "name": "Jane Smith",
        "email": "jane@example.com",
        "phone": "+1-555-0199",
    },
    "pickup_address": {
        "street_address": "123 Main St",
        "city": "New York",
        "state": "NY",
        "postal_code": "10001",
        "country": "USA",
        "contact_person": "John Doe",
    },
    "delivery_address": {
        "street_address": "456 Atlantic Ave",
        "city": "Brooklyn",
        "state": "NY",
        "postal_code": "11217",
        "country": "USA",
        "landmark": "Next to the pharmacy",
    },
    "parcel_details": {
        "description": "Books",
        "weight": 2.5,
        "dimensions": "30x20x10",
        "value": 120.0,
        "fragile": False,
    },
    "service_options": {
        "priority": "express",
        "insurance": True,
        "signature_required": True,
        "estimated_delivery_date": "2024-06-20T17:00:00",
    },
    "timestamp": "2024-06-17T09:30:00",
}


@pytest.fixture(scope="session")
def courier_bed():
    from courier.domain import courier

    bed = DomainFixture(courier)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(courier_bed):
    with courier_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()

        for _, broker in current_domain.brokers.items():
            broker._data_reset()

        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def transport():
    """A fresh in-memory transport installed for every test."""
    from courier.transport import reset_transport, set_transport
    from courier.transport.fake_adapter import FakeTransport

    fake = FakeTransport()
    set_transport(fake)
    yield fake
    reset_transport()


@pytest.fixture()
def make_order():
    """Build an order payload; keyword overrides replace top-level blocks."""

    def _make(**overrides):
        order = copy.deepcopy(_BASE_ORDER)
        order.update(overrides)
        return order

    return _make


@pytest.fixture()
def registered_parcel(make_order):
    """Ingest the default order and return its parcel id."""
    from courier.parcel.ingestion import ParcelIngestion

    result = ParcelIngestion().ingest(make_order())
    assert result.success, result.message
    return result.parcel_id
