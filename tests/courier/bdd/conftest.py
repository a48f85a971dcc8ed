"""Shared BDD fixtures and step definitions for the courier domain."""

import pytest
from courier.messaging import channels
from courier.parcel.parcel import Parcel
from courier.routing.router import InboundEventRouter
from courier.shared.results import ErrorKind
from protean import current_domain
from pytest_bdd import given, parsers, then, when


@pytest.fixture()
def outcome():
    """Container for the result of the last operation."""
    return {"result": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a registered parcel", target_fixture="parcel_id")
def a_registered_parcel(registered_parcel):
    return registered_parcel


@given(parsers.cfparse('the carrier reports "{message_type}"'))
@when(parsers.cfparse('the carrier reports "{message_type}"'))
def carrier_reports(parcel_id, message_type, outcome):
    routed = InboundEventRouter().route(
        channels.carrier_responses(),
        {
            "messageType": message_type,
            "parcelId": parcel_id,
            "driverName": "Mike Johnson",
            "vehicleId": "TRUCK-7",
            "recipientName": "Jane Smith",
        },
    )
    assert routed.acked
    outcome["result"] = routed.result


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the parcel status is "{status}"'))
def parcel_status_is(parcel_id, status):
    assert current_domain.repository_for(Parcel).get(parcel_id).status == status


@then("the operation succeeded")
def operation_succeeded(outcome):
    assert outcome["result"].success, outcome["result"].message


@then(parsers.cfparse('the operation fails with "{kind}"'))
def operation_fails_with(outcome, kind):
    assert not outcome["result"].success
    assert outcome["result"].error_kind == ErrorKind(kind)


@then("the operation is degraded")
def operation_is_degraded(outcome):
    assert outcome["result"].degraded
