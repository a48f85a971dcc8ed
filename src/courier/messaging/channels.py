"""Channel (topic) names used on the transport.

Defaults match the names agreed with the transport provider; each can be
overridden through the environment for staging or shared brokers.
"""

import os

INCOMING_ORDERS = "incoming-parcel-orders"
CARRIER_RESPONSES = "abc-transport-responses"
CARRIER_EVENTS = "abc-transport-events"
TRACKING_EVENTS = "parcel-tracking-events"


def incoming_orders() -> str:
    return os.environ.get("COURIER_CHANNEL_INCOMING_ORDERS", INCOMING_ORDERS)


def carrier_responses() -> str:
    return os.environ.get("COURIER_CHANNEL_CARRIER_RESPONSES", CARRIER_RESPONSES)


def carrier_events() -> str:
    return os.environ.get("COURIER_CHANNEL_CARRIER_EVENTS", CARRIER_EVENTS)


def tracking_events() -> str:
    return os.environ.get("COURIER_CHANNEL_TRACKING_EVENTS", TRACKING_EVENTS)
