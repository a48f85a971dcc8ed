"""Transport adapter registry: pluggable message broker access.

Uses the domain's Protean broker by default. Set COURIER_TRANSPORT=fake
for an in-memory transport (tests, local development without a broker).
"""

import os

from courier.transport.port import TransportPort

_transport_instance: TransportPort | None = None


def get_transport() -> TransportPort:
    """Return the configured transport adapter (singleton)."""
    global _transport_instance
    if _transport_instance is None:
        adapter = os.environ.get("COURIER_TRANSPORT", "broker")
        if adapter == "broker":
            from courier.transport.broker_adapter import BrokerTransport

            _transport_instance = BrokerTransport()
        elif adapter == "fake":
            from courier.transport.fake_adapter import FakeTransport

            _transport_instance = FakeTransport()
        else:
            raise ValueError(f"Unknown transport adapter: {adapter}")
    return _transport_instance


def set_transport(transport: TransportPort) -> None:
    """Install a specific adapter instance."""
    global _transport_instance
    _transport_instance = transport


def reset_transport():
    """Reset the transport singleton (useful for testing)."""
    global _transport_instance
    _transport_instance = None
