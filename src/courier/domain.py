"""Courier bounded context: parcel lifecycle and carrier event streaming.

Parcels are registered from inbound EDI orders, advanced through their
lifecycle by the transport provider's status feed, and every state change
is republished as an ordered event keyed by parcel id. Outbound messages
are staged in an outbox inside the same unit of work as the parcel change
and relayed to the transport after commit.
"""

from protean.domain import Domain

from courier.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

courier = Domain(name="courier")
