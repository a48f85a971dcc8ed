"""Party domain events."""

from protean.fields import DateTime, Identifier, String

from courier.domain import courier


@courier.event(part_of="Party")
class PartyRegistered:
    """A sender or recipient was seen for the first time and recorded."""

    __version__ = 1

    party_id = Identifier(required=True)
    reference_code = String(required=True)
    name = String(required=True)
    email = String(required=True)
    registered_at = DateTime(required=True)
