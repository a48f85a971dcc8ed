"""Party aggregate: a sender or recipient of parcels.

Parties are never deleted. Their natural key is the reference code when
the order supplies one, otherwise the email address.
"""

from datetime import UTC, datetime

from protean.fields import DateTime, String

from courier.domain import courier
from courier.party.events import PartyRegistered
from courier.shared.identifiers import new_reference_code


@courier.aggregate
class Party:
    reference_code = String(required=True, max_length=64)
    name = String(required=True, max_length=200)
    email = String(required=True, max_length=254)
    phone = String(max_length=30)
    company = String(max_length=200)
    registered_at = DateTime()

    @classmethod
    def register(
        cls,
        name: str,
        email: str,
        reference_code: str | None = None,
        phone: str | None = None,
        company: str | None = None,
    ):
        """Record a new party, minting a reference code when none was supplied."""
        now = datetime.now(UTC)
        party = cls(
            reference_code=reference_code or new_reference_code(),
            name=name,
            email=email,
            phone=phone,
            company=company,
            registered_at=now,
        )
        party.raise_(
            PartyRegistered(
                party_id=str(party.id),
                reference_code=party.reference_code,
                name=name,
                email=email,
                registered_at=now,
            )
        )
        return party
